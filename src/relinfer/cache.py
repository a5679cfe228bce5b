"""Persistent schema cache.

Compiled schemas are stored per (connection, table) in a diskcache
(SQLite-backed) directory, next to the migration digest they were compiled
under. An entry is served only while the connection's current migration
digest matches the stored one; stale entries are deleted on read.

Each connection also has a last-seen digest record. When a lookup finds the
digest has moved on, every entry of that connection is evicted at once.

Caching is an optimization only. Storage and (de)serialization failures are
logged and treated as a miss, never raised to the caller.
"""

import json
import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from diskcache import Cache, Timeout

from relinfer.db.connection import Connection
from relinfer.digest import migrations_digest
from relinfer.errors import CacheIOFailure, IntrospectionError
from relinfer.inference import compile_table
from relinfer.schema import serializable
from relinfer.schema.model import Schema

logger = logging.getLogger(__name__)


@dataclass
class WarmUpResult:
    """Outcome of warming the cache for a batch of tables.

    Attributes:
        schemas: Schemas of the tables that succeeded, in request order.
        errors: Introspection error per table that failed.
    """

    schemas: list[Schema] = field(default_factory=list)
    errors: dict[str, IntrospectionError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """Translate storage and serialization failures into CacheIOFailure."""
    try:
        yield
    except (OSError, sqlite3.Error, Timeout, ValueError, TypeError, KeyError) as e:
        raise CacheIOFailure(f"Failed to {action}: {e}") from e


class SchemaCache:
    """Schema cache rooted at one storage directory.

    Use as a context manager, or call close() when done.
    """

    def __init__(self, directory: Path | str) -> None:
        """Open (or create) the cache directory.

        A directory that cannot be opened leaves the cache disabled: every
        lookup misses and every write is dropped.

        Args:
            directory: Storage root. Created if it doesn't exist.
        """
        self.directory = Path(directory)
        self._cache: Cache | None = None
        try:
            with _storage_errors(f"open {self.directory}"):
                self._cache = Cache(str(self.directory))
        except CacheIOFailure as e:
            logger.warning("Schema cache disabled: %s", e)

    def __repr__(self) -> str:
        return f"SchemaCache({str(self.directory)!r})"

    def __enter__(self) -> "SchemaCache":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def enabled(self) -> bool:
        """Return True if the storage directory was opened."""
        return self._cache is not None

    def close(self) -> None:
        """Close the underlying storage."""
        if self._cache is not None:
            self._cache.close()

    # Tuple keys keep names containing separators from colliding
    @staticmethod
    def _entry_key(connection: Connection, table: str) -> tuple[str, str, str]:
        return ("schema", connection.name, table)

    @staticmethod
    def _digest_key(connection: Connection) -> tuple[str, str]:
        return ("digest", connection.name)

    def current_digest(self, connection: Connection) -> str:
        """Return the digest of the connection's migration files.

        Raises:
            OSError: If a migration file cannot be read.
        """
        return migrations_digest(connection.migration_source())

    def get(self, connection: Connection, table: str) -> Schema | None:
        """Return the cached schema if it is fresh, otherwise None.

        A stale entry is deleted before returning None.
        """
        try:
            return self._get(connection, table)
        except CacheIOFailure as e:
            logger.warning("Schema cache read failed for %s.%s: %s", connection.name, table, e)
            return None

    def _get(self, connection: Connection, table: str) -> Schema | None:
        if self._cache is None:
            return None
        key = self._entry_key(connection, table)
        with _storage_errors(f"read {key}"):
            digest = self.current_digest(connection)
            self._sweep_if_changed(connection, digest)

            text = self._cache.get(key)
            if text is None:
                logger.debug("Schema cache miss: %s", key)
                return None

            entry = json.loads(text)
            if entry["digest"] != digest:
                self._cache.delete(key)
                logger.debug("Schema cache entry stale, deleted: %s", key)
                return None

            schema = serializable.load(entry["schema"])
            if not isinstance(schema, Schema):
                raise TypeError(f"Cached value is not a Schema: {type(schema)}")

        logger.debug("Schema cache hit: %s", key)
        return schema

    def _sweep_if_changed(self, connection: Connection, digest: str) -> None:
        """Evict all of a connection's entries when its digest changed."""
        last_seen = self._cache.get(self._digest_key(connection))
        if last_seen == digest:
            return
        if last_seen is not None:
            count = self._cache.evict(tag=connection.name)
            logger.info("Migrations changed for %s, evicted %d cached schemas", connection.name, count)
        self._cache.set(self._digest_key(connection), digest)

    def put(self, connection: Connection, table: str, schema: Schema) -> None:
        """Store a schema under the connection's current digest.

        Also records the digest as the connection's last-seen one.
        """
        if self._cache is None:
            return
        key = self._entry_key(connection, table)
        try:
            with _storage_errors(f"write {key}"):
                digest = self.current_digest(connection)
                text = json.dumps({"schema": serializable.dump(schema), "digest": digest}, sort_keys=True)
                self._cache.set(key, text, tag=connection.name)
                self._cache.set(self._digest_key(connection), digest)
        except CacheIOFailure as e:
            logger.warning("Schema cache write failed for %s.%s: %s", connection.name, table, e)
            return
        logger.debug("Schema cached: %s", key)

    def get_or_infer(self, connection: Connection, table: str) -> Schema:
        """Return the cached schema, introspecting and caching it on a miss.

        Raises:
            IntrospectionError: If the table cannot be introspected.
            UnsupportedEngine: If the connection's engine has no adapter.
        """
        schema = self.get(connection, table)
        if schema is None:
            schema = compile_table(connection, table)
            self.put(connection, table, schema)
        return schema

    def warm_up(self, connection: Connection, tables: Sequence[str]) -> WarmUpResult:
        """Make sure every table has a fresh cached schema.

        Every table is attempted. A table that fails to introspect is reported
        in the result and does not stop the others, nor does it touch entries
        already cached.

        Raises:
            UnsupportedEngine: If the connection's engine has no adapter.
        """
        result = WarmUpResult()
        for table in tables:
            try:
                result.schemas.append(self.get_or_infer(connection, table))
            except IntrospectionError as e:
                logger.warning("Could not warm up %s.%s: %s", connection.name, table, e)
                result.errors[table] = e
        return result

    def refresh(self, connection: Connection, tables: Sequence[str] | None = None) -> WarmUpResult:
        """Drop the connection's entries, then warm up the given tables."""
        self.clear(connection)
        if tables is None:
            return WarmUpResult()
        return self.warm_up(connection, tables)

    def cached_tables(self, connection: Connection) -> list[str]:
        """Return the names of tables with an entry for the connection."""
        if self._cache is None:
            return []
        prefix = ("schema", connection.name)
        try:
            with _storage_errors("list entries"):
                return sorted(
                    key[2] for key in self._cache.iterkeys() if isinstance(key, tuple) and key[:2] == prefix
                )
        except CacheIOFailure as e:
            logger.warning("Schema cache listing failed for %s: %s", connection.name, e)
            return []

    def clear(self, connection: Connection) -> None:
        """Delete every entry and the digest record of one connection."""
        if self._cache is None:
            return
        try:
            with _storage_errors(f"clear {connection.name}"):
                count = self._cache.evict(tag=connection.name)
                self._cache.delete(self._digest_key(connection))
        except CacheIOFailure as e:
            logger.warning("Schema cache clear failed for %s: %s", connection.name, e)
            return
        logger.info("Cleared %d cached schemas for %s", count, connection.name)

    def clear_all(self) -> None:
        """Delete every entry of every connection."""
        if self._cache is None:
            return
        try:
            with _storage_errors("clear cache"):
                count = self._cache.clear()
        except CacheIOFailure as e:
            logger.warning("Schema cache clear failed: %s", e)
            return
        logger.info("Cleared schema cache (%d records)", count)
