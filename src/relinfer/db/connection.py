"""Database connections and read-only query executors.

A Connection names one database, the engine it runs on and the directory
holding its migrations. Opening it yields a QueryExecutor that runs
parameterized catalog queries and reports failures through the relinfer
error taxonomy.
"""

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import psycopg2
from psycopg2 import errors as pg_errors

from relinfer.db.raw import Engine
from relinfer.digest import DirectoryMigrationSource, MigrationSource
from relinfer.errors import DatabaseConnectionError, PermissionDenied, UnsupportedEngine

logger = logging.getLogger(__name__)

DEFAULT_MIGRATION_PATTERNS = ("*.sql", "*.py")


@dataclass
class QueryResult:
    """Rows returned by a catalog query, with their column names."""

    columns: list[str]
    rows: list[tuple[Any, ...]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


class QueryExecutor(Protocol):
    """Runs read-only SQL against one open connection."""

    engine: Engine

    def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult: ...


class SqliteExecutor:
    """QueryExecutor over a sqlite3 connection."""

    engine = Engine.SQLITE

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Execute a query and return all rows.

        Raises:
            PermissionDenied: If an authorizer denied the statement.
            DatabaseConnectionError: For any other driver failure.
        """
        try:
            cursor = self._conn.execute(sql, tuple(params))
            rows = cursor.fetchall()
        except sqlite3.DatabaseError as e:
            if "not authorized" in str(e):
                raise PermissionDenied(str(e)) from e
            raise DatabaseConnectionError(str(e)) from e
        columns = [desc[0] for desc in cursor.description or ()]
        return QueryResult(columns=columns, rows=[tuple(row) for row in rows])


class PostgresExecutor:
    """QueryExecutor over a psycopg2 connection."""

    engine = Engine.POSTGRES

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Execute a query and return all rows.

        Raises:
            PermissionDenied: If the role lacks privileges on the catalog.
            DatabaseConnectionError: For any other driver failure, including
                a connection the server has already dropped.
        """
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(sql, tuple(params))
                rows = cursor.fetchall() if cursor.description else []
                columns = [desc[0] for desc in cursor.description or ()]
        except pg_errors.InsufficientPrivilege as e:
            self._discard_transaction()
            raise PermissionDenied(str(e).strip()) from e
        except psycopg2.Error as e:
            self._discard_transaction()
            raise DatabaseConnectionError(str(e).strip()) from e

        # Catalog reads never need to hold a transaction open
        try:
            self._conn.rollback()
        except psycopg2.Error as e:
            raise DatabaseConnectionError(str(e).strip()) from e
        return QueryResult(columns=columns, rows=[tuple(row) for row in rows])

    def _discard_transaction(self) -> None:
        """Roll back after a failed query, keeping the query's own error."""
        if self._conn.closed:
            return
        try:
            self._conn.rollback()
        except psycopg2.Error as e:
            logger.debug("Rollback after failed query also failed: %s", e)


class Connection:
    """A named database plus the migrations that shape it.

    The name is the connection identity used to key cache entries, so two
    Connection objects with the same name share cached schemas.
    """

    def __init__(
        self,
        name: str,
        engine: Engine | str,
        database: str | Path,
        migrations_dir: str | Path | None = None,
        migration_patterns: Sequence[str] = DEFAULT_MIGRATION_PATTERNS,
    ) -> None:
        """Initialize a connection.

        Args:
            name: Connection identity.
            engine: Database engine ('sqlite' or 'postgres').
            database: SQLite file path, or a PostgreSQL DSN.
            migrations_dir: Directory whose files determine the migration digest.
            migration_patterns: Glob patterns selecting migration files.

        Raises:
            UnsupportedEngine: If the engine is not known.
        """
        try:
            self._engine = Engine(engine)
        except ValueError:
            raise UnsupportedEngine(engine) from None
        self._name = name
        self._database = str(database)
        self._migrations_dir = Path(migrations_dir) if migrations_dir is not None else None
        self._migration_patterns = tuple(migration_patterns)

    def __repr__(self) -> str:
        return f"Connection(name={self._name!r}, engine={self._engine.value})"

    @property
    def name(self) -> str:
        """Return the connection identity."""
        return self._name

    @property
    def engine(self) -> Engine:
        """Return the database engine."""
        return self._engine

    @property
    def database(self) -> str:
        """Return the database path or DSN."""
        return self._database

    @property
    def migrations_dir(self) -> Path | None:
        """Return the migrations directory, if any."""
        return self._migrations_dir

    @property
    def migration_patterns(self) -> tuple[str, ...]:
        """Return the glob patterns selecting migration files."""
        return self._migration_patterns

    def migration_source(self) -> MigrationSource | None:
        """Return the migration source used for digest computation."""
        if self._migrations_dir is None:
            return None
        return DirectoryMigrationSource(self._migrations_dir, self._migration_patterns)

    @contextmanager
    def connect(self) -> Iterator[QueryExecutor]:
        """Context manager yielding a read-only query executor.

        Raises:
            DatabaseConnectionError: If the database cannot be opened.
        """
        if self._engine is Engine.SQLITE:
            with self._connect_sqlite() as executor:
                yield executor
        else:
            with self._connect_postgres() as executor:
                yield executor

    @contextmanager
    def _connect_sqlite(self) -> Iterator[QueryExecutor]:
        # Read-only URI mode never creates a missing database file
        if self._database == ":memory:":
            target, uri = self._database, False
        else:
            target, uri = f"{Path(self._database).resolve().as_uri()}?mode=ro", True

        try:
            conn = sqlite3.connect(target, uri=uri)
        except sqlite3.Error as e:
            raise DatabaseConnectionError(f"Cannot open {self._database}: {e}") from e
        try:
            yield SqliteExecutor(conn)
        finally:
            conn.close()

    @contextmanager
    def _connect_postgres(self) -> Iterator[QueryExecutor]:
        try:
            conn = psycopg2.connect(self._database)
        except pg_errors.InsufficientPrivilege as e:
            raise PermissionDenied(str(e).strip()) from e
        except psycopg2.Error as e:
            raise DatabaseConnectionError(str(e).strip()) from e
        try:
            try:
                conn.set_session(readonly=True)
            except psycopg2.Error as e:
                raise DatabaseConnectionError(str(e).strip()) from e
            yield PostgresExecutor(conn)
        finally:
            conn.close()
