"""Engine independent table introspection.

Each database engine has an Introspector that turns catalog queries into the
raw table model. The base class fixes the order tables are read in and
leaves the engine specific catalog queries to subclasses.
"""

import logging
from abc import ABC, abstractmethod

from relinfer.db.connection import Connection, QueryExecutor
from relinfer.db.raw import Engine, RawColumn, RawForeignKey, RawIndex, RawPrimaryKey, RawTable
from relinfer.errors import TableNotFound, UnsupportedEngine

logger = logging.getLogger(__name__)

# Migration bookkeeping table, never part of the application schema
MIGRATIONS_TABLE = "schema_migrations"


class Introspector(ABC):
    """Abstract base class for engine introspection adapters.

    Subclasses implement the catalog queries; introspect_table combines
    them into a RawTable.
    """

    engine: Engine

    @abstractmethod
    def list_tables(self, executor: QueryExecutor) -> list[str]:
        """Return user table names, sorted by name.

        Engine internal tables and the migrations table are excluded.
        """

    @abstractmethod
    def table_exists(self, executor: QueryExecutor, table: str) -> bool:
        """Return True if the table exists."""

    @abstractmethod
    def introspect_columns(self, executor: QueryExecutor, table: str) -> list[RawColumn]:
        """Return the table's columns in ordinal position."""

    @abstractmethod
    def introspect_primary_key(self, executor: QueryExecutor, table: str, columns: list[RawColumn]) -> RawPrimaryKey:
        """Return the primary key, its columns in declared key order.

        Args:
            executor: Open query executor.
            table: Table name.
            columns: Columns already read for the table.
        """

    @abstractmethod
    def introspect_foreign_keys(self, executor: QueryExecutor, table: str) -> list[RawForeignKey]:
        """Return foreign keys, one record per constraint."""

    @abstractmethod
    def introspect_indices(self, executor: QueryExecutor, table: str) -> list[RawIndex]:
        """Return indices other than the primary key's, columns in index order."""

    def introspect_table(self, executor: QueryExecutor, table: str) -> RawTable:
        """Read everything the catalog reports about one table.

        Args:
            executor: Open query executor.
            table: Table name.

        Returns:
            The raw table. A table that exists but reports no columns yields a
            RawTable with an empty column list.

        Raises:
            TableNotFound: If the table does not exist.
            DatabaseConnectionError: If a catalog query fails.
            PermissionDenied: If the catalog cannot be read.
        """
        if not self.table_exists(executor, table):
            raise TableNotFound(table)

        columns = self.introspect_columns(executor, table)
        primary_key = self.introspect_primary_key(executor, table, columns)
        foreign_keys = self.introspect_foreign_keys(executor, table)
        indices = self.introspect_indices(executor, table)

        pk_names = set(primary_key.column_names())
        fk_names = {name for fk in foreign_keys for name in fk.columns}
        for column in columns:
            column.is_primary_key = column.name in pk_names
            column.is_foreign_key = column.name in fk_names

        logger.debug(
            "Introspected %s table %r: %d columns, %d foreign keys, %d indices",
            self.engine.value,
            table,
            len(columns),
            len(foreign_keys),
            len(indices),
        )
        return RawTable(
            name=table,
            engine=self.engine,
            columns=columns,
            primary_key=primary_key,
            foreign_keys=foreign_keys,
            indices=indices,
        )


def get_introspector(engine: Engine | str) -> Introspector:
    """Return the introspection adapter for an engine.

    Raises:
        UnsupportedEngine: If no adapter is registered for the engine.
    """
    from relinfer.db.postgres import PostgresIntrospector
    from relinfer.db.sqlite import SqliteIntrospector

    introspectors: dict[Engine, type[Introspector]] = {
        Engine.SQLITE: SqliteIntrospector,
        Engine.POSTGRES: PostgresIntrospector,
    }
    try:
        return introspectors[Engine(engine)]()
    except (KeyError, ValueError):
        raise UnsupportedEngine(engine) from None


def introspect_table(connection: Connection, table: str) -> RawTable:
    """Open a connection and introspect one table."""
    introspector = get_introspector(connection.engine)
    with connection.connect() as executor:
        return introspector.introspect_table(executor, table)


def list_tables(connection: Connection) -> list[str]:
    """Open a connection and list its user tables."""
    introspector = get_introspector(connection.engine)
    with connection.connect() as executor:
        return introspector.list_tables(executor)
