"""Tests for connections and query executors."""

import sqlite3
from pathlib import Path
from unittest.mock import MagicMock

import psycopg2
import pytest
from psycopg2 import errors as pg_errors

from relinfer.db.connection import Connection, PostgresExecutor, SqliteExecutor
from relinfer.db.raw import Engine
from relinfer.digest import DirectoryMigrationSource
from relinfer.errors import DatabaseConnectionError, PermissionDenied, UnsupportedEngine


class TestConnection:
    """Tests for Connection."""

    def test_engine_is_parsed(self) -> None:
        """Engine strings become Engine members."""
        conn = Connection("app", "sqlite", ":memory:")
        assert conn.engine is Engine.SQLITE
        assert conn.name == "app"

    def test_unknown_engine_raises(self) -> None:
        """Unknown engines raise UnsupportedEngine."""
        with pytest.raises(UnsupportedEngine, match="mysql"):
            Connection("app", "mysql", "db")

    def test_no_migrations_dir_means_no_source(self) -> None:
        """Without a migrations directory there is no migration source."""
        assert Connection("app", "sqlite", ":memory:").migration_source() is None

    def test_migration_source_uses_patterns(self, tmp_path: Path) -> None:
        """The migration source covers the configured directory and patterns."""
        conn = Connection("app", "sqlite", ":memory:", migrations_dir=tmp_path, migration_patterns=["*.sql"])
        source = conn.migration_source()
        assert isinstance(source, DirectoryMigrationSource)
        assert source.directory == tmp_path
        assert source.patterns == ("*.sql",)


class TestSqliteConnect:
    """Tests for opening SQLite connections."""

    def test_connect_yields_working_executor(self, make_sqlite_db) -> None:
        """connect() yields an executor that runs queries."""
        path = make_sqlite_db("CREATE TABLE t (id INTEGER);")
        conn = Connection("app", "sqlite", path)
        with conn.connect() as executor:
            result = executor.query("SELECT name FROM sqlite_master WHERE type = ?", ("table",))
        assert result.columns == ["name"]
        assert result.rows == [("t",)]

    def test_connection_is_read_only(self, make_sqlite_db) -> None:
        """Writes through the executor fail."""
        path = make_sqlite_db("CREATE TABLE t (id INTEGER);")
        conn = Connection("app", "sqlite", path)
        with pytest.raises(DatabaseConnectionError), conn.connect() as executor:
            executor.query("INSERT INTO t VALUES (1)")

    def test_missing_file_is_not_created(self, tmp_path: Path) -> None:
        """Opening a missing database fails instead of creating it."""
        path = tmp_path / "missing.db"
        conn = Connection("app", "sqlite", path)
        with pytest.raises(DatabaseConnectionError), conn.connect():
            pass
        assert not path.exists()


class TestSqliteExecutor:
    """Tests for SqliteExecutor error translation."""

    def test_bad_sql_is_connection_error(self) -> None:
        """Driver errors become DatabaseConnectionError."""
        executor = SqliteExecutor(sqlite3.connect(":memory:"))
        with pytest.raises(DatabaseConnectionError):
            executor.query("SELECT * FROM nowhere")

    def test_denied_statement_is_permission_denied(self) -> None:
        """Authorizer denials become PermissionDenied."""
        raw = sqlite3.connect(":memory:")
        raw.set_authorizer(lambda *args: sqlite3.SQLITE_DENY)
        executor = SqliteExecutor(raw)
        with pytest.raises(PermissionDenied):
            executor.query("SELECT 1")


class TestPostgresExecutor:
    """Tests for PostgresExecutor against a mocked psycopg2 connection."""

    def _connection(self, cursor: MagicMock) -> MagicMock:
        conn = MagicMock()
        conn.closed = 0
        conn.cursor.return_value.__enter__.return_value = cursor
        return conn

    def test_returns_rows_and_columns(self) -> None:
        """Rows and column names come from the cursor."""
        cursor = MagicMock()
        cursor.description = [("relname",)]
        cursor.fetchall.return_value = [("users",)]
        conn = self._connection(cursor)

        result = PostgresExecutor(conn).query("SELECT relname FROM pg_class WHERE relname = %s", ("users",))

        assert result.columns == ["relname"]
        assert result.rows == [("users",)]
        cursor.execute.assert_called_once_with("SELECT relname FROM pg_class WHERE relname = %s", ("users",))
        conn.rollback.assert_called_once()

    def test_insufficient_privilege_is_permission_denied(self) -> None:
        """InsufficientPrivilege becomes PermissionDenied."""
        cursor = MagicMock()
        cursor.execute.side_effect = pg_errors.InsufficientPrivilege("permission denied for table pg_authid")
        conn = self._connection(cursor)

        with pytest.raises(PermissionDenied, match="permission denied"):
            PostgresExecutor(conn).query("SELECT 1")
        conn.rollback.assert_called_once()

    def test_other_errors_are_connection_errors(self) -> None:
        """Other psycopg2 errors become DatabaseConnectionError."""
        cursor = MagicMock()
        cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")
        conn = self._connection(cursor)

        with pytest.raises(DatabaseConnectionError, match="server closed"):
            PostgresExecutor(conn).query("SELECT 1")

    def test_dropped_connection_is_connection_error(self) -> None:
        """A failing rollback on a dead connection keeps the typed error."""
        cursor = MagicMock()
        cursor.execute.side_effect = psycopg2.OperationalError("terminating connection due to administrator command")
        conn = self._connection(cursor)
        conn.rollback.side_effect = psycopg2.InterfaceError("connection already closed")

        with pytest.raises(DatabaseConnectionError, match="terminating connection"):
            PostgresExecutor(conn).query("SELECT 1")

    def test_closed_connection_skips_rollback(self) -> None:
        """No rollback is attempted once psycopg2 reports the connection closed."""
        cursor = MagicMock()
        cursor.execute.side_effect = psycopg2.InterfaceError("connection already closed")
        conn = self._connection(cursor)
        conn.closed = 2

        with pytest.raises(DatabaseConnectionError, match="already closed"):
            PostgresExecutor(conn).query("SELECT 1")
        conn.rollback.assert_not_called()

    def test_failed_rollback_after_query_is_connection_error(self) -> None:
        """A rollback failing after a successful read is a connection error."""
        cursor = MagicMock()
        cursor.description = [("relname",)]
        cursor.fetchall.return_value = [("users",)]
        conn = self._connection(cursor)
        conn.rollback.side_effect = psycopg2.InterfaceError("connection already closed")

        with pytest.raises(DatabaseConnectionError, match="already closed"):
            PostgresExecutor(conn).query("SELECT relname FROM pg_class")


class TestPostgresConnect:
    """Tests for opening PostgreSQL connections."""

    def test_connect_failure_is_connection_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A failing psycopg2.connect raises DatabaseConnectionError."""

        def refuse(dsn: str) -> None:
            raise psycopg2.OperationalError("connection refused")

        monkeypatch.setattr(psycopg2, "connect", refuse)
        conn = Connection("app", "postgres", "postgresql://localhost/app")
        with pytest.raises(DatabaseConnectionError, match="connection refused"), conn.connect():
            pass

    def test_session_is_read_only(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The session is switched to read-only and closed afterwards."""
        raw = MagicMock()
        monkeypatch.setattr(psycopg2, "connect", lambda dsn: raw)
        conn = Connection("app", "postgres", "postgresql://localhost/app")

        with conn.connect() as executor:
            assert isinstance(executor, PostgresExecutor)

        raw.set_session.assert_called_once_with(readonly=True)
        raw.close.assert_called_once()

    def test_session_setup_failure_is_connection_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A failing set_session raises DatabaseConnectionError and closes the connection."""
        raw = MagicMock()
        raw.set_session.side_effect = psycopg2.OperationalError("server closed the connection")
        monkeypatch.setattr(psycopg2, "connect", lambda dsn: raw)
        conn = Connection("app", "postgres", "postgresql://localhost/app")

        with pytest.raises(DatabaseConnectionError, match="server closed"), conn.connect():
            pass
        raw.close.assert_called_once()
