"""Tests for the relinfer CLI."""

from __future__ import annotations

from pathlib import Path

import pytest
import tomli_w
from click.testing import CliRunner

from relinfer.cli import cli
from relinfer.db.connection import Connection
from relinfer.digest import migrations_digest


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_relinfer_home(tmp_path: Path, blog_connection: Connection, migrations_dir: Path) -> Path:
    """Create a RELINFER_HOME whose config points at the blog database."""
    home = tmp_path / "home"
    home.mkdir()
    config = {
        "connections": {
            "blog": {
                "engine": "sqlite",
                "database": blog_connection.database,
                "migrations_dir": str(migrations_dir),
            },
        },
    }
    (home / "config.toml").write_text(tomli_w.dumps(config))
    return home


@pytest.fixture
def env(temp_relinfer_home: Path) -> dict[str, str]:
    """Environment for invoking the CLI against the temporary home."""
    return {"RELINFER_HOME": str(temp_relinfer_home)}


class TestCLIHelp:
    """Test CLI help output."""

    def test_main_help(self, runner: CliRunner) -> None:
        """Main command shows help."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Relinfer" in result.output
        for command in ("tables", "show", "warm-up", "refresh", "clear", "digest"):
            assert command in result.output

    def test_show_help(self, runner: CliRunner) -> None:
        """Show command has help."""
        result = runner.invoke(cli, ["show", "--help"])
        assert result.exit_code == 0
        assert "--no-cache" in result.output


class TestTablesCommand:
    """Test relinfer tables command."""

    def test_lists_tables(self, runner: CliRunner, env: dict[str, str]) -> None:
        """User tables are listed one per line."""
        result = runner.invoke(cli, ["tables"], env=env)
        assert result.exit_code == 0
        assert result.output.split() == ["posts", "user_roles", "users"]

    def test_fields(self, runner: CliRunner, env: dict[str, str]) -> None:
        """--fields prints each table's fields with keys marked."""
        result = runner.invoke(cli, ["tables", "--fields"], env=env)
        assert result.exit_code == 0
        assert result.output.startswith("Tables:\n")
        assert "- posts: id (pk), user_id (fk users), title, body, published" in result.output
        assert "- user_roles: user_id (pk), role_id (pk)" in result.output

    def test_no_connections(self, runner: CliRunner, tmp_path: Path) -> None:
        """Without configured connections the command fails."""
        result = runner.invoke(cli, ["tables"], env={"RELINFER_HOME": str(tmp_path)})
        assert result.exit_code == 1

    def test_unknown_connection(self, runner: CliRunner, env: dict[str, str]) -> None:
        """An unknown connection name fails."""
        result = runner.invoke(cli, ["tables", "-c", "nope"], env=env)
        assert result.exit_code == 1


class TestShowCommand:
    """Test relinfer show command."""

    def test_shows_schema(self, runner: CliRunner, env: dict[str, str]) -> None:
        """The inferred schema is printed."""
        result = runner.invoke(cli, ["show", "posts"], env=env)
        assert result.exit_code == 0
        assert result.output.startswith("posts\n")
        assert "user_id: integer, not null -> users.id as user" in result.output
        assert "index posts_published_index (title) where published = 1" in result.output

    def test_show_caches(self, runner: CliRunner, env: dict[str, str], temp_relinfer_home: Path) -> None:
        """show writes the cache under RELINFER_HOME."""
        runner.invoke(cli, ["show", "users"], env=env)
        assert (temp_relinfer_home / "cache").exists()

    def test_no_cache(self, runner: CliRunner, env: dict[str, str], temp_relinfer_home: Path) -> None:
        """--no-cache leaves the cache untouched."""
        result = runner.invoke(cli, ["show", "users", "--no-cache"], env=env)
        assert result.exit_code == 0
        assert not (temp_relinfer_home / "cache").exists()

    def test_unusable_cache_dir(self, runner: CliRunner, env: dict[str, str], tmp_path: Path) -> None:
        """A cache directory that cannot be opened still shows the schema."""
        blocked = tmp_path / "blocked"
        blocked.write_text("")
        result = runner.invoke(cli, ["show", "users"], env={**env, "RELINFER_CACHE_DIR": str(blocked)})
        assert result.exit_code == 0
        assert "email: string, not null" in result.output

    def test_missing_table(self, runner: CliRunner, env: dict[str, str]) -> None:
        """A missing table fails."""
        result = runner.invoke(cli, ["show", "comments"], env=env)
        assert result.exit_code == 1


class TestCacheCommands:
    """Test warm-up, refresh and clear."""

    def test_warm_up(self, runner: CliRunner, env: dict[str, str]) -> None:
        """warm-up reports how many tables were cached."""
        result = runner.invoke(cli, ["warm-up", "users", "posts"], env=env)
        assert result.exit_code == 0
        assert "Cached 2 of 2 tables" in result.output

    def test_warm_up_partial_failure(self, runner: CliRunner, env: dict[str, str]) -> None:
        """A failing table makes warm-up exit non-zero."""
        result = runner.invoke(cli, ["warm-up", "users", "comments"], env=env)
        assert result.exit_code == 1
        assert "Cached 1 of 2 tables" in result.output

    def test_refresh_with_tables(self, runner: CliRunner, env: dict[str, str]) -> None:
        """refresh clears then re-caches the given tables."""
        result = runner.invoke(cli, ["refresh", "users"], env=env)
        assert result.exit_code == 0
        assert "Cleared cache for blog" in result.output
        assert "Cached 1 of 1 tables" in result.output

    def test_refresh_without_tables(self, runner: CliRunner, env: dict[str, str]) -> None:
        """refresh with no tables only clears."""
        result = runner.invoke(cli, ["refresh"], env=env)
        assert result.exit_code == 0
        assert "Cached" not in result.output

    def test_clear(self, runner: CliRunner, env: dict[str, str]) -> None:
        """clear drops the connection's entries."""
        result = runner.invoke(cli, ["clear"], env=env)
        assert result.exit_code == 0
        assert "Cleared cache for blog" in result.output

    def test_clear_all(self, runner: CliRunner, env: dict[str, str]) -> None:
        """clear --all needs no connection."""
        result = runner.invoke(cli, ["clear", "--all"], env=env)
        assert result.exit_code == 0
        assert "Cleared all cached schemas" in result.output


class TestDigestCommand:
    """Test relinfer digest command."""

    def test_prints_digest(self, runner: CliRunner, env: dict[str, str], blog_connection: Connection) -> None:
        """The digest matches the connection's migrations."""
        result = runner.invoke(cli, ["digest"], env=env)
        assert result.exit_code == 0
        assert result.output.strip() == migrations_digest(blog_connection.migration_source())
