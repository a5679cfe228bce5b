"""Tests for configuration management."""

import os
import tomllib
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from relinfer.config import ConnectionConfig, RelinferConfig, get_config_path, get_relinfer_home
from relinfer.db.raw import Engine


class TestGetRelinferHome:
    """Tests for get_relinfer_home function."""

    def test_returns_default_when_env_unset(self) -> None:
        """Returns ~/.relinfer when RELINFER_HOME is not set."""
        with patch.dict(os.environ, {}, clear=True):
            os.environ.pop("RELINFER_HOME", None)
            home = get_relinfer_home()
            assert home == Path.home() / ".relinfer"

    def test_returns_env_var_when_set(self, tmp_path: Path) -> None:
        """Returns RELINFER_HOME value when set."""
        custom_home = tmp_path / "custom_relinfer"
        with patch.dict(os.environ, {"RELINFER_HOME": str(custom_home)}):
            home = get_relinfer_home()
            assert home == custom_home


class TestGetConfigPath:
    """Tests for get_config_path function."""

    def test_returns_config_in_relinfer_home(self, tmp_path: Path) -> None:
        """Config path is config.toml in RELINFER_HOME."""
        custom_home = tmp_path / "relinfer"
        with patch.dict(os.environ, {"RELINFER_HOME": str(custom_home)}):
            path = get_config_path()
            assert path == custom_home / "config.toml"


class TestRelinferConfigDefaults:
    """Tests for RelinferConfig default values."""

    def test_defaults(self) -> None:
        """Defaults enable the cache and match SQL and Python migrations."""
        with patch.dict(os.environ, {}, clear=True):
            cfg = RelinferConfig()
            assert cfg.cache_enabled is True
            assert cfg.cache_dir is None
            assert cfg.migration_patterns == ["*.sql", "*.py"]
            assert cfg.log_level == "WARNING"
            assert cfg.connections == {}

    def test_cache_dir_defaults_under_home(self, tmp_path: Path) -> None:
        """Without cache_dir the cache lives in RELINFER_HOME/cache."""
        with patch.dict(os.environ, {"RELINFER_HOME": str(tmp_path)}):
            assert RelinferConfig().resolved_cache_dir() == tmp_path / "cache"

    def test_explicit_cache_dir(self, tmp_path: Path) -> None:
        """An explicit cache_dir is used as is."""
        cfg = RelinferConfig(cache_dir=tmp_path / "elsewhere")
        assert cfg.resolved_cache_dir() == tmp_path / "elsewhere"


class TestRelinferConfigValidation:
    """Tests for RelinferConfig model validation."""

    def test_log_level_uppercased(self) -> None:
        """Log level names are case insensitive."""
        assert RelinferConfig(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self) -> None:
        """Unknown log levels are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            RelinferConfig(log_level="chatty")
        assert "Unknown log level" in str(exc_info.value)

    def test_unknown_engine_rejected(self) -> None:
        """Connections must use a supported engine."""
        with pytest.raises(ValidationError) as exc_info:
            ConnectionConfig(engine="mysql", database="app")
        assert "Engine must be one of" in str(exc_info.value)

    def test_empty_database_rejected(self) -> None:
        """Connections must name a database."""
        with pytest.raises(ValidationError) as exc_info:
            ConnectionConfig(engine="sqlite", database="  ")
        assert "Database must not be empty" in str(exc_info.value)


class TestConnections:
    """Tests for building connections from config."""

    def test_connection_built_from_config(self, tmp_path: Path) -> None:
        """Named connections carry engine, database and migrations."""
        cfg = RelinferConfig(
            migration_patterns=["*.sql"],
            connections={
                "blog": {"engine": "sqlite", "database": "blog.db", "migrations_dir": str(tmp_path)},
            },
        )
        connection = cfg.connection("blog")

        assert connection.name == "blog"
        assert connection.engine is Engine.SQLITE
        assert connection.database == "blog.db"
        assert connection.migrations_dir == tmp_path
        assert connection.migration_patterns == ("*.sql",)

    def test_unknown_connection(self) -> None:
        """Unknown names raise KeyError."""
        with pytest.raises(KeyError):
            RelinferConfig().connection("nope")


class TestConfigPersistence:
    """Tests for config save/load."""

    def test_save_creates_file(self, tmp_path: Path) -> None:
        """save() creates config file."""
        with patch.dict(os.environ, {"RELINFER_HOME": str(tmp_path)}):
            cfg = RelinferConfig(connections={"blog": {"engine": "sqlite", "database": "blog.db"}})
            cfg.save()

            config_path = tmp_path / "config.toml"
            assert config_path.exists()
            data = tomllib.loads(config_path.read_text())
            assert data["connections"]["blog"] == {"engine": "sqlite", "database": "blog.db"}
            assert "cache_dir" not in data

    def test_save_creates_directory(self, tmp_path: Path) -> None:
        """save() creates config directory if missing."""
        nested_home = tmp_path / "nested" / "relinfer"
        with patch.dict(os.environ, {"RELINFER_HOME": str(nested_home)}):
            RelinferConfig().save()
            assert (nested_home / "config.toml").exists()

    def test_load_reads_saved_config(self, tmp_path: Path) -> None:
        """load() reads previously saved config."""
        with patch.dict(os.environ, {"RELINFER_HOME": str(tmp_path)}, clear=True):
            RelinferConfig(
                cache_enabled=False,
                cache_dir=tmp_path / "schemas",
                connections={"pg": {"engine": "postgres", "database": "dbname=app"}},
            ).save()

            loaded = RelinferConfig.load()
            assert loaded.cache_enabled is False
            assert loaded.cache_dir == tmp_path / "schemas"
            assert loaded.connections["pg"].engine == "postgres"

    def test_load_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        """load() falls back to defaults without a config file."""
        with patch.dict(os.environ, {"RELINFER_HOME": str(tmp_path)}, clear=True):
            loaded = RelinferConfig.load()
            assert loaded.connections == {}
            assert loaded.cache_enabled is True

    def test_env_var_overrides_file(self, tmp_path: Path) -> None:
        """Environment variables take precedence over the config file."""
        (tmp_path / "config.toml").write_text('log_level = "INFO"\n')
        with patch.dict(os.environ, {"RELINFER_HOME": str(tmp_path), "RELINFER_LOG_LEVEL": "ERROR"}, clear=True):
            assert RelinferConfig.load().log_level == "ERROR"
