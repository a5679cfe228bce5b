"""Relinfer configuration management.

Provides layered configuration with precedence:
    1. Environment variables (RELINFER_*)
    2. Config file ($RELINFER_HOME/config.toml)
    3. Defaults defined in RelinferConfig
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from relinfer.db.connection import Connection
from relinfer.db.raw import Engine


def get_relinfer_home() -> Path:
    """Return the relinfer home directory.

    Uses RELINFER_HOME environment variable if set, otherwise ~/.relinfer.
    """
    return Path(os.environ.get("RELINFER_HOME", "~/.relinfer")).expanduser()


def get_config_path() -> Path:
    """Return the config file path."""
    return get_relinfer_home() / "config.toml"


class ConnectionConfig(BaseModel):
    """One named database connection.

    Attributes:
        engine: Database engine, 'sqlite' or 'postgres'.
        database: SQLite file path, or a PostgreSQL DSN.
        migrations_dir: Directory of migration files, if any.
    """

    engine: str
    database: str
    migrations_dir: str | None = None

    @field_validator("engine")
    @classmethod
    def validate_engine(cls, v: str) -> str:
        """Reject engines without an introspection adapter.

        Raises:
            ValueError: If the engine is unknown.
        """
        known = [engine.value for engine in Engine]
        if v not in known:
            msg = f"Engine must be one of {', '.join(known)}, got: {v}"
            raise ValueError(msg)
        return v

    @field_validator("database")
    @classmethod
    def validate_database(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Database must not be empty")
        return v


class RelinferConfig(BaseSettings):
    """Relinfer configuration with layered precedence.

    Settings are loaded from (highest to lowest priority):
        1. Environment variables with RELINFER_ prefix
        2. Config file at $RELINFER_HOME/config.toml
        3. Default values defined here

    Attributes:
        cache_dir: Schema cache directory; $RELINFER_HOME/cache when unset.
        cache_enabled: Whether inference reads and writes the cache.
        migration_patterns: Glob patterns selecting migration files.
        log_level: Logging level name for the CLI.
        connections: Named database connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="RELINFER_",
        extra="ignore",
    )

    cache_dir: Path | None = None
    cache_enabled: bool = True
    migration_patterns: list[str] = ["*.sql", "*.py"]
    log_level: str = "WARNING"
    connections: dict[str, ConnectionConfig] = {}

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate a logging level name.

        Raises:
            ValueError: If the name is not a standard logging level.
        """
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level

    def resolved_cache_dir(self) -> Path:
        """Return the cache directory, defaulting under the home directory."""
        if self.cache_dir is not None:
            return self.cache_dir.expanduser()
        return get_relinfer_home() / "cache"

    def connection(self, name: str) -> Connection:
        """Build the named connection.

        Raises:
            KeyError: If no connection has that name.
        """
        if name not in self.connections:
            raise KeyError(name)
        conf = self.connections[name]
        return Connection(
            name=name,
            engine=conf.engine,
            database=conf.database,
            migrations_dir=conf.migrations_dir,
            migration_patterns=self.migration_patterns,
        )

    def save(self) -> None:
        """Persist current config to file.

        Creates the config directory if it doesn't exist.
        """
        path = get_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self._to_dict()
        path.write_text(tomli_w.dumps(data))

    def _to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for serialization."""
        # TOML has no null, so unset optional values are left out
        data: dict[str, Any] = {
            "cache_enabled": self.cache_enabled,
            "migration_patterns": list(self.migration_patterns),
            "log_level": self.log_level,
            "connections": {
                name: conf.model_dump(exclude_none=True) for name, conf in self.connections.items()
            },
        }
        if self.cache_dir is not None:
            data["cache_dir"] = str(self.cache_dir)
        return data

    @classmethod
    def load(cls) -> "RelinferConfig":
        """Load config with full precedence chain.

        Precedence (highest to lowest):
            1. Environment variables (RELINFER_*)
            2. Config file
            3. Defaults

        Returns:
            Loaded configuration.
        """
        config_path = get_config_path()
        file_values: dict[str, Any] = {}

        if config_path.exists():
            content = config_path.read_text()
            if content.strip():
                file_values = tomllib.loads(content)

        # Only use file values for fields not set by env vars
        # (env vars take precedence)
        effective_values: dict[str, Any] = {}
        for key, value in file_values.items():
            env_key = f"RELINFER_{key.upper()}"
            if env_key not in os.environ:
                effective_values[key] = value

        return cls(**effective_values)
