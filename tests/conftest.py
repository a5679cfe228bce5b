"""Shared fixtures for relinfer tests."""

import sqlite3
from collections.abc import Callable
from pathlib import Path

import pytest

from relinfer.db.connection import Connection

BLOG_SCHEMA = """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT NOT NULL,
        name TEXT,
        active BOOLEAN DEFAULT true,
        settings TEXT DEFAULT '{}',
        tags TEXT DEFAULT '[]',
        age INTEGER CHECK (age >= 0),
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    CREATE UNIQUE INDEX users_email_index ON users (email);

    CREATE TABLE posts (
        id INTEGER PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        title VARCHAR(255) NOT NULL DEFAULT 'untitled',
        body TEXT,
        published BOOLEAN DEFAULT false
    );
    CREATE INDEX posts_user_id_title_index ON posts (user_id, title);
    CREATE INDEX posts_published_index ON posts (title) WHERE published = 1;

    CREATE TABLE user_roles (
        user_id INTEGER NOT NULL,
        role_id INTEGER NOT NULL,
        PRIMARY KEY (user_id, role_id)
    );

    CREATE TABLE schema_migrations (version INTEGER PRIMARY KEY);
"""


@pytest.fixture
def make_sqlite_db(tmp_path: Path) -> Callable[..., Path]:
    """Return a factory creating a SQLite database file from a SQL script."""

    def _make(script: str, name: str = "app.db") -> Path:
        path = tmp_path / name
        conn = sqlite3.connect(path)
        try:
            conn.executescript(script)
            conn.commit()
        finally:
            conn.close()
        return path

    return _make


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    """Create a migrations directory with two migration files."""
    directory = tmp_path / "migrations"
    directory.mkdir()
    (directory / "001_create_users.sql").write_text("CREATE TABLE users (id INTEGER PRIMARY KEY);\n")
    (directory / "002_create_posts.sql").write_text("CREATE TABLE posts (id INTEGER PRIMARY KEY);\n")
    return directory


@pytest.fixture
def blog_connection(make_sqlite_db: Callable[..., Path], migrations_dir: Path) -> Connection:
    """SQLite connection to a small blog database with migrations."""
    path = make_sqlite_db(BLOG_SCHEMA, "blog.db")
    return Connection("blog", "sqlite", path, migrations_dir=migrations_dir)
