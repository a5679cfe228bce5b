"""Migration digests.

A digest fingerprints a migration set so cached schemas can be invalidated
when migrations change. It depends only on file names and contents, never on
timestamps or directory listing order.
"""

import hashlib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

# Digest of a connection that has no migration source at all
EMPTY_DIGEST = "empty"


@dataclass(frozen=True)
class MigrationFile:
    """One migration file: its name relative to the source, and its bytes."""

    name: str
    content: bytes


class MigrationSource(Protocol):
    """Enumerates the migration files of one connection."""

    def files(self) -> list[MigrationFile]: ...


class DirectoryMigrationSource:
    """Migration files matching glob patterns directly inside a directory."""

    def __init__(self, directory: Path | str, patterns: Sequence[str] = ("*.sql", "*.py")) -> None:
        self.directory = Path(directory)
        self.patterns = tuple(patterns)

    def __repr__(self) -> str:
        return f"DirectoryMigrationSource({str(self.directory)!r}, patterns={list(self.patterns)!r})"

    def exists(self) -> bool:
        """Return True if the migrations directory exists."""
        return self.directory.is_dir()

    def files(self) -> list[MigrationFile]:
        """Return matching files sorted lexicographically by name.

        Raises:
            OSError: If a matching file cannot be read.
        """
        if not self.exists():
            return []

        paths: dict[str, Path] = {}
        for pattern in self.patterns:
            for path in self.directory.glob(pattern):
                if path.is_file():
                    paths[path.name] = path

        return [MigrationFile(name=name, content=paths[name].read_bytes()) for name in sorted(paths)]


def compute_digest(files: Iterable[MigrationFile]) -> str:
    """Compute the digest of a migration set.

    Each file contributes its name and the SHA-256 of its content, in
    lexicographic name order; the digest is the SHA-256 over that sequence.

    Args:
        files: Migration files, in any order.

    Returns:
        Hex-encoded digest.
    """
    outer = hashlib.sha256()
    for migration in sorted(files, key=lambda f: f.name):
        content_hash = hashlib.sha256(migration.content).hexdigest()
        outer.update(migration.name.encode("utf-8"))
        outer.update(b"\0")
        outer.update(content_hash.encode("ascii"))
        outer.update(b"\n")
    return outer.hexdigest()


def migrations_digest(source: MigrationSource | None) -> str:
    """Return the digest of a migration source.

    A missing source, or a directory source whose directory does not exist,
    yields EMPTY_DIGEST.
    """
    if source is None:
        return EMPTY_DIGEST
    if isinstance(source, DirectoryMigrationSource) and not source.exists():
        return EMPTY_DIGEST
    return compute_digest(source.files())
