"""Indices of a normalized schema."""

from collections.abc import Iterator
from dataclasses import dataclass, field

from relinfer.db.raw import IndexType
from relinfer.schema.field import Field


@dataclass
class Index:
    """A database index; fields are kept in index column order."""

    name: str
    fields: list[Field]
    unique: bool = False
    type: IndexType = IndexType.BTREE
    where_clause: str | None = None

    def __repr__(self) -> str:
        kind = "unique " if self.unique else ""
        return f"Index<{kind}{self.name} ({', '.join(self.field_names())})>"

    @property
    def composite(self) -> bool:
        """Return True if the index covers more than one field."""
        return len(self.fields) > 1

    @property
    def partial(self) -> bool:
        """Return True if the index has a WHERE predicate."""
        return self.where_clause is not None

    def field_names(self) -> list[str]:
        """Return covered field names in index order."""
        return [f.name for f in self.fields]

    def covers_field(self, name: str) -> bool:
        """Return True if the index covers the named field."""
        return name in self.field_names()


@dataclass
class Indices:
    """All indices of a table, with derived views."""

    indices: list[Index] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"Indices<{self.count()} total, {len(self.unique_indices())} unique>"

    def __iter__(self) -> Iterator[Index]:
        return iter(self.indices)

    def __len__(self) -> int:
        return len(self.indices)

    def add_index(self, index: Index) -> None:
        """Append an index to the collection."""
        self.indices.append(index)

    def find_by_field(self, name: str) -> list[Index]:
        """Return all indices covering the named field."""
        return [index for index in self.indices if index.covers_field(name)]

    def find_by_name(self, name: str) -> Index | None:
        """Return the index with the given name, or None."""
        for index in self.indices:
            if index.name == name:
                return index
        return None

    def unique_indices(self) -> list[Index]:
        """Return unique indices only."""
        return [index for index in self.indices if index.unique]

    def composite_indices(self) -> list[Index]:
        """Return indices covering more than one field."""
        return [index for index in self.indices if index.composite]

    def empty(self) -> bool:
        return not self.indices

    def count(self) -> int:
        return len(self.indices)
