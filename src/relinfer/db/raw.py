"""Raw table model.

Plain records describing exactly what a database engine reports about a table,
before any type normalization. Native type spellings are kept verbatim.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Engine(StrEnum):
    """Database engines with a registered introspection adapter."""

    SQLITE = "sqlite"
    POSTGRES = "postgres"


class ForeignKeyAction(StrEnum):
    """Referential action of a foreign key constraint."""

    RESTRICT = "restrict"
    CASCADE = "cascade"
    SET_NULL = "set_null"
    SET_DEFAULT = "set_default"
    NONE = "none"

    @classmethod
    def parse(cls, action: str | None) -> "ForeignKeyAction":
        """Parse a catalog action spelling such as 'SET NULL' or 'NO ACTION'."""
        if not action:
            return cls.NONE
        normalized = action.strip().upper()
        if normalized == "NO ACTION":
            return cls.RESTRICT
        try:
            return cls(normalized.lower().replace(" ", "_"))
        except ValueError:
            return cls.NONE


class IndexType(StrEnum):
    """Index access method."""

    BTREE = "btree"
    HASH = "hash"
    GIN = "gin"
    GIST = "gist"
    BRIN = "brin"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, name: str | None) -> "IndexType":
        """Parse an access method name, degrading to UNKNOWN."""
        try:
            return cls((name or "").lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass
class RawColumn:
    """A column as reported by the engine catalog."""

    name: str
    native_type: str
    nullable: bool = True
    default: Any = None
    is_primary_key: bool = False
    is_foreign_key: bool = False
    check_constraints: list[str] = field(default_factory=list)


@dataclass
class RawPrimaryKey:
    """Primary key columns in declared key order."""

    columns: list[RawColumn] = field(default_factory=list)

    @property
    def composite(self) -> bool:
        """Return True if the key spans more than one column."""
        return len(self.columns) > 1

    def column_names(self) -> list[str]:
        """Return the names of the key columns."""
        return [col.name for col in self.columns]


@dataclass
class RawForeignKey:
    """A foreign key constraint; composite keys are one record."""

    columns: list[str]
    referenced_table: str
    referenced_columns: list[str]
    name: str | None = None
    on_delete: ForeignKeyAction = ForeignKeyAction.NONE
    on_update: ForeignKeyAction = ForeignKeyAction.NONE

    @property
    def composite(self) -> bool:
        """Return True if the constraint spans more than one column."""
        return len(self.columns) > 1


@dataclass
class RawIndex:
    """An index with its columns in ordinal position."""

    name: str
    columns: list[str]
    unique: bool = False
    type: IndexType = IndexType.BTREE
    where_clause: str | None = None


@dataclass
class RawTable:
    """Everything an adapter learned about one table."""

    name: str
    engine: Engine
    columns: list[RawColumn]
    primary_key: RawPrimaryKey = field(default_factory=RawPrimaryKey)
    foreign_keys: list[RawForeignKey] = field(default_factory=list)
    indices: list[RawIndex] = field(default_factory=list)

    def __repr__(self) -> str:
        """Return string representation with column count."""
        return f"RawTable(name={self.name!r}, engine={self.engine.value}, {len(self.columns)} columns)"

    def column_by_name(self, name: str) -> RawColumn | None:
        """Return column by name, or None if not found."""
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def foreign_key_column_names(self) -> set[str]:
        """Return every column that takes part in a foreign key."""
        return {name for fk in self.foreign_keys for name in fk.columns}


# Nodes the schema compiler knows how to visit
RawNode = RawTable | RawColumn | RawPrimaryKey | RawForeignKey | RawIndex
