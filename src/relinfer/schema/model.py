"""Normalized, engine independent description of a table."""

from dataclasses import dataclass, field

from relinfer.schema.field import Field
from relinfer.schema.indices import Indices
from relinfer.schema.keys import ForeignKey, PrimaryKey


@dataclass
class Schema:
    """Comprehensive metadata of one table.

    Every field name is unique, and every primary key field and foreign key
    field refers to an entry of ``fields``.

    Attributes:
        source: The table name.
        primary_key: Primary key, with no fields when the table has none.
        foreign_keys: Foreign keys in catalog order.
        fields: Fields in column order.
        indices: Indices of the table.
    """

    source: str
    primary_key: PrimaryKey = field(default_factory=PrimaryKey)
    foreign_keys: list[ForeignKey] = field(default_factory=list)
    fields: list[Field] = field(default_factory=list)
    indices: Indices = field(default_factory=Indices)

    @classmethod
    def empty(cls, source: str) -> "Schema":
        """Return a schema for ``source`` with no fields, keys or indices."""
        return cls(source=source)

    def __repr__(self) -> str:
        fields = ", ".join(f"{f.name}: {f.type}" for f in self.fields)
        fks = ", ".join(f"{fk.field} -> {fk.referenced_table}.{fk.referenced_field}" for fk in self.foreign_keys)
        return (
            f"Schema<source: {self.source!r}, fields: [{fields}], "
            f"primary_key: [{', '.join(self.primary_key.field_names())}], "
            f"foreign_keys: [{fks}], indices: {self.indices!r}>"
        )

    def __getitem__(self, name: str) -> Field:
        found = self.find_field(name)
        if found is None:
            raise KeyError(name)
        return found

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.find_field(name) is not None

    def find_field(self, name: str) -> Field | None:
        """Return field by name, or None if not found."""
        for f in self.fields:
            if f.matches_name(name):
                return f
        return None

    def field_names(self) -> list[str]:
        """Return all field names in column order."""
        return [f.name for f in self.fields]

    def primary_key_field(self, name: str) -> bool:
        """Return True if the named field is part of the primary key."""
        return self.primary_key.includes(name)

    def foreign_key_field(self, name: str) -> bool:
        """Return True if the named field is a foreign key field."""
        return any(fk.field == name for fk in self.foreign_keys)

    def get_foreign_key(self, name: str) -> ForeignKey | None:
        """Return the foreign key whose field is ``name``, or None."""
        for fk in self.foreign_keys:
            if fk.field == name:
                return fk
        return None

    def foreign_key_field_names(self) -> list[str]:
        return [fk.field for fk in self.foreign_keys]

    @property
    def composite_primary_key(self) -> bool:
        return self.primary_key.composite
