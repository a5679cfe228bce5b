"""Primary and foreign keys of a normalized schema."""

from dataclasses import dataclass, field

from relinfer.schema.field import Field


@dataclass
class PrimaryKey:
    """Primary key fields in declared key order; empty when the table has none."""

    fields: list[Field] = field(default_factory=list)

    @property
    def composite(self) -> bool:
        """Return True if the key spans more than one field."""
        return len(self.fields) > 1

    @property
    def present(self) -> bool:
        """Return True if the table has a primary key."""
        return len(self.fields) > 0

    def field_names(self) -> list[str]:
        """Return the key field names in key order."""
        return [f.name for f in self.fields]

    def includes(self, name: str) -> bool:
        """Return True if the named field is part of the key."""
        return name in self.field_names()


@dataclass
class ForeignKey:
    """A foreign key, represented by the first column of its constraint.

    Attributes:
        field: Referencing field in this table.
        referenced_table: Table the key points at.
        referenced_field: Field in the referenced table.
        association_name: Name of the relationship, e.g. ``user`` for ``user_id``.
    """

    field: str
    referenced_table: str
    referenced_field: str
    association_name: str
