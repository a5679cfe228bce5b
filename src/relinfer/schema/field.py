"""Normalized schema fields."""

from dataclasses import dataclass, field
from typing import Any

from relinfer.types import CanonicalType


@dataclass
class Field:
    """A column of a normalized schema.

    Attributes:
        name: Field name, unique within a schema.
        type: Canonical type the native column type normalized to.
        meta: Catalog derived facts. Keys written by the compiler are
            ``source``, ``native_type``, ``nullable``, ``default``,
            ``check_constraints``, ``primary_key``, ``foreign_key`` and, on
            primary key fields, ``primary_key_field_count``.
    """

    name: str
    type: CanonicalType
    meta: dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"Field<{self.name}: {self.type}>"

    def matches_name(self, name: str) -> bool:
        """Return True if the field has the given name."""
        return self.name == name

    def same_name(self, other: "Field") -> bool:
        """Return True if both fields share a name."""
        return self.name == other.name

    @property
    def nullable(self) -> bool:
        return bool(self.meta.get("nullable", True))

    @property
    def default(self) -> Any:
        return self.meta.get("default")

    @property
    def primary_key(self) -> bool:
        return bool(self.meta.get("primary_key", False))

    @property
    def foreign_key(self) -> bool:
        return bool(self.meta.get("foreign_key", False))
