"""Type normalization.

Maps engine-native type spellings to a closed set of canonical, engine
independent types. Normalization never fails: spellings it does not
recognize degrade to the ``unknown`` canonical type.

Also parses catalog default expressions into Python values, since several
type refinements depend on the default a column carries.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from relinfer.db.raw import Engine
from relinfer.errors import UnsupportedEngine


class TypeKind(StrEnum):
    """Tag of a canonical type."""

    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    STRING = "string"
    BOOLEAN = "boolean"
    BINARY = "binary"
    DATE = "date"
    TIME = "time"
    NAIVE_DATETIME = "naive_datetime"
    UTC_DATETIME = "utc_datetime"
    UUID = "uuid"
    MAP = "map"
    ARRAY = "array"
    ENUM = "enum"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CanonicalType:
    """An engine independent column type.

    Attributes:
        kind: The type tag.
        member: Element type, only set for ``array``.
        values: Allowed labels, only set for ``enum``.
    """

    kind: TypeKind
    member: "CanonicalType | None" = None
    values: tuple[str, ...] = ()

    @classmethod
    def array(cls, member: "CanonicalType") -> "CanonicalType":
        """Build ``array(member)``."""
        return cls(TypeKind.ARRAY, member=member)

    @classmethod
    def enum(cls, values: list[str] | tuple[str, ...]) -> "CanonicalType":
        """Build ``enum(values...)``."""
        return cls(TypeKind.ENUM, values=tuple(values))

    @property
    def is_array(self) -> bool:
        return self.kind is TypeKind.ARRAY

    @property
    def is_enum(self) -> bool:
        return self.kind is TypeKind.ENUM

    def __str__(self) -> str:
        if self.is_array:
            return f"array({self.member})"
        if self.is_enum:
            return f"enum({','.join(self.values)})"
        return self.kind.value


INTEGER = CanonicalType(TypeKind.INTEGER)
FLOAT = CanonicalType(TypeKind.FLOAT)
DECIMAL = CanonicalType(TypeKind.DECIMAL)
STRING = CanonicalType(TypeKind.STRING)
BOOLEAN = CanonicalType(TypeKind.BOOLEAN)
BINARY = CanonicalType(TypeKind.BINARY)
DATE = CanonicalType(TypeKind.DATE)
TIME = CanonicalType(TypeKind.TIME)
NAIVE_DATETIME = CanonicalType(TypeKind.NAIVE_DATETIME)
UTC_DATETIME = CanonicalType(TypeKind.UTC_DATETIME)
UUID = CanonicalType(TypeKind.UUID)
MAP = CanonicalType(TypeKind.MAP)
UNKNOWN = CanonicalType(TypeKind.UNKNOWN)


class DefaultMarker(StrEnum):
    """Symbolic column defaults computed by the database."""

    AUTO_INCREMENT = "auto_increment"
    CURRENT_TIMESTAMP = "current_timestamp"
    CURRENT_DATE = "current_date"
    CURRENT_TIME = "current_time"


# Parameters such as (255) or (10, 2), wherever they appear in a spelling
_PARAMS_PATTERN = re.compile(r"\s*\([^)]*\)")
_ENUM_PATTERN = re.compile(r"^enum\s*\((.*)\)$", re.IGNORECASE | re.DOTALL)
_ENUM_LABEL_PATTERN = re.compile(r"'((?:[^']|'')*)'")
_CAST_PATTERN = re.compile(r"^'(.*)'::([\w\s\".\[\]]+)$", re.DOTALL)
_INTEGER_PATTERN = re.compile(r"^-?\d+$")
_FLOAT_PATTERN = re.compile(r"^-?\d+\.\d+$")

_BASE_TYPES: dict[str, CanonicalType] = {
    "integer": INTEGER,
    "int": INTEGER,
    "smallint": INTEGER,
    "bigint": INTEGER,
    "real": FLOAT,
    "float": FLOAT,
    "double": FLOAT,
    "double precision": FLOAT,
    "numeric": DECIMAL,
    "decimal": DECIMAL,
    "text": STRING,
    "varchar": STRING,
    "character varying": STRING,
    "char": STRING,
    "character": STRING,
    "boolean": BOOLEAN,
    "bool": BOOLEAN,
    "date": DATE,
    "time": TIME,
    "timestamp": NAIVE_DATETIME,
    "uuid": UUID,
    "json": MAP,
    "jsonb": MAP,
}


def _base_spelling(native_type: str) -> str:
    """Lowercase a spelling and strip its parameters."""
    stripped = _PARAMS_PATTERN.sub("", native_type.strip().lower())
    return " ".join(stripped.split())


def parse_enum_labels(native_type: str) -> list[str] | None:
    """Return the labels of an ``enum('a','b')`` spelling, or None."""
    match = _ENUM_PATTERN.match(native_type.strip())
    if match is None:
        return None
    return [label.replace("''", "'") for label in _ENUM_LABEL_PATTERN.findall(match.group(1))]


def enum_spelling(labels: list[str]) -> str:
    """Spell enum labels the way ``parse_enum_labels`` reads them."""
    quoted = ",".join("'" + label.replace("'", "''") + "'" for label in labels)
    return f"enum({quoted})"


class TypeNormalizer(ABC):
    """Base class for engine specific type normalization."""

    TYPES: dict[str, CanonicalType] = _BASE_TYPES

    def normalize(self, native_type: str, meta: Mapping[str, Any] | None = None) -> CanonicalType:
        """Normalize a native type spelling to a canonical type.

        Args:
            native_type: The type exactly as the catalog reports it.
            meta: Column metadata; ``default`` holds the parsed default.

        Returns:
            The canonical type, ``unknown`` when the spelling is not recognized.
        """
        meta = meta or {}
        spelling = (native_type or "").strip()

        if spelling.endswith("[]"):
            member = self.normalize(spelling[:-2], {})
            return self.refine(CanonicalType.array(member), spelling, meta)

        labels = parse_enum_labels(spelling)
        if labels is not None:
            return CanonicalType.enum(labels)

        canonical = self.TYPES.get(_base_spelling(spelling), UNKNOWN)
        return self.refine(canonical, spelling, meta)

    def refine(self, canonical: CanonicalType, native_type: str, meta: Mapping[str, Any]) -> CanonicalType:
        """Adjust a canonical type using column metadata."""
        return canonical

    @abstractmethod
    def parse_default(self, value: Any) -> Any:
        """Parse a catalog default expression into a Python value."""

    def _parse_common_default(self, trimmed: str) -> Any:
        upper = trimmed.upper()
        if upper == "NULL":
            return None
        if upper.startswith("CURRENT_TIMESTAMP") or trimmed.lower().startswith("now()"):
            return DefaultMarker.CURRENT_TIMESTAMP
        if upper.startswith("CURRENT_DATE"):
            return DefaultMarker.CURRENT_DATE
        if upper.startswith("CURRENT_TIME"):
            return DefaultMarker.CURRENT_TIME
        if _INTEGER_PATTERN.match(trimmed):
            return int(trimmed)
        if _FLOAT_PATTERN.match(trimmed):
            return float(trimmed)
        if trimmed.lower() in ("true", "false"):
            return trimmed.lower() == "true"
        return trimmed


class SqliteTypeNormalizer(TypeNormalizer):
    """Normalizer for SQLite declared types."""

    TYPES = {
        **_BASE_TYPES,
        "tinyint": INTEGER,
        "mediumint": INTEGER,
        "int2": INTEGER,
        "int8": INTEGER,
        "unsigned big int": INTEGER,
        "nvarchar": STRING,
        "nchar": STRING,
        "varying character": STRING,
        "native character": STRING,
        "clob": STRING,
        "string": STRING,
        "blob": BINARY,
        "binary": BINARY,
        "datetime": NAIVE_DATETIME,
        "naive_datetime": NAIVE_DATETIME,
        "utc_datetime": UTC_DATETIME,
        "timestamptz": UTC_DATETIME,
        "text_datetime": NAIVE_DATETIME,
        "binary_id": UUID,
        "map": MAP,
    }

    def refine(self, canonical: CanonicalType, native_type: str, meta: Mapping[str, Any]) -> CanonicalType:
        """Recover types SQLite stores under a different affinity.

        SQLite has no boolean or JSON storage class, so booleans live in
        INTEGER columns and maps or lists in TEXT columns. Their defaults
        give them away.
        """
        default = meta.get("default")
        if canonical == INTEGER and isinstance(default, bool):
            return BOOLEAN
        if canonical in (STRING, MAP):
            if default == {}:
                return MAP
            if default == []:
                return CanonicalType.array(UNKNOWN)
        return canonical

    def parse_default(self, value: Any) -> Any:
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            return value

        trimmed = value.strip()
        if trimmed.startswith("(") and trimmed.endswith(")"):
            trimmed = trimmed[1:-1].strip()
        if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in "'\"":
            quote = trimmed[0]
            literal = trimmed[1:-1].replace(quote * 2, quote)
            if literal == "{}":
                return {}
            if literal == "[]":
                return []
            return literal
        return self._parse_common_default(trimmed)


class PostgresTypeNormalizer(TypeNormalizer):
    """Normalizer for PostgreSQL ``format_type`` spellings."""

    TYPES = {
        **_BASE_TYPES,
        "int2": INTEGER,
        "int4": INTEGER,
        "int8": INTEGER,
        "serial": INTEGER,
        "serial2": INTEGER,
        "serial4": INTEGER,
        "serial8": INTEGER,
        "smallserial": INTEGER,
        "bigserial": INTEGER,
        "float4": FLOAT,
        "float8": FLOAT,
        "money": DECIMAL,
        "bpchar": STRING,
        "name": STRING,
        "citext": STRING,
        "xml": STRING,
        "inet": STRING,
        "cidr": STRING,
        "macaddr": STRING,
        "interval": STRING,
        "point": STRING,
        "line": STRING,
        "lseg": STRING,
        "box": STRING,
        "path": STRING,
        "polygon": STRING,
        "circle": STRING,
        "int4range": STRING,
        "int8range": STRING,
        "numrange": STRING,
        "tsrange": STRING,
        "tstzrange": STRING,
        "daterange": STRING,
        "bytea": BINARY,
        "time without time zone": TIME,
        "time with time zone": TIME,
        "timetz": TIME,
        "timestamp without time zone": NAIVE_DATETIME,
        "timestamp with time zone": UTC_DATETIME,
        "timestamptz": UTC_DATETIME,
    }

    def refine(self, canonical: CanonicalType, native_type: str, meta: Mapping[str, Any]) -> CanonicalType:
        if canonical == MAP and meta.get("default") == []:
            return CanonicalType.array(UNKNOWN)
        return canonical

    def parse_default(self, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, str):
            return value

        trimmed = value.strip()
        if trimmed == "":
            return None
        if trimmed.startswith("nextval("):
            return DefaultMarker.AUTO_INCREMENT

        cast = _CAST_PATTERN.match(trimmed)
        if cast is not None:
            literal = cast.group(1).replace("''", "'")
            if "json" in cast.group(2).lower() and literal in ("{}", "[]"):
                return {} if literal == "{}" else []
            return literal
        if len(trimmed) >= 2 and trimmed.startswith("'") and trimmed.endswith("'"):
            return trimmed[1:-1].replace("''", "'")
        return self._parse_common_default(trimmed)


_NORMALIZERS: dict[Engine, TypeNormalizer] = {
    Engine.SQLITE: SqliteTypeNormalizer(),
    Engine.POSTGRES: PostgresTypeNormalizer(),
}


def get_normalizer(engine: Engine | str) -> TypeNormalizer:
    """Return the normalizer for an engine.

    Raises:
        UnsupportedEngine: If no normalizer is registered for the engine.
    """
    try:
        return _NORMALIZERS[Engine(engine)]
    except (KeyError, ValueError):
        raise UnsupportedEngine(engine) from None


def normalize(engine: Engine | str, native_type: str, meta: Mapping[str, Any] | None = None) -> CanonicalType:
    """Normalize a native type spelling for an engine."""
    return get_normalizer(engine).normalize(native_type, meta)


def parse_default(engine: Engine | str, value: Any) -> Any:
    """Parse a raw catalog default for an engine."""
    return get_normalizer(engine).parse_default(value)
