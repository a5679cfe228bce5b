"""JSON serialization of schemas.

JSON alone cannot tell a symbol from a string, a tuple from a list, or say
which record a nested object was. Every such value is written as a tagged
envelope, ``{"kind": ..., "value": ...}``, so loading is unambiguous:

- ``struct``: a schema record, with its class name under ``type``;
- ``symbol``: an enum member, with its enum class name under ``type``;
- ``map``: a dict;
- ``tuple``: a tuple.

Lists are written as JSON arrays and other scalars as themselves. Since every
dict is enveloped, a JSON object is always an envelope on the way back.
"""

import dataclasses
import json
from enum import StrEnum
from typing import Any, TypeVar

from relinfer.db.raw import Engine, ForeignKeyAction, IndexType
from relinfer.schema.field import Field
from relinfer.schema.indices import Index, Indices
from relinfer.schema.keys import ForeignKey, PrimaryKey
from relinfer.schema.model import Schema
from relinfer.types import CanonicalType, DefaultMarker, TypeKind

_STRUCTS: dict[str, type] = {
    cls.__name__: cls for cls in (Schema, Field, PrimaryKey, ForeignKey, Index, Indices, CanonicalType)
}
_SYMBOLS: dict[str, type[StrEnum]] = {
    cls.__name__: cls for cls in (DefaultMarker, TypeKind, IndexType, ForeignKeyAction, Engine)
}


def dump(value: Any) -> Any:
    """Convert a value to its JSON-ready tagged form.

    Raises:
        TypeError: If the value has no serialized form.
    """
    # Enum members are str instances too, so they are matched first
    if isinstance(value, StrEnum):
        name = type(value).__name__
        if name not in _SYMBOLS:
            raise TypeError(f"Unknown symbol type: {type(value)}")
        return {"kind": "symbol", "type": name, "value": value.value}
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, list):
        return [dump(item) for item in value]
    if isinstance(value, tuple):
        return {"kind": "tuple", "value": [dump(item) for item in value]}
    if isinstance(value, dict):
        return {"kind": "map", "value": {str(key): dump(item) for key, item in value.items()}}
    if dataclasses.is_dataclass(value) and type(value).__name__ in _STRUCTS:
        attributes = {f.name: dump(getattr(value, f.name)) for f in dataclasses.fields(value)}
        return {"kind": "struct", "type": type(value).__name__, "value": attributes}
    raise TypeError(f"Cannot serialize value of type: {type(value)}")


def load(data: Any) -> Any:
    """Rebuild a value from its tagged form.

    Raises:
        TypeError: If an envelope has an unknown kind or type.
    """
    if isinstance(data, list):
        return [load(item) for item in data]
    if not isinstance(data, dict):
        return data

    kind = data.get("kind")
    value = data.get("value")
    if kind == "symbol":
        return _lookup(_SYMBOLS, data.get("type"))(value)
    if kind == "tuple":
        return tuple(load(item) for item in value)
    if kind == "map":
        return {key: load(item) for key, item in value.items()}
    if kind == "struct":
        cls = _lookup(_STRUCTS, data.get("type"))
        return cls(**{key: load(item) for key, item in value.items()})
    raise TypeError(f"Unknown envelope kind: {kind!r}")


T = TypeVar("T")


def _lookup(registry: dict[str, T], name: Any) -> T:
    try:
        return registry[name]
    except KeyError:
        raise TypeError(f"Unknown serialized type: {name!r}") from None


def dumps(schema: Schema) -> str:
    """Serialize a schema to JSON text."""
    return json.dumps(dump(schema), sort_keys=True)


def loads(text: str) -> Schema:
    """Deserialize a schema from JSON text.

    Raises:
        TypeError: If the text does not describe a schema.
        json.JSONDecodeError: If the text is not JSON.
    """
    schema = load(json.loads(text))
    if not isinstance(schema, Schema):
        raise TypeError(f"Expected a serialized Schema, got: {type(schema)}")
    return schema
