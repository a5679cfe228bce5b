"""Merging inferred schemas with hand-authored overrides."""

from dataclasses import replace
from typing import Any

from relinfer.errors import FieldNameMismatch, SchemaSourceMismatch
from relinfer.schema.field import Field
from relinfer.schema.indices import Indices
from relinfer.schema.keys import PrimaryKey
from relinfer.schema.model import Schema


def merge_fields(inferred: Field, override: Field) -> Field:
    """Merge two definitions of the same field.

    The override's type wins, and so does every override meta value that is
    not None. Meta keys only the inferred side has are kept.

    When the override retypes the field to an enum and does not supply a
    default itself, a raw string default carried over from the inferred side
    is dropped.

    Raises:
        FieldNameMismatch: If the fields have different names.
    """
    if not inferred.same_name(override):
        raise FieldNameMismatch(inferred.name, override.name)

    meta: dict[str, Any] = dict(inferred.meta)
    meta.update({key: value for key, value in override.meta.items() if value is not None})

    retyped_to_enum = override.type.is_enum and not inferred.type.is_enum
    if retyped_to_enum and override.meta.get("default") is None and isinstance(meta.get("default"), str):
        meta["default"] = None

    return Field(name=inferred.name, type=override.type, meta=meta)


def merge(inferred: Schema, override: Schema) -> Schema:
    """Merge an inferred schema with an override schema.

    Fields are merged by name: inferred fields keep their position, fields
    only the override defines are appended. Primary key, foreign keys and
    indices are taken from the override when it defines any, otherwise from
    the inferred schema. Key and index field references are resolved against
    the merged fields.

    Raises:
        SchemaSourceMismatch: If the schemas describe different tables.
    """
    if inferred.source != override.source:
        raise SchemaSourceMismatch(inferred.source, override.source)

    fields = []
    for f in inferred.fields:
        other = override.find_field(f.name)
        fields.append(merge_fields(f, other) if other is not None else f)
    fields.extend(f for f in override.fields if f.name not in inferred)
    by_name = {f.name: f for f in fields}

    primary_key = override.primary_key if override.primary_key.present else inferred.primary_key
    foreign_keys = override.foreign_keys if override.foreign_keys else inferred.foreign_keys
    indices = override.indices if not override.indices.empty() else inferred.indices

    return Schema(
        source=inferred.source,
        primary_key=PrimaryKey(fields=_resolve(primary_key.fields, by_name)),
        foreign_keys=list(foreign_keys),
        fields=fields,
        indices=Indices([replace(index, fields=_resolve(index.fields, by_name)) for index in indices]),
    )


def _resolve(fields: list[Field], by_name: dict[str, Field]) -> list[Field]:
    return [by_name.get(f.name, f) for f in fields]

