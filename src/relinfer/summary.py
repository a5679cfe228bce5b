"""Human-readable summaries of normalized schemas."""

from enum import StrEnum
from typing import Any

from relinfer.schema.model import Schema


def _format_default(value: Any) -> str:
    # Markers print as their name, literals as Python literals
    if isinstance(value, StrEnum):
        return value.value
    return repr(value)


def format_schema(schema: Schema) -> str:
    """Describe one schema: fields, keys and indices.

    Returns:
        Formatted description. Example:
            posts
              id: integer (primary key)
              user_id: integer, not null -> users.id as user
              title: string, default 'untitled'
              index posts_title_index (title) unique
    """
    lines = [schema.source]

    if not schema.fields:
        lines.append("  (no fields)")

    for f in schema.fields:
        parts = [str(f.type)]
        if not f.nullable:
            parts.append("not null")
        if f.default is not None:
            parts.append(f"default {_format_default(f.default)}")
        line = f"  {f.name}: {', '.join(parts)}"
        if schema.primary_key_field(f.name):
            line += " (primary key)"
        fk = schema.get_foreign_key(f.name)
        if fk is not None:
            line += f" -> {fk.referenced_table}.{fk.referenced_field} as {fk.association_name}"
        lines.append(line)

    for index in schema.indices:
        line = f"  index {index.name} ({', '.join(index.field_names())})"
        if index.unique:
            line += " unique"
        if index.where_clause:
            line += f" where {index.where_clause}"
        lines.append(line)

    return "\n".join(lines)


def _field_label(schema: Schema, name: str) -> str:
    if schema.primary_key_field(name):
        return f"{name} (pk)"
    fk = schema.get_foreign_key(name)
    if fk is not None:
        return f"{name} (fk {fk.referenced_table})"
    return name


def format_schema_summary(schemas: list[Schema]) -> str:
    """Describe many schemas, one line per table with key fields marked.

    Returns:
        Formatted summary, tables sorted by name. Example:
            Tables:
            - posts: id (pk), user_id (fk users), title
            - users: id (pk), email
    """
    if not schemas:
        return "Tables:\n(none)"

    lines = ["Tables:"]
    for schema in sorted(schemas, key=lambda s: s.source):
        labels = [_field_label(schema, f.name) for f in schema.fields]
        lines.append(f"- {schema.source}: {', '.join(labels) or '(no fields)'}")
    return "\n".join(lines)
