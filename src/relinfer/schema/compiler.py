"""Schema compiler: raw tables to normalized schemas.

The compiler is a visitor over the raw table model. A table is visited in a
fixed order, primary key, then columns, then foreign keys, then indices,
because each step relies on what the previous ones classified.

Classification comes from catalog metadata only. A column named ``id`` is a
primary key field only if the catalog says so, and ``*_id`` columns are
foreign key fields only if a foreign key constraint covers them.
"""

from dataclasses import dataclass, field

from relinfer.db.raw import RawColumn, RawForeignKey, RawIndex, RawNode, RawPrimaryKey, RawTable
from relinfer.schema.field import Field
from relinfer.schema.indices import Index, Indices
from relinfer.schema.inflection import REFERENCE_SUFFIX, association_name
from relinfer.schema.keys import ForeignKey, PrimaryKey
from relinfer.schema.model import Schema
from relinfer.types import TypeNormalizer, get_normalizer


@dataclass
class CompileContext:
    """State threaded through one table's compilation."""

    table: RawTable
    normalizer: TypeNormalizer
    primary_key_names: list[str] = field(default_factory=list)
    foreign_key_names: set[str] = field(default_factory=set)
    fields: dict[str, Field] = field(default_factory=dict)


class SchemaCompiler:
    """Visitor turning a RawTable into a Schema.

    The output is a pure function of the input table: no clock, randomness
    or I/O, and no references back into the raw model.
    """

    def __init__(self, reference_suffix: str = REFERENCE_SUFFIX) -> None:
        self.reference_suffix = reference_suffix

    def compile(self, table: RawTable) -> Schema:
        """Compile a raw table into a normalized schema.

        Raises:
            UnsupportedEngine: If no type normalizer exists for the table's engine.
        """
        ctx = CompileContext(table=table, normalizer=get_normalizer(table.engine))
        return self.visit(table, ctx)

    def visit(self, node: RawNode, ctx: CompileContext):
        """Dispatch a raw node to its visit method."""
        if isinstance(node, RawTable):
            return self.visit_table(node, ctx)
        if isinstance(node, RawPrimaryKey):
            return self.visit_primary_key(node, ctx)
        if isinstance(node, RawColumn):
            return self.visit_column(node, ctx)
        if isinstance(node, RawForeignKey):
            return self.visit_foreign_key(node, ctx)
        if isinstance(node, RawIndex):
            return self.visit_index(node, ctx)
        raise TypeError(f"Unknown raw node type: {type(node)}")

    def visit_table(self, table: RawTable, ctx: CompileContext) -> Schema:
        self.visit(table.primary_key, ctx)
        ctx.foreign_key_names = table.foreign_key_column_names()

        fields = [self.visit(column, ctx) for column in table.columns]
        ctx.fields = {f.name: f for f in fields}

        primary_key = PrimaryKey(
            fields=[ctx.fields[name] for name in ctx.primary_key_names if name in ctx.fields]
        )
        foreign_keys = [
            fk for fk in (self.visit(raw_fk, ctx) for raw_fk in table.foreign_keys) if fk is not None
        ]
        indices = Indices([self.visit(raw_index, ctx) for raw_index in table.indices])

        return Schema(
            source=table.name,
            primary_key=primary_key,
            foreign_keys=foreign_keys,
            fields=fields,
            indices=indices,
        )

    def visit_primary_key(self, primary_key: RawPrimaryKey, ctx: CompileContext) -> list[str]:
        ctx.primary_key_names = primary_key.column_names()
        return ctx.primary_key_names

    def visit_column(self, column: RawColumn, ctx: CompileContext) -> Field:
        """Build a field, classifying it against the key column sets."""
        is_primary_key = column.name in ctx.primary_key_names
        meta = {
            "source": column.name,
            "native_type": column.native_type,
            "nullable": column.nullable,
            "default": ctx.normalizer.parse_default(column.default),
            "check_constraints": list(column.check_constraints),
            "primary_key": is_primary_key,
            "foreign_key": column.name in ctx.foreign_key_names,
        }
        if is_primary_key:
            meta["primary_key_field_count"] = len(ctx.primary_key_names)

        canonical = ctx.normalizer.normalize(column.native_type, meta)
        return Field(name=column.name, type=canonical, meta=meta)

    def visit_foreign_key(self, foreign_key: RawForeignKey, ctx: CompileContext) -> ForeignKey | None:
        """Represent a possibly composite key by its first column pair."""
        if not foreign_key.columns or foreign_key.columns[0] not in ctx.fields:
            return None
        name = foreign_key.columns[0]
        referenced = foreign_key.referenced_columns[0] if foreign_key.referenced_columns else "id"
        return ForeignKey(
            field=name,
            referenced_table=foreign_key.referenced_table,
            referenced_field=referenced,
            association_name=association_name(name, foreign_key.referenced_table, self.reference_suffix),
        )

    def visit_index(self, index: RawIndex, ctx: CompileContext) -> Index:
        """Resolve index columns to fields, keeping index column order."""
        fields = [ctx.fields[name] for name in index.columns if name in ctx.fields]
        return Index(
            name=index.name,
            fields=fields,
            unique=index.unique,
            type=index.type,
            where_clause=index.where_clause,
        )


def compile_schema(table: RawTable) -> Schema:
    """Compile a raw table with the default compiler."""
    return SchemaCompiler().compile(table)
