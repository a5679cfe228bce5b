"""PostgreSQL introspection adapter.

Reads table metadata from pg_catalog. Types are spelled with format_type, so
array columns come back as ``element[]``. Enum columns are spelled
``enum('a','b')`` with their labels in declared order.
"""

from collections import defaultdict
from itertools import groupby

from relinfer.db.connection import QueryExecutor
from relinfer.db.introspection import MIGRATIONS_TABLE, Introspector
from relinfer.db.raw import Engine, ForeignKeyAction, IndexType, RawColumn, RawForeignKey, RawIndex, RawPrimaryKey
from relinfer.types import enum_spelling

# pg_constraint.confupdtype / confdeltype codes
_ACTION_CODES = {
    "a": ForeignKeyAction.RESTRICT,
    "r": ForeignKeyAction.RESTRICT,
    "c": ForeignKeyAction.CASCADE,
    "n": ForeignKeyAction.SET_NULL,
    "d": ForeignKeyAction.SET_DEFAULT,
}


class PostgresIntrospector(Introspector):
    """Introspector for PostgreSQL databases, scoped to one namespace."""

    engine = Engine.POSTGRES

    LIST_TABLES_QUERY = f"""
        SELECT c.relname
        FROM pg_class c
        JOIN pg_namespace n ON n.oid = c.relnamespace
        WHERE n.nspname = %s
        AND c.relkind IN ('r', 'p')
        AND c.relname != '{MIGRATIONS_TABLE}'
        ORDER BY c.relname
    """

    TABLE_EXISTS_QUERY = """
        SELECT 1
        FROM pg_class c
        JOIN pg_namespace n ON n.oid = c.relnamespace
        WHERE c.relname = %s AND n.nspname = %s
        AND c.relkind IN ('r', 'p')
    """

    COLUMNS_QUERY = """
        SELECT
            a.attname,
            format_type(a.atttypid, a.atttypmod),
            a.attnotnull,
            pg_get_expr(ad.adbin, ad.adrelid),
            (
                SELECT array_agg(e.enumlabel::text ORDER BY e.enumsortorder)
                FROM pg_enum e
                WHERE e.enumtypid = CASE WHEN t.typcategory = 'A' THEN t.typelem ELSE t.oid END
            ),
            t.typcategory = 'A'
        FROM pg_attribute a
        JOIN pg_class c ON c.oid = a.attrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        JOIN pg_type t ON t.oid = a.atttypid
        LEFT JOIN pg_attrdef ad ON ad.adrelid = a.attrelid AND ad.adnum = a.attnum
        WHERE c.relname = %s AND n.nspname = %s
        AND a.attnum > 0 AND NOT a.attisdropped
        ORDER BY a.attnum
    """

    CHECK_CONSTRAINTS_QUERY = """
        SELECT
            pg_get_constraintdef(con.oid),
            array_agg(att.attname::text)
        FROM pg_constraint con
        JOIN pg_class c ON c.oid = con.conrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        LEFT JOIN pg_attribute att ON att.attrelid = con.conrelid AND att.attnum = ANY(con.conkey)
        WHERE con.contype = 'c' AND c.relname = %s AND n.nspname = %s
        GROUP BY con.oid, con.conname
        ORDER BY con.conname
    """

    PRIMARY_KEY_QUERY = """
        SELECT a.attname
        FROM pg_index i
        JOIN pg_class c ON c.oid = i.indrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        CROSS JOIN LATERAL unnest(i.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord)
        JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = k.attnum
        WHERE c.relname = %s AND n.nspname = %s AND i.indisprimary
        ORDER BY k.ord
    """

    FOREIGN_KEYS_QUERY = """
        SELECT
            con.conname,
            att.attname,
            ref.relname,
            ratt.attname,
            con.confupdtype,
            con.confdeltype
        FROM pg_constraint con
        JOIN pg_class c ON c.oid = con.conrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        JOIN pg_class ref ON ref.oid = con.confrelid
        CROSS JOIN LATERAL unnest(con.conkey, con.confkey) WITH ORDINALITY AS k(attnum, refnum, ord)
        JOIN pg_attribute att ON att.attrelid = con.conrelid AND att.attnum = k.attnum
        JOIN pg_attribute ratt ON ratt.attrelid = con.confrelid AND ratt.attnum = k.refnum
        WHERE con.contype = 'f' AND c.relname = %s AND n.nspname = %s
        ORDER BY con.conname, k.ord
    """

    INDICES_QUERY = """
        SELECT
            i.relname,
            array_agg(a.attname::text ORDER BY k.ord) FILTER (WHERE a.attname IS NOT NULL),
            ix.indisunique,
            am.amname,
            pg_get_expr(ix.indpred, ix.indrelid)
        FROM pg_index ix
        JOIN pg_class t ON t.oid = ix.indrelid
        JOIN pg_namespace n ON n.oid = t.relnamespace
        JOIN pg_class i ON i.oid = ix.indexrelid
        JOIN pg_am am ON am.oid = i.relam
        CROSS JOIN LATERAL unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord)
        LEFT JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
        WHERE t.relname = %s AND n.nspname = %s AND NOT ix.indisprimary
        GROUP BY i.relname, ix.indisunique, am.amname, ix.indpred, ix.indrelid
        ORDER BY i.relname
    """

    def __init__(self, schema: str = "public") -> None:
        self.schema = schema

    def list_tables(self, executor: QueryExecutor) -> list[str]:
        return [row[0] for row in executor.query(self.LIST_TABLES_QUERY, (self.schema,)).rows]

    def table_exists(self, executor: QueryExecutor, table: str) -> bool:
        return len(executor.query(self.TABLE_EXISTS_QUERY, (table, self.schema))) > 0

    def introspect_columns(self, executor: QueryExecutor, table: str) -> list[RawColumn]:
        """Read columns, their enum labels and their check constraints.

        A check constraint is attached to every column its definition
        references, as recorded in pg_constraint.conkey.
        """
        checks: dict[str, list[str]] = defaultdict(list)
        for definition, column_names in executor.query(self.CHECK_CONSTRAINTS_QUERY, (table, self.schema)).rows:
            for name in column_names or []:
                if name is not None:
                    checks[name].append(definition)

        columns = []
        for name, native_type, notnull, default, enum_labels, is_array in executor.query(
            self.COLUMNS_QUERY, (table, self.schema)
        ).rows:
            if enum_labels:
                native_type = enum_spelling(enum_labels) + ("[]" if is_array else "")
            columns.append(
                RawColumn(
                    name=name,
                    native_type=native_type,
                    nullable=not notnull,
                    default=default,
                    check_constraints=checks.get(name, []),
                )
            )
        return columns

    def introspect_primary_key(self, executor: QueryExecutor, table: str, columns: list[RawColumn]) -> RawPrimaryKey:
        by_name = {column.name: column for column in columns}
        names = [row[0] for row in executor.query(self.PRIMARY_KEY_QUERY, (table, self.schema)).rows]
        return RawPrimaryKey(columns=[by_name[name] for name in names if name in by_name])

    def introspect_foreign_keys(self, executor: QueryExecutor, table: str) -> list[RawForeignKey]:
        """Read foreign keys; rows of one constraint are grouped into one record."""
        rows = executor.query(self.FOREIGN_KEYS_QUERY, (table, self.schema)).rows

        foreign_keys = []
        for constraint_name, group in groupby(rows, key=lambda r: r[0]):
            fk_rows = list(group)
            _, _, referenced_table, _, update_code, delete_code = fk_rows[0]
            foreign_keys.append(
                RawForeignKey(
                    name=constraint_name,
                    columns=[row[1] for row in fk_rows],
                    referenced_table=referenced_table,
                    referenced_columns=[row[3] for row in fk_rows],
                    on_delete=_ACTION_CODES.get(delete_code, ForeignKeyAction.NONE),
                    on_update=_ACTION_CODES.get(update_code, ForeignKeyAction.NONE),
                )
            )
        return foreign_keys

    def introspect_indices(self, executor: QueryExecutor, table: str) -> list[RawIndex]:
        return [
            RawIndex(
                name=name,
                columns=list(column_names or []),
                unique=bool(unique),
                type=IndexType.parse(access_method),
                where_clause=where_clause,
            )
            for name, column_names, unique, access_method, where_clause in executor.query(
                self.INDICES_QUERY, (table, self.schema)
            ).rows
        ]
