"""SQLite introspection adapter.

Reads table metadata with PRAGMA statements. Check constraints are not
exposed by any PRAGMA, so they are pulled out of the CREATE TABLE statement
stored in sqlite_master.
"""

import re
from itertools import groupby

from relinfer.db.connection import QueryExecutor
from relinfer.db.introspection import MIGRATIONS_TABLE, Introspector
from relinfer.db.raw import Engine, ForeignKeyAction, IndexType, RawColumn, RawForeignKey, RawIndex, RawPrimaryKey

_CHECK_PATTERN = re.compile(r"\bCHECK\s*\(", re.IGNORECASE)
_WHERE_PATTERN = re.compile(r"\bWHERE\b(.*)$", re.IGNORECASE | re.DOTALL)


def _quote(name: str) -> str:
    # Double quotes inside a name must be escaped by doubling them
    escaped = name.replace('"', '""')
    return f'"{escaped}"'


def extract_check_constraints(sql: str) -> list[str]:
    """Return the expressions of every CHECK clause in a CREATE statement.

    Parentheses are balanced, so nested calls like ``CHECK (length(x) > 0)``
    come out whole. String literals are not parsed.
    """
    constraints = []
    for match in _CHECK_PATTERN.finditer(sql):
        depth = 1
        start = pos = match.end()
        while pos < len(sql) and depth > 0:
            if sql[pos] == "(":
                depth += 1
            elif sql[pos] == ")":
                depth -= 1
            pos += 1
        if depth == 0:
            constraints.append(sql[start : pos - 1].strip())
    return constraints


class SqliteIntrospector(Introspector):
    """Introspector for SQLite databases."""

    engine = Engine.SQLITE

    LIST_TABLES_QUERY = f"""
        SELECT name FROM sqlite_master
        WHERE type = 'table'
        AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'
        AND name != '{MIGRATIONS_TABLE}'
        ORDER BY name
    """

    TABLE_SQL_QUERY = "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ? COLLATE NOCASE"

    INDEX_SQL_QUERY = "SELECT sql FROM sqlite_master WHERE type = 'index' AND name = ? COLLATE NOCASE"

    def list_tables(self, executor: QueryExecutor) -> list[str]:
        return [row[0] for row in executor.query(self.LIST_TABLES_QUERY).rows]

    def table_exists(self, executor: QueryExecutor, table: str) -> bool:
        return len(executor.query(self.TABLE_SQL_QUERY, (table,))) > 0

    def introspect_columns(self, executor: QueryExecutor, table: str) -> list[RawColumn]:
        """Read columns with PRAGMA table_info.

        A column's check constraints are the table's CHECK clauses whose text
        contains the column name. This is a textual heuristic: a constraint on
        ``user_id`` also matches a column named ``id``.
        """
        result = executor.query(self.TABLE_SQL_QUERY, (table,))
        table_sql = result.rows[0][0] if result.rows and result.rows[0][0] else ""
        constraints = extract_check_constraints(table_sql)

        columns = []
        # PRAGMA table_info returns: (cid, name, type, notnull, dflt_value, pk)
        for _cid, name, native_type, notnull, default, _pk in executor.query(
            f"PRAGMA table_info({_quote(table)})"
        ).rows:
            columns.append(
                RawColumn(
                    name=name,
                    native_type=native_type or "",
                    nullable=notnull == 0,
                    default=default,
                    check_constraints=[c for c in constraints if name in c],
                )
            )
        return columns

    def introspect_primary_key(self, executor: QueryExecutor, table: str, columns: list[RawColumn]) -> RawPrimaryKey:
        # pk is 0 outside the key, else the 1-based position within it
        positions = {
            row[1]: row[5] for row in executor.query(f"PRAGMA table_info({_quote(table)})").rows if row[5] > 0
        }
        key_columns = sorted((c for c in columns if c.name in positions), key=lambda c: positions[c.name])
        return RawPrimaryKey(columns=key_columns)

    def introspect_foreign_keys(self, executor: QueryExecutor, table: str) -> list[RawForeignKey]:
        """Read foreign keys with PRAGMA foreign_key_list.

        The PRAGMA returns one row per column; rows sharing an id belong to
        the same (possibly composite) constraint. SQLite does not name
        foreign key constraints.
        """
        # PRAGMA foreign_key_list returns: (id, seq, table, from, to, on_update, on_delete, match)
        rows = sorted(executor.query(f"PRAGMA foreign_key_list({_quote(table)})").rows, key=lambda r: (r[0], r[1]))

        foreign_keys = []
        for _fk_id, group in groupby(rows, key=lambda r: r[0]):
            fk_rows = list(group)
            _, _, referenced_table, _, _, on_update, on_delete, _ = fk_rows[0]
            referenced_columns = [row[4] for row in fk_rows]
            if any(column is None for column in referenced_columns):
                # REFERENCES without a column list points at the parent's primary key
                referenced_columns = self._primary_key_names(executor, referenced_table) or referenced_columns
            foreign_keys.append(
                RawForeignKey(
                    columns=[row[3] for row in fk_rows],
                    referenced_table=referenced_table,
                    referenced_columns=[c if c is not None else "id" for c in referenced_columns],
                    on_delete=ForeignKeyAction.parse(on_delete),
                    on_update=ForeignKeyAction.parse(on_update),
                )
            )
        return foreign_keys

    def introspect_indices(self, executor: QueryExecutor, table: str) -> list[RawIndex]:
        """Read indices with PRAGMA index_list and PRAGMA index_info.

        The implicit index backing the primary key is skipped, and so are
        expression columns, which have no name.
        """
        indices = []
        # PRAGMA index_list returns: (seq, name, unique, origin, partial)
        rows = sorted(executor.query(f"PRAGMA index_list({_quote(table)})").rows, key=lambda r: r[1])
        for _seq, name, unique, origin, partial in rows:
            if origin == "pk":
                continue
            # PRAGMA index_info returns: (seqno, cid, name)
            info = sorted(executor.query(f"PRAGMA index_info({_quote(name)})").rows, key=lambda r: r[0])
            indices.append(
                RawIndex(
                    name=name,
                    columns=[row[2] for row in info if row[2] is not None],
                    unique=unique == 1,
                    type=IndexType.BTREE,
                    where_clause=self._where_clause(executor, name) if partial else None,
                )
            )
        return indices

    def _primary_key_names(self, executor: QueryExecutor, table: str) -> list[str]:
        rows = executor.query(f"PRAGMA table_info({_quote(table)})").rows
        return [row[1] for row in sorted((r for r in rows if r[5] > 0), key=lambda r: r[5])]

    def _where_clause(self, executor: QueryExecutor, index: str) -> str | None:
        result = executor.query(self.INDEX_SQL_QUERY, (index,))
        if not result.rows or not result.rows[0][0]:
            return None
        match = _WHERE_PATTERN.search(result.rows[0][0])
        return match.group(1).strip() if match else None
