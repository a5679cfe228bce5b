"""Schema inference pipeline.

Ties the pieces together: cache lookup, introspection, compilation, caching
and finally merging with a hand-authored override.
"""

import logging
from typing import TYPE_CHECKING

from relinfer.db.connection import Connection
from relinfer.db.introspection import introspect_table
from relinfer.schema.compiler import compile_schema
from relinfer.schema.merge import merge
from relinfer.schema.model import Schema

if TYPE_CHECKING:
    from relinfer.cache import SchemaCache

logger = logging.getLogger(__name__)


def compile_table(connection: Connection, table: str) -> Schema:
    """Introspect a table and compile it, bypassing any cache.

    Raises:
        IntrospectionError: If the table cannot be introspected.
        UnsupportedEngine: If the connection's engine has no adapter.
    """
    raw = introspect_table(connection, table)
    return compile_schema(raw)


def infer_schema(
    connection: Connection,
    table: str,
    *,
    cache: "SchemaCache | None" = None,
    override: Schema | None = None,
) -> Schema:
    """Infer the schema of a table.

    The cache holds inferred schemas only. The override is merged after the
    cache read, so cached entries never depend on it.

    Args:
        connection: Connection the table lives in.
        table: Table name.
        cache: Schema cache to read from and write to, or None to always
            introspect.
        override: Hand-authored schema merged over the inferred one.

    Returns:
        The inferred schema, merged with the override when one is given.

    Raises:
        IntrospectionError: If the table cannot be introspected.
        UnsupportedEngine: If the connection's engine has no adapter.
        SchemaSourceMismatch: If the override describes another table.
    """
    if cache is not None:
        schema = cache.get_or_infer(connection, table)
    else:
        schema = compile_table(connection, table)

    if override is not None:
        logger.debug("Merging override into %s.%s", connection.name, table)
        schema = merge(schema, override)
    return schema
