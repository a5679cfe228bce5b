"""Error taxonomy for relinfer.

Adapter and merge errors propagate to callers. Cache errors are absorbed by
the cache layer and only ever logged.
"""


class RelinferError(Exception):
    """Base class for all relinfer errors."""


class UnsupportedEngine(RelinferError):
    """Raised when no introspection adapter is registered for an engine."""

    def __init__(self, engine: object) -> None:
        self.engine = engine
        super().__init__(f"Unsupported database engine: {engine!r}")


class IntrospectionError(RelinferError):
    """Base class for failures reported by an introspection adapter."""


class TableNotFound(IntrospectionError):
    """Raised when the introspected table does not exist."""

    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"Table not found: {table!r}")


class DatabaseConnectionError(IntrospectionError):
    """Raised when the database cannot be reached or the query fails."""


class PermissionDenied(IntrospectionError):
    """Raised when the connection lacks privileges to read the catalog."""


class FieldNameMismatch(RelinferError, ValueError):
    """Raised when merging two fields that do not share a name."""

    def __init__(self, left: str, right: str) -> None:
        self.left = left
        self.right = right
        super().__init__(f"Cannot merge fields with different names: {left!r} and {right!r}")


class SchemaSourceMismatch(RelinferError, ValueError):
    """Raised when merging schemas that describe different tables."""

    def __init__(self, left: str, right: str) -> None:
        self.left = left
        self.right = right
        super().__init__(f"Cannot merge schemas with different sources: {left!r} != {right!r}")


class CacheIOFailure(RelinferError):
    """Raised inside the cache layer when storage or (de)serialization fails."""
