"""
Exception classes for lazyquery
"""

__all__ = [
    'LazyQueryError',
    'SchemaError',
    'ValidationError',
    'ColumnNotFoundError',
    'TranslationError',
    'ExecutionError',
    'TableNotFoundError',
    'ConnectionFailureError',
    'QueryTimeoutError',
]


class LazyQueryError(Exception):
    """Base exception for all lazyquery errors."""

    pass


class SchemaError(LazyQueryError):
    """Raised when a schema cannot be built or a column type is unknown."""

    pass


class ValidationError(LazyQueryError):
    """Raised when plan arguments are invalid (bad limit, unknown join kind, ...)."""

    pass


class ColumnNotFoundError(LazyQueryError):
    """Raised when a referenced column does not exist at that point of the plan.

    Provides the column name and optionally lists available columns.

    Example:
        raise ColumnNotFoundError(
            column="nonexistent_col",
            available_columns=["a", "b", "c"],
            operation="Filter",
        )
    """

    def __init__(self, column: str, available_columns: list = None, operation: str = None):
        self.column = column
        self.available_columns = available_columns
        self.operation = operation

        msg = f"Column '{column}' not found"
        if operation:
            msg += f" in {operation}"
        if available_columns:
            if len(available_columns) <= 10:
                cols_str = ", ".join(repr(c) for c in available_columns)
                msg += f". Available columns: [{cols_str}]"
            else:
                cols_str = ", ".join(repr(c) for c in available_columns[:10])
                msg += f". Available columns (first 10 of {len(available_columns)}): [{cols_str}, ...]"
        super().__init__(msg)


class TranslationError(LazyQueryError):
    """Raised when a plan cannot be expressed in the target SQL dialect.

    Example:
        raise TranslationError(
            operation="Sort",
            reason="ORDER BY column 'x' is not in the final projection",
        )
    """

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Cannot translate '{operation}': {reason}")


class ExecutionError(LazyQueryError):
    """Raised when query execution fails."""

    pass


class TableNotFoundError(ExecutionError):
    """Raised when a backing-table identifier does not resolve in the store."""

    def __init__(self, table: str, detail: str = None):
        self.table = table
        msg = f"Table '{table}' not found"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ConnectionFailureError(ExecutionError):
    """Raised when the store cannot be reached. Transient, retried by the executor."""

    pass


class QueryTimeoutError(ExecutionError):
    """Raised when a blocking call exceeds its timeout.

    The connection the query ran on is discarded, not reused.
    """

    def __init__(self, timeout: float, sql: str = None):
        self.timeout = timeout
        self.sql = sql
        msg = f"Query did not finish within {timeout}s"
        if sql:
            msg += f"\nSQL: {sql}"
        super().__init__(msg)
