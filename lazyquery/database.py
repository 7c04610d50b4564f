"""
Database - entry point tying a Connection, a Translator and an Executor.

Example:
    >>> from lazyquery import Database
    >>> db = Database()                      # in-memory chdb
    >>> db.create_table('bids', {'id': 'Int64', 'bidderID': 'Int64', 'bid': 'Int64'})
    >>> db.insert('bids', [{'id': 1, 'bidderID': 1, 'bid': 10}])
    >>> bids = db.table('bids')             # schema discovered with DESCRIBE TABLE
    >>> bids.filter(bids.bid > 5).materialize().rows
    [{'id': 1, 'bidderID': 1, 'bid': 10}]
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd

from .config import get_logger
from .connection import Connection
from .core import LazyHandle
from .enums import ColumnType
from .exceptions import TableNotFoundError, ValidationError
from .executor import Executor
from .expressions import Literal
from .plan import Scan
from .result import ResultSet
from .schema import Schema
from .translator import SQLTranslator
from .utils import format_identifier, format_table

__all__ = ['Database']

# Store types used when create_table() is given abstract column types
DEFAULT_STORE_TYPES = {
    ColumnType.numeric: "Float64",
    ColumnType.text: "String",
    ColumnType.boolean: "Bool",
}


class Database:
    """
    A backing store plus everything needed to query it lazily.

    Args:
        database: chdb connection string (":memory:", a path, or "file:...?...")
        connector: Replacement for chdb.connect (tests, other stores)
        dialect: SQL dialect for translation (config default if None)
        max_retries: Executor retries for connection failures (config default if None)
        retry_backoff: Executor initial backoff in seconds (config default if None)
        timeout: Default per-call timeout in seconds (config default if None)
    """

    def __init__(
        self,
        database: str = ":memory:",
        connector=None,
        dialect: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        timeout: Optional[float] = None,
        **kwargs,
    ):
        self.connection = Connection(database, connector=connector, **kwargs)
        self.translator = SQLTranslator(dialect)
        self.executor = Executor(
            self.connection, self.translator, max_retries=max_retries, retry_backoff=retry_backoff, timeout=timeout
        )
        self._schemas: Dict[str, Schema] = {}
        self._logger = get_logger()

    @property
    def database(self) -> str:
        return self.connection.database

    # ========== Lazy handles ==========

    def table(self, name: str, schema: Union[Schema, Mapping[str, str], None] = None) -> LazyHandle:
        """
        Lazy handle over a backing table.

        The schema is discovered once per table (DESCRIBE TABLE) and reused;
        pass one explicitly to skip discovery.

        Raises:
            TableNotFoundError: If the schema must be discovered and the table does not exist
        """
        if schema is not None:
            schema = schema if isinstance(schema, Schema) else Schema(schema)
            self._schemas[name] = schema
        elif name not in self._schemas:
            self._schemas[name] = self._discover(name)
        return LazyHandle(Scan(name, self._schemas[name]), self.translator, self.executor)

    def _discover(self, name: str) -> Schema:
        with self.connection.acquire() as session:
            if not session.table_exists(name):
                raise TableNotFoundError(name)
            schema = session.describe_table(name)
        self._logger.debug("[Database] Discovered schema for %s: %s", name, schema)
        return schema

    def refresh_schema(self, name: str) -> Schema:
        """Forget the cached schema of a table and discover it again."""
        self._schemas.pop(name, None)
        self._schemas[name] = self._discover(name)
        return self._schemas[name]

    # ========== Table setup ==========

    def create_table(
        self,
        name: str,
        columns: Mapping[str, Union[str, ColumnType]],
        engine: str = "Memory",
        drop_if_exists: bool = False,
    ) -> LazyHandle:
        """
        Create a table in the store.

        Args:
            name: Table identifier
            columns: Column name -> store type ('Int64', 'String', ...) or
                     abstract type ('numeric', 'text', 'boolean')
            engine: ClickHouse table engine (default: Memory for in-memory)
            drop_if_exists: If True, drop the table first if it exists (useful for tests)

        Returns:
            Lazy handle over the new table
        """
        if not columns:
            raise ValidationError("create_table requires at least one column")

        store_types = {}
        for column, col_type in columns.items():
            if isinstance(col_type, ColumnType) or str(col_type).lower() in ColumnType.__members__:
                col_type = DEFAULT_STORE_TYPES[ColumnType(str(col_type).lower())]
            store_types[column] = col_type
        schema = Schema.from_store_types(store_types)

        if drop_if_exists:
            self.drop_table(name)

        columns_sql = ", ".join(f"{format_identifier(c)} {t}" for c, t in store_types.items())
        self.connection.execute(f"CREATE TABLE IF NOT EXISTS {format_table(name)} ({columns_sql}) ENGINE = {engine}")
        self._schemas[name] = schema
        return LazyHandle(Scan(name, schema), self.translator, self.executor)

    def insert(self, name: str, rows: Union[Iterable[Mapping[str, Any]], pd.DataFrame]) -> int:
        """
        Insert rows into a table (executes immediately).

        Args:
            name: Table identifier
            rows: List of dicts with column_name -> value, or a DataFrame

        Returns:
            Number of rows inserted
        """
        if isinstance(rows, pd.DataFrame):
            rows = rows.to_dict('records')
        rows = list(rows)
        if not rows:
            return 0

        # Get column names from first row
        columns = list(rows[0].keys())
        columns_sql = ", ".join(format_identifier(c) for c in columns)

        values_list = []
        for row in rows:
            values = [Literal(row.get(c)).to_sql() for c in columns]
            values_list.append(f"({', '.join(values)})")

        sql = f"INSERT INTO {format_table(name)} ({columns_sql}) VALUES {', '.join(values_list)}"
        self.connection.execute(sql)
        self._logger.debug("[Database] Inserted %d rows into %s", len(rows), name)
        return len(rows)

    def drop_table(self, name: str, if_exists: bool = True) -> None:
        """Drop a table and forget its cached schema."""
        keyword = "DROP TABLE IF EXISTS" if if_exists else "DROP TABLE"
        self.connection.execute(f"{keyword} {format_table(name)}")
        self._schemas.pop(name, None)

    def tables(self) -> List[str]:
        """Names of the tables in the current database."""
        result = self.connection.execute("SHOW TABLES")
        return sorted(str(v) for v in result.column(result.columns[0])) if result.columns else []

    def execute(self, sql: str, timeout: Optional[float] = None) -> ResultSet:
        """Run raw SQL on the connection (no plan, no retries)."""
        return self.connection.execute(sql, timeout)

    # ========== Lifecycle ==========

    def close(self) -> None:
        """Close the connection. In-memory tables are gone afterwards."""
        self.connection.close()

    def __enter__(self) -> 'Database':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        return f"Database({self.database!r}, tables={sorted(self._schemas)})"
