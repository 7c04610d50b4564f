"""
Connection management for lazyquery using chdb (ClickHouse)

This module centralizes ALL store query execution with unified logging.

A Connection owns exactly one backing chdb connection and a mutex guarding
it. Callers work inside a scoped session:

    with connection.acquire(timeout=5) as session:
        if session.table_exists('bids'):
            result = session.execute('SELECT ...', timeout=5)

The mutex is released on every exit path of the ``with`` block. The one
exception is a query that times out: the in-flight query keeps the mutex
until it finishes, then the backing connection is closed and discarded, so
it is never reused while that query is still running.

Note: chdb keeps at most one open connection per process, and closing an
in-memory connection drops its tables.
"""

import concurrent.futures
import re
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Protocol

import chdb
import pandas as pd

from .config import get_logger
from .exceptions import (
    ColumnNotFoundError,
    ConnectionFailureError,
    ExecutionError,
    LazyQueryError,
    QueryTimeoutError,
    TableNotFoundError,
)
from .result import ResultSet
from .schema import Schema
from .utils import format_table

__all__ = ['Store', 'Connection', 'Session']

OUTPUT_FORMAT = "DataFrame"

# Store error messages -> package exceptions
_TABLE_MISSING = re.compile(
    r"(?:Table|table expression identifier)\s+[`'\"]?([\w.]+?)[`'\"]?\s+(?:does(?:n't| not) exist|in scope)"
)
_COLUMN_MISSING = re.compile(r"(?:Missing columns:|[Uu]nknown (?:expression (?:or function )?)?identifier)\s*[`'\"]([^`'\"]+)[`'\"]")
_CONNECTION_LOST = re.compile(
    r"Connection refused|[Cc]onnection (?:reset|closed|lost)|Broken pipe|NETWORK_ERROR|SOCKET_TIMEOUT|ALL_CONNECTION_TRIES_FAILED"
)


class Store(Protocol):
    """Operations a backing store offers. Connection implements all of them."""

    def execute(self, sql: str, timeout: Optional[float] = None) -> ResultSet:
        ...

    def table_exists(self, table: str) -> bool:
        ...

    def describe_table(self, table: str) -> Schema:
        ...

    def close(self) -> None:
        ...


class Session:
    """
    Scoped access to a Connection, handed out by Connection.acquire().

    Offers the query operations of the Store protocol; closing stays with the Connection.
    """

    def __init__(self, connection: 'Connection'):
        self.connection = connection
        self.handed_off = False

    def execute(self, sql: str, timeout: Optional[float] = None) -> ResultSet:
        return self.connection._execute(self, sql, timeout)

    def table_exists(self, table: str) -> bool:
        return self.connection._table_exists(self, table)

    def describe_table(self, table: str) -> Schema:
        return self.connection._describe_table(self, table)


class Connection:
    """
    Wrapper around chdb connection.

    chdb provides an embedded ClickHouse engine for Python.

    This class centralizes ALL store query execution for:
    - Consistent logging
    - Unified error handling
    - Serialized access to the single backing connection
    """

    def __init__(self, database: str = ":memory:", connector: Callable[..., Any] = None, **kwargs):
        """
        Initialize connection settings. The backing connection opens lazily.

        Args:
            database: Database path (":memory:" for in-memory, or file path)
            connector: Callable returning a backing connection with query()/close();
                defaults to chdb.connect
            **kwargs: Additional connection parameters
        """
        self.database = database
        self.connection_params = kwargs
        self._connector = connector or chdb.connect
        self._conn = None
        self._lock = threading.Lock()
        self._logger = get_logger()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> 'Connection':
        """Establish connection to the store."""
        if self._conn is None:
            try:
                self._conn = self._connector(self.database, **self.connection_params)
            except Exception as e:
                self._logger.error("[chDB] Connect failed: %s", e)
                raise ConnectionFailureError(f"Failed to connect to {self.database}: {e}") from e
            self._logger.debug("[chDB] Connected to database: %s", self.database)
        return self

    @contextmanager
    def acquire(self, timeout: Optional[float] = None) -> Iterator[Session]:
        """
        Acquire exclusive use of the connection.

        Args:
            timeout: Seconds to wait for the connection, None waits forever

        Raises:
            QueryTimeoutError: If the connection is not free within timeout
        """
        if not self._lock.acquire(timeout=-1 if timeout is None else timeout):
            raise QueryTimeoutError(timeout)
        session = Session(self)
        try:
            yield session
        finally:
            if not session.handed_off:
                self._lock.release()

    # ========== Store protocol (each call holds the connection) ==========

    def execute(self, sql: str, timeout: Optional[float] = None) -> ResultSet:
        """
        Execute a SQL query and return results.

        Args:
            sql: SQL query string
            timeout: Seconds to wait for the result, None waits forever

        Returns:
            ResultSet with the rows in store order
        """
        with self.acquire(timeout) as session:
            return session.execute(sql, timeout)

    def table_exists(self, table: str) -> bool:
        with self.acquire() as session:
            return session.table_exists(table)

    def describe_table(self, table: str) -> Schema:
        """Discover a table's schema from the store."""
        with self.acquire() as session:
            return session.describe_table(table)

    # ========== Implementation (caller holds the lock) ==========

    def _execute(self, session: Session, sql: str, timeout: Optional[float]) -> ResultSet:
        data = self._query(session, sql, timeout)
        return ResultSet(data)

    def _table_exists(self, session: Session, table: str) -> bool:
        data = self._query(session, f"EXISTS TABLE {format_table(table)}", None)
        return bool(len(data) and int(data.iloc[0, 0]))

    def _describe_table(self, session: Session, table: str) -> Schema:
        data = self._query(session, f"DESCRIBE TABLE {format_table(table)}", None)
        if len(data) == 0:
            raise TableNotFoundError(table)
        types = list(zip(data['name'], data['type']))
        self._logger.debug("[chDB] Schema of %s: %s", table, types)
        return Schema.from_store_types(types)

    def _query(self, session: Session, sql: str, timeout: Optional[float]) -> pd.DataFrame:
        conn = self.connect()._conn
        self._log_query(sql)

        start_time = time.perf_counter()
        try:
            if timeout is None:
                result = conn.query(sql, OUTPUT_FORMAT)
            else:
                result = self._query_with_timeout(session, conn, sql, timeout)
        except QueryTimeoutError:
            self._logger.error("[chDB] Query timed out after %.3fs; connection will be discarded", timeout)
            raise
        except Exception as e:
            error = self._translate_error(e, sql)
            self._logger.error("[chDB] Query failed: %s", e)
            raise error from e
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        self._log_result(result)
        self._logger.debug("[chDB] Query time: %.2fms", elapsed_ms)
        return result

    def _query_with_timeout(self, session: Session, conn: Any, sql: str, timeout: float) -> pd.DataFrame:
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="lazyquery-query")
        try:
            future = pool.submit(conn.query, sql, OUTPUT_FORMAT)
            try:
                return future.result(timeout=timeout)
            except concurrent.futures.TimeoutError:
                # The query keeps the lock until it finishes, then the connection is dropped
                session.handed_off = True
                future.add_done_callback(lambda _: self._discard(conn))
                raise QueryTimeoutError(timeout, sql)
        finally:
            pool.shutdown(wait=False)

    def _discard(self, conn: Any) -> None:
        try:
            conn.close()
        except Exception as e:
            self._logger.warning("[chDB] Error closing discarded connection: %s", e)
        if self._conn is conn:
            self._conn = None
        self._logger.debug("[chDB] Discarded connection after timed-out query")
        self._lock.release()

    def _translate_error(self, error: Exception, sql: str) -> LazyQueryError:
        """Map a store exception to the package exception hierarchy."""
        if isinstance(error, LazyQueryError):
            return error

        message = str(error)
        if isinstance(error, (ConnectionError, OSError)) or _CONNECTION_LOST.search(message):
            self._reset()
            return ConnectionFailureError(f"Connection to {self.database} failed: {message}")
        if "UNKNOWN_TABLE" in message or "UNKNOWN_DATABASE" in message:
            match = _TABLE_MISSING.search(message)
            return TableNotFoundError(match.group(1) if match else "<unknown>", detail=message)
        if "UNKNOWN_IDENTIFIER" in message or "Missing columns" in message:
            match = _COLUMN_MISSING.search(message)
            return ColumnNotFoundError(match.group(1) if match else "<unknown>", operation="execution")
        return ExecutionError(f"Query execution failed: {message}\nSQL: {sql}")

    def _reset(self) -> None:
        """Drop a broken backing connection so the next query reconnects."""
        if self._conn is not None:
            try:
                self._conn.close()
            except Exception as e:
                self._logger.debug("[chDB] Ignoring error while closing broken connection: %s", e)
            self._conn = None

    # ========== Logging ==========

    def _log_query(self, sql: str, query_type: str = "Query"):
        """Unified query logging."""
        self._logger.debug("=" * 70)
        self._logger.debug("[chDB] %s execution", query_type)
        self._logger.debug("-" * 70)
        self._logger.debug("[chDB] SQL:")
        for line in sql.split('\n'):
            self._logger.debug("  %s", line)
        self._logger.debug("=" * 70)

    def _log_result(self, result):
        """Unified result logging."""
        if isinstance(result, pd.DataFrame):
            self._logger.debug("[chDB] Result: %d rows x %d cols", len(result), len(result.columns))
        elif hasattr(result, '__len__'):
            self._logger.debug("[chDB] Result: %d rows", len(result))
        else:
            self._logger.debug("[chDB] Query completed")

    # ========== Lifecycle ==========

    def close(self):
        """Close the backing connection, waiting for any in-flight query."""
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                finally:
                    self._conn = None
                self._logger.debug("[chDB] Connection closed: %s", self.database)

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def __repr__(self):
        state = "connected" if self.is_connected else "idle"
        return f"Connection(database={self.database!r}, {state})"
