"""
Query executor for lazyquery.

The Executor is the only place where plans meet the store. Materializing a
plan:

1. acquires the connection (scoped; released on every exit path)
2. checks that every backing table in the plan exists
3. translates the plan to SQL
4. submits it once and converts the result to a ResultSet

Transient ConnectionFailureError is retried with exponential backoff
(retry_backoff * 2**attempt), up to max_retries times. Everything else is
raised to the caller unchanged.
"""

import time
from typing import Callable, Optional, Sequence

from . import config
from .config import get_logger
from .connection import Connection
from .exceptions import ConnectionFailureError, TableNotFoundError, ValidationError
from .plan import PlanNode
from .result import ResultSet
from .translator import SQLTranslator

__all__ = ['Executor', 'get_executor', 'reset_executor']


def _plan_of(target) -> PlanNode:
    plan = getattr(target, 'plan', target)
    if not isinstance(plan, PlanNode):
        raise ValidationError(f"Expected a lazy handle or plan, got {type(target).__name__}")
    return plan


class Executor:
    """
    Materializes plans against a Connection.

    Args:
        connection: Connection to run on (creates an in-memory one if None)
        translator: Translator to use (default dialect from config if None)
        max_retries: Retries for ConnectionFailureError (config default if None)
        retry_backoff: Initial backoff in seconds (config default if None)
        timeout: Default per-call timeout in seconds (config default if None)

    Raises:
        ValueError: A negative retry count or backoff, or a non-positive timeout
    """

    def __init__(
        self,
        connection: Optional[Connection] = None,
        translator: Optional[SQLTranslator] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        # None defers to the config default at call time
        self.max_retries = None if max_retries is None else config.check_max_retries(max_retries)
        self.retry_backoff = None if retry_backoff is None else config.check_retry_backoff(retry_backoff)
        self.timeout = None if timeout is None else config.check_query_timeout(timeout)
        self.connection = connection
        self._owns_connection = connection is None
        if self._owns_connection:
            self.connection = Connection(":memory:")
        self.translator = translator or SQLTranslator()
        self._logger = get_logger()

    # ========== Public API ==========

    def materialize(self, target, timeout: Optional[float] = None) -> ResultSet:
        """
        Execute a plan (or a handle's plan) and return all rows.

        Args:
            target: LazyHandle or plan node
            timeout: Seconds to wait, overrides the executor default

        Raises:
            TableNotFoundError: A backing table does not exist
            TranslationError: The plan cannot be expressed as SQL
            QueryTimeoutError: The query did not finish in time
            ConnectionFailureError: The store stayed unreachable after all retries
        """
        plan = _plan_of(target)
        translator = self._translator_for(target)
        return self._run(plan, lambda: translator.translate(plan), plan.schema.columns, timeout)

    def preview(self, target, n: int, timeout: Optional[float] = None) -> ResultSet:
        """Execute the plan limited to its first n rows."""
        plan = _plan_of(target).limit(n)
        translator = self._translator_for(target)
        return self._run(plan, lambda: translator.translate(plan), plan.schema.columns, timeout)

    def count_rows(self, target, timeout: Optional[float] = None) -> int:
        """Execute a COUNT(*) over the plan's rows."""
        plan = _plan_of(target)
        translator = self._translator_for(target)
        result = self._run(plan, lambda: translator.translate_count(plan), ['count'], timeout)
        return int(result.tuples()[0][0])

    def explain(self, target) -> str:
        return self._translator_for(target).explain(_plan_of(target))

    def _translator_for(self, target) -> SQLTranslator:
        """A handle translates with its own translator; bare plans use the executor's."""
        return getattr(target, 'translator', None) or self.translator

    # ========== Execution ==========

    def _settings(self, timeout: Optional[float]):
        max_retries = self.max_retries if self.max_retries is not None else config.get_max_retries()
        backoff = self.retry_backoff if self.retry_backoff is not None else config.get_retry_backoff()
        if timeout is None:
            timeout = self.timeout if self.timeout is not None else config.get_query_timeout()
        return max_retries, backoff, timeout

    def _run(
        self,
        plan: PlanNode,
        build_sql: Callable[[], str],
        columns: Sequence[str],
        timeout: Optional[float],
    ) -> ResultSet:
        max_retries, backoff, timeout = self._settings(timeout)

        for attempt in range(max_retries + 1):
            try:
                return self._attempt(plan, build_sql, columns, timeout)
            except ConnectionFailureError as e:
                if attempt >= max_retries:
                    self._logger.error("[Executor] Giving up after %d attempts: %s", attempt + 1, e)
                    raise
                wait = backoff * (2**attempt)
                self._logger.warning(
                    "[Executor] Attempt %d/%d failed: %s. Retrying in %.2fs", attempt + 1, max_retries + 1, e, wait
                )
                time.sleep(wait)

    def _attempt(
        self,
        plan: PlanNode,
        build_sql: Callable[[], str],
        columns: Sequence[str],
        timeout: Optional[float],
    ) -> ResultSet:
        start_time = time.perf_counter()
        with self.connection.acquire(timeout) as session:
            for table in plan.tables():
                if not session.table_exists(table):
                    raise TableNotFoundError(table)
            sql = build_sql()
            result = session.execute(sql, timeout)

        if not result.columns:
            result = ResultSet(None, columns)
        self._logger.debug(
            "[Executor] Materialized %d rows in %.2fms", result.row_count, (time.perf_counter() - start_time) * 1000
        )
        return result

    def close(self):
        """Close the connection if we own it."""
        if self._owns_connection and self.connection:
            self.connection.close()


# Global executor instance for handles built without one
_global_executor: Optional[Executor] = None


def get_executor() -> Executor:
    """
    Get the global Executor instance.

    Creates one if it doesn't exist.

    Returns:
        Global Executor instance
    """
    global _global_executor
    if _global_executor is None:
        _global_executor = Executor()
    return _global_executor


def reset_executor():
    """Reset the global executor (useful for testing)."""
    global _global_executor
    if _global_executor is not None:
        _global_executor.close()
        _global_executor = None
