"""
LazyHandle - the user-facing lazy query object.

A LazyHandle wraps an immutable plan together with the translator and
executor it will eventually run with. Chain methods return new handles and
never touch the store; only materialize(), preview() and count_rows()
execute anything.

Example:
    >>> bids = db.table('bids')
    >>> winners = (bids.filter(bids.bidderID.isin([1, 4]))
    ...                .select('bid', 'bidderID', 'id')
    ...                .sort(['bidderID', 'id']))
    >>> winners.to_sql()
    'SELECT "bid", "bidderID", "id" FROM "bids" WHERE "bidderID" IN (1,4) ORDER BY "bidderID" ASC, "id" ASC'
    >>> winners.materialize().rows
    [{'bid': 10, 'bidderID': 1, 'id': 1}, {'bid': 20, 'bidderID': 4, 'id': 2}]
"""

from typing import List, Optional, Sequence, Union

import pandas as pd

from .conditions import Condition
from .enums import JoinType
from .exceptions import ValidationError
from .expressions import Expression, Field
from .plan import PlanNode, Scan
from .result import UNKNOWN, ResultSet
from .schema import Schema
from .translator import SQLTranslator
from .utils import ignore_copy, immutable

__all__ = ['LazyHandle']


class LazyHandle:
    """
    Lazy, immutable view of a query over a backing table.

    Args:
        plan: Plan node this handle represents
        translator: SQL translator (executor's translator if None)
        executor: Executor used by materialize() (global executor if None)
    """

    def __init__(self, plan: PlanNode, translator: Optional[SQLTranslator] = None, executor=None):
        if not isinstance(plan, PlanNode):
            raise ValidationError(f"LazyHandle requires a plan node, got {type(plan).__name__}")
        self._plan = plan
        self._executor = executor
        if translator is None:
            translator = executor.translator if executor is not None else SQLTranslator()
        self._translator = translator

    @classmethod
    def scan(cls, table: str, schema: Union[Schema, dict], translator: Optional[SQLTranslator] = None, executor=None):
        """Create a handle reading every column of a backing table."""
        return cls(Scan(table, schema if isinstance(schema, Schema) else Schema(schema)), translator, executor)

    # ========== Properties ==========

    @property
    def plan(self) -> PlanNode:
        return self._plan

    @property
    def translator(self) -> SQLTranslator:
        return self._translator

    @property
    def executor(self):
        if self._executor is None:
            from .executor import get_executor

            return get_executor()
        return self._executor

    @property
    def table(self) -> str:
        """Backing-table identifier of the root scan."""
        return self._plan.root.table

    @property
    def schema(self) -> Schema:
        """Output schema at this point of the plan."""
        return self._plan.schema

    @property
    def columns(self) -> List[str]:
        return list(self._plan.schema.columns)

    # ========== Plan building (no I/O) ==========

    @immutable
    def project(self, *columns: Union[str, Expression, Sequence[Union[str, Expression]]]) -> 'LazyHandle':
        """
        Keep only the given columns, in the given order.

        Example:
            >>> bids.project('bid', 'id')
            >>> bids.project('id', (bids.bid * 2).as_('double_bid'))
        """
        self._plan = self._plan.project(*columns)

    def select(self, *columns) -> 'LazyHandle':
        """Alias for project()."""
        return self.project(*columns)

    @immutable
    def filter(self, predicate: Union[Condition, Field]) -> 'LazyHandle':
        """
        Keep rows matching a predicate.

        Filters placed after group_aggregate() apply to the groups (HAVING).

        Example:
            >>> bids.filter((bids.bid > 5) & (bids.bidderID != 3))
        """
        self._plan = self._plan.filter(predicate)

    def where(self, predicate: Union[Condition, Field]) -> 'LazyHandle':
        """Alias for filter()."""
        return self.filter(predicate)

    @immutable
    def sort(self, columns: Union[str, Sequence[str]], ascending: Union[bool, Sequence[bool]] = True) -> 'LazyHandle':
        """
        Order rows by columns.

        Args:
            columns: Column name or list of column names
            ascending: One flag for all columns or one per column
        """
        self._plan = self._plan.sort(columns, ascending)

    @immutable
    def group_aggregate(self, group_columns: Union[str, Sequence[str]] = (), aggregates=(), **named) -> 'LazyHandle':
        """
        Group rows and compute aggregates.

        Example:
            >>> bids.group_aggregate('bidderID', smallestBid=('bid', 'min'), largestBid=('bid', 'max'))
            >>> bids.group_aggregate(['bidderID'], [AggregateSpec.count().as_('n')])
        """
        self._plan = self._plan.group_aggregate(group_columns, aggregates, **named)

    def groupby(self, *columns: Union[str, Sequence[str]]) -> 'GroupedHandle':
        """
        Start a grouped aggregation, pandas style.

        Example:
            >>> bids.groupby('bidderID').agg(smallestBid=('bid', 'min'))
            >>> bids.groupby('bidderID')['bid'].max()
        """
        from .groupby import GroupedHandle

        names = []
        for column in columns:
            names.extend(column if isinstance(column, (list, tuple)) else [column])
        return GroupedHandle(self, names)

    @immutable
    def join(self, other: Union['LazyHandle', PlanNode], on: Union[str, Sequence[str]] = (), how='inner') -> 'LazyHandle':
        """
        Join with another handle on shared key columns.

        Args:
            other: Right-hand handle (or plan)
            on: Key column(s) present on both sides; empty for how='cross'
            how: inner, left, right, outer (full) or cross

        Output columns are the left columns followed by the right non-key
        columns; right columns whose names clash get a '_right' suffix.
        """
        other_plan = other.plan if isinstance(other, LazyHandle) else other
        self._plan = self._plan.join(other_plan, on, JoinType.parse(how))

    @immutable
    def limit(self, n: int, offset: int = 0) -> 'LazyHandle':
        """Keep at most n rows after skipping offset rows."""
        self._plan = self._plan.limit(n, offset)

    @immutable
    def distinct(self) -> 'LazyHandle':
        """Drop duplicate rows."""
        self._plan = self._plan.distinct()

    # ========== Inspection (no I/O) ==========

    def row_count(self):
        """
        Row count before execution: always UNKNOWN.

        Use materialize().row_count, or count_rows() to run a COUNT(*) query.
        """
        return UNKNOWN

    def to_sql(self) -> str:
        """SQL this handle would run, without executing it."""
        return self._translator.translate(self._plan)

    def explain(self) -> str:
        """Numbered plan description followed by the generated SQL."""
        return self._translator.explain(self._plan)

    # ========== Execution ==========

    def materialize(self, timeout: Optional[float] = None) -> ResultSet:
        """Execute the plan once and return every row."""
        return self.executor.materialize(self, timeout=timeout)

    def preview(self, n: int = 10, timeout: Optional[float] = None) -> ResultSet:
        """
        Execute the plan limited to its first n rows.

        This handle's plan is not changed and nothing is cached.
        """
        return self.executor.preview(self, n, timeout=timeout)

    def count_rows(self, timeout: Optional[float] = None) -> int:
        """Execute a COUNT(*) over the rows this handle produces."""
        return self.executor.count_rows(self, timeout=timeout)

    def to_df(self, timeout: Optional[float] = None) -> pd.DataFrame:
        """Materialize and return a pandas DataFrame."""
        return self.materialize(timeout=timeout).to_df()

    # ========== Column access ==========

    def __getitem__(self, key: Union[str, List[str]]):
        """
        ds['col'] returns a column reference; ds[['a', 'b']] projects.

        Raises:
            ColumnNotFoundError: If a column is not visible at this point of the plan
        """
        if isinstance(key, str):
            self.schema.require([key], operation="column access")
            return Field(key)
        if isinstance(key, (list, tuple)):
            return self.project(*key)
        raise TypeError(f"Expected column name or list of names, got {type(key).__name__}")

    @ignore_copy
    def __getattr__(self, name: str) -> Field:
        """
        Support dynamic field access: ds.column_name

        Example:
            >>> ds.bid > 5   # Condition for filter()
        """
        self.schema.require([name], operation="column access")
        return Field(name)

    def __repr__(self) -> str:
        return f"LazyHandle(table={self.table!r}, nodes={len(self._plan)}, columns={self.columns})"
