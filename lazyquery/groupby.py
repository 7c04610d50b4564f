"""
GroupedHandle - pandas-style groupby front end for LazyHandle.

handle.groupby('col') returns a GroupedHandle that only remembers the
group columns. Calling an aggregation on it appends one GroupAggregate node
to the handle's plan and returns a new LazyHandle; nothing is executed.

Example:
    >>> bids.groupby('bidderID').agg(smallestBid=('bid', 'min'), largestBid=('bid', 'max'))
    >>> bids.groupby('bidderID')['bid'].max()        # column "max_bid"
    >>> bids.groupby('bidderID').count()             # column "count"
"""

from typing import TYPE_CHECKING, List, Union

from .aggregates import AggregateSpec

if TYPE_CHECKING:
    from .core import LazyHandle


class GroupedHandle:
    """
    Group columns waiting for their aggregates.

    Group columns are validated immediately, so a typo fails at groupby().
    """

    def __init__(self, handle: 'LazyHandle', group_columns: List[str]):
        """
        Args:
            handle: Handle whose plan will be grouped
            group_columns: Column names to group by
        """
        handle.schema.require(group_columns, operation="GroupAggregate")
        self._handle = handle
        self._group_columns = list(group_columns)

    @property
    def handle(self) -> 'LazyHandle':
        return self._handle

    @property
    def group_columns(self) -> List[str]:
        return list(self._group_columns)

    def agg(self, *aggregates, **named) -> 'LazyHandle':
        """
        Aggregate each group.

        Args:
            *aggregates: AggregateSpec objects or (name, func, column) tuples
            **named: name=(column, func) pairs, as in pandas named aggregation
        """
        specs = list(aggregates)
        if len(specs) == 1 and isinstance(specs[0], (list, tuple)) and not isinstance(specs[0][0], str):
            specs = list(specs[0])
        return self._handle.group_aggregate(self._group_columns, specs, **named)

    aggregate = agg

    def count(self) -> 'LazyHandle':
        """Number of rows per group, in a column named "count"."""
        return self.agg(AggregateSpec.count())

    def __getitem__(self, column: str) -> 'GroupedColumn':
        self._handle.schema.require([column], operation="GroupAggregate")
        return GroupedColumn(self, column)

    def __getattr__(self, name: str) -> 'GroupedColumn':
        """
        Support attribute access for column names.

        Example:
            >>> grp.bid.min()  # Same as grp['bid'].min()
        """
        if name.startswith('_'):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

        return self[name]

    def __repr__(self) -> str:
        return f"GroupedHandle(by={self._group_columns}, table={self._handle.table!r})"


class GroupedColumn:
    """One column of a GroupedHandle; each method aggregates it."""

    def __init__(self, grouped: GroupedHandle, column: str):
        self._grouped = grouped
        self._column = column

    def _agg(self, spec: AggregateSpec, name: Union[str, None]) -> 'LazyHandle':
        return self._grouped.agg(spec.as_(name) if name else spec)

    def min(self, name: str = None) -> 'LazyHandle':
        return self._agg(AggregateSpec.min(self._column), name)

    def max(self, name: str = None) -> 'LazyHandle':
        return self._agg(AggregateSpec.max(self._column), name)

    def sum(self, name: str = None) -> 'LazyHandle':
        return self._agg(AggregateSpec.sum(self._column), name)

    def mean(self, name: str = None) -> 'LazyHandle':
        return self._agg(AggregateSpec.mean(self._column), name)

    def count(self, name: str = None) -> 'LazyHandle':
        return self._agg(AggregateSpec.count(self._column), name)
