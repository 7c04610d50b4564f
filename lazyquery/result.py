"""
Materialized query results.
"""

from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

__all__ = ['ResultSet', 'UNKNOWN']


class _Unknown:
    """Sentinel for values that are not known before execution."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return 'UNKNOWN'

    def __reduce__(self):
        return (_Unknown, ())


UNKNOWN = _Unknown()


class ResultSet:
    """
    Rows produced by executing a plan.

    Rows keep the order the store returned them in. Each row is a mapping of
    projected column name to value; the ResultSet holds no reference back to
    the plan or the connection.

    Example:
        >>> result = handle.materialize()
        >>> result.rows
        [{'bid': 10, 'bidderID': 1, 'id': 1}, {'bid': 20, 'bidderID': 4, 'id': 2}]
        >>> result.tuples()
        [(10, 1, 1), (20, 4, 2)]
    """

    def __init__(self, data: Optional[pd.DataFrame] = None, columns: Optional[Sequence[str]] = None):
        """
        Args:
            data: Result DataFrame from the store
            columns: Expected column names, used when the store returns no columns
        """
        if data is None:
            data = pd.DataFrame(columns=list(columns or []))
        elif len(data.columns) == 0 and columns:
            data = pd.DataFrame(columns=list(columns))
        self._data = data.reset_index(drop=True)
        self._rows = None

    @property
    def columns(self) -> List[str]:
        """Column names in projected order."""
        return [str(c) for c in self._data.columns]

    @property
    def rows(self) -> List[Dict[str, Any]]:
        """All rows as dicts (converted once, then cached)."""
        if self._rows is None:
            self._rows = self._data.to_dict('records')
        return self._rows

    @property
    def row_count(self) -> int:
        return len(self._data)

    @property
    def empty(self) -> bool:
        return self.row_count == 0

    def tuples(self) -> List[Tuple]:
        """All rows as tuples, in column order."""
        return [tuple(row) for row in self._data.itertuples(index=False, name=None)]

    def fetchone(self) -> Optional[Dict[str, Any]]:
        """Get the first row."""
        rows = self.rows
        return rows[0] if rows else None

    def fetchall(self) -> List[Dict[str, Any]]:
        return self.rows

    def fetchmany(self, size: int) -> List[Dict[str, Any]]:
        """Get first 'size' rows."""
        return self.rows[:size]

    def column(self, name: str) -> List[Any]:
        """All values of one column."""
        return self._data[name].tolist()

    def to_df(self) -> pd.DataFrame:
        """
        Return the result as a pandas DataFrame.

        Returns:
            A copy, so changes to it do not affect this ResultSet
        """
        return self._data.copy()

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self.rows)

    def __getitem__(self, index):
        return self.rows[index]

    def __len__(self) -> int:
        return self.row_count

    def __repr__(self):
        return f"ResultSet(rows={self.row_count}, columns={self.columns})"
