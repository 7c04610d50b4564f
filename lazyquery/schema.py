"""
Table schema for lazyquery.

A Schema is the static description of the columns a plan node can see:
an ordered mapping of unique column names to abstract column types
(numeric, text, boolean). Schemas are immutable; operations that change
the visible columns (project, aggregate, join) return new instances.

Example Usage:
    schema = Schema({'id': 'numeric', 'bidderID': 'numeric', 'bid': 'numeric'})
    schema.require(['bid'], operation='Filter')   # ok
    schema.project(['bid', 'id']).columns          # ('bid', 'id')

    # From backing-store type names (DESCRIBE TABLE output)
    schema = Schema.from_store_types({'id': 'UInt64', 'name': 'Nullable(String)'})
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Tuple, Union

from .enums import ColumnType
from .exceptions import ColumnNotFoundError, SchemaError

__all__ = ['Schema', 'ColumnInfo', 'store_type_to_column_type']


# Store type prefixes -> abstract column type
_NUMERIC_TYPES = re.compile(r'^(U?Int\d+|Float\d+|Decimal\d*|BFloat16)$')
_TEXT_TYPES = re.compile(r'^(String|FixedString|Enum\d*|UUID|Date\d*|DateTime\d*|IPv4|IPv6)$')
_BOOLEAN_TYPES = re.compile(r'^(Bool|Boolean)$')
_WRAPPER_TYPES = re.compile(r'^(Nullable|LowCardinality)\((.*)\)$')


def store_type_to_column_type(type_name: str) -> ColumnType:
    """
    Map a backing-store type name to an abstract column type.

    Nullable(...) and LowCardinality(...) wrappers are unwrapped, and
    parameters such as Decimal(10, 2) or DateTime64(3) are ignored.

    Raises:
        SchemaError: If the type has no abstract counterpart (arrays, maps, ...)
    """
    name = type_name.strip()
    match = _WRAPPER_TYPES.match(name)
    while match:
        name = match.group(2).strip()
        match = _WRAPPER_TYPES.match(name)

    base = name.split('(', 1)[0].strip()
    if _BOOLEAN_TYPES.match(base):
        return ColumnType.boolean
    if _NUMERIC_TYPES.match(base):
        return ColumnType.numeric
    if _TEXT_TYPES.match(base):
        return ColumnType.text
    raise SchemaError(f"Unsupported column type: {type_name}")


def _parse_type(value: Union[str, ColumnType]) -> ColumnType:
    if isinstance(value, ColumnType):
        return value
    try:
        return ColumnType(str(value).lower())
    except ValueError:
        raise SchemaError(f"Unknown column type: {value!r}. Use one of numeric, text, boolean")


@dataclass(frozen=True)
class ColumnInfo:
    """
    Information about a single column.

    Attributes:
        name: Column name
        type: Abstract column type
    """

    name: str
    type: ColumnType


class Schema:
    """
    Immutable, ordered mapping from column name to ColumnType.
    """

    __slots__ = ('_columns',)

    def __init__(self, columns: Union[Mapping[str, Union[str, ColumnType]], Iterable[Tuple[str, Union[str, ColumnType]]]] = ()):
        items = columns.items() if isinstance(columns, Mapping) else columns
        parsed: Dict[str, ColumnType] = {}
        for name, col_type in items:
            if not isinstance(name, str) or not name:
                raise SchemaError(f"Column names must be non-empty strings, got {name!r}")
            if name in parsed:
                raise SchemaError(f"Duplicate column name: {name}")
            parsed[name] = _parse_type(col_type)
        object.__setattr__(self, '_columns', parsed)

    def __setattr__(self, name, value):
        raise AttributeError("Schema is immutable")

    @classmethod
    def from_store_types(cls, types: Union[Mapping[str, str], Iterable[Tuple[str, str]]]) -> 'Schema':
        """
        Create a Schema from backing-store type names.

        Args:
            types: Mapping (or pairs) of column name -> store type (e.g. 'Int64')

        Returns:
            New Schema instance
        """
        items = types.items() if isinstance(types, Mapping) else types
        return cls([(name, store_type_to_column_type(t)) for name, t in items])

    @property
    def columns(self) -> Tuple[str, ...]:
        """Column names in order."""
        return tuple(self._columns)

    def type_of(self, column: str) -> ColumnType:
        """Return the type of a column, raising ColumnNotFoundError if absent."""
        self.require([column])
        return self._columns[column]

    def require(self, columns: Iterable[str], operation: str = None) -> None:
        """
        Check that every column is present.

        Raises:
            ColumnNotFoundError: For the first missing column
        """
        for column in columns:
            if column not in self._columns:
                raise ColumnNotFoundError(column, list(self._columns), operation=operation)

    def project(self, columns: Iterable[str]) -> 'Schema':
        """Return a schema holding only the given columns, in the given order."""
        columns = list(columns)
        self.require(columns)
        return Schema([(c, self._columns[c]) for c in columns])

    def items(self) -> List[Tuple[str, ColumnType]]:
        return list(self._columns.items())

    def infos(self) -> List[ColumnInfo]:
        return [ColumnInfo(name, t) for name, t in self._columns.items()]

    def to_dict(self) -> Dict[str, str]:
        """Plain dict of column name -> type name."""
        return {name: t.value for name, t in self._columns.items()}

    def __contains__(self, column) -> bool:
        return column in self._columns

    def __getitem__(self, column: str) -> ColumnType:
        return self.type_of(column)

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return list(self._columns.items()) == list(other._columns.items())

    def __hash__(self) -> int:
        return hash(tuple(self._columns.items()))

    def __repr__(self) -> str:
        cols = ", ".join(f"{name}: {t.value}" for name, t in self._columns.items())
        return f"Schema({{{cols}}})"
