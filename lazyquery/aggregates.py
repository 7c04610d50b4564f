"""
Aggregate specifications for GroupAggregate plan nodes.

An AggregateSpec is (output name, function kind, input column):

    AggregateSpec('smallestBid', 'min', 'bid')
    AggregateSpec.min('bid').as_('smallestBid')     # same thing
    AggregateSpec.count()                           # count(*) AS "count"
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Tuple, Union

from .enums import AggFunc, ColumnType
from .exceptions import ValidationError
from .utils import format_identifier

__all__ = ['AggregateSpec', 'normalize_aggregates']

STAR = '*'


@dataclass(frozen=True)
class AggregateSpec:
    """
    One aggregate output column.

    Attributes:
        name: Output column name
        func: Aggregate function kind
        column: Input column name ('*' only for count)
    """

    name: str
    func: AggFunc
    column: str = STAR

    def __post_init__(self):
        object.__setattr__(self, 'func', AggFunc.parse(self.func))
        if not isinstance(self.name, str) or not self.name:
            raise ValidationError(f"Aggregate output name must be a non-empty string, got {self.name!r}")
        if self.column == STAR and self.func is not AggFunc.count:
            raise ValidationError(f"{self.func.name}() requires an input column")

    # ========== Constructors ==========

    @classmethod
    def _default(cls, func: AggFunc, column: str) -> 'AggregateSpec':
        name = func.name if column == STAR else f"{func.name}_{column}"
        return cls(name, func, column)

    @classmethod
    def min(cls, column: str) -> 'AggregateSpec':
        return cls._default(AggFunc.min, column)

    @classmethod
    def max(cls, column: str) -> 'AggregateSpec':
        return cls._default(AggFunc.max, column)

    @classmethod
    def sum(cls, column: str) -> 'AggregateSpec':
        return cls._default(AggFunc.sum, column)

    @classmethod
    def mean(cls, column: str) -> 'AggregateSpec':
        return cls._default(AggFunc.mean, column)

    @classmethod
    def count(cls, column: str = STAR) -> 'AggregateSpec':
        return cls._default(AggFunc.count, column)

    def as_(self, name: str) -> 'AggregateSpec':
        """Return a copy with a different output name."""
        return replace(self, name=name)

    # ========== Planning / SQL ==========

    def input_columns(self) -> List[str]:
        return [] if self.column == STAR else [self.column]

    def output_type(self, input_type: ColumnType = None) -> ColumnType:
        """Type of the aggregate output given the input column type."""
        if self.func in (AggFunc.min, AggFunc.max) and input_type is not None:
            return input_type
        return ColumnType.numeric

    def check_input_type(self, input_type: ColumnType) -> None:
        if self.func in (AggFunc.sum, AggFunc.mean) and input_type != ColumnType.numeric:
            raise ValidationError(
                f"{self.func.name}({self.column}) requires a numeric column, got {input_type.value}"
            )

    def to_sql(self, quote_char: str = '"') -> str:
        """SQL for the aggregate call, without alias."""
        arg = STAR if self.column == STAR else format_identifier(self.column, quote_char)
        return f"{self.func.value}({arg})"

    def __str__(self) -> str:
        return f"{self.func.name}({self.column}) AS {self.name}"


def normalize_aggregates(
    aggs: Union[AggregateSpec, Iterable[Any], None] = None,
    named: Dict[str, Union[Tuple[str, str], AggregateSpec]] = None,
) -> List[AggregateSpec]:
    """
    Build a list of AggregateSpec from the forms group_aggregate accepts.

    Args:
        aggs: An AggregateSpec, or an iterable of AggregateSpec or
              (name, func, column) tuples
        named: pandas-style named aggregations, name -> (column, func)

    Example:
        >>> normalize_aggregates(named={'smallestBid': ('bid', 'min')})
        [AggregateSpec(name='smallestBid', func=<AggFunc.min: 'min'>, column='bid')]
    """
    specs: List[AggregateSpec] = []
    if isinstance(aggs, AggregateSpec):
        aggs = [aggs]
    for item in aggs or []:
        if isinstance(item, AggregateSpec):
            specs.append(item)
        elif isinstance(item, (tuple, list)) and len(item) == 3:
            specs.append(AggregateSpec(*item))
        else:
            raise ValidationError(f"Cannot interpret aggregate: {item!r}")

    for name, value in (named or {}).items():
        if isinstance(value, AggregateSpec):
            specs.append(value.as_(name))
        elif isinstance(value, (tuple, list)) and len(value) == 2:
            column, func = value
            specs.append(AggregateSpec(name, func, column))
        else:
            raise ValidationError(f"Named aggregate '{name}' must be (column, func), got {value!r}")

    return specs
