"""
Enumerations for lazyquery
"""

from enum import Enum

from .exceptions import ValidationError

__all__ = ['JoinType', 'AggFunc', 'ColumnType']


class JoinType(Enum):
    """JOIN types supported by the plan"""

    inner = "INNER"
    left = "LEFT"
    right = "RIGHT"
    outer = "FULL OUTER"
    cross = "CROSS"

    def __str__(self):
        return self.value

    @classmethod
    def parse(cls, how) -> 'JoinType':
        if isinstance(how, JoinType):
            return how
        aliases = {"full": "outer", "full_outer": "outer"}
        key = str(how).lower()
        key = aliases.get(key, key)
        try:
            return cls[key]
        except KeyError:
            raise ValidationError(f"Invalid join type: {how}")


class AggFunc(Enum):
    """Aggregate function kinds and their SQL names"""

    min = "min"
    max = "max"
    sum = "sum"
    mean = "avg"
    count = "count"

    def __str__(self):
        return self.value

    @classmethod
    def parse(cls, func) -> 'AggFunc':
        if isinstance(func, AggFunc):
            return func
        key = str(func).lower()
        if key == "avg":
            key = "mean"
        try:
            return cls[key]
        except KeyError:
            raise ValidationError(f"Unknown aggregate function: {func}")


class ColumnType(Enum):
    """Abstract column types a schema can declare"""

    numeric = "numeric"
    text = "text"
    boolean = "boolean"

    def __str__(self):
        return self.value
