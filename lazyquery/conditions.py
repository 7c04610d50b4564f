"""
Boolean predicates used by Filter nodes (rendered as WHERE or HAVING).
"""

from functools import reduce
from typing import Iterable, Optional, Tuple
from copy import copy

from .enums import ColumnType
from .expressions import Expression, Literal
from .exceptions import ValidationError

__all__ = [
    'Condition',
    'BinaryCondition',
    'CompoundCondition',
    'NotCondition',
    'UnaryCondition',
    'InCondition',
    'BetweenCondition',
    'LikeCondition',
]


class Condition(Expression):
    """
    A predicate. Combine with ``&``, ``|`` and ``~``:

        >>> (col('bid') > 5) & ~col('bidderID').isin([2])
    """

    def infer_type(self, schema) -> ColumnType:
        for node in self.walk():
            if isinstance(node, Condition):
                node._check_operands(schema)
            else:
                node.infer_type(schema)
        return ColumnType.boolean

    def _check_operands(self, schema) -> None:
        """Checks particular to this predicate kind; operand types are inferred separately."""

    def __and__(self, other: 'Condition') -> 'CompoundCondition':
        return CompoundCondition('AND', self, other)

    def __or__(self, other: 'Condition') -> 'CompoundCondition':
        return CompoundCondition('OR', self, other)

    def __invert__(self) -> 'NotCondition':
        return NotCondition(self)

    @staticmethod
    def all(conditions: Iterable['Condition']) -> Optional['Condition']:
        """AND together conditions, left to right. None for an empty input."""
        conditions = list(conditions)
        return reduce(lambda acc, cond: acc & cond, conditions) if conditions else None

    @staticmethod
    def any(conditions: Iterable['Condition']) -> Optional['Condition']:
        """OR together conditions, left to right. None for an empty input."""
        conditions = list(conditions)
        return reduce(lambda acc, cond: acc | cond, conditions) if conditions else None


class BinaryCondition(Condition):
    """
    Comparison between two expressions, usually built by operator overloading:

        >>> col('bid') > 100                  # "bid" > 100
        >>> col('name') == None               # "name" IS NULL
    """

    OPERATORS = {'=', '!=', '<>', '>', '>=', '<', '<='}

    def __init__(self, operator: str, left: Expression, right: Expression, alias: Optional[str] = None):
        super().__init__(alias)
        if operator not in self.OPERATORS:
            raise ValidationError(f"Unsupported comparison operator: {operator}")
        self.operator = operator
        self.left = left
        self.right = right

    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        left_sql = self._operand_sql(self.left, quote_char, kwargs)
        if isinstance(self.right, Literal) and self.right.value is None and self.operator in ('=', '!=', '<>'):
            null_test = 'IS NULL' if self.operator == '=' else 'IS NOT NULL'
            return self._aliased(f"{left_sql} {null_test}", quote_char, kwargs)

        right_sql = self._operand_sql(self.right, quote_char, kwargs)
        return self._aliased(f"{left_sql} {self.operator} {right_sql}", quote_char, kwargs)

    def __copy__(self):
        return BinaryCondition(self.operator, copy(self.left), copy(self.right), self.alias)


class CompoundCondition(Condition):
    """AND / OR of two conditions, always parenthesized."""

    OPERATORS = {'AND', 'OR'}

    def __init__(self, operator: str, left: Condition, right: Condition, alias: Optional[str] = None):
        super().__init__(alias)
        operator = operator.upper()
        if operator not in self.OPERATORS:
            raise ValidationError(f"Unsupported logical operator: {operator}")
        for side in (left, right):
            if not isinstance(side, Condition):
                raise ValidationError(f"{operator} operands must be conditions, got {type(side).__name__}")
        self.operator = operator
        self.left = left
        self.right = right

    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        left_sql = self._operand_sql(self.left, quote_char, kwargs)
        right_sql = self._operand_sql(self.right, quote_char, kwargs)
        return self._aliased(f"({left_sql} {self.operator} {right_sql})", quote_char, kwargs)

    def __copy__(self):
        return CompoundCondition(self.operator, copy(self.left), copy(self.right), self.alias)


class NotCondition(Condition):
    def __init__(self, condition: Condition, alias: Optional[str] = None):
        super().__init__(alias)
        self.condition = condition

    def children(self) -> Tuple[Expression, ...]:
        return (self.condition,)

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        inner_sql = self._operand_sql(self.condition, quote_char, kwargs)
        return self._aliased(f"NOT ({inner_sql})", quote_char, kwargs)

    def __copy__(self):
        return NotCondition(copy(self.condition), self.alias)


class UnaryCondition(Condition):
    """Postfix null test: ``IS NULL`` or ``IS NOT NULL``."""

    OPERATORS = {'IS NULL', 'IS NOT NULL'}

    def __init__(self, operator: str, expression: Expression, alias: Optional[str] = None):
        super().__init__(alias)
        operator = operator.upper()
        if operator not in self.OPERATORS:
            raise ValidationError(f"Unsupported null test: {operator}")
        self.operator = operator
        self.expression = expression

    def children(self) -> Tuple[Expression, ...]:
        return (self.expression,)

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        operand_sql = self._operand_sql(self.expression, quote_char, kwargs)
        return self._aliased(f"{operand_sql} {self.operator}", quote_char, kwargs)

    def __copy__(self):
        return UnaryCondition(self.operator, copy(self.expression), self.alias)


class InCondition(Condition):
    """
    Membership in a constant list, ``"bidderID" IN (1,4)``.

    List and tuple values keep their order; sets are sorted so the rendered
    SQL does not depend on hash order.
    """

    def __init__(self, expression: Expression, values, negate: bool = False, alias: Optional[str] = None):
        super().__init__(alias)
        if isinstance(values, (set, frozenset)):
            values = sorted(values, key=lambda v: (type(v).__name__, v))
        elif not isinstance(values, (list, tuple)):
            values = [values]
        if not values:
            raise ValidationError("IN requires at least one value")
        self.expression = expression
        self.values = [Expression.wrap(v) for v in values]
        self.negate = negate

    def children(self) -> Tuple[Expression, ...]:
        return (self.expression, *self.values)

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        operand_sql = self._operand_sql(self.expression, quote_char, kwargs)
        values_sql = ','.join(self._operand_sql(v, quote_char, kwargs) for v in self.values)
        keyword = 'NOT IN' if self.negate else 'IN'
        return self._aliased(f"{operand_sql} {keyword} ({values_sql})", quote_char, kwargs)

    def __copy__(self):
        return InCondition(copy(self.expression), list(self.values), self.negate, self.alias)


class BetweenCondition(Condition):
    """Inclusive range test."""

    def __init__(self, expression: Expression, lower: Expression, upper: Expression, alias: Optional[str] = None):
        super().__init__(alias)
        self.expression = expression
        self.lower = lower
        self.upper = upper

    def children(self) -> Tuple[Expression, ...]:
        return (self.expression, self.lower, self.upper)

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        operand_sql, lower_sql, upper_sql = (self._operand_sql(c, quote_char, kwargs) for c in self.children())
        return self._aliased(f"{operand_sql} BETWEEN {lower_sql} AND {upper_sql}", quote_char, kwargs)

    def __copy__(self):
        return BetweenCondition(copy(self.expression), copy(self.lower), copy(self.upper), self.alias)


class LikeCondition(Condition):
    """SQL LIKE / NOT LIKE against a string pattern; the operand must be text."""

    def __init__(self, expression: Expression, pattern: str, negate: bool = False, alias: Optional[str] = None):
        super().__init__(alias)
        if not isinstance(pattern, str):
            raise ValidationError(f"LIKE pattern must be a string, got {type(pattern).__name__}")
        self.expression = expression
        self.pattern = pattern
        self.negate = negate

    def children(self) -> Tuple[Expression, ...]:
        return (self.expression,)

    def _check_operands(self, schema) -> None:
        if self.expression.infer_type(schema) != ColumnType.text:
            raise ValidationError(f"LIKE requires a text operand: {self.expression.to_sql()}")

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        operand_sql = self._operand_sql(self.expression, quote_char, kwargs)
        keyword = 'NOT LIKE' if self.negate else 'LIKE'
        return self._aliased(f"{operand_sql} {keyword} {Literal(self.pattern).to_sql()}", quote_char, kwargs)

    def __copy__(self):
        return LikeCondition(copy(self.expression), self.pattern, self.negate, self.alias)
