"""
Expression trees for lazyquery predicates and computed columns.

Expressions are built with operator overloading on column references:

    >>> col('bid') * 2                      # ("bid" * 2)
    >>> (col('bid') > 5) & col('bidderID').isin([1, 4])

Every node knows its direct children, the abstract type it produces against
a Schema (``infer_type``) and its SQL rendering (``to_sql``).
"""

import datetime
import decimal
import math
from typing import Any, Iterator, Optional, Set, Tuple, TYPE_CHECKING
from copy import copy

import numpy as np

from .enums import ColumnType
from .exceptions import TranslationError, ValidationError
from .utils import immutable, format_identifier, format_alias

if TYPE_CHECKING:
    from .schema import Schema

__all__ = ['Expression', 'Field', 'Literal', 'ArithmeticExpression', 'col', 'lit']


def _comparison(operator: str):
    def compare(self, other):
        from .conditions import BinaryCondition

        return BinaryCondition(operator, self, self.wrap(other))

    return compare


def _arithmetic(operator: str, reflected: bool = False):
    def apply(self, other):
        other = self.wrap(other)
        if reflected:
            return ArithmeticExpression(operator, other, self)
        return ArithmeticExpression(operator, self, other)

    return apply


class Expression:
    """
    Base class of the expression tree.

    Subclasses: Field (column reference), Literal (constant),
    ArithmeticExpression, and the predicates in ``conditions``.
    """

    def __init__(self, alias: Optional[str] = None):
        self.alias = alias

    @immutable
    def as_(self, alias: str) -> 'Expression':
        """Name the output column this expression produces."""
        self.alias = alias

    @staticmethod
    def wrap(value: Any) -> 'Expression':
        """Return value unchanged if it is an Expression, else a Literal of it."""
        if isinstance(value, Expression):
            return value
        return Literal(value)

    def children(self) -> Tuple['Expression', ...]:
        return ()

    def walk(self) -> Iterator['Expression']:
        """Depth-first traversal, self first."""
        yield self
        for child in self.children():
            yield from child.walk()

    def columns(self) -> Set[str]:
        """Names of all columns referenced by this expression."""
        return {node.name for node in self.walk() if isinstance(node, Field)}

    def infer_type(self, schema: 'Schema') -> ColumnType:
        """Abstract type this expression produces when evaluated against schema."""
        raise NotImplementedError(f"{type(self).__name__} must implement infer_type()")

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        raise NotImplementedError(f"{type(self).__name__} must implement to_sql()")

    def _operand_sql(self, operand: 'Expression', quote_char: str, kwargs: dict) -> str:
        # Operands never carry their own alias
        inner = {k: v for k, v in kwargs.items() if k != 'with_alias'}
        return operand.to_sql(quote_char=quote_char, **inner)

    def _aliased(self, sql: str, quote_char: str, kwargs: dict) -> str:
        if kwargs.get('with_alias', False) and self.alias:
            return format_alias(sql, self.alias, quote_char)
        return sql

    # Comparisons build conditions, so expressions are unhashable
    __eq__ = _comparison('=')
    __ne__ = _comparison('!=')
    __gt__ = _comparison('>')
    __ge__ = _comparison('>=')
    __lt__ = _comparison('<')
    __le__ = _comparison('<=')
    __hash__ = None

    __add__ = _arithmetic('+')
    __sub__ = _arithmetic('-')
    __mul__ = _arithmetic('*')
    __truediv__ = _arithmetic('/')
    __floordiv__ = _arithmetic('//')
    __mod__ = _arithmetic('%')
    __pow__ = _arithmetic('**')
    __radd__ = _arithmetic('+', reflected=True)
    __rsub__ = _arithmetic('-', reflected=True)
    __rmul__ = _arithmetic('*', reflected=True)
    __rtruediv__ = _arithmetic('/', reflected=True)
    __rfloordiv__ = _arithmetic('//', reflected=True)
    __rmod__ = _arithmetic('%', reflected=True)
    __rpow__ = _arithmetic('**', reflected=True)

    def __neg__(self) -> 'ArithmeticExpression':
        return ArithmeticExpression('-', Literal(0), self)

    # Predicate builders

    def isnull(self):
        """``"col" IS NULL``"""
        from .conditions import UnaryCondition

        return UnaryCondition('IS NULL', self)

    def notnull(self):
        from .conditions import UnaryCondition

        return UnaryCondition('IS NOT NULL', self)

    def isin(self, values):
        """
        Membership test against a list of constants.

            >>> col('bidderID').isin([1, 4])      # "bidderID" IN (1,4)
        """
        from .conditions import InCondition

        return InCondition(self, values, negate=False)

    def notin(self, values):
        from .conditions import InCondition

        return InCondition(self, values, negate=True)

    def between(self, lower, upper):
        """Inclusive range test: ``"bid" BETWEEN 5 AND 20``."""
        from .conditions import BetweenCondition

        return BetweenCondition(self, self.wrap(lower), self.wrap(upper))

    def like(self, pattern: str):
        """
        SQL pattern match on a text column.

            >>> col('name').like('a%')            # "name" LIKE 'a%'
        """
        from .conditions import LikeCondition

        return LikeCondition(self, pattern, negate=False)

    def notlike(self, pattern: str):
        from .conditions import LikeCondition

        return LikeCondition(self, pattern, negate=True)

    def __str__(self) -> str:
        return self.to_sql()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_sql()!r})"


class Field(Expression):
    """
    Column reference, optionally qualified by a subquery alias.

        >>> Field('bid')
        >>> Field('bid', table='__l__')       # "__l__"."bid"
    """

    def __init__(self, name: str, table: Optional[str] = None, alias: Optional[str] = None):
        super().__init__(alias)
        self.name = name
        self.table = table

    def infer_type(self, schema: 'Schema') -> ColumnType:
        return schema.type_of(self.name)

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        """
        Render the (possibly qualified) column reference.

        A ``substitutions`` mapping (column name -> SQL) in kwargs replaces
        unqualified references; HAVING uses it to expand aggregate aliases.
        """
        substitutions = kwargs.get('substitutions') or {}
        if self.table is None and self.name in substitutions:
            sql = substitutions[self.name]
        elif self.table:
            sql = f"{format_identifier(self.table, quote_char)}.{format_identifier(self.name, quote_char)}"
        else:
            sql = format_identifier(self.name, quote_char)
        return self._aliased(sql, quote_char, kwargs)

    def __copy__(self):
        return Field(self.name, self.table, self.alias)


class Literal(Expression):
    """
    Constant value. Supported: None, bool, int, float, Decimal, str, date and
    datetime (numpy scalars are unwrapped). Anything else, and non-finite
    numbers, fail at translation with TranslationError.
    """

    def __init__(self, value: Any, alias: Optional[str] = None):
        super().__init__(alias)
        if isinstance(value, np.generic):
            value = value.item()
        self.value = value

    def infer_type(self, schema: 'Schema') -> ColumnType:
        if isinstance(self.value, bool):
            return ColumnType.boolean
        if isinstance(self.value, (int, float, decimal.Decimal)):
            return ColumnType.numeric
        return ColumnType.text

    def _render(self) -> str:
        value = self.value
        if value is None:
            return 'NULL'
        if isinstance(value, bool):
            return 'true' if value else 'false'
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            if not math.isfinite(value):
                raise TranslationError("Literal", f"non-finite float {value!r} has no SQL literal")
            return repr(value)
        if isinstance(value, decimal.Decimal):
            if not value.is_finite():
                raise TranslationError("Literal", f"non-finite decimal {value!r} has no SQL literal")
            return str(value)
        if isinstance(value, str):
            escaped = value.replace("\\", "\\\\").replace("'", "''")
            return f"'{escaped}'"
        if isinstance(value, datetime.datetime):
            return f"'{value.isoformat(sep=' ')}'"
        if isinstance(value, datetime.date):
            return f"'{value.isoformat()}'"
        raise TranslationError("Literal", f"values of type {type(value).__name__} are not supported")

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        return self._aliased(self._render(), quote_char, kwargs)

    def __copy__(self):
        return Literal(self.value, self.alias)


class ArithmeticExpression(Expression):
    """
    Binary arithmetic on numeric operands.

        >>> col('bid') * 2                    # ("bid" * 2)
        >>> col('bid') ** 2                   # pow("bid", 2)
        >>> col('bid') // 3                   # floor("bid" / 3)
    """

    OPERATORS = {'+', '-', '*', '/', '//', '%', '**'}

    def __init__(self, operator: str, left: Expression, right: Expression, alias: Optional[str] = None):
        super().__init__(alias)
        if operator not in self.OPERATORS:
            raise ValidationError(f"Unsupported arithmetic operator: {operator}")
        self.operator = operator
        self.left = left
        self.right = right

    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)

    def infer_type(self, schema: 'Schema') -> ColumnType:
        for side in self.children():
            if side.infer_type(schema) == ColumnType.text:
                raise ValidationError(f"Arithmetic '{self.operator}' on a text operand: {side.to_sql()}")
        return ColumnType.numeric

    def to_sql(self, quote_char: str = '"', **kwargs) -> str:
        left_sql = self._operand_sql(self.left, quote_char, kwargs)
        right_sql = self._operand_sql(self.right, quote_char, kwargs)

        if self.operator == '**':
            sql = f"pow({left_sql}, {right_sql})"
        elif self.operator == '//':
            # floor division rounds toward negative infinity; intDiv truncates
            sql = f"floor({left_sql} / {right_sql})"
        else:
            sql = f"({left_sql} {self.operator} {right_sql})"
        return self._aliased(sql, quote_char, kwargs)

    def __copy__(self):
        return ArithmeticExpression(self.operator, copy(self.left), copy(self.right), self.alias)


def col(name: str) -> Field:
    """
    Reference a column by name.

    Example:
        >>> handle.filter(col('bidderID').isin([1, 4]))
    """
    return Field(name)


def lit(value: Any) -> Literal:
    return Literal(value)
