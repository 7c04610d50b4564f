"""
Small helpers shared by the plan, builder and handle layers: copy-on-write
builder methods and SQL identifier quoting.
"""

import functools
from typing import TypeVar, Callable, List
from copy import copy

from .exceptions import ValidationError

__all__ = [
    'immutable',
    'ignore_copy',
    'format_identifier',
    'format_table',
    'format_alias',
    'normalize_ascending',
]

T = TypeVar('T')


def immutable(func: Callable[..., T]) -> Callable[..., T]:
    """
    Run a builder method on a shallow copy of the receiver.

    The method mutates the copy; if it returns None the copy is returned,
    otherwise its own result. The receiver is never touched, so a handle can
    be branched into several plans:

        >>> base = db.table('bids').filter(col('bid') > 5)
        >>> by_id = base.sort('id')          # base is unchanged
        >>> top = base.limit(1)
    """

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        branch = copy(self)
        result = func(branch, *args, **kwargs)
        return branch if result is None else result

    return wrapper


def ignore_copy(func: Callable) -> Callable:
    """
    Guard a ``__getattr__`` that resolves column names.

    copy() and pickle probe dunder hooks before ``__init__`` has run;
    routing those (or any private name) to column lookup would recurse.
    """

    @functools.wraps(func)
    def wrapper(self, name):
        if name.startswith('_'):
            raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")
        return func(self, name)

    return wrapper


def format_identifier(name: str, quote_char: str = '"') -> str:
    """Quote a column or table name, doubling embedded quote characters: bid -> "bid"."""
    if not quote_char:
        return name
    return quote_char + name.replace(quote_char, quote_char * 2) + quote_char


def format_table(table: str, quote_char: str = '"') -> str:
    """Quote a possibly database-qualified table name: db.bids -> "db"."bids"."""
    return '.'.join(format_identifier(part, quote_char) for part in table.split('.'))


def format_alias(sql: str, alias: str = None, quote_char: str = '"') -> str:
    """Append ``AS "alias"`` to a SELECT item, or return it unchanged without an alias."""
    if not alias:
        return sql
    return f"{sql} AS {format_identifier(alias, quote_char)}"


def normalize_ascending(ascending, field_count: int) -> List[bool]:
    """One direction per sort key; a single bool applies to all of them."""
    if isinstance(ascending, bool):
        return [ascending] * field_count

    directions = [bool(a) for a in ascending]
    if len(directions) != field_count:
        raise ValidationError(f"{len(directions)} sort directions given for {field_count} sort columns")
    return directions
