"""
lazyquery - A Lazy Tabular Query Engine
=======================================

lazyquery builds query plans against backing tables, defers execution,
translates each plan to a single SQL statement and runs it once on an
embedded ClickHouse engine (chdb).

Key Features:
- Immutable, shareable plans validated as they are built
- Deterministic SQL translation (WHERE vs HAVING, subquery wrapping)
- One guarded connection, retries for transient failures, timeouts

Example:
    >>> from lazyquery import Database, col
    >>>
    >>> db = Database()
    >>> db.create_table('bids', {'id': 'Int64', 'bidderID': 'Int64', 'bid': 'Int64'})
    >>> db.insert('bids', [{'id': 1, 'bidderID': 1, 'bid': 10},
    ...                    {'id': 2, 'bidderID': 4, 'bid': 20},
    ...                    {'id': 3, 'bidderID': 2, 'bid': 5}])
    >>>
    >>> bids = db.table('bids')
    >>> plan = (bids.filter(col('bidderID').isin([1, 4]))
    ...             .select('bid', 'bidderID', 'id')
    ...             .sort(['bidderID', 'id']))
    >>> plan.row_count()
    UNKNOWN
    >>> plan.materialize().rows
    [{'bid': 10, 'bidderID': 1, 'id': 1}, {'bid': 20, 'bidderID': 4, 'id': 2}]

Core Classes:
- Database: Entry point (connection, schema discovery, table setup)
- LazyHandle: Chainable lazy query
- Schema: Column names and abstract types
- Executor: Materializes plans
"""

from .core import LazyHandle
from .groupby import GroupedHandle
from .database import Database
from .schema import Schema, ColumnInfo
from .plan import PlanNode, Scan, Project, Filter, Sort, GroupAggregate, Join, Limit, Distinct
from .aggregates import AggregateSpec
from .expressions import Expression, Field, Literal, col, lit
from .conditions import Condition
from .translator import SQLTranslator
from .connection import Connection, Store
from .executor import Executor, get_executor, reset_executor
from .result import ResultSet, UNKNOWN
from .enums import JoinType, AggFunc, ColumnType
from .exceptions import (
    LazyQueryError,
    SchemaError,
    ValidationError,
    ColumnNotFoundError,
    TranslationError,
    ExecutionError,
    TableNotFoundError,
    ConnectionFailureError,
    QueryTimeoutError,
)
from . import config
from .config import (
    set_log_level,
    set_log_format,
    enable_debug,
    disable_debug,
    get_logger,
)

__version__ = "0.1.0"

__all__ = [
    # Entry points
    'Database',
    'LazyHandle',
    'GroupedHandle',
    # Plan
    'Schema',
    'ColumnInfo',
    'PlanNode',
    'Scan',
    'Project',
    'Filter',
    'Sort',
    'GroupAggregate',
    'Join',
    'Limit',
    'Distinct',
    'AggregateSpec',
    # Expressions
    'Expression',
    'Field',
    'Literal',
    'Condition',
    'col',
    'lit',
    # Translation / execution
    'SQLTranslator',
    'Connection',
    'Store',
    'Executor',
    'get_executor',
    'reset_executor',
    'ResultSet',
    'UNKNOWN',
    # Enums
    'JoinType',
    'AggFunc',
    'ColumnType',
    # Exceptions
    'LazyQueryError',
    'SchemaError',
    'ValidationError',
    'ColumnNotFoundError',
    'TranslationError',
    'ExecutionError',
    'TableNotFoundError',
    'ConnectionFailureError',
    'QueryTimeoutError',
    # Configuration
    'config',
    'set_log_level',
    'set_log_format',
    'enable_debug',
    'disable_debug',
    'get_logger',
]
