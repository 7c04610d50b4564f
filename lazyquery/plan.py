"""
Query Plan for lazyquery.

A QueryPlan is an append-only chain of immutable operation nodes rooted at a
Scan of a backing table. Appending an operation returns a new node whose
parent is the receiver; nothing is ever mutated, so one partial plan can be
shared by any number of downstream branches (structural sharing, not copying).

Each node computes its output schema when it is created, and validates every
column it references against its parent's output schema. Mistakes therefore
surface as ColumnNotFoundError at the moment the operation is appended, not
when the plan is finally executed.

Example:
    >>> scan = Scan('bids', Schema({'id': 'numeric', 'bidderID': 'numeric', 'bid': 'numeric'}))
    >>> plan = (scan.filter(Field('bidderID').isin([1, 4]))
    ...             .project('bid', 'bidderID', 'id')
    ...             .sort(['bidderID', 'id']))
    >>> plan.schema.columns
    ('bid', 'bidderID', 'id')
    >>> scan.project('bid').filter(Field('id') > 1)
    Traceback (most recent call last):
    ColumnNotFoundError: Column 'id' not found in Filter. Available columns: ['bid']
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .aggregates import AggregateSpec, normalize_aggregates
from .conditions import BinaryCondition, Condition
from .enums import ColumnType, JoinType
from .exceptions import ValidationError
from .expressions import Expression, Field, Literal
from .schema import Schema
from .utils import normalize_ascending

__all__ = [
    'PlanNode',
    'Scan',
    'Project',
    'ProjectItem',
    'Filter',
    'Sort',
    'GroupAggregate',
    'Join',
    'Limit',
    'Distinct',
]

JOIN_SUFFIX = '_right'


@dataclass(frozen=True, eq=False)
class PlanNode:
    """
    Base class for plan nodes.

    Attributes:
        schema: Output schema of this node (computed, validated on creation)
    """

    schema: Schema = field(init=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, 'schema', self._build_schema())

    def _build_schema(self) -> Schema:
        raise NotImplementedError(f"{type(self).__name__} must implement _build_schema()")

    @property
    def parent(self) -> Optional['PlanNode']:
        return None

    @property
    def operation(self) -> str:
        """Operation name used in error messages and explain()."""
        return type(self).__name__

    def describe(self) -> str:
        """One-line human-readable description of this node."""
        raise NotImplementedError(f"{type(self).__name__} must implement describe()")

    # ========== Chain inspection ==========

    def chain(self) -> List['PlanNode']:
        """Nodes from the root Scan down to this node."""
        nodes = []
        node = self
        while node is not None:
            nodes.append(node)
            node = node.parent
        nodes.reverse()
        return nodes

    @property
    def root(self) -> 'Scan':
        return self.chain()[0]

    def tables(self) -> List[str]:
        """Backing tables this plan reads, including joined plans, in first-seen order."""
        seen: List[str] = []
        for node in self.chain():
            names = [node.table] if isinstance(node, Scan) else node.other.tables() if isinstance(node, Join) else []
            for name in names:
                if name not in seen:
                    seen.append(name)
        return seen

    @property
    def after_aggregation(self) -> bool:
        """Whether this node is downstream of a GroupAggregate (up to the last Join)."""
        node = self.parent
        while node is not None and not isinstance(node, (Scan, Join)):
            if isinstance(node, GroupAggregate):
                return True
            node = node.parent
        return False

    def explain(self) -> str:
        """Numbered description of every node in the chain."""
        lines = []
        for i, node in enumerate(self.chain(), 1):
            lines.append(f"[{i}] {node.describe()}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.chain())

    # ========== Chain building ==========

    def project(self, *columns: Union[str, Expression, Sequence[Union[str, Expression]]]) -> 'Project':
        """
        Keep only the given columns, in the given order.

        Accepts column names and aliased expressions:
            plan.project('bid', (Field('bid') * 2).as_('double_bid'))
        """
        if len(columns) == 1 and isinstance(columns[0], (list, tuple)):
            columns = tuple(columns[0])
        return Project(self, tuple(columns))

    def filter(self, predicate: Union[Condition, Field]) -> 'Filter':
        return Filter(self, predicate)

    def sort(self, columns: Union[str, Sequence[str]], ascending: Union[bool, Sequence[bool]] = True) -> 'Sort':
        if isinstance(columns, (str, Field)):
            columns = [columns]
        names = tuple(c.name if isinstance(c, Field) else c for c in columns)
        return Sort(self, names, tuple(normalize_ascending(ascending, len(names))))

    def group_aggregate(
        self,
        group_columns: Union[str, Sequence[str]] = (),
        aggregates: Union[AggregateSpec, Iterable] = (),
        **named,
    ) -> 'GroupAggregate':
        if isinstance(group_columns, (str, Field)):
            group_columns = [group_columns]
        names = tuple(c.name if isinstance(c, Field) else c for c in group_columns)
        specs = tuple(normalize_aggregates(aggregates, named))
        return GroupAggregate(self, names, specs)

    def join(self, other: 'PlanNode', on: Union[str, Sequence[str]] = (), how: Union[str, JoinType] = 'inner') -> 'Join':
        if isinstance(on, str):
            on = [on]
        return Join(self, other, tuple(on), JoinType.parse(how))

    def limit(self, count: int, offset: int = 0) -> 'Limit':
        return Limit(self, count, offset)

    def distinct(self) -> 'Distinct':
        return Distinct(self)


@dataclass(frozen=True, eq=False)
class Scan(PlanNode):
    """Root node: read every column of a backing table."""

    table: str
    source_schema: Schema

    def _build_schema(self) -> Schema:
        if not isinstance(self.table, str) or not self.table:
            raise ValidationError(f"Table identifier must be a non-empty string, got {self.table!r}")
        if not isinstance(self.source_schema, Schema):
            object.__setattr__(self, 'source_schema', Schema(self.source_schema))
        if len(self.source_schema) == 0:
            raise ValidationError(f"Table '{self.table}' has no columns")
        return self.source_schema

    def describe(self) -> str:
        return f"Scan {self.table} {list(self.schema.columns)}"


@dataclass(frozen=True)
class ProjectItem:
    """One projected output column: a plain column or an aliased expression."""

    name: str
    expression: Optional[Expression] = None

    @property
    def is_computed(self) -> bool:
        return self.expression is not None


@dataclass(frozen=True, eq=False)
class Project(PlanNode):
    """Keep (and optionally compute) output columns in the given order."""

    input: PlanNode
    columns: Tuple[Union[str, Expression], ...]
    items: Tuple[ProjectItem, ...] = field(init=False, repr=False)

    @property
    def parent(self) -> PlanNode:
        return self.input

    def _build_schema(self) -> Schema:
        source = self.input.schema
        if not self.columns:
            raise ValidationError("Project requires at least one column")

        items = []
        output = []
        for column in self.columns:
            if isinstance(column, Field) and not column.alias:
                column = column.name
            if isinstance(column, str):
                source.require([column], operation=self.operation)
                items.append(ProjectItem(column))
                output.append((column, source.type_of(column)))
            elif isinstance(column, Expression):
                if not column.alias:
                    raise ValidationError(f"Computed column needs an alias: {column.to_sql()} (use .as_('name'))")
                source.require(sorted(column.columns()), operation=self.operation)
                items.append(ProjectItem(column.alias, column))
                output.append((column.alias, column.infer_type(source)))
            else:
                raise ValidationError(f"Cannot project {column!r}")

        names = [name for name, _ in output]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate output columns in Project: {duplicates}")

        object.__setattr__(self, 'items', tuple(items))
        return Schema(output)

    def describe(self) -> str:
        parts = [item.name if not item.is_computed else f"{item.expression.to_sql()} AS {item.name}" for item in self.items]
        return f"Project [{', '.join(parts)}]"


@dataclass(frozen=True, eq=False)
class Filter(PlanNode):
    """Keep rows matching a predicate."""

    input: PlanNode
    predicate: Condition

    @property
    def parent(self) -> PlanNode:
        return self.input

    def _build_schema(self) -> Schema:
        source = self.input.schema
        predicate = self.predicate
        if isinstance(predicate, Field):
            # A bare boolean column filters on its truth value
            source.require([predicate.name], operation=self.operation)
            if source.type_of(predicate.name) != ColumnType.boolean:
                raise ValidationError(f"Filter on non-boolean column '{predicate.name}' needs a comparison")
            predicate = BinaryCondition('=', predicate, Literal(True))
            object.__setattr__(self, 'predicate', predicate)
        if not isinstance(predicate, Condition):
            raise ValidationError(f"Filter requires a condition, got {type(predicate).__name__}")

        source.require(sorted(predicate.columns()), operation=self.operation)
        predicate.infer_type(source)
        return source

    def describe(self) -> str:
        stage = " (post-aggregation)" if self.after_aggregation else ""
        return f"Filter{stage} {self.predicate.to_sql()}"


@dataclass(frozen=True, eq=False)
class Sort(PlanNode):
    """Order rows by columns; directions are True for ascending."""

    input: PlanNode
    columns: Tuple[str, ...]
    ascending: Tuple[bool, ...]

    @property
    def parent(self) -> PlanNode:
        return self.input

    def _build_schema(self) -> Schema:
        if not self.columns:
            raise ValidationError("Sort requires at least one column")
        if len(self.columns) != len(self.ascending):
            raise ValidationError("Sort columns and directions differ in length")
        self.input.schema.require(self.columns, operation=self.operation)
        return self.input.schema

    def describe(self) -> str:
        keys = [f"{c} {'ASC' if asc else 'DESC'}" for c, asc in zip(self.columns, self.ascending)]
        return f"Sort [{', '.join(keys)}]"


@dataclass(frozen=True, eq=False)
class GroupAggregate(PlanNode):
    """Group rows by columns and compute aggregates per group."""

    input: PlanNode
    group_columns: Tuple[str, ...]
    aggregates: Tuple[AggregateSpec, ...]

    @property
    def parent(self) -> PlanNode:
        return self.input

    def _build_schema(self) -> Schema:
        source = self.input.schema
        if not self.group_columns and not self.aggregates:
            raise ValidationError("GroupAggregate requires group columns or aggregates")

        source.require(self.group_columns, operation=self.operation)
        output = [(c, source.type_of(c)) for c in self.group_columns]
        for spec in self.aggregates:
            source.require(spec.input_columns(), operation=self.operation)
            input_type = source.type_of(spec.column) if spec.input_columns() else None
            if input_type is not None:
                spec.check_input_type(input_type)
            output.append((spec.name, spec.output_type(input_type)))

        names = [name for name, _ in output]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate output columns in GroupAggregate: {duplicates}")
        return Schema(output)

    def describe(self) -> str:
        aggs = ", ".join(str(spec) for spec in self.aggregates)
        return f"GroupAggregate by {list(self.group_columns)} [{aggs}]"


@dataclass(frozen=True, eq=False)
class Join(PlanNode):
    """
    Join with another plan on shared key columns.

    Output columns: left columns, then right non-key columns. A right column
    whose name is already taken gets the '_right' suffix.
    """

    input: PlanNode
    other: PlanNode
    keys: Tuple[str, ...]
    kind: JoinType
    right_columns: Tuple[Tuple[str, str], ...] = field(init=False, repr=False)

    @property
    def parent(self) -> PlanNode:
        return self.input

    def _build_schema(self) -> Schema:
        if not isinstance(self.other, PlanNode):
            raise ValidationError(f"Join requires another plan, got {type(self.other).__name__}")
        left = self.input.schema
        right = self.other.schema

        if self.kind is JoinType.cross:
            if self.keys:
                raise ValidationError("CROSS join takes no join keys")
        else:
            if not self.keys:
                raise ValidationError(f"{self.kind.name} join requires at least one key column")
            left.require(self.keys, operation=self.operation)
            right.require(self.keys, operation=self.operation)
            for key in self.keys:
                if left.type_of(key) != right.type_of(key):
                    raise ValidationError(
                        f"Join key '{key}' has type {left.type_of(key).value} on the left "
                        f"and {right.type_of(key).value} on the right"
                    )

        output = list(left.items())
        taken = set(left.columns)
        right_columns = []
        for name, col_type in right.items():
            if name in self.keys:
                continue
            out_name = name
            if out_name in taken:
                out_name = f"{name}{JOIN_SUFFIX}"
                if out_name in taken:
                    raise ValidationError(f"Join output column '{out_name}' is ambiguous")
            taken.add(out_name)
            right_columns.append((name, out_name))
            output.append((out_name, col_type))

        object.__setattr__(self, 'right_columns', tuple(right_columns))
        return Schema(output)

    def describe(self) -> str:
        using = f" USING {list(self.keys)}" if self.keys else ""
        return f"Join {self.kind.name} with ({' -> '.join(n.describe() for n in self.other.chain())}){using}"


@dataclass(frozen=True, eq=False)
class Limit(PlanNode):
    """Keep at most `count` rows after skipping `offset` rows."""

    input: PlanNode
    count: int
    offset: int = 0

    @property
    def parent(self) -> PlanNode:
        return self.input

    def _build_schema(self) -> Schema:
        for name, value in (('count', self.count), ('offset', self.offset)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"Limit {name} must be a non-negative integer, got {value!r}")
        return self.input.schema

    def describe(self) -> str:
        offset = f" OFFSET {self.offset}" if self.offset else ""
        return f"Limit {self.count}{offset}"


@dataclass(frozen=True, eq=False)
class Distinct(PlanNode):
    """Drop duplicate rows."""

    input: PlanNode

    @property
    def parent(self) -> PlanNode:
        return self.input

    def _build_schema(self) -> Schema:
        return self.input.schema

    def describe(self) -> str:
        return "Distinct"
