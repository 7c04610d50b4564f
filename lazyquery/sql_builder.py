"""
SQL Builder for plan translation.

The builder turns a sequence of relational operations into nested SQL
layers. Each SQLLayer is one SELECT statement; an operation that cannot be
placed in the current layer without changing its meaning wraps the layer
as a subquery and starts a new outer layer:

    - filter / sort / aggregate after a LIMIT
    - aggregate after an aggregate (or after DISTINCT)
    - anything after a JOIN
    - a filter or expression referencing a column computed in the same layer

Output columns are always listed explicitly, in projected order.

Example SQL Generation:

    # Filter, project, sort -> one layer
    SELECT "bid", "bidderID", "id" FROM "bids"
    WHERE "bidderID" IN (1,4) ORDER BY "bidderID" ASC, "id" ASC

    # Computed column + filter referencing it
    SELECT "d" FROM (
        SELECT ("bid" * 2) AS "d" FROM "bids"
    ) AS __subq1__ WHERE "d" > 10

    # Filter after aggregation -> HAVING with the alias expanded
    SELECT "bidderID", min("bid") AS "smallestBid" FROM "bids"
    GROUP BY "bidderID" HAVING min("bid") > 5

ClickHouse resolves SELECT aliases anywhere in the same query level, so an
alias that reuses an input column name would capture references meant for
the input column. The builder wraps the layer first whenever such an alias
would collide with a clause already placed. When the collision is inside
one projection (a column swap), the expressions are computed under staging
names and renamed in an outer layer:

    SELECT "__id__" AS "id", "__bid__" AS "bid" FROM (
        SELECT "bid" AS "__id__", "id" AS "__bid__" FROM "bids"
    ) AS __subq1__

LEFT, RIGHT and FULL OUTER joins add ``SETTINGS join_use_nulls = 1`` so
unmatched rows carry NULL rather than the column type's default value.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

from .aggregates import AggregateSpec
from .conditions import Condition
from .enums import JoinType
from .exceptions import TranslationError
from .expressions import Expression, Field
from .utils import format_alias, format_identifier, format_table

__all__ = ['SQLLayer', 'JoinSource', 'SQLBuilder']

LEFT_ALIAS = '__l__'
RIGHT_ALIAS = '__r__'

OUTER_JOINS = (JoinType.left, JoinType.right, JoinType.outer)

# Output column source: None for a pass-through input column
ItemSource = Optional[Union[Expression, AggregateSpec]]


@dataclass
class JoinSource:
    """FROM clause joining two inner layers."""

    left: 'SQLLayer'
    right: 'SQLLayer'
    kind: JoinType
    keys: List[str] = field(default_factory=list)

    def to_sql(self, quote_char: str, depth: int) -> str:
        left_sql = self.left.to_sql(quote_char, depth + 1)
        right_sql = self.right.to_sql(quote_char, depth + 1)
        sql = f"({left_sql}) AS {LEFT_ALIAS} {self.kind.value} JOIN ({right_sql}) AS {RIGHT_ALIAS}"
        if self.keys:
            keys_sql = ", ".join(format_identifier(k, quote_char) for k in self.keys)
            sql += f" USING ({keys_sql})"
        return sql


@dataclass
class SQLLayer:
    """
    Represents a single SQL SELECT layer.

    Attributes:
        source: Table identifier, inner SQLLayer or JoinSource
        input_columns: Columns visible from the source
        items: Output columns as (name, source) pairs, source None for pass-through
        where_conditions: WHERE conditions (combined with AND)
        groupby_fields: GROUP BY column names
        aggregated: Whether this layer aggregates (GROUP BY may still be empty)
        having_conditions: HAVING conditions, each with the output columns
            (name -> source) it may reference, captured when it was added
        distinct: SELECT DISTINCT
        orderby_fields: ORDER BY (expression, ascending) pairs
        limit_value: LIMIT value
        offset_value: OFFSET value
        sealed: No further clause may be added (JOIN layers)
    """

    source: Union[str, 'SQLLayer', JoinSource]
    input_columns: List[str]
    items: List[Tuple[str, ItemSource]] = field(default_factory=list)
    where_conditions: List[Condition] = field(default_factory=list)
    groupby_fields: List[str] = field(default_factory=list)
    aggregated: bool = False
    having_conditions: List[Tuple[Condition, Dict[str, ItemSource]]] = field(default_factory=list)
    distinct: bool = False
    orderby_fields: List[Tuple[Expression, bool]] = field(default_factory=list)
    limit_value: Optional[int] = None
    offset_value: Optional[int] = None
    sealed: bool = False

    def output_names(self) -> List[str]:
        return [name for name, _ in self.items]

    def computed_names(self) -> Set[str]:
        """Names of output columns that are not plain input columns."""
        return {name for name, source in self.items if source is not None}

    def orderby_names(self) -> Set[str]:
        return {e.name for e, _ in self.orderby_fields if isinstance(e, Field) and e.table is None}

    def to_sql(self, quote_char: str = '"', depth: int = 0) -> str:
        """
        Render this layer as a SQL string.

        Args:
            quote_char: Quote character for identifiers
            depth: Nesting depth, used for deterministic subquery aliases

        Returns:
            SQL query string
        """
        parts = []

        # === SELECT clause ===
        select_items = self._build_select_items(quote_char)
        keyword = "SELECT DISTINCT" if self.distinct else "SELECT"
        parts.append(f"{keyword} {', '.join(select_items)}")

        # === FROM clause ===
        parts.append(self._build_from_clause(quote_char, depth))

        # === WHERE clause ===
        if self.where_conditions:
            combined = Condition.all(self.where_conditions)
            parts.append(f"WHERE {combined.to_sql(quote_char=quote_char)}")

        # === GROUP BY clause ===
        if self.groupby_fields:
            groupby_sql = ", ".join(format_identifier(f, quote_char) for f in self.groupby_fields)
            parts.append(f"GROUP BY {groupby_sql}")

        # === HAVING clause ===
        if self.having_conditions:
            having_items = []
            for condition, sources in self.having_conditions:
                substitutions = {name: source.to_sql(quote_char=quote_char) for name, source in sources.items()}
                having_items.append(condition.to_sql(quote_char=quote_char, substitutions=substitutions))
            parts.append(f"HAVING {' AND '.join(having_items)}")

        # === ORDER BY clause ===
        if self.orderby_fields:
            orderby_items = []
            for expr, asc in self.orderby_fields:
                orderby_items.append(f"{expr.to_sql(quote_char=quote_char)} {'ASC' if asc else 'DESC'}")
            parts.append(f"ORDER BY {', '.join(orderby_items)}")

        # === LIMIT / OFFSET ===
        if self.limit_value is not None:
            parts.append(f"LIMIT {self.limit_value}")
        if self.offset_value:
            parts.append(f"OFFSET {self.offset_value}")

        return " ".join(parts)

    def _build_select_items(self, quote_char: str) -> List[str]:
        select_items = []
        for name, source in self.items:
            if source is None:
                select_items.append(format_identifier(name, quote_char))
            else:
                select_items.append(format_alias(source.to_sql(quote_char=quote_char), name, quote_char))
        return select_items

    def _build_from_clause(self, quote_char: str, depth: int) -> str:
        if isinstance(self.source, SQLLayer):
            inner_sql = self.source.to_sql(quote_char, depth + 1)
            return f"FROM ({inner_sql}) AS __subq{depth + 1}__"
        if isinstance(self.source, JoinSource):
            return f"FROM {self.source.to_sql(quote_char, depth)}"
        return f"FROM {format_table(self.source, quote_char)}"


def _staging_name(name: str) -> str:
    return f"__{name}__"


def _referenced(source: ItemSource) -> Set[str]:
    if source is None:
        return set()
    if isinstance(source, AggregateSpec):
        return set(source.input_columns())
    return source.columns()


class SQLBuilder:
    """
    Layered SQL builder for relational plans.

    Operations are added in plan order; the builder decides whether each
    fits in the current layer or needs the current layer wrapped first.

    Args:
        table: Backing-table identifier of the root scan
        columns: Columns of the backing table, in schema order
        strict: Reject plans that rely on ordering by unselected columns

    Example:
        builder = SQLBuilder('bids', ['id', 'bidderID', 'bid'])
        builder.add_filter(Field('bidderID').isin([1, 4]))
        builder.add_sort(['id'], [True])
        sql = builder.build()
    """

    def __init__(self, table: str, columns: Sequence[str], strict: bool = False):
        self.strict = strict
        # Query-level SETTINGS, rendered once after the outermost layer
        self.settings: Dict[str, int] = {}
        self.layer =SQLLayer(source=table, input_columns=list(columns), items=[(c, None) for c in columns])

    # ========== Layer management ==========

    def _wrap(self, inherit_order: bool = True) -> None:
        """
        Wrap the current layer as a subquery, creating a new outer layer.

        The outer layer passes every output column through. Ordering moves
        to the outer layer when all its keys are visible there; the inner
        layer keeps it only when a LIMIT depends on it.
        """
        inner = self.layer
        outputs = inner.output_names()
        orderby = []
        plain_keys = all(isinstance(e, Field) and e.table is None for e, _ in inner.orderby_fields)
        if inherit_order and inner.orderby_fields and plain_keys:
            if inner.orderby_names() <= set(outputs):
                orderby = [(Field(e.name), asc) for e, asc in inner.orderby_fields]
                if inner.limit_value is None:
                    inner.orderby_fields = []
        self.layer = SQLLayer(
            source=inner,
            input_columns=list(outputs),
            items=[(name, None) for name in outputs],
            orderby_fields=orderby,
        )

    def _shadow_conflict(self, items: List[Tuple[str, ItemSource]]) -> Optional[Tuple[str, str]]:
        """First (alias, reader) pair where an alias hides an input column another item reads."""
        if self.strict:
            return None
        inputs = set(self.layer.input_columns)
        for name, source in items:
            if source is None or name not in inputs:
                continue
            for other_name, other in items:
                if other_name != name and name in _referenced(other):
                    return name, other_name
        return None

    def _check_shadowing(self, operation: str, items: List[Tuple[str, ItemSource]]) -> None:
        conflict = self._shadow_conflict(items)
        if conflict:
            name, other_name = conflict
            raise TranslationError(
                operation,
                f"output name '{name}' reuses an input column that '{other_name}' also reads",
            )

    # ========== Operations ==========

    def add_project(self, items: Sequence[Tuple[str, Optional[Expression]]]) -> 'SQLBuilder':
        """
        Replace the output columns.

        Args:
            items: (name, expression) pairs, expression None for a plain column

        Returns:
            self for chaining
        """
        layer = self.layer
        computed = [(name, expr) for name, expr in items if expr is not None]
        referenced = set().union(*(expr.columns() for _, expr in computed)) if computed else set()

        if layer.sealed or layer.distinct or referenced & layer.computed_names():
            self._wrap()
        else:
            shadow = {name for name, _ in computed if name in layer.input_columns}
            has_clauses = layer.where_conditions or layer.having_conditions or layer.orderby_fields or layer.aggregated
            if shadow and has_clauses:
                lost = shadow & layer.orderby_names()
                if lost:
                    if self.strict:
                        raise TranslationError(
                            "Sort", f"sort key '{sorted(lost)[0]}' is replaced by a later Project"
                        )
                    self._wrap(inherit_order=False)
                else:
                    self._wrap()

        layer = self.layer
        current = dict(layer.items)
        new_items = [(name, current[name] if expr is None else expr) for name, expr in items]
        if self._shadow_conflict(new_items):
            # Compute under staging names, then rename in an outer layer
            staged = [(name if expr is None else _staging_name(name), expr) for name, expr in items]
            self.add_project(staged)
            return self.add_project(
                [(name, None if expr is None else Field(_staging_name(name))) for name, expr in items]
            )

        # Sort keys dropped by this projection
        kept = {name for name, _ in new_items}
        orderby = []
        for expr, asc in layer.orderby_fields:
            if isinstance(expr, Field) and expr.table is None and expr.name not in kept:
                if self.strict:
                    raise TranslationError(
                        "Sort", f"sort key '{expr.name}' is dropped by a later Project; cannot order by unselected columns"
                    )
                if layer.aggregated:
                    raise TranslationError(
                        "Sort", f"sort key '{expr.name}' is dropped by a later Project in an aggregated query"
                    )
                source = current.get(expr.name)
                if source is not None:
                    expr = source
            orderby.append((expr, asc))
        layer.orderby_fields = orderby
        layer.items = new_items
        return self

    def add_filter(self, condition: Condition) -> 'SQLBuilder':
        """
        Add a filter condition.

        Goes to WHERE before aggregation and to HAVING after it.
        """
        layer = self.layer
        if layer.sealed or layer.limit_value is not None:
            self._wrap()
        elif not layer.aggregated and condition.columns() & layer.computed_names():
            self._wrap()
        elif layer.aggregated and condition.columns() & layer.computed_names() & set(layer.input_columns):
            # Expanding an alias that reuses its input column's name would nest the aggregate
            self._wrap()

        if self.layer.aggregated:
            # Aliases are expanded to their expressions in HAVING
            sources = {name: source for name, source in self.layer.items if source is not None}
            self.layer.having_conditions.append((condition, sources))
        else:
            self.layer.where_conditions.append(condition)
        return self

    def add_sort(self, columns: Sequence[str], ascending: Sequence[bool]) -> 'SQLBuilder':
        """Set the ordering; a later sort replaces an earlier one."""
        if self.layer.sealed or self.layer.limit_value is not None:
            self._wrap()
        self.layer.orderby_fields = [(Field(c), asc) for c, asc in zip(columns, ascending)]
        return self

    def add_group_aggregate(self, group_columns: Sequence[str], aggregates: Sequence[AggregateSpec]) -> 'SQLBuilder':
        """Group by columns and compute aggregates."""
        layer = self.layer
        referenced = set(group_columns)
        for spec in aggregates:
            referenced.update(spec.input_columns())

        if (
            layer.sealed
            or layer.aggregated
            or layer.distinct
            or layer.limit_value is not None
            or referenced & layer.computed_names()
        ):
            self._wrap()
        elif layer.where_conditions and any(spec.name in layer.input_columns for spec in aggregates):
            self._wrap()

        layer = self.layer
        items = [(c, None) for c in group_columns] + [(spec.name, spec) for spec in aggregates]
        self._check_shadowing("GroupAggregate", items)

        layer.items = items
        layer.groupby_fields = list(group_columns)
        layer.aggregated = True
        # Aggregation does not preserve row order
        layer.orderby_fields = []
        return self

    def add_join(
        self,
        right: 'SQLBuilder',
        keys: Sequence[str],
        kind: JoinType,
        right_columns: Sequence[Tuple[str, str]],
    ) -> 'SQLBuilder':
        """
        Join the current layer with another builder's layer.

        Args:
            right: Builder holding the right-hand plan
            keys: USING key columns (empty for CROSS)
            kind: Join kind
            right_columns: (source name, output name) of the right non-key columns
        """
        left_layer = self.layer
        right_layer = right.layer
        for side in (left_layer, right_layer):
            # Join output order is unspecified
            if side.limit_value is None:
                side.orderby_fields = []

        items: List[Tuple[str, ItemSource]] = []
        for name in left_layer.output_names():
            items.append((name, None) if name in keys else (name, Field(name, table=LEFT_ALIAS)))
        for source_name, out_name in right_columns:
            items.append((out_name, Field(source_name, table=RIGHT_ALIAS)))

        self.settings.update(right.settings)
        if kind in OUTER_JOINS:
            # Unmatched rows get NULL instead of the column type's default value
            self.settings['join_use_nulls'] = 1

        self.layer = SQLLayer(
            source=JoinSource(left_layer, right_layer, kind, list(keys)),
            input_columns=[name for name, _ in items],
            items=items,
            sealed=True,
        )
        return self

    def add_limit(self, count: int, offset: int = 0) -> 'SQLBuilder':
        """Add LIMIT/OFFSET, combining with an existing limit."""
        layer = self.layer
        if layer.sealed:
            self._wrap()
            layer = self.layer

        if layer.limit_value is None:
            layer.limit_value = count
            layer.offset_value = offset
        else:
            old_offset = layer.offset_value or 0
            layer.offset_value = old_offset + offset
            layer.limit_value = min(count, max(layer.limit_value - offset, 0))
        return self

    def add_distinct(self) -> 'SQLBuilder':
        """Make the current layer SELECT DISTINCT."""
        if self.layer.sealed or self.layer.limit_value is not None:
            self._wrap()
        self.layer.distinct = True
        return self

    def build(self, quote_char: str = '"') -> str:
        """
        Build the final SQL string.

        Args:
            quote_char: Quote character for identifiers

        Returns:
            SQL query string
        """
        return self.layer.to_sql(quote_char) + self._settings_sql()

    def build_count(self, quote_char: str = '"') -> str:
        """Build a query returning the number of rows the plan produces."""
        inner_sql = self.layer.to_sql(quote_char)
        count_sql = f'SELECT count(*) AS {format_identifier("count", quote_char)} FROM ({inner_sql}) AS __subq0__'
        return count_sql + self._settings_sql()

    def _settings_sql(self) -> str:
        if not self.settings:
            return ""
        return " SETTINGS " + ", ".join(f"{name} = {value}" for name, value in sorted(self.settings.items()))
