"""
Plan-to-SQL translation.

SQLTranslator walks a plan from its root Scan to the node being translated
and feeds each operation to an SQLBuilder. Translation is a pure function
of the node and its ancestors, so the same plan always yields the same SQL
and translating a prefix never depends on operations appended later.
"""

from typing import Optional

from .config import Dialect, get_dialect, get_logger
from .exceptions import TranslationError
from .plan import Distinct, Filter, GroupAggregate, Join, Limit, PlanNode, Project, Scan, Sort
from .sql_builder import SQLBuilder

__all__ = ['SQLTranslator']


class SQLTranslator:
    """
    Translate query plans into SQL for one dialect.

    Args:
        dialect: 'clickhouse' (default from config) or 'strict'
        quote_char: Identifier quote character

    Example:
        >>> translator = SQLTranslator()
        >>> translator.translate(plan)
        'SELECT "bid", "bidderID", "id" FROM "bids" WHERE "bidderID" IN (1,4) ORDER BY "bidderID" ASC, "id" ASC'
    """

    def __init__(self, dialect: Optional[str] = None, quote_char: str = '"'):
        dialect = dialect or get_dialect()
        if dialect not in (Dialect.CLICKHOUSE, Dialect.STRICT):
            raise ValueError(f"Invalid dialect: {dialect}. Use one of {Dialect.CLICKHOUSE!r}, {Dialect.STRICT!r}")
        self.dialect = dialect
        self.quote_char = quote_char
        self._logger = get_logger()

    @property
    def strict(self) -> bool:
        return self.dialect == Dialect.STRICT

    def translate(self, plan: PlanNode) -> str:
        """
        Translate a plan into one SQL statement.

        Raises:
            TranslationError: If an operation cannot be expressed in this dialect
        """
        sql = self._build(plan).build(self.quote_char)
        self._logger.debug("[Translate] %d nodes -> %s", len(plan), sql)
        return sql

    def translate_count(self, plan: PlanNode) -> str:
        """Translate a query returning the number of rows the plan produces."""
        return self._build(plan).build_count(self.quote_char)

    def explain(self, plan: PlanNode) -> str:
        """Human-readable description of the plan chain followed by its SQL."""
        lines = ["Plan:"]
        lines.extend(f"  {line}" for line in plan.explain().splitlines())
        lines.append(f"SQL ({self.dialect}):")
        lines.append(f"  {self.translate(plan)}")
        return "\n".join(lines)

    def _build(self, plan: PlanNode) -> SQLBuilder:
        chain = plan.chain()
        root = chain[0]
        if not isinstance(root, Scan):
            raise TranslationError(root.operation, "plan does not start with a Scan")

        builder = SQLBuilder(root.table, root.schema.columns, strict=self.strict)
        for node in chain[1:]:
            self._check_literals(node)
            if isinstance(node, Project):
                builder.add_project([(item.name, item.expression) for item in node.items])
            elif isinstance(node, Filter):
                builder.add_filter(node.predicate)
            elif isinstance(node, Sort):
                builder.add_sort(node.columns, node.ascending)
            elif isinstance(node, GroupAggregate):
                builder.add_group_aggregate(node.group_columns, node.aggregates)
            elif isinstance(node, Join):
                builder.add_join(self._build(node.other), node.keys, node.kind, node.right_columns)
            elif isinstance(node, Limit):
                builder.add_limit(node.count, node.offset)
            elif isinstance(node, Distinct):
                builder.add_distinct()
            else:
                raise TranslationError(node.operation, "no SQL translation for this operation")
        return builder

    def _check_literals(self, node: PlanNode) -> None:
        """Render a node's expressions once so bad literals are reported against the node."""
        if isinstance(node, Filter):
            expressions = [node.predicate]
        elif isinstance(node, Project):
            expressions = [item.expression for item in node.items if item.is_computed]
        else:
            return
        for expr in expressions:
            try:
                expr.to_sql(quote_char=self.quote_char)
            except TranslationError as e:
                raise TranslationError(node.operation, e.reason) from e
