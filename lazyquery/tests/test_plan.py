"""
Tests for the immutable query plan: validation at construction time,
structural sharing and output schemas.
"""

import threading
import unittest

from lazyquery import (
    AggregateSpec,
    ColumnNotFoundError,
    ColumnType,
    Distinct,
    Filter,
    GroupAggregate,
    Join,
    JoinType,
    Limit,
    Project,
    Scan,
    Schema,
    Sort,
    ValidationError,
    col,
)


def bids_scan():
    return Scan('bids', Schema({'id': 'numeric', 'bidderID': 'numeric', 'bid': 'numeric'}))


class TestPlanChain(unittest.TestCase):
    """Append-only chains and structural sharing."""

    def test_append_returns_new_node(self):
        scan = bids_scan()
        filtered = scan.filter(col('bid') > 5)
        self.assertIsInstance(filtered, Filter)
        self.assertIs(scan, filtered.parent)
        self.assertIsNone(scan.parent)

    def test_nodes_are_frozen(self):
        scan = bids_scan()
        with self.assertRaises(AttributeError):
            scan.table = 'other'

    def test_chain_and_root(self):
        plan = bids_scan().filter(col('bid') > 5).project('bid').sort('bid')
        self.assertEqual(['Scan', 'Filter', 'Project', 'Sort'], [n.operation for n in plan.chain()])
        self.assertEqual('bids', plan.root.table)
        self.assertEqual(4, len(plan))

    def test_branches_share_ancestor(self):
        base = bids_scan().filter(col('bid') > 5)
        left = base.sort('id')
        right = base.project('bid')
        self.assertIs(base, left.parent)
        self.assertIs(base, right.parent)
        # Extending one branch leaves the other alone
        left.limit(1)
        self.assertEqual(3, len(left))
        self.assertEqual(('bid',), right.schema.columns)
        self.assertEqual(('id', 'bidderID', 'bid'), base.schema.columns)

    def test_concurrent_construction(self):
        base = bids_scan().filter(col('bid') > 0)
        results = {}

        def build(i):
            results[i] = base.filter(col('id') > i).sort('id').project('id')

        threads = [threading.Thread(target=build, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(8, len(results))
        for plan in results.values():
            self.assertIs(base, plan.chain()[1])
            self.assertEqual(('id',), plan.schema.columns)

    def test_explain(self):
        plan = bids_scan().filter(col('bid') > 5).project('bid')
        lines = plan.explain().splitlines()
        self.assertEqual("[1] Scan bids ['id', 'bidderID', 'bid']", lines[0])
        self.assertEqual('[2] Filter "bid" > 5', lines[1])
        self.assertEqual('[3] Project [bid]', lines[2])

    def test_tables_include_joined_plans(self):
        users = Scan('users', Schema({'bidderID': 'numeric', 'name': 'text'}))
        plan = bids_scan().join(users, 'bidderID').filter(col('bid') > 1)
        self.assertEqual(['bids', 'users'], plan.tables())


class TestColumnValidation(unittest.TestCase):
    """Unknown columns fail when the operation is appended."""

    def test_filter_after_project_drops_column(self):
        scan = bids_scan()
        for kept in ('id', 'bidderID', 'bid'):
            projected = scan.project(kept)
            for dropped in {'id', 'bidderID', 'bid'} - {kept}:
                with self.assertRaises(ColumnNotFoundError) as ctx:
                    projected.filter(col(dropped) > 1)
                self.assertEqual(dropped, ctx.exception.column)
                self.assertEqual('Filter', ctx.exception.operation)

    def test_unknown_column_everywhere(self):
        scan = bids_scan()
        with self.assertRaises(ColumnNotFoundError):
            scan.project('price')
        with self.assertRaises(ColumnNotFoundError):
            scan.sort('price')
        with self.assertRaises(ColumnNotFoundError):
            scan.group_aggregate('price')
        with self.assertRaises(ColumnNotFoundError):
            scan.project((col('price') * 2).as_('p'))

    def test_aggregate_consumes_columns(self):
        grouped = bids_scan().group_aggregate('bidderID', smallestBid=('bid', 'min'))
        self.assertEqual(('bidderID', 'smallestBid'), grouped.schema.columns)
        with self.assertRaises(ColumnNotFoundError):
            grouped.group_aggregate('bidderID', [AggregateSpec.max('bid')])
        with self.assertRaises(ColumnNotFoundError):
            grouped.filter(col('bid') > 1)

    def test_aggregate_input_missing(self):
        with self.assertRaises(ColumnNotFoundError) as ctx:
            bids_scan().group_aggregate('bidderID', [AggregateSpec.sum('price')])
        self.assertEqual('GroupAggregate', ctx.exception.operation)


class TestNodeValidation(unittest.TestCase):
    """Argument checks other than column names."""

    def test_computed_column_needs_alias(self):
        with self.assertRaises(ValidationError):
            bids_scan().project(col('bid') * 2)

    def test_duplicate_output_names(self):
        with self.assertRaises(ValidationError):
            bids_scan().project('bid', (col('id') + 1).as_('bid'))

    def test_project_requires_columns(self):
        with self.assertRaises(ValidationError):
            bids_scan().project()

    def test_filter_requires_condition(self):
        with self.assertRaises(ValidationError):
            bids_scan().filter(col('bid') + 1)

    def test_filter_on_boolean_column(self):
        scan = Scan('t', Schema({'flag': 'boolean', 'n': 'numeric'}))
        self.assertEqual('"flag" = true', scan.filter(col('flag')).predicate.to_sql())
        with self.assertRaises(ValidationError):
            scan.filter(col('n'))

    def test_sort_directions(self):
        plan = bids_scan().sort(['bidderID', 'id'], [True, False])
        self.assertIsInstance(plan, Sort)
        self.assertEqual((True, False), plan.ascending)
        with self.assertRaises(ValidationError):
            bids_scan().sort(['bidderID', 'id'], [True])

    def test_limit_validation(self):
        scan = bids_scan()
        self.assertIsInstance(scan.limit(0), Limit)
        for bad in (-1, 1.5, True, '3'):
            with self.assertRaises(ValidationError):
                scan.limit(bad)
        with self.assertRaises(ValidationError):
            scan.limit(5, offset=-2)

    def test_empty_group_aggregate(self):
        with self.assertRaises(ValidationError):
            bids_scan().group_aggregate()

    def test_sum_of_text_rejected(self):
        scan = Scan('t', Schema({'k': 'numeric', 'name': 'text'}))
        with self.assertRaises(ValidationError):
            scan.group_aggregate('k', [AggregateSpec.sum('name')])

    def test_scan_requires_columns(self):
        with self.assertRaises(ValidationError):
            Scan('empty', Schema({}))


class TestOutputSchema(unittest.TestCase):
    """Output schemas computed by each node."""

    def test_project_types(self):
        scan = Scan('t', Schema({'id': 'numeric', 'name': 'text'}))
        plan = scan.project('name', (col('id') * 2).as_('double_id'))
        self.assertIsInstance(plan, Project)
        self.assertEqual({'name': 'text', 'double_id': 'numeric'}, plan.schema.to_dict())

    def test_group_aggregate_types(self):
        scan = Scan('t', Schema({'k': 'text', 'name': 'text', 'v': 'numeric'}))
        plan = scan.group_aggregate('k', [AggregateSpec.min('name'), AggregateSpec.mean('v'), AggregateSpec.count()])
        self.assertIsInstance(plan, GroupAggregate)
        self.assertEqual(
            {'k': 'text', 'min_name': 'text', 'mean_v': 'numeric', 'count': 'numeric'},
            plan.schema.to_dict(),
        )

    def test_join_schema_and_suffix(self):
        bids = bids_scan()
        other = Scan('other', Schema({'bidderID': 'numeric', 'bid': 'numeric', 'name': 'text'}))
        plan = bids.join(other, 'bidderID', how='left')
        self.assertIsInstance(plan, Join)
        self.assertEqual(JoinType.left, plan.kind)
        self.assertEqual(('id', 'bidderID', 'bid', 'bid_right', 'name'), plan.schema.columns)
        self.assertEqual((('bid', 'bid_right'), ('name', 'name')), plan.right_columns)

    def test_join_key_validation(self):
        bids = bids_scan()
        names = Scan('names', Schema({'bidderID': 'text'}))
        with self.assertRaises(ValidationError):
            bids.join(names, 'bidderID')
        with self.assertRaises(ColumnNotFoundError):
            bids.join(names, 'id')
        with self.assertRaises(ValidationError):
            bids.join(names, [])
        with self.assertRaises(ValidationError):
            bids.join(names, 'bidderID', how='sideways')

    def test_cross_join(self):
        colors = Scan('colors', Schema({'color': 'text'}))
        plan = bids_scan().join(colors, how='cross')
        self.assertEqual(('id', 'bidderID', 'bid', 'color'), plan.schema.columns)
        with self.assertRaises(ValidationError):
            bids_scan().join(colors, 'color', how='cross')

    def test_distinct_keeps_schema(self):
        plan = bids_scan().project('bidderID').distinct()
        self.assertIsInstance(plan, Distinct)
        self.assertEqual(('bidderID',), plan.schema.columns)
        self.assertEqual(ColumnType.numeric, plan.schema.type_of('bidderID'))

    def test_after_aggregation(self):
        grouped = bids_scan().group_aggregate('bidderID', n=('id', 'count'))
        self.assertFalse(bids_scan().filter(col('bid') > 1).after_aggregation)
        self.assertTrue(grouped.filter(col('n') > 1).after_aggregation)
        self.assertTrue(grouped.sort('n').filter(col('n') > 1).after_aggregation)


if __name__ == '__main__':
    unittest.main()
