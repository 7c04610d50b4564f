"""
Tests for Schema and store type mapping.
"""

import unittest

from lazyquery import ColumnNotFoundError, ColumnType, Schema, SchemaError
from lazyquery.schema import store_type_to_column_type


class TestSchema(unittest.TestCase):
    """Schema construction and lookup."""

    def setUp(self):
        self.schema = Schema({'id': 'numeric', 'bidderID': 'numeric', 'bid': 'numeric', 'note': 'text'})

    def test_columns_keep_order(self):
        self.assertEqual(('id', 'bidderID', 'bid', 'note'), self.schema.columns)

    def test_type_of(self):
        self.assertEqual(ColumnType.numeric, self.schema.type_of('bid'))
        self.assertEqual(ColumnType.text, self.schema['note'])

    def test_accepts_pairs_and_enum_types(self):
        schema = Schema([('flag', ColumnType.boolean), ('name', 'TEXT')])
        self.assertEqual({'flag': 'boolean', 'name': 'text'}, schema.to_dict())

    def test_duplicate_column_rejected(self):
        with self.assertRaises(SchemaError):
            Schema([('a', 'numeric'), ('a', 'text')])

    def test_unknown_type_rejected(self):
        with self.assertRaises(SchemaError):
            Schema({'a': 'decimal'})

    def test_require_reports_missing_column(self):
        with self.assertRaises(ColumnNotFoundError) as ctx:
            self.schema.require(['bid', 'price'], operation='Filter')
        self.assertEqual('price', ctx.exception.column)
        self.assertEqual('Filter', ctx.exception.operation)
        self.assertIn("'bid'", str(ctx.exception))

    def test_project(self):
        projected = self.schema.project(['bid', 'id'])
        self.assertEqual(('bid', 'id'), projected.columns)
        # Original untouched
        self.assertEqual(4, len(self.schema))

    def test_immutable(self):
        with self.assertRaises(AttributeError):
            self.schema.extra = 1

    def test_equality_depends_on_order(self):
        a = Schema({'x': 'numeric', 'y': 'text'})
        b = Schema({'x': 'numeric', 'y': 'text'})
        c = Schema({'y': 'text', 'x': 'numeric'})
        self.assertTrue(a == b)
        self.assertEqual(hash(a), hash(b))
        self.assertFalse(a == c)

    def test_contains_and_iter(self):
        self.assertIn('note', self.schema)
        self.assertNotIn('price', self.schema)
        self.assertEqual(['id', 'bidderID', 'bid', 'note'], list(self.schema))

    def test_infos(self):
        infos = self.schema.infos()
        self.assertEqual('id', infos[0].name)
        self.assertEqual(ColumnType.numeric, infos[0].type)


class TestStoreTypes(unittest.TestCase):
    """Mapping of backing-store type names to abstract types."""

    def test_numeric_types(self):
        for name in ('Int64', 'UInt8', 'Float64', 'Decimal(10, 2)', 'Nullable(Int32)'):
            self.assertEqual(ColumnType.numeric, store_type_to_column_type(name), name)

    def test_text_types(self):
        for name in ('String', 'LowCardinality(Nullable(String))', 'FixedString(3)', 'DateTime64(3)', 'Date'):
            self.assertEqual(ColumnType.text, store_type_to_column_type(name), name)

    def test_boolean_type(self):
        self.assertEqual(ColumnType.boolean, store_type_to_column_type('Bool'))

    def test_unsupported_type(self):
        with self.assertRaises(SchemaError):
            store_type_to_column_type('Array(Int64)')

    def test_from_store_types(self):
        schema = Schema.from_store_types([('id', 'UInt64'), ('name', 'String')])
        self.assertEqual({'id': 'numeric', 'name': 'text'}, schema.to_dict())


if __name__ == '__main__':
    unittest.main()
