"""
Tests for the Executor and Connection against a controllable fake store:
retries, timeouts, scoped connection release and error mapping.
"""

import threading
import unittest
from unittest.mock import call, patch

import pandas as pd

from lazyquery import (
    ColumnNotFoundError,
    Connection,
    ConnectionFailureError,
    ExecutionError,
    Executor,
    LazyHandle,
    QueryTimeoutError,
    Schema,
    SQLTranslator,
    TableNotFoundError,
    TranslationError,
    ValidationError,
    col,
)
from lazyquery.tests.fakes import FakeStore

BIDS = Schema({'id': 'numeric', 'bidderID': 'numeric', 'bid': 'numeric'})


class ExecutorTestCase(unittest.TestCase):
    def setUp(self):
        self.store = FakeStore()
        self.connection = Connection(':memory:', connector=self.store)
        self.executor = Executor(self.connection, SQLTranslator('clickhouse'), max_retries=2, retry_backoff=0)
        self.bids = LazyHandle.scan('bids', BIDS, executor=self.executor)

    def assertReleased(self):
        self.assertFalse(self.connection._lock.locked(), "connection lock still held")


class TestMaterialize(ExecutorTestCase):
    """Successful execution paths."""

    def test_materialize(self):
        result = self.bids.filter(col('bid') > 5).materialize()
        self.assertEqual([{'id': 1, 'bidderID': 1, 'bid': 10}], result.rows)
        self.assertEqual(
            ['EXISTS TABLE "bids"', 'SELECT "id", "bidderID", "bid" FROM "bids" WHERE "bid" > 5'],
            self.store.queries,
        )
        self.assertReleased()

    def test_query_submitted_once(self):
        self.bids.materialize()
        self.assertEqual(1, len(self.store.data_queries))

    def test_rows_keep_store_order(self):
        self.store.result = pd.DataFrame({'id': [3, 1, 2], 'bidderID': [2, 1, 4], 'bid': [5, 10, 20]})
        result = self.bids.materialize()
        self.assertEqual([3, 1, 2], result.column('id'))

    def test_zero_rows(self):
        self.store.result = pd.DataFrame({'id': [], 'bidderID': [], 'bid': []})
        result = self.bids.filter(col('bid') > 1000).materialize()
        self.assertEqual(0, result.row_count)
        self.assertTrue(result.empty)
        self.assertEqual(['id', 'bidderID', 'bid'], result.columns)

    def test_store_returns_no_columns(self):
        self.store.result = pd.DataFrame()
        result = self.bids.project('bid', 'id').materialize()
        self.assertEqual(['bid', 'id'], result.columns)
        self.assertEqual([], result.rows)

    def test_preview_appends_limit(self):
        handle = self.bids.sort('id')
        self.executor.preview(handle, 2)
        self.assertEqual(
            'SELECT "id", "bidderID", "bid" FROM "bids" ORDER BY "id" ASC LIMIT 2',
            self.store.data_queries[-1],
        )
        self.assertNotIn('LIMIT', handle.to_sql())

    def test_count_rows(self):
        self.store.result = pd.DataFrame({'count': [3]})
        self.assertEqual(3, self.bids.filter(col('bid') > 1).count_rows())
        self.assertTrue(self.store.data_queries[-1].startswith('SELECT count(*) AS "count" FROM ('))

    def test_bare_plan(self):
        result = self.executor.materialize(self.bids.plan)
        self.assertEqual(1, result.row_count)

    def test_rejects_non_plan(self):
        with self.assertRaises(ValidationError):
            self.executor.materialize('SELECT 1')

    def test_handle_translator_is_used(self):
        strict = LazyHandle.scan('bids', BIDS, translator=SQLTranslator('strict'), executor=self.executor)
        with self.assertRaises(TranslationError):
            strict.sort('id').project('bid').materialize()

    def test_explain(self):
        text = self.executor.explain(self.bids.filter(col('id') == 1))
        self.assertIn('WHERE "id" = 1', text)
        self.assertEqual([], self.store.queries)


class TestScopedConnection(ExecutorTestCase):
    """The connection is released on every exit path."""

    def test_missing_table(self):
        missing = LazyHandle.scan('missing', BIDS, executor=self.executor)
        with self.assertRaises(TableNotFoundError) as ctx:
            missing.materialize()
        self.assertEqual('missing', ctx.exception.table)
        self.assertEqual([], self.store.data_queries)
        self.assertReleased()

    def test_missing_joined_table(self):
        other = LazyHandle.scan('other', {'bidderID': 'numeric', 'name': 'text'})
        with self.assertRaises(TableNotFoundError) as ctx:
            self.bids.join(other, 'bidderID').materialize()
        self.assertEqual('other', ctx.exception.table)
        self.assertReleased()

    def test_translation_error_after_acquire(self):
        strict = LazyHandle.scan('bids', BIDS, translator=SQLTranslator('strict'), executor=self.executor)
        with self.assertRaises(TranslationError):
            strict.sort('id').project('bid').materialize()
        # The table check ran on the acquired connection before translation failed
        self.assertEqual(['EXISTS TABLE "bids"'], self.store.queries)
        self.assertReleased()

    def test_execution_error_releases(self):
        self.store.failures.append(Exception('Code: 62. DB::Exception: Syntax error. (SYNTAX_ERROR)'))
        with self.assertRaises(ExecutionError):
            self.bids.materialize()
        self.assertReleased()
        # Not retried
        self.assertEqual(1, len(self.store.data_queries))

    def test_concurrent_materialize_is_serialized(self):
        self.store.delay = 0.02
        results = []
        errors = []

        def run():
            try:
                results.append(self.bids.materialize())
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual([], errors)
        self.assertEqual(4, len(results))
        self.assertEqual(1, self.store.max_active)
        self.assertReleased()


class TestRetries(ExecutorTestCase):
    """Transient connection failures are retried with backoff."""

    def test_retry_then_succeed(self):
        self.store.failures.extend([ConnectionError('Connection refused')] * 2)
        with self.assertLogs('lazyquery', level='WARNING') as logs:
            result = self.bids.materialize()
        self.assertEqual(1, result.row_count)
        self.assertEqual(3, len(self.store.data_queries))
        self.assertEqual(2, len([m for m in logs.output if 'Retrying' in m]))
        # A broken connection is dropped and a new one opened
        self.assertEqual(3, self.store.connects)
        self.assertEqual(2, self.store.closes)

    def test_retries_exhausted(self):
        self.store.failures.extend([ConnectionError('Connection refused')] * 5)
        with self.assertRaises(ConnectionFailureError):
            self.bids.materialize()
        self.assertEqual(3, len(self.store.data_queries))
        self.assertReleased()

    def test_no_retries(self):
        executor = Executor(self.connection, max_retries=0, retry_backoff=0)
        self.store.failures.append(ConnectionError('Connection reset by peer'))
        with self.assertRaises(ConnectionFailureError):
            executor.materialize(self.bids)
        self.assertEqual(1, len(self.store.data_queries))

    def test_connect_failure_is_retried(self):
        self.store.connect_failures = 1
        result = self.bids.materialize()
        self.assertEqual(1, result.row_count)
        self.assertEqual(1, self.store.connects)

    def test_backoff_doubles(self):
        executor = Executor(self.connection, max_retries=3, retry_backoff=0.5)
        self.store.failures.extend([ConnectionError('Connection refused')] * 3)
        with patch('lazyquery.executor.time.sleep') as sleep:
            executor.materialize(self.bids)
        self.assertEqual([call(0.5), call(1.0), call(2.0)], sleep.call_args_list)

    def test_error_message_pattern_is_transient(self):
        self.store.failures.append(Exception('Code: 210. DB::NetException: Connection refused (localhost:9000)'))
        self.assertEqual(1, self.bids.materialize().row_count)
        self.assertEqual(2, len(self.store.data_queries))

    def test_invalid_retry_settings_rejected(self):
        for kwargs in ({'max_retries': -1}, {'max_retries': 1.5}, {'retry_backoff': -0.1}, {'timeout': 0}):
            with self.subTest(**kwargs):
                with self.assertRaises(ValueError):
                    Executor(self.connection, **kwargs)
        self.assertEqual([], self.store.queries)

    def test_zero_retries_still_runs_once(self):
        executor = Executor(self.connection, max_retries=0)
        self.assertEqual(1, executor.materialize(self.bids).row_count)
        self.assertEqual(1, len(self.store.data_queries))


class TestTimeout(ExecutorTestCase):
    """A timed-out query discards its connection once it finishes."""

    def test_timeout_discards_connection(self):
        self.store.gate = threading.Event()
        try:
            with self.assertRaises(QueryTimeoutError) as ctx:
                self.bids.materialize(timeout=0.05)
            self.assertIn('SELECT', ctx.exception.sql)
            self.assertEqual(0.05, ctx.exception.timeout)

            # Still in flight: the connection is not handed to anyone else
            self.assertTrue(self.connection._lock.locked())
            with self.assertRaises(QueryTimeoutError):
                with self.connection.acquire(timeout=0.05):
                    pass
        finally:
            self.store.gate.set()

        with self.connection.acquire(timeout=5):
            pass
        self.assertEqual(1, self.store.closes)
        self.assertFalse(self.connection.is_connected)

        # The next call opens a fresh connection
        self.assertEqual(1, self.bids.materialize(timeout=5).row_count)
        self.assertEqual(2, self.store.connects)

    def test_timeout_not_retried(self):
        self.store.gate = threading.Event()
        try:
            with self.assertRaises(QueryTimeoutError):
                self.bids.materialize(timeout=0.05)
        finally:
            self.store.gate.set()
        self.assertEqual(1, len(self.store.data_queries))

    def test_executor_default_timeout(self):
        executor = Executor(self.connection, timeout=0.05, max_retries=0)
        self.store.gate = threading.Event()
        try:
            with self.assertRaises(QueryTimeoutError):
                executor.materialize(self.bids)
        finally:
            self.store.gate.set()
        with self.connection.acquire(timeout=5):
            pass


class TestErrorMapping(unittest.TestCase):
    """Store exceptions mapped onto the package hierarchy."""

    def setUp(self):
        self.store = FakeStore()
        self.connection = Connection(connector=self.store)

    def translate(self, error):
        return self.connection._translate_error(error, 'SELECT "bid" FROM "bids"')

    def test_unknown_table(self):
        error = self.translate(Exception('Code: 60. DB::Exception: Table default.bids does not exist. (UNKNOWN_TABLE)'))
        self.assertIsInstance(error, TableNotFoundError)
        self.assertEqual('default.bids', error.table)

    def test_missing_columns(self):
        error = self.translate(
            Exception("Code: 47. DB::Exception: Missing columns: 'bid' while processing query. (UNKNOWN_IDENTIFIER)")
        )
        self.assertIsInstance(error, ColumnNotFoundError)
        self.assertEqual('bid', error.column)
        self.assertEqual('execution', error.operation)

    def test_unknown_expression_identifier(self):
        error = self.translate(
            Exception('Code: 47. DB::Exception: Unknown expression identifier `bid` in scope SELECT bid. (UNKNOWN_IDENTIFIER)')
        )
        self.assertIsInstance(error, ColumnNotFoundError)
        self.assertEqual('bid', error.column)

    def test_connection_errors(self):
        self.assertIsInstance(self.translate(ConnectionError('reset')), ConnectionFailureError)
        self.assertIsInstance(self.translate(Exception('Broken pipe')), ConnectionFailureError)

    def test_other_errors_carry_sql(self):
        error = self.translate(Exception('Code: 62. DB::Exception: Syntax error'))
        self.assertIsInstance(error, ExecutionError)
        self.assertIn('SELECT "bid" FROM "bids"', str(error))

    def test_schema_drift_surfaces_at_execution(self):
        executor = Executor(self.connection, max_retries=0)
        handle = LazyHandle.scan('bids', BIDS, executor=executor)
        self.store.failures.append(
            Exception("Code: 47. DB::Exception: Missing columns: 'bid' while processing query. (UNKNOWN_IDENTIFIER)")
        )
        with self.assertRaises(ColumnNotFoundError) as ctx:
            handle.project('bid').materialize()
        self.assertEqual('bid', ctx.exception.column)


class TestConnection(unittest.TestCase):
    """Connection lifecycle."""

    def test_lazy_connect_and_close(self):
        store = FakeStore()
        connection = Connection(connector=store)
        self.assertFalse(connection.is_connected)
        connection.execute('SELECT 1')
        self.assertTrue(connection.is_connected)
        connection.close()
        self.assertFalse(connection.is_connected)
        self.assertEqual(1, store.closes)

    def test_context_manager(self):
        store = FakeStore()
        with Connection(connector=store) as connection:
            self.assertTrue(connection.is_connected)
        self.assertEqual(1, store.closes)

    def test_describe_table(self):
        connection = Connection(connector=FakeStore())
        schema = connection.describe_table('bids')
        self.assertEqual(('id', 'bidderID', 'bid'), schema.columns)
        with self.assertRaises(TableNotFoundError):
            connection.describe_table('missing')

    def test_table_exists(self):
        connection = Connection(connector=FakeStore())
        self.assertTrue(connection.table_exists('bids'))
        self.assertFalse(connection.table_exists('missing'))

    def test_connect_failure(self):
        store = FakeStore()
        store.connect_failures = 1
        with self.assertRaises(ConnectionFailureError):
            Connection(connector=store).connect()

    def test_executor_owns_default_connection(self):
        executor = Executor()
        self.assertEqual(':memory:', executor.connection.database)
        self.assertFalse(executor.connection.is_connected)


if __name__ == '__main__':
    unittest.main()
