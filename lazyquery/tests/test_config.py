"""
Tests for lazyquery configuration: logging and executor defaults.
"""

import logging
import unittest

from lazyquery import Connection, ConnectionFailureError, Executor, LazyHandle, Schema, SQLTranslator, config
from lazyquery.tests.fakes import FakeStore


class TestLoggingConfig(unittest.TestCase):
    """Logger setup."""

    def tearDown(self):
        config.disable_debug()
        config.set_log_format('simple')

    def test_logger_name(self):
        self.assertEqual('lazyquery', config.get_logger().name)

    def test_enable_debug(self):
        config.enable_debug()
        self.assertEqual(logging.DEBUG, config.get_logger().level)
        self.assertEqual(logging.DEBUG, config.options.log_level)
        config.disable_debug()
        self.assertEqual(logging.WARNING, config.get_logger().level)

    def test_log_format(self):
        config.set_log_format('verbose')
        self.assertEqual('verbose', config.options.log_format)
        with self.assertRaises(ValueError):
            config.set_log_format('fancy')

    def test_translation_logged_at_debug(self):
        config.enable_debug()
        plan = LazyHandle.scan('bids', Schema({'id': 'numeric'})).plan
        with self.assertLogs('lazyquery', level='DEBUG') as logs:
            SQLTranslator().translate(plan)
        self.assertTrue(any('[Translate]' in line for line in logs.output))


class TestExecutorConfig(unittest.TestCase):
    """Defaults picked up by executors built without explicit settings."""

    def test_setters_validate(self):
        with self.assertRaises(ValueError):
            config.set_max_retries(-1)
        with self.assertRaises(ValueError):
            config.set_retry_backoff(-0.5)
        with self.assertRaises(ValueError):
            config.set_query_timeout(0)
        with self.assertRaises(ValueError):
            config.set_dialect('sqlite')

    def test_options_facade(self):
        config.options.max_retries = 5
        config.options.retry_backoff = 0.25
        config.options.query_timeout = 30
        self.assertEqual(5, config.get_max_retries())
        self.assertEqual(0.25, config.get_retry_backoff())
        self.assertEqual(30, config.get_query_timeout())
        config.options.query_timeout = None
        self.assertIsNone(config.get_query_timeout())

    def test_default_dialect(self):
        config.set_dialect(config.Dialect.STRICT)
        self.assertTrue(SQLTranslator().strict)
        self.assertEqual('strict', config.options.dialect)

    def test_executor_uses_config_retries(self):
        config.set_max_retries(1)
        config.set_retry_backoff(0)
        store = FakeStore()
        store.failures.extend([ConnectionError('Connection refused')] * 3)
        executor = Executor(Connection(connector=store))
        handle = LazyHandle.scan('bids', Schema({'id': 'numeric', 'bidderID': 'numeric', 'bid': 'numeric'}))
        with self.assertRaises(ConnectionFailureError):
            executor.materialize(handle)
        self.assertEqual(2, len(store.data_queries))


if __name__ == '__main__':
    unittest.main()
