"""
Pytest configuration for lazyquery tests.

Restores the process-wide executor settings after every test so tests that
tune retries, timeouts or the dialect cannot leak into each other.
"""

import pytest

from lazyquery import config


@pytest.fixture(autouse=True)
def restore_config():
    """Snapshot and restore the module-level configuration."""
    saved = (
        config.get_max_retries(),
        config.get_retry_backoff(),
        config.get_query_timeout(),
        config.get_dialect(),
    )
    yield
    max_retries, retry_backoff, query_timeout, dialect = saved
    config.set_max_retries(max_retries)
    config.set_retry_backoff(retry_backoff)
    config.set_query_timeout(query_timeout)
    config.set_dialect(dialect)
