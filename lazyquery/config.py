"""
Configuration module for lazyquery.

This module provides a centralized configuration mechanism for lazyquery,
including logging level configuration and executor settings (retries,
backoff, timeouts, default SQL dialect).
"""

import logging
from typing import Optional

# Module-level logger for lazyquery
_logger: Optional[logging.Logger] = None
_log_level: int = logging.WARNING
_log_format: str = "simple"  # "simple" or "verbose"

# lazyquery's own logger name
LOGGER_NAME = "lazyquery"

# Log format templates
LOG_FORMATS = {
    "simple": "%(levelname).1s %(message)s",  # e.g., "D [SQL] SELECT ..."
    "verbose": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def _get_formatter() -> logging.Formatter:
    """Get formatter based on current format setting."""
    fmt = LOG_FORMATS.get(_log_format, LOG_FORMATS["simple"])
    if _log_format == "verbose":
        return logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")
    return logging.Formatter(fmt)


def get_logger() -> logging.Logger:
    """
    Get the lazyquery logger.

    Returns:
        logging.Logger: The configured logger instance.
    """
    global _logger

    if _logger is None:
        _logger = logging.getLogger(LOGGER_NAME)
        _logger.setLevel(_log_level)

        # Add handler if none exists
        if not _logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(_log_level)
            handler.setFormatter(_get_formatter())
            _logger.addHandler(handler)

    return _logger


def set_log_level(level: int) -> None:
    """
    Set the logging level for lazyquery.

    Args:
        level: Logging level (e.g., logging.DEBUG, logging.INFO, logging.WARNING)

    Example:
        >>> import logging
        >>> from lazyquery import config
        >>> config.set_log_level(logging.DEBUG)  # Log every generated SQL
        >>> config.set_log_level(logging.WARNING)  # Only retries and errors
    """
    global _log_level

    _log_level = level

    if _logger is not None:
        _logger.setLevel(level)
        for handler in _logger.handlers:
            handler.setLevel(level)


def enable_debug() -> None:
    """Enable debug logging (shortcut for set_log_level(logging.DEBUG))."""
    set_log_level(logging.DEBUG)


def disable_debug() -> None:
    """Disable debug logging (set to WARNING level)."""
    set_log_level(logging.WARNING)


def set_log_format(format_name: str) -> None:
    """
    Set the log output format.

    Args:
        format_name: "simple" (default) for minimal output, "verbose" for full timestamp/level

    Example:
        >>> from lazyquery import config
        >>> config.set_log_format("verbose")  # "2026-10-18 12:51:27 - lazyquery - DEBUG - ..."
    """
    global _log_format

    if format_name not in LOG_FORMATS:
        raise ValueError(f"Unknown format: {format_name}. Use 'simple' or 'verbose'")

    _log_format = format_name

    if _logger is not None:
        for handler in _logger.handlers:
            handler.setFormatter(_get_formatter())


# =============================================================================
# EXECUTOR CONFIGURATION
# =============================================================================

_max_retries: int = 3  # Attempts after the first one for ConnectionFailureError
_retry_backoff: float = 0.1  # Initial backoff in seconds, doubled per attempt
_query_timeout: Optional[float] = None  # None means wait forever


def check_max_retries(retries: int) -> int:
    """Validate a retry count: a non-negative integer (0 disables retrying)."""
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
        raise ValueError("max_retries must be a non-negative integer")
    return retries


def check_retry_backoff(seconds: float) -> float:
    if seconds < 0:
        raise ValueError("retry_backoff must be non-negative")
    return seconds


def check_query_timeout(seconds: Optional[float]) -> Optional[float]:
    if seconds is not None and seconds <= 0:
        raise ValueError("query_timeout must be positive or None")
    return seconds


def get_max_retries() -> int:
    """Get how many times a transient connection failure is retried."""
    return _max_retries


def set_max_retries(retries: int) -> None:
    """
    Set how many times a transient connection failure is retried.

    Args:
        retries: Non-negative number of retries (0 disables retrying)
    """
    global _max_retries
    _max_retries = check_max_retries(retries)


def get_retry_backoff() -> float:
    """Get initial retry backoff in seconds."""
    return _retry_backoff


def set_retry_backoff(seconds: float) -> None:
    """
    Set initial retry backoff in seconds. Attempt N waits backoff * 2**N.

    Example:
        >>> from lazyquery import config
        >>> config.set_retry_backoff(0.5)
    """
    global _retry_backoff
    _retry_backoff = check_retry_backoff(seconds)


def get_query_timeout() -> Optional[float]:
    """Get the default query timeout in seconds (None = no timeout)."""
    return _query_timeout


def set_query_timeout(seconds: Optional[float]) -> None:
    """
    Set the default query timeout in seconds.

    Args:
        seconds: Positive number of seconds, or None to wait forever.
    """
    global _query_timeout
    _query_timeout = check_query_timeout(seconds)


# =============================================================================
# DIALECT CONFIGURATION
# =============================================================================


class Dialect:
    """SQL dialect options."""

    CLICKHOUSE = "clickhouse"  # chdb / ClickHouse
    STRICT = "strict"  # ANSI-ish: no ORDER BY on unselected columns


_dialect: str = Dialect.CLICKHOUSE


def get_dialect() -> str:
    """Get the default SQL dialect used by new translators."""
    return _dialect


def set_dialect(dialect: str) -> None:
    """
    Set the default SQL dialect.

    Args:
        dialect: One of 'clickhouse', 'strict'
    """
    global _dialect
    valid = {Dialect.CLICKHOUSE, Dialect.STRICT}
    if dialect not in valid:
        raise ValueError(f"Invalid dialect: {dialect}. Use one of {valid}")
    _dialect = dialect


class LazyQueryConfig:
    """
    Configuration facade for lazyquery.

    Example:
        >>> from lazyquery import config
        >>> import logging
        >>>
        >>> config.options.log_level = logging.DEBUG
        >>> config.options.max_retries = 5
        >>> config.options.query_timeout = 30
    """

    @property
    def log_level(self) -> int:
        return _log_level

    @log_level.setter
    def log_level(self, level: int) -> None:
        set_log_level(level)

    @property
    def log_format(self) -> str:
        return _log_format

    @log_format.setter
    def log_format(self, format_name: str) -> None:
        set_log_format(format_name)

    def enable_debug(self) -> None:
        enable_debug()

    def disable_debug(self) -> None:
        disable_debug()

    @property
    def max_retries(self) -> int:
        return _max_retries

    @max_retries.setter
    def max_retries(self, retries: int) -> None:
        set_max_retries(retries)

    @property
    def retry_backoff(self) -> float:
        return _retry_backoff

    @retry_backoff.setter
    def retry_backoff(self, seconds: float) -> None:
        set_retry_backoff(seconds)

    @property
    def query_timeout(self) -> Optional[float]:
        return _query_timeout

    @query_timeout.setter
    def query_timeout(self, seconds: Optional[float]) -> None:
        set_query_timeout(seconds)

    @property
    def dialect(self) -> str:
        return _dialect

    @dialect.setter
    def dialect(self, dialect: str) -> None:
        set_dialect(dialect)


options = LazyQueryConfig()
