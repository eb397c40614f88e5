"""
Retry logic with exponential backoff for SQLite lock contention.

The webhook receiver and the poll loop write to the same SQLite file from
different threads; "database is locked" is transient there and worth a few
quick retries before a record is reported as failed.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from erp_relay.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_lock_error(exc: BaseException) -> bool:
    """Only lock/busy errors are transient; schema or disk errors are not."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def retry_on_sqlite_lock(
    max_attempts: int = 5,
    min_wait_ms: int = 50,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for SQLite lock contention.

    Args:
        max_attempts: Maximum number of attempts (default: 5)
        min_wait_ms: Minimum wait time in milliseconds (default: 50)
        max_wait_ms: Maximum wait time in milliseconds (default: 1000)

    Example:
        @retry_on_sqlite_lock()
        def _write_record(...):
            conn.execute("BEGIN IMMEDIATE")
            ...
    """
    return retry(
        retry=retry_if_exception(is_lock_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=lambda retry_state: logger.warning(
            "SQLite lock detected, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )
