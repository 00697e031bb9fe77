"""
Retry logic with exponential backoff for transient failures.

Two kinds of failure are safe to retry because they prove nothing was
written: SQLite lock contention and optimistic-lock version conflicts.
Domain rejections (ShiftNotOpen, InvalidAmount, ...) are never retried.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from parkops.kernel.errors import StreamVersionConflict
from parkops.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def retry_on_sqlite_lock(
    max_attempts: int = 5,
    min_wait_ms: int = 50,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for SQLite lock contention (OperationalError).

    Concurrent shift writers each open their own connection; SQLite may
    answer "database is locked" when the busy timeout elapses.

    Args:
        max_attempts: Maximum number of attempts (default: 5)
        min_wait_ms: Minimum wait time in milliseconds (default: 50)
        max_wait_ms: Maximum wait time in milliseconds (default: 1000)

    Returns:
        Decorated function that retries on sqlite3.OperationalError
    """
    return retry(
        retry=retry_if_exception_type(sqlite3.OperationalError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=min_wait_ms / 1000.0,
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


def retry_on_version_conflict(
    max_attempts: int = 5,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for compare-and-swap loops on stream versions.

    The decorated function must reload state and re-run its checks on each
    attempt; a conflict means another writer got there first and our write
    was rejected as a whole.

    Args:
        max_attempts: Maximum number of attempts (default: 5)
    """
    return retry(
        retry=retry_if_exception_type(StreamVersionConflict),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.005, min=0.005, max=0.1),
        before_sleep=lambda retry_state: logger.info(
            "Stream version conflict, reloading",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )
