# backend/modules/preps/utils/database_retry.py

import logging
import random
import time
from typing import Callable, Optional, Set, TypeVar

from sqlalchemy.exc import OperationalError, DBAPIError
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Database error codes that indicate retry-able conditions
RETRY_ERROR_CODES: Set[str] = {
    # PostgreSQL
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
    "57014",  # query_canceled (often due to statement timeout)
    # MySQL
    "1205",  # Lock wait timeout exceeded
    "1213",  # Deadlock found when trying to get lock
    # SQLite (for testing)
    "database is locked",
    "database table is locked",
}

# Connection level failures: the store is unreachable rather than contended
UNAVAILABLE_MARKERS = (
    "could not connect",
    "connection refused",
    "server closed the connection",
    "connection reset",
    "unable to open database",
    "timeout expired",
)


def is_retryable_error(error: Exception) -> bool:
    """
    Check if a database error is retryable

    Args:
        error: The exception to check

    Returns:
        True if the error indicates a transient condition that may succeed on retry
    """
    if isinstance(error, StaleDataError):
        return True

    if isinstance(error, (OperationalError, DBAPIError)):
        if getattr(error, "connection_invalidated", False):
            return True

        # Check error message
        error_str = str(error).lower()
        if any(code in error_str for code in ["deadlock", "serialization", "lock"]):
            return True
        if any(marker in error_str for marker in UNAVAILABLE_MARKERS):
            return True

        # Check specific error codes if available
        if hasattr(error, "orig") and hasattr(error.orig, "pgcode"):
            # PostgreSQL error code
            return error.orig.pgcode in RETRY_ERROR_CODES
        elif hasattr(error, "orig") and hasattr(error.orig, "args"):
            # MySQL/SQLite error code
            error_code = str(error.orig.args[0]) if error.orig.args else ""
            return any(code in error_code for code in RETRY_ERROR_CODES)

    return False


def is_concurrency_error(error: Exception) -> bool:
    """Optimistic lock lost: another writer bumped the row version"""
    return isinstance(error, StaleDataError)


def backoff_delay(
    attempt: int,
    initial_delay: float = 0.1,
    max_delay: float = 2.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Delay before retry number ``attempt`` (1-based) with exponential backoff

    Jitter adds 0-25% of the delay to spread out competing writers.
    """
    delay = min(initial_delay * (backoff_factor ** (attempt - 1)), max_delay)
    if jitter:
        delay *= 1 + random.random() * 0.25
    return delay


def retry_on_conflict(
    func: Callable[..., T],
    *args,
    max_attempts: int = 3,
    initial_delay: float = 0.1,
    max_delay: float = 2.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    on_retry: Optional[Callable[[int, float, Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> T:
    """
    Call ``func`` and retry on stale-version or deadlock/lock errors

    Args:
        func: The function to retry; it must re-read its inputs on every call
        max_attempts: Total number of calls before the last error is raised
        on_retry: Optional hook called with (attempt, delay, error) before sleeping
        sleep: Sleep function, replaceable in tests

    Returns:
        The result of the function call

    Raises:
        The last exception if all attempts fail, or any non-retryable error at once
    """
    attempt = 1
    while True:
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_error(e) or attempt >= max_attempts:
                raise

            delay = backoff_delay(
                attempt, initial_delay, max_delay, backoff_factor, jitter
            )
            if on_retry:
                on_retry(attempt, delay, e)
            else:
                logger.warning(
                    f"Retryable database error on attempt {attempt}/{max_attempts}. "
                    f"Retrying in {delay:.2f}s. Error: {str(e)}"
                )
            sleep(delay)
            attempt += 1
