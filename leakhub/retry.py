"""
Exponential backoff for operations that fail transiently.

Consensus evaluations are rerun when SQLite reports lock contention, and
GitHub fetches are rerun after timeouts, dropped connections and 429/5xx
answers.
"""

import time
import functools
from typing import Callable, Optional, Tuple, Type

# Statuses GitHub (and most HTTP APIs) use for "try again later"
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

TRANSIENT_MARKERS = (
    # SQLite
    "database is locked",
    "database table is locked",
    "disk i/o error",
    # network
    "timeout",
    "timed out",
    "connection",
    "temporary failure",
    "service unavailable",
    "503",
    "502",
    "500",
    "429",
)


class RetryError(Exception):
    """Raised when every attempt failed. The last failure is the __cause__."""
    pass


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Retry the decorated function, sleeping longer after each failure.

    The n-th retry waits base_delay * exponential_base ** (n - 1) seconds,
    capped at max_delay. Exceptions outside `exceptions` propagate at once.

    Args:
        max_retries: Retries after the first call (0 = call once)
        base_delay: Wait before the first retry, in seconds
        max_delay: Upper bound for any single wait
        exponential_base: Growth factor between waits
        exceptions: Exception types worth retrying
        on_retry: Called as on_retry(retry_number, error, wait) before sleeping

    Example:
        @exponential_backoff(max_retries=3, base_delay=0.5, exceptions=(StorageError,))
        def evaluate(request_id):
            return engine.evaluate_request(request_id)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempts = max_retries + 1
            wait = base_delay
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == attempts:
                        raise RetryError(f"Failed after {attempts} attempts: {e}") from e
                    wait = min(wait, max_delay)
                    if on_retry:
                        on_retry(attempt, e, wait)
                    time.sleep(wait)
                    wait *= exponential_base

        return wrapper
    return decorator


def is_transient_error(exception: Exception) -> bool:
    """True if the error message looks like lock contention or a network hiccup."""
    message = str(exception).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def should_retry_http_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES
