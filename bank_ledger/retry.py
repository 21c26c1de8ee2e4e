"""
Retry utility for store conflicts.

Atomic mutations that abort on concurrent contention leave no partial
effect, so the whole operation can be attempted again from scratch.
Only errors whose ``retryable`` flag is set are retried; everything else
propagates on the first failure.
"""

import time
from typing import Callable, Optional, TypeVar

from .errors import LedgerError
from .logging_config import get_logger

logger = get_logger("bank_ledger.retry")

T = TypeVar('T')


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """
    Exponential backoff delay after the given failed attempt (1-based).

    >>> [backoff_delay(n, 0.1, 1.0) for n in range(1, 6)]
    [0.1, 0.2, 0.4, 0.8, 1.0]
    """
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


def retry_on_conflict(
    operation: Callable[[], T],
    max_attempts: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    on_retry: Optional[Callable[[int, LedgerError], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Execute an operation, retrying it while it fails with a conflict.

    Args:
        operation: Callable taking no arguments. It must be safe to run
            again after a conflict, i.e. it re-reads any state it depends on.
        max_attempts: Total number of attempts, including the first one.
        base_delay: Delay in seconds after the first conflict. Doubled after
            each further conflict.
        max_delay: Upper bound for a single delay.
        on_retry: Optional callback receiving (attempt_number, error) before
            each retry.
        sleep: Sleep function, replaceable in tests.

    Returns:
        The operation's return value.

    Raises:
        LedgerError: The first non-retryable error, or the last conflict
            once all attempts are used up.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 1
    while True:
        try:
            return operation()
        except LedgerError as e:
            if not e.retryable:
                raise
            if attempt >= max_attempts:
                logger.warning(f"Giving up after {attempt} conflicting attempts: {e}")
                raise

            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.info(f"Conflict on attempt {attempt}/{max_attempts}, retrying in {delay:.3f}s")
            if on_retry:
                on_retry(attempt, e)
            sleep(delay)
            attempt += 1
