from __future__ import annotations

import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from ..logging import get_logger
from .constants import MODEL_BACKOFF_BASE_SECONDS, MODEL_RETRIES

LOG = get_logger("analysis-retry")

T = TypeVar("T")


class RetryExhaustedError(Exception):
    def __init__(self, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"All {attempts} attempt(s) failed: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def backoff_delay(attempt: int, base_delay: float = MODEL_BACKOFF_BASE_SECONDS) -> float:
    """Delay after the given 1-based failed attempt: base, 2*base, 4*base, ..."""
    return base_delay * (2 ** (attempt - 1))


def call_with_retry(
    func: Callable[[], T],
    *,
    retries: int = MODEL_RETRIES,
    base_delay: float = MODEL_BACKOFF_BASE_SECONDS,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
) -> T:
    """Run func up to retries + 1 times with exponential backoff between attempts.

    Exceptions outside retry_on propagate immediately. No sleep follows the
    final attempt.
    """
    attempts = max(0, int(retries)) + 1
    last_exc: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as exc:
            last_exc = exc
            LOG.warning(f"{label} attempt {attempt}/{attempts} failed: {exc}")
            if attempt < attempts:
                delay = backoff_delay(attempt, base_delay)
                LOG.debug(f"Retrying {label} in {delay:.1f}s")
                sleep(delay)
    LOG.error(f"{label} failed after {attempts} attempt(s)")
    raise RetryExhaustedError(attempts, last_exc) from last_exc
