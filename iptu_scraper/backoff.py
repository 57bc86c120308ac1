from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BackoffStrategy:
    """Exponential backoff with jitter for the job-queue HTTP calls.

    Computes sleep duration as base * 2^(attempt-1) plus random jitter,
    capped at a configurable maximum."""

    def __init__(
        self,
        base_seconds: float = 0.5,
        max_seconds: float = 10.0,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base = base_seconds
        self._max = max_seconds
        self._max_attempts = max(1, max_attempts)
        self._sleep = sleep

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Calculate the backoff sleep duration in seconds for a given retry attempt."""
        exp = min(self._max, self._base * (2 ** max(attempt - 1, 0)))
        jitter = random.uniform(0, exp * 0.1)
        return exp + jitter

    def call(self, fn: Callable[[], T], retry_on: Tuple[Type[BaseException], ...]) -> T:
        """Run ``fn`` and retry on ``retry_on`` errors until attempts run out."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except retry_on as exc:
                if attempt >= self._max_attempts:
                    raise
                sleep_s = self.get_sleep(attempt, type(exc).__name__)
                logger.debug("Attempt %d failed (%s), retrying in %.2fs", attempt, exc, sleep_s)
                self._sleep(sleep_s)
