from __future__ import annotations

import threading
import time
from typing import Callable


class RateLimiter:
    """Thread-safe hourly rate limiter.

    ``rate_per_hour`` is turned into a minimum average interval between jobs.
    ``acquire(n)`` blocks until a group of ``n`` jobs may start, then pushes
    the next allowed start ``n`` intervals into the future, so a chunk
    dispatched at once still keeps the hourly average."""

    def __init__(
        self,
        rate_per_hour: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._interval = 3600.0 / rate_per_hour if rate_per_hour > 0 else 0.0
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_allowed = 0.0

    @property
    def interval(self) -> float:
        return self._interval

    def reserve(self, jobs: int = 1) -> float:
        """Book a slot for ``jobs`` jobs and return how long the caller must wait."""
        if self._interval <= 0:
            return 0.0
        with self._lock:
            now = self._clock()
            start = max(self._next_allowed, now)
            self._next_allowed = start + self._interval * max(1, jobs)
            return start - now

    def acquire(self, jobs: int = 1) -> float:
        """Block until ``jobs`` jobs are permitted; return the time waited."""
        wait = self.reserve(jobs)
        if wait > 0:
            self._sleep(wait)
        return wait
