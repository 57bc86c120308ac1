from __future__ import annotations

import logging
import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, Optional

from .models import INACTIVE, CooldownState

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECS = 600.0
DEFAULT_FAILURE_THRESHOLD = 2
DEFAULT_COOLDOWN_SECS = 1200.0


class FailureTracker:
    """Thread-safe rolling window of job failures driving the engine cooldown.

    Failures older than ``window_secs`` are pruned lazily on every read or
    write. Once ``failure_threshold`` failures sit inside the window the
    tracker enters ``Active(until)`` for ``cooldown_secs``. Any success wipes
    the history and cancels the cooldown."""

    def __init__(
        self,
        window_secs: float = DEFAULT_WINDOW_SECS,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_secs: float = DEFAULT_COOLDOWN_SECS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._window = window_secs
        self._threshold = max(1, failure_threshold)
        self._cooldown = cooldown_secs
        self._clock = clock
        self._lock = Lock()
        self._events: Deque[float] = deque()
        self._state: CooldownState = INACTIVE
        self._total_failures = 0

    @property
    def cooldown_secs(self) -> float:
        return self._cooldown

    def record_failure(self, now: Optional[float] = None) -> CooldownState:
        """Append a failure and activate the cooldown if the threshold is reached."""
        now = self._now(now)
        with self._lock:
            self._events.append(now)
            self._total_failures += 1
            self._prune(now)
            recent = len(self._events)
            if recent >= self._threshold:
                self._state = CooldownState(until=now + self._cooldown)
            state = self._state

        logger.warning(
            "Failure recorded. Total failures: %d, recent failures (%ds window): %d",
            self._total_failures,
            int(self._window),
            recent,
        )
        if recent >= self._threshold:
            logger.error(
                "%d failures inside %d minutes, cooldown active for %d seconds",
                recent,
                int(self._window // 60),
                int(self._cooldown),
            )
        return state

    def record_success(self) -> None:
        """Clear the failure history and cancel any cooldown."""
        with self._lock:
            previous = self._total_failures
            self._events.clear()
            self._total_failures = 0
            self._state = INACTIVE
        if previous:
            logger.info("Success after %d failures, resetting counters", previous)

    def cooldown_remaining(self, now: Optional[float] = None) -> Optional[float]:
        """Seconds left in the active cooldown, or None if inactive."""
        now = self._now(now)
        return self.state(now).remaining(now)

    def state(self, now: Optional[float] = None) -> CooldownState:
        now = self._now(now)
        with self._lock:
            self._prune(now)
            if self._state.remaining(now) is None:
                self._state = INACTIVE
            return self._state

    def failure_count(self, now: Optional[float] = None) -> int:
        now = self._now(now)
        with self._lock:
            self._prune(now)
            return len(self._events)

    def _prune(self, now: float) -> None:
        # caller holds the lock
        while self._events and now - self._events[0] >= self._window:
            self._events.popleft()

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now
