from __future__ import annotations

import random
from enum import Enum
from typing import Optional


class DelayClass(str, Enum):
    QUICK = "quick"
    NORMAL = "normal"
    SLOW = "slow"


# Base ranges in milliseconds.
DELAY_RANGES_MS = {
    DelayClass.QUICK: (3000, 4000),
    DelayClass.NORMAL: (4000, 8000),
    DelayClass.SLOW: (8000, 18000),
}

# Normal is the most common pattern, slow comes second.
_CLASS_WEIGHTS = (
    (DelayClass.QUICK, 1),
    (DelayClass.NORMAL, 3),
    (DelayClass.SLOW, 2),
)


class PacingPolicy:
    """Human-like wait durations with +/- jitter.

    Every method returns seconds and never sleeps itself; callers decide how
    to wait. Pass a seeded ``random.Random`` to make the sequence repeatable."""

    def __init__(self, rng: Optional[random.Random] = None, jitter: float = 0.20) -> None:
        self._rng = rng or random.Random()
        self._jitter = jitter

    def duration(self, delay_class: DelayClass) -> float:
        """Sample a jittered wait, in seconds, for the given delay class."""
        low, high = DELAY_RANGES_MS[DelayClass(delay_class)]
        base_ms = self._rng.uniform(low, high)
        factor = 1.0 + self._rng.uniform(-self._jitter, self._jitter)
        return base_ms * factor / 1000.0

    def random_class(self) -> DelayClass:
        classes = [c for c, _ in _CLASS_WEIGHTS]
        weights = [w for _, w in _CLASS_WEIGHTS]
        return self._rng.choices(classes, weights=weights, k=1)[0]

    def random_duration(self) -> float:
        return self.duration(self.random_class())

    def stagger(self, index: int) -> float:
        """Start offset for the index-th job of a chunk; later jobs wait longer."""
        if index <= 0:
            return 0.0
        low = 6000 + index * 2000
        high = 12000 + index * 3000
        return self._rng.uniform(low, high) / 1000.0

    def chunk_gap(self) -> float:
        return self._rng.uniform(8.0, 12.0)

    def keystroke(self) -> float:
        return self._rng.uniform(0.3, 0.9)

    def chance(self, probability: float) -> bool:
        return self._rng.random() < probability

    def randint(self, low: int, high: int) -> int:
        return self._rng.randint(low, high)
