from __future__ import annotations

import time
from dataclasses import replace
from threading import Lock
from typing import Callable, Optional

from .errors import BatchError
from .models import BATCH_COMPLETED, BatchSnapshot, ScrapeResult


class BatchAggregator:
    """Thread-safe per-invocation progress counters.

    ``record`` increments processed plus success or error under one lock and
    flips the batch to completed exactly when processed reaches total."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = Lock()
        self._snapshot: Optional[BatchSnapshot] = None

    def start(self, total: int) -> BatchSnapshot:
        if total < 0:
            raise BatchError("batch total cannot be negative")
        with self._lock:
            now = self._clock()
            snap = BatchSnapshot(total=total, created_at=now)
            if total == 0:
                snap = replace(snap, status=BATCH_COMPLETED, completed_at=now)
            self._snapshot = snap
            return snap

    def record(self, result: ScrapeResult) -> BatchSnapshot:
        with self._lock:
            snap = self._require()
            if snap.completed:
                raise BatchError(f"batch already completed, cannot record {result.job_key}")
            processed = snap.processed + 1
            snap = replace(
                snap,
                processed=processed,
                success=snap.success + (1 if result.success else 0),
                error=snap.error + (0 if result.success else 1),
            )
            if processed == snap.total:
                snap = replace(snap, status=BATCH_COMPLETED, completed_at=self._clock())
            self._snapshot = snap
            return snap

    def finalize(self) -> BatchSnapshot:
        """Close a batch whose queue ran dry: total shrinks to processed."""
        with self._lock:
            snap = self._require()
            if not snap.completed:
                snap = replace(
                    snap,
                    total=snap.processed,
                    status=BATCH_COMPLETED,
                    completed_at=self._clock(),
                )
                self._snapshot = snap
            return snap

    def snapshot(self) -> Optional[BatchSnapshot]:
        with self._lock:
            return self._snapshot

    def _require(self) -> BatchSnapshot:
        if self._snapshot is None:
            raise BatchError("batch not started")
        return self._snapshot
