from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from threading import Lock
from typing import Dict, Iterable, List, Optional

from .models import (
    DEFAULT_QUEUE,
    OUTCOME_FAILED,
    OUTCOME_SUCCEEDED,
    PRIORITY_QUEUE,
    BatchSnapshot,
    Job,
)

logger = logging.getLogger(__name__)

STATUS_CLAIMED = "p"
STATUS_SUCCEEDED = "s"
STATUS_FAILED = "e"

OUTCOME_STATUS = {
    OUTCOME_SUCCEEDED: STATUS_SUCCEEDED,
    OUTCOME_FAILED: STATUS_FAILED,
}


def status_for(outcome: str) -> str:
    try:
        return OUTCOME_STATUS[outcome]
    except KeyError:
        raise ValueError(f"Unknown outcome: {outcome}") from None


class JobSource(ABC):
    """Claims pending jobs (priority queue first) and persists their outcome."""

    @abstractmethod
    def claim_pending(self, limit: int) -> List[Job]:
        """Return up to ``limit`` jobs, already marked as claimed."""

    @abstractmethod
    def release(self, job: Job, outcome: str, error: Optional[str] = None) -> None:
        """Persist the terminal status of a claimed job."""

    @abstractmethod
    def unclaim(self, job: Job) -> None:
        """Put a claimed job that was never dispatched back to pending."""


class BatchStore(ABC):
    """Durable mirror of the in-memory batch counters."""

    @abstractmethod
    def create_batch(self, total: int) -> str:
        ...

    @abstractmethod
    def update_batch(self, batch_id: str, snapshot: BatchSnapshot) -> None:
        ...

    @abstractmethod
    def complete_batch(self, batch_id: str) -> None:
        ...


class InMemoryJobSource(JobSource):
    """Local two-queue job source used for explicit job lists and tests."""

    def __init__(self, default: Iterable[str] = (), priority: Iterable[str] = ()) -> None:
        self._lock = Lock()
        self._queues: Dict[str, "OrderedDict[str, Optional[str]]"] = {
            PRIORITY_QUEUE: OrderedDict((key, None) for key in priority),
            DEFAULT_QUEUE: OrderedDict((key, None) for key in default),
        }
        self.errors: Dict[str, str] = {}

    def claim_pending(self, limit: int) -> List[Job]:
        with self._lock:
            for queue in (PRIORITY_QUEUE, DEFAULT_QUEUE):
                pending = [k for k, status in self._queues[queue].items() if status is None]
                if not pending:
                    continue
                claimed = pending[:limit]
                for key in claimed:
                    self._queues[queue][key] = STATUS_CLAIMED
                logger.info("Claimed %d jobs from %s queue", len(claimed), queue)
                return [Job(key=k, status=STATUS_CLAIMED, queue=queue) for k in claimed]
        return []

    def release(self, job: Job, outcome: str, error: Optional[str] = None) -> None:
        status = status_for(outcome)
        with self._lock:
            queue = self._queues[job.queue]
            if queue.get(job.key) != STATUS_CLAIMED:
                raise ValueError(f"job {job.key} is not claimed")
            queue[job.key] = status
            if error:
                self.errors[job.key] = error

    def unclaim(self, job: Job) -> None:
        with self._lock:
            queue = self._queues[job.queue]
            if queue.get(job.key) != STATUS_CLAIMED:
                raise ValueError(f"job {job.key} is not claimed")
            queue[job.key] = None

    def status(self, key: str) -> Optional[str]:
        with self._lock:
            for queue in self._queues.values():
                if key in queue:
                    return queue[key]
        raise KeyError(key)

    def pending_count(self) -> int:
        with self._lock:
            return sum(
                1 for queue in self._queues.values() for status in queue.values() if status is None
            )
