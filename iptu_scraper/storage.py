from __future__ import annotations

import json
import logging
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import Optional

from .models import ScrapeResult

logger = logging.getLogger(__name__)


class ResultSink(ABC):
    """Abstract base class for result sinks.

    ``upload`` is fire-and-forget for the engine: implementations may raise,
    the engine logs the failure and keeps the job outcome unchanged.
    """

    @abstractmethod
    def upload(self, result: ScrapeResult) -> None:
        """Deliver a single scrape result."""

    def close(self) -> None:
        """Flush pending writes and release resources."""


class JsonlStorage(ResultSink):
    """Stores scrape results as JSON Lines (.jsonl) using a background writer thread."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._queue: queue.Queue[Optional[ScrapeResult]] = queue.Queue()
        self._thread = threading.Thread(target=self._writer, daemon=True)
        self._thread.start()

    def upload(self, result: ScrapeResult) -> None:
        """Enqueue a scrape result for background writing."""
        self._queue.put(result)

    def close(self) -> None:
        """Signal the writer thread to flush and stop."""
        self._queue.put(None)
        self._thread.join(timeout=5)

    def _writer(self) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            while True:
                item = self._queue.get()
                if item is None:
                    break
                f.write(json.dumps(to_record(item), ensure_ascii=False) + "\n")
                f.flush()


def to_record(result: ScrapeResult) -> dict:
    return {
        "timestamp": result.timestamp,
        "contributor_number": result.job_key,
        "success": result.success,
        "error": result.error,
        "worker_id": result.worker_id,
        "latency_ms": result.latency_ms,
        "data": asdict(result.data) if result.data is not None else None,
    }
