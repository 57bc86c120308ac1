from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any

from .models import IptuRecord, Job, ScrapeResult


class BaseExtractor(ABC):
    """Abstract base class defining the per-job extraction pipeline.

    ``run`` never raises: any exception becomes a failed ScrapeResult whose
    ``error_type`` carries the exception class name and ``error`` its
    message. Instances hold no per-job state and may be shared by all
    worker threads.
    """

    def run(self, job: Job, driver: Any, worker_id: str) -> ScrapeResult:
        start_ms = self._now_ms()
        try:
            self.validate(job)
            record = self.extract(job, driver)
        except Exception as exc:  # noqa: BLE001
            return failed_result(job, exc, worker_id, latency_ms=self._now_ms() - start_ms)

        return ScrapeResult(
            job_key=job.key,
            success=True,
            data=record,
            error=None,
            timestamp=time.time(),
            worker_id=worker_id,
            latency_ms=self._now_ms() - start_ms,
        )

    def validate(self, job: Job) -> None:
        if not job.key:
            raise ValueError("job.key is required")

    @abstractmethod
    def extract(self, job: Job, driver: Any) -> IptuRecord:
        ...

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)


def describe_error(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__


def failed_result(job: Job, exc: BaseException, worker_id: str, latency_ms: int = 0) -> ScrapeResult:
    return ScrapeResult(
        job_key=job.key,
        success=False,
        data=None,
        error=describe_error(exc),
        timestamp=time.time(),
        worker_id=worker_id,
        latency_ms=latency_ms,
        error_type=type(exc).__name__,
    )
