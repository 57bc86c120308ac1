from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, Tuple

from .aggregator import BatchAggregator
from .base import BaseExtractor, failed_result
from .config import ScraperConfig
from .driver_pool import DriverPool
from .errors import JobSourceError
from .failure_tracker import FailureTracker
from .job_source import BatchStore, JobSource
from .models import OUTCOME_FAILED, OUTCOME_SUCCEEDED, BatchSnapshot, Job, RunStats, ScrapeResult
from .pacing import PacingPolicy
from .rate_limiter import RateLimiter
from .session import is_session_lost
from .storage import ResultSink

logger = logging.getLogger(__name__)

ResultCallback = Callable[[ScrapeResult, int, int], None]


class ScraperEngine:
    """Dispatches jobs in chunks across the driver pool.

    Each chunk holds at most ``min(concurrency, pool.size)`` jobs; job ``i``
    of a chunk runs on slot ``i``. A chunk is awaited in full before the next
    one starts. Before every chunk the engine honours the failure cooldown
    and the hourly rate limit. ``request_stop`` is checked only between
    chunks, so in-flight extractions always finish.
    """

    def __init__(
        self,
        config: ScraperConfig,
        pool: DriverPool,
        extractor: BaseExtractor,
        tracker: Optional[FailureTracker] = None,
        pacing: Optional[PacingPolicy] = None,
        aggregator: Optional[BatchAggregator] = None,
        sink: Optional[ResultSink] = None,
        job_source: Optional[JobSource] = None,
        batch_store: Optional[BatchStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
        on_result: Optional[ResultCallback] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._pool = pool
        self._extractor = extractor
        self._tracker = tracker or FailureTracker(
            window_secs=config.failure_window_secs,
            failure_threshold=config.failure_threshold,
            cooldown_secs=config.cooldown_secs,
        )
        self._pacing = pacing or PacingPolicy()
        self._aggregator = aggregator or BatchAggregator()
        self._sink = sink
        self._job_source = job_source
        self._batch_store = batch_store
        self._on_result = on_result
        self._clock = clock

        self._stop = threading.Event()
        self._sleep = sleep or time.sleep
        # cooldown waits wake up early on request_stop unless a test sleep is injected
        self._wait = sleep or self._stop.wait
        self._rate_limiter = rate_limiter or RateLimiter(config.rate_limit_per_hour, sleep=self._sleep)

        self._chunk_size = min(config.concurrency, pool.size)
        self._executor = ThreadPoolExecutor(max_workers=self._chunk_size, thread_name_prefix="slot")

        self._lock = threading.Lock()
        self._completed = 0
        self._total = 0

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def tracker(self) -> FailureTracker:
        return self._tracker

    @property
    def aggregator(self) -> BatchAggregator:
        return self._aggregator

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        """Finish the current chunk, then stop accepting new ones."""
        logger.info("Stop requested, finishing the current chunk")
        self._stop.set()

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "ScraperEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- entry points ----------------------------------------------------

    def run(self, jobs: Sequence[Job]) -> RunStats:
        """Process an explicit job list as one batch."""
        started = self._clock()
        jobs = list(jobs)
        self._begin(len(jobs))
        logger.info("Processing %d jobs total", len(jobs))
        for idx, job in enumerate(jobs, start=1):
            logger.debug("Job %d: %s", idx, job.key)

        results, _ = self._dispatch(jobs)
        return self._stats(results, started)

    def consume(self, limit: int) -> RunStats:
        """Claim and process up to ``limit`` jobs from the job source in blocks.

        Only a claim failure on the first block is raised. A later one ends
        the run early and the batch is closed with what was processed. Jobs
        claimed but left undispatched by a stop are put back to pending.
        """
        if self._job_source is None:
            raise ValueError("consume() requires a job source")
        started = self._clock()
        self._begin(limit)
        batch_id = self._batch_store.create_batch(limit) if self._batch_store else None
        if batch_id:
            logger.info("Created batch: %s", batch_id)

        results: List[ScrapeResult] = []
        block_num = 0
        while len(results) < limit and not self._stop.is_set():
            # no claims are held while a cooldown runs
            self._wait_for_cooldown()
            if self._stop.is_set():
                break

            block_num += 1
            want = min(self._config.block_size, limit - len(results))
            logger.info("========== Block %d: claiming %d jobs ==========", block_num, want)
            try:
                jobs = self._job_source.claim_pending(want)
            except JobSourceError as exc:
                if block_num == 1:
                    raise
                logger.error("Could not claim block %d, ending the run: %s", block_num, exc)
                break
            if not jobs:
                logger.info("No more pending jobs found")
                break

            block_results, leftover = self._dispatch(jobs)
            results.extend(block_results)
            self._unclaim(leftover)
            self._mirror_batch(batch_id)
            ok = sum(1 for r in block_results if r.success)
            logger.info(
                "Block %d complete: %d success, %d errors (total %d/%d)",
                block_num,
                ok,
                len(block_results) - ok,
                len(results),
                limit,
            )

            if len(results) < limit and not self._stop.is_set():
                gap = self._pacing.chunk_gap()
                logger.info("Waiting %.1f seconds before next block...", gap)
                self._sleep(gap)

        snapshot = self._aggregator.snapshot()
        if snapshot is not None and not snapshot.completed:
            self._aggregator.finalize()
        if batch_id and results:
            self._mirror_batch(batch_id)
            try:
                self._batch_store.complete_batch(batch_id)
                logger.info("Batch %s completed", batch_id)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to complete batch %s: %s", batch_id, exc)
        return self._stats(results, started)

    def snapshot(self) -> Optional[BatchSnapshot]:
        return self._aggregator.snapshot()

    # -- dispatch --------------------------------------------------------

    def _begin(self, total: int) -> None:
        with self._lock:
            self._completed = 0
            self._total = total
        self._aggregator.start(total)

    def _dispatch(self, jobs: List[Job]) -> Tuple[List[ScrapeResult], List[Job]]:
        """Run ``jobs`` chunk by chunk; return the results and the undispatched jobs."""
        results: List[ScrapeResult] = []
        size = self._chunk_size
        for start in range(0, len(jobs), size):
            if self._stop.is_set():
                logger.info("Engine stopped, %d jobs left undispatched", len(jobs) - start)
                return results, jobs[start:]
            chunk = jobs[start:start + size]

            self._wait_for_cooldown()
            if self._stop.is_set():
                logger.info("Engine stopped during cooldown, %d jobs left undispatched", len(jobs) - start)
                return results, jobs[start:]

            waited = self._rate_limiter.acquire(len(chunk))
            if waited > 0:
                logger.info("Rate limit: waited %.1f seconds before chunk", waited)

            results.extend(self._run_chunk(chunk))

            more = start + size < len(jobs)
            if len(chunk) == size and more:
                gap = self._pacing.chunk_gap()
                logger.info("Waiting %.1f seconds before processing next chunk", gap)
                self._sleep(gap)
        return results, []

    def _unclaim(self, jobs: List[Job]) -> None:
        for job in jobs:
            try:
                self._job_source.unclaim(job)
                logger.info("Returned %s to the pending queue", job.key)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to return %s to the pending queue: %s", job.key, exc)

    def _run_chunk(self, chunk: List[Job]) -> List[ScrapeResult]:
        futures = [self._executor.submit(self._run_job, job, i) for i, job in enumerate(chunk)]
        return [future.result() for future in as_completed(futures)]

    def _run_job(self, job: Job, index: int) -> ScrapeResult:
        worker_id = f"{self._config.machine_id}:slot-{index}"
        try:
            delay = self._pacing.stagger(index)
            if delay > 0:
                logger.info("Waiting %.1f seconds before starting job: %s", delay, job.key)
                self._sleep(delay)
            result = self._extract(job, index, worker_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error while processing %s", job.key)
            result = failed_result(job, exc, worker_id)
        self._record(job, result)
        return result

    def _extract(self, job: Job, index: int, worker_id: str) -> ScrapeResult:
        try:
            driver = self._pool.borrow(index).driver
        except Exception as exc:  # noqa: BLE001
            logger.error("Session slot %d unavailable for %s: %s", index, job.key, exc)
            self._pool.mark_broken(index)
            return failed_result(job, exc, worker_id)

        logger.info("Processing job: %s (slot %d)", job.key, index)
        result = self._extractor.run(job, driver, worker_id)
        if is_session_lost(result.error_type):
            logger.warning("Session slot %d lost its browser, it will be recreated", index)
            self._pool.mark_broken(index)
        return result

    def _record(self, job: Job, result: ScrapeResult) -> None:
        if result.success:
            self._tracker.record_success()
        else:
            self._tracker.record_failure()
        self._aggregator.record(result)

        with self._lock:
            self._completed += 1
            completed, total = self._completed, self._total

        if result.success:
            logger.info("[%d/%d] Successfully scraped %s", completed, total, result.job_key)
        else:
            logger.info("[%d/%d] Failed to scrape %s: %s", completed, total, result.job_key, result.error)

        if self._sink is not None:
            try:
                self._sink.upload(result)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to upload result for %s: %s", result.job_key, exc)

        if self._job_source is not None:
            outcome = OUTCOME_SUCCEEDED if result.success else OUTCOME_FAILED
            try:
                self._job_source.release(job, outcome, result.error)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to mark %s as %s: %s", job.key, outcome, exc)

        if self._on_result is not None:
            try:
                self._on_result(result, completed, total)
            except Exception as exc:  # noqa: BLE001
                logger.error("Result callback failed for %s: %s", result.job_key, exc)

    def _wait_for_cooldown(self) -> None:
        remaining = self._tracker.cooldown_remaining()
        if remaining is None:
            return
        logger.warning(
            "Cooldown active: pausing %.0f minutes before the next chunk to avoid rate limiting",
            remaining / 60,
        )
        interval = self._config.cooldown_progress_secs
        while remaining is not None and not self._stop.is_set():
            self._wait(min(interval, remaining))
            remaining = self._tracker.cooldown_remaining()
            if remaining is not None:
                logger.info("Cooldown in progress: %.0f minutes remaining", remaining / 60)
        logger.info("Cooldown period complete, resuming operations")

    def _mirror_batch(self, batch_id: Optional[str]) -> None:
        if not batch_id or self._batch_store is None:
            return
        snapshot = self._aggregator.snapshot()
        try:
            self._batch_store.update_batch(batch_id, snapshot)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to update batch %s: %s", batch_id, exc)

    def _stats(self, results: List[ScrapeResult], started: float) -> RunStats:
        succeeded = sum(1 for r in results if r.success)
        return RunStats(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            elapsed_secs=self._clock() - started,
        )
