"""Tests for BatchAggregator progress counters."""

import threading
import unittest

from iptu_scraper.aggregator import BatchAggregator
from iptu_scraper.errors import BatchError
from iptu_scraper.models import ScrapeResult


def result(key, success=True):
    return ScrapeResult(
        job_key=key,
        success=success,
        data=None,
        error=None if success else "boom",
        timestamp=0.0,
        worker_id="w",
    )


class TestBatchAggregator(unittest.TestCase):
    def setUp(self):
        self.aggregator = BatchAggregator(clock=lambda: 100.0)

    def test_completes_when_processed_reaches_total(self):
        self.aggregator.start(3)
        self.aggregator.record(result("a"))
        snap = self.aggregator.record(result("b", success=False))
        self.assertFalse(snap.completed)
        snap = self.aggregator.record(result("c"))
        self.assertTrue(snap.completed)
        self.assertEqual((snap.processed, snap.success, snap.error), (3, 2, 1))
        self.assertEqual(snap.completed_at, 100.0)

    def test_record_after_completion_is_rejected(self):
        self.aggregator.start(1)
        self.aggregator.record(result("a"))
        with self.assertRaises(BatchError):
            self.aggregator.record(result("b"))

    def test_record_before_start_is_rejected(self):
        with self.assertRaises(BatchError):
            self.aggregator.record(result("a"))

    def test_negative_total_is_rejected(self):
        with self.assertRaises(BatchError):
            self.aggregator.start(-1)

    def test_empty_batch_is_completed_immediately(self):
        self.assertTrue(self.aggregator.start(0).completed)

    def test_finalize_shrinks_total_to_processed(self):
        self.aggregator.start(5)
        self.aggregator.record(result("a"))
        self.aggregator.record(result("b"))
        snap = self.aggregator.finalize()
        self.assertTrue(snap.completed)
        self.assertEqual(snap.total, 2)
        self.assertEqual(snap.processed, 2)

    def test_concurrent_records_complete_exactly_once(self):
        self.aggregator.start(200)
        completions = []
        lock = threading.Lock()

        def worker(n):
            for i in range(25):
                snap = self.aggregator.record(result(f"{n}-{i}", success=i % 2 == 0))
                if snap.completed:
                    with lock:
                        completions.append(snap)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snap = self.aggregator.snapshot()
        self.assertEqual(len(completions), 1)
        self.assertEqual(snap.processed, 200)
        self.assertEqual(snap.success + snap.error, 200)
        self.assertEqual(snap.success, 104)


if __name__ == "__main__":
    unittest.main()
