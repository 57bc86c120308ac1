"""Tests for the FailureTracker rolling window and cooldown."""

import threading
import unittest

from iptu_scraper.failure_tracker import FailureTracker

MINUTE = 60.0


class TestFailureTracker(unittest.TestCase):
    """Two failures inside ten minutes trigger a twenty minute cooldown."""

    def setUp(self):
        self.tracker = FailureTracker(window_secs=600, failure_threshold=2, cooldown_secs=1200)

    def test_single_failure_does_not_cool_down(self):
        state = self.tracker.record_failure(now=0.0)
        self.assertFalse(state.active)
        self.assertIsNone(self.tracker.cooldown_remaining(now=1.0))

    def test_second_failure_in_window_activates_cooldown(self):
        self.tracker.record_failure(now=0.0)
        state = self.tracker.record_failure(now=5 * MINUTE)
        self.assertTrue(state.active)
        self.assertEqual(state.until, 5 * MINUTE + 1200)
        self.assertEqual(self.tracker.cooldown_remaining(now=6 * MINUTE), 1200 - MINUTE)

    def test_success_clears_history_and_cooldown(self):
        self.tracker.record_failure(now=0.0)
        self.tracker.record_failure(now=5 * MINUTE)
        self.tracker.record_success()
        self.assertIsNone(self.tracker.cooldown_remaining(now=6 * MINUTE))
        self.assertEqual(self.tracker.failure_count(now=6 * MINUTE), 0)
        # a fresh failure starts over from one
        self.assertFalse(self.tracker.record_failure(now=7 * MINUTE).active)

    def test_old_failures_are_pruned(self):
        self.tracker.record_failure(now=0.0)
        state = self.tracker.record_failure(now=11 * MINUTE)
        self.assertFalse(state.active)
        self.assertEqual(self.tracker.failure_count(now=11 * MINUTE), 1)

    def test_failure_exactly_at_window_edge_is_dropped(self):
        self.tracker.record_failure(now=0.0)
        self.assertEqual(self.tracker.failure_count(now=600.0), 0)

    def test_cooldown_expires(self):
        self.tracker.record_failure(now=0.0)
        self.tracker.record_failure(now=MINUTE)
        self.assertIsNone(self.tracker.cooldown_remaining(now=MINUTE + 1200))
        self.assertFalse(self.tracker.state(now=MINUTE + 1200).active)

    def test_uses_injected_clock(self):
        now = [1000.0]
        tracker = FailureTracker(failure_threshold=1, cooldown_secs=30, clock=lambda: now[0])
        tracker.record_failure()
        self.assertEqual(tracker.cooldown_remaining(), 30)
        now[0] += 31
        self.assertIsNone(tracker.cooldown_remaining())

    def test_concurrent_failures_are_all_counted(self):
        tracker = FailureTracker(window_secs=600, failure_threshold=1000, clock=lambda: 0.0)
        threads = [
            threading.Thread(target=lambda: [tracker.record_failure() for _ in range(50)])
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(tracker.failure_count(), 400)


if __name__ == "__main__":
    unittest.main()
