"""Tests for the BackoffStrategy class."""

import unittest

from iptu_scraper.backoff import BackoffStrategy


class TestBackoffStrategy(unittest.TestCase):
    """Verify exponential backoff produces correct sleep durations."""

    def test_first_attempt_returns_base(self):
        """First retry should sleep approximately the base duration."""
        backoff = BackoffStrategy(base_seconds=1.0, max_seconds=30.0)
        sleep = backoff.get_sleep(attempt=1)
        # base * 2^0 = 1.0, plus up to 10% jitter
        self.assertGreaterEqual(sleep, 1.0)
        self.assertLessEqual(sleep, 1.1)

    def test_exponential_growth(self):
        """Each subsequent attempt should roughly double the sleep time."""
        backoff = BackoffStrategy(base_seconds=0.5, max_seconds=100.0)
        sleep_1 = backoff.get_sleep(attempt=1)
        sleep_2 = backoff.get_sleep(attempt=2)
        sleep_3 = backoff.get_sleep(attempt=3)
        self.assertLess(sleep_1, sleep_2)
        self.assertLess(sleep_2, sleep_3)

    def test_respects_max_seconds(self):
        """Sleep duration should never exceed max_seconds (plus jitter)."""
        backoff = BackoffStrategy(base_seconds=1.0, max_seconds=5.0)
        sleep = backoff.get_sleep(attempt=20)
        self.assertLessEqual(sleep, 5.5)


class TestBackoffCall(unittest.TestCase):
    """Verify the retry loop around a callable."""

    def setUp(self):
        self.sleeps = []
        self.backoff = BackoffStrategy(base_seconds=0.1, max_attempts=3, sleep=self.sleeps.append)

    def test_returns_after_transient_errors(self):
        """Listed errors are retried and the eventual value is returned."""
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "ok"

        self.assertEqual(self.backoff.call(flaky, retry_on=(ConnectionError,)), "ok")
        self.assertEqual(len(calls), 3)
        self.assertEqual(len(self.sleeps), 2)

    def test_reraises_after_max_attempts(self):
        def always_down():
            raise ConnectionError("down")

        with self.assertRaises(ConnectionError):
            self.backoff.call(always_down, retry_on=(ConnectionError,))
        self.assertEqual(len(self.sleeps), 2)

    def test_other_errors_are_not_retried(self):
        def broken():
            raise KeyError("x")

        with self.assertRaises(KeyError):
            self.backoff.call(broken, retry_on=(ConnectionError,))
        self.assertEqual(self.sleeps, [])


if __name__ == "__main__":
    unittest.main()
