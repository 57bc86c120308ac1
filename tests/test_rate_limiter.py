"""Tests for the RateLimiter class."""

import unittest

from iptu_scraper.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter(unittest.TestCase):
    """Verify that the rate limiter throttles jobs to the hourly budget."""

    def setUp(self):
        self.clock = FakeClock(now=50.0)

    def limiter(self, rate):
        return RateLimiter(rate, clock=self.clock, sleep=self.clock.sleep)

    def test_interval_from_hourly_rate(self):
        self.assertEqual(self.limiter(100).interval, 36.0)

    def test_acquire_does_not_block_first_call(self):
        """The first acquire() call should return immediately."""
        self.assertEqual(self.limiter(100).acquire(), 0.0)
        self.assertEqual(self.clock.sleeps, [])

    def test_acquire_throttles_rapid_calls(self):
        """Back-to-back calls at 3600/h are spaced one second apart."""
        limiter = self.limiter(3600)
        limiter.acquire()
        limiter.acquire()
        limiter.acquire()
        self.assertEqual(self.clock.sleeps, [1.0, 1.0])

    def test_chunk_books_one_interval_per_job(self):
        limiter = self.limiter(360)  # 10s per job
        self.assertEqual(limiter.acquire(3), 0.0)
        self.assertEqual(limiter.reserve(1), 30.0)

    def test_idle_time_is_not_banked(self):
        limiter = self.limiter(360)
        limiter.acquire()
        self.clock.now += 100.0
        self.assertEqual(limiter.acquire(), 0.0)

    def test_zero_rate_does_not_block(self):
        """A rate of 0 should disable rate limiting entirely."""
        limiter = self.limiter(0)
        for _ in range(10):
            self.assertEqual(limiter.acquire(5), 0.0)
        self.assertEqual(self.clock.sleeps, [])


if __name__ == "__main__":
    unittest.main()
