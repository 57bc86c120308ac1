"""Tests for the PacingPolicy delay sampler."""

import random
import unittest
from collections import Counter

from iptu_scraper.pacing import DELAY_RANGES_MS, DelayClass, PacingPolicy


class TestPacingPolicy(unittest.TestCase):
    def setUp(self):
        self.pacing = PacingPolicy(rng=random.Random(42))

    def test_durations_stay_inside_jittered_range(self):
        """Each class samples its base range widened by +/-20%."""
        for delay_class, (low, high) in DELAY_RANGES_MS.items():
            for _ in range(200):
                seconds = self.pacing.duration(delay_class)
                self.assertGreaterEqual(seconds, low * 0.8 / 1000.0)
                self.assertLessEqual(seconds, high * 1.2 / 1000.0)

    def test_accepts_class_name(self):
        seconds = self.pacing.duration("quick")
        self.assertLessEqual(seconds, 4.8)

    def test_normal_is_the_most_common_class(self):
        counts = Counter(self.pacing.random_class() for _ in range(6000))
        self.assertEqual(set(counts), set(DelayClass))
        self.assertGreater(counts[DelayClass.NORMAL], counts[DelayClass.SLOW])
        self.assertGreater(counts[DelayClass.SLOW], counts[DelayClass.QUICK])

    def test_same_seed_same_sequence(self):
        a = PacingPolicy(rng=random.Random(7))
        b = PacingPolicy(rng=random.Random(7))
        self.assertEqual(
            [a.random_duration() for _ in range(20)],
            [b.random_duration() for _ in range(20)],
        )


class TestStagger(unittest.TestCase):
    """Jobs later in a chunk start later."""

    def setUp(self):
        self.pacing = PacingPolicy(rng=random.Random(1))

    def test_first_job_starts_immediately(self):
        self.assertEqual(self.pacing.stagger(0), 0.0)

    def test_offset_range_grows_with_index(self):
        for index in range(1, 5):
            for _ in range(50):
                offset = self.pacing.stagger(index)
                self.assertGreaterEqual(offset, (6000 + 2000 * index) / 1000.0)
                self.assertLessEqual(offset, (12000 + 3000 * index) / 1000.0)

    def test_chunk_gap_range(self):
        for _ in range(100):
            gap = self.pacing.chunk_gap()
            self.assertGreaterEqual(gap, 8.0)
            self.assertLessEqual(gap, 12.0)


if __name__ == "__main__":
    unittest.main()
