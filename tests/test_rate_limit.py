import unittest

from gtshop.services.rate_limit import RateLimiter


class TestRateLimiter(unittest.TestCase):
    def setUp(self):
        self.now = 0.0
        self.limiter = RateLimiter(clock=lambda: self.now)

    def test_allows_up_to_limit(self):
        results = [self.limiter.hit("k", 3, 60) for _ in range(4)]
        self.assertEqual(results, [True, True, True, False])

    def test_window_slides(self):
        for t in (0, 10, 20):
            self.now = t
            self.assertTrue(self.limiter.hit("k", 3, 60))
        self.now = 59
        self.assertFalse(self.limiter.hit("k", 3, 60))
        # the hit at t=0 has left the window, the others have not
        self.now = 60
        self.assertTrue(self.limiter.hit("k", 3, 60))
        self.assertFalse(self.limiter.hit("k", 3, 60))

    def test_refused_hits_are_not_counted(self):
        for _ in range(10):
            self.limiter.hit("k", 1, 60)
        self.now = 61
        self.assertTrue(self.limiter.hit("k", 1, 60))

    def test_keys_are_independent(self):
        self.assertTrue(self.limiter.hit("a", 1, 60))
        self.assertTrue(self.limiter.hit("b", 1, 60))
        self.assertFalse(self.limiter.hit("a", 1, 60))

    def test_idle_keys_are_swept(self):
        limiter = RateLimiter(clock=lambda: self.now, sweep_every=4)
        for i in range(3):
            limiter.hit(f"client-{i}", 1, 60)
        self.assertEqual(len(limiter), 3)
        self.now = 61
        limiter.hit("late", 1, 60)
        self.assertEqual(len(limiter), 1)

    def test_refused_hit_stores_nothing_for_new_key(self):
        self.assertFalse(self.limiter.hit("k", 0, 60))
        self.assertEqual(len(self.limiter), 0)

    def test_reset(self):
        self.limiter.hit("a", 1, 60)
        self.limiter.reset("a")
        self.assertTrue(self.limiter.hit("a", 1, 60))


if __name__ == "__main__":
    unittest.main()
