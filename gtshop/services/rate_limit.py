"""
Rate Limiter: in-process sliding windows
One deque of hit timestamps per key. Process-local and lost on restart, which
is enough to slow down abuse but is not a quota across several instances.
Keys whose window has fully elapsed are swept so idle callers do not pile up.
"""

import threading
import time
from collections import deque

SWEEP_EVERY = 256


class RateLimiter:
    def __init__(self, clock=time.monotonic, sweep_every=SWEEP_EVERY):
        self._clock = clock
        self._sweep_every = sweep_every
        self._hits = {}
        self._windows = {}
        self._calls = 0
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._hits)

    def hit(self, key, limit, window_seconds):
        """Record one request for key. Returns False (and records nothing) over budget."""
        now = self._clock()
        window_start = now - window_seconds
        with self._lock:
            self._calls += 1
            if self._calls % self._sweep_every == 0:
                self._sweep(now)

            hits = self._hits.get(key)
            if hits is None:
                hits = deque()
            while hits and hits[0] <= window_start:
                hits.popleft()
            if len(hits) >= limit:
                return False
            hits.append(now)
            self._hits[key] = hits
            self._windows[key] = window_seconds
            return True

    def reset(self, key=None):
        with self._lock:
            if key is None:
                self._hits.clear()
                self._windows.clear()
            else:
                self._hits.pop(key, None)
                self._windows.pop(key, None)

    def _sweep(self, now):
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= now - self._windows[key]]
        for key in stale:
            del self._hits[key]
            del self._windows[key]
