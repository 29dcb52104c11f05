"""
Rate limiting for the chat endpoint

Injected into the route as a dependency; the in-memory implementation can be
replaced by a shared store without touching call sites.
"""
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict


class RateLimiter:
    """Interface: one call per request, keyed by caller"""

    def hit(self, key: str) -> bool:
        """Record a request. Returns False when the key is over its limit."""
        raise NotImplementedError


class SlidingWindowRateLimiter(RateLimiter):
    """
    At most `max_requests` per `window_seconds` per key.

    Each key keeps the timestamps of its requests inside the window. Keys
    idle for a whole window are evicted on the next sweep.
    """

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def hit(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)

            hits = self._hits.setdefault(key, deque())
            cutoff = now - self.window_seconds
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def retry_after(self, key: str) -> float:
        """Seconds until the oldest hit of `key` leaves the window"""
        with self._lock:
            hits = self._hits.get(key)
            if not hits:
                return 0.0
            return max(0.0, hits[0] + self.window_seconds - self._clock())

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def _sweep(self, now: float) -> None:
        cutoff = now - self.window_seconds
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in idle:
            del self._hits[key]
        self._last_sweep = now
