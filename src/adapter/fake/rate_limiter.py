"""In-memory sliding-window implementation of RateLimiterPort for testing."""

import math
import threading
import time
from collections import deque

from port.rate_limiter import RateLimitResult


class FakeRateLimiter:
    def __init__(self, clock=time.monotonic):
        self.hits: dict[str, deque] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            window = self.hits.setdefault(key, deque())
            while window and window[0] <= now - window_seconds:
                window.popleft()

            if len(window) >= limit:
                retry_after = max(1, math.ceil(window[0] + window_seconds - now))
                return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)

            window.append(now)
            return RateLimitResult(allowed=True, remaining=limit - len(window))

    def reset(self):
        with self._lock:
            self.hits.clear()
