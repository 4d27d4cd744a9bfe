from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable


class RateLimiter:
    """In-memory sliding window limiter keyed by caller and action."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._buckets: dict[str, deque[float]] = {}

    def _trim(self, key: str, window_seconds: float, now: float) -> deque[float]:
        bucket = self._buckets.get(key)
        if bucket is None:
            return deque()
        while bucket and now - bucket[0] > window_seconds:
            bucket.popleft()
        if not bucket:
            del self._buckets[key]
        return bucket

    def tracked_keys(self) -> int:
        return len(self._buckets)

    def allow(self, key: str, limit: int, window_seconds: float) -> bool:
        now = self._clock()
        bucket = self._trim(key, window_seconds, now)
        if len(bucket) >= limit:
            return False
        bucket.append(now)
        self._buckets[key] = bucket
        return True

    def retry_after(self, key: str, window_seconds: float) -> int:
        """Whole seconds until the oldest hit in the window expires."""

        now = self._clock()
        bucket = self._trim(key, window_seconds, now)
        if not bucket:
            return 0
        return max(int(window_seconds - (now - bucket[0])) + 1, 1)


__all__ = ["RateLimiter"]
