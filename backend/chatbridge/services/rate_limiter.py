"""Simple in-memory rate limiting utilities."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict

from chatbridge.config import settings
from chatbridge.core.exceptions import ConfigurationInvalidError

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    timestamps: Deque[float]


class RateLimiter:
    """
    Sliding-window limiter suitable for single-node deployments.

    Each key may consume ``permits`` within any ``window_seconds`` span.
    When no permit is free the call is rejected at once, never queued.
    State lives in process memory and resets on restart.
    """

    def __init__(
        self,
        name: str,
        permits: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if permits <= 0:
            raise ConfigurationInvalidError(f"Rate limiter '{name}' needs a positive permit count")
        if window_seconds <= 0:
            raise ConfigurationInvalidError(f"Rate limiter '{name}' needs a positive window")
        self.name = name
        self.permits = permits
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: Dict[str, _Bucket] = {}
        self._next_sweep = clock() + window_seconds

    def _evict(self, bucket: _Bucket, now: float) -> None:
        cutoff = now - self.window_seconds
        while bucket.timestamps and bucket.timestamps[0] <= cutoff:
            bucket.timestamps.popleft()

    def _sweep(self, now: float) -> None:
        """Drop buckets whose newest permit has left the window; runs at most once per window."""
        if now < self._next_sweep:
            return
        cutoff = now - self.window_seconds
        stale = [
            key for key, bucket in self._buckets.items()
            if not bucket.timestamps or bucket.timestamps[-1] <= cutoff
        ]
        for key in stale:
            del self._buckets[key]
        self._next_sweep = now + self.window_seconds

    def try_acquire(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            bucket = self._buckets.setdefault(key, _Bucket(timestamps=deque()))
            self._evict(bucket, now)

            if len(bucket.timestamps) >= self.permits:
                logger.warning("Rate limiter '%s' rejected key %s", self.name, key)
                return False

            bucket.timestamps.append(now)
            return True

    def retry_after(self, key: str) -> int:
        """Whole seconds until the oldest permit for ``key`` frees up."""
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return 0
            self._evict(bucket, now)
            if not bucket.timestamps:
                del self._buckets[key]
                return 0
            if len(bucket.timestamps) < self.permits:
                return 0
            return max(1, math.ceil(bucket.timestamps[0] + self.window_seconds - now))

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


refresh_rate_limiter = RateLimiter(
    "refreshToken",
    permits=settings.REFRESH_RATE_LIMIT_PERMITS,
    window_seconds=settings.REFRESH_RATE_LIMIT_WINDOW_SECONDS,
)
login_minute_limiter = RateLimiter("loginPerMinute", settings.LOGIN_RATE_LIMIT_PER_MINUTE, 60)
login_hour_limiter = RateLimiter("loginPerHour", settings.LOGIN_RATE_LIMIT_PER_HOUR, 3600)
