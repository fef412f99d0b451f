"""
Fixed-window rate limiting keyed by client identity.

The bucket store is an explicitly owned object with its own eviction policy:
expired windows are swept on access (at most once per sweep interval) and a
hard cap on tracked clients evicts the oldest windows first.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

Clock = Callable[[], float]


@dataclass
class RateLimitBucket:
    client_id: str
    window_start: float
    count: int = 0


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    window_seconds: int
    remaining: int
    retry_after: int = 0


class RateLimitExceeded(Exception):
    """Rate limit has been exceeded."""

    def __init__(self, limit: int, window_seconds: int, retry_after: int):
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded: {limit} requests per {window_seconds}s")


class RateLimitStore:
    """In-memory bucket map with sweep-on-access eviction."""

    def __init__(
        self,
        *,
        max_buckets: int = 10_000,
        sweep_interval_seconds: float = 60.0,
    ):
        self.max_buckets = max_buckets
        self.sweep_interval_seconds = sweep_interval_seconds
        self._buckets: Dict[str, RateLimitBucket] = {}
        self._last_sweep: float = 0.0

    def __len__(self) -> int:
        return len(self._buckets)

    def get(self, client_id: str) -> Optional[RateLimitBucket]:
        return self._buckets.get(client_id)

    def put(self, bucket: RateLimitBucket) -> None:
        self._buckets[bucket.client_id] = bucket

    def clear(self) -> None:
        self._buckets.clear()
        self._last_sweep = 0.0

    def maybe_sweep(self, now: float, window_seconds: float) -> int:
        """Drop expired buckets if the sweep interval has passed."""
        if now - self._last_sweep < self.sweep_interval_seconds:
            return 0
        self._last_sweep = now
        expired = [
            key for key, bucket in self._buckets.items()
            if now >= bucket.window_start + window_seconds
        ]
        for key in expired:
            del self._buckets[key]
        return len(expired)

    def make_room(self) -> None:
        """Evict oldest windows until there is space for one more client."""
        overflow = len(self._buckets) - self.max_buckets + 1
        if overflow <= 0:
            return
        oldest = sorted(self._buckets.values(), key=lambda b: b.window_start)[:overflow]
        for bucket in oldest:
            del self._buckets[bucket.client_id]


class FixedWindowRateLimiter:
    """
    Fixed-window counter.

    Admits brief bursts at window boundaries; swap in a sliding-window or
    token-bucket limiter behind the same check() contract if smoother
    admission is needed.
    """

    def __init__(
        self,
        store: RateLimitStore,
        *,
        window_seconds: int = 900,
        max_requests: int = 100,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock or time.monotonic

    def check(self, client_id: str) -> RateLimitDecision:
        """Count one request from client_id. No awaits between lookup and update."""
        now = self._clock()
        self.store.maybe_sweep(now, self.window_seconds)

        bucket = self.store.get(client_id)
        if bucket is None or now >= bucket.window_start + self.window_seconds:
            if bucket is None:
                self.store.make_room()
            self.store.put(RateLimitBucket(client_id=client_id, window_start=now, count=1))
            return RateLimitDecision(
                allowed=True,
                limit=self.max_requests,
                window_seconds=self.window_seconds,
                remaining=self.max_requests - 1,
            )

        if bucket.count >= self.max_requests:
            window_end = bucket.window_start + self.window_seconds
            retry_after = max(1, math.ceil(window_end - now))
            return RateLimitDecision(
                allowed=False,
                limit=self.max_requests,
                window_seconds=self.window_seconds,
                remaining=0,
                retry_after=retry_after,
            )

        bucket.count += 1
        return RateLimitDecision(
            allowed=True,
            limit=self.max_requests,
            window_seconds=self.window_seconds,
            remaining=self.max_requests - bucket.count,
        )

    def enforce(self, client_id: str) -> RateLimitDecision:
        decision = self.check(client_id)
        if not decision.allowed:
            raise RateLimitExceeded(decision.limit, decision.window_seconds, decision.retry_after)
        return decision
