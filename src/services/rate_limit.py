"""Fixed-window request rate limiting."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from redis import Redis
from redis.exceptions import RedisError

from src.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

RATE_LIMIT_NAMESPACE = "audit-service:ratelimit"


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    count: int
    limit: int
    retry_after: int


class RateLimitStore(Protocol):
    def hit(self, key: str, window_seconds: int, now: datetime) -> tuple[int, float]:
        """Count one request for ``key``; return (count, window reset epoch)."""

    def prune(self, now: datetime) -> int:
        """Drop expired windows; return how many were removed."""


class InMemoryRateLimitStore:
    """Process-local counters, for single-worker deployments and tests."""

    def __init__(self) -> None:
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._next_prune = 0.0

    def hit(
        self, key: str, window_seconds: int, now: datetime
    ) -> tuple[int, float]:
        timestamp = now.timestamp()
        with self._lock:
            if timestamp >= self._next_prune:
                self._drop_expired(timestamp)
                self._next_prune = timestamp + window_seconds
            count, reset_at = self._windows.get(key, (0, 0.0))
            if timestamp >= reset_at:
                count, reset_at = 0, timestamp + window_seconds
            count += 1
            self._windows[key] = (count, reset_at)
        return count, reset_at

    def prune(self, now: datetime) -> int:
        with self._lock:
            return self._drop_expired(now.timestamp())

    def _drop_expired(self, timestamp: float) -> int:
        # Caller holds the lock.
        expired = [
            key
            for key, (_, reset_at) in self._windows.items()
            if timestamp >= reset_at
        ]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)


class RedisRateLimitStore:
    """Counters shared between workers through Redis ``INCR``/``EXPIRE``."""

    def __init__(
        self, client: Redis, *, namespace: str = RATE_LIMIT_NAMESPACE
    ) -> None:
        self.client = client
        self.namespace = namespace

    def hit(
        self, key: str, window_seconds: int, now: datetime
    ) -> tuple[int, float]:
        bucket = int(now.timestamp() // window_seconds)
        redis_key = f"{self.namespace}:{key}:{bucket}"
        pipeline = self.client.pipeline()
        pipeline.incr(redis_key)
        pipeline.expire(redis_key, window_seconds)
        count, _ = pipeline.execute()
        return int(count), float((bucket + 1) * window_seconds)

    def prune(self, now: datetime) -> int:
        # Keys expire on their own.
        return 0


class RateLimiter:
    """Allow at most ``requests`` hits per key in each window."""

    def __init__(
        self,
        store: RateLimitStore,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self._clock = clock

    def hit(self, key: str, *, requests: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        try:
            count, reset_at = self.store.hit(key, window_seconds, now)
        except RedisError:
            logger.exception("rate_limit.store_failed key=%s", key)
            return RateLimitResult(True, 0, requests, 0)
        retry_after = max(math.ceil(reset_at - now.timestamp()), 0)
        return RateLimitResult(
            allowed=count <= requests,
            count=count,
            limit=requests,
            retry_after=retry_after,
        )

    def prune(self) -> int:
        return self.store.prune(self._clock())


def build_rate_limiter(
    redis_client: Redis | None, *, clock: Clock = utcnow
) -> RateLimiter:
    if redis_client is not None:
        return RateLimiter(RedisRateLimitStore(redis_client), clock=clock)
    return RateLimiter(InMemoryRateLimitStore(), clock=clock)


__all__ = [
    "InMemoryRateLimitStore",
    "RateLimitResult",
    "RateLimiter",
    "RedisRateLimitStore",
    "build_rate_limiter",
]
