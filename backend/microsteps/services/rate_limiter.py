"""Per-user quota for breakdown generation."""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional, Protocol

import redis
from starlette.concurrency import run_in_threadpool

from microsteps.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: Optional[int] = None


@dataclass
class RateLimitRecord:
    """Consumed points and the moment the user's current window opened."""

    consumed: int
    window_start: float


class RateLimiter(Protocol):
    points: int
    window_seconds: int

    def consume(self, user_id: str) -> RateLimitDecision:
        """Spend one point for ``user_id`` and report whether it was allowed."""
        ...

    def close(self) -> None:
        ...


class InMemoryRateLimiter:
    """Fixed-window counter held in process memory.

    A user's window opens on their first request and lasts ``window_seconds``.
    Records whose window has elapsed are swept at most once per window, so
    memory tracks the users active in the last two windows.
    Counts are not shared between processes; use RedisRateLimiter when the
    service runs on more than one instance.
    """

    def __init__(
        self,
        points: int = 10,
        window_seconds: int = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if points < 1:
            raise ValueError("points must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        self.points = points
        self.window_seconds = window_seconds
        self._clock = clock
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = Lock()
        self._last_sweep = clock()

    def consume(self, user_id: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            record = self._records.get(user_id)
            if record is None or now - record.window_start >= self.window_seconds:
                record = RateLimitRecord(consumed=0, window_start=now)
                self._records[user_id] = record

            if record.consumed >= self.points:
                remaining = record.window_start + self.window_seconds - now
                return RateLimitDecision(allowed=False, retry_after=max(1, math.ceil(remaining)))

            record.consumed += 1
            return RateLimitDecision(allowed=True)

    def remaining(self, user_id: str) -> int:
        with self._lock:
            record = self._records.get(user_id)
            if record is None or self._clock() - record.window_start >= self.window_seconds:
                return self.points
            return max(0, self.points - record.consumed)

    def reset(self, user_id: str | None = None) -> None:
        with self._lock:
            if user_id is None:
                self._records.clear()
            else:
                self._records.pop(user_id, None)

    def tracked_users(self) -> int:
        with self._lock:
            return len(self._records)

    def close(self) -> None:
        self.reset()

    def _sweep(self, now: float) -> None:
        # Caller holds the lock.
        expired = [
            user_id
            for user_id, record in self._records.items()
            if now - record.window_start >= self.window_seconds
        ]
        for user_id in expired:
            del self._records[user_id]
        self._last_sweep = now
        if expired:
            logger.debug("Swept %s expired rate limit records", len(expired))


class RedisRateLimiter:
    """Redis-based limiter using the INCR + EXPIRE pattern, shared across instances."""

    def __init__(
        self,
        redis_client: redis.Redis,
        points: int = 10,
        window_seconds: int = 3600,
        key_prefix: str = "ratelimit:task-breakdown",
    ) -> None:
        self._redis = redis_client
        self.points = points
        self.window_seconds = window_seconds
        self._key_prefix = key_prefix

    def consume(self, user_id: str) -> RateLimitDecision:
        redis_key = f"{self._key_prefix}:{user_id}"

        count = self._redis.incr(redis_key)
        if count == 1:
            self._redis.expire(redis_key, self.window_seconds)

        if count > self.points:
            ttl = self._redis.ttl(redis_key)
            if ttl is None or ttl < 0:
                # Key lost its expiry (e.g. crash between INCR and EXPIRE).
                self._redis.expire(redis_key, self.window_seconds)
                ttl = self.window_seconds
            return RateLimitDecision(allowed=False, retry_after=max(1, int(ttl)))

        return RateLimitDecision(allowed=True)

    def close(self) -> None:
        self._redis.close()


def check_rate_limit(limiter: RateLimiter, user_id: str) -> RateLimitDecision:
    """Consume one breakdown point for ``user_id``."""
    decision = limiter.consume(user_id)
    if not decision.allowed:
        logger.info("Breakdown rate limit hit for user %s (retry after %ss)", user_id, decision.retry_after)
    return decision


async def acheck_rate_limit(limiter: RateLimiter, user_id: str) -> RateLimitDecision:
    """Run ``check_rate_limit`` in the threadpool so a slow Redis round-trip never blocks the event loop."""
    return await run_in_threadpool(check_rate_limit, limiter, user_id)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Create the limiter selected by RATE_LIMIT_BACKEND."""
    backend = settings.rate_limit_backend.lower()
    if backend == "redis":
        if not settings.redis_url:
            raise ValueError("RATE_LIMIT_BACKEND=redis requires REDIS_URL")
        return RedisRateLimiter(
            redis.Redis.from_url(settings.redis_url),
            points=settings.rate_limit_points,
            window_seconds=settings.rate_limit_window_seconds,
        )
    if backend != "memory":
        raise ValueError(f"Unknown rate limit backend: {settings.rate_limit_backend}")
    return InMemoryRateLimiter(
        points=settings.rate_limit_points,
        window_seconds=settings.rate_limit_window_seconds,
    )
