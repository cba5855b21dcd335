"""Sliding-window request limiter.

Counters live behind a small interface so a deployment with several instances
can share them through Redis; a single process can keep them in memory.
"""
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from threading import Lock

import redis.asyncio as redis

from app.core.errors import RateLimitedError

logger = logging.getLogger(__name__)

# Idle keys are dropped from the in-memory map at most this often
CLEANUP_INTERVAL_SECONDS = 60


class RateLimiter(ABC):
    @abstractmethod
    async def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        """Record a hit for ``key``; False once ``limit`` hits fall inside the window."""

    async def close(self) -> None:
        return None


class InMemoryRateLimiter(RateLimiter):
    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._requests: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._longest_window = 0
        self._last_cleanup = clock()

    async def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            self._longest_window = max(self._longest_window, window_seconds)
            if now - self._last_cleanup >= CLEANUP_INTERVAL_SECONDS:
                self._cleanup(now)
            hits = self._requests.setdefault(key, deque())
            while hits and now - hits[0] >= window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return False
            hits.append(now)
            return True

    def _cleanup(self, now: float) -> None:
        idle = [k for k, hits in self._requests.items() if not hits or now - hits[-1] >= self._longest_window]
        for key in idle:
            del self._requests[key]
        self._last_cleanup = now
        if idle:
            logger.debug("Dropped %d idle rate-limit keys", len(idle))

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()


class RedisRateLimiter(RateLimiter):
    """Sorted set per key: members are request ids scored by timestamp."""

    def __init__(self, client: redis.Redis, prefix: str = "ratelimit") -> None:
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimiter":
        client = redis.from_url(url, decode_responses=True, retry_on_timeout=True)
        return cls(client)

    async def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        redis_key = f"{self.prefix}:{key}"
        now = time.time()
        member = f"{now}:{uuid.uuid4().hex}"
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
            pipe.zadd(redis_key, {member: now})
            pipe.zcard(redis_key)
            pipe.expire(redis_key, window_seconds)
            _, _, count, _ = await pipe.execute()
        if count > limit:
            await self.client.zrem(redis_key, member)
            return False
        return True

    async def close(self) -> None:
        await self.client.aclose()


def build_rate_limiter(redis_url: str) -> RateLimiter:
    if redis_url:
        logger.info("Rate limiting backed by Redis")
        return RedisRateLimiter.from_url(redis_url)
    logger.info("Rate limiting kept in process memory")
    return InMemoryRateLimiter()


async def enforce(limiter: RateLimiter, key: str, limit: int, window_seconds: int) -> None:
    if not await limiter.allow(key, limit, window_seconds):
        logger.info("Rate limit exceeded for %s", key)
        raise RateLimitedError("Too many requests", retry_after=window_seconds)
