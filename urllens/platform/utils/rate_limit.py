import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

from redis.asyncio import Redis

from urllens.platform.config import settings


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # seconds until the window resets


class RateLimiter:
    """Fixed-window limiter. Backends decide where the counters live."""

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        raise NotImplementedError

    async def reset(self, key: str) -> None:
        raise NotImplementedError


class InMemoryRateLimiter(RateLimiter):
    """Counters owned by this instance; suitable for a single process and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = Lock()

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            count, expires_at = self._windows.get(key, (0, now + window_seconds))
            if now >= expires_at:
                count, expires_at = 0, now + window_seconds

            reset_after = max(0, math.ceil(expires_at - now))
            if count >= limit:
                return RateLimitResult(False, limit, 0, reset_after)

            count += 1
            self._windows[key] = (count, expires_at)
            self._purge(now)
            return RateLimitResult(True, limit, limit - count, reset_after)

    async def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def _purge(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._windows.items() if expires_at <= now]
        for k in expired:
            del self._windows[k]


class RedisRateLimiter(RateLimiter):
    def __init__(self, redis_url: str, prefix: str = "rl"):
        self.redis_url = redis_url
        self.prefix = prefix
        self._redis: Optional[Redis] = None

    async def _client(self) -> Redis:
        if self._redis is None:
            self._redis = Redis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        redis = await self._client()
        redis_key = f"{self.prefix}:{key}"

        current = await redis.incr(redis_key)
        if current == 1:
            await redis.expire(redis_key, window_seconds)
        ttl = await redis.ttl(redis_key)
        reset_after = ttl if ttl and ttl > 0 else window_seconds

        if current > limit:
            return RateLimitResult(False, limit, 0, reset_after)
        return RateLimitResult(True, limit, limit - current, reset_after)

    async def reset(self, key: str) -> None:
        redis = await self._client()
        await redis.delete(f"{self.prefix}:{key}")


def build_rate_limiter(backend: Optional[str] = None) -> RateLimiter:
    backend = backend or settings.RATE_LIMIT_BACKEND
    if backend == "redis":
        return RedisRateLimiter(settings.REDIS_URL)
    return InMemoryRateLimiter()
