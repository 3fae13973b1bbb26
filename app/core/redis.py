"""Redis client helpers: shared client, sliding-window rate limiter, JSON cache."""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, cast

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)

_redis_client: Redis | None = None


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Result of a rate-limit check."""

    allowed: bool
    remaining: int
    retry_after_seconds: int = 0


_SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
local count = redis.call('ZCARD', key)
if count >= limit then
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    return {0, count, oldest[2] or false}
end
redis.call('ZADD', key, now, ARGV[4])
redis.call('EXPIRE', key, window)
return {1, count + 1, false}
"""


class SlidingWindowRateLimiter:
    """Sorted-set sliding window keyed by ``ratelimit:<name>:<identifier>``.

    Each admitted request adds a member scored with its timestamp; members
    older than the window are dropped before counting. Trim, count and add
    run as one Lua script so concurrent requests cannot overshoot the quota.
    When Redis is unreachable the request is allowed.
    """

    def __init__(
        self,
        client: Redis,
        name: str,
        *,
        max_requests: int,
        window_seconds: int,
    ) -> None:
        self._client = client
        self._script = client.register_script(_SLIDING_WINDOW_SCRIPT)
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def key_for(self, identifier: str) -> str:
        return f"ratelimit:{self.name}:{identifier}"

    async def hit(self, identifier: str) -> RateLimitDecision:
        """Check the quota for ``identifier`` and record the request if admitted."""
        now = time.time()

        try:
            admitted, count, oldest_score = await cast(
                Awaitable[list[Any]],
                self._script(
                    keys=[self.key_for(identifier)],
                    args=[now, self.window_seconds, self.max_requests, f"{now}:{uuid.uuid4().hex}"],
                ),
            )
        except (RedisError, OSError) as e:
            logger.warning(
                "Rate limiter unavailable, allowing request",
                extra={"limiter": self.name, "error": str(e)},
            )
            return RateLimitDecision(allowed=True, remaining=self.max_requests)

        if int(admitted):
            return RateLimitDecision(allowed=True, remaining=max(0, self.max_requests - int(count)))

        retry_after = self.window_seconds
        if oldest_score is not None:
            retry_after = max(1, int(float(oldest_score) + self.window_seconds - now))
        return RateLimitDecision(allowed=False, remaining=0, retry_after_seconds=retry_after)


class RedisJSONCache:
    """Best-effort JSON cache. Errors are logged and treated as a miss."""

    def __init__(self, client: Redis, *, ttl_seconds: int) -> None:
        self._client = client
        self.ttl_seconds = ttl_seconds

    async def get(self, key: str) -> Any | None:
        try:
            raw = await cast(Awaitable[str | None], self._client.get(key))
        except (RedisError, OSError) as e:
            logger.warning("Cache read failed", extra={"key": key, "error": str(e)})
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding malformed cache entry", extra={"key": key})
            return None

    async def set(self, key: str, value: Any) -> None:
        try:
            await cast(
                Awaitable[bool],
                self._client.set(key, json.dumps(value), ex=self.ttl_seconds),
            )
        except (RedisError, OSError) as e:
            logger.warning("Cache write failed", extra={"key": key, "error": str(e)})


def get_redis_client() -> Redis:
    """Get a shared Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


def get_audit_rate_limiter() -> SlidingWindowRateLimiter:
    """Per-IP audit quota (defaults to one audit per day)."""
    return SlidingWindowRateLimiter(
        get_redis_client(),
        "audit",
        max_requests=settings.audit_rate_limit_requests,
        window_seconds=settings.audit_rate_limit_window_seconds,
    )


async def ping_redis(timeout: float = 2.0) -> bool:
    """Whether the shared Redis client answers PING within ``timeout`` seconds."""
    try:
        return bool(
            await asyncio.wait_for(
                cast(Awaitable[bool], get_redis_client().ping()),
                timeout=timeout,
            )
        )
    except (RedisError, OSError, asyncio.TimeoutError) as e:
        logger.warning("Redis ping failed", extra={"error": repr(e)})
        return False


async def close_redis() -> None:
    """Close Redis client connections."""
    global _redis_client
    if _redis_client is None:
        return

    await _redis_client.aclose()
    _redis_client = None
    logger.info("Redis connection closed")
