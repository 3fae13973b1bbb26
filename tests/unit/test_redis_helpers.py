"""Unit tests for the Redis rate limiter and JSON cache."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.redis import RedisJSONCache, SlidingWindowRateLimiter


class _FakeSlidingWindowScript:
    """Runs the limiter script against the fake's sorted sets in one step."""

    def __init__(self, redis: _FakeRedis) -> None:
        self.redis = redis

    async def __call__(self, keys: list[str], args: list[Any]) -> list[Any]:
        # one network round trip; no other command interleaves with the body
        await asyncio.sleep(0)
        self.redis._check()
        key = keys[0]
        now, window, limit, member = float(args[0]), int(args[1]), int(args[2]), args[3]
        members = self.redis.zsets.setdefault(key, {})
        for stale in [m for m, score in members.items() if score <= now - window]:
            del members[stale]
        if len(members) >= limit:
            oldest = min(members.values())
            return [0, len(members), str(oldest)]
        members[member] = now
        self.redis.expirations[key] = window
        return [1, len(members), None]


class _FakeRedis:
    """In-memory stand-in for the script and string commands we use."""

    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.zsets: dict[str, dict[str, float]] = {}
        self.strings: dict[str, str] = {}
        self.expirations: dict[str, int] = {}
        self.scripts: list[str] = []

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    def register_script(self, script: str) -> _FakeSlidingWindowScript:
        self.scripts.append(script)
        return _FakeSlidingWindowScript(self)

    async def get(self, key: str) -> str | None:
        self._check()
        return self.strings.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.strings[key] = value
        if ex is not None:
            self.expirations[key] = ex
        return True


def _limiter(client: _FakeRedis, max_requests: int = 1) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        client,  # type: ignore[arg-type]
        "audit",
        max_requests=max_requests,
        window_seconds=86400,
    )


@pytest.mark.asyncio
async def test_limiter_admits_until_quota_then_reports_retry_after() -> None:
    client = _FakeRedis()
    limiter = _limiter(client, max_requests=2)

    first = await limiter.hit("203.0.113.7")
    second = await limiter.hit("203.0.113.7")
    third = await limiter.hit("203.0.113.7")

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert third.allowed is False
    assert 86000 < third.retry_after_seconds <= 86400
    assert client.expirations["ratelimit:audit:203.0.113.7"] == 86400


@pytest.mark.asyncio
async def test_limiter_admits_only_quota_under_concurrent_hits() -> None:
    client = _FakeRedis()
    limiter = _limiter(client)

    decisions = await asyncio.gather(*(limiter.hit("203.0.113.7") for _ in range(5)))

    assert [d.allowed for d in decisions].count(True) == 1
    assert len(client.zsets["ratelimit:audit:203.0.113.7"]) == 1
    assert len(client.scripts) == 1


@pytest.mark.asyncio
async def test_limiter_tracks_identifiers_independently() -> None:
    limiter = _limiter(_FakeRedis())

    assert (await limiter.hit("203.0.113.7")).allowed is True
    assert (await limiter.hit("198.51.100.2")).allowed is True
    assert (await limiter.hit("203.0.113.7")).allowed is False


@pytest.mark.asyncio
async def test_limiter_drops_requests_outside_window() -> None:
    client = _FakeRedis()
    client.zsets["ratelimit:audit:203.0.113.7"] = {"old": 1.0}
    limiter = _limiter(client)

    decision = await limiter.hit("203.0.113.7")

    assert decision.allowed is True
    assert "old" not in client.zsets["ratelimit:audit:203.0.113.7"]


@pytest.mark.asyncio
async def test_limiter_allows_requests_when_redis_is_down() -> None:
    limiter = _limiter(_FakeRedis(error=RedisConnectionError("refused")))

    decision = await limiter.hit("203.0.113.7")

    assert decision.allowed is True


@pytest.mark.asyncio
async def test_json_cache_round_trips_with_ttl() -> None:
    client = _FakeRedis()
    cache = RedisJSONCache(client, ttl_seconds=3600)  # type: ignore[arg-type]

    await cache.set("aeo:audit:abc", {"report": {"summary": "ok"}, "api_cost": 0.6})

    assert await cache.get("aeo:audit:abc") == {"report": {"summary": "ok"}, "api_cost": 0.6}
    assert client.expirations["aeo:audit:abc"] == 3600
    assert await cache.get("aeo:audit:missing") is None


@pytest.mark.asyncio
async def test_json_cache_treats_errors_and_bad_payloads_as_miss() -> None:
    broken = RedisJSONCache(_FakeRedis(error=RedisConnectionError("refused")), ttl_seconds=60)  # type: ignore[arg-type]
    await broken.set("aeo:audit:abc", {"report": {}})
    assert await broken.get("aeo:audit:abc") is None

    client = _FakeRedis()
    client.strings["aeo:audit:abc"] = "{not json"
    cache = RedisJSONCache(client, ttl_seconds=60)  # type: ignore[arg-type]
    assert await cache.get("aeo:audit:abc") is None
