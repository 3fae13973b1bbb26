"""Unit tests for the health endpoints."""

from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient

from app.config import settings
from app.main import create_app


def _configure(monkeypatch: Any, *, redis_ok: bool, dataforseo: bool = True) -> list[str]:
    pings: list[str] = []

    async def _ping() -> bool:
        pings.append("ping")
        return redis_ok

    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    monkeypatch.setattr(settings, "dataforseo_login", "me" if dataforseo else None)
    monkeypatch.setattr(settings, "dataforseo_password", "pw" if dataforseo else None)
    monkeypatch.setattr(settings, "firecrawl_api_key", "fc-test")
    monkeypatch.setattr(settings, "perplexity_api_key", None)
    monkeypatch.setattr("app.main.ping_redis", _ping)
    return pings


def test_dependency_health_reports_vendors(monkeypatch: Any) -> None:
    pings = _configure(monkeypatch, redis_ok=True)

    with TestClient(create_app()) as client:
        response = client.get("/health/dependencies")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["redis"] == {"required": True, "reachable": True}
    assert payload["vendors"]["dataforseo"] is True
    assert payload["vendors"]["perplexity"] is False
    assert pings == ["ping"]


def test_dependency_health_is_degraded_without_redis_or_dataforseo(monkeypatch: Any) -> None:
    _configure(monkeypatch, redis_ok=False, dataforseo=False)

    with TestClient(create_app()) as client:
        payload = client.get("/health/dependencies").json()

    assert payload["status"] == "degraded"
    assert payload["redis"]["reachable"] is False
    assert payload["vendors"]["dataforseo"] is False


def test_dependency_health_skips_ping_when_redis_unused(monkeypatch: Any) -> None:
    pings = _configure(monkeypatch, redis_ok=False)
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    monkeypatch.setattr(settings, "audit_cache_enabled", False)

    with TestClient(create_app()) as client:
        payload = client.get("/health/dependencies").json()

    assert payload["status"] == "healthy"
    assert payload["redis"] == {"required": False, "reachable": None}
    assert pings == []
