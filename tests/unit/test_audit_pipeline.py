"""Unit tests for the three-phase audit pipeline."""

from __future__ import annotations

from typing import Any

import pytest

from app.core.exceptions import ExtractionError, JudgeError, PerceptionError
from app.schemas.audit import APICosts, AuditRequest
from app.services.audit_pipeline import (
    FALLBACK_API_COST,
    TOOLS_USED,
    AuditOutcome,
    AuditPipeline,
    cache_key,
)
from app.services.extraction_service import ExtractionResult
from app.services.judge_service import JudgeResult
from app.services.perception_service import PerceptionResult
from conftest import build_perception, build_profile, build_report


class _FakeCache:
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.store: dict[str, Any] = dict(initial or {})

    async def get(self, key: str) -> Any | None:
        return self.store.get(key)

    async def set(self, key: str, value: Any) -> None:
        self.store[key] = value


class _FakePerception:
    def __init__(self, result: PerceptionResult) -> None:
        self.result = result
        self.calls: list[tuple[str, str | None]] = []

    async def run(self, brand_name: str, url: str | None = None) -> PerceptionResult:
        self.calls.append((brand_name, url))
        return self.result


class _Recorder:
    def __init__(self) -> None:
        self.phases: list[str] = []


def _pipeline(
    recorder: _Recorder,
    *,
    extraction: ExtractionResult | None = None,
    perception: PerceptionResult | None = None,
    judge: JudgeResult | None = None,
    cache: _FakeCache | None = None,
) -> AuditPipeline:
    async def _extract(url: str, brand_name: str) -> ExtractionResult:
        recorder.phases.append("extraction")
        return extraction or ExtractionResult(success=True, entity_profile=build_profile())

    async def _judge(brand_name: str, profile: Any, perception_data: Any) -> JudgeResult:
        recorder.phases.append("judge")
        return judge or JudgeResult(success=True, report=build_report())

    perception_service = _FakePerception(
        perception
        or PerceptionResult(
            success=True,
            perception=build_perception(api_costs=APICosts(dataforseo=0.62, perplexity=0.005, total=0.625)),
            errors=["knowledge_graph: timed out after 45s"],
        )
    )
    return AuditPipeline(
        cache=cache,  # type: ignore[arg-type]
        extraction=_extract,
        perception=perception_service,  # type: ignore[arg-type]
        judge=_judge,
    )


_REQUEST = AuditRequest(url="https://acme.com/", brand_name="Acme")


@pytest.mark.asyncio
async def test_successful_audit_runs_phases_in_order_and_caches() -> None:
    recorder = _Recorder()
    cache = _FakeCache()
    pipeline = _pipeline(recorder, cache=cache)

    outcome = await pipeline.run(_REQUEST)

    assert outcome.success is True
    assert recorder.phases == ["extraction", "judge"]
    assert outcome.report is not None
    assert outcome.api_cost == pytest.approx(0.625)
    assert outcome.tools_used == TOOLS_USED
    assert outcome.cached is False
    assert outcome.errors == ["knowledge_graph: timed out after 45s"]
    assert cache_key(_REQUEST.url, _REQUEST.brand_name) in cache.store


@pytest.mark.asyncio
async def test_cache_hit_skips_all_phases() -> None:
    report = build_report()
    cache = _FakeCache(
        {cache_key("https://ACME.com", " acme "): {"report": report.model_dump(mode="json"), "api_cost": 0.6}}
    )
    recorder = _Recorder()
    pipeline = _pipeline(recorder, cache=cache)

    outcome = await pipeline.run(_REQUEST)

    assert outcome.success is True
    assert outcome.cached is True
    assert outcome.report == report
    assert recorder.phases == []


@pytest.mark.asyncio
async def test_malformed_cache_entry_is_ignored() -> None:
    cache = _FakeCache({cache_key(_REQUEST.url, _REQUEST.brand_name): {"report": {"bad": True}}})
    recorder = _Recorder()

    outcome = await _pipeline(recorder, cache=cache).run(_REQUEST)

    assert outcome.cached is False
    assert recorder.phases == ["extraction", "judge"]


@pytest.mark.asyncio
async def test_extraction_failure_stops_pipeline() -> None:
    recorder = _Recorder()
    pipeline = _pipeline(
        recorder,
        extraction=ExtractionResult(
            success=False,
            error="Website could not be scraped. It may be blocking bots.",
            scrape_blocked=True,
        ),
    )

    outcome = await pipeline.run(_REQUEST)

    assert outcome.success is False
    assert outcome.failed_phase == "extraction"
    assert outcome.scrape_blocked is True
    assert recorder.phases == ["extraction"]
    with pytest.raises(ExtractionError):
        outcome.raise_for_failure()


@pytest.mark.asyncio
async def test_perception_failure_reports_errors() -> None:
    recorder = _Recorder()
    pipeline = _pipeline(
        recorder,
        perception=PerceptionResult(success=False, errors=["boom"]),
    )

    outcome = await pipeline.run(_REQUEST)

    assert outcome.failed_phase == "perception"
    assert outcome.error == "Failed to gather AI perception data"
    assert outcome.errors == ["boom"]
    assert recorder.phases == ["extraction"]
    with pytest.raises(PerceptionError) as exc_info:
        outcome.raise_for_failure()
    assert exc_info.value.errors == ["boom"]


@pytest.mark.asyncio
async def test_judge_failure_is_reported_and_not_cached() -> None:
    recorder = _Recorder()
    cache = _FakeCache()
    pipeline = _pipeline(
        recorder,
        judge=JudgeResult(success=False, error="model unavailable"),
        cache=cache,
    )

    outcome = await pipeline.run(_REQUEST)

    assert outcome.failed_phase == "judge"
    assert outcome.error == "model unavailable"
    assert outcome.perception is not None
    assert cache.store == {}
    with pytest.raises(JudgeError):
        outcome.raise_for_failure()


@pytest.mark.asyncio
async def test_missing_cost_estimate_uses_fallback() -> None:
    recorder = _Recorder()
    pipeline = _pipeline(
        recorder,
        perception=PerceptionResult(success=True, perception=build_perception()),
    )

    outcome = await pipeline.run(_REQUEST)

    assert outcome.api_cost == FALLBACK_API_COST


def test_cache_key_normalizes_url_and_brand() -> None:
    assert cache_key("https://acme.com/", "Acme") == cache_key("HTTPS://ACME.COM", " acme ")
    assert cache_key("https://acme.com", "Acme").startswith("aeo:audit:")


def test_successful_outcome_does_not_raise() -> None:
    AuditOutcome(success=True, report=build_report()).raise_for_failure()
