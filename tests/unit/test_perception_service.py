"""Unit tests for Phase 2 perception fan-out."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from app.config import settings
from app.core.exceptions import ExternalAPIError
from app.schemas.audit import NO_AI_INFO_TEXT
from app.services.perception_service import (
    CostLedger,
    PerceptionService,
    extract_domain,
    pick_chatgpt_text,
)


class _FakeDataForSEO:
    def __init__(self, **overrides: Any) -> None:
        self.overrides = overrides
        self.calls: list[str] = []

    async def _respond(self, name: str, default: Any) -> Any:
        self.calls.append(name)
        value = self.overrides.get(name, default)
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return await value()
        return value

    async def llm_mentions_search(self, brand_name: str, platform: str = "google", limit: int = 20) -> dict[str, Any]:
        return await self._respond(
            "llm_mentions_search",
            {
                "total_count": None,
                "items_count": 2,
                "mentions": [
                    {"source": "g2.com", "context": "Acme is great", "question": "best pm tool"},
                    {"source": "AI Response", "context": "Acme pricing", "question": None},
                ],
            },
        )

    async def llm_mentions_aggregated(self, brand_name: str, domain: str | None = None, platform: str = "google") -> dict[str, Any]:
        defaults = {
            "google": {"total_count": 120, "total_ai_search_volume": 900},
            "chat_gpt": {"total_count": 30, "total_ai_search_volume": None},
            "perplexity": {"total_count": 5, "total_ai_search_volume": None},
        }
        return await self._respond(f"llm_mentions_aggregated[{platform}]", defaults[platform])

    async def chatgpt_llm_scraper(self, keyword: str) -> dict[str, Any] | None:
        return await self._respond(
            "chatgpt_llm_scraper",
            {"markdown": "Acme is a project management platform for creative agencies. " * 12},
        )

    async def chatgpt_llm_responses(self, prompt: str, model: str = "gpt-4o") -> str:
        return await self._respond("chatgpt_llm_responses", "Acme is an agency tool from live ChatGPT.")

    async def ai_keyword_search_volume(self, keywords: list[str]) -> dict[str, int]:
        return await self._respond("ai_keyword_search_volume", {"acme": 400})

    async def knowledge_graph_check(self, brand_name: str) -> dict[str, Any]:
        return await self._respond(
            "knowledge_graph_check",
            {"exists": True, "knowledge_graph": {"title": "Acme Inc."}},
        )

    async def domain_rank_overview(self, domain: str) -> dict[str, Any]:
        return await self._respond("domain_rank_overview", {"organic_traffic": 1500.0, "organic_keywords": 320})

    async def backlinks_summary(self, domain: str) -> dict[str, Any]:
        return await self._respond("backlinks_summary", {"backlinks": 4000, "referring_domains": 210, "rank": 310})

    async def competitors_domain(self, domain: str, limit: int = 3) -> list[dict[str, Any]]:
        return await self._respond(
            "competitors_domain",
            [
                {"domain": "rival.io", "organic_traffic": 800.0, "organic_keywords": 90, "rank_position": 7.5},
                {"domain": "other.com", "organic_traffic": None, "organic_keywords": None, "rank_position": None},
            ],
        )


class _FakePerplexity:
    def __init__(self, answer: dict[str, Any] | Exception | None = None) -> None:
        self.answer = answer

    async def ask(self, prompt: str, max_tokens: int = 300) -> dict[str, Any]:
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer or {
            "text": "Acme is a project management SaaS used by 4,000 agencies worldwide.",
            "sources": ["https://acme.com"],
        }


def _service(dataforseo: Any = None, perplexity: Any = None, **kwargs: Any) -> PerceptionService:
    return PerceptionService(
        dataforseo=dataforseo,
        perplexity=perplexity,
        competitor_schema_enabled=False,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_perception_aggregates_all_signals() -> None:
    dataforseo = _FakeDataForSEO()
    service = _service(dataforseo, _FakePerplexity())

    result = await service.run("Acme", "https://www.acme.com/pricing")

    assert result.success is True
    assert result.errors == []
    perception = result.perception
    assert perception is not None
    assert perception.llm_mentions_by_platform.google == 120
    assert perception.llm_mentions_by_platform.chat_gpt == 30
    assert perception.llm_mentions_by_platform.perplexity == 5
    assert perception.llm_mentions_count == 155
    assert len(perception.llm_mentions) == 2
    assert perception.ai_search_volume == 900
    assert perception.knowledge_graph_exists is True
    assert perception.knowledge_graph_data == {"title": "Acme Inc."}
    assert len(perception.chatgpt_summary) == 500
    assert perception.chatgpt_raw_response is not None
    assert perception.perplexity_insight is not None
    assert perception.perplexity_insight.has_accurate_info is True
    assert perception.domain_metrics is not None
    assert perception.domain_metrics.backlinks == 4000
    assert perception.domain_metrics.domain_rank == 310
    assert [c.domain for c in perception.competitors or []] == ["rival.io", "other.com"]
    assert "chatgpt_llm_responses" not in dataforseo.calls


@pytest.mark.asyncio
async def test_perception_costs_follow_attempted_endpoints() -> None:
    service = _service(_FakeDataForSEO(), _FakePerplexity())

    result = await service.run("Acme", "https://acme.com")

    costs = result.perception.api_costs  # type: ignore[union-attr]
    assert costs is not None
    # search .10 + aggregated .10 + scraper .15 + volume .05 + kg .02
    # + competitors .10 + domain metrics .05 + backlinks .05
    assert costs.dataforseo == pytest.approx(0.62)
    assert costs.perplexity == pytest.approx(0.005)
    assert costs.firecrawl == 0
    assert costs.total == pytest.approx(0.625)


@pytest.mark.asyncio
async def test_perception_without_url_skips_domain_wave() -> None:
    dataforseo = _FakeDataForSEO()
    service = _service(dataforseo, _FakePerplexity())

    result = await service.run("Acme")

    assert result.success is True
    assert result.perception is not None
    assert result.perception.domain_metrics is None
    assert result.perception.competitors is None
    assert "competitors_domain" not in dataforseo.calls
    assert result.perception.api_costs is not None
    assert result.perception.api_costs.total == pytest.approx(0.425)


@pytest.mark.asyncio
async def test_partial_failures_yield_defaults_and_error_entries() -> None:
    dataforseo = _FakeDataForSEO(
        knowledge_graph_check=ExternalAPIError("DataForSEO", "boom"),
        ai_keyword_search_volume=KeyError("items"),
        **{"llm_mentions_aggregated[google]": {"total_count": None, "total_ai_search_volume": 0}},
    )
    service = _service(dataforseo, _FakePerplexity(ExternalAPIError("Perplexity", "down")))

    result = await service.run("Acme", "https://acme.com")

    assert result.success is True
    perception = result.perception
    assert perception is not None
    assert perception.knowledge_graph_exists is False
    assert perception.perplexity_insight is None
    # google count falls back to the search items count
    assert perception.llm_mentions_by_platform.google == 2
    assert perception.ai_search_volume == 0
    assert "knowledge_graph: DataForSEO API error: boom" in result.errors
    assert "perplexity: Perplexity API error: down" in result.errors
    assert any(error.startswith("ai_search_volume:") for error in result.errors)


@pytest.mark.asyncio
async def test_slow_call_times_out_without_failing_phase() -> None:
    async def _slow() -> dict[str, Any]:
        await asyncio.sleep(1)
        return {"exists": True, "knowledge_graph": None}

    dataforseo = _FakeDataForSEO(knowledge_graph_check=_slow)
    service = _service(dataforseo, _FakePerplexity(), call_timeout=0.05)

    result = await service.run("Acme")

    assert result.success is True
    assert result.perception is not None
    assert result.perception.knowledge_graph_exists is False
    assert "knowledge_graph: timed out after 0.05s" in result.errors


@pytest.mark.asyncio
async def test_short_chatgpt_scrape_falls_back_to_live_responses() -> None:
    dataforseo = _FakeDataForSEO(chatgpt_llm_scraper={"markdown": "Acme?"})
    service = _service(dataforseo, _FakePerplexity())

    result = await service.run("Acme")

    assert "chatgpt_llm_responses" in dataforseo.calls
    assert result.perception is not None
    assert result.perception.chatgpt_summary == "Acme is an agency tool from live ChatGPT."


@pytest.mark.asyncio
async def test_empty_chatgpt_answer_uses_no_information_text() -> None:
    dataforseo = _FakeDataForSEO(chatgpt_llm_scraper=None, chatgpt_llm_responses="")
    service = _service(dataforseo, _FakePerplexity())

    result = await service.run("Acme")

    assert result.perception is not None
    assert result.perception.chatgpt_summary == NO_AI_INFO_TEXT
    assert result.perception.chatgpt_raw_response is None


@pytest.mark.asyncio
async def test_unconfigured_dataforseo_is_reported_per_signal(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(settings, "dataforseo_login", None)
    monkeypatch.setattr(settings, "dataforseo_password", None)
    service = _service(None, _FakePerplexity())

    result = await service.run("Acme", "https://acme.com")

    assert result.success is True
    assert result.perception is not None
    assert result.perception.llm_mentions_count == 0
    assert result.perception.chatgpt_summary == NO_AI_INFO_TEXT
    assert "llm_mentions: DataForSEO API error: API key not configured" in result.errors
    assert "competitors: DataForSEO API error: API key not configured" in result.errors
    assert result.perception.api_costs is not None
    assert result.perception.api_costs.dataforseo == 0


def test_extract_domain_handles_www_and_malformed_urls() -> None:
    assert extract_domain("https://www.Acme.com/pricing?x=1") == "acme.com"
    assert extract_domain("http://acme.io") == "acme.io"
    assert extract_domain("acme.com/about") == "acme.com"


def test_pick_chatgpt_text_prefers_markdown_then_brand_item() -> None:
    assert pick_chatgpt_text({"markdown": "md", "search_results": "sr"}, "Acme") == "md"
    assert pick_chatgpt_text({"search_results": "sr"}, "Acme") == "sr"
    assert (
        pick_chatgpt_text(
            {"items": [{"answer": "Other tools exist"}, {"text": "ACME is known for portals"}]},
            "acme",
        )
        == "ACME is known for portals"
    )
    assert pick_chatgpt_text({"items": [{"content": "Unrelated"}]}, "Acme") == "Unrelated"
    assert pick_chatgpt_text(None, "Acme") == ""


def test_cost_ledger_counts_repeated_charges() -> None:
    ledger = CostLedger()
    ledger.charge("competitor_scrape", count=3)
    ledger.charge("perplexity")

    costs = ledger.to_api_costs()

    assert costs.firecrawl == pytest.approx(0.03)
    assert costs.total == pytest.approx(0.035)


@pytest.mark.asyncio
async def test_competitor_schema_check_scrapes_each_competitor() -> None:
    class _FakeFirecrawl:
        def __init__(self) -> None:
            self.urls: list[str] = []

        async def scrape(self, url: str) -> dict[str, Any]:
            self.urls.append(url)
            if "other.com" in url:
                raise ExternalAPIError("Firecrawl", "blocked")
            return {
                "markdown": "# Rival",
                "html": '<script type="application/ld+json">{"@type": "SoftwareApplication"}</script>',
            }

    firecrawl = _FakeFirecrawl()
    service = PerceptionService(
        dataforseo=_FakeDataForSEO(),
        perplexity=_FakePerplexity(),
        firecrawl=firecrawl,
        competitor_schema_enabled=True,
    )

    result = await service.run("Acme", "https://acme.com")

    assert result.perception is not None
    competitors = {c.domain: c for c in result.perception.competitors or []}
    assert competitors["rival.io"].has_schema is True
    assert competitors["rival.io"].schema_types == ["SoftwareApplication"]
    assert competitors["other.com"].has_schema is None
    assert sorted(firecrawl.urls) == ["https://other.com", "https://rival.io"]
    assert "competitor_scrape[other.com]: Firecrawl API error: blocked" in result.errors
    assert result.perception.api_costs is not None
    assert result.perception.api_costs.firecrawl == pytest.approx(0.02)
