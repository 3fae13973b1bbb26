"""Phase 2 of the AEO audit: gather what AI systems say about a brand.

Fans out to DataForSEO (LLM mentions, ChatGPT scraper, AI keyword volume,
knowledge graph, domain metrics, competitors), Perplexity Sonar and
optionally Firecrawl (competitor markup). Every external call runs under
its own timeout; a failing call contributes its neutral default and an
entry in ``errors`` instead of failing the phase.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, TypeVar
from urllib.parse import urlparse

from app.config import settings
from app.core.exceptions import AEOAuditorError, APIKeyMissingError
from app.integrations.dataforseo import DataForSEOClient
from app.integrations.firecrawl import FirecrawlClient
from app.integrations.page_signals import detect_page_signals
from app.integrations.perplexity import PerplexityClient
from app.schemas.audit import (
    AIPerception,
    APICosts,
    CompetitorInsight,
    DomainMetrics,
    LLMMention,
    LLMMentionsByPlatform,
    NO_AI_INFO_TEXT,
    PerplexityInsight,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Estimated cost per endpoint call, USD.
API_COSTS: dict[str, tuple[str, float]] = {
    "llm_mentions_search": ("dataforseo", 0.10),
    "llm_mentions_aggregated": ("dataforseo", 0.10),
    "chatgpt_scraper": ("dataforseo", 0.15),
    "ai_search_volume": ("dataforseo", 0.05),
    "knowledge_graph": ("dataforseo", 0.02),
    "competitors": ("dataforseo", 0.10),
    "domain_metrics": ("dataforseo", 0.05),
    "backlinks": ("dataforseo", 0.05),
    "perplexity": ("perplexity", 0.005),
    "competitor_scrape": ("firecrawl", 0.01),
}
CHATGPT_SUMMARY_CHARS = 500
MIN_USEFUL_ANSWER_CHARS = 50


def extract_domain(url: str) -> str:
    """Return the bare hostname of a URL (no scheme, no www.)."""
    host = ""
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        host = ""
    if not host:
        host = re.sub(r"^https?://", "", url.strip(), flags=re.IGNORECASE).split("/")[0]
    return host.lower().removeprefix("www.")


def brand_prompt(brand_name: str) -> str:
    """Question asked to live AI assistants about the brand."""
    return (
        f"What is {brand_name}? Provide a concise 2-3 sentence summary of what they do, "
        "their main products or services, and their reputation. Include any notable facts."
    )


def pick_chatgpt_text(result: dict[str, Any] | None, brand_name: str) -> str:
    """Choose the most useful answer text from a ChatGPT scraper result.

    Order: ``markdown``, then ``search_results``, then the first item whose
    answer mentions the brand (falling back to the first item).
    """
    if not result:
        return ""

    markdown = result.get("markdown")
    if isinstance(markdown, str) and markdown:
        return markdown

    search_results = result.get("search_results")
    if isinstance(search_results, str) and search_results:
        return search_results

    items = [item for item in result.get("items") or [] if isinstance(item, dict)]
    if not items:
        return ""

    def _text(item: dict[str, Any]) -> str:
        return str(item.get("answer") or item.get("text") or item.get("content") or "")

    brand_lower = brand_name.lower()
    relevant = next(
        (item for item in items if _text(item) and brand_lower in _text(item).lower()),
        items[0],
    )
    return _text(relevant)


@dataclass(slots=True)
class PerceptionResult:
    """Outcome of Phase 2."""

    success: bool
    perception: AIPerception | None = None
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CostLedger:
    """Accumulates estimated vendor spend for the endpoints actually called."""

    calls: dict[str, int] = field(default_factory=dict)

    def charge(self, endpoint: str, count: int = 1) -> None:
        self.calls[endpoint] = self.calls.get(endpoint, 0) + count

    def to_api_costs(self) -> APICosts:
        totals = {"dataforseo": 0.0, "perplexity": 0.0, "firecrawl": 0.0}
        for endpoint, count in self.calls.items():
            vendor, unit_cost = API_COSTS[endpoint]
            totals[vendor] += unit_cost * count
        rounded = {vendor: round(amount, 4) for vendor, amount in totals.items()}
        return APICosts(**rounded, total=round(sum(totals.values()), 4))


@dataclass(slots=True)
class _PerceptionRun:
    """Per-audit mutable state: collected errors and cost ledger."""

    call_timeout: float
    errors: list[str] = field(default_factory=list)
    ledger: CostLedger = field(default_factory=CostLedger)

    async def guard(
        self,
        signal: str,
        call: Callable[[], Awaitable[T]],
        default: T,
        cost_key: str | None = None,
    ) -> T:
        """Run one external call with a timeout; failures yield ``default``."""
        if cost_key:
            self.ledger.charge(cost_key)
        try:
            return await asyncio.wait_for(call(), timeout=self.call_timeout)
        except asyncio.TimeoutError:
            reason = f"timed out after {self.call_timeout:g}s"
        except AEOAuditorError as e:
            reason = e.message
        except Exception as e:  # malformed vendor payloads
            logger.warning(
                "Perception call raised unexpectedly",
                extra={"signal": signal, "error": repr(e)},
                exc_info=True,
            )
            reason = str(e) or type(e).__name__

        logger.warning("Perception signal unavailable", extra={"signal": signal, "reason": reason})
        self.errors.append(f"{signal}: {reason}")
        return default

    def missing(self, signal: str, api_name: str) -> None:
        self.errors.append(f"{signal}: {APIKeyMissingError(api_name).message}")


class PerceptionService:
    """Gather AI-visibility signals for a brand.

    Clients may be injected (tests, shared sessions); otherwise they are
    opened for the duration of ``run`` when their credentials are configured.
    """

    def __init__(
        self,
        dataforseo: DataForSEOClient | None = None,
        perplexity: PerplexityClient | None = None,
        firecrawl: FirecrawlClient | None = None,
        call_timeout: float | None = None,
        competitor_schema_enabled: bool | None = None,
    ) -> None:
        self._dataforseo = dataforseo
        self._perplexity = perplexity
        self._firecrawl = firecrawl
        self.call_timeout = call_timeout or settings.perception_call_timeout_seconds
        self.competitor_schema_enabled = (
            settings.perception_competitor_schema_enabled
            if competitor_schema_enabled is None
            else competitor_schema_enabled
        )

    async def run(self, brand_name: str, url: str | None = None) -> PerceptionResult:
        """Run Phase 2. Never raises; only orchestration failures set success=False."""
        logger.info("Perception started", extra={"brand_name": brand_name, "url": url})
        run = _PerceptionRun(call_timeout=self.call_timeout)
        domain = extract_domain(url) if url else None

        try:
            async with AsyncExitStack() as stack:
                dataforseo = self._dataforseo or await self._open(stack, DataForSEOClient)
                perplexity = self._perplexity or await self._open(stack, PerplexityClient)
                firecrawl = self._firecrawl
                if firecrawl is None and self.competitor_schema_enabled:
                    firecrawl = await self._open(stack, FirecrawlClient)

                perception = await self._gather(
                    run,
                    brand_name=brand_name,
                    domain=domain,
                    dataforseo=dataforseo,
                    perplexity=perplexity,
                    firecrawl=firecrawl,
                )
        except Exception as e:
            logger.exception("Perception failed", extra={"brand_name": brand_name})
            run.errors.append(str(e) or "Perception gathering failed")
            return PerceptionResult(success=False, errors=run.errors)

        logger.info(
            "Perception complete",
            extra={
                "brand_name": brand_name,
                "mentions": perception.llm_mentions_count,
                "ai_search_volume": perception.ai_search_volume,
                "has_knowledge_graph": perception.knowledge_graph_exists,
                "has_perplexity": perception.perplexity_insight is not None,
                "competitors_found": len(perception.competitors or []),
                "total_api_cost": perception.api_costs.total if perception.api_costs else 0.0,
                "errors": len(run.errors),
            },
        )
        return PerceptionResult(success=True, perception=perception, errors=run.errors)

    @staticmethod
    async def _open(stack: AsyncExitStack, client_cls: type[Any]) -> Any | None:
        try:
            client = client_cls()
        except APIKeyMissingError:
            return None
        return await stack.enter_async_context(client)

    async def _gather(
        self,
        run: _PerceptionRun,
        *,
        brand_name: str,
        domain: str | None,
        dataforseo: DataForSEOClient | None,
        perplexity: PerplexityClient | None,
        firecrawl: FirecrawlClient | None,
    ) -> AIPerception:
        if dataforseo is None:
            for signal in ("llm_mentions", "chatgpt", "ai_search_volume", "knowledge_graph"):
                run.missing(signal, "DataForSEO")
        if perplexity is None:
            run.missing("perplexity", "Perplexity")

        # Wave 1: core perception signals
        mentions, chatgpt, ai_volume, knowledge_graph, perplexity_insight = await asyncio.gather(
            self._llm_mentions(run, dataforseo, brand_name, domain),
            self._chatgpt_perception(run, dataforseo, brand_name),
            self._ai_search_volume(run, dataforseo, brand_name),
            self._knowledge_graph(run, dataforseo, brand_name),
            self._perplexity_perception(run, perplexity, brand_name),
        )

        # Wave 2: domain and competitor data
        domain_metrics: DomainMetrics | None = None
        competitors: list[CompetitorInsight] = []
        if domain and dataforseo is not None:
            domain_metrics, competitors = await asyncio.gather(
                self._domain_metrics(run, dataforseo, domain),
                self._competitors(run, dataforseo, domain),
            )
            if competitors and firecrawl is not None:
                competitors = await self._competitor_schema(run, firecrawl, competitors)
        elif domain:
            for signal in ("domain_metrics", "competitors"):
                run.missing(signal, "DataForSEO")

        chatgpt_raw = chatgpt.strip()
        return AIPerception(
            llm_mentions_count=mentions["count"],
            llm_mentions_by_platform=mentions["by_platform"],
            llm_mentions=mentions["mentions"],
            chatgpt_summary=chatgpt_raw[:CHATGPT_SUMMARY_CHARS] or NO_AI_INFO_TEXT,
            chatgpt_raw_response=chatgpt_raw or None,
            perplexity_insight=perplexity_insight,
            ai_search_volume=mentions["total_volume"] or ai_volume,
            knowledge_graph_exists=bool(knowledge_graph.get("exists")),
            knowledge_graph_data=knowledge_graph.get("knowledge_graph") or None,
            domain_metrics=domain_metrics,
            competitors=competitors or None,
            api_costs=run.ledger.to_api_costs(),
        )

    async def _llm_mentions(
        self,
        run: _PerceptionRun,
        client: DataForSEOClient | None,
        brand_name: str,
        domain: str | None,
    ) -> dict[str, Any]:
        empty = {
            "count": 0,
            "by_platform": LLMMentionsByPlatform(),
            "total_volume": 0,
            "mentions": [],
        }
        if client is None:
            return empty

        run.ledger.charge("llm_mentions_aggregated")
        no_aggregate: dict[str, Any] = {}
        search, google_agg, chatgpt_agg, perplexity_agg = await asyncio.gather(
            run.guard(
                "llm_mentions_search",
                lambda: client.llm_mentions_search(
                    brand_name,
                    platform="google",
                    limit=settings.perception_llm_mentions_limit,
                ),
                {},
                cost_key="llm_mentions_search",
            ),
            *(
                run.guard(
                    f"llm_mentions_aggregated[{platform}]",
                    lambda platform=platform: client.llm_mentions_aggregated(
                        brand_name,
                        domain=domain,
                        platform=platform,
                    ),
                    no_aggregate,
                )
                for platform in ("google", "chat_gpt", "perplexity")
            ),
        )

        mentions = [
            LLMMention(
                source=str(item.get("source") or "AI Response"),
                context=str(item.get("context") or ""),
                question=item.get("question"),
            )
            for item in search.get("mentions") or []
        ]

        google_count = _first_int(
            google_agg.get("total_count"),
            search.get("total_count"),
            search.get("items_count"),
            len(mentions),
        )
        chatgpt_count = _first_int(chatgpt_agg.get("total_count"), 0)
        perplexity_count = _first_int(perplexity_agg.get("total_count"), 0)

        return {
            "count": google_count + chatgpt_count + perplexity_count,
            "by_platform": LLMMentionsByPlatform(
                google=google_count,
                chat_gpt=chatgpt_count,
                perplexity=perplexity_count,
            ),
            "total_volume": _first_int(google_agg.get("total_ai_search_volume"), 0),
            "mentions": mentions,
        }

    async def _chatgpt_perception(
        self,
        run: _PerceptionRun,
        client: DataForSEOClient | None,
        brand_name: str,
    ) -> str:
        if client is None:
            return ""

        scraped = await run.guard(
            "chatgpt_scraper",
            lambda: client.chatgpt_llm_scraper(brand_name),
            None,
            cost_key="chatgpt_scraper",
        )
        text = pick_chatgpt_text(scraped, brand_name)

        if len(text) < MIN_USEFUL_ANSWER_CHARS:
            logger.info(
                "ChatGPT scraper returned no useful data, asking live",
                extra={"brand_name": brand_name, "scraped_length": len(text)},
            )
            answer = await run.guard(
                "chatgpt_responses",
                lambda: client.chatgpt_llm_responses(brand_prompt(brand_name)),
                "",
            )
            if answer:
                text = answer

        return text

    async def _ai_search_volume(
        self,
        run: _PerceptionRun,
        client: DataForSEOClient | None,
        brand_name: str,
    ) -> int:
        if client is None:
            return 0

        volumes = await run.guard(
            "ai_search_volume",
            lambda: client.ai_keyword_search_volume([brand_name]),
            {},
            cost_key="ai_search_volume",
        )
        if not volumes:
            return 0
        for keyword, volume in volumes.items():
            if keyword.lower() == brand_name.lower():
                return volume
        return next(iter(volumes.values()))

    async def _knowledge_graph(
        self,
        run: _PerceptionRun,
        client: DataForSEOClient | None,
        brand_name: str,
    ) -> dict[str, Any]:
        default: dict[str, Any] = {"exists": False, "knowledge_graph": None}
        if client is None:
            return default
        return await run.guard(
            "knowledge_graph",
            lambda: client.knowledge_graph_check(brand_name),
            default,
            cost_key="knowledge_graph",
        )

    async def _perplexity_perception(
        self,
        run: _PerceptionRun,
        client: PerplexityClient | None,
        brand_name: str,
    ) -> PerplexityInsight | None:
        if client is None:
            return None

        answer = await run.guard(
            "perplexity",
            lambda: client.ask(brand_prompt(brand_name)),
            None,
            cost_key="perplexity",
        )
        if answer is None:
            return None

        text = str(answer.get("text") or "")
        return PerplexityInsight(
            summary=text,
            sources=list(answer.get("sources") or []),
            has_accurate_info=len(text) > MIN_USEFUL_ANSWER_CHARS,
        )

    async def _domain_metrics(
        self,
        run: _PerceptionRun,
        client: DataForSEOClient,
        domain: str,
    ) -> DomainMetrics | None:
        overview, backlinks = await asyncio.gather(
            run.guard(
                "domain_metrics",
                lambda: client.domain_rank_overview(domain),
                None,
                cost_key="domain_metrics",
            ),
            run.guard(
                "backlinks",
                lambda: client.backlinks_summary(domain),
                None,
                cost_key="backlinks",
            ),
        )
        if overview is None and backlinks is None:
            return None

        overview = overview or {}
        backlinks = backlinks or {}
        return DomainMetrics(
            organic_traffic=overview.get("organic_traffic"),
            organic_keywords=overview.get("organic_keywords"),
            backlinks=backlinks.get("backlinks"),
            referring_domains=backlinks.get("referring_domains"),
            domain_rank=backlinks.get("rank"),
        )

    async def _competitors(
        self,
        run: _PerceptionRun,
        client: DataForSEOClient,
        domain: str,
    ) -> list[CompetitorInsight]:
        rows = await run.guard(
            "competitors",
            lambda: client.competitors_domain(domain, limit=settings.perception_competitor_limit),
            [],
            cost_key="competitors",
        )
        competitors = [
            CompetitorInsight(
                domain=row["domain"],
                organic_traffic=row.get("organic_traffic"),
                organic_keywords=row.get("organic_keywords"),
                rank_position=row.get("rank_position"),
            )
            for row in rows[: settings.perception_competitor_limit]
            if row.get("domain")
        ]
        logger.info("Competitors found", extra={"domain": domain, "count": len(competitors)})
        return competitors

    async def _competitor_schema(
        self,
        run: _PerceptionRun,
        client: FirecrawlClient,
        competitors: list[CompetitorInsight],
    ) -> list[CompetitorInsight]:
        """Scrape competitor homepages and record their structured-data markup."""

        async def _scrape(competitor: CompetitorInsight) -> CompetitorInsight:
            page = await run.guard(
                f"competitor_scrape[{competitor.domain}]",
                lambda: client.scrape(f"https://{competitor.domain}"),
                None,
                cost_key="competitor_scrape",
            )
            if not page or not page.get("html"):
                return competitor
            signals = detect_page_signals(str(page["html"]), page_url=f"https://{competitor.domain}")
            return competitor.model_copy(
                update={"has_schema": signals.has_schema, "schema_types": signals.schema_types},
            )

        return list(await asyncio.gather(*(_scrape(item) for item in competitors)))


def _first_int(*values: Any) -> int:
    """Return the first value that is not None, coerced to int."""
    for value in values:
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return 0


__all__ = [
    "API_COSTS",
    "CostLedger",
    "PerceptionResult",
    "PerceptionService",
    "brand_prompt",
    "extract_domain",
    "pick_chatgpt_text",
]
