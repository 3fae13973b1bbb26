"""AEO audit pipeline: extraction, then perception, then judge."""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Literal

from pydantic import ValidationError as PydanticValidationError

from app.config import settings
from app.core.exceptions import ExtractionError, JudgeError, PerceptionError
from app.core.redis import RedisJSONCache, get_redis_client
from app.schemas.audit import AEOAuditReport, AIPerception, AuditRequest, EntityProfile
from app.services.extraction_service import ExtractionResult, run_extraction
from app.services.judge_service import JudgeResult, run_judge
from app.services.perception_service import PerceptionService

logger = logging.getLogger(__name__)

FailedPhase = Literal["extraction", "perception", "judge"]

TOOLS_USED = [
    "Firecrawl (website scraping)",
    "Gemini (entity extraction and judging)",
    "DataForSEO LLM Mentions",
    "DataForSEO ChatGPT Scraper",
    "DataForSEO AI Keyword Volume",
    "DataForSEO SERP (knowledge graph)",
    "DataForSEO Labs (domain metrics and competitors)",
    "DataForSEO Backlinks",
    "Perplexity Sonar",
]

FALLBACK_API_COST = 0.40
CACHE_KEY_PREFIX = "aeo:audit:"

ExtractionRunner = Callable[[str, str], Awaitable[ExtractionResult]]
JudgeRunner = Callable[[str, EntityProfile, AIPerception], Awaitable[JudgeResult]]


@dataclass(slots=True)
class AuditOutcome:
    """Everything the API layer needs to answer and persist one audit."""

    success: bool
    report: AEOAuditReport | None = None
    failed_phase: FailedPhase | None = None
    error: str | None = None
    errors: list[str] = field(default_factory=list)
    scrape_blocked: bool = False
    entity_profile: EntityProfile | None = None
    perception: AIPerception | None = None
    tools_used: list[str] = field(default_factory=lambda: list(TOOLS_USED))
    api_cost: float = 0.0
    processing_time_ms: int = 0
    cached: bool = False

    def raise_for_failure(self) -> None:
        """Raise the phase-specific ``AuditError`` for a failed outcome."""
        if self.success:
            return
        message = self.error or "Audit failed"
        if self.failed_phase == "extraction":
            raise ExtractionError(message, {"scrape_blocked": self.scrape_blocked})
        if self.failed_phase == "perception":
            raise PerceptionError(message, self.errors)
        raise JudgeError(message)


def cache_key(url: str, brand_name: str) -> str:
    """Cache key for a (url, brand) pair; trailing slashes and case are ignored."""
    normalized = f"{url.strip().rstrip('/').lower()}|{brand_name.strip().lower()}"
    return CACHE_KEY_PREFIX + hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class AuditPipeline:
    """Run the three audit phases strictly in order."""

    def __init__(
        self,
        *,
        cache: RedisJSONCache | None = None,
        extraction: ExtractionRunner | None = None,
        perception: PerceptionService | None = None,
        judge: JudgeRunner | None = None,
    ) -> None:
        self.cache = cache
        self._extraction = extraction or (lambda url, brand: run_extraction(url, brand))
        self._perception = perception or PerceptionService()
        self._judge = judge or (
            lambda brand, profile, perception: run_judge(brand, profile, perception)
        )

    @classmethod
    def from_settings(cls) -> "AuditPipeline":
        cache = None
        if settings.audit_cache_enabled:
            cache = RedisJSONCache(
                get_redis_client(),
                ttl_seconds=settings.audit_cache_ttl_seconds,
            )
        return cls(cache=cache)

    async def run(self, request: AuditRequest) -> AuditOutcome:
        started = time.perf_counter()
        brand_name = request.brand_name
        url = request.url
        logger.info("Audit started", extra={"brand_name": brand_name, "url": url})

        cached = await self._read_cache(url, brand_name)
        if cached is not None:
            cached.processing_time_ms = _elapsed_ms(started)
            logger.info("Audit served from cache", extra={"brand_name": brand_name, "url": url})
            return cached

        # Phase 1
        extraction = await self._extraction(url, brand_name)
        if not extraction.success or extraction.entity_profile is None:
            return AuditOutcome(
                success=False,
                failed_phase="extraction",
                error=extraction.error or "Failed to extract website content",
                scrape_blocked=extraction.scrape_blocked,
                processing_time_ms=_elapsed_ms(started),
            )
        profile = extraction.entity_profile

        # Phase 2
        perception_result = await self._perception.run(brand_name, url)
        if not perception_result.success or perception_result.perception is None:
            return AuditOutcome(
                success=False,
                failed_phase="perception",
                error="Failed to gather AI perception data",
                errors=perception_result.errors,
                entity_profile=profile,
                processing_time_ms=_elapsed_ms(started),
            )
        perception = perception_result.perception

        # Phase 3
        judge_result = await self._judge(brand_name, profile, perception)
        if not judge_result.success or judge_result.report is None:
            return AuditOutcome(
                success=False,
                failed_phase="judge",
                error=judge_result.error or "Failed to generate audit report",
                errors=perception_result.errors,
                entity_profile=profile,
                perception=perception,
                processing_time_ms=_elapsed_ms(started),
            )

        api_cost = (
            perception.api_costs.total
            if perception.api_costs is not None
            else FALLBACK_API_COST
        )
        outcome = AuditOutcome(
            success=True,
            report=judge_result.report,
            errors=perception_result.errors,
            entity_profile=profile,
            perception=perception,
            api_cost=api_cost,
            processing_time_ms=_elapsed_ms(started),
        )
        logger.info(
            "Audit complete",
            extra={
                "brand_name": brand_name,
                "aeo_score": outcome.report.score_card.aeo_score if outcome.report else None,
                "api_cost": api_cost,
                "processing_time_ms": outcome.processing_time_ms,
                "perception_errors": len(perception_result.errors),
            },
        )

        await self._write_cache(url, brand_name, outcome)
        return outcome

    async def _read_cache(self, url: str, brand_name: str) -> AuditOutcome | None:
        if self.cache is None:
            return None
        payload = await self.cache.get(cache_key(url, brand_name))
        if not isinstance(payload, dict) or "report" not in payload:
            return None
        try:
            report = AEOAuditReport.model_validate(payload["report"])
        except PydanticValidationError:
            logger.warning("Ignoring stale cached report", extra={"url": url})
            return None
        return AuditOutcome(
            success=True,
            report=report,
            api_cost=0.0,
            cached=True,
        )

    async def _write_cache(self, url: str, brand_name: str, outcome: AuditOutcome) -> None:
        if self.cache is None or outcome.report is None:
            return
        await self.cache.set(
            cache_key(url, brand_name),
            {"report": outcome.report.model_dump(mode="json"), "api_cost": outcome.api_cost},
        )
