"""Phase 1 of the AEO audit: extract ground truth from the brand's website."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.agents.extraction_agent import EntityExtractionAgent, EntityExtractionInput
from app.config import settings
from app.core.exceptions import ExternalAPIError, ScrapeBlockedError
from app.integrations.firecrawl import FirecrawlClient
from app.integrations.jina_reader import JinaReaderClient
from app.integrations.page_signals import PageSignals, detect_page_signals
from app.schemas.audit import EntityProfile

logger = logging.getLogger(__name__)

MIN_CONTENT_CHARS = 100
RAW_CONTENT_CHARS = 5000


@dataclass(slots=True)
class ScrapedPage:
    """Content returned by a scrape provider."""

    content: str
    html: str = ""
    provider: str = ""


@dataclass(slots=True)
class ExtractionResult:
    """Outcome of Phase 1."""

    success: bool
    entity_profile: EntityProfile | None = None
    raw_content: str | None = None
    error: str | None = None
    scrape_blocked: bool = False
    scrape_provider: str | None = None


async def scrape_website(url: str) -> ScrapedPage:
    """Fetch main page content, trying Firecrawl first and Jina Reader second.

    Raises:
        ScrapeBlockedError: when no provider returns usable content.
    """
    if settings.firecrawl_api_key:
        try:
            async with FirecrawlClient() as firecrawl:
                page = await firecrawl.scrape(url)
            content = str(page.get("markdown") or "")
            if len(content) >= MIN_CONTENT_CHARS:
                return ScrapedPage(
                    content=content,
                    html=str(page.get("html") or ""),
                    provider="firecrawl",
                )
            logger.warning(
                "Firecrawl returned too little content",
                extra={"url": url, "content_length": len(content)},
            )
        except ExternalAPIError as e:
            logger.warning("Firecrawl scrape failed", extra={"url": url, "error": e.message})

    if settings.jina_reader_enabled:
        try:
            async with JinaReaderClient() as reader:
                content = await reader.read(url)
            if len(content) >= MIN_CONTENT_CHARS:
                return ScrapedPage(content=content, provider="jina")
            logger.warning(
                "Jina Reader returned too little content",
                extra={"url": url, "content_length": len(content)},
            )
        except ExternalAPIError as e:
            logger.warning("Jina Reader scrape failed", extra={"url": url, "error": e.message})

    raise ScrapeBlockedError(url)


def merge_observed_signals(profile: EntityProfile, signals: PageSignals | None) -> EntityProfile:
    """Fold markup we detected ourselves into the LLM-extracted profile."""
    if signals is None:
        return profile

    merged = profile.model_copy(deep=True)
    tech = merged.technical_signals
    for schema_type in signals.schema_types:
        if schema_type not in tech.schema_types:
            tech.schema_types.append(schema_type)
    tech.has_schema = tech.has_schema or signals.has_schema
    tech.has_table_tags = tech.has_table_tags or signals.has_table_tags
    tech.has_faqs = tech.has_faqs or signals.has_faq_markup
    tech.has_structured_lists = tech.has_structured_lists or signals.has_lists

    content = merged.content_signals
    content.has_author_bio = content.has_author_bio or signals.has_author_markup
    content.has_publish_date = content.has_publish_date or signals.has_date_markup
    return merged


async def run_extraction(
    url: str,
    brand_name: str,
    agent: EntityExtractionAgent | None = None,
) -> ExtractionResult:
    """Run Phase 1. Never raises; failures are reported on the result."""
    logger.info("Extraction started", extra={"brand_name": brand_name, "url": url})

    try:
        page = await scrape_website(url)
    except ScrapeBlockedError as e:
        logger.warning("Website blocked or empty", extra={"url": url})
        return ExtractionResult(success=False, error=e.message, scrape_blocked=True)
    except Exception as e:
        logger.exception("Scrape failed unexpectedly", extra={"url": url})
        return ExtractionResult(success=False, error=str(e) or "Extraction failed")

    logger.info(
        "Website scraped",
        extra={"url": url, "provider": page.provider, "content_length": len(page.content)},
    )

    try:
        signals = detect_page_signals(page.html, page_url=url) if page.html else None
        extraction_agent = agent or EntityExtractionAgent()
        profile = await extraction_agent.run(
            EntityExtractionInput(
                brand_name=brand_name,
                url=url,
                content=page.content,
                page_signals=signals,
            )
        )
        profile = merge_observed_signals(profile, signals)
    except Exception as e:
        logger.exception("Extraction failed", extra={"brand_name": brand_name, "url": url})
        return ExtractionResult(
            success=False,
            error=str(e) or "Extraction failed",
            scrape_provider=page.provider,
        )

    logger.info(
        "Extraction complete",
        extra={
            "brand_name": brand_name,
            "core_offering": profile.core_offering[:80],
            "key_facts": len(profile.key_facts),
            "schema_types": profile.technical_signals.schema_types,
        },
    )
    return ExtractionResult(
        success=True,
        entity_profile=profile,
        raw_content=page.content[:RAW_CONTENT_CHARS],
        scrape_provider=page.provider,
    )
