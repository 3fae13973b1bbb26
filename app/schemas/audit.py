"""Pydantic schemas for the AEO Trust Audit.

Three groups of models back the three audit phases:

1. ``EntityProfile``: ground truth extracted from the brand's website.
2. ``AIPerception``: what AI answer engines and SEO data providers say.
3. ``AEOAuditReport``: the judge's score card, hallucinations and action plan.

Phase 1 and Phase 3 models double as LLM ``output_type`` definitions, so
field descriptions are written for the model as much as for readers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, EmailStr, Field, field_validator

Verdict = Literal["Invisible", "Emerging", "Rising Star", "Authority", "Dominant"]
Grade = Literal["A", "B", "C", "D", "F"]
RiskLevel = Literal["none", "low", "medium", "high"]
ActionPriority = Literal["Critical", "High", "Medium", "Low"]
ActionCategory = Literal["Technical", "Content", "Authority", "Accuracy"]
Effort = Literal["Low", "Medium", "High"]
Sentiment = Literal["positive", "neutral", "negative"]
ProcessingStatus = Literal["pending", "processing", "completed", "failed"]

NO_AI_INFO_TEXT = "AI doesn't have information about this brand."


def _validate_http_url(value: str) -> str:
    cleaned = value.strip()
    parsed = urlparse(cleaned)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Invalid URL format")
    return cleaned


# ============================================================================
# Input
# ============================================================================


class AuditRequest(BaseModel):
    """Request body for running an audit."""

    url: str
    brand_name: str = Field(min_length=1, max_length=100)
    email: EmailStr | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    consent: bool | None = None

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        return _validate_http_url(value)

    @field_validator("brand_name", mode="before")
    @classmethod
    def _strip_brand_name(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value


# ============================================================================
# Phase 1: Extraction (Ground Truth)
# ============================================================================


class TechnicalSignals(BaseModel):
    """Machine-readability signals found on the website."""

    has_schema: bool = Field(description="Has JSON-LD or Microdata schema markup")
    schema_types: list[str] = Field(
        default_factory=list,
        description="Types found: Organization, Product, FAQPage, etc.",
    )
    has_table_tags: bool = Field(description="Uses semantic table markup")
    has_direct_answers: bool = Field(description="Content formatted for direct answers")
    has_faqs: bool = Field(description="Has FAQ content sections")
    has_definitions: bool = Field(description='Has "What is X" definition patterns')
    has_structured_lists: bool = Field(description="Uses ordered/unordered lists effectively")


class ContentSignals(BaseModel):
    """Trust and freshness signals found in the content."""

    has_author_bio: bool = Field(description="Author information present")
    has_publish_date: bool = Field(description="Publication date visible")
    has_citations: bool = Field(description="External source citations")
    has_last_updated: bool = Field(description="Last updated date shown")
    readability_level: Literal["simple", "moderate", "complex"] = Field(
        description="Content complexity",
    )
    estimated_word_count: int = Field(ge=0, description="Approximate word count")


class EntityProfile(BaseModel):
    """Brand's self-declared identity, extracted from its website."""

    brand_name: str = Field(description="Extracted brand/company name")
    core_offering: str = Field(description="Primary product or service offered")
    target_audience: str = Field(description="Who they serve")
    unique_value_proposition: str = Field(description="What differentiates them")
    pricing_model: str = Field(description="Free, Freemium, Subscription, Enterprise, etc.")
    key_facts: list[str] = Field(
        default_factory=list,
        description="Specific factual claims to verify",
    )
    industry_category: str = Field(description="Industry or niche")
    founded_year: str | None = Field(default=None, description="Year founded if mentioned")
    headquarters: str | None = Field(default=None, description="Location if mentioned")
    technical_signals: TechnicalSignals
    content_signals: ContentSignals


# ============================================================================
# Phase 2: Perception (AI Visibility)
# ============================================================================


class LLMMention(BaseModel):
    """A single brand mention inside an AI-generated answer."""

    source: str
    context: str
    sentiment: Sentiment | None = None
    question: str | None = None


class LLMMentionsByPlatform(BaseModel):
    """Mention totals per AI platform."""

    google: int = 0
    chat_gpt: int = 0
    perplexity: int = 0


class PerplexityInsight(BaseModel):
    """What Perplexity says about the brand."""

    summary: str
    sources: list[str] = Field(default_factory=list)
    has_accurate_info: bool


class CompetitorInsight(BaseModel):
    """Organic competitor of the audited domain."""

    domain: str
    name: str | None = None
    organic_traffic: float | None = None
    organic_keywords: int | None = None
    backlinks: int | None = None
    has_schema: bool | None = None
    schema_types: list[str] | None = None
    rank_position: float | None = None


class DomainMetrics(BaseModel):
    """SEO metrics for the audited domain."""

    organic_traffic: float | None = None
    organic_keywords: int | None = None
    backlinks: int | None = None
    referring_domains: int | None = None
    domain_rank: int | None = None


class APICosts(BaseModel):
    """Estimated vendor spend for one audit, in USD."""

    dataforseo: float = 0.0
    perplexity: float = 0.0
    firecrawl: float = 0.0
    total: float = 0.0


class AIPerception(BaseModel):
    """Aggregated AI visibility signals for a brand."""

    llm_mentions_count: int = 0
    llm_mentions_by_platform: LLMMentionsByPlatform = Field(
        default_factory=LLMMentionsByPlatform,
    )
    llm_mentions: list[LLMMention] = Field(default_factory=list)
    chatgpt_summary: str
    chatgpt_raw_response: str | None = None
    perplexity_insight: PerplexityInsight | None = None
    ai_search_volume: int | None = None
    knowledge_graph_exists: bool = False
    knowledge_graph_data: dict[str, Any] | None = None
    domain_metrics: DomainMetrics | None = None
    competitors: list[CompetitorInsight] | None = None
    api_costs: APICosts | None = None


# ============================================================================
# Phase 3: Judge (Final Report)
# ============================================================================


class ScoringBreakdown(BaseModel):
    """Four rubric categories, 0-25 points each."""

    entity_recognition: float = Field(
        ge=0, le=25, description="Knowledge Graph + LLM mentions score",
    )
    accuracy_score: float = Field(
        ge=0, le=25, description="Reality vs Perception alignment",
    )
    citation_strength: float = Field(
        ge=0, le=25, description="Sources in LLM responses",
    )
    technical_readiness: float = Field(
        ge=0, le=25, description="Schema, structured data readiness",
    )


class ScoreCard(BaseModel):
    """Headline score, verdict and grade."""

    aeo_score: float = Field(ge=0, le=100, description="Overall AEO score")
    verdict: Verdict = Field(
        description=(
            "Invisible (0-20), Emerging (21-40), Rising Star (41-60), "
            "Authority (61-80), Dominant (81-100)"
        ),
    )
    grade: Grade = Field(description="Letter grade")
    breakdown: ScoringBreakdown


class Hallucinations(BaseModel):
    """Mismatches between AI perception and ground truth."""

    positive: list[str] = Field(
        default_factory=list,
        description="Beneficial inaccuracies (AI overstates capabilities)",
    )
    negative: list[str] = Field(
        default_factory=list,
        description="Harmful inaccuracies (wrong pricing, features, etc.)",
    )
    is_hallucinating: bool = Field(description="Any hallucinations detected")
    risk_level: RiskLevel = Field(description="Overall hallucination risk")


class KnowledgeGraphStatus(BaseModel):
    """Human-readable knowledge graph presence."""

    exists: bool
    message: str = Field(description="Human-readable status")
    entity_type: str | None = Field(
        default=None,
        description="Organization, Person, Product, etc.",
    )
    attributes: list[str] | None = Field(default=None, description="Known attributes in KG")


class ActionItem(BaseModel):
    """One prioritized recommendation."""

    priority: ActionPriority
    category: ActionCategory
    task: str = Field(description="What to do")
    fix: str = Field(description="How to implement")
    impact: str = Field(description="Expected improvement")
    effort: Effort = Field(description="Implementation effort")


class AEOAuditReport(BaseModel):
    """Final audit report produced by the judge."""

    score_card: ScoreCard
    hallucinations: Hallucinations
    knowledge_graph_status: KnowledgeGraphStatus
    action_plan: list[ActionItem] = Field(
        default_factory=list,
        description="Prioritized improvement tasks",
    )
    summary: str = Field(description="Executive summary of findings")
    competitor_comparison: str | None = Field(
        default=None,
        description="Brief competitor context",
    )


# ============================================================================
# API envelopes
# ============================================================================


class AuditRunResponse(BaseModel):
    """Successful audit response."""

    success: Literal[True] = True
    report: AEOAuditReport
    tools_used: list[str]
    api_cost: float
    processing_time_ms: int
    cached: bool = False
    audit_id: str | None = None


class AuditErrorResponse(BaseModel):
    """Failed audit response."""

    success: Literal[False] = False
    error: str
    details: list[dict[str, Any]] | None = None
    errors: list[str] | None = None
    scrape_blocked: bool | None = None
    processing_time_ms: int | None = None


class LeadCreateRequest(BaseModel):
    """Lead capture payload sent after an audit."""

    email: EmailStr
    brand_name: str = Field(min_length=1, max_length=100)
    url: str
    score: float | None = None
    grade: str | None = None
    report: dict[str, Any] | None = None
    source: str = "landing_page"
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        return _validate_http_url(value)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class LeadCreateResponse(BaseModel):
    """Lead capture result."""

    success: bool
    lead_id: str | None = None


class LeadResponse(BaseModel):
    """Stored lead, as listed to admins."""

    id: str
    email: str
    brand_name: str
    url: str
    score: float | None = None
    grade: str | None = None
    source: str
    ip_address: str | None = None
    user_agent: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    full_report_viewed: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class LeadListResponse(BaseModel):
    """Paginated lead listing."""

    leads: list[LeadResponse]
    total: int
