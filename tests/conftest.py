"""Shared builders for audit DTOs used across unit tests."""

from __future__ import annotations

from typing import Any

import pytest

from app.schemas.audit import (
    AEOAuditReport,
    AIPerception,
    ActionItem,
    ContentSignals,
    EntityProfile,
    Hallucinations,
    KnowledgeGraphStatus,
    ScoreCard,
    ScoringBreakdown,
    TechnicalSignals,
)


def build_profile(**overrides: Any) -> EntityProfile:
    technical = TechnicalSignals(
        has_schema=False,
        schema_types=[],
        has_table_tags=False,
        has_direct_answers=False,
        has_faqs=False,
        has_definitions=False,
        has_structured_lists=False,
    )
    content = ContentSignals(
        has_author_bio=False,
        has_publish_date=False,
        has_citations=False,
        has_last_updated=False,
        readability_level="moderate",
        estimated_word_count=800,
    )
    data: dict[str, Any] = {
        "brand_name": "Acme",
        "core_offering": "Project management software",
        "target_audience": "Small agencies",
        "unique_value_proposition": "Client portals built in",
        "pricing_model": "Subscription",
        "key_facts": ["Founded in 2019", "Used by 4,000 agencies"],
        "industry_category": "SaaS",
        "technical_signals": technical,
        "content_signals": content,
    }
    data.update(overrides)
    return EntityProfile(**data)


def build_perception(**overrides: Any) -> AIPerception:
    data: dict[str, Any] = {"chatgpt_summary": "Acme is a project management tool for agencies."}
    data.update(overrides)
    return AIPerception(**data)


def build_report(
    *,
    breakdown: tuple[float, float, float, float] = (10, 15, 10, 10),
    aeo_score: float | None = None,
    action_plan: list[ActionItem] | None = None,
    hallucinations: Hallucinations | None = None,
    kg_exists: bool = False,
) -> AEOAuditReport:
    entity, accuracy, citation, technical = breakdown
    total = aeo_score if aeo_score is not None else entity + accuracy + citation + technical
    return AEOAuditReport(
        score_card=ScoreCard(
            aeo_score=total,
            verdict="Rising Star",
            grade="C",
            breakdown=ScoringBreakdown(
                entity_recognition=entity,
                accuracy_score=accuracy,
                citation_strength=citation,
                technical_readiness=technical,
            ),
        ),
        hallucinations=hallucinations
        or Hallucinations(positive=[], negative=[], is_hallucinating=False, risk_level="none"),
        knowledge_graph_status=KnowledgeGraphStatus(exists=kg_exists, message="KG status"),
        action_plan=action_plan or [],
        summary="Acme is moderately visible to AI answer engines.",
    )


def build_action(priority: str, task: str = "Add Organization schema") -> ActionItem:
    return ActionItem(
        priority=priority,  # type: ignore[arg-type]
        category="Technical",
        task=task,
        fix="Add JSON-LD to the homepage",
        impact="Better entity recognition",
        effort="Low",
    )


@pytest.fixture
def entity_profile() -> EntityProfile:
    return build_profile()


@pytest.fixture
def perception() -> AIPerception:
    return build_perception()


@pytest.fixture
def audit_report() -> AEOAuditReport:
    return build_report()
