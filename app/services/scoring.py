"""Deterministic scoring helpers that keep judge reports consistent.

The judge LLM fills in the rubric; these helpers make sure the numbers,
verdict, grade and hallucination flags agree with each other and with the
signals we actually observed.
"""

from __future__ import annotations

import logging

from app.schemas.audit import (
    AEOAuditReport,
    AIPerception,
    EntityProfile,
    Grade,
    Hallucinations,
    RiskLevel,
    Verdict,
)

logger = logging.getLogger(__name__)

CATEGORY_MAX = 25.0
MAX_ACTION_ITEMS = 5

PRIORITY_ORDER = {"Critical": 0, "High": 1, "Medium": 2, "Low": 3}

# (upper bound inclusive, verdict)
_VERDICT_BANDS: tuple[tuple[float, Verdict], ...] = (
    (20, "Invisible"),
    (40, "Emerging"),
    (60, "Rising Star"),
    (80, "Authority"),
    (100, "Dominant"),
)

# (lower bound inclusive, grade)
_GRADE_BANDS: tuple[tuple[float, Grade], ...] = (
    (80, "A"),
    (65, "B"),
    (50, "C"),
    (35, "D"),
)

# (minimum mentions, points)
_MENTION_TIERS: tuple[tuple[int, float], ...] = (
    (1000, 10),
    (100, 7),
    (10, 5),
    (1, 2),
)


def clamp(value: float, low: float = 0.0, high: float = CATEGORY_MAX) -> float:
    return max(low, min(high, value))


def verdict_for_score(score: float) -> Verdict:
    """Map an overall score (0-100) to its verdict band."""
    bounded = clamp(score, 0, 100)
    for upper, verdict in _VERDICT_BANDS:
        if bounded <= upper:
            return verdict
    return "Dominant"


def grade_for_score(score: float) -> Grade:
    """Map an overall score (0-100) to a letter grade."""
    for lower, grade in _GRADE_BANDS:
        if score >= lower:
            return grade
    return "F"


def mention_points(mentions_count: int) -> float:
    for minimum, points in _MENTION_TIERS:
        if mentions_count >= minimum:
            return points
    return 0.0


def entity_recognition_floor(perception: AIPerception) -> float:
    """Rubric points that follow directly from observed perception data."""
    points = 15.0 if perception.knowledge_graph_exists else 0.0
    points += mention_points(perception.llm_mentions_count)
    return clamp(points)


def technical_readiness_points(profile: EntityProfile) -> float:
    """Rubric points for technical readiness from the extracted profile."""
    tech = profile.technical_signals
    content = profile.content_signals

    points = 0.0
    if tech.has_schema or tech.schema_types:
        points += 10
    if tech.has_faqs or tech.has_definitions:
        points += 5
    if content.has_author_bio or content.has_publish_date or content.has_last_updated:
        points += 5
    if content.has_citations:
        points += 5
    return clamp(points)


def risk_level_for(hallucinations: Hallucinations) -> RiskLevel:
    """Derive risk from the number and kind of hallucinations."""
    negatives = len(hallucinations.negative)
    if negatives >= 2:
        return "high"
    if negatives == 1:
        return "medium"
    if hallucinations.positive:
        return "low"
    return "none"


def normalize_report(
    report: AEOAuditReport,
    profile: EntityProfile,
    perception: AIPerception,
) -> AEOAuditReport:
    """Return a copy of the judge report with internally consistent scoring.

    - Sub-scores are clamped to 0-25; entity recognition and technical
      readiness never fall below what observed signals guarantee.
    - ``aeo_score`` is the sum of the breakdown; verdict and grade follow it.
    - Hallucination flags and risk level are derived from the lists.
    - Knowledge graph presence matches the observed perception value.
    - The action plan is ordered by priority and capped.
    """
    normalized = report.model_copy(deep=True)
    card = normalized.score_card
    breakdown = card.breakdown

    breakdown.entity_recognition = max(
        clamp(breakdown.entity_recognition),
        entity_recognition_floor(perception),
    )
    breakdown.accuracy_score = clamp(breakdown.accuracy_score)
    breakdown.citation_strength = clamp(breakdown.citation_strength)
    breakdown.technical_readiness = max(
        clamp(breakdown.technical_readiness),
        technical_readiness_points(profile),
    )

    total = round(
        breakdown.entity_recognition
        + breakdown.accuracy_score
        + breakdown.citation_strength
        + breakdown.technical_readiness,
        1,
    )
    if abs(total - card.aeo_score) > 0.5:
        logger.info(
            "Judge score adjusted to match breakdown",
            extra={"reported_score": card.aeo_score, "normalized_score": total},
        )
    card.aeo_score = total
    card.verdict = verdict_for_score(total)
    card.grade = grade_for_score(total)

    hallucinations = normalized.hallucinations
    hallucinations.positive = [item for item in hallucinations.positive if item.strip()]
    hallucinations.negative = [item for item in hallucinations.negative if item.strip()]
    hallucinations.is_hallucinating = bool(hallucinations.positive or hallucinations.negative)
    hallucinations.risk_level = risk_level_for(hallucinations)

    kg_status = normalized.knowledge_graph_status
    if kg_status.exists != perception.knowledge_graph_exists:
        kg_status.exists = perception.knowledge_graph_exists
        kg_status.message = (
            "Brand has a Google Knowledge Graph entity."
            if perception.knowledge_graph_exists
            else "No Google Knowledge Graph entity found for this brand."
        )

    normalized.action_plan = sorted(
        normalized.action_plan,
        key=lambda item: PRIORITY_ORDER.get(item.priority, len(PRIORITY_ORDER)),
    )[:MAX_ACTION_ITEMS]

    return normalized
