"""Phase 3 of the AEO audit: compare ground truth with AI perception."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.agents.judge_agent import AuditJudgeAgent, AuditJudgeInput
from app.schemas.audit import AEOAuditReport, AIPerception, EntityProfile
from app.services.scoring import normalize_report

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JudgeResult:
    """Outcome of Phase 3."""

    success: bool
    report: AEOAuditReport | None = None
    error: str | None = None


async def run_judge(
    brand_name: str,
    entity_profile: EntityProfile,
    perception: AIPerception,
    agent: AuditJudgeAgent | None = None,
) -> JudgeResult:
    """Score the brand and build the action plan. Never raises."""
    logger.info("Judge started", extra={"brand_name": brand_name})

    try:
        judge = agent or AuditJudgeAgent()
        raw_report = await judge.run(
            AuditJudgeInput(
                brand_name=brand_name,
                entity_profile=entity_profile,
                perception=perception,
            )
        )
        report = normalize_report(raw_report, entity_profile, perception)
    except Exception as e:
        logger.exception("Judge failed", extra={"brand_name": brand_name})
        return JudgeResult(success=False, error=str(e) or "Judge analysis failed")

    logger.info(
        "Judge complete",
        extra={
            "brand_name": brand_name,
            "aeo_score": report.score_card.aeo_score,
            "verdict": report.score_card.verdict,
            "grade": report.score_card.grade,
            "hallucination_risk": report.hallucinations.risk_level,
            "action_items": len(report.action_plan),
        },
    )
    return JudgeResult(success=True, report=report)
