"""Persistence for audit records and captured leads."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

from sqlalchemy import func, null, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.audit import AuditLead, AuditRecord
from app.schemas.audit import AuditRequest, LeadCreateRequest
from app.services.audit_pipeline import AuditOutcome

logger = logging.getLogger(__name__)

LEAD_UPDATE_COLUMNS = (
    "brand_name",
    "score",
    "grade",
    "source",
    "ip_address",
    "user_agent",
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_email(email: str) -> str:
    """Pseudonymous, stable email identifier for logs (HMAC-SHA256, 16 hex chars)."""
    digest = hmac.new(
        settings.get_lead_hash_key(),
        normalize_email(email).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return digest[:16]


async def upsert_lead(
    session: AsyncSession,
    payload: LeadCreateRequest,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> str:
    """Insert a lead or refresh the existing (email, url) row. Returns its id."""
    values: dict[str, Any] = {
        "email": normalize_email(payload.email),
        "brand_name": payload.brand_name,
        "url": payload.url,
        "score": payload.score,
        "grade": payload.grade,
        # SQL NULL rather than JSON null so the conflict update can fall back
        "report_data": payload.report if payload.report is not None else null(),
        "source": payload.source,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "utm_source": payload.utm_source,
        "utm_medium": payload.utm_medium,
        "utm_campaign": payload.utm_campaign,
    }
    statement = insert(AuditLead).values(**values)
    statement = statement.on_conflict_do_update(
        constraint="uq_aeo_audit_leads_email_url",
        set_={
            **{column: statement.excluded[column] for column in LEAD_UPDATE_COLUMNS},
            # a payload without a report keeps the one already stored
            "report_data": func.coalesce(statement.excluded.report_data, AuditLead.report_data),
            "updated_at": func.now(),
        },
    ).returning(AuditLead.id)

    lead_id = (await session.execute(statement)).scalar_one()
    logger.info(
        "Lead captured",
        extra={
            "lead_id": lead_id,
            "email_hash": hash_email(payload.email),
            "brand_name": payload.brand_name,
            "source": payload.source,
        },
    )
    return str(lead_id)


async def list_leads(
    session: AsyncSession,
    *,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[AuditLead], int]:
    """Newest leads first, with the total row count."""
    result = await session.execute(
        select(AuditLead)
        .order_by(AuditLead.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    total = await session.scalar(select(func.count()).select_from(AuditLead))
    return list(result.scalars().all()), int(total or 0)


def build_audit_record(
    request: AuditRequest,
    outcome: AuditOutcome,
    *,
    client_ip: str | None = None,
    lead_id: str | None = None,
) -> AuditRecord:
    """Map a pipeline outcome onto a new ``AuditRecord`` row."""
    record = AuditRecord(
        brand_name=request.brand_name,
        url=request.url,
        processing_status="completed" if outcome.success else "failed",
        error_message=None if outcome.success else outcome.error,
        scrape_blocked=outcome.scrape_blocked,
        processing_time_ms=outcome.processing_time_ms,
        api_cost=outcome.api_cost,
        ip_address=client_ip,
        lead_id=lead_id,
    )

    if outcome.entity_profile is not None:
        record.entity_profile = outcome.entity_profile.model_dump(mode="json")

    perception = outcome.perception
    if perception is not None:
        record.llm_mentions_count = perception.llm_mentions_count
        record.llm_mentions_data = [
            mention.model_dump(mode="json") for mention in perception.llm_mentions
        ]
        record.chatgpt_summary = perception.chatgpt_summary
        record.ai_search_volume = perception.ai_search_volume
        record.knowledge_graph_exists = perception.knowledge_graph_exists
        record.knowledge_graph_data = perception.knowledge_graph_data

    report = outcome.report
    if report is not None:
        record.aeo_score = report.score_card.aeo_score
        record.verdict = report.score_card.verdict
        record.grade = report.score_card.grade
        record.hallucinations = report.hallucinations.model_dump(mode="json")
        record.action_plan = [item.model_dump(mode="json") for item in report.action_plan]
        record.full_report = report.model_dump(mode="json")

    return record


async def record_audit_outcome(
    session: AsyncSession,
    request: AuditRequest,
    outcome: AuditOutcome,
    *,
    client_ip: str | None = None,
    user_agent: str | None = None,
) -> str:
    """Persist one audit run; captures a lead when the request carried an email."""
    lead_id = None
    if request.email and outcome.success and outcome.report is not None:
        lead_id = await upsert_lead(
            session,
            LeadCreateRequest(
                email=request.email,
                brand_name=request.brand_name,
                url=request.url,
                score=outcome.report.score_card.aeo_score,
                grade=outcome.report.score_card.grade,
                report=outcome.report.model_dump(mode="json"),
                source="audit_form",
                utm_source=request.utm_source,
                utm_medium=request.utm_medium,
                utm_campaign=request.utm_campaign,
            ),
            ip_address=client_ip,
            user_agent=user_agent,
        )

    record = build_audit_record(request, outcome, client_ip=client_ip, lead_id=lead_id)
    session.add(record)
    await session.flush()
    logger.info(
        "Audit recorded",
        extra={
            "audit_id": record.id,
            "status": record.processing_status,
            "lead_id": lead_id,
        },
    )
    return record.id
