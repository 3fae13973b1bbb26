"""AEO audit API endpoints."""

import json
import logging
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError as PydanticValidationError

from app.api.v1.dependencies import (
    AuditPipelineDep,
    AuditRateLimiterDep,
    DbSession,
    get_client_ip,
    require_admin_api_key,
)
from app.config import settings
from app.core.exceptions import AuditRateLimitedError
from app.schemas.audit import (
    AuditErrorResponse,
    AuditRequest,
    AuditRunResponse,
    LeadCreateRequest,
    LeadCreateResponse,
    LeadListResponse,
    LeadResponse,
)
from app.services.audit_pipeline import AuditOutcome
from app.services.leads import hash_email, list_leads, record_audit_outcome, upsert_lead

logger = logging.getLogger(__name__)

router = APIRouter()

ModelT = TypeVar("ModelT", bound=BaseModel)

INVALID_AUDIT_REQUEST_DETAIL = "Invalid request. Please provide a valid URL and brand name."
INVALID_LEAD_REQUEST_DETAIL = "Email, brand name, and URL are required."
RATE_LIMITED_DETAIL = "Rate limit exceeded. You can run 1 free audit per day."
UNEXPECTED_ERROR_DETAIL = "An unexpected error occurred"

_PHASE_STATUS = {
    "extraction": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "perception": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "judge": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error_response(
    status_code: int,
    body: AuditErrorResponse,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


async def _parse_body(
    request: Request,
    model: type[ModelT],
    detail: str,
) -> ModelT | JSONResponse:
    """Validate the raw JSON body so invalid payloads map to 400, not 422."""
    try:
        payload: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            AuditErrorResponse(error=detail, details=[{"msg": "Body must be valid JSON"}]),
        )

    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            AuditErrorResponse(
                error=detail,
                details=e.errors(include_url=False, include_context=False, include_input=False),
            ),
        )


async def _persist_outcome(
    session: DbSession,
    audit_request: AuditRequest,
    outcome: AuditOutcome,
    *,
    client_ip: str,
    user_agent: str | None,
) -> str | None:
    """Store the audit record; storage failures never fail the audit response."""
    if not settings.audit_persistence_enabled:
        return None
    try:
        return await record_audit_outcome(
            session,
            audit_request,
            outcome,
            client_ip=client_ip,
            user_agent=user_agent,
        )
    except Exception:
        logger.exception("Failed to persist audit record", extra={"url": audit_request.url})
        await session.rollback()
        return None


@router.post(
    "/run",
    response_model=AuditRunResponse,
    responses={
        400: {"model": AuditErrorResponse},
        422: {"model": AuditErrorResponse},
        429: {"model": AuditErrorResponse},
        500: {"model": AuditErrorResponse},
    },
    summary="Run an AEO audit",
    description=(
        "Scrape the brand website, gather AI perception signals and score how "
        "accurately AI answer engines represent the brand."
    ),
)
async def run_audit(
    request: Request,
    session: DbSession,
    pipeline: AuditPipelineDep,
    limiter: AuditRateLimiterDep,
) -> Any:
    """Run the three-phase audit for one URL and brand."""
    parsed = await _parse_body(request, AuditRequest, INVALID_AUDIT_REQUEST_DETAIL)
    if isinstance(parsed, JSONResponse):
        return parsed
    audit_request = parsed

    client_ip = get_client_ip(request)
    if limiter is not None:
        decision = await limiter.hit(client_ip)
        if not decision.allowed:
            limited = AuditRateLimitedError(decision.retry_after_seconds, RATE_LIMITED_DETAIL)
            logger.info(
                "Audit rate limited",
                extra={"client_ip": client_ip, "retry_after": limited.retry_after_seconds},
            )
            return _error_response(
                status.HTTP_429_TOO_MANY_REQUESTS,
                AuditErrorResponse(error=limited.message),
                headers={"Retry-After": str(limited.retry_after_seconds)},
            )

    try:
        outcome = await pipeline.run(audit_request)
    except Exception:
        logger.exception("Audit crashed", extra={"url": audit_request.url})
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            AuditErrorResponse(error=UNEXPECTED_ERROR_DETAIL),
        )

    audit_id = await _persist_outcome(
        session,
        audit_request,
        outcome,
        client_ip=client_ip,
        user_agent=request.headers.get("user-agent"),
    )

    if not outcome.success or outcome.report is None:
        status_code = _PHASE_STATUS.get(
            outcome.failed_phase or "",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        return _error_response(
            status_code,
            AuditErrorResponse(
                error=outcome.error or UNEXPECTED_ERROR_DETAIL,
                errors=outcome.errors or None,
                scrape_blocked=outcome.scrape_blocked if outcome.failed_phase == "extraction" else None,
                processing_time_ms=outcome.processing_time_ms,
            ),
        )

    return AuditRunResponse(
        report=outcome.report,
        tools_used=outcome.tools_used,
        api_cost=outcome.api_cost,
        processing_time_ms=outcome.processing_time_ms,
        cached=outcome.cached,
        audit_id=audit_id,
    )


@router.post(
    "/leads",
    response_model=LeadCreateResponse,
    responses={400: {"model": AuditErrorResponse}, 500: {"model": AuditErrorResponse}},
    summary="Capture an audit lead",
)
async def create_lead(request: Request, session: DbSession) -> Any:
    """Save (or refresh) a lead for an email and audited URL."""
    parsed = await _parse_body(request, LeadCreateRequest, INVALID_LEAD_REQUEST_DETAIL)
    if isinstance(parsed, JSONResponse):
        return parsed

    try:
        lead_id = await upsert_lead(
            session,
            parsed,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except Exception:
        logger.exception("Failed to save lead", extra={"email_hash": hash_email(parsed.email)})
        await session.rollback()
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            AuditErrorResponse(error="Failed to save lead"),
        )

    return LeadCreateResponse(success=True, lead_id=lead_id)


@router.get(
    "/leads",
    response_model=LeadListResponse,
    dependencies=[Depends(require_admin_api_key)],
    summary="List captured leads",
    description="Admin only. Requires the `X-Admin-Key` header.",
)
async def get_leads(
    session: DbSession,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> LeadListResponse:
    """Newest leads first."""
    leads, total = await list_leads(session, limit=limit, offset=offset)
    return LeadListResponse(
        leads=[LeadResponse.model_validate(lead) for lead in leads],
        total=total,
    )
