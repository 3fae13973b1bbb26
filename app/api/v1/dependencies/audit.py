"""Dependencies for the audit routes: DB session, pipeline, client IP, admin key."""

import hmac
import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_session
from app.core.redis import SlidingWindowRateLimiter, get_audit_rate_limiter
from app.services.audit_pipeline import AuditPipeline

logger = logging.getLogger(__name__)

admin_api_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_session)]


def get_audit_pipeline() -> AuditPipeline:
    """Pipeline wired from settings (Redis cache when enabled)."""
    return AuditPipeline.from_settings()


AuditPipelineDep = Annotated[AuditPipeline, Depends(get_audit_pipeline)]


def get_rate_limiter() -> SlidingWindowRateLimiter | None:
    """Per-IP audit limiter, or None when rate limiting is disabled."""
    if not settings.rate_limit_enabled:
        return None
    return get_audit_rate_limiter()


AuditRateLimiterDep = Annotated[SlidingWindowRateLimiter | None, Depends(get_rate_limiter)]


def get_client_ip(request: Request) -> str:
    """Best-effort client IP, honoring common proxy headers."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = (request.headers.get(header) or "").strip()
        if value:
            return value

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def require_admin_api_key(
    api_key: Annotated[str | None, Security(admin_api_key_header)],
) -> None:
    """Validate the admin API key for lead listing."""
    allowed_keys = settings.get_admin_api_keys()
    if not allowed_keys:
        logger.error("Admin API key check failed: no keys configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API keys are not configured",
        )

    candidate = (api_key or "").strip()
    if candidate and any(hmac.compare_digest(candidate, key) for key in allowed_keys):
        return

    logger.warning("Admin API key check failed: invalid key")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Invalid or missing admin key",
    )
