"""Reusable API dependencies shared across v1 routes."""

from app.api.v1.dependencies.audit import (
    AuditPipelineDep,
    AuditRateLimiterDep,
    DbSession,
    get_audit_pipeline,
    get_client_ip,
    get_rate_limiter,
    require_admin_api_key,
)

__all__ = [
    "AuditPipelineDep",
    "AuditRateLimiterDep",
    "DbSession",
    "get_audit_pipeline",
    "get_client_ip",
    "get_rate_limiter",
    "require_admin_api_key",
]
