"""API v1 router aggregator."""

from fastapi import APIRouter

from app.api.v1 import audit

api_router = APIRouter()

api_router.include_router(audit.router, prefix="/audit", tags=["Audit"])
