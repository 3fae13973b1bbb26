"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.router import api_router
from app.config import settings
from app.core.database import close_db, init_db
from app.core.logging import setup_logging
from app.core.redis import close_redis, ping_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()

    logger.info(
        "Starting AEO Trust Auditor",
        extra={
            "environment": settings.environment,
            "version": settings.app_version,
            "extraction_model": settings.extraction_model or settings.get_model("standard"),
            "judge_model": settings.judge_model or settings.get_model("reasoning"),
            "dataforseo_enabled": settings.dataforseo_enabled,
            "firecrawl_enabled": bool(settings.firecrawl_api_key),
            "perplexity_enabled": bool(settings.perplexity_api_key),
        },
    )

    if settings.environment == "development" and settings.audit_persistence_enabled:
        await init_db()
        logger.info("Development database initialized")

    yield

    logger.info("Shutting down AEO Trust Auditor")
    await close_redis()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Answer Engine Optimization audit service: compares what a brand says "
            "about itself with what AI answer engines say about it, then scores "
            "the gap and proposes fixes."
        ),
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        cast(Any, CORSMiddleware),
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get(
        "/health",
        summary="Health check",
        description="Return service health status and version information.",
    )
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.app_version}

    @app.get(
        "/health/dependencies",
        summary="Dependency health check",
        description=(
            "Report Redis reachability and which audit data vendors are configured."
        ),
    )
    async def dependency_health_check() -> dict[str, Any]:
        """Dependency health endpoint."""
        redis_required = settings.rate_limit_enabled or settings.audit_cache_enabled
        redis_ok = await ping_redis() if redis_required else None

        vendors = {
            "dataforseo": settings.dataforseo_enabled,
            "firecrawl": bool(settings.firecrawl_api_key),
            "jina_reader": settings.jina_reader_enabled,
            "perplexity": bool(settings.perplexity_api_key),
        }
        can_scrape = vendors["firecrawl"] or vendors["jina_reader"]
        degraded = redis_ok is False or not can_scrape or not vendors["dataforseo"]

        return {
            "status": "degraded" if degraded else "healthy",
            "version": settings.app_version,
            "redis": {"required": redis_required, "reachable": redis_ok},
            "vendors": vendors,
        }

    return app


app = create_app()
