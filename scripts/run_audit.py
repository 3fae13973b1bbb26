"""Run one AEO audit from the command line and print the score card.

Runs the pipeline in-process by default; with ``--base-url`` it calls a
running API instead.

    python scripts/run_audit.py https://example.com "Example"
    python scripts/run_audit.py https://example.com "Example" --base-url http://localhost:8000
    python scripts/run_audit.py https://example.com "Example" --persist
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from app.config import settings
from app.core.database import close_db, get_session_context
from app.core.exceptions import AuditError
from app.core.logging import setup_logging
from app.core.redis import close_redis
from app.schemas.audit import AEOAuditReport, AuditRequest
from app.services.audit_pipeline import AuditPipeline
from app.services.leads import record_audit_outcome

logger = logging.getLogger("app.cli")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run an AEO Trust Audit for one brand")
    parser.add_argument("url", help="Brand website URL (http/https)")
    parser.add_argument("brand_name", help="Brand name as users would search for it")
    parser.add_argument(
        "--base-url",
        default=None,
        help="Call a running API at this base URL instead of running in-process",
    )
    parser.add_argument("--no-cache", action="store_true", help="Skip the Redis report cache")
    parser.add_argument("--json", action="store_true", help="Print the raw report JSON")
    parser.add_argument(
        "--persist",
        action="store_true",
        help="Store the audit record in the database (in-process runs only)",
    )
    parser.add_argument("--timeout", type=float, default=300.0, help="HTTP timeout in seconds")
    args = parser.parse_args(argv)
    try:
        args.request = AuditRequest(url=args.url, brand_name=args.brand_name)
    except ValidationError as e:
        parser.error("; ".join(str(error["msg"]) for error in e.errors()))
    return args


def format_report(report: AEOAuditReport, *, api_cost: float, processing_time_ms: int) -> str:
    """Human-readable rendering of a report."""
    card = report.score_card
    breakdown = card.breakdown
    lines = [
        f"AEO Score: {card.aeo_score:.1f}/100  Grade {card.grade}  ({card.verdict})",
        "",
        "Breakdown:",
        f"  Entity recognition   {breakdown.entity_recognition:5.1f}/25",
        f"  Accuracy             {breakdown.accuracy_score:5.1f}/25",
        f"  Citation strength    {breakdown.citation_strength:5.1f}/25",
        f"  Technical readiness  {breakdown.technical_readiness:5.1f}/25",
        "",
        f"Knowledge graph: {report.knowledge_graph_status.message}",
        f"Hallucination risk: {report.hallucinations.risk_level}",
    ]
    for item in report.hallucinations.negative:
        lines.append(f"  - (harmful) {item}")
    for item in report.hallucinations.positive:
        lines.append(f"  + (beneficial) {item}")

    if report.action_plan:
        lines += ["", "Action plan:"]
        for index, action in enumerate(report.action_plan, start=1):
            lines.append(f"  {index}. [{action.priority}/{action.category}] {action.task}")
            lines.append(f"     Fix: {action.fix}")

    lines += [
        "",
        report.summary,
        "",
        f"Estimated API cost: ${api_cost:.3f}  Time: {processing_time_ms / 1000:.1f}s",
    ]
    return "\n".join(lines)


async def _run_in_process(
    request: AuditRequest,
    *,
    use_cache: bool,
    persist: bool = False,
) -> dict[str, Any]:
    pipeline = AuditPipeline.from_settings() if use_cache else AuditPipeline()
    try:
        outcome = await pipeline.run(request)
        if persist:
            async with get_session_context() as session:
                audit_id = await record_audit_outcome(session, request, outcome, client_ip="cli")
            logger.info("Audit stored", extra={"audit_id": audit_id})
    finally:
        await close_redis()
        if persist:
            await close_db()
    outcome.raise_for_failure()
    assert outcome.report is not None
    return {
        "report": outcome.report.model_dump(mode="json"),
        "api_cost": outcome.api_cost,
        "processing_time_ms": outcome.processing_time_ms,
        "errors": outcome.errors,
    }


async def _run_remote(request: AuditRequest, *, base_url: str, timeout: float) -> dict[str, Any]:
    endpoint = f"{base_url.rstrip('/')}{settings.api_v1_prefix}/audit/run"
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.post(
            endpoint,
            json=request.model_dump(mode="json", exclude_none=True),
        )
    body = response.json()
    if response.status_code >= 400 or not body.get("success"):
        raise AuditError(str(body.get("error") or f"HTTP {response.status_code}"), body)
    return body


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging()

    request = args.request
    try:
        if args.base_url:
            result = asyncio.run(
                _run_remote(request, base_url=args.base_url, timeout=args.timeout)
            )
        else:
            result = asyncio.run(
                _run_in_process(request, use_cache=not args.no_cache, persist=args.persist)
            )
    except AuditError as e:
        logger.error("Audit failed", extra={"error": e.message, "details": e.details})
        print(f"Audit failed: {e.message}")
        return 1

    if args.json:
        print(json.dumps(result, indent=2))
        return 0

    report = AEOAuditReport.model_validate(result["report"])
    print(
        format_report(
            report,
            api_cost=float(result.get("api_cost") or 0.0),
            processing_time_ms=int(result.get("processing_time_ms") or 0),
        )
    )
    for error in result.get("errors") or []:
        print(f"warning: {error}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
