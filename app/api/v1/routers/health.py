from typing import Any

from fastapi import APIRouter

from app.core import health
from app.core.limiter import limiter

router = APIRouter(tags=["health"])


@router.get("/health/live", summary="Process is up")
@limiter.exempt
async def liveness() -> dict[str, Any]:
    return await health.live_payload()


@router.get("/health", summary="Database and Redis reachable", include_in_schema=False)
@router.get("/health/ready", summary="Database and Redis reachable")
@limiter.exempt
async def readiness() -> dict[str, Any]:
    return await health.ready_payload()


@router.get("/status/summary", tags=["status"], summary="Readiness, version and approval policy")
@limiter.exempt
async def status_summary() -> dict[str, Any]:
    return await health.status_summary_payload()
