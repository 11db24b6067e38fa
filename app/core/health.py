"""Liveness, readiness and status payloads for the loan service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text

from app.core.settings import settings
from app.db.session import engine
from app.utils.redis_client import get_redis_client

APP_VERSION = "0.1.0"

Check = dict[str, Any]


async def _check_db() -> Check:
    # Touching the numbering sequence also proves the migrations have run.
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT last_value FROM loan_application_number_seq"))
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}
    return {"status": "ok"}


async def _check_redis() -> Check:
    if not settings.notifications_enabled:
        return {"status": "ok", "detail": "notifications disabled"}
    try:
        await get_redis_client().ping()
    except Exception as exc:
        return {"status": "error", "error": str(exc)}
    return {"status": "ok"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _run_checks() -> dict[str, Check]:
    return {
        "api": {"status": "ok", "version": APP_VERSION},
        "database": await _check_db(),
        "redis": await _check_redis(),
    }


def _workflow_policy() -> dict[str, Any]:
    return {
        "gm_review_threshold": str(settings.gm_review_threshold),
        "term_months": [settings.min_term_months, settings.max_term_months],
        "notifications_enabled": settings.notifications_enabled,
    }


async def live_payload() -> dict[str, str]:
    return {"status": "ok", "timestamp": _now_iso()}


async def ready_payload() -> dict[str, Any]:
    checks = await _run_checks()
    ready = all(check.get("status") == "ok" for check in checks.values())
    return {
        "status": "ok" if ready else "degraded",
        "ready": ready,
        "environment": settings.environment,
        "timestamp": _now_iso(),
        "checks": checks,
    }


async def status_summary_payload() -> dict[str, Any]:
    """Readiness plus the build version and the active approval policy."""
    return {
        **await ready_payload(),
        "version": APP_VERSION,
        "workflow": _workflow_policy(),
    }
