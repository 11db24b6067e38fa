from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from redis.exceptions import RedisError

from app.core.settings import settings
from app.models.loan_application import LoanApplication
from app.utils.redis_client import get_redis_client

CHANNEL_PREFIX = "loans"
logger = logging.getLogger(__name__)


def channel_for_applicant(applicant_id) -> str:
    return f"{CHANNEL_PREFIX}:{applicant_id}"


def build_stage_event(application: LoanApplication, event: str) -> dict[str, Any]:
    return {
        "event": event,
        "loan_id": str(application.id),
        "application_number": application.application_number,
        "workflow_stage": application.workflow_stage,
        "status": application.status,
        "bank_name": application.bank_name,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }


async def publish_stage_change(application: LoanApplication, event: str) -> bool:
    """Tell the applicant's channel that their loan moved.

    Delivery is best effort: the decision is already committed, so a Redis
    outage is logged instead of failing the request.
    """
    if not settings.notifications_enabled:
        return False
    payload = build_stage_event(application, event)
    try:
        await get_redis_client().publish(channel_for_applicant(application.applicant_id), json.dumps(payload))
    except (RedisError, OSError) as exc:
        logger.warning("Loan notification for %s not delivered: %s", application.id, exc)
        return False
    return True
