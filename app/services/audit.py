"""Audit trail for loan mutations.

Every state change writes one ``AuditLog`` row in the same transaction as the
change itself, and mirrors a one-line summary to the ``app.audit`` logger.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_audit_logger
from app.models.audit_log import AuditLog

if TYPE_CHECKING:
    from app.services.identity import Principal

# Bookkeeping columns that change on every write and say nothing about the loan.
_NOISE = frozenset({"updated_at"})
_SUMMARY_FIELDS = 3

_ENCODERS = {
    Decimal: str,
    datetime: datetime.isoformat,
    date: date.isoformat,
}


def model_snapshot(model: Any) -> dict[str, Any]:
    """JSON-safe copy of a row's column values; money stays exact as strings."""
    if model is None:
        return {}
    values = {
        column.name: getattr(model, column.name)
        for column in model.__table__.columns
        if column.name not in _NOISE
    }
    return jsonable_encoder(values, custom_encoder=_ENCODERS)


def diff_snapshots(old: dict[str, Any], new: dict[str, Any]) -> dict[str, dict[str, Any]]:
    return {
        field: {"from": old.get(field), "to": new.get(field)}
        for field in sorted(set(old) | set(new))
        if old.get(field) != new.get(field)
    }


def _summary(action: str, changes: dict[str, dict[str, Any]]) -> str:
    if not changes:
        return action
    fields = list(changes)
    shown = ", ".join(fields[:_SUMMARY_FIELDS])
    return f"{action}: {shown}..." if len(fields) > _SUMMARY_FIELDS else f"{action}: {shown}"


def record_audit_log(
    db: AsyncSession,
    principal: Principal,
    *,
    action: str,
    resource_type: str,
    resource_id: str,
    old_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
) -> AuditLog:
    changes = diff_snapshots(old_value or {}, new_value or {}) if (old_value or new_value) else {}
    entry = AuditLog(
        actor_id=principal.id,
        actor_role=principal.role.value,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        old_value=old_value,
        new_value=new_value,
        changes=changes or None,
        summary=_summary(action, changes),
    )
    db.add(entry)
    get_audit_logger().info(
        "%s by %s (%s) on %s/%s",
        entry.summary,
        principal.id,
        principal.role.value,
        resource_type,
        resource_id,
    )
    return entry
