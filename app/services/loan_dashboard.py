from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import LoanAction, Role
from app.models.loan_application import LoanApplication
from app.schemas.loan import IN_PROGRESS_STAGES, LoanStatsSummary, LoanStatus, WorkflowStage
from app.services import authz
from app.services.identity import Principal
from app.services.loan_queue import scope_conditions

AWAITING_ACTION_STAGES: dict[Role, frozenset[WorkflowStage]] = {
    Role.APPLICANT: frozenset({WorkflowStage.RETURNED}),
    Role.LOAN_OFFICER: frozenset({WorkflowStage.SUBMITTED, WorkflowStage.UNDER_REVIEW}),
    Role.BRANCH_MANAGER: frozenset({WorkflowStage.BRANCH_REVIEW}),
    Role.GENERAL_MANAGER: frozenset({WorkflowStage.GM_REVIEW}),
    Role.ADMIN: (IN_PROGRESS_STAGES - {WorkflowStage.RETURNED}) | {WorkflowStage.SANCTIONED},
}


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def summarize_stats(rows: Iterable[tuple], role: Role) -> LoanStatsSummary:
    """Fold ``(workflow_stage, status, count, amount)`` groups into one summary."""
    awaiting = {stage.value for stage in AWAITING_ACTION_STAGES.get(role, frozenset())}
    in_progress = {stage.value for stage in IN_PROGRESS_STAGES}
    summary = LoanStatsSummary()
    for stage, status, count, amount in rows:
        count = int(count or 0)
        summary.total += count
        summary.total_amount += _as_decimal(amount)
        if stage in in_progress:
            summary.pending += count
        if stage == WorkflowStage.SANCTIONED.value:
            summary.sanctioned += count
        if stage == WorkflowStage.DISBURSED.value:
            summary.disbursed += count
        if status == LoanStatus.REJECTED.value:
            summary.rejected += count
        if stage in awaiting:
            summary.awaiting_action += count
    return summary


async def build_stats(db: AsyncSession, principal: Principal) -> LoanStatsSummary:
    authz.authorize(principal, LoanAction.STATS)
    stmt = select(
        LoanApplication.workflow_stage,
        LoanApplication.status,
        func.count(),
        func.coalesce(func.sum(LoanApplication.amount), 0),
    )
    conditions = scope_conditions(principal)
    if conditions:
        stmt = stmt.where(*conditions)
    stmt = stmt.group_by(LoanApplication.workflow_stage, LoanApplication.status)
    rows = (await db.execute(stmt)).all()
    return summarize_stats(rows, principal.role)
