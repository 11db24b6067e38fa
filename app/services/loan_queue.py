from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import LoanAction, Role
from app.models.loan_application import LoanApplication
from app.schemas.loan import LoanType, WorkflowStage
from app.services import authz
from app.services.identity import Principal

# None means every stage.
DEFAULT_QUEUE_STAGES: dict[Role, frozenset[WorkflowStage] | None] = {
    Role.LOAN_OFFICER: frozenset(
        {WorkflowStage.SUBMITTED, WorkflowStage.UNDER_REVIEW, WorkflowStage.RETURNED}
    ),
    Role.BRANCH_MANAGER: frozenset(
        {WorkflowStage.BRANCH_REVIEW, WorkflowStage.SUBMITTED, WorkflowStage.UNDER_REVIEW}
    ),
    Role.GENERAL_MANAGER: frozenset({WorkflowStage.GM_REVIEW}),
    Role.ADMIN: None,
}


def default_stages_for(role: Role) -> frozenset[WorkflowStage] | None:
    return DEFAULT_QUEUE_STAGES.get(role)


def scope_conditions(principal: Principal) -> list:
    """Rows the principal may see at all: own loans, or loans of the staff member's bank."""
    if not principal.is_staff:
        return [LoanApplication.applicant_id == principal.id]
    bank = authz.bank_scope(principal)
    if bank is None:
        return []
    return [LoanApplication.bank_name == bank]


def list_conditions(
    principal: Principal,
    *,
    stage: WorkflowStage | None = None,
    loan_type: LoanType | None = None,
) -> list:
    conditions = scope_conditions(principal)
    if stage is not None:
        conditions.append(LoanApplication.workflow_stage == stage.value)
    elif principal.is_staff:
        stages = default_stages_for(principal.role)
        if stages is not None:
            conditions.append(LoanApplication.workflow_stage.in_(sorted(s.value for s in stages)))
    if loan_type is not None:
        conditions.append(LoanApplication.loan_type == loan_type.value)
    return conditions


async def list_loans(
    db: AsyncSession,
    principal: Principal,
    *,
    stage: WorkflowStage | None = None,
    loan_type: LoanType | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[LoanApplication], int]:
    authz.authorize(principal, LoanAction.LIST)
    conditions = list_conditions(principal, stage=stage, loan_type=loan_type)

    count_stmt = select(func.count()).select_from(LoanApplication)
    stmt = select(LoanApplication)
    if conditions:
        count_stmt = count_stmt.where(*conditions)
        stmt = stmt.where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)

    stmt = stmt.order_by(LoanApplication.created_at.desc()).limit(limit).offset(offset)
    items = (await db.execute(stmt)).scalars().all()
    return list(items), total
