"""Loan operations exposed to the API layer.

Each mutating operation loads the loan, lets ``loan_workflow`` apply the
transition in memory, records an audit entry and commits once. The caller's
identity is always passed in explicitly.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import LoanAction
from app.models.loan_application import LoanApplication
from app.schemas.loan import (
    LoanApplicationCreate,
    LoanResubmitRequest,
    LoanStatsSummary,
    LoanType,
    ReviewAction,
    WorkflowStage,
)
from app.services import authz, loan_applications, loan_dashboard, loan_notifications, loan_queue, loan_workflow
from app.services.audit import model_snapshot, record_audit_log
from app.services.identity import Principal

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "loan_application"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _log_fields(application: LoanApplication, event: str) -> dict[str, str]:
    return {
        "loan_id": str(application.id),
        "application_number": application.application_number,
        "workflow_stage": application.workflow_stage,
        "event": event,
    }


async def _mutate(
    db: AsyncSession,
    principal: Principal,
    loan_id: UUID,
    event: str,
    mutation: Callable[[LoanApplication, datetime], object],
) -> LoanApplication:
    application = await loan_applications.get_application(db, loan_id)
    before = model_snapshot(application)
    # The loan_workflow function runs the role check before touching the loan.
    mutation(application, _now())
    record_audit_log(
        db,
        principal,
        action=f"{RESOURCE_TYPE}.{event}",
        resource_type=RESOURCE_TYPE,
        resource_id=str(application.id),
        old_value=before,
        new_value=model_snapshot(application),
    )
    await loan_applications.commit(db, application)
    logger.info(
        "Loan %s %s by %s; stage=%s",
        application.application_number,
        event,
        principal.role.value,
        application.workflow_stage,
        extra=_log_fields(application, event),
    )
    await loan_notifications.publish_stage_change(application, event)
    return application


async def submit(db: AsyncSession, principal: Principal, draft: LoanApplicationCreate) -> LoanApplication:
    authz.authorize(principal, LoanAction.SUBMIT)
    application = await loan_applications.create_application(
        db, draft, applicant_id=principal.id, now=_now()
    )
    record_audit_log(
        db,
        principal,
        action=f"{RESOURCE_TYPE}.submitted",
        resource_type=RESOURCE_TYPE,
        resource_id=str(application.id),
        new_value=model_snapshot(application),
    )
    await loan_applications.commit(db, application)
    logger.info(
        "Loan %s submitted for %s",
        application.application_number,
        application.bank_name,
        extra=_log_fields(application, "submitted"),
    )
    await loan_notifications.publish_stage_change(application, "submitted")
    return application


async def resubmit(
    db: AsyncSession,
    principal: Principal,
    loan_id: UUID,
    updates: LoanResubmitRequest,
) -> LoanApplication:
    def _apply(application: LoanApplication, now: datetime) -> None:
        loan_workflow.apply_resubmission(application, principal, updates, now=now)

    return await _mutate(db, principal, loan_id, "resubmitted", _apply)


async def review(
    db: AsyncSession,
    principal: Principal,
    loan_id: UUID,
    review_kind: LoanAction,
    action: ReviewAction,
    remarks: str | None,
    *,
    expected_version: int | None = None,
) -> LoanApplication:
    def _apply(application: LoanApplication, now: datetime) -> None:
        loan_workflow.apply_review(
            application,
            principal,
            review_kind,
            action,
            remarks,
            now=now,
            expected_version=expected_version,
        )

    return await _mutate(db, principal, loan_id, f"{review_kind.value}.{action.value}", _apply)


async def officer_review(db, principal, loan_id, action, remarks, *, expected_version=None):
    return await review(
        db, principal, loan_id, LoanAction.OFFICER_REVIEW, action, remarks, expected_version=expected_version
    )


async def manager_review(db, principal, loan_id, action, remarks, *, expected_version=None):
    return await review(
        db, principal, loan_id, LoanAction.MANAGER_REVIEW, action, remarks, expected_version=expected_version
    )


async def gm_review(db, principal, loan_id, action, remarks, *, expected_version=None):
    return await review(
        db, principal, loan_id, LoanAction.GM_REVIEW, action, remarks, expected_version=expected_version
    )


async def disburse(
    db: AsyncSession,
    principal: Principal,
    loan_id: UUID,
    *,
    disbursement_account: str | None = None,
    expected_version: int | None = None,
) -> LoanApplication:
    def _apply(application: LoanApplication, now: datetime) -> None:
        loan_workflow.apply_disbursement(
            application,
            principal,
            now=now,
            disbursement_account=disbursement_account,
            expected_version=expected_version,
        )

    return await _mutate(db, principal, loan_id, "disbursed", _apply)


async def add_note(
    db: AsyncSession,
    principal: Principal,
    loan_id: UUID,
    note: str,
    *,
    expected_version: int | None = None,
) -> LoanApplication:
    def _apply(application: LoanApplication, now: datetime) -> None:
        loan_workflow.apply_note(application, principal, note, now=now, expected_version=expected_version)

    return await _mutate(db, principal, loan_id, "note_added", _apply)


async def get_loan(db: AsyncSession, principal: Principal, loan_id: UUID) -> LoanApplication:
    application = await loan_applications.get_application(db, loan_id)
    authz.ensure_can_view(principal, application)
    return application


async def list_loans(
    db: AsyncSession,
    principal: Principal,
    *,
    stage: WorkflowStage | None = None,
    loan_type: LoanType | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[LoanApplication], int]:
    return await loan_queue.list_loans(
        db, principal, stage=stage, loan_type=loan_type, limit=limit, offset=offset
    )


async def stats(db: AsyncSession, principal: Principal) -> LoanStatsSummary:
    return await loan_dashboard.build_stats(db, principal)


async def delete_loan(db: AsyncSession, principal: Principal, loan_id: UUID) -> None:
    """Administrative removal outside the workflow; always audited."""
    authz.authorize(principal, LoanAction.DELETE)
    application = await loan_applications.get_application(db, loan_id)
    record_audit_log(
        db,
        principal,
        action=f"{RESOURCE_TYPE}.deleted",
        resource_type=RESOURCE_TYPE,
        resource_id=str(application.id),
        old_value=model_snapshot(application),
    )
    await loan_applications.delete_application(db, application)
    await loan_applications.commit(db, application)
    logger.warning("Loan %s deleted by %s", application.application_number, principal.id)
