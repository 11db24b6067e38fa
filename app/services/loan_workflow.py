"""Loan approval state machine.

The functions here mutate a loaded ``LoanApplication`` in memory and never touch
the database. Every check runs before the first attribute is written, so a
rejected request leaves the loan exactly as it was.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from app.core.permissions import ROLE_LABELS, LoanAction
from app.core.settings import settings
from app.models.loan_application import LoanApplication
from app.models.loan_approval_step import LoanApprovalStep
from app.models.loan_emi_installment import LoanEmiInstallment
from app.schemas.loan import (
    ApprovalAction,
    InstallmentStatus,
    LoanResubmitRequest,
    LoanStatus,
    ReviewAction,
    WorkflowStage,
)
from app.services import authz, loan_applications, loan_schedules
from app.services.identity import Principal
from app.services.loan_errors import Conflict, IllegalTransition, LoanValidationError

DISBURSEMENT_REMARK = "Loan amount disbursed to applicant account."
DEFAULT_RESUBMIT_REMARK = "Resubmitted by applicant"
RESUBMITTABLE_FIELDS = ("purpose", "documents", "collateral", "guarantor", "education_details")


@dataclass(frozen=True)
class Edge:
    sources: frozenset[WorkflowStage]
    target: WorkflowStage
    # Approvals above the GM threshold are routed here instead of ``target``.
    target_above_threshold: WorkflowStage | None = None

    def destination(self, amount: Decimal, threshold: Decimal) -> WorkflowStage:
        if self.target_above_threshold is not None and amount > threshold:
            return self.target_above_threshold
        return self.target


_OFFICER_SOURCES = frozenset({WorkflowStage.SUBMITTED, WorkflowStage.UNDER_REVIEW})
_MANAGER_SOURCES = frozenset({WorkflowStage.BRANCH_REVIEW})
_GM_SOURCES = frozenset({WorkflowStage.GM_REVIEW})

REVIEW_TRANSITIONS: dict[tuple[LoanAction, ReviewAction], Edge] = {
    (LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE): Edge(
        _OFFICER_SOURCES, WorkflowStage.BRANCH_REVIEW, WorkflowStage.GM_REVIEW
    ),
    (LoanAction.OFFICER_REVIEW, ReviewAction.REJECT): Edge(_OFFICER_SOURCES, WorkflowStage.REJECTED),
    (LoanAction.OFFICER_REVIEW, ReviewAction.RETURN): Edge(_OFFICER_SOURCES, WorkflowStage.RETURNED),
    (LoanAction.MANAGER_REVIEW, ReviewAction.APPROVE): Edge(
        _MANAGER_SOURCES, WorkflowStage.SANCTIONED, WorkflowStage.GM_REVIEW
    ),
    (LoanAction.MANAGER_REVIEW, ReviewAction.REJECT): Edge(_MANAGER_SOURCES, WorkflowStage.REJECTED),
    (LoanAction.MANAGER_REVIEW, ReviewAction.RETURN): Edge(_MANAGER_SOURCES, WorkflowStage.UNDER_REVIEW),
    (LoanAction.GM_REVIEW, ReviewAction.APPROVE): Edge(_GM_SOURCES, WorkflowStage.SANCTIONED),
    (LoanAction.GM_REVIEW, ReviewAction.REJECT): Edge(_GM_SOURCES, WorkflowStage.REJECTED),
    (LoanAction.GM_REVIEW, ReviewAction.RETURN): Edge(_GM_SOURCES, WorkflowStage.BRANCH_REVIEW),
}
DISBURSE_TRANSITION = Edge(frozenset({WorkflowStage.SANCTIONED}), WorkflowStage.DISBURSED)
RESUBMIT_TRANSITION = Edge(frozenset({WorkflowStage.RETURNED}), WorkflowStage.SUBMITTED)

REVIEW_REMARKS_FIELDS = {
    LoanAction.OFFICER_REVIEW: "officer_remarks",
    LoanAction.MANAGER_REVIEW: "manager_remarks",
    LoanAction.GM_REVIEW: "gm_remarks",
}
_CHAIN_ACTIONS = {
    ReviewAction.APPROVE: ApprovalAction.APPROVED,
    ReviewAction.REJECT: ApprovalAction.REJECTED,
    ReviewAction.RETURN: ApprovalAction.RETURNED,
}


def current_stage(application: LoanApplication) -> WorkflowStage:
    return WorkflowStage(application.workflow_stage)


def _clean(text: str | None) -> str | None:
    if text is None:
        return None
    return text.strip() or None


def _require_stage(application: LoanApplication, edge: Edge, action: LoanAction) -> None:
    stage = current_stage(application)
    if stage not in edge.sources:
        raise IllegalTransition(
            f"Cannot {action.value.replace('_', ' ')} a loan that is '{stage.value}'.",
            details={
                "stage": stage.value,
                "allowed_stages": sorted(source.value for source in edge.sources),
            },
        )


def check_version(application: LoanApplication, expected_version: int | None) -> None:
    if expected_version is not None and application.version != expected_version:
        raise Conflict(
            "The loan has changed since it was loaded. Reload it and try again.",
            details={"expected_version": expected_version, "current_version": application.version},
        )


def append_approval_step(
    application: LoanApplication,
    principal: Principal,
    action: ApprovalAction,
    remarks: str | None,
    now: datetime,
) -> LoanApprovalStep:
    step = LoanApprovalStep(
        sequence=len(application.approval_chain) + 1,
        stage=principal.role.value,
        actor_id=principal.id,
        officer_name=principal.display_name,
        action=action.value,
        remarks=remarks,
        action_date=now,
    )
    application.approval_chain.append(step)
    application.updated_at = now
    return step


def apply_review(
    application: LoanApplication,
    principal: Principal,
    review: LoanAction,
    action: ReviewAction,
    remarks: str | None,
    *,
    now: datetime,
    expected_version: int | None = None,
    threshold: Decimal | None = None,
    require_remarks: bool | None = None,
) -> WorkflowStage:
    edge = REVIEW_TRANSITIONS.get((review, action))
    if edge is None:
        raise LoanValidationError(f"{review.value} is not a review action.", details={"action": review.value})

    authz.authorize(principal, review)
    authz.ensure_bank_access(principal, application)
    check_version(application, expected_version)
    _require_stage(application, edge, review)

    note = _clean(remarks)
    if require_remarks is None:
        require_remarks = settings.require_remarks_for_reject_return
    if require_remarks and action is not ReviewAction.APPROVE and not note:
        raise LoanValidationError(
            "Remarks are required when rejecting or returning a loan.",
            details={"action": action.value},
        )

    threshold = settings.gm_review_threshold if threshold is None else threshold
    target = edge.destination(Decimal(str(application.amount)), threshold)

    setattr(application, REVIEW_REMARKS_FIELDS[review], note)
    if review is LoanAction.OFFICER_REVIEW:
        application.assigned_loan_officer_id = principal.id
    elif review is LoanAction.MANAGER_REVIEW:
        application.assigned_branch_manager_id = principal.id

    application.workflow_stage = target.value
    if target is WorkflowStage.SANCTIONED:
        application.status = LoanStatus.APPROVED.value
        application.sanctioned_at = now
    elif target is WorkflowStage.REJECTED:
        application.status = LoanStatus.REJECTED.value
        application.rejection_reason = note or f"Rejected by {ROLE_LABELS[principal.role]}"
    else:
        application.status = LoanStatus.PENDING.value

    append_approval_step(application, principal, _CHAIN_ACTIONS[action], note, now)
    return target


def apply_disbursement(
    application: LoanApplication,
    principal: Principal,
    *,
    now: datetime,
    disbursement_account: str | None = None,
    expected_version: int | None = None,
) -> list[LoanEmiInstallment]:
    authz.authorize(principal, LoanAction.DISBURSE)
    authz.ensure_bank_access(principal, application)
    check_version(application, expected_version)
    _require_stage(application, DISBURSE_TRANSITION, LoanAction.DISBURSE)
    if application.emi_schedule:
        raise IllegalTransition("An EMI schedule already exists for this loan.")

    entries = loan_schedules.build_emi_schedule(
        principal=application.amount,
        annual_rate_percent=application.interest_rate,
        term_months=application.term_months,
        emi_amount=application.emi_amount,
        start_date=now.date(),
    )
    installments = [
        LoanEmiInstallment(
            installment_no=entry.installment_no,
            due_date=entry.due_date,
            principal_amount=entry.principal_amount,
            interest_amount=entry.interest_amount,
            total_amount=entry.total_amount,
            status=InstallmentStatus.PENDING.value,
        )
        for entry in entries
    ]
    application.emi_schedule.extend(installments)
    application.workflow_stage = DISBURSE_TRANSITION.target.value
    application.disbursement_date = now
    account = _clean(disbursement_account)
    if account:
        application.disbursement_account = account
    append_approval_step(application, principal, ApprovalAction.DISBURSED, DISBURSEMENT_REMARK, now)
    return installments


def apply_resubmission(
    application: LoanApplication,
    principal: Principal,
    updates: LoanResubmitRequest,
    *,
    now: datetime,
) -> dict:
    authz.authorize(principal, LoanAction.RESUBMIT)
    authz.ensure_owner(principal, application)
    check_version(application, updates.expected_version)
    _require_stage(application, RESUBMIT_TRANSITION, LoanAction.RESUBMIT)

    changes = {}
    for field_name in RESUBMITTABLE_FIELDS:
        if field_name not in updates.model_fields_set:
            continue
        value = getattr(updates, field_name)
        if value is None:
            continue
        changes[field_name] = value if isinstance(value, str) else value.model_dump(mode="json")
    loan_applications.apply_updates(application, changes)

    application.workflow_stage = RESUBMIT_TRANSITION.target.value
    application.status = LoanStatus.PENDING.value
    application.submitted_at = now
    append_approval_step(
        application,
        principal,
        ApprovalAction.RESUBMITTED,
        _clean(updates.remarks) or DEFAULT_RESUBMIT_REMARK,
        now,
    )
    return changes


def apply_note(
    application: LoanApplication,
    principal: Principal,
    note: str | None,
    *,
    now: datetime,
    expected_version: int | None = None,
) -> LoanApprovalStep:
    authz.authorize(principal, LoanAction.ADD_NOTE)
    authz.ensure_bank_access(principal, application)
    check_version(application, expected_version)
    text = _clean(note)
    if not text:
        raise LoanValidationError("Note content is required.")
    return append_approval_step(application, principal, ApprovalAction.NOTE, text, now)
