from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import make_loan, make_principal

from app.core.permissions import LoanAction, Role
from app.models.loan_approval_step import LoanApprovalStep
from app.models.loan_emi_installment import LoanEmiInstallment
from app.schemas.loan import LoanResubmitRequest, ReviewAction
from app.services import loan_workflow
from app.services.loan_errors import Conflict, Forbidden, IllegalTransition, LoanValidationError
from app.services.loan_terms import compute_emi

NOW = datetime(2025, 2, 3, 12, 0, tzinfo=timezone.utc)
THRESHOLD = Decimal("10000000")


def _state(loan) -> tuple:
    return (
        loan.workflow_stage,
        loan.status,
        loan.version,
        len(loan.approval_chain),
        loan.officer_remarks,
        loan.manager_remarks,
        loan.gm_remarks,
        loan.rejection_reason,
        loan.assigned_loan_officer_id,
        loan.assigned_branch_manager_id,
        loan.sanctioned_at,
        loan.updated_at,
    )


def _review(loan, principal, review, action, remarks="Checked", **kwargs):
    kwargs.setdefault("threshold", THRESHOLD)
    return loan_workflow.apply_review(loan, principal, review, action, remarks, now=NOW, **kwargs)


def _step(sequence: int, stage: str, action: str, remarks: str) -> LoanApprovalStep:
    return LoanApprovalStep(
        sequence=sequence,
        stage=stage,
        officer_name=f"Reviewer {sequence}",
        action=action,
        remarks=remarks,
        action_date=datetime(2025, 1, sequence, tzinfo=timezone.utc),
    )


@pytest.mark.parametrize(
    "role,review,action,source,amount,target,status",
    [
        (Role.LOAN_OFFICER, LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE, "submitted", "500000", "branch_review", "pending"),
        (Role.LOAN_OFFICER, LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE, "under_review", "500000", "branch_review", "pending"),
        (Role.LOAN_OFFICER, LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE, "submitted", "12000000", "gm_review", "pending"),
        (Role.LOAN_OFFICER, LoanAction.OFFICER_REVIEW, ReviewAction.REJECT, "submitted", "500000", "rejected", "rejected"),
        (Role.LOAN_OFFICER, LoanAction.OFFICER_REVIEW, ReviewAction.RETURN, "under_review", "500000", "returned", "pending"),
        (Role.BRANCH_MANAGER, LoanAction.MANAGER_REVIEW, ReviewAction.APPROVE, "branch_review", "500000", "sanctioned", "approved"),
        (Role.BRANCH_MANAGER, LoanAction.MANAGER_REVIEW, ReviewAction.APPROVE, "branch_review", "10000001", "gm_review", "pending"),
        (Role.BRANCH_MANAGER, LoanAction.MANAGER_REVIEW, ReviewAction.REJECT, "branch_review", "500000", "rejected", "rejected"),
        (Role.BRANCH_MANAGER, LoanAction.MANAGER_REVIEW, ReviewAction.RETURN, "branch_review", "500000", "under_review", "pending"),
        (Role.GENERAL_MANAGER, LoanAction.GM_REVIEW, ReviewAction.APPROVE, "gm_review", "12000000", "sanctioned", "approved"),
        (Role.GENERAL_MANAGER, LoanAction.GM_REVIEW, ReviewAction.REJECT, "gm_review", "12000000", "rejected", "rejected"),
        (Role.GENERAL_MANAGER, LoanAction.GM_REVIEW, ReviewAction.RETURN, "gm_review", "12000000", "branch_review", "pending"),
    ],
)
def test_review_transitions(role, review, action, source, amount, target, status):
    loan = make_loan(workflow_stage=source, amount=Decimal(amount))
    principal = make_principal(role, bank="SBI")

    result = _review(loan, principal, review, action)

    assert result.value == target
    assert loan.workflow_stage == target
    assert loan.status == status
    assert len(loan.approval_chain) == 1
    step = loan.approval_chain[0]
    assert step.sequence == 1
    assert step.stage == role.value
    assert step.actor_id == principal.id
    assert step.remarks == "Checked"
    assert step.action == {"approve": "approved", "reject": "rejected", "return": "returned"}[action.value]
    assert getattr(loan, loan_workflow.REVIEW_REMARKS_FIELDS[review]) == "Checked"


def test_threshold_is_strictly_greater_than():
    loan = make_loan(amount=THRESHOLD)
    _review(loan, make_principal(Role.LOAN_OFFICER, bank="SBI"), LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE)
    assert loan.workflow_stage == "branch_review"


def test_large_loan_goes_to_gm_even_when_a_senior_role_does_the_officer_review():
    loan = make_loan(amount=Decimal("12000000"))
    gm = make_principal(Role.GENERAL_MANAGER, bank="SBI")

    _review(loan, gm, LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE)

    assert loan.workflow_stage == "gm_review"
    assert loan.approval_chain[0].stage == "general_manager"


def test_manager_approval_sets_sanction_fields():
    manager = make_principal(Role.BRANCH_MANAGER, bank="SBI")
    loan = make_loan(workflow_stage="branch_review")

    _review(loan, manager, LoanAction.MANAGER_REVIEW, ReviewAction.APPROVE, remarks=None)

    assert loan.workflow_stage == "sanctioned"
    assert loan.status == "approved"
    assert loan.sanctioned_at == NOW
    assert loan.assigned_branch_manager_id == manager.id
    assert loan.manager_remarks is None


def test_officer_review_assigns_the_officer():
    officer = make_principal(Role.LOAN_OFFICER, bank="SBI")
    loan = make_loan()
    _review(loan, officer, LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE)
    assert loan.assigned_loan_officer_id == officer.id
    assert loan.updated_at == NOW


@pytest.mark.parametrize(
    "review,source",
    [
        (LoanAction.OFFICER_REVIEW, "branch_review"),
        (LoanAction.OFFICER_REVIEW, "returned"),
        (LoanAction.OFFICER_REVIEW, "sanctioned"),
        (LoanAction.MANAGER_REVIEW, "submitted"),
        (LoanAction.MANAGER_REVIEW, "gm_review"),
        (LoanAction.GM_REVIEW, "branch_review"),
        (LoanAction.GM_REVIEW, "disbursed"),
        (LoanAction.GM_REVIEW, "rejected"),
    ],
)
def test_illegal_transitions_leave_the_loan_untouched(review, source):
    loan = make_loan(workflow_stage=source)
    before = _state(loan)

    with pytest.raises(IllegalTransition) as excinfo:
        _review(loan, make_principal(Role.ADMIN), review, ReviewAction.APPROVE)

    assert excinfo.value.details["stage"] == source
    assert _state(loan) == before


@pytest.mark.parametrize(
    "role,review",
    [
        (Role.APPLICANT, LoanAction.OFFICER_REVIEW),
        (Role.LOAN_OFFICER, LoanAction.MANAGER_REVIEW),
        (Role.LOAN_OFFICER, LoanAction.GM_REVIEW),
        (Role.BRANCH_MANAGER, LoanAction.GM_REVIEW),
    ],
)
def test_reviews_require_a_sufficient_role(role, review):
    loan = make_loan(workflow_stage="gm_review")
    before = _state(loan)

    with pytest.raises(Forbidden) as excinfo:
        _review(loan, make_principal(role, bank="SBI"), review, ReviewAction.APPROVE)

    assert excinfo.value.code == "forbidden"
    assert _state(loan) == before


@pytest.mark.parametrize(
    "role,review,source",
    [
        (Role.LOAN_OFFICER, LoanAction.OFFICER_REVIEW, "submitted"),
        (Role.BRANCH_MANAGER, LoanAction.MANAGER_REVIEW, "branch_review"),
        (Role.GENERAL_MANAGER, LoanAction.GM_REVIEW, "gm_review"),
    ],
)
def test_staff_cannot_act_on_another_banks_loan(role, review, source):
    loan = make_loan(workflow_stage=source, bank_name="HDFC")
    before = _state(loan)

    with pytest.raises(Forbidden) as excinfo:
        _review(loan, make_principal(role, bank="SBI"), review, ReviewAction.APPROVE)

    assert excinfo.value.code == "bank_mismatch"
    assert excinfo.value.message == "This loan belongs to a different bank."
    assert _state(loan) == before


@pytest.mark.parametrize("role", [Role.BRANCH_MANAGER, Role.GENERAL_MANAGER])
def test_senior_staff_cannot_do_officer_review_for_another_bank(role):
    loan = make_loan(bank_name="ICICI")
    before = _state(loan)

    with pytest.raises(Forbidden) as excinfo:
        _review(loan, make_principal(role, bank="SBI"), LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE)

    assert excinfo.value.code == "bank_mismatch"
    assert _state(loan) == before


@pytest.mark.parametrize("role", [Role.LOAN_OFFICER, Role.BRANCH_MANAGER, Role.GENERAL_MANAGER])
def test_staff_cannot_disburse_another_banks_loan(role):
    loan = make_loan(workflow_stage="sanctioned", status="approved", bank_name="HDFC")
    before = _state(loan)

    with pytest.raises(Forbidden) as excinfo:
        loan_workflow.apply_disbursement(
            loan, make_principal(role, bank="SBI"), now=NOW, disbursement_account="HDFC0001"
        )

    assert excinfo.value.code == "bank_mismatch"
    assert _state(loan) == before
    assert loan.emi_schedule == []
    assert loan.disbursement_date is None
    assert loan.disbursement_account is None


def test_admin_and_unaffiliated_staff_are_not_bank_restricted():
    loan = make_loan(bank_name="HDFC")
    _review(loan, make_principal(Role.ADMIN, bank="SBI"), LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE)
    assert loan.workflow_stage == "branch_review"

    loan = make_loan(bank_name="HDFC")
    _review(loan, make_principal(Role.LOAN_OFFICER, bank=None), LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE)
    assert loan.workflow_stage == "branch_review"


@pytest.mark.parametrize("action", [ReviewAction.REJECT, ReviewAction.RETURN])
@pytest.mark.parametrize("remarks", [None, "", "   "])
def test_reject_and_return_require_remarks(action, remarks):
    loan = make_loan()
    before = _state(loan)

    with pytest.raises(LoanValidationError):
        _review(loan, make_principal(Role.LOAN_OFFICER, bank="SBI"), LoanAction.OFFICER_REVIEW, action, remarks=remarks)

    assert _state(loan) == before


def test_rejection_reason_defaults_to_role_label_when_remarks_optional():
    loan = make_loan(workflow_stage="branch_review")
    _review(
        loan,
        make_principal(Role.BRANCH_MANAGER, bank="SBI"),
        LoanAction.MANAGER_REVIEW,
        ReviewAction.REJECT,
        remarks=None,
        require_remarks=False,
    )
    assert loan.status == "rejected"
    assert loan.rejection_reason == "Rejected by Branch Manager"


def test_rejection_reason_uses_remarks():
    loan = make_loan()
    _review(
        loan,
        make_principal(Role.LOAN_OFFICER, bank="SBI"),
        LoanAction.OFFICER_REVIEW,
        ReviewAction.REJECT,
        remarks="  Income proof missing  ",
    )
    assert loan.rejection_reason == "Income proof missing"
    assert loan.approval_chain[0].remarks == "Income proof missing"


def test_stale_version_is_a_conflict():
    loan = make_loan(version=3)
    before = _state(loan)

    with pytest.raises(Conflict) as excinfo:
        _review(
            loan,
            make_principal(Role.LOAN_OFFICER, bank="SBI"),
            LoanAction.OFFICER_REVIEW,
            ReviewAction.APPROVE,
            expected_version=2,
        )

    assert excinfo.value.details == {"expected_version": 2, "current_version": 3}
    assert _state(loan) == before


def test_matching_version_is_accepted():
    loan = make_loan(version=3)
    _review(
        loan,
        make_principal(Role.LOAN_OFFICER, bank="SBI"),
        LoanAction.OFFICER_REVIEW,
        ReviewAction.APPROVE,
        expected_version=3,
    )
    assert loan.workflow_stage == "branch_review"


def test_role_is_checked_before_bank():
    loan = make_loan(bank_name="HDFC")
    with pytest.raises(Forbidden) as excinfo:
        _review(loan, make_principal(Role.APPLICANT), LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE)
    assert excinfo.value.code == "forbidden"


def test_bank_is_checked_before_version():
    loan = make_loan(bank_name="HDFC")
    with pytest.raises(Forbidden):
        _review(
            loan,
            make_principal(Role.LOAN_OFFICER, bank="SBI"),
            LoanAction.OFFICER_REVIEW,
            ReviewAction.APPROVE,
            expected_version=9,
        )


def test_version_is_checked_before_stage():
    loan = make_loan(workflow_stage="disbursed")
    with pytest.raises(Conflict):
        _review(
            loan,
            make_principal(Role.LOAN_OFFICER, bank="SBI"),
            LoanAction.OFFICER_REVIEW,
            ReviewAction.APPROVE,
            expected_version=9,
        )


def test_full_path_builds_an_ordered_chain():
    loan = make_loan(
        amount=Decimal("12000000"),
        emi_amount=compute_emi(Decimal("12000000"), Decimal("13.5"), 24),
    )
    officer = make_principal(Role.LOAN_OFFICER, bank="SBI")
    manager = make_principal(Role.BRANCH_MANAGER, bank="SBI")
    gm = make_principal(Role.GENERAL_MANAGER, bank="SBI")

    _review(loan, officer, LoanAction.OFFICER_REVIEW, ReviewAction.APPROVE)
    loan_workflow.apply_note(loan, officer, "Site visit booked", now=NOW)
    _review(loan, gm, LoanAction.GM_REVIEW, ReviewAction.RETURN, remarks="Need valuation")
    _review(loan, manager, LoanAction.MANAGER_REVIEW, ReviewAction.APPROVE)
    loan_workflow.apply_note(loan, manager, "Valuation report attached", now=NOW)
    _review(loan, gm, LoanAction.GM_REVIEW, ReviewAction.APPROVE)
    loan_workflow.apply_disbursement(loan, officer, now=NOW)
    loan_workflow.apply_note(loan, officer, "Welcome kit sent", now=NOW)

    assert loan.workflow_stage == "disbursed"
    assert [step.sequence for step in loan.approval_chain] == list(range(1, 9))
    assert [step.stage for step in loan.approval_chain] == [
        "loan_officer",
        "loan_officer",
        "general_manager",
        "branch_manager",
        "branch_manager",
        "general_manager",
        "loan_officer",
        "loan_officer",
    ]
    assert [step.action for step in loan.approval_chain] == [
        "approved",
        "note",
        "returned",
        "approved",
        "note",
        "approved",
        "disbursed",
        "note",
    ]


def _sanctioned_education_loan():
    amount = Decimal("800000")
    return make_loan(
        loan_type="Education",
        amount=amount,
        term_months=60,
        interest_rate=Decimal("9.0"),
        emi_amount=compute_emi(amount, Decimal("9.0"), 60),
        processing_fee=Decimal("4000"),
        collateral_required=True,
        guarantor_required=True,
        workflow_stage="sanctioned",
        status="approved",
    )


def test_disbursement_generates_schedule_and_keeps_creation_terms():
    loan = _sanctioned_education_loan()
    loan.collateral = {"type": "Land", "estimated_value": "1500000"}
    loan.guarantor = {"name": "R. Sharma"}
    officer = make_principal(Role.LOAN_OFFICER, bank="SBI")

    installments = loan_workflow.apply_disbursement(
        loan, officer, now=NOW, disbursement_account="SBIN000123"
    )

    assert len(installments) == 60
    assert [item.installment_no for item in loan.emi_schedule] == list(range(1, 61))
    assert sum(item.principal_amount for item in loan.emi_schedule) == Decimal("800000")
    assert all(item.status == "pending" for item in loan.emi_schedule)
    assert loan.workflow_stage == "disbursed"
    assert loan.disbursement_date == NOW
    assert loan.disbursement_account == "SBIN000123"
    assert loan.collateral_required is True
    assert loan.guarantor_required is True
    assert loan.approval_chain[-1].action == "disbursed"
    assert loan.approval_chain[-1].remarks == loan_workflow.DISBURSEMENT_REMARK


def test_disbursement_requires_sanctioned_stage():
    loan = make_loan(workflow_stage="branch_review")
    with pytest.raises(IllegalTransition):
        loan_workflow.apply_disbursement(loan, make_principal(Role.LOAN_OFFICER, bank="SBI"), now=NOW)
    assert loan.emi_schedule == []


def test_disbursement_refuses_an_existing_schedule():
    loan = _sanctioned_education_loan()
    loan.emi_schedule.append(
        LoanEmiInstallment(
            installment_no=1,
            due_date=NOW.date(),
            principal_amount=Decimal("1"),
            interest_amount=Decimal("0"),
            total_amount=Decimal("1"),
            status="pending",
        )
    )
    with pytest.raises(IllegalTransition):
        loan_workflow.apply_disbursement(loan, make_principal(Role.ADMIN), now=NOW)
    assert loan.workflow_stage == "sanctioned"
    assert len(loan.emi_schedule) == 1


def test_applicant_cannot_disburse():
    loan = _sanctioned_education_loan()
    with pytest.raises(Forbidden):
        loan_workflow.apply_disbursement(loan, make_principal(Role.APPLICANT), now=NOW)


def test_resubmission_resets_to_submitted_and_appends_one_entry():
    applicant = make_principal(Role.APPLICANT)
    earlier = [
        _step(1, "loan_officer", "approved", "Looks fine"),
        _step(2, "branch_manager", "returned", "Add income proof"),
    ]
    loan = make_loan(
        applicant_id=applicant.id,
        workflow_stage="under_review",
        approval_chain=earlier,
    )
    _review(loan, make_principal(Role.LOAN_OFFICER, bank="SBI"), LoanAction.OFFICER_REVIEW, ReviewAction.RETURN, remarks="Upload payslips")
    assert loan.workflow_stage == "returned"
    snapshot = [(step.sequence, step.action, step.remarks) for step in loan.approval_chain]

    changes = loan_workflow.apply_resubmission(
        loan,
        applicant,
        LoanResubmitRequest(purpose="Renovation, revised", documents={"income_proof": True}),
        now=NOW,
    )

    assert loan.workflow_stage == "submitted"
    assert loan.status == "pending"
    assert loan.submitted_at == NOW
    assert loan.purpose == "Renovation, revised"
    assert loan.documents["income_proof"] is True
    assert set(changes) == {"purpose", "documents"}
    assert len(loan.approval_chain) == 4
    assert [(step.sequence, step.action, step.remarks) for step in loan.approval_chain[:3]] == snapshot
    last = loan.approval_chain[-1]
    assert (last.sequence, last.stage, last.action) == (4, "applicant", "resubmitted")
    assert last.remarks == loan_workflow.DEFAULT_RESUBMIT_REMARK


def test_resubmission_is_owner_only():
    loan = make_loan(workflow_stage="returned")
    before = _state(loan)
    with pytest.raises(Forbidden):
        loan_workflow.apply_resubmission(
            loan, make_principal(Role.APPLICANT), LoanResubmitRequest(), now=NOW
        )
    assert _state(loan) == before


def test_resubmission_requires_returned_stage():
    applicant = make_principal(Role.APPLICANT)
    loan = make_loan(applicant_id=applicant.id, workflow_stage="branch_review")
    with pytest.raises(IllegalTransition):
        loan_workflow.apply_resubmission(loan, applicant, LoanResubmitRequest(purpose="x"), now=NOW)
    assert loan.purpose == "Home renovation"


def test_staff_cannot_resubmit():
    loan = make_loan(workflow_stage="returned")
    with pytest.raises(Forbidden):
        loan_workflow.apply_resubmission(
            loan, make_principal(Role.ADMIN), LoanResubmitRequest(), now=NOW
        )


def test_note_appends_without_changing_stage():
    loan = make_loan(workflow_stage="branch_review")
    manager = make_principal(Role.BRANCH_MANAGER, bank="SBI", full_name="Asha Rao")

    step = loan_workflow.apply_note(loan, manager, " Called the applicant ", now=NOW)

    assert loan.workflow_stage == "branch_review"
    assert step.action == "note"
    assert step.remarks == "Called the applicant"
    assert step.officer_name == "Asha Rao"
    assert loan.approval_chain == [step]


def test_empty_note_is_rejected():
    loan = make_loan()
    with pytest.raises(LoanValidationError):
        loan_workflow.apply_note(loan, make_principal(Role.LOAN_OFFICER, bank="SBI"), "  ", now=NOW)
    assert loan.approval_chain == []


def test_note_respects_bank_scope():
    loan = make_loan(bank_name="ICICI")
    with pytest.raises(Forbidden):
        loan_workflow.apply_note(loan, make_principal(Role.LOAN_OFFICER, bank="SBI"), "hello", now=NOW)


def test_resubmission_keeps_education_security_flags():
    applicant = make_principal(Role.APPLICANT)
    amount = Decimal("500000")
    loan = make_loan(
        applicant_id=applicant.id,
        loan_type="Education",
        amount=amount,
        term_months=60,
        interest_rate=Decimal("9.0"),
        emi_amount=compute_emi(amount, Decimal("9.0"), 60),
        collateral_required=False,
        guarantor_required=True,
        workflow_stage="returned",
        education_details={"institution_name": "IIT Madras", "course_name": "M.Tech"},
    )

    changes = loan_workflow.apply_resubmission(
        loan,
        applicant,
        LoanResubmitRequest(
            collateral={"type": "FD/NSC", "estimated_value": "600000"},
            guarantor={"name": "K. Iyer", "relationship": "Father"},
        ),
        now=NOW,
    )

    assert set(changes) == {"collateral", "guarantor"}
    assert loan.collateral["type"] == "FD/NSC"
    assert loan.guarantor["name"] == "K. Iyer"
    assert (loan.collateral_required, loan.guarantor_required) == (False, True)
    assert loan.workflow_stage == "submitted"
