"""Creation-time loan terms.

Everything here is derived once from ``{loan type, amount, term}`` when an
application is submitted and is never recomputed afterwards. The functions are
pure so they can be exercised without a database.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID, uuid4

from app.core.settings import settings
from app.models.loan_application import LoanApplication
from app.schemas.loan import LoanApplicationCreate, LoanStatus, LoanType, WorkflowStage
from app.services.loan_errors import LoanValidationError

UNIT = Decimal("1")

INTEREST_RATES: dict[LoanType, Decimal] = {
    LoanType.EDUCATION: Decimal("9.0"),
    LoanType.HOME: Decimal("8.75"),
    LoanType.PERSONAL: Decimal("13.5"),
    LoanType.BUSINESS: Decimal("14.0"),
    LoanType.VEHICLE: Decimal("10.5"),
    LoanType.GOLD: Decimal("9.5"),
}

EDUCATION_NO_SECURITY_LIMIT = Decimal("400000")
EDUCATION_GUARANTOR_ONLY_LIMIT = Decimal("750000")
PERSONAL_COLLATERAL_LIMIT = Decimal("1500000")
BUSINESS_COLLATERAL_LIMIT = Decimal("1000000")


@dataclass(frozen=True)
class SecurityRequirements:
    collateral_required: bool
    guarantor_required: bool


@dataclass(frozen=True)
class LoanTerms:
    interest_rate: Decimal
    emi_amount: Decimal
    processing_fee: Decimal
    collateral_required: bool
    guarantor_required: bool


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_units(value: Decimal) -> Decimal:
    return value.quantize(UNIT, rounding=ROUND_HALF_UP)


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    return _as_decimal(annual_rate_percent) / Decimal("1200")


def interest_rate_for(loan_type: LoanType) -> Decimal:
    return INTEREST_RATES.get(LoanType(loan_type), settings.default_interest_rate)


def compute_emi(principal, annual_rate_percent, term_months: int) -> Decimal:
    """Standard amortization payment ``P*r*(1+r)^n / ((1+r)^n - 1)``, rounded to whole units."""
    if term_months <= 0:
        raise LoanValidationError("term_months must be >= 1", details={"term_months": term_months})
    principal = _as_decimal(principal)
    rate = monthly_rate(annual_rate_percent)
    if rate == 0:
        return round_units(principal / Decimal(term_months))
    factor = (Decimal("1") + rate) ** term_months
    return round_units(principal * rate * factor / (factor - Decimal("1")))


def compute_processing_fee(amount) -> Decimal:
    return round_units(_as_decimal(amount) * settings.processing_fee_rate)


def security_requirements(loan_type: LoanType, amount) -> SecurityRequirements:
    amount = _as_decimal(amount)
    loan_type = LoanType(loan_type)
    if loan_type is LoanType.EDUCATION:
        if amount <= EDUCATION_NO_SECURITY_LIMIT:
            return SecurityRequirements(collateral_required=False, guarantor_required=False)
        if amount <= EDUCATION_GUARANTOR_ONLY_LIMIT:
            return SecurityRequirements(collateral_required=False, guarantor_required=True)
        return SecurityRequirements(collateral_required=True, guarantor_required=True)
    if loan_type is LoanType.HOME:
        return SecurityRequirements(collateral_required=True, guarantor_required=False)
    if loan_type is LoanType.PERSONAL:
        return SecurityRequirements(amount > PERSONAL_COLLATERAL_LIMIT, False)
    if loan_type is LoanType.BUSINESS:
        return SecurityRequirements(amount > BUSINESS_COLLATERAL_LIMIT, False)
    # Vehicle and gold loans are secured by the asset itself.
    return SecurityRequirements(collateral_required=False, guarantor_required=False)


def derive_terms(loan_type: LoanType, amount, term_months: int) -> LoanTerms:
    rate = interest_rate_for(loan_type)
    security = security_requirements(loan_type, amount)
    return LoanTerms(
        interest_rate=rate,
        emi_amount=compute_emi(amount, rate, term_months),
        processing_fee=compute_processing_fee(amount),
        collateral_required=security.collateral_required,
        guarantor_required=security.guarantor_required,
    )


def validate_draft(draft: LoanApplicationCreate) -> None:
    if draft.amount <= 0:
        raise LoanValidationError("Loan amount must be positive.", details={"amount": str(draft.amount)})
    if not settings.min_term_months <= draft.term_months <= settings.max_term_months:
        raise LoanValidationError(
            f"term_months must be between {settings.min_term_months} and {settings.max_term_months}.",
            details={"term_months": draft.term_months},
        )
    if draft.loan_type is LoanType.EDUCATION and draft.education_details is None:
        raise LoanValidationError(
            "education_details are required for Education loans.",
            details={"field": "education_details"},
        )
    if draft.loan_type is LoanType.HOME and draft.property_details is None:
        raise LoanValidationError(
            "property_details are required for Home loans.",
            details={"field": "property_details"},
        )


def _dump(model) -> dict | None:
    return model.model_dump(mode="json") if model is not None else None


def build_application(
    draft: LoanApplicationCreate,
    *,
    applicant_id: UUID,
    application_number: str,
    now: datetime,
) -> LoanApplication:
    """Construct a ``submitted`` application with every derived term filled in."""
    validate_draft(draft)
    terms = derive_terms(draft.loan_type, draft.amount, draft.term_months)
    return LoanApplication(
        id=uuid4(),
        application_number=application_number,
        applicant_id=applicant_id,
        loan_type=draft.loan_type.value,
        bank_name=draft.bank_name.value,
        bank_branch=draft.bank_branch,
        amount=draft.amount,
        term_months=draft.term_months,
        purpose=draft.purpose,
        interest_rate=terms.interest_rate,
        emi_amount=terms.emi_amount,
        processing_fee=terms.processing_fee,
        collateral_required=terms.collateral_required,
        guarantor_required=terms.guarantor_required,
        collateral=_dump(draft.collateral),
        guarantor=_dump(draft.guarantor),
        education_details=_dump(draft.education_details),
        property_details=_dump(draft.property_details),
        documents=draft.documents.model_dump(mode="json"),
        workflow_stage=WorkflowStage.SUBMITTED.value,
        status=LoanStatus.PENDING.value,
        submitted_at=now,
        version=1,
        created_at=now,
        updated_at=now,
        # Loaded-empty collections; nothing may lazy-load once the session is committed.
        approval_chain=[],
        emi_schedule=[],
    )
