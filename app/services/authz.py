from __future__ import annotations

from typing import TYPE_CHECKING

from app.core.permissions import ROLE_LABELS, LoanAction, Role, is_allowed
from app.services.loan_errors import Forbidden

if TYPE_CHECKING:
    from app.models.loan_application import LoanApplication
    from app.services.identity import Principal


def authorize(principal: Principal, action: LoanAction) -> None:
    if not is_allowed(principal.role, action):
        raise Forbidden(
            f"{ROLE_LABELS[principal.role]} is not allowed to perform {action.value}.",
            details={"role": principal.role.value, "action": action.value},
        )


def bank_scope(principal: Principal) -> str | None:
    """Bank a staff principal is restricted to, or None when unrestricted."""
    if not principal.is_staff or principal.role is Role.ADMIN:
        return None
    return principal.bank_affiliation or None


def bank_matches(principal: Principal, bank_name: str) -> bool:
    scope = bank_scope(principal)
    return scope is None or scope == bank_name


def ensure_bank_access(principal: Principal, application: LoanApplication) -> None:
    if not bank_matches(principal, application.bank_name):
        raise Forbidden(
            "This loan belongs to a different bank.",
            details={"loan_bank": application.bank_name, "officer_bank": principal.bank_affiliation},
            code="bank_mismatch",
        )


def ensure_owner(principal: Principal, application: LoanApplication) -> None:
    if application.applicant_id != principal.id:
        raise Forbidden("Access denied.", details={"loan_id": str(application.id)})


def ensure_can_view(principal: Principal, application: LoanApplication) -> None:
    authorize(principal, LoanAction.VIEW)
    if principal.is_staff:
        ensure_bank_access(principal, application)
    else:
        ensure_owner(principal, application)
