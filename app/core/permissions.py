from enum import Enum


class Role(str, Enum):
    APPLICANT = "applicant"
    LOAN_OFFICER = "loan_officer"
    BRANCH_MANAGER = "branch_manager"
    GENERAL_MANAGER = "general_manager"
    ADMIN = "admin"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "user":
                return cls.APPLICANT
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def is_staff(self) -> bool:
        return self is not Role.APPLICANT


class LoanAction(str, Enum):
    SUBMIT = "submit"
    RESUBMIT = "resubmit"
    VIEW = "view"
    LIST = "list"
    STATS = "stats"
    OFFICER_REVIEW = "officer_review"
    MANAGER_REVIEW = "manager_review"
    GM_REVIEW = "gm_review"
    DISBURSE = "disburse"
    ADD_NOTE = "add_note"
    DELETE = "delete"


_READ_ACTIONS = frozenset({LoanAction.VIEW, LoanAction.LIST, LoanAction.STATS})
_OFFICER_ACTIONS = _READ_ACTIONS | {
    LoanAction.OFFICER_REVIEW,
    LoanAction.DISBURSE,
    LoanAction.ADD_NOTE,
}
_MANAGER_ACTIONS = _OFFICER_ACTIONS | {LoanAction.MANAGER_REVIEW}
_GM_ACTIONS = _MANAGER_ACTIONS | {LoanAction.GM_REVIEW}

ROLE_ACTIONS: dict[Role, frozenset[LoanAction]] = {
    Role.APPLICANT: _READ_ACTIONS | {LoanAction.SUBMIT, LoanAction.RESUBMIT},
    Role.LOAN_OFFICER: _OFFICER_ACTIONS,
    Role.BRANCH_MANAGER: _MANAGER_ACTIONS,
    Role.GENERAL_MANAGER: _GM_ACTIONS,
    Role.ADMIN: _GM_ACTIONS | {LoanAction.DELETE},
}

ROLE_LABELS: dict[Role, str] = {
    Role.APPLICANT: "Applicant",
    Role.LOAN_OFFICER: "Loan Officer",
    Role.BRANCH_MANAGER: "Branch Manager",
    Role.GENERAL_MANAGER: "General Manager",
    Role.ADMIN: "Administrator",
}


def is_allowed(role: Role, action: LoanAction) -> bool:
    return action in ROLE_ACTIONS.get(role, frozenset())
