from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


@dataclass(eq=False)
class LoanWorkflowError(Exception):
    """Base for every error the loan workflow surfaces to callers."""

    message: str
    details: dict[str, Any] = field(default_factory=dict)
    code: str = "loan_workflow_error"
    status_code: ClassVar[int] = 400

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class LoanValidationError(LoanWorkflowError):
    code: str = "validation_error"


@dataclass(eq=False)
class IllegalTransition(LoanWorkflowError):
    code: str = "illegal_transition"


@dataclass(eq=False)
class Unauthenticated(LoanWorkflowError):
    code: str = "unauthenticated"
    status_code: ClassVar[int] = 401


@dataclass(eq=False)
class PrincipalNotFound(LoanWorkflowError):
    code: str = "principal_not_found"
    status_code: ClassVar[int] = 401


@dataclass(eq=False)
class Forbidden(LoanWorkflowError):
    code: str = "forbidden"
    status_code: ClassVar[int] = 403


@dataclass(eq=False)
class LoanNotFound(LoanWorkflowError):
    code: str = "not_found"
    status_code: ClassVar[int] = 404


@dataclass(eq=False)
class Conflict(LoanWorkflowError):
    code: str = "conflict"
    status_code: ClassVar[int] = 409
