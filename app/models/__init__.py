from app.models.audit_log import AuditLog
from app.models.loan_application import LoanApplication
from app.models.loan_approval_step import LoanApprovalStep
from app.models.loan_emi_installment import LoanEmiInstallment
from app.models.user import User

__all__ = [
    "AuditLog",
    "LoanApplication",
    "LoanApprovalStep",
    "LoanEmiInstallment",
    "User",
]
