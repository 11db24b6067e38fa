import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class LoanEmiInstallment(Base):
    __tablename__ = "loan_emi_installments"
    __table_args__ = (
        UniqueConstraint(
            "loan_application_id", "installment_no", name="uq_loan_emi_installment_no"
        ),
        CheckConstraint("installment_no >= 1", name="ck_loan_emi_installment_no_positive"),
        CheckConstraint("principal_amount >= 0", name="ck_loan_emi_principal_nonneg"),
        CheckConstraint("interest_amount >= 0", name="ck_loan_emi_interest_nonneg"),
        CheckConstraint(
            "status IN ('pending', 'paid', 'overdue')",
            name="ck_loan_emi_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    installment_no = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    principal_amount = Column(Numeric(14, 2), nullable=False)
    interest_amount = Column(Numeric(14, 2), nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    paid_date = Column(Date, nullable=True)

    loan_application = relationship("LoanApplication", back_populates="emi_schedule")
