import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class LoanApprovalStep(Base):
    """One immutable decision or note on a loan's approval chain."""

    __tablename__ = "loan_approval_steps"
    __table_args__ = (
        UniqueConstraint("loan_application_id", "sequence", name="uq_loan_approval_step_sequence"),
        CheckConstraint(
            "action IN ('pending', 'approved', 'rejected', 'returned', 'resubmitted', 'disbursed', 'note')",
            name="ck_loan_approval_step_action",
        ),
        CheckConstraint(
            "stage IN ('applicant', 'loan_officer', 'branch_manager', 'general_manager', 'admin')",
            name="ck_loan_approval_step_stage",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence = Column(Integer, nullable=False)
    stage = Column(String(30), nullable=False)
    actor_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    officer_name = Column(String(255), nullable=False)
    action = Column(String(20), nullable=False)
    remarks = Column(Text, nullable=True)
    action_date = Column(DateTime(timezone=True), nullable=False)

    loan_application = relationship("LoanApplication", back_populates="approval_chain")
