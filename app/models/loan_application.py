import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Sequence,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.db.base import Base

APPLICATION_NUMBER_SEQUENCE = Sequence("loan_application_number_seq", start=1)


class LoanApplication(Base):
    __tablename__ = "loan_applications"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_loan_app_amount_positive"),
        CheckConstraint("term_months >= 1", name="ck_loan_app_term_positive"),
        CheckConstraint("interest_rate >= 0", name="ck_loan_app_rate_nonneg"),
        CheckConstraint("emi_amount >= 0", name="ck_loan_app_emi_nonneg"),
        CheckConstraint("processing_fee >= 0", name="ck_loan_app_fee_nonneg"),
        CheckConstraint("version >= 1", name="ck_loan_app_version_positive"),
        CheckConstraint(
            "loan_type IN ('Education', 'Home', 'Personal', 'Business', 'Vehicle', 'Gold')",
            name="ck_loan_app_loan_type",
        ),
        CheckConstraint(
            "workflow_stage IN ('draft', 'submitted', 'under_review', 'branch_review', 'gm_review', "
            "'sanctioned', 'disbursed', 'rejected', 'returned', 'closed')",
            name="ck_loan_app_workflow_stage",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_loan_app_status",
        ),
        Index("ix_loan_applications_bank_stage", "bank_name", "workflow_stage"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_number = Column(String(32), nullable=False, unique=True)
    applicant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    loan_type = Column(String(20), nullable=False)
    bank_name = Column(String(50), nullable=False, default="SBI")
    bank_branch = Column(String(255), nullable=True)
    amount = Column(Numeric(14, 2), nullable=False)
    term_months = Column(Integer, nullable=False)
    purpose = Column(Text, nullable=True)
    interest_rate = Column(Numeric(6, 3), nullable=False)
    emi_amount = Column(Numeric(14, 2), nullable=False)
    processing_fee = Column(Numeric(14, 2), nullable=False)
    collateral_required = Column(Boolean, nullable=False, default=False)
    guarantor_required = Column(Boolean, nullable=False, default=False)
    collateral = Column(JSONB, nullable=True)
    guarantor = Column(JSONB, nullable=True)
    education_details = Column(JSONB, nullable=True)
    property_details = Column(JSONB, nullable=True)
    documents = Column(JSONB, nullable=False, default=dict)
    workflow_stage = Column(String(20), nullable=False, default="submitted", index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    officer_remarks = Column(Text, nullable=True)
    manager_remarks = Column(Text, nullable=True)
    gm_remarks = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    assigned_loan_officer_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    assigned_branch_manager_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    disbursement_account = Column(String(64), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    sanctioned_at = Column(DateTime(timezone=True), nullable=True)
    disbursement_date = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    approval_chain = relationship(
        "LoanApprovalStep",
        back_populates="loan_application",
        order_by="LoanApprovalStep.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    emi_schedule = relationship(
        "LoanEmiInstallment",
        back_populates="loan_application",
        order_by="LoanEmiInstallment.installment_no",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}
