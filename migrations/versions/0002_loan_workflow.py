"""Create loan applications, approval chain and EMI schedule tables"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0002_loan_workflow"
down_revision = "0001_users_and_audit"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(sa.schema.CreateSequence(sa.Sequence("loan_application_number_seq", start=1)))

    op.create_table(
        "loan_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("application_number", sa.String(length=32), nullable=False),
        sa.Column(
            "applicant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("loan_type", sa.String(length=20), nullable=False),
        sa.Column("bank_name", sa.String(length=50), nullable=False, server_default="SBI"),
        sa.Column("bank_branch", sa.String(length=255), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("term_months", sa.Integer(), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("interest_rate", sa.Numeric(6, 3), nullable=False),
        sa.Column("emi_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("processing_fee", sa.Numeric(14, 2), nullable=False),
        sa.Column("collateral_required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("guarantor_required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("collateral", postgresql.JSONB(), nullable=True),
        sa.Column("guarantor", postgresql.JSONB(), nullable=True),
        sa.Column("education_details", postgresql.JSONB(), nullable=True),
        sa.Column("property_details", postgresql.JSONB(), nullable=True),
        sa.Column("documents", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("workflow_stage", sa.String(length=20), nullable=False, server_default="submitted"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("officer_remarks", sa.Text(), nullable=True),
        sa.Column("manager_remarks", sa.Text(), nullable=True),
        sa.Column("gm_remarks", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column(
            "assigned_loan_officer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "assigned_branch_manager_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("disbursement_account", sa.String(length=64), nullable=True),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("sanctioned_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("disbursement_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("closed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
        sa.UniqueConstraint("application_number", name="uq_loan_applications_number"),
        sa.CheckConstraint("amount > 0", name="ck_loan_app_amount_positive"),
        sa.CheckConstraint("term_months >= 1", name="ck_loan_app_term_positive"),
        sa.CheckConstraint("interest_rate >= 0", name="ck_loan_app_rate_nonneg"),
        sa.CheckConstraint("emi_amount >= 0", name="ck_loan_app_emi_nonneg"),
        sa.CheckConstraint("processing_fee >= 0", name="ck_loan_app_fee_nonneg"),
        sa.CheckConstraint("version >= 1", name="ck_loan_app_version_positive"),
        sa.CheckConstraint(
            "loan_type IN ('Education', 'Home', 'Personal', 'Business', 'Vehicle', 'Gold')",
            name="ck_loan_app_loan_type",
        ),
        sa.CheckConstraint(
            "workflow_stage IN ('draft', 'submitted', 'under_review', 'branch_review', 'gm_review', "
            "'sanctioned', 'disbursed', 'rejected', 'returned', 'closed')",
            name="ck_loan_app_workflow_stage",
        ),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_loan_app_status"),
    )
    op.create_index("ix_loan_applications_applicant_id", "loan_applications", ["applicant_id"])
    op.create_index("ix_loan_applications_workflow_stage", "loan_applications", ["workflow_stage"])
    op.create_index("ix_loan_applications_status", "loan_applications", ["status"])
    op.create_index("ix_loan_applications_bank_stage", "loan_applications", ["bank_name", "workflow_stage"])

    op.create_table(
        "loan_approval_steps",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "loan_application_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("loan_applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("stage", sa.String(length=30), nullable=False),
        sa.Column(
            "actor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("officer_name", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=20), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("action_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("loan_application_id", "sequence", name="uq_loan_approval_step_sequence"),
        sa.CheckConstraint(
            "action IN ('pending', 'approved', 'rejected', 'returned', 'resubmitted', 'disbursed', 'note')",
            name="ck_loan_approval_step_action",
        ),
        sa.CheckConstraint(
            "stage IN ('applicant', 'loan_officer', 'branch_manager', 'general_manager', 'admin')",
            name="ck_loan_approval_step_stage",
        ),
    )
    op.create_index(
        "ix_loan_approval_steps_loan_application_id", "loan_approval_steps", ["loan_application_id"]
    )

    op.create_table(
        "loan_emi_installments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "loan_application_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("loan_applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("installment_no", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("principal_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("interest_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("paid_date", sa.Date(), nullable=True),
        sa.UniqueConstraint("loan_application_id", "installment_no", name="uq_loan_emi_installment_no"),
        sa.CheckConstraint("installment_no >= 1", name="ck_loan_emi_installment_no_positive"),
        sa.CheckConstraint("principal_amount >= 0", name="ck_loan_emi_principal_nonneg"),
        sa.CheckConstraint("interest_amount >= 0", name="ck_loan_emi_interest_nonneg"),
        sa.CheckConstraint("status IN ('pending', 'paid', 'overdue')", name="ck_loan_emi_status"),
    )
    op.create_index(
        "ix_loan_emi_installments_loan_application_id", "loan_emi_installments", ["loan_application_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_loan_emi_installments_loan_application_id", table_name="loan_emi_installments")
    op.drop_table("loan_emi_installments")
    op.drop_index("ix_loan_approval_steps_loan_application_id", table_name="loan_approval_steps")
    op.drop_table("loan_approval_steps")
    op.drop_index("ix_loan_applications_bank_stage", table_name="loan_applications")
    op.drop_index("ix_loan_applications_status", table_name="loan_applications")
    op.drop_index("ix_loan_applications_workflow_stage", table_name="loan_applications")
    op.drop_index("ix_loan_applications_applicant_id", table_name="loan_applications")
    op.drop_table("loan_applications")
    op.execute(sa.schema.DropSequence(sa.Sequence("loan_application_number_seq")))
