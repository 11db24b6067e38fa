from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LoanType(str, Enum):
    EDUCATION = "Education"
    HOME = "Home"
    PERSONAL = "Personal"
    BUSINESS = "Business"
    VEHICLE = "Vehicle"
    GOLD = "Gold"


class BankName(str, Enum):
    SBI = "SBI"
    HDFC = "HDFC"
    ICICI = "ICICI"
    AXIS = "Axis Bank"
    PNB = "PNB"
    KOTAK = "Kotak Mahindra"
    BANK_OF_BARODA = "Bank of Baroda"
    CANARA = "Canara Bank"
    UNION = "Union Bank"
    YES = "Yes Bank"


class WorkflowStage(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    BRANCH_REVIEW = "branch_review"
    GM_REVIEW = "gm_review"
    SANCTIONED = "sanctioned"
    DISBURSED = "disbursed"
    REJECTED = "rejected"
    RETURNED = "returned"
    CLOSED = "closed"


IN_PROGRESS_STAGES = frozenset(
    {
        WorkflowStage.SUBMITTED,
        WorkflowStage.UNDER_REVIEW,
        WorkflowStage.BRANCH_REVIEW,
        WorkflowStage.GM_REVIEW,
        WorkflowStage.RETURNED,
    }
)


class LoanStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"

    @classmethod
    def _missing_(cls, value):
        aliases = {"approved": cls.APPROVE, "rejected": cls.REJECT, "returned": cls.RETURN}
        if isinstance(value, str):
            return aliases.get(value.strip().lower()) or cls._value2member_map_.get(value.strip().lower())
        return None


class ApprovalAction(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"
    RESUBMITTED = "resubmitted"
    DISBURSED = "disbursed"
    NOTE = "note"


class CollateralType(str, Enum):
    LAND = "Land"
    RESIDENTIAL_PROPERTY = "Residential Property"
    COMMERCIAL_PROPERTY = "Commercial Property"
    FD_NSC = "FD/NSC"
    GOLD = "Gold"
    VEHICLE = "Vehicle"
    INSURANCE_POLICY = "Insurance Policy"
    OTHER = "Other"


class CountryOfStudy(str, Enum):
    INDIA = "India"
    ABROAD = "Abroad"


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class EducationDetails(BaseModel):
    institution_name: str = Field(min_length=1, max_length=255)
    course_name: str = Field(min_length=1, max_length=255)
    course_duration: str | None = Field(default=None, max_length=50)
    country_of_study: CountryOfStudy = CountryOfStudy.INDIA
    admission_confirmed: bool = False
    fees_per_year: Decimal | None = Field(default=None, ge=0)


class PropertyDetails(BaseModel):
    property_type: str = Field(min_length=1, max_length=100)
    property_address: str = Field(min_length=1, max_length=500)
    property_value: Decimal | None = Field(default=None, ge=0)
    builder_name: str | None = Field(default=None, max_length=255)


class CollateralDetails(BaseModel):
    type: CollateralType
    description: str | None = Field(default=None, max_length=1000)
    estimated_value: Decimal | None = Field(default=None, ge=0)
    owner_name: str | None = Field(default=None, max_length=255)
    document_submitted: bool = False


class GuarantorDetails(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    relationship: str | None = Field(default=None, max_length=100)
    phone: str | None = Field(default=None, max_length=20)
    aadhaar: str | None = Field(default=None, max_length=20)
    pan: str | None = Field(default=None, max_length=20)
    monthly_income: Decimal | None = Field(default=None, ge=0)
    address: str | None = Field(default=None, max_length=500)


class DocumentChecklist(BaseModel):
    aadhaar_submitted: bool = False
    pan_submitted: bool = False
    photograph: bool = False
    income_proof: bool = False
    bank_statement: bool = False
    admission_letter: bool = False
    property_papers: bool = False
    it_returns: bool = False
    collateral_docs: bool = False


class LoanApplicationCreate(BaseModel):
    loan_type: LoanType
    bank_name: BankName = BankName.SBI
    bank_branch: str | None = Field(default=None, max_length=255)
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    term_months: int = Field(ge=1)
    purpose: str | None = Field(default=None, max_length=2000)
    education_details: EducationDetails | None = None
    property_details: PropertyDetails | None = None
    collateral: CollateralDetails | None = None
    guarantor: GuarantorDetails | None = None
    documents: DocumentChecklist = Field(default_factory=DocumentChecklist)


class LoanResubmitRequest(BaseModel):
    purpose: str | None = Field(default=None, max_length=2000)
    documents: DocumentChecklist | None = None
    collateral: CollateralDetails | None = None
    guarantor: GuarantorDetails | None = None
    education_details: EducationDetails | None = None
    remarks: str | None = Field(default=None, max_length=2000)
    expected_version: int | None = Field(default=None, ge=1)


class LoanReviewRequest(BaseModel):
    action: ReviewAction
    remarks: str | None = Field(default=None, max_length=2000)
    expected_version: int | None = Field(default=None, ge=1)


class LoanDisburseRequest(BaseModel):
    disbursement_account: str | None = Field(default=None, max_length=64)
    expected_version: int | None = Field(default=None, ge=1)


class LoanNoteRequest(BaseModel):
    note: str = Field(max_length=2000)
    expected_version: int | None = Field(default=None, ge=1)


class LoanScheduleEntry(BaseModel):
    installment_no: int
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    remaining_balance: Decimal


class ApprovalStepDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    stage: str
    actor_id: UUID | None = None
    officer_name: str
    action: ApprovalAction
    remarks: str | None = None
    action_date: datetime


class EmiInstallmentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    installment_no: int
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    status: InstallmentStatus
    paid_date: date | None = None


class LoanApplicationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_number: str
    applicant_id: UUID
    loan_type: LoanType
    bank_name: BankName
    bank_branch: str | None = None
    amount: Decimal
    term_months: int
    purpose: str | None = None
    interest_rate: Decimal
    emi_amount: Decimal
    processing_fee: Decimal
    collateral_required: bool
    guarantor_required: bool
    collateral: CollateralDetails | None = None
    guarantor: GuarantorDetails | None = None
    education_details: EducationDetails | None = None
    property_details: PropertyDetails | None = None
    documents: DocumentChecklist = Field(default_factory=DocumentChecklist)
    workflow_stage: WorkflowStage
    status: LoanStatus
    officer_remarks: str | None = None
    manager_remarks: str | None = None
    gm_remarks: str | None = None
    rejection_reason: str | None = None
    assigned_loan_officer_id: UUID | None = None
    assigned_branch_manager_id: UUID | None = None
    disbursement_account: str | None = None
    submitted_at: datetime | None = None
    sanctioned_at: datetime | None = None
    disbursement_date: datetime | None = None
    closed_at: datetime | None = None
    approval_chain: list[ApprovalStepDTO] = Field(default_factory=list)
    emi_schedule: list[EmiInstallmentDTO] = Field(default_factory=list)
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LoanApplicationListResponse(BaseModel):
    items: list[LoanApplicationDTO]
    total: int


class LoanStatsSummary(BaseModel):
    total: int = 0
    pending: int = 0
    sanctioned: int = 0
    rejected: int = 0
    disbursed: int = 0
    awaiting_action: int = 0
    total_amount: Decimal = Decimal("0")
