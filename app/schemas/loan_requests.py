from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LoanRequestStatus(str, Enum):
    RECEIVED = "received"
    UNDER_REVIEW = "under_review"
    CONTACTED = "contacted"
    CLOSED = "closed"
    REJECTED = "rejected"


class LoanRequestPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class LoanType(str, Enum):
    HOME = "Home Loan"
    PLOT = "Plot Loan"
    CONSTRUCTION = "Construction Loan"
    HOME_IMPROVEMENT = "Home Improvement Loan"
    BALANCE_TRANSFER = "Balance Transfer"
    TOP_UP = "Top-Up Loan"


class EmploymentType(str, Enum):
    SALARIED = "Salaried"
    SELF_EMPLOYED = "Self-Employed"
    BUSINESS_OWNER = "Business Owner"
    FREELANCER = "Freelancer"


class PreferredTenure(str, Enum):
    FIVE = "5 Years"
    TEN = "10 Years"
    FIFTEEN = "15 Years"
    TWENTY = "20 Years"
    TWENTY_FIVE = "25 Years"
    THIRTY = "30 Years"


class ContactTime(str, Enum):
    MORNING = "Morning (9–12)"
    AFTERNOON = "Afternoon (12–4)"
    EVENING = "Evening (4–7)"


class LoanRequestCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    loan_type: LoanType
    property_category: str = Field(min_length=1, max_length=50)
    property_value: Decimal = Field(gt=0)
    loan_amount_needed: Decimal = Field(gt=0)
    employment_type: EmploymentType
    monthly_income: Decimal = Field(gt=0)
    preferred_tenure: PreferredTenure
    existing_loans: bool = False
    existing_loan_details: str | None = Field(default=None, max_length=2000)
    preferred_contact_time: ContactTime
    additional_notes: str | None = Field(default=None, max_length=1000)


class LoanRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID | None = None
    user_name: str | None = None
    user_email: str | None = None
    user_phone: str | None = None
    user_location: str | None = None
    loan_type: str
    property_category: str
    property_value: Decimal
    loan_amount_needed: Decimal
    employment_type: str
    monthly_income: Decimal
    preferred_tenure: str
    existing_loans: bool
    existing_loan_details: str | None = None
    preferred_contact_time: str
    additional_notes: str | None = None
    status: LoanRequestStatus
    assignee_id: UUID | None = None
    version: int
    priority: LoanRequestPriority
    sla_due_at: datetime | None = None
    last_activity_at: datetime | None = None
    is_escalated: bool
    escalation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LoanRequestSummary(BaseModel):
    id: UUID
    user_name: str | None = None
    user_phone: str | None = None
    user_email: str | None = None
    loan_type: str
    loan_amount_needed: Decimal
    property_category: str
    status: LoanRequestStatus
    priority: LoanRequestPriority
    is_escalated: bool
    assignee_id: UUID | None = None
    assignee_name: str | None = None
    sla_due_at: datetime | None = None
    last_activity_at: datetime | None = None
    created_at: datetime | None = None


class LoanRequestListResponse(BaseModel):
    items: list[LoanRequestSummary]
    total: int


class LoanRequestCommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    loan_request_id: UUID
    author_id: UUID | None = None
    author_name: str | None = None
    comment: str
    is_public: bool
    created_at: datetime | None = None


class LoanRequestAuditEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_id: UUID | None = None
    actor_name: str | None = None
    action: str
    old_value: dict | None = None
    new_value: dict | None = None
    comment: str | None = None
    created_at: datetime | None = None


class AssigneeRead(BaseModel):
    id: UUID
    name: str | None = None
    email: str | None = None


class LoanRequestDetail(BaseModel):
    ticket: LoanRequestRead
    assignee: AssigneeRead | None = None
    comments: list[LoanRequestCommentRead]
    audit_log: list[LoanRequestAuditEntry]


class StatusChangeRequest(BaseModel):
    status: LoanRequestStatus
    comment: str | None = Field(default=None, max_length=1000)
    expected_version: int | None = Field(default=None, ge=1)


class ReassignRequest(BaseModel):
    assignee_id: UUID | None = None
    auto_assign: bool = False
    comment: str | None = Field(default=None, max_length=1000)
    expected_version: int | None = Field(default=None, ge=1)


class EscalateRequest(BaseModel):
    reason: str = Field(min_length=10, max_length=500)
    expected_version: int | None = Field(default=None, ge=1)


class CommentCreateRequest(BaseModel):
    comment: str = Field(min_length=1, max_length=1000)
    is_public: bool = False


class BulkReassignRequest(BaseModel):
    ids: list[UUID] = Field(min_length=1, max_length=100)
    assignee_id: UUID


class BulkEscalateRequest(BaseModel):
    ids: list[UUID] = Field(min_length=1, max_length=100)
    reason: str = Field(min_length=10, max_length=500)


class BulkResult(BaseModel):
    updated: int


class LoanRequestStats(BaseModel):
    total: int
    unassigned: int
    escalated: int
    overdue: int
    by_status: dict[str, int]


class FinanceEmployee(BaseModel):
    id: UUID
    name: str | None = None
    email: str | None = None
    open_tickets: int


class SlaConfigRead(BaseModel):
    hours: int
    updated_by: UUID | None = None
    updated_at: datetime | None = None


class SlaConfigUpdate(BaseModel):
    hours: int = Field(ge=1, le=168)


SortOrder = Literal["newest", "oldest", "highest", "sla"]
