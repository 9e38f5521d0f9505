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
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.db.base import Base


LOAN_REQUEST_STATUSES = ("received", "under_review", "contacted", "closed", "rejected")
LOAN_REQUEST_PRIORITIES = ("low", "normal", "high")
OPEN_LOAN_REQUEST_STATUSES = ("received", "under_review", "contacted")


class LoanRequest(Base):
    __tablename__ = "loan_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('received', 'under_review', 'contacted', 'closed', 'rejected')",
            name="ck_loan_requests_status",
        ),
        CheckConstraint(
            "priority IN ('low', 'normal', 'high')",
            name="ck_loan_requests_priority",
        ),
        CheckConstraint(
            "loan_amount_needed <= property_value",
            name="ck_loan_requests_amount_within_value",
        ),
        Index("ix_loan_requests_status_created", "status", "created_at"),
        Index("ix_loan_requests_assignee_status", "assignee_id", "status"),
        Index("ix_loan_requests_sla_due_at", "sla_due_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Requester snapshot taken at submission.
    user_name = Column(String(255), nullable=True)
    user_email = Column(String(255), nullable=True)
    user_phone = Column(String(32), nullable=True)
    user_location = Column(String(120), nullable=True)
    user_preferred_categories = Column(JSONB, nullable=False, server_default="[]", default=list)

    loan_type = Column(String(50), nullable=False)
    property_category = Column(String(50), nullable=False)
    property_value = Column(Numeric(14, 2), nullable=False)
    loan_amount_needed = Column(Numeric(14, 2), nullable=False)
    employment_type = Column(String(50), nullable=False)
    monthly_income = Column(Numeric(14, 2), nullable=False)
    preferred_tenure = Column(String(20), nullable=False)
    existing_loans = Column(Boolean, nullable=False, default=False, server_default="false")
    existing_loan_details = Column(Text, nullable=True)
    preferred_contact_time = Column(String(50), nullable=False)
    additional_notes = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default="received", server_default="received")
    assignee_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    version = Column(Integer, nullable=False, default=1, server_default="1")
    priority = Column(String(10), nullable=False, default="normal", server_default="normal")
    sla_due_at = Column(DateTime(timezone=True), nullable=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    is_escalated = Column(Boolean, nullable=False, default=False, server_default="false")
    escalation_reason = Column(Text, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class LoanRequestComment(Base):
    __tablename__ = "loan_request_comments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_request_id = Column(
        UUID(as_uuid=True), ForeignKey("loan_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    comment = Column(Text, nullable=False)
    is_public = Column(Boolean, nullable=False, default=False, server_default="false")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LoanRequestAssignment(Base):
    __tablename__ = "loan_request_assignments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_request_id = Column(
        UUID(as_uuid=True), ForeignKey("loan_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_from = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_to = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LoanRequestAuditLog(Base):
    __tablename__ = "loan_request_audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_request_id = Column(
        UUID(as_uuid=True), ForeignKey("loan_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(50), nullable=False)
    old_value = Column(JSONB, nullable=True)
    new_value = Column(JSONB, nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
