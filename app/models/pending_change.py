import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import declared_attr

from app.db.base import Base


PENDING_CHANGE_STATUSES = (
    "draft",
    "pending",
    "needs_revision",
    "approved",
    "rejected",
)

_STATUS_CHECK = "status IN ('draft', 'pending', 'needs_revision', 'approved', 'rejected')"
_LIVE_PENDING = text("status = 'pending' AND is_draft = false")


class PendingChangeMixin:
    """Columns shared by every moderated-change table."""

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    proposed_payload = Column(JSONB, nullable=False, default=dict)
    diff_summary = Column(JSONB, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    is_draft = Column(Boolean, nullable=False, default=False, server_default="false")
    reason = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @declared_attr
    def proposer_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    @declared_attr
    def reviewed_by_admin_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @property
    def display_title(self) -> str | None:
        payload = self.proposed_payload or {}
        title = payload.get("title")
        return title if isinstance(title, str) and title.strip() else None


class PropertyPendingChange(PendingChangeMixin, Base):
    __tablename__ = "property_pending_changes"
    __table_args__ = (
        CheckConstraint(_STATUS_CHECK, name="ck_property_pending_changes_status"),
        Index("ix_property_pending_changes_status_created", "status", "created_at"),
        Index("ix_property_pending_changes_proposer", "proposer_id"),
        Index(
            "uq_property_pending_changes_live",
            "property_id",
            "proposer_id",
            unique=True,
            postgresql_where=_LIVE_PENDING,
        ),
    )

    target_id = Column(
        "property_id",
        UUID(as_uuid=True),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=True,
    )


class BannerPendingChange(PendingChangeMixin, Base):
    __tablename__ = "banner_pending_changes"
    __table_args__ = (
        CheckConstraint(_STATUS_CHECK, name="ck_banner_pending_changes_status"),
        Index("ix_banner_pending_changes_status_created", "status", "created_at"),
        Index("ix_banner_pending_changes_proposer", "proposer_id"),
        Index(
            "uq_banner_pending_changes_live",
            "banner_id",
            "proposer_id",
            unique=True,
            postgresql_where=_LIVE_PENDING,
        ),
    )

    target_id = Column(
        "banner_id",
        UUID(as_uuid=True),
        ForeignKey("banners.id", ondelete="CASCADE"),
        nullable=True,
    )
