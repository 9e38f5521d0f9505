import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.db.base import Base


class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (
        Index("ix_properties_deleted_created_at", "deleted", "created_at"),
        Index("ix_properties_assigned_employee_id", "assigned_employee_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    location = Column(String(255), nullable=True)
    price = Column(Numeric(14, 2), nullable=True)
    type = Column(String(50), nullable=False, default="Featured", server_default="Featured")
    description = Column(Text, nullable=True)
    images = Column(JSONB, nullable=False, server_default="[]", default=list)
    gallery = Column(JSONB, nullable=False, server_default="[]", default=list)
    features = Column(JSONB, nullable=False, server_default="[]", default=list)
    amenities = Column(JSONB, nullable=False, server_default="[]", default=list)
    categories = Column(JSONB, nullable=False, server_default="[]", default=list)
    brochure_url = Column(String(1024), nullable=True)
    map = Column(Text, nullable=True)
    website = Column(String(1024), nullable=True)

    assigned_employee_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # Denormalised primary agent; the authoritative set lives in property_agent_assignments.
    assigned_agent_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_by_admin_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_by_employee_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    deleted = Column(Boolean, nullable=False, server_default="false", default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by_admin_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
