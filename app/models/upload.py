import uuid

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


UPLOAD_PURPOSES = ("property_image", "brochure", "profile", "banner")
UPLOAD_STATUSES = ("created", "uploaded", "referenced")


class Upload(Base):
    __tablename__ = "uploads"
    __table_args__ = (
        CheckConstraint(
            "purpose IN ('property_image', 'brochure', 'profile', 'banner')",
            name="ck_uploads_purpose",
        ),
        CheckConstraint(
            "status IN ('created', 'uploaded', 'referenced')",
            name="ck_uploads_status",
        ),
        UniqueConstraint("owner_id", "client_upload_id", name="uq_uploads_owner_client_upload"),
        Index("ix_uploads_owner_status", "owner_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    key = Column(String(1024), nullable=False, unique=True)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    purpose = Column(String(32), nullable=False)
    client_upload_id = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="created", server_default="created")
    size = Column(BigInteger, nullable=True)
    content_type = Column(String(100), nullable=True)
    referenced_entity_type = Column(String(20), nullable=True)
    referenced_by_change_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
