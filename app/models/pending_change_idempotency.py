from sqlalchemy import CheckConstraint, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class PendingChangeIdempotency(Base):
    __tablename__ = "pending_change_idempotency"
    __table_args__ = (
        CheckConstraint(
            "entity_type IN ('property', 'banner')",
            name="ck_pending_change_idempotency_entity_type",
        ),
    )

    idempotency_key = Column(UUID(as_uuid=True), primary_key=True)
    entity_type = Column(String(20), nullable=False)
    change_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="completed", server_default="completed")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
