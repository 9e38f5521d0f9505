from sqlalchemy import Column, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.db.base import Base


LOAN_REQUEST_SLA_KEY = "loan_request_sla_hours"


class SlaConfig(Base):
    __tablename__ = "admin_sla_configs"

    config_key = Column(String(100), primary_key=True)
    config_value = Column(JSONB, nullable=False)
    updated_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
