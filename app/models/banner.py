import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


BANNER_TARGET_ROLES = ("All", "Agent", "Customer", "Employee")


class Banner(Base):
    __tablename__ = "banners"
    __table_args__ = (
        CheckConstraint(
            "target_role IN ('All', 'Agent', 'Customer', 'Employee')",
            name="ck_banners_target_role",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    image_url = Column(String(1024), nullable=False)
    title = Column(String(255), nullable=True)
    subtitle = Column(String(255), nullable=True)
    target_role = Column(String(20), nullable=False, default="All", server_default="All")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    display_order = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
