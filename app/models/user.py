import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.core.roles import Role
from app.db.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN ('customer', 'agent', 'employee', 'admin', 'super_admin')",
            name="ck_users_role",
        ),
        Index("ix_users_role_department", "role", "department"),
        Index("ix_users_assigned_employee_id", "assigned_employee_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    phone = Column(String(32), nullable=True, unique=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    role = Column(String(20), nullable=False, default=Role.CUSTOMER.value)
    active = Column(Boolean, nullable=False, server_default="true", default=True)
    approved = Column(Boolean, nullable=False, server_default="false", default=False)
    # Supervising employee for agents.
    assigned_employee_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    department = Column(String(100), nullable=True)
    preferred_categories = Column(JSONB, nullable=False, server_default="[]", default=list)
    deleted = Column(Boolean, nullable=False, server_default="false", default=False)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def role_enum(self) -> Role:
        return Role.parse(self.role)

    @property
    def display_name(self) -> str:
        return self.name or self.phone or str(self.id)
