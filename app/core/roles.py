from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    EMPLOYEE = "employee"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @classmethod
    def parse(cls, value: str | Role | None) -> Role:
        """Normalise stored role strings ("Agent", "SUPER-ADMIN", " employee ") once at the boundary."""
        if isinstance(value, Role):
            return value
        if value is None:
            raise ValueError("Role is required")
        normalized = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        aliases = {"superadmin": cls.SUPER_ADMIN, "user": cls.CUSTOMER}
        if normalized in aliases:
            return aliases[normalized]
        member = cls._value2member_map_.get(normalized)
        if member is None:
            raise ValueError(f"Unknown role: {value}")
        return member

    @property
    def is_admin(self) -> bool:
        return self in {Role.ADMIN, Role.SUPER_ADMIN}


FINANCE_DEPARTMENT = "finance"


def normalize_department(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().lower()
    return cleaned or None
