from datetime import datetime

from pydantic import BaseModel


class CustomerStats(BaseModel):
    today: int
    total: int


class AgentStats(BaseModel):
    approved: int
    pending: int
    total: int


class EmployeeStats(BaseModel):
    active: int
    inactive: int
    total: int


class PropertyStats(BaseModel):
    total: int
    pending: int
    needs_revision: int


class BannerStats(BaseModel):
    active: int
    total: int
    pending: int
    needs_revision: int


class PendingChangeStats(BaseModel):
    needs_review: int
    total: int


class LoanRequestStats(BaseModel):
    total: int
    open: int
    unassigned: int
    escalated: int
    overdue: int


class DashboardStats(BaseModel):
    customers: CustomerStats
    agents: AgentStats
    employees: EmployeeStats
    properties: PropertyStats
    banners: BannerStats
    pending_changes: PendingChangeStats
    loan_requests: LoanRequestStats
    last_updated: datetime
