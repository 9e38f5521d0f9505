from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.roles import Role
from app.core.settings import settings
from app.models.banner import Banner
from app.models.loan_request import OPEN_LOAN_REQUEST_STATUSES, LoanRequest
from app.models.pending_change import BannerPendingChange, PropertyPendingChange
from app.models.property import Property
from app.models.user import User
from app.schemas.dashboard import (
    AgentStats,
    BannerStats,
    CustomerStats,
    DashboardStats,
    EmployeeStats,
    LoanRequestStats,
    PendingChangeStats,
    PropertyStats,
)
from app.utils.redis_client import get_dashboard_cache
from app.utils.ttl_cache import TTLCache


ADMIN_STATS_KEY = "admin_stats"
ACTIVE_EMPLOYEE_WINDOW = timedelta(days=30)
OPEN_CHANGE_STATUSES = ("draft", "pending", "needs_revision")


async def _count(db: AsyncSession, model, *conditions) -> int:
    stmt = select(func.count()).select_from(model).where(*conditions)
    return int((await db.execute(stmt)).scalar_one() or 0)


async def build_admin_stats(db: AsyncSession, *, now: datetime | None = None) -> DashboardStats:
    now = now or datetime.now(timezone.utc)
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    customer = (User.role == Role.CUSTOMER.value, User.deleted.is_(False))
    agent = (User.role == Role.AGENT.value, User.deleted.is_(False))
    employee = (User.role == Role.EMPLOYEE.value, User.deleted.is_(False))

    customers_total = await _count(db, User, *customer)
    customers_today = await _count(db, User, *customer, User.created_at >= start_of_day)

    agents_total = await _count(db, User, *agent)
    agents_approved = await _count(db, User, *agent, User.approved.is_(True))

    employees_total = await _count(db, User, *employee)
    employees_active = await _count(
        db, User, *employee, User.last_login >= now - ACTIVE_EMPLOYEE_WINDOW
    )

    properties_total = await _count(db, Property, Property.deleted.is_(False))
    property_pending = await _count(db, PropertyPendingChange, PropertyPendingChange.status == "pending")
    property_revision = await _count(
        db, PropertyPendingChange, PropertyPendingChange.status == "needs_revision"
    )
    property_open = await _count(
        db, PropertyPendingChange, PropertyPendingChange.status.in_(OPEN_CHANGE_STATUSES)
    )

    banners_total = await _count(db, Banner)
    banners_active = await _count(db, Banner, Banner.is_active.is_(True))
    banner_pending = await _count(db, BannerPendingChange, BannerPendingChange.status == "pending")
    banner_revision = await _count(
        db, BannerPendingChange, BannerPendingChange.status == "needs_revision"
    )
    banner_open = await _count(
        db, BannerPendingChange, BannerPendingChange.status.in_(OPEN_CHANGE_STATUSES)
    )

    live_ticket = (LoanRequest.deleted_at.is_(None),)
    open_ticket = (*live_ticket, LoanRequest.status.in_(OPEN_LOAN_REQUEST_STATUSES))
    tickets_total = await _count(db, LoanRequest, *live_ticket)
    tickets_open = await _count(db, LoanRequest, *open_ticket)
    tickets_unassigned = await _count(db, LoanRequest, *open_ticket, LoanRequest.assignee_id.is_(None))
    tickets_escalated = await _count(db, LoanRequest, *open_ticket, LoanRequest.is_escalated.is_(True))
    tickets_overdue = await _count(db, LoanRequest, *open_ticket, LoanRequest.sla_due_at < now)

    return DashboardStats(
        customers=CustomerStats(today=customers_today, total=customers_total),
        agents=AgentStats(
            approved=agents_approved,
            pending=agents_total - agents_approved,
            total=agents_total,
        ),
        employees=EmployeeStats(
            active=employees_active,
            inactive=employees_total - employees_active,
            total=employees_total,
        ),
        properties=PropertyStats(
            total=properties_total,
            pending=property_pending,
            needs_revision=property_revision,
        ),
        banners=BannerStats(
            active=banners_active,
            total=banners_total,
            pending=banner_pending,
            needs_revision=banner_revision,
        ),
        pending_changes=PendingChangeStats(
            needs_review=property_pending + banner_pending,
            total=property_open + banner_open,
        ),
        loan_requests=LoanRequestStats(
            total=tickets_total,
            open=tickets_open,
            unassigned=tickets_unassigned,
            escalated=tickets_escalated,
            overdue=tickets_overdue,
        ),
        last_updated=now,
    )


async def get_admin_stats(db: AsyncSession, cache: TTLCache | None = None) -> DashboardStats:
    cache = cache or get_dashboard_cache()
    cached = await cache.get(ADMIN_STATS_KEY)
    if cached:
        return DashboardStats.model_validate(cached)
    stats = await build_admin_stats(db)
    await cache.set(ADMIN_STATS_KEY, stats.model_dump(mode="json"), settings.dashboard_cache_ttl_seconds)
    return stats


async def invalidate_admin_stats(cache: TTLCache | None = None) -> None:
    cache = cache or get_dashboard_cache()
    await cache.invalidate(ADMIN_STATS_KEY)
