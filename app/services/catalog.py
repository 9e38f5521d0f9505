"""Admin direct writes to canonical properties and banners.

Admins edit the catalog without going through a pending change. Payloads pass the
same admin allow-list as moderated changes, every write is audited, and the
dashboard counters are invalidated afterwards.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.core.roles import Role
from app.models.banner import Banner
from app.models.pending_change import PropertyPendingChange
from app.models.property import Property
from app.models.property_assignment import PropertyAgentAssignment, PropertyEmployeeAssignment
from app.schemas.pending_changes import EntityType, PendingChangeStatus
from app.services import audit, dashboard, payload_policy

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50


def _property_columns(values: dict[str, Any]) -> dict[str, Any]:
    columns = dict(values)
    if "price" in columns:
        price = columns["price"]
        columns["price"] = None if price in (None, "") else Decimal(str(price))
    return columns


async def _live_property(db: AsyncSession, property_id: UUID) -> Property:
    stmt = select(Property).where(Property.id == property_id, Property.deleted.is_(False))
    prop = (await db.execute(stmt)).scalar_one_or_none()
    if prop is None:
        raise NotFoundError(code="property_not_found", message="Property not found", details={})
    return prop


async def _banner(db: AsyncSession, banner_id: UUID) -> Banner:
    banner = (await db.execute(select(Banner).where(Banner.id == banner_id))).scalar_one_or_none()
    if banner is None:
        raise NotFoundError(code="banner_not_found", message="Banner not found", details={})
    return banner


# --- Properties ---


async def list_properties(
    db: AsyncSession,
    *,
    q: str | None = None,
    limit: int = 20,
    cursor: datetime | None = None,
) -> tuple[list[Property], datetime | None]:
    """Live properties, newest first; ``q`` matches title or location."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    stmt = select(Property).where(Property.deleted.is_(False))
    if q:
        pattern = f"%{q.strip()}%"
        stmt = stmt.where(or_(Property.title.ilike(pattern), Property.location.ilike(pattern)))
    if cursor is not None:
        stmt = stmt.where(Property.created_at < cursor)
    stmt = stmt.order_by(Property.created_at.desc(), Property.id.desc()).limit(limit + 1)
    rows = list((await db.execute(stmt)).scalars().all())
    page = rows[:limit]
    next_cursor = page[-1].created_at if len(rows) > limit else None
    return page, next_cursor


async def get_property(db: AsyncSession, property_id: UUID) -> tuple[Property, list[PropertyPendingChange]]:
    """The live property with the changes still waiting for review against it."""
    prop = await _live_property(db, property_id)
    stmt = (
        select(PropertyPendingChange)
        .where(
            PropertyPendingChange.target_id == property_id,
            PropertyPendingChange.status == PendingChangeStatus.PENDING.value,
        )
        .order_by(PropertyPendingChange.created_at.desc())
    )
    pending = list((await db.execute(stmt)).scalars().all())
    return prop, pending


async def create_property(db: AsyncSession, admin_id: UUID, payload: dict[str, Any]) -> Property:
    values = payload_policy.validate_payload(EntityType.PROPERTY, Role.ADMIN, payload, is_create=True)
    prop = Property(**_property_columns(values), created_by_admin_id=admin_id)
    db.add(prop)
    await db.commit()
    await db.refresh(prop)
    logger.info("Property %s created by admin %s", prop.id, admin_id)
    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="property_create",
        target_type="property",
        target_id=prop.id,
        details={"after": values},
    )
    await dashboard.invalidate_admin_stats()
    return prop


async def update_property(
    db: AsyncSession, property_id: UUID, admin_id: UUID, payload: dict[str, Any]
) -> Property:
    values = payload_policy.validate_payload(EntityType.PROPERTY, Role.ADMIN, payload)
    prop = await _live_property(db, property_id)
    before = audit.serialize_for_audit({name: getattr(prop, name) for name in values})
    for name, value in _property_columns(values).items():
        setattr(prop, name, value)
    await db.commit()
    await db.refresh(prop)
    logger.info("Property %s updated by admin %s", property_id, admin_id)
    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="property_update",
        target_type="property",
        target_id=property_id,
        details={"before": before, "after": values},
    )
    return prop


async def soft_delete_property(db: AsyncSession, property_id: UUID, admin_id: UUID) -> None:
    """Hide the property and drop every assignment edge on it.

    The row stays for history; pending changes against it remain reviewable but
    approving one fails because the target is gone.
    """
    prop = await _live_property(db, property_id)
    title = prop.title
    prop.deleted = True
    prop.deleted_at = datetime.now(timezone.utc)
    prop.deleted_by_admin_id = admin_id
    prop.assigned_employee_id = None
    prop.assigned_agent_id = None
    await db.execute(
        delete(PropertyEmployeeAssignment).where(PropertyEmployeeAssignment.property_id == property_id)
    )
    await db.execute(
        delete(PropertyAgentAssignment).where(PropertyAgentAssignment.property_id == property_id)
    )
    await db.commit()
    logger.info("Property %s soft-deleted by admin %s", property_id, admin_id)
    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="property_delete",
        target_type="property",
        target_id=property_id,
        details={"title": title},
    )
    await dashboard.invalidate_admin_stats()


# --- Banners ---


async def list_banners(db: AsyncSession) -> list[Banner]:
    stmt = select(Banner).order_by(Banner.display_order.asc(), Banner.created_at.asc())
    return list((await db.execute(stmt)).scalars().all())


async def create_banner(db: AsyncSession, admin_id: UUID, payload: dict[str, Any]) -> Banner:
    values = payload_policy.validate_payload(EntityType.BANNER, Role.ADMIN, payload, is_create=True)
    banner = Banner(**values)
    db.add(banner)
    await db.commit()
    await db.refresh(banner)
    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="banner_create",
        target_type="banner",
        target_id=banner.id,
        details={"after": values},
    )
    await dashboard.invalidate_admin_stats()
    return banner


async def update_banner(db: AsyncSession, banner_id: UUID, admin_id: UUID, payload: dict[str, Any]) -> Banner:
    values = payload_policy.validate_payload(EntityType.BANNER, Role.ADMIN, payload)
    banner = await _banner(db, banner_id)
    before = audit.serialize_for_audit({name: getattr(banner, name) for name in values})
    for name, value in values.items():
        setattr(banner, name, value)
    await db.commit()
    await db.refresh(banner)
    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="banner_update",
        target_type="banner",
        target_id=banner_id,
        details={"before": before, "after": values},
    )
    await dashboard.invalidate_admin_stats()
    return banner


async def delete_banner(db: AsyncSession, banner_id: UUID, admin_id: UUID) -> None:
    """Hard delete; pending changes against the banner go with it."""
    banner = await _banner(db, banner_id)
    details = audit.model_snapshot(banner)
    await db.delete(banner)
    await db.commit()
    logger.info("Banner %s deleted by admin %s", banner_id, admin_id)
    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="banner_delete",
        target_type="banner",
        target_id=banner_id,
        details=details,
    )
    await dashboard.invalidate_admin_stats()


async def reorder_banners(db: AsyncSession, admin_id: UUID, ordered_ids: list[UUID]) -> list[Banner]:
    """Set ``display_order`` to each banner's position in ``ordered_ids``, all or nothing."""
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ValidationError(
            code="duplicate_banner_ids",
            message="Each banner may appear only once",
            details={"field": "ordered_ids"},
        )
    if ordered_ids:
        found = set(
            (await db.execute(select(Banner.id).where(Banner.id.in_(ordered_ids)))).scalars().all()
        )
        missing = [str(banner_id) for banner_id in ordered_ids if banner_id not in found]
        if missing:
            raise NotFoundError(code="banner_not_found", message="Banner not found", details={"ids": missing})
    for position, banner_id in enumerate(ordered_ids):
        await db.execute(
            update(Banner)
            .where(Banner.id == banner_id)
            .values(display_order=position)
            .execution_options(synchronize_session=False)
        )
    await db.commit()
    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="banner_reorder",
        target_type="banner",
        target_id=None,
        details={"ordered_ids": [str(banner_id) for banner_id in ordered_ids]},
    )
    return await list_banners(db)
