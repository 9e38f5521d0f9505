from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.core.roles import Role
from app.models.property import Property
from app.models.property_assignment import PropertyAgentAssignment, PropertyEmployeeAssignment
from app.models.user import User
from app.schemas.assignments import AssignmentDiff
from app.services import audit, notifier

logger = logging.getLogger(__name__)


async def is_authorized(db: AsyncSession, actor_id: UUID, role: Role, property_id: UUID) -> bool:
    """Whether ``actor_id`` may propose changes to ``property_id``.

    Agents need their own edge and their supervising employee's edge on the same
    property; revoking the employee's edge revokes the agent without touching the
    agent edge.
    """
    if role.is_admin:
        return True
    if role is Role.EMPLOYEE:
        stmt = select(PropertyEmployeeAssignment.id).where(
            PropertyEmployeeAssignment.property_id == property_id,
            PropertyEmployeeAssignment.employee_id == actor_id,
        )
    elif role is Role.AGENT:
        stmt = (
            select(PropertyAgentAssignment.id)
            .join(User, User.id == PropertyAgentAssignment.agent_id)
            .join(
                PropertyEmployeeAssignment,
                and_(
                    PropertyEmployeeAssignment.property_id == PropertyAgentAssignment.property_id,
                    PropertyEmployeeAssignment.employee_id == User.assigned_employee_id,
                ),
            )
            .where(
                PropertyAgentAssignment.agent_id == actor_id,
                PropertyAgentAssignment.property_id == property_id,
                User.deleted.is_(False),
            )
        )
    else:
        return False
    result = await db.execute(stmt.limit(1))
    return result.scalar_one_or_none() is not None


async def _owned_property_ids(db: AsyncSession, employee_id: UUID) -> set[UUID]:
    stmt = (
        select(PropertyEmployeeAssignment.property_id)
        .join(Property, Property.id == PropertyEmployeeAssignment.property_id)
        .where(
            PropertyEmployeeAssignment.employee_id == employee_id,
            Property.deleted.is_(False),
        )
    )
    return set((await db.execute(stmt)).scalars().all())


async def list_agent_property_ids(db: AsyncSession, employee_id: UUID, agent_id: UUID) -> list[UUID]:
    """The agent's property set, limited to live properties the employee holds."""
    stmt = (
        select(PropertyAgentAssignment.property_id)
        .join(Property, Property.id == PropertyAgentAssignment.property_id)
        .join(
            PropertyEmployeeAssignment,
            and_(
                PropertyEmployeeAssignment.property_id == PropertyAgentAssignment.property_id,
                PropertyEmployeeAssignment.employee_id == employee_id,
            ),
        )
        .where(
            PropertyAgentAssignment.agent_id == agent_id,
            Property.deleted.is_(False),
        )
    )
    return list((await db.execute(stmt)).scalars().all())


async def _get_supervised_agent(db: AsyncSession, employee_id: UUID, agent_id: UUID) -> User:
    stmt = select(User).where(
        User.id == agent_id,
        User.role == Role.AGENT.value,
        User.assigned_employee_id == employee_id,
        User.approved.is_(True),
        User.deleted.is_(False),
    )
    agent = (await db.execute(stmt)).scalar_one_or_none()
    if agent is None:
        raise AuthorizationError(
            code="agent_not_supervised",
            message="Agent not found or not assigned to you",
            details={},
        )
    return agent


async def set_agent_property_assignments(
    db: AsyncSession,
    employee_id: UUID,
    agent_id: UUID,
    desired_property_ids: list[UUID],
) -> AssignmentDiff:
    """Reconcile the agent's property set (within the employee's properties) to ``desired_property_ids``.

    All adds and removals commit together or not at all.
    """
    desired = set(desired_property_ids)
    if len(desired) != len(desired_property_ids):
        raise ValidationError(
            code="duplicate_property_ids",
            message="Duplicate property IDs detected",
            details={"field": "property_ids"},
        )

    await _get_supervised_agent(db, employee_id, agent_id)

    try:
        owned = await _owned_property_ids(db, employee_id)
        current = set(await list_agent_property_ids(db, employee_id, agent_id))
        to_add = desired - current
        to_remove = current - desired

        if to_add:
            rows_stmt = select(Property.id, Property.title).where(
                Property.id.in_(to_add),
                Property.deleted.is_(False),
            )
            found = {row[0]: row[1] for row in (await db.execute(rows_stmt)).all()}
            missing = to_add - set(found)
            if missing:
                raise NotFoundError(
                    code="properties_not_found",
                    message="Some properties not found",
                    details={"property_ids": sorted(str(pid) for pid in missing)},
                )
            not_owned = sorted(to_add - owned, key=str)
            if not_owned:
                titles = [found[pid] for pid in not_owned]
                raise AuthorizationError(
                    code="properties_not_owned",
                    message=f"You do not own properties: {', '.join(titles)}",
                    details={"property_ids": [str(pid) for pid in not_owned], "titles": titles},
                )

            for property_id in to_add:
                db.add(
                    PropertyAgentAssignment(
                        property_id=property_id,
                        agent_id=agent_id,
                        assigned_by_employee_id=employee_id,
                    )
                )
            await db.execute(
                update(Property)
                .where(Property.id.in_(to_add))
                .values(assigned_agent_id=agent_id)
                .execution_options(synchronize_session=False)
            )

        if to_remove:
            await db.execute(
                delete(PropertyAgentAssignment).where(
                    PropertyAgentAssignment.agent_id == agent_id,
                    PropertyAgentAssignment.property_id.in_(to_remove),
                )
            )
            await db.execute(
                update(Property)
                .where(Property.id.in_(to_remove), Property.assigned_agent_id == agent_id)
                .values(assigned_agent_id=None)
                .execution_options(synchronize_session=False)
            )

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    diff = AssignmentDiff(added=sorted(to_add, key=str), removed=sorted(to_remove, key=str))
    if to_add or to_remove:
        logger.info(
            "Agent %s assignments reconciled by %s: +%d -%d",
            agent_id,
            employee_id,
            len(to_add),
            len(to_remove),
        )
        await notifier.notify(agent_id, "assignment_updated", diff.model_dump(mode="json"))
    return diff


async def _get_employee(db: AsyncSession, employee_id: UUID) -> User:
    stmt = select(User).where(
        User.id == employee_id,
        User.role == Role.EMPLOYEE.value,
        User.deleted.is_(False),
    )
    employee = (await db.execute(stmt)).scalar_one_or_none()
    if employee is None:
        raise NotFoundError(code="employee_not_found", message="Employee not found", details={})
    return employee


async def set_employee_property_assignments(
    db: AsyncSession,
    admin_id: UUID,
    employee_id: UUID,
    *,
    add_property_ids: list[UUID],
    remove_property_ids: list[UUID],
) -> AssignmentDiff:
    """Admin edit of an employee's property set.

    Removing a property from an employee also strips it from that employee's agents.
    """
    add = set(add_property_ids)
    remove = set(remove_property_ids)
    if add & remove:
        raise ValidationError(
            code="conflicting_property_ids",
            message="A property cannot be added and removed in the same request",
            details={"property_ids": sorted(str(pid) for pid in add & remove)},
        )

    await _get_employee(db, employee_id)

    try:
        existing_stmt = select(PropertyEmployeeAssignment.property_id).where(
            PropertyEmployeeAssignment.employee_id == employee_id
        )
        existing = set((await db.execute(existing_stmt)).scalars().all())

        to_add = add - existing
        if to_add:
            found_stmt = select(Property.id).where(Property.id.in_(to_add), Property.deleted.is_(False))
            found = set((await db.execute(found_stmt)).scalars().all())
            missing = to_add - found
            if missing:
                raise NotFoundError(
                    code="properties_not_found",
                    message="Some properties not found",
                    details={"property_ids": sorted(str(pid) for pid in missing)},
                )
            for property_id in to_add:
                db.add(
                    PropertyEmployeeAssignment(
                        property_id=property_id,
                        employee_id=employee_id,
                        assigned_by_admin_id=admin_id,
                    )
                )
            await db.execute(
                update(Property)
                .where(Property.id.in_(to_add), Property.assigned_employee_id.is_(None))
                .values(assigned_employee_id=employee_id)
                .execution_options(synchronize_session=False)
            )

        to_remove = remove & existing
        if to_remove:
            supervised_agents = select(User.id).where(User.assigned_employee_id == employee_id)
            await db.execute(
                delete(PropertyAgentAssignment).where(
                    PropertyAgentAssignment.property_id.in_(to_remove),
                    PropertyAgentAssignment.agent_id.in_(supervised_agents),
                )
            )
            await db.execute(
                delete(PropertyEmployeeAssignment).where(
                    PropertyEmployeeAssignment.employee_id == employee_id,
                    PropertyEmployeeAssignment.property_id.in_(to_remove),
                )
            )
            await db.execute(
                update(Property)
                .where(Property.id.in_(to_remove), Property.assigned_employee_id == employee_id)
                .values(assigned_employee_id=None)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                update(Property)
                .where(Property.id.in_(to_remove), Property.assigned_agent_id.in_(supervised_agents))
                .values(assigned_agent_id=None)
                .execution_options(synchronize_session=False)
            )

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    diff = AssignmentDiff(added=sorted(to_add, key=str), removed=sorted(to_remove, key=str))
    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="employee_properties_update",
        target_type="user",
        target_id=employee_id,
        details=diff.model_dump(mode="json"),
    )
    if to_add or to_remove:
        await notifier.notify(employee_id, "assignment_updated", diff.model_dump(mode="json"))
    return diff


async def set_agent_supervisor(
    db: AsyncSession,
    admin_id: UUID,
    agent_id: UUID,
    employee_id: UUID | None,
) -> User:
    """Point an agent at a new supervising employee (or none).

    The agent's property edges belonged to the previous supervisor's set, so they
    are dropped along with any primary-agent pointers.
    """
    stmt = select(User).where(
        User.id == agent_id,
        User.role == Role.AGENT.value,
        User.deleted.is_(False),
    )
    agent = (await db.execute(stmt)).scalar_one_or_none()
    if agent is None:
        raise NotFoundError(code="agent_not_found", message="Agent not found", details={})
    if employee_id is not None:
        employee = await _get_employee(db, employee_id)
        if not employee.active:
            raise ValidationError(
                code="employee_inactive",
                message="Cannot assign an agent to an inactive employee",
                details={"employee_id": str(employee_id)},
            )

    previous = agent.assigned_employee_id
    if previous == employee_id:
        return agent

    try:
        await db.execute(delete(PropertyAgentAssignment).where(PropertyAgentAssignment.agent_id == agent_id))
        await db.execute(
            update(Property)
            .where(Property.assigned_agent_id == agent_id)
            .values(assigned_agent_id=None)
            .execution_options(synchronize_session=False)
        )
        agent.assigned_employee_id = employee_id
        db.add(agent)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(agent)

    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="agent_supervisor_update",
        target_type="user",
        target_id=agent_id,
        details={"from": previous, "to": employee_id},
    )
    await notifier.notify(agent_id, "assignment_updated", {"assigned_employee_id": employee_id})
    return agent
