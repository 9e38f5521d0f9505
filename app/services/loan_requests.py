"""Loan-request ticket workflow.

Single-ticket writes that touch status, assignee or escalation go through a
conditional ``UPDATE ... WHERE id = :id AND version = :observed`` and bump the
version by one. A lost race surfaces as a conflict carrying the current row.
Bulk admin operations update their batch unconditionally and only leave a
per-ticket audit entry behind. Comments never bump the version.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable
from uuid import UUID, uuid4

from sqlalchemy import String, and_, cast, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.roles import FINANCE_DEPARTMENT, Role
from app.core.settings import settings
from app.models.loan_request import (
    OPEN_LOAN_REQUEST_STATUSES,
    LoanRequest,
    LoanRequestAssignment,
    LoanRequestAuditLog,
    LoanRequestComment,
)
from app.models.sla_config import LOAN_REQUEST_SLA_KEY, SlaConfig
from app.models.user import User
from app.schemas.loan_requests import (
    AssigneeRead,
    FinanceEmployee,
    LoanRequestAuditEntry,
    LoanRequestCommentRead,
    LoanRequestCreate,
    LoanRequestDetail,
    LoanRequestPriority,
    LoanRequestRead,
    LoanRequestStats,
    LoanRequestStatus,
    LoanRequestSummary,
    SlaConfigRead,
)
from app.services import audit, dashboard, notifier

logger = logging.getLogger(__name__)


ADJACENCY: dict[str, frozenset[str]] = {
    LoanRequestStatus.RECEIVED.value: frozenset(
        {LoanRequestStatus.UNDER_REVIEW.value, LoanRequestStatus.REJECTED.value}
    ),
    LoanRequestStatus.UNDER_REVIEW.value: frozenset(
        {LoanRequestStatus.CONTACTED.value, LoanRequestStatus.REJECTED.value}
    ),
    LoanRequestStatus.CONTACTED.value: frozenset(
        {LoanRequestStatus.CLOSED.value, LoanRequestStatus.REJECTED.value}
    ),
}
TERMINAL_STATUSES = frozenset({LoanRequestStatus.CLOSED.value, LoanRequestStatus.REJECTED.value})
COMMENT_REQUIRED_STATUSES = TERMINAL_STATUSES

MAX_COMMENT_LENGTH = 1000
MIN_ESCALATION_REASON = 10
MAX_ESCALATION_REASON = 500
MAX_BULK_IDS = 100
MIN_SLA_HOURS = 1
MAX_SLA_HOURS = 168


def _now() -> datetime:
    return datetime.now(timezone.utc)


def ticket_snapshot(ticket: LoanRequest) -> dict[str, Any]:
    return LoanRequestRead.model_validate(ticket).model_dump(mode="json")


def _finance_staff_conditions() -> tuple:
    return (
        User.role == Role.EMPLOYEE.value,
        User.active.is_(True),
        User.deleted.is_(False),
        func.lower(func.trim(User.department)) == FINANCE_DEPARTMENT,
    )


def _open_ticket_join(user_model=User):
    return and_(
        LoanRequest.assignee_id == user_model.id,
        LoanRequest.deleted_at.is_(None),
        LoanRequest.status.in_(OPEN_LOAN_REQUEST_STATUSES),
    )


def _audit_entry(
    ticket_id: UUID,
    actor_id: UUID | None,
    action: str,
    *,
    old_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
    comment: str | None = None,
) -> LoanRequestAuditLog:
    return LoanRequestAuditLog(
        id=uuid4(),
        loan_request_id=ticket_id,
        actor_id=actor_id,
        action=action,
        old_value=audit.serialize_for_audit(old_value) if old_value is not None else None,
        new_value=audit.serialize_for_audit(new_value) if new_value is not None else None,
        comment=comment,
    )


async def _get_ticket(db: AsyncSession, ticket_id: UUID) -> LoanRequest:
    stmt = select(LoanRequest).where(LoanRequest.id == ticket_id, LoanRequest.deleted_at.is_(None))
    ticket = (await db.execute(stmt)).scalar_one_or_none()
    if ticket is None:
        raise NotFoundError(code="loan_request_not_found", message="Loan request not found", details={})
    return ticket


def _version_conflict(current: LoanRequest) -> ConflictError:
    return ConflictError(
        code="version_conflict",
        message="Loan request was modified by another user",
        details={"current": ticket_snapshot(current)},
    )


def _check_expected_version(ticket: LoanRequest, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != ticket.version:
        raise _version_conflict(ticket)


async def _conditional_write(
    db: AsyncSession,
    ticket: LoanRequest,
    values: dict[str, Any],
) -> LoanRequest:
    """Apply ``values`` only if nobody bumped the version since ``ticket`` was read."""
    # Rollback expires ``ticket``; read what the conflict path needs up front.
    ticket_id = ticket.id
    observed = ticket.version
    stmt = (
        update(LoanRequest)
        .where(LoanRequest.id == ticket_id, LoanRequest.version == observed)
        .values(**values, version=LoanRequest.version + 1)
        .returning(LoanRequest)
        .execution_options(populate_existing=True)
    )
    updated = (await db.execute(stmt)).scalar_one_or_none()
    if updated is None:
        await db.rollback()
        current = await _get_ticket(db, ticket_id)
        logger.info(
            "Loan request %s write lost at version %s (now %s)",
            ticket_id,
            observed,
            current.version,
        )
        raise _version_conflict(current)
    return updated


async def _commit(db: AsyncSession) -> None:
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise


# ---------------------------------------------------------------------------
# SLA configuration
# ---------------------------------------------------------------------------


async def get_sla_config(db: AsyncSession) -> SlaConfigRead:
    config = await db.get(SlaConfig, LOAN_REQUEST_SLA_KEY)
    if config is None:
        return SlaConfigRead(hours=settings.loan_request_sla_hours)
    hours = (config.config_value or {}).get("hours", settings.loan_request_sla_hours)
    return SlaConfigRead(hours=int(hours), updated_by=config.updated_by, updated_at=config.updated_at)


async def get_sla_hours(db: AsyncSession) -> int:
    return (await get_sla_config(db)).hours


async def update_sla_hours(db: AsyncSession, admin_id: UUID, hours: int) -> SlaConfigRead:
    if not MIN_SLA_HOURS <= hours <= MAX_SLA_HOURS:
        raise ValidationError(
            code="invalid_sla_hours",
            message=f"SLA hours must be between {MIN_SLA_HOURS} and {MAX_SLA_HOURS}",
            details={"field": "hours"},
        )
    config = await db.get(SlaConfig, LOAN_REQUEST_SLA_KEY)
    previous = None
    if config is None:
        config = SlaConfig(config_key=LOAN_REQUEST_SLA_KEY)
    else:
        previous = (config.config_value or {}).get("hours")
    config.config_value = {"hours": hours}
    config.updated_by = admin_id
    db.add(config)
    await _commit(db)
    await db.refresh(config)

    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="loan_request_sla_update",
        target_type="sla_config",
        target_id=LOAN_REQUEST_SLA_KEY,
        details={"from": previous, "to": hours},
    )
    return SlaConfigRead(hours=hours, updated_by=config.updated_by, updated_at=config.updated_at)


# ---------------------------------------------------------------------------
# Finance staff
# ---------------------------------------------------------------------------


async def list_finance_employees(db: AsyncSession, q: str | None = None, limit: int = 50) -> list[FinanceEmployee]:
    open_tickets = func.count(LoanRequest.id)
    stmt = (
        select(User.id, User.name, User.email, open_tickets.label("open_tickets"))
        .outerjoin(LoanRequest, _open_ticket_join())
        .where(*_finance_staff_conditions())
        .group_by(User.id, User.name, User.email)
        .order_by(User.name, User.id)
        .limit(limit)
    )
    if q:
        pattern = f"%{q.strip()}%"
        stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    rows = (await db.execute(stmt)).all()
    return [
        FinanceEmployee(id=row[0], name=row[1], email=row[2], open_tickets=int(row[3] or 0))
        for row in rows
    ]


async def _get_finance_employee(db: AsyncSession, user_id: UUID) -> User:
    stmt = select(User).where(User.id == user_id, *_finance_staff_conditions())
    employee = (await db.execute(stmt)).scalar_one_or_none()
    if employee is None:
        raise ValidationError(
            code="invalid_assignee",
            message="Assignee must be an active finance employee",
            details={"assignee_id": str(user_id)},
        )
    return employee


async def pick_least_loaded_finance_employee(db: AsyncSession) -> User:
    """Active finance employee with the fewest open tickets; ties go to the lowest id."""
    open_tickets = func.count(LoanRequest.id)
    stmt = (
        select(User)
        .outerjoin(LoanRequest, _open_ticket_join())
        .where(*_finance_staff_conditions())
        .group_by(User.id)
        .order_by(open_tickets.asc(), User.id.asc())
        .limit(1)
    )
    employee = (await db.execute(stmt)).scalars().first()
    if employee is None:
        raise ValidationError(
            code="no_finance_employees",
            message="No active finance employees available for assignment",
            details={},
        )
    return employee


async def _finance_staff_ids(db: AsyncSession) -> list[UUID]:
    stmt = select(User.id).where(*_finance_staff_conditions())
    return list((await db.execute(stmt)).scalars().all())


# ---------------------------------------------------------------------------
# Customer operations
# ---------------------------------------------------------------------------


async def create_loan_request(db: AsyncSession, customer: User, payload: LoanRequestCreate) -> LoanRequest:
    if payload.loan_amount_needed > payload.property_value:
        raise ValidationError(
            code="loan_amount_exceeds_value",
            message="Loan amount cannot exceed property value",
            details={"field": "loan_amount_needed"},
        )
    details = (payload.existing_loan_details or "").strip()
    if payload.existing_loans and not details:
        raise ValidationError(
            code="existing_loan_details_required",
            message="Existing loan details are required when you have existing loans",
            details={"field": "existing_loan_details"},
        )

    now = _now()
    sla_hours = await get_sla_hours(db)
    ticket = LoanRequest(
        id=uuid4(),
        user_id=customer.id,
        user_name=customer.name,
        user_email=customer.email,
        user_phone=customer.phone,
        user_location=customer.city,
        user_preferred_categories=list(customer.preferred_categories or []),
        loan_type=payload.loan_type,
        property_category=payload.property_category,
        property_value=payload.property_value,
        loan_amount_needed=payload.loan_amount_needed,
        employment_type=payload.employment_type,
        monthly_income=payload.monthly_income,
        preferred_tenure=payload.preferred_tenure,
        existing_loans=payload.existing_loans,
        existing_loan_details=details or None,
        preferred_contact_time=payload.preferred_contact_time,
        additional_notes=payload.additional_notes,
        status=LoanRequestStatus.RECEIVED.value,
        version=1,
        priority=LoanRequestPriority.NORMAL.value,
        sla_due_at=now + timedelta(hours=sla_hours),
        last_activity_at=now,
        is_escalated=False,
    )
    db.add(ticket)
    db.add(_audit_entry(ticket.id, customer.id, "created", new_value={"status": ticket.status}))
    await _commit(db)
    await db.refresh(ticket)

    logger.info("Loan request %s created by %s", ticket.id, customer.id)
    await notifier.notify_many(
        await _finance_staff_ids(db),
        "loan_request_created",
        {"loan_request_id": ticket.id, "loan_type": ticket.loan_type},
    )
    await dashboard.invalidate_admin_stats()
    return ticket


async def list_customer_requests(db: AsyncSession, customer_id: UUID) -> list[LoanRequest]:
    stmt = (
        select(LoanRequest)
        .where(LoanRequest.user_id == customer_id, LoanRequest.deleted_at.is_(None))
        .order_by(LoanRequest.created_at.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


# ---------------------------------------------------------------------------
# Single-ticket workflow
# ---------------------------------------------------------------------------


async def take(db: AsyncSession, ticket_id: UUID, actor_id: UUID) -> LoanRequest:
    """Self-assign a ticket, moving it to under_review if it is still received."""
    ticket = await _get_ticket(db, ticket_id)
    if ticket.assignee_id == actor_id:
        return ticket
    if ticket.assignee_id is not None:
        assignee = await db.get(User, ticket.assignee_id)
        name = assignee.display_name if assignee is not None else str(ticket.assignee_id)
        raise ConflictError(
            code="already_assigned",
            message=f"Already assigned to {name}",
            details={
                "assignee_id": str(ticket.assignee_id),
                "assignee_name": name,
                "current": ticket_snapshot(ticket),
            },
        )

    old_status = ticket.status
    values: dict[str, Any] = {"assignee_id": actor_id, "last_activity_at": _now()}
    if old_status == LoanRequestStatus.RECEIVED.value:
        values["status"] = LoanRequestStatus.UNDER_REVIEW.value

    updated = await _conditional_write(db, ticket, values)
    db.add(
        LoanRequestAssignment(
            id=uuid4(),
            loan_request_id=ticket_id,
            assigned_from=None,
            assigned_to=actor_id,
            assigned_by=actor_id,
            comment="Self-assigned",
        )
    )
    db.add(
        _audit_entry(
            ticket_id,
            actor_id,
            "assigned",
            old_value={"assignee_id": None},
            new_value={"assignee_id": actor_id},
        )
    )
    if "status" in values:
        db.add(
            _audit_entry(
                ticket_id,
                actor_id,
                "status_change",
                old_value={"status": old_status},
                new_value={"status": values["status"]},
            )
        )
    await _commit(db)

    logger.info("Loan request %s taken by %s", ticket_id, actor_id)
    await dashboard.invalidate_admin_stats()
    return updated


async def reassign(
    db: AsyncSession,
    ticket_id: UUID,
    admin_id: UUID,
    *,
    assignee_id: UUID | None = None,
    auto_assign: bool = False,
    comment: str | None = None,
    expected_version: int | None = None,
) -> LoanRequest:
    if assignee_id is None and not auto_assign:
        raise ValidationError(
            code="assignee_required",
            message="Provide an assignee or request auto-assignment",
            details={"field": "assignee_id"},
        )
    ticket = await _get_ticket(db, ticket_id)
    _check_expected_version(ticket, expected_version)

    if auto_assign:
        assignee = await pick_least_loaded_finance_employee(db)
    else:
        assignee = await _get_finance_employee(db, assignee_id)

    previous = ticket.assignee_id
    updated = await _conditional_write(
        db, ticket, {"assignee_id": assignee.id, "last_activity_at": _now()}
    )
    if comment:
        note = comment
    elif auto_assign:
        note = "Auto-assigned"
    else:
        note = "Reassigned by admin"
    db.add(
        LoanRequestAssignment(
            id=uuid4(),
            loan_request_id=ticket_id,
            assigned_from=previous,
            assigned_to=assignee.id,
            assigned_by=admin_id,
            comment=note,
        )
    )
    db.add(
        _audit_entry(
            ticket_id,
            admin_id,
            "reassigned",
            old_value={"assignee_id": previous},
            new_value={"assignee_id": assignee.id},
            comment=comment,
        )
    )
    await _commit(db)

    logger.info("Loan request %s reassigned from %s to %s by %s", ticket_id, previous, assignee.id, admin_id)
    await notifier.notify(assignee.id, "loan_request_assigned", {"loan_request_id": ticket_id})
    await dashboard.invalidate_admin_stats()
    return updated


async def change_status(
    db: AsyncSession,
    ticket_id: UUID,
    actor_id: UUID,
    new_status: LoanRequestStatus | str,
    *,
    comment: str | None = None,
    expected_version: int | None = None,
) -> LoanRequest:
    ticket = await _get_ticket(db, ticket_id)
    target = LoanRequestStatus(new_status).value
    allowed = ADJACENCY.get(ticket.status, frozenset())
    if target not in allowed:
        raise ValidationError(
            code="invalid_transition",
            message=f"Cannot transition from {ticket.status} to {target}",
            details={
                "current_status": ticket.status,
                "requested_status": target,
                "allowed_transitions": sorted(allowed),
            },
        )
    comment = (comment or "").strip() or None
    if target in COMMENT_REQUIRED_STATUSES and comment is None:
        raise ValidationError(
            code="comment_required",
            message=f"A comment is required when moving a loan request to {target}",
            details={"field": "comment"},
        )
    if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            code="comment_too_long",
            message=f"Comment cannot exceed {MAX_COMMENT_LENGTH} characters",
            details={"field": "comment"},
        )
    _check_expected_version(ticket, expected_version)

    old_status = ticket.status
    updated = await _conditional_write(db, ticket, {"status": target, "last_activity_at": _now()})
    db.add(
        _audit_entry(
            ticket_id,
            actor_id,
            "status_change",
            old_value={"status": old_status},
            new_value={"status": target},
            comment=comment,
        )
    )
    await _commit(db)

    logger.info("Loan request %s moved %s -> %s by %s", ticket_id, old_status, target, actor_id)
    await notifier.notify(
        updated.user_id,
        "loan_request_status_changed",
        {"loan_request_id": ticket_id, "status": target},
    )
    await dashboard.invalidate_admin_stats()
    return updated


def _validate_escalation_reason(reason: str | None) -> str:
    reason = (reason or "").strip()
    if not MIN_ESCALATION_REASON <= len(reason) <= MAX_ESCALATION_REASON:
        raise ValidationError(
            code="invalid_escalation_reason",
            message=(
                f"Escalation reason must be between {MIN_ESCALATION_REASON} "
                f"and {MAX_ESCALATION_REASON} characters"
            ),
            details={"field": "reason"},
        )
    return reason


async def escalate(
    db: AsyncSession,
    ticket_id: UUID,
    actor_id: UUID,
    reason: str,
    *,
    expected_version: int | None = None,
) -> LoanRequest:
    reason = _validate_escalation_reason(reason)
    ticket = await _get_ticket(db, ticket_id)
    _check_expected_version(ticket, expected_version)

    old = {"is_escalated": ticket.is_escalated, "priority": ticket.priority}
    updated = await _conditional_write(
        db,
        ticket,
        {
            "is_escalated": True,
            "priority": LoanRequestPriority.HIGH.value,
            "escalation_reason": reason,
            "last_activity_at": _now(),
        },
    )
    db.add(
        _audit_entry(
            ticket_id,
            actor_id,
            "escalated",
            old_value=old,
            new_value={"is_escalated": True, "priority": LoanRequestPriority.HIGH.value},
            comment=reason,
        )
    )
    await _commit(db)

    logger.info("Loan request %s escalated by %s", ticket_id, actor_id)
    await notifier.notify(updated.assignee_id, "loan_request_escalated", {"loan_request_id": ticket_id})
    await dashboard.invalidate_admin_stats()
    return updated


async def add_comment(
    db: AsyncSession,
    ticket_id: UUID,
    actor_id: UUID,
    text: str,
    *,
    is_public: bool = False,
) -> LoanRequestComment:
    """Append a comment. Allowed in any status; touches ``last_activity_at`` only."""
    text = (text or "").strip()
    if not text or len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            code="invalid_comment",
            message=f"Comment must be between 1 and {MAX_COMMENT_LENGTH} characters",
            details={"field": "comment"},
        )
    ticket = await _get_ticket(db, ticket_id)

    comment = LoanRequestComment(
        id=uuid4(),
        loan_request_id=ticket.id,
        author_id=actor_id,
        comment=text,
        is_public=is_public,
    )
    db.add(comment)
    await db.execute(
        update(LoanRequest)
        .where(LoanRequest.id == ticket.id)
        .values(last_activity_at=_now())
        .execution_options(synchronize_session=False)
    )
    db.add(
        _audit_entry(
            ticket.id,
            actor_id,
            "comment_added",
            new_value={"comment_id": comment.id, "is_public": is_public},
        )
    )
    await _commit(db)
    await db.refresh(comment)

    if is_public:
        await notifier.notify(ticket.user_id, "loan_request_comment", {"loan_request_id": ticket.id})
    return comment


async def soft_delete(db: AsyncSession, ticket_id: UUID, admin_id: UUID) -> None:
    ticket = await _get_ticket(db, ticket_id)
    if ticket.status not in TERMINAL_STATUSES:
        raise ConflictError(
            code="ticket_not_terminal",
            message="Only closed or rejected loan requests can be deleted",
            details={"current": ticket_snapshot(ticket)},
        )
    ticket.deleted_at = _now()
    db.add(ticket)
    db.add(_audit_entry(ticket.id, admin_id, "deleted"))
    await _commit(db)

    await audit.record_admin_action(
        admin_id=admin_id,
        action_type="loan_request_delete",
        target_type="loan_request",
        target_id=ticket_id,
        details={"status": ticket.status},
    )
    await dashboard.invalidate_admin_stats()


# ---------------------------------------------------------------------------
# Bulk admin operations (no version check)
# ---------------------------------------------------------------------------


def _validate_bulk_ids(ids: Iterable[UUID]) -> list[UUID]:
    unique = list(dict.fromkeys(ids))
    if not unique or len(unique) > MAX_BULK_IDS:
        raise ValidationError(
            code="invalid_bulk_ids",
            message=f"Provide between 1 and {MAX_BULK_IDS} loan request ids",
            details={"field": "ids"},
        )
    return unique


async def _live_tickets(db: AsyncSession, ids: list[UUID]) -> list[LoanRequest]:
    stmt = select(LoanRequest).where(LoanRequest.id.in_(ids), LoanRequest.deleted_at.is_(None))
    return list((await db.execute(stmt)).scalars().all())


async def bulk_reassign(db: AsyncSession, ids: Iterable[UUID], admin_id: UUID, assignee_id: UUID) -> int:
    """Reassign a batch in one unconditional update.

    Concurrent single-ticket writes are not detected here; each ticket still
    gets its own assignment record and audit entry.
    """
    unique = _validate_bulk_ids(ids)
    assignee = await _get_finance_employee(db, assignee_id)
    tickets = await _live_tickets(db, unique)
    if not tickets:
        return 0
    previous = {ticket.id: ticket.assignee_id for ticket in tickets}

    try:
        await db.execute(
            update(LoanRequest)
            .where(LoanRequest.id.in_(list(previous)))
            .values(
                assignee_id=assignee.id,
                version=LoanRequest.version + 1,
                last_activity_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        for ticket_id, old_assignee in previous.items():
            db.add(
                LoanRequestAssignment(
                    id=uuid4(),
                    loan_request_id=ticket_id,
                    assigned_from=old_assignee,
                    assigned_to=assignee.id,
                    assigned_by=admin_id,
                    comment="Bulk reassigned by admin",
                )
            )
            db.add(
                _audit_entry(
                    ticket_id,
                    admin_id,
                    "bulk_reassigned",
                    old_value={"assignee_id": old_assignee},
                    new_value={"assignee_id": assignee.id},
                )
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Bulk reassigned %d loan requests to %s by %s", len(previous), assignee.id, admin_id)
    await notifier.notify(
        assignee.id,
        "loan_request_assigned",
        {"loan_request_ids": list(previous)},
    )
    await dashboard.invalidate_admin_stats()
    return len(previous)


async def bulk_escalate(db: AsyncSession, ids: Iterable[UUID], admin_id: UUID, reason: str) -> int:
    """Escalate a batch in one unconditional update. See ``bulk_reassign``."""
    unique = _validate_bulk_ids(ids)
    reason = _validate_escalation_reason(reason)
    tickets = await _live_tickets(db, unique)
    if not tickets:
        return 0
    previous = {ticket.id: {"is_escalated": ticket.is_escalated, "priority": ticket.priority} for ticket in tickets}

    try:
        await db.execute(
            update(LoanRequest)
            .where(LoanRequest.id.in_(list(previous)))
            .values(
                is_escalated=True,
                priority=LoanRequestPriority.HIGH.value,
                escalation_reason=reason,
                version=LoanRequest.version + 1,
                last_activity_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        for ticket_id, old in previous.items():
            db.add(
                _audit_entry(
                    ticket_id,
                    admin_id,
                    "bulk_escalated",
                    old_value=old,
                    new_value={"is_escalated": True, "priority": LoanRequestPriority.HIGH.value},
                    comment=reason,
                )
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Bulk escalated %d loan requests by %s", len(previous), admin_id)
    await dashboard.invalidate_admin_stats()
    return len(previous)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_ticket_detail(db: AsyncSession, ticket_id: UUID) -> LoanRequestDetail:
    ticket = await _get_ticket(db, ticket_id)

    assignee = None
    if ticket.assignee_id is not None:
        user = await db.get(User, ticket.assignee_id)
        if user is not None:
            assignee = AssigneeRead(id=user.id, name=user.name, email=user.email)

    comments_stmt = (
        select(LoanRequestComment, User.name)
        .outerjoin(User, User.id == LoanRequestComment.author_id)
        .where(LoanRequestComment.loan_request_id == ticket_id)
        .order_by(LoanRequestComment.created_at.asc())
    )
    comments = [
        LoanRequestCommentRead.model_validate(comment).model_copy(update={"author_name": author_name})
        for comment, author_name in (await db.execute(comments_stmt)).all()
    ]

    audit_stmt = (
        select(LoanRequestAuditLog, User.name)
        .outerjoin(User, User.id == LoanRequestAuditLog.actor_id)
        .where(LoanRequestAuditLog.loan_request_id == ticket_id)
        .order_by(LoanRequestAuditLog.created_at.asc())
    )
    audit_log = [
        LoanRequestAuditEntry.model_validate(entry).model_copy(update={"actor_name": actor_name})
        for entry, actor_name in (await db.execute(audit_stmt)).all()
    ]

    return LoanRequestDetail(
        ticket=LoanRequestRead.model_validate(ticket),
        assignee=assignee,
        comments=comments,
        audit_log=audit_log,
    )


async def list_tickets(
    db: AsyncSession,
    actor_id: UUID,
    *,
    status: LoanRequestStatus | None = None,
    assignee: str | None = None,
    priority: LoanRequestPriority | None = None,
    overdue: bool = False,
    escalated: bool | None = None,
    search: str | None = None,
    sort: str = "newest",
    limit: int = 20,
    offset: int = 0,
    now: datetime | None = None,
) -> tuple[list[LoanRequestSummary], int]:
    """Queue listing. ``assignee`` is ``"me"``, ``"unassigned"`` or a user id."""
    now = now or _now()
    conditions: list[Any] = [LoanRequest.deleted_at.is_(None)]
    if status is not None:
        conditions.append(LoanRequest.status == LoanRequestStatus(status).value)
    if assignee == "me":
        conditions.append(LoanRequest.assignee_id == actor_id)
    elif assignee == "unassigned":
        conditions.append(LoanRequest.assignee_id.is_(None))
    elif assignee:
        try:
            conditions.append(LoanRequest.assignee_id == UUID(str(assignee)))
        except ValueError as exc:
            raise ValidationError(
                code="invalid_assignee_filter",
                message="assignee must be 'me', 'unassigned' or a user id",
                details={"field": "assignee"},
            ) from exc
    if priority is not None:
        conditions.append(LoanRequest.priority == LoanRequestPriority(priority).value)
    if escalated is not None:
        conditions.append(LoanRequest.is_escalated.is_(escalated))
    if overdue:
        conditions.append(LoanRequest.sla_due_at < now)
        conditions.append(LoanRequest.status.in_(OPEN_LOAN_REQUEST_STATUSES))
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                LoanRequest.user_name.ilike(pattern),
                LoanRequest.user_phone.ilike(pattern),
                LoanRequest.user_email.ilike(pattern),
                cast(LoanRequest.id, String).ilike(pattern),
            )
        )

    orderings = {
        "newest": (LoanRequest.created_at.desc(),),
        "oldest": (LoanRequest.created_at.asc(),),
        "highest": (LoanRequest.loan_amount_needed.desc(),),
        "sla": (LoanRequest.sla_due_at.asc().nulls_last(),),
    }
    if sort not in orderings:
        raise ValidationError(
            code="invalid_sort",
            message=f"sort must be one of {', '.join(orderings)}",
            details={"field": "sort"},
        )

    count_stmt = select(func.count()).select_from(LoanRequest).where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)

    assignee_user = aliased(User)
    stmt = (
        select(LoanRequest, assignee_user.name)
        .outerjoin(assignee_user, assignee_user.id == LoanRequest.assignee_id)
        .where(*conditions)
        .order_by(*orderings[sort], LoanRequest.id)
        .limit(limit)
        .offset(offset)
    )
    rows = (await db.execute(stmt)).all()
    items = [
        LoanRequestSummary(
            id=ticket.id,
            user_name=ticket.user_name,
            user_phone=ticket.user_phone,
            user_email=ticket.user_email,
            loan_type=ticket.loan_type,
            loan_amount_needed=ticket.loan_amount_needed,
            property_category=ticket.property_category,
            status=ticket.status,
            priority=ticket.priority,
            is_escalated=ticket.is_escalated,
            assignee_id=ticket.assignee_id,
            assignee_name=assignee_name,
            sla_due_at=ticket.sla_due_at,
            last_activity_at=ticket.last_activity_at,
            created_at=ticket.created_at,
        )
        for ticket, assignee_name in rows
    ]
    return items, total


async def ticket_stats(db: AsyncSession, *, now: datetime | None = None) -> LoanRequestStats:
    now = now or _now()
    live = LoanRequest.deleted_at.is_(None)

    async def count(*conditions) -> int:
        stmt = select(func.count()).select_from(LoanRequest).where(live, *conditions)
        return int((await db.execute(stmt)).scalar_one() or 0)

    total = await count()
    unassigned = await count(LoanRequest.assignee_id.is_(None))
    escalated = await count(LoanRequest.is_escalated.is_(True))
    overdue = await count(
        LoanRequest.sla_due_at < now,
        LoanRequest.status.in_(OPEN_LOAN_REQUEST_STATUSES),
    )
    by_status_stmt = (
        select(LoanRequest.status, func.count())
        .where(live)
        .group_by(LoanRequest.status)
    )
    by_status = {row[0]: int(row[1]) for row in (await db.execute(by_status_stmt)).all()}
    return LoanRequestStats(
        total=total,
        unassigned=unassigned,
        escalated=escalated,
        overdue=overdue,
        by_status=by_status,
    )
