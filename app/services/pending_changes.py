"""Moderated changes to canonical properties and banners.

Employees and agents never write ``properties`` or ``banners`` directly. They
submit a pending change which an admin approves, rejects or sends back for
revision. Approval copies the payload onto the canonical row in two commits
(canonical write, then change status) and compensates the first if the second
fails.

Statuses::

    draft <-> pending
    pending -> needs_revision -> draft | pending
    pending | needs_revision -> approved | rejected   (terminal)

At most one non-draft ``pending`` change may exist per (target, proposer). The
check runs in code before each write and is backed by a partial unique index.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID, uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.core.roles import Role
from app.models.banner import Banner
from app.models.pending_change import BannerPendingChange, PropertyPendingChange
from app.models.property import Property
from app.models.property_assignment import PropertyEmployeeAssignment
from app.models.upload import Upload
from app.schemas.pending_changes import (
    EntityType,
    PendingChangeDTO,
    PendingChangeStatus,
    SubmitResult,
)
from app.schemas.uploads import UploadStatus
from app.services import assignments, audit, dashboard, idempotency, notifier, payload_policy, uploads

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeTarget:
    entity_type: EntityType
    change_model: type
    canonical_model: type
    label: str
    soft_deletes: bool

    @property
    def fallback_title(self) -> str:
        return f"this {self.label}"


TARGETS: dict[EntityType, ChangeTarget] = {
    EntityType.PROPERTY: ChangeTarget(
        entity_type=EntityType.PROPERTY,
        change_model=PropertyPendingChange,
        canonical_model=Property,
        label="property",
        soft_deletes=True,
    ),
    EntityType.BANNER: ChangeTarget(
        entity_type=EntityType.BANNER,
        change_model=BannerPendingChange,
        canonical_model=Banner,
        label="banner",
        soft_deletes=False,
    ),
}

PROPOSER_EDITABLE = {PendingChangeStatus.DRAFT.value, PendingChangeStatus.NEEDS_REVISION.value}
WITHDRAWABLE = {PendingChangeStatus.DRAFT.value, PendingChangeStatus.PENDING.value}
REVIEWABLE = {PendingChangeStatus.PENDING.value, PendingChangeStatus.NEEDS_REVISION.value}


def get_target(entity_type: EntityType | str) -> ChangeTarget:
    return TARGETS[EntityType(entity_type)]


def to_dto(entity_type: EntityType, change) -> PendingChangeDTO:
    return PendingChangeDTO(
        id=change.id,
        entity_type=entity_type,
        target_id=change.target_id,
        proposer_id=change.proposer_id,
        proposed_payload=change.proposed_payload or {},
        diff_summary=change.diff_summary,
        notes=change.notes,
        status=change.status,
        is_draft=bool(change.is_draft),
        reason=change.reason,
        reviewed_at=change.reviewed_at,
        reviewed_by_admin_id=change.reviewed_by_admin_id,
        created_at=change.created_at,
        updated_at=change.updated_at,
    )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def _load_canonical(
    db: AsyncSession,
    target: ChangeTarget,
    target_id: UUID,
    *,
    for_update: bool = False,
):
    model = target.canonical_model
    stmt = select(model).where(model.id == target_id)
    if target.soft_deletes:
        stmt = stmt.where(model.deleted.is_(False))
    if for_update:
        stmt = stmt.with_for_update()
    canonical = (await db.execute(stmt)).scalar_one_or_none()
    if canonical is None:
        raise NotFoundError(
            code=f"{target.label}_not_found",
            message=f"{target.label.capitalize()} not found",
            details={},
        )
    return canonical


async def _authorize(
    db: AsyncSession,
    target: ChangeTarget,
    actor_id: UUID,
    role: Role,
    target_id: UUID | None,
) -> None:
    # Raises for roles that cannot propose this entity type at all.
    payload_policy.allowed_fields(target.entity_type, role)
    if target.entity_type is EntityType.BANNER:
        return
    if target_id is None:
        if role is Role.AGENT:
            raise AuthorizationError(
                code="change_not_permitted",
                message="Agents cannot propose new properties",
                details={},
            )
        return
    if not await assignments.is_authorized(db, actor_id, role, target_id):
        raise AuthorizationError(
            code="not_assigned",
            message="You are not assigned to this property",
            details={},
        )


async def _find_live_pending(
    db: AsyncSession,
    target: ChangeTarget,
    target_id: UUID,
    proposer_id: UUID,
    *,
    exclude_id: UUID | None = None,
):
    model = target.change_model
    stmt = select(model).where(
        model.target_id == target_id,
        model.proposer_id == proposer_id,
        model.status == PendingChangeStatus.PENDING.value,
        model.is_draft.is_(False),
    )
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    return (await db.execute(stmt.limit(1))).scalars().first()


def _pending_conflict(target: ChangeTarget, existing) -> ConflictError:
    title = existing.display_title or target.fallback_title
    return ConflictError(
        code="pending_change_exists",
        message=(
            f"There is already a pending change for {title} under review. "
            "Please withdraw the existing pending change before submitting a new one."
        ),
        details={
            "existing_change_id": str(existing.id),
            "existing_change_title": title,
        },
    )


async def _get_owned_change(db: AsyncSession, target: ChangeTarget, change_id: UUID, actor_id: UUID):
    model = target.change_model
    stmt = select(model).where(model.id == change_id, model.proposer_id == actor_id)
    change = (await db.execute(stmt)).scalar_one_or_none()
    if change is None:
        raise NotFoundError(code="change_not_found", message="Pending change not found", details={})
    return change


async def _get_change_for_review(db: AsyncSession, target: ChangeTarget, change_id: UUID):
    model = target.change_model
    stmt = select(model).where(model.id == change_id).with_for_update()
    change = (await db.execute(stmt)).scalar_one_or_none()
    if change is None:
        raise NotFoundError(code="change_not_found", message="Pending change not found", details={})
    return change


def _require_status(change, allowed: set[str], action: str) -> None:
    if change.status not in allowed:
        raise ConflictError(
            code="invalid_change_status",
            message=f"Cannot {action} a change in status {change.status}",
            details={
                "change_id": str(change.id),
                "status": change.status,
                "allowed_statuses": sorted(allowed),
            },
        )


async def _release_uploads(db: AsyncSession, change_id: UUID, *, keep: Iterable[UUID] = ()) -> None:
    stmt = update(Upload).where(Upload.referenced_by_change_id == change_id)
    kept = list(keep)
    if kept:
        stmt = stmt.where(Upload.id.not_in(kept))
    await db.execute(
        stmt.values(
            status=UploadStatus.UPLOADED.value,
            referenced_entity_type=None,
            referenced_by_change_id=None,
        )
        .execution_options(synchronize_session=False)
    )


# ---------------------------------------------------------------------------
# Proposer operations
# ---------------------------------------------------------------------------


async def submit_change(
    db: AsyncSession,
    entity_type: EntityType,
    actor_id: UUID,
    role: Role,
    *,
    target_id: UUID | None,
    payload: dict[str, Any],
    is_draft: bool = False,
    idempotency_key: str | UUID | None = None,
    uploaded_asset_ids: Iterable[UUID] = (),
    diff_summary: dict[str, Any] | None = None,
    notes: str | None = None,
) -> SubmitResult:
    target = get_target(entity_type)
    key = idempotency.parse_idempotency_key(idempotency_key)
    if key is not None:
        replay = await idempotency.reserve(
            db, key, entity_type=target.entity_type, change_model=target.change_model
        )
        if replay is not None:
            return SubmitResult(
                change_id=replay.change_id,
                status=replay.status,
                created_at=replay.created_at,
                idempotent=True,
            )

    await _authorize(db, target, actor_id, role, target_id)
    if target_id is not None:
        await _load_canonical(db, target, target_id)

    normalized = payload_policy.validate_payload(
        target.entity_type, role, payload, is_create=target_id is None
    )
    asset_ids = list(uploaded_asset_ids)
    await uploads.validate_ownership(db, asset_ids, actor_id)

    if not is_draft and target_id is not None:
        existing = await _find_live_pending(db, target, target_id, actor_id)
        if existing is not None:
            raise _pending_conflict(target, existing)

    status = PendingChangeStatus.DRAFT.value if is_draft else PendingChangeStatus.PENDING.value
    change = target.change_model(
        id=uuid4(),
        target_id=target_id,
        proposer_id=actor_id,
        proposed_payload=normalized,
        diff_summary=diff_summary,
        notes=notes,
        status=status,
        is_draft=is_draft,
    )
    db.add(change)
    try:
        await db.flush()
        await uploads.mark_referenced(db, asset_ids, entity_type=target.entity_type, change_id=change.id)
        if key is not None:
            await idempotency.record(db, key, entity_type=target.entity_type, change_id=change.id)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if key is not None:
            replay = await idempotency.reserve(
                db, key, entity_type=target.entity_type, change_model=target.change_model
            )
            if replay is not None:
                return SubmitResult(
                    change_id=replay.change_id,
                    status=replay.status,
                    created_at=replay.created_at,
                    idempotent=True,
                )
        if not is_draft and target_id is not None:
            existing = await _find_live_pending(db, target, target_id, actor_id)
            if existing is not None:
                raise _pending_conflict(target, existing)
        raise
    await db.refresh(change)

    logger.info(
        "Pending %s change %s submitted by %s as %s",
        target.label,
        change.id,
        actor_id,
        change.status,
    )
    if change.status == PendingChangeStatus.PENDING.value:
        await dashboard.invalidate_admin_stats()
    return SubmitResult(change_id=change.id, status=change.status, created_at=change.created_at)


async def update_draft(
    db: AsyncSession,
    entity_type: EntityType,
    change_id: UUID,
    actor_id: UUID,
    role: Role,
    *,
    payload: dict[str, Any],
    diff_summary: dict[str, Any] | None = None,
    notes: str | None = None,
    uploaded_asset_ids: Iterable[UUID] = (),
):
    """Replace the payload of a draft or needs-revision change wholesale."""
    target = get_target(entity_type)
    change = await _get_owned_change(db, target, change_id, actor_id)
    _require_status(change, PROPOSER_EDITABLE, "edit")

    await _authorize(db, target, actor_id, role, change.target_id)
    if change.target_id is not None:
        await _load_canonical(db, target, change.target_id)

    normalized = payload_policy.validate_payload(
        target.entity_type, role, payload, is_create=change.target_id is None
    )
    asset_ids = list(uploaded_asset_ids)
    await uploads.validate_ownership(db, asset_ids, actor_id, change_id=change.id)

    change.proposed_payload = normalized
    change.diff_summary = diff_summary
    change.notes = notes
    db.add(change)
    # Uploads dropped from the new payload become reusable.
    await _release_uploads(db, change.id, keep=asset_ids)
    await uploads.mark_referenced(db, asset_ids, entity_type=target.entity_type, change_id=change.id)
    await db.commit()
    await db.refresh(change)
    return change


async def submit_draft(db: AsyncSession, entity_type: EntityType, change_id: UUID, actor_id: UUID):
    """Send a draft or needs-revision change to review."""
    target = get_target(entity_type)
    change = await _get_owned_change(db, target, change_id, actor_id)
    _require_status(change, PROPOSER_EDITABLE, "submit")
    target_id = change.target_id

    if target_id is not None:
        await _load_canonical(db, target, target_id)
        existing = await _find_live_pending(db, target, target_id, actor_id, exclude_id=change_id)
        if existing is not None:
            raise _pending_conflict(target, existing)

    change.status = PendingChangeStatus.PENDING.value
    change.is_draft = False
    db.add(change)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if target_id is not None:
            existing = await _find_live_pending(db, target, target_id, actor_id, exclude_id=change_id)
            if existing is not None:
                raise _pending_conflict(target, existing)
        raise
    await db.refresh(change)
    await dashboard.invalidate_admin_stats()
    return change


async def withdraw(
    db: AsyncSession,
    entity_type: EntityType,
    change_id: UUID,
    actor_id: UUID,
    *,
    move_to_draft: bool = False,
):
    """Pull a draft or pending change back. Returns the change when kept as a draft, else ``None``."""
    target = get_target(entity_type)
    change = await _get_owned_change(db, target, change_id, actor_id)
    _require_status(change, WITHDRAWABLE, "withdraw")

    if move_to_draft:
        change.status = PendingChangeStatus.DRAFT.value
        change.is_draft = True
        db.add(change)
        await db.commit()
        await db.refresh(change)
        await dashboard.invalidate_admin_stats()
        return change

    await _release_uploads(db, change.id)
    await db.delete(change)
    await db.commit()
    await dashboard.invalidate_admin_stats()
    return None


async def discard_draft(db: AsyncSession, entity_type: EntityType, change_id: UUID, actor_id: UUID) -> None:
    target = get_target(entity_type)
    change = await _get_owned_change(db, target, change_id, actor_id)
    _require_status(change, {PendingChangeStatus.DRAFT.value}, "discard")
    await _release_uploads(db, change.id)
    await db.delete(change)
    await db.commit()


# ---------------------------------------------------------------------------
# Reviewer operations
# ---------------------------------------------------------------------------


def _column_values(target: ChangeTarget, payload: dict[str, Any]) -> dict[str, Any]:
    values = dict(payload)
    if target.entity_type is EntityType.PROPERTY and "price" in values:
        price = values["price"]
        values["price"] = None if price in (None, "") else Decimal(str(price))
    return values


def _capture(row, names: Iterable[str]) -> dict[str, Any]:
    return {name: copy.deepcopy(getattr(row, name)) for name in names}


async def _compensate_canonical_write(
    db: AsyncSession,
    target: ChangeTarget,
    canonical_id: UUID,
    *,
    snapshot: dict[str, Any] | None,
    change_id: UUID,
) -> None:
    """Undo a committed canonical write. Failures are logged for manual reconciliation.

    Runs after a rollback, when every loaded row is expired, so it works from ids and
    the snapshot only and issues plain UPDATE/DELETE statements.
    """
    model = target.canonical_model
    try:
        if snapshot is None:
            if target.entity_type is EntityType.PROPERTY:
                await db.execute(
                    delete(PropertyEmployeeAssignment)
                    .where(PropertyEmployeeAssignment.property_id == canonical_id)
                    .execution_options(synchronize_session=False)
                )
            await db.execute(
                delete(model).where(model.id == canonical_id).execution_options(synchronize_session=False)
            )
        else:
            await db.execute(
                update(model)
                .where(model.id == canonical_id)
                .values(**snapshot)
                .execution_options(synchronize_session=False)
            )
        await db.commit()
        logger.warning(
            "Rolled back %s %s after failed approval of change %s",
            target.label,
            canonical_id,
            change_id,
        )
    except Exception:
        logger.exception(
            "Rollback of %s %s after failed approval of change %s did not complete; "
            "manual reconciliation required",
            target.label,
            canonical_id,
            change_id,
            extra={"snapshot": audit.serialize_for_audit(snapshot)},
        )
        try:
            await db.rollback()
        except Exception:
            logger.exception("Session rollback failed after compensation of change %s", change_id)


async def approve(
    db: AsyncSession,
    entity_type: EntityType,
    change_id: UUID,
    reviewer_id: UUID,
    *,
    apply_as: str = "proposed",
    merged_payload: dict[str, Any] | None = None,
):
    """Apply a pending change to its canonical row and mark it approved.

    Phase one commits the canonical write. Phase two commits the status change. If
    phase two fails the canonical row is restored from the snapshot (or the new
    row deleted) and the original error propagates, so the change is never left
    approved without its write, nor the write left without an approved change.
    """
    target = get_target(entity_type)
    change = await _get_change_for_review(db, target, change_id)
    _require_status(change, REVIEWABLE, "approve")

    if apply_as == "merged_payload":
        if not merged_payload:
            raise ValidationError(
                code="merged_payload_required",
                message="merged_payload is required when apply_as is merged_payload",
                details={"field": "merged_payload"},
            )
        payload = payload_policy.validate_payload(
            target.entity_type, Role.ADMIN, merged_payload, is_create=change.target_id is None
        )
    elif apply_as == "proposed":
        payload = change.proposed_payload or {}
    else:
        raise ValidationError(
            code="invalid_apply_as",
            message="apply_as must be proposed or merged_payload",
            details={"field": "apply_as"},
        )
    values = _column_values(target, payload)

    # Phase one: canonical write.
    snapshot: dict[str, Any] | None
    try:
        if change.target_id is not None:
            canonical = await _load_canonical(db, target, change.target_id, for_update=True)
            snapshot = _capture(canonical, values)
            for name, value in values.items():
                setattr(canonical, name, value)
            db.add(canonical)
        else:
            snapshot = None
            canonical = target.canonical_model(id=uuid4(), **values)
            if target.entity_type is EntityType.PROPERTY:
                canonical.assigned_employee_id = change.proposer_id
                canonical.created_by_employee_id = change.proposer_id
            db.add(canonical)
            if target.entity_type is EntityType.PROPERTY:
                await db.flush()
                db.add(
                    PropertyEmployeeAssignment(
                        property_id=canonical.id,
                        employee_id=change.proposer_id,
                        assigned_by_admin_id=reviewer_id,
                    )
                )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    # Phase two: finalize the change. A rollback expires both rows, so keep the id.
    canonical_id = canonical.id
    try:
        change.status = PendingChangeStatus.APPROVED.value
        change.is_draft = False
        change.reviewed_at = datetime.now(timezone.utc)
        change.reviewed_by_admin_id = reviewer_id
        change.reason = None
        if change.target_id is None:
            change.target_id = canonical_id
        db.add(change)
        await db.commit()
    except Exception:
        await db.rollback()
        await _compensate_canonical_write(db, target, canonical_id, snapshot=snapshot, change_id=change_id)
        raise

    await db.refresh(canonical)
    logger.info("Pending %s change %s approved by %s", target.label, change_id, reviewer_id)
    await audit.record_admin_action(
        admin_id=reviewer_id,
        action_type=f"{target.label}_change_approve",
        target_type=f"{target.label}_pending_change",
        target_id=change_id,
        details={
            "target_id": canonical.id,
            "apply_as": apply_as,
            "before": snapshot,
            "after": values,
        },
    )
    await notifier.notify(
        change.proposer_id,
        "pending_change_updated",
        {"entity_type": target.entity_type.value, "change_id": change_id, "status": change.status},
    )
    await dashboard.invalidate_admin_stats()
    return canonical


async def reject(
    db: AsyncSession,
    entity_type: EntityType,
    change_id: UUID,
    reviewer_id: UUID,
    reason: str,
):
    target = get_target(entity_type)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError(
            code="reason_required",
            message="Rejection reason is required",
            details={"field": "reason"},
        )
    change = await _get_change_for_review(db, target, change_id)
    _require_status(change, REVIEWABLE, "reject")

    change.status = PendingChangeStatus.REJECTED.value
    change.is_draft = False
    change.reason = reason
    change.reviewed_at = datetime.now(timezone.utc)
    change.reviewed_by_admin_id = reviewer_id
    db.add(change)
    await db.commit()
    await db.refresh(change)

    await audit.record_admin_action(
        admin_id=reviewer_id,
        action_type=f"{target.label}_change_reject",
        target_type=f"{target.label}_pending_change",
        target_id=change_id,
        details={"reason": reason},
    )
    await notifier.notify(
        change.proposer_id,
        "pending_change_updated",
        {"entity_type": target.entity_type.value, "change_id": change_id, "status": change.status},
    )
    await dashboard.invalidate_admin_stats()
    return change


async def request_revision(
    db: AsyncSession,
    entity_type: EntityType,
    change_id: UUID,
    reviewer_id: UUID,
    comments: str,
):
    target = get_target(entity_type)
    comments = (comments or "").strip()
    if not comments:
        raise ValidationError(
            code="comments_required",
            message="Revision comments are required",
            details={"field": "comments"},
        )
    change = await _get_change_for_review(db, target, change_id)
    _require_status(change, {PendingChangeStatus.PENDING.value}, "request revision for")

    change.status = PendingChangeStatus.NEEDS_REVISION.value
    change.is_draft = False
    change.reason = comments
    change.reviewed_at = datetime.now(timezone.utc)
    change.reviewed_by_admin_id = reviewer_id
    db.add(change)
    await db.commit()
    await db.refresh(change)

    await audit.record_admin_action(
        admin_id=reviewer_id,
        action_type=f"{target.label}_change_request_revision",
        target_type=f"{target.label}_pending_change",
        target_id=change_id,
        details={"comments": comments},
    )
    await notifier.notify(
        change.proposer_id,
        "pending_change_updated",
        {"entity_type": target.entity_type.value, "change_id": change_id, "status": change.status},
    )
    await dashboard.invalidate_admin_stats()
    return change


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def list_changes(
    db: AsyncSession,
    *,
    entity_type: EntityType | None = None,
    status: PendingChangeStatus | None = None,
    proposer_id: UUID | None = None,
    limit: int = 50,
    cursor: datetime | None = None,
) -> tuple[list[PendingChangeDTO], datetime | None]:
    """Newest first across the selected entity types, paged by ``created_at``."""
    targets = [get_target(entity_type)] if entity_type else list(TARGETS.values())
    items: list[PendingChangeDTO] = []
    for target in targets:
        model = target.change_model
        stmt = select(model)
        if status is not None:
            stmt = stmt.where(model.status == PendingChangeStatus(status).value)
        if proposer_id is not None:
            stmt = stmt.where(model.proposer_id == proposer_id)
        if cursor is not None:
            stmt = stmt.where(model.created_at < cursor)
        stmt = stmt.order_by(model.created_at.desc(), model.id.desc()).limit(limit + 1)
        rows = (await db.execute(stmt)).scalars().all()
        items.extend(to_dto(target.entity_type, row) for row in rows)

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    items.sort(key=lambda item: item.created_at or epoch, reverse=True)
    page = items[:limit]
    next_cursor = page[-1].created_at if len(items) > limit and page else None
    return page, next_cursor


async def get_change(
    db: AsyncSession,
    change_id: UUID,
    *,
    actor_id: UUID,
    role: Role,
) -> tuple[PendingChangeDTO, dict[str, Any] | None]:
    """Resolve ``change_id`` across entity types, with the current canonical row for comparison.

    Non-admins only see their own changes.
    """
    for target in TARGETS.values():
        model = target.change_model
        change = (await db.execute(select(model).where(model.id == change_id))).scalar_one_or_none()
        if change is None:
            continue
        if not role.is_admin and change.proposer_id != actor_id:
            break
        current = None
        if change.target_id is not None:
            canonical = await db.get(target.canonical_model, change.target_id)
            current = audit.model_snapshot(canonical) if canonical is not None else None
        return to_dto(target.entity_type, change), current
    raise NotFoundError(code="change_not_found", message="Pending change not found", details={})
