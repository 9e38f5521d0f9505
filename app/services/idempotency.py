from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ValidationError
from app.models.pending_change_idempotency import PendingChangeIdempotency
from app.schemas.pending_changes import EntityType


@dataclass(frozen=True)
class ExistingResult:
    change_id: UUID
    status: str
    created_at: datetime | None


def parse_idempotency_key(value: str | UUID | None) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    cleaned = value.strip()
    if not cleaned:
        return None
    try:
        return UUID(cleaned)
    except ValueError as exc:
        raise ValidationError(
            code="invalid_idempotency_key",
            message="Idempotency-Key must be a UUID",
            details={"field": "Idempotency-Key"},
        ) from exc


async def reserve(
    db: AsyncSession,
    key: UUID,
    *,
    entity_type: EntityType,
    change_model,
) -> ExistingResult | None:
    """Return the change a previous call with ``key`` produced, or ``None`` if the key is new.

    The reported status is the change's current status when the row still exists,
    otherwise the status stored alongside the key.
    """
    record = await db.get(PendingChangeIdempotency, key)
    if record is None:
        return None
    if record.entity_type != entity_type.value:
        raise ValidationError(
            code="idempotency_key_reused",
            message="Idempotency-Key was already used for a different kind of change",
            details={"entity_type": record.entity_type},
        )
    stmt = select(change_model).where(change_model.id == record.change_id)
    change = (await db.execute(stmt)).scalar_one_or_none()
    if change is None:
        return ExistingResult(change_id=record.change_id, status=record.status, created_at=record.created_at)
    return ExistingResult(change_id=change.id, status=change.status, created_at=change.created_at)


async def record(
    db: AsyncSession,
    key: UUID,
    *,
    entity_type: EntityType,
    change_id: UUID,
) -> PendingChangeIdempotency:
    """Persist ``key -> change_id``. Recording the same key twice is a caller bug."""
    existing = await db.get(PendingChangeIdempotency, key)
    if existing is not None:
        raise RuntimeError(f"Idempotency key {key} already recorded for change {existing.change_id}")
    entry = PendingChangeIdempotency(
        idempotency_key=key,
        entity_type=entity_type.value,
        change_id=change_id,
        status="completed",
    )
    db.add(entry)
    return entry
