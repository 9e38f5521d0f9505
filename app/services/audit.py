from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from fastapi.encoders import jsonable_encoder

from app.core.logging import get_audit_logger
from app.db.session import AsyncSessionLocal
from app.models.admin_audit_log import AdminAuditLog

logger = logging.getLogger(__name__)


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
        },
    )


def model_snapshot(model: Any, *, exclude: Iterable[str] | None = None) -> dict[str, Any]:
    """Column values keyed by mapped attribute name, JSON-safe."""
    if model is None:
        return {}
    excluded = set(exclude or [])
    data: dict[str, Any] = {}
    for attr in model.__mapper__.column_attrs:
        if attr.key in excluded:
            continue
        data[attr.key] = getattr(model, attr.key)
    return serialize_for_audit(data)


async def record_admin_action(
    *,
    admin_id: UUID | None,
    action_type: str,
    target_type: str,
    target_id: Any | None,
    details: dict[str, Any] | None = None,
) -> None:
    """Append an admin audit entry in its own session.

    Best-effort: a failed write is logged and swallowed so the audited operation
    keeps its result.
    """
    serialized = serialize_for_audit(details) if details is not None else None
    get_audit_logger().info(
        "%s %s:%s",
        action_type,
        target_type,
        target_id,
        extra={"admin_id": str(admin_id) if admin_id else None},
    )
    try:
        async with AsyncSessionLocal() as session:
            session.add(
                AdminAuditLog(
                    admin_id=admin_id,
                    action_type=action_type,
                    target_type=target_type,
                    target_id=str(target_id) if target_id is not None else None,
                    details=serialized,
                )
            )
            await session.commit()
    except Exception:
        logger.warning("Admin audit write failed for %s on %s:%s", action_type, target_type, target_id, exc_info=True)
