from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import UUID

from fastapi.encoders import jsonable_encoder

from app.utils.redis_client import get_redis_client, redis_key


CHANNEL_PREFIX = "notifications"
logger = logging.getLogger(__name__)


def channel_for_user(user_id: UUID | str) -> str:
    return redis_key(CHANNEL_PREFIX, user_id)


async def notify(recipient_id: UUID | str | None, event: str, payload: dict[str, Any]) -> None:
    """Publish ``event`` to the recipient's channel. Delivery failures are logged, never raised."""
    if recipient_id is None:
        return
    message = json.dumps(
        jsonable_encoder(
            {
                "event": event,
                "payload": payload,
                "sent_at": datetime.now(timezone.utc),
            }
        )
    )
    try:
        redis = get_redis_client()
        await redis.publish(channel_for_user(recipient_id), message)
    except Exception as exc:
        logger.warning("Notification %s to %s not delivered: %s", event, recipient_id, exc)


async def notify_many(recipient_ids: Iterable[UUID | str], event: str, payload: dict[str, Any]) -> None:
    for recipient_id in recipient_ids:
        await notify(recipient_id, event, payload)
