from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Protocol

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class TTLCache(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def invalidate(self, key: str) -> None: ...


class InMemoryTTLCache:
    """Process-local cache; ``clock`` returns monotonic seconds and is swappable in tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._entries[key] = (self._clock() + ttl_seconds, value)

    async def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


class RedisTTLCache:
    """JSON values in Redis with ``SETEX``. Redis errors degrade to cache misses."""

    def __init__(self, client: Redis, *, prefix: str = "cache") -> None:
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> Any | None:
        try:
            cached = await self._client.get(self._key(key))
        except Exception:
            logger.warning("Cache read failed for %s", key, exc_info=True)
            return None
        if not cached:
            return None
        return json.loads(cached)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self._client.setex(self._key(key), ttl_seconds, json.dumps(value, default=str))
        except Exception:
            logger.warning("Cache write failed for %s", key, exc_info=True)

    async def invalidate(self, key: str) -> None:
        try:
            await self._client.delete(self._key(key))
        except Exception:
            logger.warning("Cache invalidation failed for %s", key, exc_info=True)
