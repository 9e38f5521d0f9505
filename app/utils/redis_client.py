from functools import lru_cache

from redis.asyncio import Redis

from app.core.settings import settings
from app.utils.ttl_cache import InMemoryTTLCache, RedisTTLCache, TTLCache


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=True)


def redis_key(*parts: object) -> str:
    return ":".join(str(part) for part in parts)


@lru_cache(maxsize=1)
def get_dashboard_cache() -> TTLCache:
    if settings.dashboard_cache_backend == "memory":
        return InMemoryTTLCache()
    return RedisTTLCache(get_redis_client(), prefix="dashboard")
