from app.utils.ttl_cache import InMemoryTTLCache, RedisTTLCache, TTLCache

__all__ = [
    "InMemoryTTLCache",
    "RedisTTLCache",
    "TTLCache",
]
