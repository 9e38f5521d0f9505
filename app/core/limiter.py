from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.settings import settings


def actor_or_remote_address(request: Request) -> str:
    """Key per-user limits on the authenticated actor, falling back to the client address."""
    actor_id = getattr(request.state, "actor_id", None)
    if actor_id:
        return f"actor:{actor_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.redis_url,
)

__all__ = ["actor_or_remote_address", "limiter"]
