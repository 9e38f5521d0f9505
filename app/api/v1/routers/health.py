from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.core.health import live_payload, ready_payload
from app.core.limiter import limiter

router = APIRouter(tags=["health"])


@router.get("/health/live", summary="Service liveness check")
@limiter.exempt
async def health_live() -> dict:
    return await live_payload()


@router.get("/health/ready", summary="Database, Redis and storage readiness")
@limiter.exempt
async def health_ready():
    payload = await ready_payload()
    if not payload["ready"]:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=payload)
    return payload
