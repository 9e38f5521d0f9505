from fastapi import APIRouter

from app.api.v1.routers import (
    assignments,
    catalog,
    dashboard,
    health,
    loan_requests,
    pending_changes,
    uploads,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(uploads.router)
api_router.include_router(pending_changes.router)
api_router.include_router(pending_changes.admin_router)
api_router.include_router(assignments.router)
api_router.include_router(catalog.property_router)
api_router.include_router(catalog.banner_router)
api_router.include_router(loan_requests.router)
api_router.include_router(loan_requests.finance_router)
api_router.include_router(loan_requests.admin_router)
api_router.include_router(dashboard.router)

__all__ = ["api_router"]
