from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models import User
from app.schemas.dashboard import DashboardStats
from app.services import dashboard

router = APIRouter(prefix="/admin/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    db: AsyncSession = Depends(deps.get_db_session),
    _: User = Depends(deps.require_admin),
):
    return await dashboard.get_admin_stats(db)
