from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models import User
from app.schemas.catalog import (
    BannerDTO,
    BannerReorderRequest,
    CatalogPayload,
    PropertyDetail,
    PropertyDTO,
    PropertyListResponse,
)
from app.schemas.pending_changes import EntityType
from app.services import catalog, pending_changes

property_router = APIRouter(prefix="/admin/properties", tags=["admin-properties"])
banner_router = APIRouter(prefix="/admin/banners", tags=["admin-banners"])


@property_router.get("", response_model=PropertyListResponse)
async def list_properties(
    q: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=20, ge=1, le=catalog.MAX_PAGE_SIZE),
    cursor: datetime | None = Query(default=None),
    db: AsyncSession = Depends(deps.get_db_session),
    _: User = Depends(deps.require_admin),
):
    items, next_cursor = await catalog.list_properties(db, q=q, limit=limit, cursor=cursor)
    return PropertyListResponse(
        items=[PropertyDTO.model_validate(prop) for prop in items], next_cursor=next_cursor
    )


@property_router.get("/{property_id}", response_model=PropertyDetail)
async def get_property(
    property_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    _: User = Depends(deps.require_admin),
):
    prop, pending = await catalog.get_property(db, property_id)
    return PropertyDetail(
        property=PropertyDTO.model_validate(prop),
        pending_changes=[pending_changes.to_dto(EntityType.PROPERTY, change) for change in pending],
    )


@property_router.post("", response_model=PropertyDTO, status_code=status.HTTP_201_CREATED)
async def create_property(
    payload: CatalogPayload = Body(...),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    return await catalog.create_property(db, current_user.id, payload)


@property_router.patch("/{property_id}", response_model=PropertyDTO)
async def update_property(
    property_id: UUID,
    payload: CatalogPayload = Body(...),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    return await catalog.update_property(db, property_id, current_user.id, payload)


@property_router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_property(
    property_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
) -> None:
    await catalog.soft_delete_property(db, property_id, current_user.id)


@banner_router.get("", response_model=list[BannerDTO])
async def list_banners(
    db: AsyncSession = Depends(deps.get_db_session),
    _: User = Depends(deps.require_admin),
):
    return await catalog.list_banners(db)


@banner_router.post("", response_model=BannerDTO, status_code=status.HTTP_201_CREATED)
async def create_banner(
    payload: CatalogPayload = Body(...),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    return await catalog.create_banner(db, current_user.id, payload)


@banner_router.put("/reorder", response_model=list[BannerDTO])
async def reorder_banners(
    payload: BannerReorderRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    return await catalog.reorder_banners(db, current_user.id, payload.ordered_ids)


@banner_router.patch("/{banner_id}", response_model=BannerDTO)
async def update_banner(
    banner_id: UUID,
    payload: CatalogPayload = Body(...),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    return await catalog.update_banner(db, banner_id, current_user.id, payload)


@banner_router.delete("/{banner_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_banner(
    banner_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
) -> None:
    await catalog.delete_banner(db, banner_id, current_user.id)
