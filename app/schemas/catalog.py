from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.pending_changes import PendingChangeDTO


class PropertyDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    location: str | None = None
    price: Decimal | None = None
    type: str
    description: str | None = None
    images: list[str] = Field(default_factory=list)
    gallery: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    amenities: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    brochure_url: str | None = None
    map: str | None = None
    website: str | None = None
    assigned_employee_id: UUID | None = None
    assigned_agent_id: UUID | None = None
    created_by_admin_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PropertyDetail(BaseModel):
    property: PropertyDTO
    pending_changes: list[PendingChangeDTO] = Field(default_factory=list)


class PropertyListResponse(BaseModel):
    items: list[PropertyDTO]
    next_cursor: datetime | None = None


class BannerDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    image_url: str
    title: str | None = None
    subtitle: str | None = None
    target_role: str
    is_active: bool
    display_order: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BannerReorderRequest(BaseModel):
    ordered_ids: list[UUID] = Field(min_length=1, max_length=200)


# Write bodies stay loose dicts: the admin allow-list decides which keys are accepted.
CatalogPayload = dict[str, Any]
