from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntityType(str, Enum):
    PROPERTY = "property"
    BANNER = "banner"


class PendingChangeStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    NEEDS_REVISION = "needs_revision"
    APPROVED = "approved"
    REJECTED = "rejected"


class PropertyPayload(BaseModel):
    """Field set a property change may carry. Which keys a caller may send is role-dependent."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    location: str | None = Field(default=None, max_length=255)
    price: Decimal | None = Field(default=None, ge=0)
    type: str | None = Field(default=None, max_length=50)
    description: str | None = None
    images: list[str] | None = None
    gallery: list[str] | None = None
    features: list[str] | None = None
    amenities: list[str] | None = None
    categories: list[str] | None = None
    brochure_url: str | None = Field(default=None, max_length=1024)
    map: str | None = None
    website: str | None = Field(default=None, max_length=1024)

    @field_validator("price", mode="before")
    @classmethod
    def _blank_price_is_none(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value


class BannerPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    image_url: str | None = Field(default=None, min_length=1, max_length=1024)
    title: str | None = Field(default=None, max_length=255)
    subtitle: str | None = Field(default=None, max_length=255)
    target_role: Literal["All", "Agent", "Customer", "Employee"] | None = None
    is_active: bool | None = None
    display_order: int | None = Field(default=None, ge=0)


class PendingChangeSubmitRequest(BaseModel):
    target_id: UUID | None = None
    proposed_payload: dict[str, Any]
    diff_summary: dict[str, Any] | None = None
    notes: str | None = Field(default=None, max_length=2000)
    is_draft: bool = False
    uploaded_asset_ids: list[UUID] = Field(default_factory=list, max_length=50)
    idempotency_key: UUID | None = None


class PendingChangeDraftUpdateRequest(BaseModel):
    proposed_payload: dict[str, Any]
    diff_summary: dict[str, Any] | None = None
    notes: str | None = Field(default=None, max_length=2000)
    uploaded_asset_ids: list[UUID] = Field(default_factory=list, max_length=50)


class PendingChangeWithdrawRequest(BaseModel):
    move_to_draft: bool = False


class ApproveRequest(BaseModel):
    apply_as: Literal["proposed", "merged_payload"] = "proposed"
    merged_payload: dict[str, Any] | None = None


class RejectRequest(BaseModel):
    reason: str = Field(max_length=2000)


class RequestRevisionRequest(BaseModel):
    comments: str = Field(max_length=2000)


class SubmitResult(BaseModel):
    change_id: UUID
    # "completed" when replaying a key whose change has since been withdrawn.
    status: str
    created_at: datetime | None = None
    idempotent: bool = False


class PendingChangeDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: EntityType
    target_id: UUID | None = None
    proposer_id: UUID
    proposed_payload: dict[str, Any]
    diff_summary: dict[str, Any] | None = None
    notes: str | None = None
    status: PendingChangeStatus
    is_draft: bool
    reason: str | None = None
    reviewed_at: datetime | None = None
    reviewed_by_admin_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PendingChangeDetail(BaseModel):
    change: PendingChangeDTO
    current: dict[str, Any] | None = None


class PendingChangeListResponse(BaseModel):
    items: list[PendingChangeDTO]
    next_cursor: datetime | None = None
