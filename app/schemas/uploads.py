from datetime import datetime
from enum import Enum
from typing import Any, Dict
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UploadPurpose(str, Enum):
    PROPERTY_IMAGE = "property_image"
    BROCHURE = "brochure"
    PROFILE = "profile"
    BANNER = "banner"


class UploadStatus(str, Enum):
    CREATED = "created"
    UPLOADED = "uploaded"
    REFERENCED = "referenced"


class UploadCreateRequest(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    content_type: str = Field(min_length=1, max_length=100)
    size: int = Field(gt=0)
    purpose: UploadPurpose
    client_upload_id: str | None = Field(default=None, max_length=100)


class UploadCreateResponse(BaseModel):
    upload_id: UUID
    key: str
    upload_url: str
    method: str = "PUT"
    required_headers: Dict[str, Any] = Field(default_factory=dict)
    expires_in: int


class UploadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    key: str
    owner_id: UUID
    purpose: UploadPurpose
    client_upload_id: str | None = None
    status: UploadStatus
    size: int | None = None
    content_type: str | None = None
    referenced_entity_type: str | None = None
    referenced_by_change_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
