from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DependencyFailure, NotFoundError, ValidationError
from app.core.settings import settings
from app.models.upload import Upload
from app.schemas.pending_changes import EntityType
from app.schemas.uploads import UploadCreateRequest, UploadPurpose, UploadStatus
from app.services.storage.adapter import SignedUpload, StorageAdapter
from app.services.storage.key_generator import KeyGenerator
from app.services.storage.service import get_storage_adapter

logger = logging.getLogger(__name__)

MB = 1024 * 1024
IMAGE_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/webp"})

PURPOSE_RULES: dict[UploadPurpose, tuple[frozenset[str], int]] = {
    UploadPurpose.PROPERTY_IMAGE: (IMAGE_CONTENT_TYPES, 10 * MB),
    UploadPurpose.BANNER: (IMAGE_CONTENT_TYPES, 10 * MB),
    UploadPurpose.PROFILE: (IMAGE_CONTENT_TYPES, 10 * MB),
    UploadPurpose.BROCHURE: (frozenset({"application/pdf"}), 50 * MB),
}


def _validate_upload_request(payload: UploadCreateRequest) -> None:
    content_types, max_size = PURPOSE_RULES[payload.purpose]
    if payload.content_type.lower() not in content_types:
        raise ValidationError(
            code="unsupported_content_type",
            message=f"Content type {payload.content_type} is not allowed for {payload.purpose.value}",
            details={"field": "content_type", "allowed": sorted(content_types)},
        )
    if payload.size > max_size:
        raise ValidationError(
            code="file_too_large",
            message=f"File exceeds the {max_size // MB}MB limit for {payload.purpose.value}",
            details={"field": "size", "max_bytes": max_size},
        )


async def create_upload(
    db: AsyncSession,
    owner_id: UUID,
    payload: UploadCreateRequest,
    *,
    adapter: StorageAdapter | None = None,
) -> tuple[Upload, SignedUpload]:
    """Reserve a storage key for ``owner_id`` and issue a signed write URL.

    Replaying the same ``client_upload_id`` returns the existing reservation with a
    fresh URL instead of reserving a second key.
    """
    _validate_upload_request(payload)
    adapter = adapter or get_storage_adapter()

    upload = None
    if payload.client_upload_id:
        stmt = select(Upload).where(
            Upload.owner_id == owner_id,
            Upload.client_upload_id == payload.client_upload_id,
        )
        upload = (await db.execute(stmt)).scalar_one_or_none()

    if upload is None:
        upload = Upload(
            key=KeyGenerator.generate_object_key(payload.purpose.value, owner_id, payload.filename),
            owner_id=owner_id,
            purpose=payload.purpose.value,
            client_upload_id=payload.client_upload_id,
            status=UploadStatus.CREATED.value,
            size=payload.size,
            content_type=payload.content_type.lower(),
        )
        db.add(upload)
        await db.commit()
        await db.refresh(upload)

    signed = adapter.sign_upload(
        upload.key,
        content_type=upload.content_type,
        expires_in=settings.gcs_signed_url_expiry_seconds,
    )
    return upload, signed


async def confirm_upload(
    db: AsyncSession,
    upload_id: UUID,
    owner_id: UUID,
    *,
    adapter: StorageAdapter | None = None,
) -> Upload:
    """Move an upload from ``created`` to ``uploaded`` once storage has the object."""
    stmt = select(Upload).where(Upload.id == upload_id, Upload.owner_id == owner_id)
    upload = (await db.execute(stmt)).scalar_one_or_none()
    if upload is None:
        raise NotFoundError(code="upload_not_found", message="Upload not found", details={})
    if upload.status != UploadStatus.CREATED.value:
        return upload

    adapter = adapter or get_storage_adapter()
    try:
        exists = await asyncio.to_thread(adapter.object_exists, upload.key)
    except Exception as exc:
        logger.warning("Storage existence check failed for upload %s", upload.id, exc_info=True)
        raise DependencyFailure(
            code="storage_unavailable",
            message="Storage backend could not be reached; retry the confirmation",
            details={"upload_id": str(upload.id)},
        ) from exc
    if not exists:
        raise ValidationError(
            code="upload_missing",
            message="File not found in storage",
            details={"upload_id": str(upload.id), "key": upload.key},
        )

    upload.status = UploadStatus.UPLOADED.value
    db.add(upload)
    await db.commit()
    await db.refresh(upload)
    return upload


async def validate_ownership(
    db: AsyncSession,
    upload_ids: Iterable[UUID],
    owner_id: UUID,
    *,
    change_id: UUID | None = None,
) -> list[Upload]:
    """Every id must be a confirmed upload owned by ``owner_id`` and not consumed by another change.

    Fails closed: a single unknown, foreign or unconfirmed id rejects the whole set.
    """
    wanted = set(upload_ids)
    if not wanted:
        return []
    stmt = select(Upload).where(Upload.id.in_(wanted), Upload.owner_id == owner_id)
    uploads = (await db.execute(stmt)).scalars().all()
    if len(uploads) != len(wanted):
        raise ValidationError(
            code="invalid_upload_reference",
            message="One or more uploaded assets are invalid or not owned by you",
            details={"field": "uploaded_asset_ids"},
        )

    unusable = [
        str(upload.id)
        for upload in uploads
        if upload.status == UploadStatus.CREATED.value
        or (
            upload.referenced_by_change_id is not None
            and upload.referenced_by_change_id != change_id
        )
    ]
    if unusable:
        raise ValidationError(
            code="invalid_upload_reference",
            message="Some uploads are not confirmed or are already attached to another change",
            details={"field": "uploaded_asset_ids", "upload_ids": sorted(unusable)},
        )
    return list(uploads)


async def mark_referenced(
    db: AsyncSession,
    upload_ids: Iterable[UUID],
    *,
    entity_type: EntityType,
    change_id: UUID,
) -> None:
    ids = list(set(upload_ids))
    if not ids:
        return
    stmt = (
        update(Upload)
        .where(
            Upload.id.in_(ids),
            or_(Upload.referenced_by_change_id.is_(None), Upload.referenced_by_change_id == change_id),
        )
        .values(
            status=UploadStatus.REFERENCED.value,
            referenced_entity_type=entity_type.value,
            referenced_by_change_id=change_id,
        )
        .execution_options(synchronize_session=False)
    )
    await db.execute(stmt)
