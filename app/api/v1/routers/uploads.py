from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.settings import settings
from app.models import Upload, User
from app.schemas.uploads import UploadCreateRequest, UploadCreateResponse, UploadRead
from app.services import uploads
from app.services.storage.adapter import LocalFileSystemAdapter, verify_local_signature

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("", response_model=UploadCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_upload(
    payload: UploadCreateRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.get_current_user),
):
    upload, signed = await uploads.create_upload(db, current_user.id, payload)
    return UploadCreateResponse(
        upload_id=upload.id,
        key=upload.key,
        upload_url=signed.url,
        method=signed.method,
        required_headers=signed.headers,
        expires_in=settings.gcs_signed_url_expiry_seconds,
    )


@router.post("/{upload_id}/confirm", response_model=UploadRead)
async def confirm_upload(
    upload_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.get_current_user),
):
    return await uploads.confirm_upload(db, upload_id, current_user.id)


@router.put("/local-content")
async def upload_local_content(
    request: Request,
    key: str = Query(...),
    expires: int = Query(...),
    signature: str = Query(...),
    db: AsyncSession = Depends(deps.get_db_session),
):
    """Receiver for signed PUTs when ``STORAGE_PROVIDER=local``."""
    if settings.storage_provider != "local":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not supported")
    if not verify_local_signature(settings.secret_key, key, expires, signature):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired URL signature",
        )
    reserved = (await db.execute(select(Upload.id).where(Upload.key == key))).scalar_one_or_none()
    if reserved is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Upload not found")

    adapter = LocalFileSystemAdapter(base_path=settings.local_upload_dir)
    try:
        adapter.store(key, await request.body())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_200_OK)
