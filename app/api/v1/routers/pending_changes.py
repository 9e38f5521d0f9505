from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models import User
from app.schemas.pending_changes import (
    ApproveRequest,
    EntityType,
    PendingChangeDetail,
    PendingChangeDraftUpdateRequest,
    PendingChangeDTO,
    PendingChangeListResponse,
    PendingChangeStatus,
    PendingChangeSubmitRequest,
    PendingChangeWithdrawRequest,
    RejectRequest,
    RequestRevisionRequest,
    SubmitResult,
)
from app.services import audit, pending_changes

router = APIRouter(prefix="/pending-changes", tags=["pending-changes"])
admin_router = APIRouter(prefix="/admin/pending-changes", tags=["admin-pending-changes"])


@router.post("/{entity_type}", response_model=SubmitResult, status_code=status.HTTP_201_CREATED)
async def submit_change(
    entity_type: EntityType,
    payload: PendingChangeSubmitRequest,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_proposer),
):
    return await pending_changes.submit_change(
        db,
        entity_type,
        current_user.id,
        current_user.role_enum,
        target_id=payload.target_id,
        payload=payload.proposed_payload,
        is_draft=payload.is_draft,
        idempotency_key=idempotency_key or payload.idempotency_key,
        uploaded_asset_ids=payload.uploaded_asset_ids,
        diff_summary=payload.diff_summary,
        notes=payload.notes,
    )


@router.get("/mine", response_model=PendingChangeListResponse)
async def list_my_changes(
    entity_type: EntityType | None = Query(default=None),
    status_filter: PendingChangeStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=100),
    cursor: datetime | None = Query(default=None),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_proposer),
):
    items, next_cursor = await pending_changes.list_changes(
        db,
        entity_type=entity_type,
        status=status_filter,
        proposer_id=current_user.id,
        limit=limit,
        cursor=cursor,
    )
    return PendingChangeListResponse(items=items, next_cursor=next_cursor)


@router.get("/{change_id}", response_model=PendingChangeDetail)
async def get_my_change(
    change_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_proposer),
):
    change, current = await pending_changes.get_change(
        db, change_id, actor_id=current_user.id, role=current_user.role_enum
    )
    return PendingChangeDetail(change=change, current=current)


@router.put("/{entity_type}/{change_id}", response_model=PendingChangeDTO)
async def update_draft(
    entity_type: EntityType,
    change_id: UUID,
    payload: PendingChangeDraftUpdateRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_proposer),
):
    change = await pending_changes.update_draft(
        db,
        entity_type,
        change_id,
        current_user.id,
        current_user.role_enum,
        payload=payload.proposed_payload,
        diff_summary=payload.diff_summary,
        notes=payload.notes,
        uploaded_asset_ids=payload.uploaded_asset_ids,
    )
    return pending_changes.to_dto(entity_type, change)


@router.post("/{entity_type}/{change_id}/submit", response_model=PendingChangeDTO)
async def submit_draft(
    entity_type: EntityType,
    change_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_proposer),
):
    change = await pending_changes.submit_draft(db, entity_type, change_id, current_user.id)
    return pending_changes.to_dto(entity_type, change)


@router.post("/{entity_type}/{change_id}/withdraw")
async def withdraw_change(
    entity_type: EntityType,
    change_id: UUID,
    payload: PendingChangeWithdrawRequest | None = None,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_proposer),
) -> dict[str, Any]:
    move_to_draft = payload.move_to_draft if payload else False
    change = await pending_changes.withdraw(
        db, entity_type, change_id, current_user.id, move_to_draft=move_to_draft
    )
    if change is None:
        return {"change_id": str(change_id), "deleted": True}
    return pending_changes.to_dto(entity_type, change).model_dump(mode="json")


@router.delete("/{entity_type}/{change_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_draft(
    entity_type: EntityType,
    change_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_proposer),
) -> None:
    await pending_changes.discard_draft(db, entity_type, change_id, current_user.id)


# --- Admin review ---


@admin_router.get("", response_model=PendingChangeListResponse)
async def list_changes(
    entity_type: EntityType | None = Query(default=None),
    status_filter: PendingChangeStatus | None = Query(default=PendingChangeStatus.PENDING, alias="status"),
    proposer_id: UUID | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    cursor: datetime | None = Query(default=None),
    db: AsyncSession = Depends(deps.get_db_session),
    _: User = Depends(deps.require_admin),
):
    items, next_cursor = await pending_changes.list_changes(
        db,
        entity_type=entity_type,
        status=status_filter,
        proposer_id=proposer_id,
        limit=limit,
        cursor=cursor,
    )
    return PendingChangeListResponse(items=items, next_cursor=next_cursor)


@admin_router.get("/{change_id}", response_model=PendingChangeDetail)
async def get_change(
    change_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    change, current = await pending_changes.get_change(
        db, change_id, actor_id=current_user.id, role=current_user.role_enum
    )
    return PendingChangeDetail(change=change, current=current)


@admin_router.post("/{entity_type}/{change_id}/approve")
async def approve_change(
    entity_type: EntityType,
    change_id: UUID,
    payload: ApproveRequest | None = None,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
) -> dict[str, Any]:
    payload = payload or ApproveRequest()
    canonical = await pending_changes.approve(
        db,
        entity_type,
        change_id,
        current_user.id,
        apply_as=payload.apply_as,
        merged_payload=payload.merged_payload,
    )
    return {"change_id": str(change_id), entity_type.value: audit.model_snapshot(canonical)}


@admin_router.post("/{entity_type}/{change_id}/reject", response_model=PendingChangeDTO)
async def reject_change(
    entity_type: EntityType,
    change_id: UUID,
    payload: RejectRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    change = await pending_changes.reject(db, entity_type, change_id, current_user.id, payload.reason)
    return pending_changes.to_dto(entity_type, change)


@admin_router.post("/{entity_type}/{change_id}/request-revision", response_model=PendingChangeDTO)
async def request_revision(
    entity_type: EntityType,
    change_id: UUID,
    payload: RequestRevisionRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    change = await pending_changes.request_revision(
        db, entity_type, change_id, current_user.id, payload.comments
    )
    return pending_changes.to_dto(entity_type, change)
