from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.limiter import actor_or_remote_address, limiter
from app.core.settings import settings
from app.models import User
from app.schemas.loan_requests import (
    BulkEscalateRequest,
    BulkReassignRequest,
    BulkResult,
    CommentCreateRequest,
    EscalateRequest,
    FinanceEmployee,
    LoanRequestCommentRead,
    LoanRequestCreate,
    LoanRequestDetail,
    LoanRequestListResponse,
    LoanRequestPriority,
    LoanRequestRead,
    LoanRequestStats,
    LoanRequestStatus,
    ReassignRequest,
    SlaConfigRead,
    SlaConfigUpdate,
    SortOrder,
    StatusChangeRequest,
)
from app.services import loan_requests

router = APIRouter(prefix="/loan-requests", tags=["loan-requests"])
finance_router = APIRouter(prefix="/finance/loan-requests", tags=["finance-loan-requests"])
admin_router = APIRouter(prefix="/admin/loan-requests", tags=["admin-loan-requests"])


# --- Customer ---


@router.post("", response_model=LoanRequestRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(f"{settings.loan_request_daily_limit}/day", key_func=actor_or_remote_address)
async def create_loan_request(
    request: Request,
    payload: LoanRequestCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_customer),
):
    return await loan_requests.create_loan_request(db, current_user, payload)


@router.get("/mine", response_model=list[LoanRequestRead])
async def list_my_loan_requests(
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_customer),
):
    return await loan_requests.list_customer_requests(db, current_user.id)


# --- Finance ---


@finance_router.get("", response_model=LoanRequestListResponse)
async def list_finance_queue(
    status_filter: LoanRequestStatus | None = Query(default=None, alias="status"),
    assignee: str | None = Query(default=None),
    priority: LoanRequestPriority | None = Query(default=None),
    overdue: bool = Query(default=False),
    search: str | None = Query(default=None, max_length=100),
    sort: SortOrder = Query(default="newest"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_finance_employee),
):
    items, total = await loan_requests.list_tickets(
        db,
        current_user.id,
        status=status_filter,
        assignee=assignee,
        priority=priority,
        overdue=overdue,
        search=search,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return LoanRequestListResponse(items=items, total=total)


@finance_router.get("/{ticket_id}", response_model=LoanRequestDetail)
async def get_finance_ticket(
    ticket_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    _: User = Depends(deps.require_finance_employee),
):
    return await loan_requests.get_ticket_detail(db, ticket_id)


@finance_router.post("/{ticket_id}/take", response_model=LoanRequestRead)
async def take_ticket(
    ticket_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_finance_employee),
):
    return await loan_requests.take(db, ticket_id, current_user.id)


@finance_router.patch("/{ticket_id}/status", response_model=LoanRequestRead)
async def change_ticket_status(
    ticket_id: UUID,
    payload: StatusChangeRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_finance_employee),
):
    return await loan_requests.change_status(
        db,
        ticket_id,
        current_user.id,
        payload.status,
        comment=payload.comment,
        expected_version=payload.expected_version,
    )


@finance_router.post("/{ticket_id}/escalate", response_model=LoanRequestRead)
async def escalate_ticket(
    ticket_id: UUID,
    payload: EscalateRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_finance_employee),
):
    return await loan_requests.escalate(
        db, ticket_id, current_user.id, payload.reason, expected_version=payload.expected_version
    )


@finance_router.post(
    "/{ticket_id}/comments",
    response_model=LoanRequestCommentRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_ticket_comment(
    ticket_id: UUID,
    payload: CommentCreateRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_finance_employee),
):
    return await loan_requests.add_comment(
        db, ticket_id, current_user.id, payload.comment, is_public=payload.is_public
    )


# --- Admin ---


@admin_router.get("", response_model=LoanRequestListResponse)
async def list_admin_tickets(
    status_filter: LoanRequestStatus | None = Query(default=None, alias="status"),
    assignee: str | None = Query(default=None),
    priority: LoanRequestPriority | None = Query(default=None),
    overdue: bool = Query(default=False),
    escalated: bool | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    sort: SortOrder = Query(default="newest"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    items, total = await loan_requests.list_tickets(
        db,
        current_user.id,
        status=status_filter,
        assignee=assignee,
        priority=priority,
        overdue=overdue,
        escalated=escalated,
        search=search,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return LoanRequestListResponse(items=items, total=total)


@admin_router.get("/stats", response_model=LoanRequestStats)
async def get_ticket_stats(
    db: AsyncSession = Depends(deps.get_db_session),
    _: User = Depends(deps.require_admin),
):
    return await loan_requests.ticket_stats(db)


@admin_router.get("/finance-employees", response_model=list[FinanceEmployee])
async def list_finance_employees(
    q: str | None = Query(default=None, max_length=100),
    db: AsyncSession = Depends(deps.get_db_session),
    _: User = Depends(deps.require_admin),
):
    return await loan_requests.list_finance_employees(db, q)


@admin_router.get("/sla-config", response_model=SlaConfigRead)
async def get_sla_config(
    db: AsyncSession = Depends(deps.get_db_session),
    _: User = Depends(deps.require_admin),
):
    return await loan_requests.get_sla_config(db)


@admin_router.put("/sla-config", response_model=SlaConfigRead)
async def update_sla_config(
    payload: SlaConfigUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    return await loan_requests.update_sla_hours(db, current_user.id, payload.hours)


@admin_router.post("/bulk-reassign", response_model=BulkResult)
async def bulk_reassign(
    payload: BulkReassignRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    updated = await loan_requests.bulk_reassign(db, payload.ids, current_user.id, payload.assignee_id)
    return BulkResult(updated=updated)


@admin_router.post("/bulk-escalate", response_model=BulkResult)
async def bulk_escalate(
    payload: BulkEscalateRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    updated = await loan_requests.bulk_escalate(db, payload.ids, current_user.id, payload.reason)
    return BulkResult(updated=updated)


@admin_router.get("/{ticket_id}", response_model=LoanRequestDetail)
async def get_admin_ticket(
    ticket_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    _: User = Depends(deps.require_admin),
):
    return await loan_requests.get_ticket_detail(db, ticket_id)


@admin_router.post("/{ticket_id}/reassign", response_model=LoanRequestRead)
async def reassign_ticket(
    ticket_id: UUID,
    payload: ReassignRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    return await loan_requests.reassign(
        db,
        ticket_id,
        current_user.id,
        assignee_id=payload.assignee_id,
        auto_assign=payload.auto_assign,
        comment=payload.comment,
        expected_version=payload.expected_version,
    )


@admin_router.patch("/{ticket_id}/status", response_model=LoanRequestRead)
async def admin_change_ticket_status(
    ticket_id: UUID,
    payload: StatusChangeRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    return await loan_requests.change_status(
        db,
        ticket_id,
        current_user.id,
        payload.status,
        comment=payload.comment,
        expected_version=payload.expected_version,
    )


@admin_router.post("/{ticket_id}/escalate", response_model=LoanRequestRead)
async def admin_escalate_ticket(
    ticket_id: UUID,
    payload: EscalateRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    return await loan_requests.escalate(
        db, ticket_id, current_user.id, payload.reason, expected_version=payload.expected_version
    )


@admin_router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(
    ticket_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
) -> None:
    await loan_requests.soft_delete(db, ticket_id, current_user.id)
