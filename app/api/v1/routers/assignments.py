from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models import User
from app.schemas.assignments import (
    AgentPropertyAssignmentRequest,
    AgentPropertyList,
    AgentSupervisorRequest,
    AssignmentDiff,
    EmployeePropertyAssignmentRequest,
)
from app.services import assignments

router = APIRouter(tags=["assignments"])


@router.get("/employee/agents/{agent_id}/properties", response_model=AgentPropertyList)
async def list_agent_properties(
    agent_id: UUID,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_employee),
):
    property_ids = await assignments.list_agent_property_ids(db, current_user.id, agent_id)
    return AgentPropertyList(agent_id=agent_id, property_ids=property_ids)


@router.put("/employee/agents/{agent_id}/properties", response_model=AssignmentDiff)
async def set_agent_properties(
    agent_id: UUID,
    payload: AgentPropertyAssignmentRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_employee),
):
    return await assignments.set_agent_property_assignments(
        db, current_user.id, agent_id, payload.property_ids
    )


@router.patch("/admin/employees/{employee_id}/properties", response_model=AssignmentDiff)
async def update_employee_properties(
    employee_id: UUID,
    payload: EmployeePropertyAssignmentRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
):
    return await assignments.set_employee_property_assignments(
        db,
        current_user.id,
        employee_id,
        add_property_ids=payload.add_property_ids,
        remove_property_ids=payload.remove_property_ids,
    )


@router.put("/admin/agents/{agent_id}/supervisor")
async def set_agent_supervisor(
    agent_id: UUID,
    payload: AgentSupervisorRequest,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: User = Depends(deps.require_admin),
) -> dict:
    agent = await assignments.set_agent_supervisor(db, current_user.id, agent_id, payload.employee_id)
    return {"agent_id": str(agent.id), "assigned_employee_id": agent.assigned_employee_id}
