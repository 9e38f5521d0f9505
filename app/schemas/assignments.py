from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field


class AgentPropertyAssignmentRequest(BaseModel):
    property_ids: list[UUID] = Field(default_factory=list, max_length=500)


class EmployeePropertyAssignmentRequest(BaseModel):
    add_property_ids: list[UUID] = Field(default_factory=list, max_length=500)
    remove_property_ids: list[UUID] = Field(default_factory=list, max_length=500)


class AgentSupervisorRequest(BaseModel):
    employee_id: UUID | None = None


class AssignmentDiff(BaseModel):
    added: list[UUID] = Field(default_factory=list)
    removed: list[UUID] = Field(default_factory=list)


class AgentPropertyList(BaseModel):
    agent_id: UUID
    property_ids: list[UUID]
