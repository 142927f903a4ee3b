import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Stage(BaseModel):
    name: str
    status: str = Field(default="PENDING", pattern="^(PENDING|IN_PROGRESS|COMPLETED)$")
    progress: int = Field(default=0, ge=0, le=100)


class ProjectBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    client_id: Optional[uuid.UUID] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_address: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[date] = None
    deadline: Optional[date] = None
    budget: float = Field(default=0.0, ge=0)
    description: Optional[str] = None
    notes: Optional[str] = None


class ProjectCreate(ProjectBase):
    status: Optional[str] = None
    assigned_admin_id: Optional[uuid.UUID] = None
    stages: Optional[List[Stage]] = None


class ProjectPatch(BaseModel):
    """Editable project fields; spent and progress are derived and absent here."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    client_id: Optional[uuid.UUID] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_address: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = Field(default=None, pattern="^(PLANNING|ACTIVE|STRUCTURE|FINISHING|COMPLETED|ON_HOLD)$")
    start_date: Optional[date] = None
    deadline: Optional[date] = None
    budget: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    notes: Optional[str] = None
    assigned_admin_id: Optional[uuid.UUID] = None


class StagesUpdate(BaseModel):
    stages: List[Stage]


class MilestoneBrief(BaseModel):
    id: uuid.UUID
    stage_name: str
    amount: float
    status: str

    class Config:
        from_attributes = True


class ProjectResponse(ProjectBase):
    id: uuid.UUID
    code: Optional[str] = None
    slug: Optional[str] = None
    status: str
    progress: int
    spent: float
    stages: Optional[List[Stage]] = None
    assigned_admin_id: Optional[uuid.UUID] = None
    created_by_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    milestones: List[MilestoneBrief] = []

    class Config:
        from_attributes = True


class ProjectOverview(BaseModel):
    total_projects: int
    active_projects: int
    completed_projects: int
    total_budget: float
    total_spent: float
