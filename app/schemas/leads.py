import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class LeadCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    source: str = "WEBSITE"
    interest: Optional[str] = None
    budget: Optional[float] = Field(default=None, ge=0)
    priority: str = Field(default="MEDIUM", pattern="^(LOW|MEDIUM|HIGH|URGENT)$")
    temperature: Optional[str] = Field(default=None, pattern="^(HOT|WARM|COLD)$")
    assigned_to_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    tags: List[str] = []


class LeadPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    source: Optional[str] = None
    interest: Optional[str] = None
    budget: Optional[float] = Field(default=None, ge=0)
    priority: Optional[str] = Field(default=None, pattern="^(LOW|MEDIUM|HIGH|URGENT)$")
    temperature: Optional[str] = Field(default=None, pattern="^(HOT|WARM|COLD)$")
    assigned_to_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None


class StageMove(BaseModel):
    stage: str
    note: Optional[str] = None


class FollowUpCreate(BaseModel):
    type: str = Field(default="CALL", pattern="^(CALL|VISIT|EMAIL|MEETING|WHATSAPP)$")
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    next_action: Optional[str] = None


class FollowUpComplete(BaseModel):
    outcome: Optional[str] = None
    next_action: Optional[str] = None
    next_follow_up_date: Optional[datetime] = None


class ConvertLead(BaseModel):
    project_name: Optional[str] = None
    budget: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None


class LoseLead(BaseModel):
    reason: Optional[str] = None


class FollowUpResponse(BaseModel):
    id: uuid.UUID
    lead_id: uuid.UUID
    type: str
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    next_action: Optional[str] = None
    is_completed: bool
    completed_at: Optional[datetime] = None
    outcome: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LeadResponse(BaseModel):
    id: uuid.UUID
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    source: str
    interest: Optional[str] = None
    budget: Optional[float] = None
    priority: str
    temperature: Optional[str] = None
    stage: str
    stage_history: List[dict] = []
    assigned_to_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    follow_up_count: int
    next_follow_up: Optional[datetime] = None
    last_contact_date: Optional[datetime] = None
    is_converted: bool
    converted_project_id: Optional[uuid.UUID] = None
    converted_at: Optional[datetime] = None
    lost_reason: Optional[str] = None
    created_at: datetime
    follow_ups: List[FollowUpResponse] = []

    class Config:
        from_attributes = True
