import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class MilestoneCreate(BaseModel):
    project_id: uuid.UUID
    stage_name: str = Field(min_length=1, max_length=255)
    amount: float = Field(gt=0)
    due_date: Optional[date] = None
    reminder_days: Optional[int] = Field(default=None, ge=0)
    reminder_enabled: bool = True
    notes: Optional[str] = None


class MilestonePatch(BaseModel):
    """
    Fields an admin may edit on a milestone. Paid/remaining/status and the
    acknowledgment flags are owned by the workflow.
    """
    stage_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    amount: Optional[float] = Field(default=None, gt=0)
    due_date: Optional[date] = None
    reminder_days: Optional[int] = Field(default=None, ge=0)
    reminder_enabled: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("stage_name", "amount", "reminder_days", "reminder_enabled")
    @classmethod
    def required_not_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v


class ScheduleShare(BaseModel):
    stage_name: str = Field(min_length=1, max_length=255)
    percentage: float = Field(gt=0, le=100)
    due_date: Optional[date] = None


class ScheduleSetup(BaseModel):
    # Omitted: the default 20/25/30/15/10 schedule
    milestones: Optional[List[ScheduleShare]] = None


class ClientAcknowledgeRequest(BaseModel):
    accepted: bool
    notes: Optional[str] = None


class ConfirmPaymentRequest(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
    is_part_payment: bool = False
    notes: Optional[str] = None
    receipt_ref: Optional[str] = None


class PartPaymentResponse(BaseModel):
    id: uuid.UUID
    amount: float
    balance_after: float
    notes: Optional[str] = None
    receipt_ref: Optional[str] = None
    confirmed_by: Optional[uuid.UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MilestoneResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    stage_name: str
    amount: float
    paid_amount: float
    remaining_amount: float
    status: str
    is_part_payment: bool
    due_date: Optional[date] = None
    paid_date: Optional[datetime] = None
    reminder_days: int
    reminder_enabled: bool
    notes: Optional[str] = None
    admin_acknowledged: bool
    admin_acknowledged_at: Optional[datetime] = None
    admin_acknowledged_by: Optional[uuid.UUID] = None
    client_acknowledged: bool
    client_acknowledged_at: Optional[datetime] = None
    client_notes: Optional[str] = None
    created_at: datetime
    part_payments: List[PartPaymentResponse] = []

    class Config:
        from_attributes = True


class NextPayment(BaseModel):
    id: uuid.UUID
    stage_name: str
    amount: float
    due_date: Optional[date] = None
    status: str


class MilestoneSummary(BaseModel):
    total_value: float
    paid_till_date: float
    remaining_payment: float
    next_payment: Optional[NextPayment] = None
    total_milestones: int
    paid_milestones: int
    awaiting_acknowledgment: int


class ProjectMilestones(BaseModel):
    milestones: List[MilestoneResponse]
    summary: MilestoneSummary


class MilestoneStats(BaseModel):
    total_expected: float
    total_received: float
    total_pending: float
    overdue_count: int
    overdue_amount: float
    awaiting_acknowledgment_count: int
    partial_payments_count: int


class AuditLogResponse(BaseModel):
    id: uuid.UUID
    entity_type: str
    entity_id: uuid.UUID
    action: str
    actor_id: Optional[uuid.UUID] = None
    actor_role: Optional[str] = None
    changes_json: Optional[dict] = None
    context: Optional[dict] = None
    timestamp_utc: datetime
    integrity_hash: Optional[str] = None

    class Config:
        from_attributes = True
