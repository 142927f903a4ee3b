import uuid
import datetime as dt
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


SHIFT_PATTERN = "^(DAY|NIGHT|FULL_DAY|HALF_DAY)$"


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    default_rate: float = Field(default=500.0, ge=0)
    description: Optional[str] = None


class CategoryPatch(BaseModel):
    default_rate: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class CategoryOut(BaseModel):
    key: str
    label: str
    default_rate: float
    custom: bool


class CustomCategoryOut(BaseModel):
    id: uuid.UUID
    name: str
    default_rate: float
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class WorkerLogCreate(BaseModel):
    project_id: Optional[uuid.UUID] = None
    # Either a catalog key or the name of a custom category
    category: Optional[str] = None
    custom_category: Optional[str] = None
    worker_name: Optional[str] = None
    worker_role: Optional[str] = None
    count: int = Field(default=1, ge=1)
    shift: Optional[str] = Field(default=None, pattern=SHIFT_PATTERN)
    shift_fraction: Optional[float] = Field(default=None, ge=0, le=1)
    date: Optional[dt.date] = None
    hours_worked: Optional[float] = Field(default=None, ge=0)
    rate_per_worker: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class WorkerLogPatch(BaseModel):
    project_id: Optional[uuid.UUID] = None
    category: Optional[str] = None
    custom_category: Optional[str] = None
    worker_name: Optional[str] = None
    worker_role: Optional[str] = None
    count: Optional[int] = Field(default=None, ge=1)
    shift: Optional[str] = Field(default=None, pattern=SHIFT_PATTERN)
    shift_fraction: Optional[float] = Field(default=None, ge=0, le=1)
    date: Optional[dt.date] = None
    hours_worked: Optional[float] = Field(default=None, ge=0)
    rate_per_worker: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @field_validator("count", "shift", "shift_fraction", "date", "hours_worked", "rate_per_worker")
    @classmethod
    def wage_inputs_not_null(cls, v):
        # Omit a wage input to keep it; null would leave the wage underivable
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v


class MistakeReport(BaseModel):
    description: str = Field(min_length=1)
    fault_tolerance: Optional[str] = Field(default=None, pattern="^(LOW|MEDIUM|HIGH)$")


class PayWeekRequest(BaseModel):
    week_number: int = Field(ge=1, le=53)
    week_year: int
    project_id: Optional[uuid.UUID] = None


class WorkerLogResponse(BaseModel):
    id: uuid.UUID
    project_id: Optional[uuid.UUID] = None
    category: str
    custom_category: Optional[str] = None
    worker_name: Optional[str] = None
    worker_role: Optional[str] = None
    count: int
    shift: str
    shift_fraction: float
    date: dt.date
    hours_worked: float
    rate_per_worker: float
    total_wage: float
    status: str
    paid_at: Optional[datetime] = None
    week_number: int
    week_year: int
    work_verified: bool
    verified_at: Optional[datetime] = None
    has_mistake: bool
    mistake_description: Optional[str] = None
    fault_tolerance: Optional[str] = None
    mistake_acknowledged: bool
    mistake_acknowledged_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class WeeklyCategory(BaseModel):
    category: str
    total_workers: int
    total_wage: float
    logs: List[WorkerLogResponse]


class WeeklySummary(BaseModel):
    week_number: int
    week_year: int
    week_start: dt.date
    week_end: dt.date
    total_logs: int
    total_wage: float
    total_pending: float
    total_paid: float
    by_category: List[WeeklyCategory]
