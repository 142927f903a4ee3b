import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..models.models import Lead, User
from ..schemas.leads import (
    ConvertLead,
    FollowUpComplete,
    FollowUpCreate,
    FollowUpResponse,
    LeadCreate,
    LeadPatch,
    LeadResponse,
    LoseLead,
    StageMove,
)
from ..schemas.projects import ProjectResponse
from ..services import leads as svc
from ..services.catalog import Catalog, get_catalog
from ..services.store import Store
from ..services.time_rules import local_today, utc_now


router = APIRouter(prefix="/leads", tags=["leads"])


@router.get("", response_model=List[LeadResponse])
def list_leads(
    stage: Optional[str] = None,
    source: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.list_leads(db, stage=stage, source=source, priority=priority, search=search)


@router.get("/pipeline", response_model=Dict[str, List[LeadResponse]])
def lead_pipeline(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.pipeline(db)


@router.get("/stats")
def lead_stats(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.lead_stats(svc.list_leads(db), utc_now(), local_today())


@router.post("", response_model=LeadResponse, status_code=201)
def create_lead(payload: LeadCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    data = payload.model_dump()
    if data.get("assigned_to_id") is None:
        data["assigned_to_id"] = user.id
    return svc.create_lead(db, data, actor=user)


@router.get("/{lead_id}", response_model=LeadResponse)
def get_lead(lead_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return Store(db).get(Lead, lead_id)


@router.patch("/{lead_id}", response_model=LeadResponse)
def update_lead(lead_id: uuid.UUID, payload: LeadPatch, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.update_lead(db, lead_id, payload)


@router.post("/{lead_id}/stage", response_model=LeadResponse)
def move_stage(lead_id: uuid.UUID, payload: StageMove, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.move_stage(db, lead_id, payload.stage, payload.note, actor=user)


@router.post("/{lead_id}/follow-ups", response_model=FollowUpResponse, status_code=201)
def add_follow_up(lead_id: uuid.UUID, payload: FollowUpCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.add_follow_up(db, lead_id, payload.model_dump(), actor=user)


@router.post("/follow-ups/{follow_up_id}/complete", response_model=FollowUpResponse)
def complete_follow_up(
    follow_up_id: uuid.UUID,
    payload: FollowUpComplete,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.complete_follow_up(db, follow_up_id, actor=user, **payload.model_dump())


@router.post("/{lead_id}/convert", response_model=ProjectResponse, status_code=201)
def convert_lead(
    lead_id: uuid.UUID,
    payload: ConvertLead,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
    catalog: Catalog = Depends(get_catalog),
):
    return svc.convert_lead(db, lead_id, catalog.stages, actor=user, **payload.model_dump())


@router.post("/{lead_id}/lost", response_model=LeadResponse)
def lose_lead(lead_id: uuid.UUID, payload: LoseLead, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.lose_lead(db, lead_id, payload.reason, actor=user)


@router.delete("/{lead_id}")
def delete_lead(lead_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    svc.delete_lead(db, lead_id)
    return {"status": "ok"}
