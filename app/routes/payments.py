import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_admin
from ..db import get_db
from ..models.models import PaymentMilestone, Project, User
from ..schemas.payments import (
    AuditLogResponse,
    ClientAcknowledgeRequest,
    ConfirmPaymentRequest,
    MilestoneCreate,
    MilestonePatch,
    MilestoneResponse,
    MilestoneStats,
    ProjectMilestones,
    ScheduleSetup,
)
from ..services import payments as svc
from ..services.audit import get_audit_logs
from ..services.catalog import Catalog, MilestoneSchedule, MilestoneShare, get_catalog
from ..services.projects import can_view, scope_projects
from ..services.store import Store
from ..services.time_rules import local_today


router = APIRouter(prefix="/payments", tags=["payments"])


def _milestone_for(db: Session, milestone_id: uuid.UUID, user: User) -> PaymentMilestone:
    m = Store(db).get(PaymentMilestone, milestone_id)
    if not can_view(user, m.project):
        raise HTTPException(status_code=403, detail="Forbidden")
    return m


@router.get("/milestones", response_model=List[MilestoneResponse])
def list_milestones(
    project_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.list_milestones(db, project_id=project_id, status=status)


@router.get("/milestones/stats", response_model=MilestoneStats)
def milestones_stats(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.milestone_stats(svc.list_milestones(db), local_today())


@router.get("/milestones/reminders", response_model=List[MilestoneResponse])
def milestone_reminders(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.due_reminders(db, local_today())


@router.get("/projects/{project_id}", response_model=ProjectMilestones)
def project_milestones(project_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    project = Store(db).get(Project, project_id)
    if not can_view(user, project):
        raise HTTPException(status_code=403, detail="Forbidden")
    milestones = svc.project_milestones(db, project_id)
    return {"milestones": milestones, "summary": svc.summarize_project_milestones(milestones)}


@router.get("/my", response_model=List[MilestoneResponse])
def my_milestones(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    project_ids = [p.id for p in scope_projects(db, user).all()]
    if not project_ids:
        return []
    return (
        db.query(PaymentMilestone)
        .filter(PaymentMilestone.project_id.in_(project_ids))
        .order_by(PaymentMilestone.created_at.asc())
        .all()
    )


@router.post("/milestones", response_model=MilestoneResponse, status_code=201)
def create_milestone(payload: MilestoneCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.create_milestone(db, actor=user, **payload.model_dump())


@router.post("/projects/{project_id}/setup", response_model=List[MilestoneResponse], status_code=201)
def setup_milestones(
    project_id: uuid.UUID,
    payload: ScheduleSetup,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
    catalog: Catalog = Depends(get_catalog),
):
    schedule = catalog.milestones
    if payload.milestones:
        schedule = MilestoneSchedule(tuple(
            MilestoneShare(stage_name=s.stage_name, percentage=s.percentage, due_date=s.due_date)
            for s in payload.milestones
        ))
    return svc.setup_milestones(db, project_id=project_id, schedule=schedule, actor=user)


@router.get("/milestones/{milestone_id}", response_model=MilestoneResponse)
def get_milestone(milestone_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return _milestone_for(db, milestone_id, user)


@router.patch("/milestones/{milestone_id}", response_model=MilestoneResponse)
def update_milestone(
    milestone_id: uuid.UUID,
    payload: MilestonePatch,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.update_milestone(db, milestone_id, payload, actor=user)


@router.delete("/milestones/{milestone_id}")
def delete_milestone(milestone_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    svc.delete_milestone(db, milestone_id, actor=user)
    return {"status": "ok"}


@router.post("/milestones/{milestone_id}/request-acknowledgment", response_model=MilestoneResponse)
def request_acknowledgment(milestone_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.request_acknowledgment(db, milestone_id, user)


@router.post("/milestones/{milestone_id}/withdraw-request", response_model=MilestoneResponse)
def withdraw_request(milestone_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.withdraw_acknowledgment_request(db, milestone_id, user)


@router.post("/milestones/{milestone_id}/client-acknowledge", response_model=MilestoneResponse)
def client_acknowledge(
    milestone_id: uuid.UUID,
    payload: ClientAcknowledgeRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    m = _milestone_for(db, milestone_id, user)
    # Only the project's client (or a super admin acting for them) may answer
    if user.role != "SUPER_ADMIN" and m.project.client_id != user.id:
        raise HTTPException(status_code=403, detail="Only the project client can acknowledge payments")
    return svc.client_acknowledge(db, milestone_id, user, payload.accepted, payload.notes)


@router.post("/milestones/{milestone_id}/confirm", response_model=MilestoneResponse)
def confirm_payment(
    milestone_id: uuid.UUID,
    payload: ConfirmPaymentRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.confirm_payment(db, milestone_id, user, **payload.model_dump())


@router.get("/milestones/{milestone_id}/audit", response_model=List[AuditLogResponse])
def milestone_audit(
    milestone_id: uuid.UUID,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    """Audit trail of one milestone, newest first."""
    Store(db).get(PaymentMilestone, milestone_id)
    return get_audit_logs(db, entity_type="milestone", entity_id=milestone_id, limit=limit, offset=offset)
