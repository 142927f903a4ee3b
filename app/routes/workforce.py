import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..models.models import User, WorkerLog
from ..schemas.workforce import (
    CategoryCreate,
    CategoryOut,
    CategoryPatch,
    CustomCategoryOut,
    MistakeReport,
    PayWeekRequest,
    WeeklySummary,
    WorkerLogCreate,
    WorkerLogPatch,
    WorkerLogResponse,
)
from ..services import workforce as svc
from ..services.catalog import Catalog, get_catalog
from ..services.store import Store
from ..services.time_rules import iso_week, local_today


router = APIRouter(prefix="/workforce", tags=["workforce"])


# ---------- Categories ----------

@router.get("/categories", response_model=List[CategoryOut])
def list_categories(
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
    catalog: Catalog = Depends(get_catalog),
):
    return [
        {"key": c.key, "label": c.label, "default_rate": c.default_rate, "custom": c.custom}
        for c in svc.load_catalog(db, catalog.workers).categories
    ]


@router.post("/categories", response_model=CustomCategoryOut, status_code=201)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.create_category(db, **payload.model_dump())


@router.patch("/categories/{category_id}", response_model=CustomCategoryOut)
def update_category(
    category_id: uuid.UUID,
    payload: CategoryPatch,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.update_category(db, category_id, payload)


# ---------- Logs ----------

@router.get("/logs", response_model=List[WorkerLogResponse])
def list_logs(
    project_id: Optional[uuid.UUID] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    week_number: Optional[int] = None,
    week_year: Optional[int] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.list_logs(
        db,
        project_id=project_id,
        category=category,
        status=status,
        start_date=start_date,
        end_date=end_date,
        week_number=week_number,
        week_year=week_year,
    )


@router.post("/logs", response_model=WorkerLogResponse, status_code=201)
def create_log(
    payload: WorkerLogCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
    catalog: Catalog = Depends(get_catalog),
):
    return svc.create_log(db, payload.model_dump(), catalog.workers, actor=user)


@router.get("/logs/{log_id}", response_model=WorkerLogResponse)
def get_log(log_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return Store(db).get(WorkerLog, log_id)


@router.patch("/logs/{log_id}", response_model=WorkerLogResponse)
def update_log(
    log_id: uuid.UUID,
    payload: WorkerLogPatch,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
    catalog: Catalog = Depends(get_catalog),
):
    return svc.update_log(db, log_id, payload, catalog.workers, actor=user)


@router.delete("/logs/{log_id}")
def delete_log(log_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    svc.delete_log(db, log_id)
    return {"status": "ok"}


@router.post("/logs/{log_id}/verify", response_model=WorkerLogResponse)
def verify_log(log_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.verify_log(db, log_id, user)


@router.post("/logs/{log_id}/mistake", response_model=WorkerLogResponse)
def report_mistake(
    log_id: uuid.UUID,
    payload: MistakeReport,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.report_mistake(db, log_id, payload.description, payload.fault_tolerance)


@router.post("/logs/{log_id}/mistake/acknowledge", response_model=WorkerLogResponse)
def acknowledge_mistake(log_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.acknowledge_mistake(db, log_id)


@router.post("/logs/{log_id}/pay", response_model=WorkerLogResponse)
def mark_paid(log_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.mark_paid(db, log_id, actor=user)


# ---------- Summaries ----------

@router.get("/weekly", response_model=WeeklySummary)
def weekly_summary(
    week_number: Optional[int] = None,
    week_year: Optional[int] = None,
    project_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    if week_number is None or week_year is None:
        week_year, week_number = iso_week(local_today())
    logs = svc.list_logs(db, project_id=project_id, week_number=week_number, week_year=week_year)
    return svc.weekly_summary(logs, week_number, week_year)


@router.post("/weekly/pay")
def pay_week(payload: PayWeekRequest, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    paid = svc.pay_week(db, payload.week_number, payload.week_year, project_id=payload.project_id, actor=user)
    return {"status": "ok", "paid_logs": paid}


@router.get("/stats")
def workforce_stats(
    project_id: Optional[uuid.UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
    catalog: Catalog = Depends(get_catalog),
):
    logs = svc.list_logs(db, project_id=project_id, start_date=start_date, end_date=end_date)
    return svc.workforce_stats(logs, svc.load_catalog(db, catalog.workers))


@router.get("/projects/{project_id}")
def project_summary(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
    catalog: Catalog = Depends(get_catalog),
):
    logs = svc.list_logs(db, project_id=project_id)
    return svc.project_workforce_summary(logs, project_id, svc.load_catalog(db, catalog.workers))
