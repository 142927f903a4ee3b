import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..config import settings
from ..db import get_db
from ..models.models import User
from ..services import reporting
from ..services.time_rules import local_today


router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/overview")
def analytics_overview(
    project_id: Optional[uuid.UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return reporting.collect_overview(db, project_id=project_id, start=start_date, end=end_date)


@router.get("/monthly")
def monthly_trend(year: Optional[int] = None, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return reporting.collect_monthly(db, year or local_today().year)


@router.get("/projects")
def project_stats(
    status: Optional[List[str]] = Query(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return reporting.collect_project_stats(db, statuses=status)


@router.get("/expenses")
def expense_breakdown(project_id: Optional[uuid.UUID] = None, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return reporting.collect_expense_breakdown(db, project_id=project_id)


@router.get("/workforce/weekly")
def weekly_workforce(weeks: Optional[int] = None, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return reporting.collect_weekly_workforce(db, local_today(), weeks or settings.weekly_trend_weeks)
