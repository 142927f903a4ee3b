"""
Financial rollups for the dashboard.

The pure functions take already-loaded rows and never mutate them; every one
of them returns zeros for empty input. The ``collect_*`` helpers load the rows
for a scope and call the pure function.
"""
import calendar
import uuid
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, selectinload

from ..models.models import (
    MaterialOrder,
    MaterialPayment,
    PaymentMilestone,
    Project,
    Vendor,
    WorkerLog,
)
from .time_rules import month_bounds


def _paid_logs(logs: Iterable[WorkerLog]) -> List[WorkerLog]:
    return [w for w in logs if w.status == "PAID"]


def margin_of(income: float, profit: float) -> float:
    return profit / income if income > 0 else 0.0


def overview(
    milestones: Sequence[PaymentMilestone],
    materials: Sequence[MaterialOrder],
    logs: Sequence[WorkerLog],
) -> dict:
    income = sum(m.paid_amount or 0.0 for m in milestones)
    pending_income = sum(m.remaining_amount or 0.0 for m in milestones)
    material_expense = sum(m.paid_amount or 0.0 for m in materials)
    labor_expense = sum(w.total_wage for w in _paid_logs(logs))
    pending_material = sum(m.remaining_amount or 0.0 for m in materials)
    pending_labor = sum(w.total_wage for w in logs if w.status != "PAID")
    expense = material_expense + labor_expense
    profit = income - expense
    margin = margin_of(income, profit)
    return {
        "income": {"total": income, "pending": pending_income},
        "expense": {
            "total": expense,
            "materials": material_expense,
            "labor": labor_expense,
            "pending": pending_material + pending_labor,
        },
        "profit": {
            "current": profit,
            "margin": margin,
            "margin_percent": round(margin * 100, 2),
        },
    }


def milestone_income_events(
    milestones: Iterable[PaymentMilestone],
) -> List[Tuple[datetime, float]]:
    """
    Dated receipts for milestones: each part payment on its own date, and
    whatever a fully paid milestone received beyond its part payments on the
    paid date.
    """
    events = []
    for m in milestones:
        parts = list(m.part_payments or [])
        for p in parts:
            events.append((p.created_at, p.amount))
        if m.paid_date is not None:
            rest = (m.paid_amount or 0.0) - sum(p.amount for p in parts)
            if rest > 0:
                events.append((m.paid_date, rest))
    return events


def monthly_trend(
    year: int,
    income_events: Iterable[Tuple[datetime, float]],
    material_payments: Iterable[MaterialPayment],
    paid_logs: Iterable[WorkerLog],
) -> List[dict]:
    months = [
        {
            "month": i,
            "month_name": calendar.month_abbr[i],
            "income": 0.0,
            "expense": 0.0,
            "profit": 0.0,
            "material_expense": 0.0,
            "labor_expense": 0.0,
        }
        for i in range(1, 13)
    ]
    for when, amount in income_events:
        if when is not None and when.year == year:
            months[when.month - 1]["income"] += amount
    for p in material_payments:
        if p.payment_date is not None and p.payment_date.year == year:
            months[p.payment_date.month - 1]["material_expense"] += p.amount
    for w in paid_logs:
        if w.status == "PAID" and w.date is not None and w.date.year == year:
            months[w.date.month - 1]["labor_expense"] += w.total_wage
    for row in months:
        row["expense"] = row["material_expense"] + row["labor_expense"]
        row["profit"] = row["income"] - row["expense"]
    return months


def project_stats(project: Project) -> dict:
    income = sum(m.paid_amount or 0.0 for m in project.milestones)
    material_cost = sum(m.paid_amount or 0.0 for m in project.materials)
    labor_cost = sum(w.total_wage for w in _paid_logs(project.worker_logs))
    expense = material_cost + labor_cost
    budget = project.budget or 0.0
    return {
        "id": project.id,
        "name": project.name,
        "status": project.status,
        "budget": budget,
        "income": income,
        "expense": expense,
        "material_cost": material_cost,
        "labor_cost": labor_cost,
        "profit": income - expense,
        "progress": round(income / budget * 100, 1) if budget > 0 else 0.0,
    }


def expense_breakdown(materials: Sequence[MaterialOrder], logs: Sequence[WorkerLog]) -> dict:
    by_type = {}
    for m in materials:
        key = m.material_type or "Other"
        by_type[key] = by_type.get(key, 0.0) + (m.paid_amount or 0.0)
    paid = _paid_logs(logs)
    by_category = {}
    for w in paid:
        by_category[w.category] = by_category.get(w.category, 0.0) + w.total_wage
    return {
        "materials": [{"type": k, "amount": v} for k, v in by_type.items()],
        "labor": [{"category": k, "amount": v} for k, v in by_category.items()],
        "totals": {
            "materials": sum(m.paid_amount or 0.0 for m in materials),
            "labor": sum(w.total_wage for w in paid),
        },
    }


def weekly_workforce(logs: Sequence[WorkerLog], today: date, weeks: int = 12) -> List[dict]:
    """
    ``weeks`` trailing 7-day buckets, oldest first; the last one ends today.
    """
    buckets = []
    for i in range(max(weeks, 0) - 1, -1, -1):
        week_end = today - timedelta(days=i * 7)
        week_start = week_end - timedelta(days=6)
        in_week = [w for w in logs if w.date is not None and week_start <= w.date <= week_end]
        buckets.append({
            "week_start": week_start,
            "week_end": week_end,
            "total_wage": sum(w.total_wage for w in in_week),
            "worker_count": sum(w.count for w in in_week),
            "log_count": len(in_week),
        })
    return buckets


# =====================
# Loaders
# =====================

def _scoped(q, model, project_id: Optional[uuid.UUID], start: Optional[date], end: Optional[date], created_attr: str = "created_at"):
    if project_id:
        q = q.filter(model.project_id == project_id)
    created = getattr(model, created_attr)
    if start:
        q = q.filter(created >= datetime.combine(start, datetime.min.time()))
    if end:
        q = q.filter(created < datetime.combine(end + timedelta(days=1), datetime.min.time()))
    return q


def collect_overview(
    db: Session,
    project_id: Optional[uuid.UUID] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> dict:
    milestones = _scoped(db.query(PaymentMilestone), PaymentMilestone, project_id, start, end).all()
    materials = _scoped(db.query(MaterialOrder), MaterialOrder, project_id, start, end).all()
    logs = _scoped(db.query(WorkerLog), WorkerLog, project_id, start, end).all()
    data = overview(milestones, materials, logs)
    data["counts"] = {
        "projects": db.query(Project).count(),
        "active_projects": db.query(Project).filter(Project.status.notin_(["COMPLETED", "ON_HOLD"])).count(),
        "vendors": db.query(Vendor).filter(Vendor.is_active.is_(True)).count(),
        "pending_payments": sum(1 for m in milestones if m.status != "PAID"),
    }
    return data


def collect_monthly(db: Session, year: int) -> List[dict]:
    first, _ = month_bounds(year, 1)
    _, last = month_bounds(year, 12)
    lo = datetime.combine(first, datetime.min.time())
    hi = datetime.combine(last + timedelta(days=1), datetime.min.time())
    milestones = (
        db.query(PaymentMilestone)
        .options(selectinload(PaymentMilestone.part_payments))
        .filter(PaymentMilestone.paid_amount > 0)
        .all()
    )
    material_payments = (
        db.query(MaterialPayment)
        .filter(MaterialPayment.payment_date >= lo, MaterialPayment.payment_date < hi)
        .all()
    )
    paid_logs = (
        db.query(WorkerLog)
        .filter(WorkerLog.status == "PAID", WorkerLog.date >= first, WorkerLog.date <= last)
        .all()
    )
    return monthly_trend(year, milestone_income_events(milestones), material_payments, paid_logs)


def collect_project_stats(db: Session, statuses: Optional[Sequence[str]] = None) -> List[dict]:
    q = db.query(Project).options(
        selectinload(Project.milestones),
        selectinload(Project.materials),
        selectinload(Project.worker_logs),
    )
    if statuses:
        q = q.filter(Project.status.in_(list(statuses)))
    return [project_stats(p) for p in q.order_by(Project.created_at.desc()).all()]


def collect_expense_breakdown(db: Session, project_id: Optional[uuid.UUID] = None) -> dict:
    materials = _scoped(db.query(MaterialOrder), MaterialOrder, project_id, None, None).all()
    logs = _scoped(db.query(WorkerLog), WorkerLog, project_id, None, None).filter(WorkerLog.status == "PAID").all()
    return expense_breakdown(materials, logs)


def collect_weekly_workforce(db: Session, today: date, weeks: int = 12) -> List[dict]:
    start = today - timedelta(days=max(weeks, 1) * 7 - 1)
    logs = db.query(WorkerLog).filter(WorkerLog.date >= start, WorkerLog.date <= today).all()
    return weekly_workforce(logs, today, weeks)
