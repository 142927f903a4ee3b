"""
Workforce wage logs.

Logs are keyed to a category from the worker catalog (built-ins plus active
custom categories). total_wage is always produced by the wage calculator;
edits to count/rate/hours/shift/fraction recompute it.
"""
import uuid
from datetime import date
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import InvalidAmount, PreconditionFailed
from ..models.models import CustomWorkerCategory, User, WorkerLog
from .audit import create_audit_log
from .catalog import WorkerCatalog, WorkerCategory
from .locks import entity_lock
from .store import Store
from .time_rules import iso_week, local_today, utc_now, week_bounds
from .wages import DEFAULT_RULES, ShiftKind, WageRules, calculate_wage


log = structlog.get_logger()

WAGE_INPUTS = ("count", "rate_per_worker", "hours_worked", "shift", "shift_fraction")


def load_catalog(db: Session, base: WorkerCatalog) -> WorkerCatalog:
    custom = (
        db.query(CustomWorkerCategory)
        .filter(CustomWorkerCategory.is_active.is_(True))
        .order_by(CustomWorkerCategory.name.asc())
        .all()
    )
    return base.with_custom(
        WorkerCategory(key=c.name, label=c.name, default_rate=c.default_rate, custom=True)
        for c in custom
    )


def create_category(db: Session, *, name: str, default_rate: float = 500.0, description: Optional[str] = None) -> CustomWorkerCategory:
    if default_rate is None or default_rate < 0:
        raise InvalidAmount("default_rate", default_rate, "rate must not be negative")
    store = Store(db)
    with store.transaction():
        if db.query(CustomWorkerCategory).filter(CustomWorkerCategory.name == name).first():
            raise PreconditionFailed(f"Category {name!r} already exists", name=name)
        category = store.create(CustomWorkerCategory, name=name, default_rate=default_rate, description=description)
    return category


def update_category(db: Session, category_id: uuid.UUID, patch) -> CustomWorkerCategory:
    fields = patch.model_dump(exclude_unset=True)
    if "default_rate" in fields and (fields["default_rate"] is None or fields["default_rate"] < 0):
        raise InvalidAmount("default_rate", fields["default_rate"], "rate must not be negative")
    store = Store(db)
    with store.transaction():
        category = store.get(CustomWorkerCategory, category_id)
        store.update(category, **fields)
    return category


def list_logs(
    db: Session,
    project_id: Optional[uuid.UUID] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    week_number: Optional[int] = None,
    week_year: Optional[int] = None,
) -> List[WorkerLog]:
    q = db.query(WorkerLog)
    if project_id:
        q = q.filter(WorkerLog.project_id == project_id)
    if category:
        q = q.filter(WorkerLog.category == category)
    if status:
        q = q.filter(WorkerLog.status == status)
    if start_date:
        q = q.filter(WorkerLog.date >= start_date)
    if end_date:
        q = q.filter(WorkerLog.date <= end_date)
    if week_number:
        q = q.filter(WorkerLog.week_number == week_number)
    if week_year:
        q = q.filter(WorkerLog.week_year == week_year)
    return q.order_by(WorkerLog.date.desc()).all()


def create_log(
    db: Session,
    data: dict,
    catalog: WorkerCatalog,
    actor: Optional[User] = None,
    rules: WageRules = DEFAULT_RULES,
) -> WorkerLog:
    """
    Record a day's work. Missing rate falls back to the category default,
    missing date to today in the business timezone.
    """
    catalog = load_catalog(db, catalog)
    data = dict(data)
    custom_category = data.pop("custom_category", None)
    key = custom_category or data.pop("category", None)
    data.pop("category", None)
    category = catalog.get(key)

    log_date = data.pop("date", None) or local_today()
    rate = data.pop("rate_per_worker", None)
    if rate is None:
        rate = category.default_rate
    count = data.pop("count", 1)
    hours = data.pop("hours_worked", None)
    if hours is None:
        hours = rules.base_hours
    shift = ShiftKind(data.pop("shift", None) or ShiftKind.DAY)
    fraction = data.pop("shift_fraction", None)
    if fraction is None:
        fraction = 1.0
    total = calculate_wage(count, rate, hours, shift, fraction, rules=rules)
    week_year, week_number = iso_week(log_date)

    store = Store(db)
    with store.transaction():
        entry = store.create(
            WorkerLog,
            category=category.key,
            custom_category=custom_category,
            count=count,
            shift=shift.value,
            shift_fraction=fraction,
            date=log_date,
            hours_worked=hours,
            rate_per_worker=rate,
            total_wage=total,
            week_number=week_number,
            week_year=week_year,
            **data,
        )
        create_audit_log(
            db,
            entity_type="worker_log",
            entity_id=entry.id,
            action="CREATE",
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            context={"category": category.key, "total_wage": total, "project_id": entry.project_id},
        )
    log.info("worker_log_created", worker_log_id=str(entry.id), category=category.key, count=count, total_wage=total)
    return entry


def update_log(
    db: Session,
    log_id: uuid.UUID,
    patch,
    catalog: WorkerCatalog,
    actor: Optional[User] = None,
    rules: WageRules = DEFAULT_RULES,
) -> WorkerLog:
    """Apply a WorkerLogPatch; total_wage is re-derived whenever a wage input changes."""
    fields = patch.model_dump(exclude_unset=True)
    store = Store(db)
    with entity_lock("worker_log", log_id):
        with store.transaction():
            entry = store.get(WorkerLog, log_id, lock=True)
            if entry.status == "PAID" and any(k in fields for k in WAGE_INPUTS):
                raise PreconditionFailed("Wage inputs of a paid log cannot change", worker_log_id=str(log_id))
            before_total = entry.total_wage
            if "category" in fields or "custom_category" in fields:
                custom = fields.pop("custom_category", None)
                key = custom or fields.pop("category", None) or entry.category
                fields.pop("category", None)
                entry.category = load_catalog(db, catalog).get(key).key
                entry.custom_category = custom
            if "date" in fields and fields["date"] is not None:
                entry.week_year, entry.week_number = iso_week(fields["date"])
            if "shift" in fields and fields["shift"] is not None:
                fields["shift"] = ShiftKind(fields["shift"]).value
            for key, value in fields.items():
                setattr(entry, key, value)
            entry.total_wage = calculate_wage(
                entry.count,
                entry.rate_per_worker,
                entry.hours_worked,
                entry.shift,
                entry.shift_fraction,
                rules=rules,
            )
            create_audit_log(
                db,
                entity_type="worker_log",
                entity_id=entry.id,
                action="UPDATE",
                actor_id=actor.id if actor else None,
                actor_role=actor.role if actor else None,
                changes_json={"total_wage": {"before": before_total, "after": entry.total_wage}},
            )
    return entry


def delete_log(db: Session, log_id: uuid.UUID) -> None:
    store = Store(db)
    with store.transaction():
        store.delete(store.get(WorkerLog, log_id))


def verify_log(db: Session, log_id: uuid.UUID, actor: User) -> WorkerLog:
    store = Store(db)
    with store.transaction():
        entry = store.get(WorkerLog, log_id)
        store.update(entry, work_verified=True, verified_at=utc_now(), verified_by=actor.id)
    return entry


def report_mistake(db: Session, log_id: uuid.UUID, description: str, fault_tolerance: Optional[str] = None) -> WorkerLog:
    store = Store(db)
    with store.transaction():
        entry = store.get(WorkerLog, log_id)
        store.update(
            entry,
            has_mistake=True,
            mistake_description=description,
            fault_tolerance=fault_tolerance or "MEDIUM",
            mistake_acknowledged=False,
            mistake_acknowledged_at=None,
        )
    return entry


def acknowledge_mistake(db: Session, log_id: uuid.UUID) -> WorkerLog:
    store = Store(db)
    with store.transaction():
        entry = store.get(WorkerLog, log_id)
        if not entry.has_mistake:
            raise PreconditionFailed("No mistake has been reported on this log", worker_log_id=str(log_id))
        store.update(entry, mistake_acknowledged=True, mistake_acknowledged_at=utc_now())
    return entry


def mark_paid(db: Session, log_id: uuid.UUID, actor: Optional[User] = None) -> WorkerLog:
    store = Store(db)
    with entity_lock("worker_log", log_id):
        with store.transaction():
            entry = store.get(WorkerLog, log_id, lock=True)
            if entry.status != "PAID":
                entry.status = "PAID"
                entry.paid_at = utc_now()
                create_audit_log(
                    db,
                    entity_type="worker_log",
                    entity_id=entry.id,
                    action="PAYMENT",
                    actor_id=actor.id if actor else None,
                    actor_role=actor.role if actor else None,
                    context={"amount": entry.total_wage},
                )
    return entry


def pay_week(
    db: Session,
    week_number: int,
    week_year: int,
    project_id: Optional[uuid.UUID] = None,
    actor: Optional[User] = None,
) -> int:
    """Mark every pending log of an ISO week as paid. Returns how many changed."""
    store = Store(db)
    with store.transaction():
        q = db.query(WorkerLog).filter(
            WorkerLog.week_number == week_number,
            WorkerLog.week_year == week_year,
            WorkerLog.status == "PENDING",
        )
        if project_id:
            q = q.filter(WorkerLog.project_id == project_id)
        pending = q.with_for_update().all()
        now = utc_now()
        for entry in pending:
            entry.status = "PAID"
            entry.paid_at = now
        if pending:
            create_audit_log(
                db,
                entity_type="worker_log",
                entity_id=pending[0].id,
                action="PAY_WEEK",
                actor_id=actor.id if actor else None,
                actor_role=actor.role if actor else None,
                context={
                    "week_number": week_number,
                    "week_year": week_year,
                    "logs": [e.id for e in pending],
                    "amount": sum(e.total_wage for e in pending),
                },
            )
    log.info("week_paid", week_number=week_number, week_year=week_year, logs=len(pending))
    return len(pending)


def weekly_summary(logs: List[WorkerLog], week_number: int, week_year: int) -> dict:
    by_category = {}
    for entry in logs:
        bucket = by_category.setdefault(entry.category, {
            "category": entry.category,
            "total_workers": 0,
            "total_wage": 0.0,
            "logs": [],
        })
        bucket["total_workers"] += entry.count
        bucket["total_wage"] += entry.total_wage
        bucket["logs"].append(entry)
    try:
        week_start, week_end = week_bounds(week_year, week_number)
    except ValueError:
        raise PreconditionFailed(f"{week_year} has no ISO week {week_number}", week_number=week_number)
    return {
        "week_number": week_number,
        "week_year": week_year,
        "week_start": week_start,
        "week_end": week_end,
        "total_logs": len(logs),
        "total_wage": sum(e.total_wage for e in logs),
        "total_pending": sum(e.total_wage for e in logs if e.status == "PENDING"),
        "total_paid": sum(e.total_wage for e in logs if e.status == "PAID"),
        "by_category": list(by_category.values()),
    }


def workforce_stats(logs: List[WorkerLog], catalog: WorkerCatalog) -> dict:
    by_category = {}
    for entry in logs:
        known = catalog.find(entry.category)
        bucket = by_category.setdefault(entry.category, {
            "category": entry.category,
            "category_name": known.label if known else entry.category,
            "count": 0,
            "total_workers": 0,
            "total_wage": 0.0,
            "paid": 0.0,
            "pending": 0.0,
            "with_mistakes": 0,
        })
        bucket["count"] += 1
        bucket["total_workers"] += entry.count
        bucket["total_wage"] += entry.total_wage
        if entry.status == "PAID":
            bucket["paid"] += entry.total_wage
        else:
            bucket["pending"] += entry.total_wage
        if entry.has_mistake:
            bucket["with_mistakes"] += 1
    total = sum(e.total_wage for e in logs)
    paid = sum(e.total_wage for e in logs if e.status == "PAID")
    return {
        "summary": {
            "total_logs": len(logs),
            "total_worker_days": sum(e.count for e in logs),
            "total_wages": total,
            "paid_wages": paid,
            "pending_wages": total - paid,
            "logs_with_mistakes": sum(1 for e in logs if e.has_mistake),
        },
        "by_category": list(by_category.values()),
    }


def project_workforce_summary(logs: List[WorkerLog], project_id: uuid.UUID, catalog: WorkerCatalog) -> dict:
    categories = {}
    for entry in logs:
        known = catalog.find(entry.category)
        bucket = categories.setdefault(entry.category, {
            "id": entry.category,
            "category_name": known.label if known else entry.category,
            "total_days": 0,
            "total_workers": 0,
            "total_wage": 0.0,
        })
        bucket["total_days"] += 1
        bucket["total_workers"] += entry.count
        bucket["total_wage"] += entry.total_wage
    return {
        "project_id": project_id,
        "total_logs": len(logs),
        "total_wage": sum(e.total_wage for e in logs),
        "categories": list(categories.values()),
    }
