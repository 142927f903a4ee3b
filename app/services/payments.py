"""
Payment milestone service.

Runs the acknowledgment workflow against stored milestones: lock the row,
apply the pure transition, persist the result together with its part-payment
record, project spent figure and audit entry in one transaction, then hand
the notifications to the notifier once the money side is committed.
"""
import uuid
from contextlib import contextmanager
from datetime import date
from typing import Callable, Iterator, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import InvalidAmount, PreconditionFailed
from ..models.models import PaymentMilestone, PartPayment, Project, User
from ..config import settings
from .audit import create_audit_log
from .catalog import MilestoneSchedule
from .locks import entity_lock
from .milestones import (
    AWAITING,
    MilestoneSnapshot,
    MilestoneStatus,
    Transition,
    change_amount,
    client_acknowledge as _client_acknowledge,
    confirm_payment as _confirm_payment,
    format_money,
    request_acknowledgment as _request_acknowledgment,
    withdraw_acknowledgment_request as _withdraw_acknowledgment_request,
)
from .notifications import DatabaseNotifier, NotificationIntent
from .store import Store
from .time_rules import in_reminder_window, utc_now


log = structlog.get_logger()

OPEN_STATUSES = (
    MilestoneStatus.PENDING.value,
    MilestoneStatus.AWAITING_CLIENT.value,
    MilestoneStatus.PARTIAL.value,
)


def project_admin_id(project: Project) -> Optional[uuid.UUID]:
    return project.assigned_admin_id or project.created_by_id


def snapshot(m: PaymentMilestone, project: Project) -> MilestoneSnapshot:
    return MilestoneSnapshot(
        id=m.id,
        project_id=m.project_id,
        stage_name=m.stage_name,
        amount=m.amount,
        paid_amount=m.paid_amount or 0.0,
        status=MilestoneStatus(m.status),
        admin_acknowledged=bool(m.admin_acknowledged),
        admin_acknowledged_at=m.admin_acknowledged_at,
        admin_acknowledged_by=m.admin_acknowledged_by,
        client_acknowledged=bool(m.client_acknowledged),
        client_acknowledged_at=m.client_acknowledged_at,
        client_notes=m.client_notes,
        paid_date=m.paid_date,
        project_name=project.name,
        client_id=project.client_id,
        admin_id=project_admin_id(project),
    )


def _write(m: PaymentMilestone, snap: MilestoneSnapshot) -> None:
    m.stage_name = snap.stage_name
    m.amount = snap.amount
    m.paid_amount = snap.paid_amount
    m.remaining_amount = snap.remaining_amount
    m.status = snap.status.value
    m.admin_acknowledged = snap.admin_acknowledged
    m.admin_acknowledged_at = snap.admin_acknowledged_at
    m.admin_acknowledged_by = snap.admin_acknowledged_by
    m.client_acknowledged = snap.client_acknowledged
    m.client_acknowledged_at = snap.client_acknowledged_at
    m.client_notes = snap.client_notes
    m.paid_date = snap.paid_date


def _state(snap: MilestoneSnapshot) -> dict:
    return {
        "status": snap.status.value,
        "amount": snap.amount,
        "paid_amount": snap.paid_amount,
        "admin_acknowledged": snap.admin_acknowledged,
        "client_acknowledged": snap.client_acknowledged,
    }


def recompute_project_spent(db: Session, project_id: uuid.UUID) -> float:
    """
    Project spent is the sum of paid amounts across all its milestones.

    Callers hold the project mutex (see ``_milestone_locks``). Pending
    milestone writes are flushed first so the sum sees them, and the project
    row is locked before summing so concurrent writers on other milestones of
    the same project queue behind it.
    """
    db.flush()
    project = Store(db).get(Project, project_id, lock=True)
    total = (
        db.query(func.coalesce(func.sum(PaymentMilestone.paid_amount), 0.0))
        .filter(PaymentMilestone.project_id == project_id)
        .scalar()
    )
    project.spent = float(total or 0.0)
    db.flush()
    return project.spent


@contextmanager
def _milestone_locks(db: Session, milestone_id: uuid.UUID) -> Iterator[None]:
    # Lock order: milestone first, then its project
    project_id = Store(db).get(PaymentMilestone, milestone_id).project_id
    with entity_lock("milestone", milestone_id), entity_lock("project", project_id):
        yield


def _run(
    db: Session,
    milestone_id: uuid.UUID,
    actor: Optional[User],
    step: Callable[[MilestoneSnapshot], Transition],
) -> PaymentMilestone:
    store = Store(db)
    with _milestone_locks(db, milestone_id):
        with store.transaction():
            m = store.get(PaymentMilestone, milestone_id, lock=True)
            project = store.get(Project, m.project_id)
            t = step(snapshot(m, project))
            if t.changed:
                _write(m, t.after)
            if t.payment is not None:
                m.is_part_payment = t.after.status != MilestoneStatus.PAID
                if t.record_part_payment:
                    store.create(
                        PartPayment,
                        milestone_id=m.id,
                        amount=t.payment.amount,
                        balance_after=t.payment.balance_after,
                        notes=t.payment.notes,
                        receipt_ref=t.payment.reference,
                        confirmed_by=actor.id if actor else None,
                    )
                recompute_project_spent(db, project.id)
            create_audit_log(
                db,
                entity_type="milestone",
                entity_id=m.id,
                action=t.action,
                actor_id=actor.id if actor else None,
                actor_role=actor.role if actor else None,
                changes_json={"before": _state(t.before), "after": _state(t.after)},
                context={
                    "project_id": project.id,
                    "amount": t.payment.amount if t.payment else None,
                },
            )
        log.info(
            "milestone_transition",
            milestone_id=str(milestone_id),
            action=t.action,
            status_before=t.before.status.value,
            status_after=t.after.status.value,
            paid_amount=t.after.paid_amount,
        )
    DatabaseNotifier(db).send_all(t.intents)
    return m


def request_acknowledgment(db: Session, milestone_id: uuid.UUID, actor: User) -> PaymentMilestone:
    return _run(db, milestone_id, actor, lambda s: _request_acknowledgment(s, actor.id, utc_now()))


def client_acknowledge(
    db: Session,
    milestone_id: uuid.UUID,
    actor: Optional[User],
    accepted: bool,
    notes: Optional[str] = None,
) -> PaymentMilestone:
    return _run(db, milestone_id, actor, lambda s: _client_acknowledge(s, accepted, notes, utc_now()))


def withdraw_acknowledgment_request(db: Session, milestone_id: uuid.UUID, actor: User) -> PaymentMilestone:
    return _run(db, milestone_id, actor, lambda s: _withdraw_acknowledgment_request(s, utc_now()))


def confirm_payment(
    db: Session,
    milestone_id: uuid.UUID,
    actor: User,
    *,
    amount: Optional[float] = None,
    is_part_payment: bool = False,
    notes: Optional[str] = None,
    receipt_ref: Optional[str] = None,
) -> PaymentMilestone:
    return _run(
        db,
        milestone_id,
        actor,
        lambda s: _confirm_payment(
            s,
            utc_now(),
            amount=amount,
            is_part_payment=is_part_payment,
            notes=notes,
            receipt_ref=receipt_ref,
        ),
    )


def create_milestone(
    db: Session,
    *,
    project_id: uuid.UUID,
    stage_name: str,
    amount: float,
    due_date: Optional[date] = None,
    reminder_days: Optional[int] = None,
    reminder_enabled: bool = True,
    notes: Optional[str] = None,
    actor: Optional[User] = None,
) -> PaymentMilestone:
    if amount is None or amount <= 0:
        raise InvalidAmount("amount", amount)
    store = Store(db)
    with store.transaction():
        project = store.get(Project, project_id)
        m = store.create(
            PaymentMilestone,
            project_id=project.id,
            stage_name=stage_name,
            amount=amount,
            paid_amount=0.0,
            remaining_amount=amount,
            status=MilestoneStatus.PENDING.value,
            due_date=due_date,
            reminder_days=reminder_days if reminder_days is not None else settings.default_reminder_days,
            reminder_enabled=reminder_enabled,
            notes=notes,
        )
        create_audit_log(
            db,
            entity_type="milestone",
            entity_id=m.id,
            action="CREATE",
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            context={"project_id": project.id, "amount": amount},
        )
        intent = NotificationIntent(
            recipient_id=project.client_id,
            project_id=project.id,
            title="New Payment Milestone",
            body=f'Payment milestone "{stage_name}" of {format_money(amount)} has been added to {project.name}',
            category="PAYMENT_REMINDER",
        )
    DatabaseNotifier(db).send(intent)
    return m


def setup_milestones(
    db: Session,
    *,
    project_id: uuid.UUID,
    schedule: MilestoneSchedule,
    actor: Optional[User] = None,
) -> List[PaymentMilestone]:
    """Create one milestone per schedule share, each a percentage of the project budget."""
    store = Store(db)
    with store.transaction():
        project = store.get(Project, project_id)
        if not project.budget or project.budget <= 0:
            raise PreconditionFailed("Project budget must be set before creating a payment schedule", project_id=str(project_id))
        created = []
        for share, amount in schedule.amounts_for(project.budget):
            created.append(store.create(
                PaymentMilestone,
                project_id=project.id,
                stage_name=share.stage_name,
                amount=amount,
                paid_amount=0.0,
                remaining_amount=amount,
                status=MilestoneStatus.PENDING.value,
                due_date=share.due_date,
                reminder_days=settings.default_reminder_days,
            ))
        create_audit_log(
            db,
            entity_type="project",
            entity_id=project.id,
            action="PAYMENT_SCHEDULE",
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            context={"milestones": [s.stage_name for s in schedule.shares], "budget": project.budget},
        )
        intent = NotificationIntent(
            recipient_id=project.client_id,
            project_id=project.id,
            title="Payment Schedule Created",
            body=f"Payment schedule with {len(created)} milestones has been set up for {project.name}",
            category="INFO",
        )
    DatabaseNotifier(db).send(intent)
    return created


def update_milestone(db: Session, milestone_id: uuid.UUID, patch, actor: Optional[User] = None) -> PaymentMilestone:
    """
    Apply a MilestonePatch. Only descriptive fields and the amount are
    editable; paid/remaining/status are re-derived from the amount.
    """
    fields = patch.model_dump(exclude_unset=True)
    store = Store(db)
    with _milestone_locks(db, milestone_id):
        with store.transaction():
            m = store.get(PaymentMilestone, milestone_id, lock=True)
            before = {k: getattr(m, k) for k in fields}
            new_amount = fields.pop("amount", None)
            for key, value in fields.items():
                setattr(m, key, value)
            if new_amount is not None and new_amount != m.amount:
                project = store.get(Project, m.project_id)
                t = change_amount(snapshot(m, project), new_amount, utc_now())
                _write(m, t.after)
                recompute_project_spent(db, m.project_id)
            db.flush()
            create_audit_log(
                db,
                entity_type="milestone",
                entity_id=m.id,
                action="UPDATE",
                actor_id=actor.id if actor else None,
                actor_role=actor.role if actor else None,
                changes_json={"before": before, "after": {k: getattr(m, k) for k in before}},
            )
    return m


def delete_milestone(db: Session, milestone_id: uuid.UUID, actor: Optional[User] = None) -> None:
    store = Store(db)
    with _milestone_locks(db, milestone_id):
        with store.transaction():
            m = store.get(PaymentMilestone, milestone_id, lock=True)
            project_id = m.project_id
            create_audit_log(
                db,
                entity_type="milestone",
                entity_id=m.id,
                action="DELETE",
                actor_id=actor.id if actor else None,
                actor_role=actor.role if actor else None,
                changes_json={"before": {"amount": m.amount, "paid_amount": m.paid_amount, "status": m.status}},
            )
            store.delete(m)
            recompute_project_spent(db, project_id)


def list_milestones(
    db: Session,
    project_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
) -> List[PaymentMilestone]:
    q = db.query(PaymentMilestone)
    if project_id:
        q = q.filter(PaymentMilestone.project_id == project_id)
    if status:
        q = q.filter(PaymentMilestone.status == status)
    return q.order_by(PaymentMilestone.created_at.desc()).all()


def summarize_project_milestones(milestones: List[PaymentMilestone]) -> dict:
    """Totals and next open payment for milestones ordered by creation."""
    total = sum(m.amount for m in milestones)
    paid = sum(m.paid_amount or 0.0 for m in milestones)
    next_payment = next((m for m in milestones if m.status in OPEN_STATUSES), None)
    return {
        "total_value": total,
        "paid_till_date": paid,
        "remaining_payment": max(0.0, total - paid),
        "next_payment": {
            "id": next_payment.id,
            "stage_name": next_payment.stage_name,
            "amount": next_payment.remaining_amount,
            "due_date": next_payment.due_date,
            "status": next_payment.status,
        } if next_payment else None,
        "total_milestones": len(milestones),
        "paid_milestones": sum(1 for m in milestones if m.status == MilestoneStatus.PAID.value),
        "awaiting_acknowledgment": sum(1 for m in milestones if MilestoneStatus(m.status) in AWAITING),
    }


def project_milestones(db: Session, project_id: uuid.UUID) -> List[PaymentMilestone]:
    Store(db).get(Project, project_id)
    return (
        db.query(PaymentMilestone)
        .filter(PaymentMilestone.project_id == project_id)
        .order_by(PaymentMilestone.created_at.asc())
        .all()
    )


def milestone_stats(milestones: List[PaymentMilestone], today: date) -> dict:
    expected = sum(m.amount for m in milestones)
    received = sum(m.paid_amount or 0.0 for m in milestones)
    overdue = [
        m for m in milestones
        if m.status != MilestoneStatus.PAID.value and m.due_date is not None and m.due_date < today
    ]
    return {
        "total_expected": expected,
        "total_received": received,
        "total_pending": max(0.0, expected - received),
        "overdue_count": len(overdue),
        "overdue_amount": sum(m.remaining_amount or 0.0 for m in overdue),
        "awaiting_acknowledgment_count": sum(1 for m in milestones if MilestoneStatus(m.status) in AWAITING),
        "partial_payments_count": sum(1 for m in milestones if m.status == MilestoneStatus.PARTIAL.value),
    }


def due_reminders(db: Session, today: date) -> List[PaymentMilestone]:
    """Open milestones whose reminder window (due - reminder_days .. due) contains today."""
    candidates = (
        db.query(PaymentMilestone)
        .filter(
            PaymentMilestone.status.in_(OPEN_STATUSES),
            PaymentMilestone.reminder_enabled.is_(True),
            PaymentMilestone.due_date.isnot(None),
        )
        .order_by(PaymentMilestone.due_date.asc())
        .all()
    )
    return [m for m in candidates if in_reminder_window(m.due_date, m.reminder_days, today)]
