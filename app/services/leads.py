"""
Lead pipeline.

Stage changes append to the lead's stage history. follow_up_count and
next_follow_up are derived from the FollowUp rows after every change.
WON and LOST are terminal.
"""
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..errors import PreconditionFailed
from ..models.models import FollowUp, Lead, Project, User
from .audit import create_audit_log
from .catalog import StageTemplate
from .projects import create_project
from .store import Store
from .time_rules import to_naive_utc, utc_now, utc_to_local_date

STAGES = ("NEW", "CONTACTED", "QUALIFIED", "PROPOSAL_SENT", "NEGOTIATION", "WON", "LOST")
TERMINAL = ("WON", "LOST")


def history_entry(stage: str, now: datetime, previous: Optional[str] = None, note: Optional[str] = None) -> dict:
    entry = {"stage": stage, "date": now.isoformat(), "note": note or f"Moved to {stage}"}
    if previous is not None:
        entry["previous_stage"] = previous
    return entry


def refresh_follow_up_fields(lead: Lead) -> None:
    follow_ups = list(lead.follow_ups)
    lead.follow_up_count = len(follow_ups)
    upcoming = [f.scheduled_at for f in follow_ups if not f.is_completed and f.scheduled_at is not None]
    lead.next_follow_up = min(upcoming) if upcoming else None


def _move(lead: Lead, stage: str, note: Optional[str], now: datetime) -> None:
    if stage not in STAGES:
        raise PreconditionFailed(f"Unknown stage {stage!r}", stage=stage)
    if lead.stage in TERMINAL:
        raise PreconditionFailed(f"Lead is already {lead.stage}", lead_id=str(lead.id))
    if stage == lead.stage:
        raise PreconditionFailed(f"Lead is already in {stage}", lead_id=str(lead.id))
    # Reassign so the JSON column is flagged dirty
    lead.stage_history = list(lead.stage_history or []) + [history_entry(stage, now, lead.stage, note)]
    lead.stage = stage


def list_leads(
    db: Session,
    stage: Optional[str] = None,
    source: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Lead]:
    q = db.query(Lead)
    if stage:
        q = q.filter(Lead.stage == stage)
    if source:
        q = q.filter(Lead.source == source)
    if priority:
        q = q.filter(Lead.priority == priority)
    if search:
        like = f"%{search}%"
        q = q.filter((Lead.name.ilike(like)) | (Lead.phone.ilike(like)) | (Lead.email.ilike(like)))
    return q.order_by(Lead.created_at.desc()).all()


def pipeline(db: Session) -> Dict[str, List[Lead]]:
    leads = db.query(Lead).order_by(Lead.updated_at.desc()).all()
    board = {stage: [] for stage in STAGES}
    for lead in leads:
        board.setdefault(lead.stage, []).append(lead)
    return board


def create_lead(db: Session, data: dict, actor: Optional[User] = None) -> Lead:
    now = utc_now()
    store = Store(db)
    with store.transaction():
        lead = store.create(
            Lead,
            stage="NEW",
            stage_history=[history_entry("NEW", now, note="Lead created")],
            follow_up_count=0,
            **data,
        )
        create_audit_log(
            db,
            entity_type="lead",
            entity_id=lead.id,
            action="CREATE",
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
        )
    return lead


def update_lead(db: Session, lead_id: uuid.UUID, patch) -> Lead:
    """LeadPatch covers contact and qualification fields; stage moves go through move_stage."""
    store = Store(db)
    with store.transaction():
        lead = store.get(Lead, lead_id)
        store.update(lead, **patch.model_dump(exclude_unset=True))
    return lead


def move_stage(db: Session, lead_id: uuid.UUID, stage: str, note: Optional[str] = None, actor: Optional[User] = None) -> Lead:
    store = Store(db)
    with store.transaction():
        lead = store.get(Lead, lead_id, lock=True)
        previous = lead.stage
        _move(lead, stage, note, utc_now())
        db.flush()
        create_audit_log(
            db,
            entity_type="lead",
            entity_id=lead.id,
            action="STAGE",
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            changes_json={"stage": {"before": previous, "after": stage}},
        )
    return lead


def add_follow_up(db: Session, lead_id: uuid.UUID, data: dict, actor: Optional[User] = None) -> FollowUp:
    store = Store(db)
    with store.transaction():
        lead = store.get(Lead, lead_id, lock=True)
        follow_up = FollowUp(
            type=data.get("type") or "CALL",
            notes=data.get("notes"),
            scheduled_at=to_naive_utc(data.get("scheduled_at")),
            next_action=data.get("next_action"),
            created_by_id=actor.id if actor else None,
        )
        lead.follow_ups.append(follow_up)
        db.flush()
        refresh_follow_up_fields(lead)
    return follow_up


def complete_follow_up(
    db: Session,
    follow_up_id: uuid.UUID,
    outcome: Optional[str] = None,
    next_action: Optional[str] = None,
    next_follow_up_date: Optional[datetime] = None,
    actor: Optional[User] = None,
) -> FollowUp:
    """
    Close a follow-up and stamp the lead's last contact. A next date
    schedules a new follow-up rather than overwriting the derived field.
    """
    store = Store(db)
    with store.transaction():
        follow_up = store.get(FollowUp, follow_up_id, lock=True)
        if follow_up.is_completed:
            raise PreconditionFailed("Follow-up is already completed", follow_up_id=str(follow_up_id))
        now = utc_now()
        follow_up.is_completed = True
        follow_up.completed_at = now
        follow_up.outcome = outcome
        if next_action is not None:
            follow_up.next_action = next_action
        lead = follow_up.lead
        lead.last_contact_date = now
        if next_follow_up_date is not None:
            lead.follow_ups.append(FollowUp(
                type=follow_up.type,
                scheduled_at=to_naive_utc(next_follow_up_date),
                next_action=next_action,
                created_by_id=actor.id if actor else None,
            ))
        db.flush()
        refresh_follow_up_fields(lead)
    return follow_up


def convert_lead(
    db: Session,
    lead_id: uuid.UUID,
    stages: StageTemplate,
    project_name: Optional[str] = None,
    budget: Optional[float] = None,
    description: Optional[str] = None,
    actor: Optional[User] = None,
) -> Project:
    """Create a project from the lead and close the lead as WON."""
    lead = Store(db).get(Lead, lead_id)
    if lead.is_converted or lead.stage in TERMINAL:
        raise PreconditionFailed(f"Lead is already {lead.stage}", lead_id=str(lead_id))
    project = create_project(
        db,
        {
            "name": project_name or f"{lead.name} Project",
            "description": description or lead.interest,
            "budget": budget if budget is not None else (lead.budget or 0.0),
            "client_name": lead.name,
            "client_phone": lead.phone,
            "client_address": lead.address,
            "status": "ACTIVE",
        },
        stages,
        actor=actor,
    )
    store = Store(db)
    with store.transaction():
        lead = store.get(Lead, lead_id, lock=True)
        now = utc_now()
        _move(lead, "WON", "Converted to project", now)
        lead.is_converted = True
        lead.converted_project_id = project.id
        lead.converted_at = now
        create_audit_log(
            db,
            entity_type="lead",
            entity_id=lead.id,
            action="CONVERT",
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            context={"project_id": project.id},
        )
    return project


def lose_lead(db: Session, lead_id: uuid.UUID, reason: Optional[str] = None, actor: Optional[User] = None) -> Lead:
    store = Store(db)
    with store.transaction():
        lead = store.get(Lead, lead_id, lock=True)
        _move(lead, "LOST", reason or "Marked as lost", utc_now())
        lead.lost_reason = reason
    return lead


def delete_lead(db: Session, lead_id: uuid.UUID) -> None:
    store = Store(db)
    with store.transaction():
        store.delete(store.get(Lead, lead_id))


def lead_stats(leads: List[Lead], now: datetime, today: date) -> dict:
    by_stage = {stage: 0 for stage in STAGES}
    by_source = {}
    for lead in leads:
        by_stage[lead.stage] = by_stage.get(lead.stage, 0) + 1
        by_source[lead.source] = by_source.get(lead.source, 0) + 1
    open_leads = [l for l in leads if l.stage not in TERMINAL]
    converted = sum(1 for l in leads if l.is_converted)
    return {
        "total": len(leads),
        "open": len(open_leads),
        "by_stage": by_stage,
        "by_source": by_source,
        "overdue_follow_ups": sum(1 for l in open_leads if l.next_follow_up and l.next_follow_up < now),
        "today_follow_ups": sum(
            1 for l in open_leads
            if l.next_follow_up and utc_to_local_date(l.next_follow_up) == today
        ),
        "conversion_rate": round(converted / len(leads) * 100, 1) if leads else 0.0,
    }
