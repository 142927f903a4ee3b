import uuid
from datetime import timedelta

import pytest

from app.errors import NotFound, PreconditionFailed
from app.models.models import Notification, PartPayment, Project
from app.schemas.payments import MilestonePatch
from app.services import payments
from app.services.audit import get_audit_logs
from app.services.catalog import MilestoneSchedule, MilestoneShare
from app.services.time_rules import local_today


def _settle(db, milestone_id, admin, customer, amount=None):
    payments.request_acknowledgment(db, milestone_id, admin)
    payments.client_acknowledge(db, milestone_id, customer, True, "done")
    return payments.confirm_payment(db, milestone_id, admin, amount=amount)


@pytest.mark.parametrize("order", [(0, 1), (1, 0)])
def test_project_spent_is_sum_of_paid_milestones(db, project, admin, customer, order):
    created = [
        payments.create_milestone(db, project_id=project.id, stage_name="Plinth", amount=100.0, actor=admin),
        payments.create_milestone(db, project_id=project.id, stage_name="Slab", amount=200.0, actor=admin),
    ]
    ids = [m.id for m in created]
    for i in order:
        _settle(db, ids[i], admin, customer)
    db.refresh(project)
    assert project.spent == 300.0


def test_part_payment_counts_toward_spent_in_the_same_session(db, project, admin, customer):
    m = payments.create_milestone(db, project_id=project.id, stage_name="Plinth", amount=500.0, actor=admin)
    _settle(db, m.id, admin, customer, amount=150.0)
    assert db.get(Project, project.id).spent == 150.0
    assert payments.recompute_project_spent(db, project.id) == 150.0


def test_setup_splits_budget_by_schedule_share(db, project, admin):
    schedule = MilestoneSchedule(shares=(MilestoneShare("Advance", 40), MilestoneShare("Advance", 10)))
    created = payments.setup_milestones(db, project_id=project.id, schedule=schedule, actor=admin)
    assert [(m.stage_name, m.amount) for m in created] == [("Advance", 400.0), ("Advance", 100.0)]


def test_full_workflow_persists_flags_and_notifies(db, project, admin, customer):
    m = payments.create_milestone(db, project_id=project.id, stage_name="Plinth", amount=500.0, actor=admin)
    m = payments.request_acknowledgment(db, m.id, admin)
    assert m.status == "AWAITING_CLIENT"
    assert m.admin_acknowledged_by == admin.id

    m = payments.client_acknowledge(db, m.id, customer, True, "paid via UPI")
    assert m.status == "AWAITING_ADMIN"
    assert m.client_acknowledged is True

    m = payments.confirm_payment(db, m.id, admin)
    assert m.status == "PAID"
    assert m.remaining_amount == 0
    assert m.paid_date is not None

    client_titles = [n.title for n in db.query(Notification).filter(Notification.user_id == customer.id).all()]
    assert "Payment Acknowledgment Required" in client_titles
    assert "Payment Confirmed" in client_titles
    admin_titles = [n.title for n in db.query(Notification).filter(Notification.user_id == admin.id).all()]
    assert "Payment Acknowledged by Client" in admin_titles

    actions = [a.action for a in get_audit_logs(db, entity_type="milestone", entity_id=m.id)]
    assert {"CREATE", "REQUEST_ACK", "CLIENT_ACCEPT", "CONFIRM"} <= set(actions)


def test_part_payment_rows_are_recorded(db, project, admin, customer):
    m = payments.create_milestone(db, project_id=project.id, stage_name="Walls", amount=1000.0, actor=admin)
    _settle(db, m.id, admin, customer, amount=400.0)
    m = payments.confirm_payment(db, m.id, admin, amount=600.0, is_part_payment=True)
    assert m.status == "PAID"
    parts = db.query(PartPayment).filter(PartPayment.milestone_id == m.id).order_by(PartPayment.balance_after.desc()).all()
    assert [p.amount for p in parts] == [400.0, 600.0]
    assert [p.balance_after for p in parts] == [600.0, 0.0]


def test_confirm_without_acknowledgment_fails_and_changes_nothing(db, project, admin):
    m = payments.create_milestone(db, project_id=project.id, stage_name="Roof", amount=300.0, actor=admin)
    with pytest.raises(PreconditionFailed):
        payments.confirm_payment(db, m.id, admin)
    db.refresh(m)
    assert m.paid_amount == 0.0
    assert m.status == "PENDING"


def test_client_rejection_is_audited_but_not_applied(db, project, admin, customer):
    m = payments.create_milestone(db, project_id=project.id, stage_name="Roof", amount=300.0, actor=admin)
    payments.request_acknowledgment(db, m.id, admin)
    m = payments.client_acknowledge(db, m.id, customer, False, "not received yet")
    assert m.status == "AWAITING_CLIENT"
    assert m.client_acknowledged is False

    alerts = db.query(Notification).filter(Notification.user_id == admin.id, Notification.category == "ALERT").all()
    assert len(alerts) == 1
    actions = [a.action for a in get_audit_logs(db, entity_type="milestone", entity_id=m.id)]
    assert "CLIENT_REJECT" in actions

    m = payments.withdraw_acknowledgment_request(db, m.id, admin)
    assert m.status == "PENDING"
    assert m.admin_acknowledged is False


def test_setup_uses_budget_percentages(db, project, admin, catalog):
    created = payments.setup_milestones(db, project_id=project.id, schedule=catalog.milestones, actor=admin)
    assert [m.stage_name for m in created][0] == "Advance Payment"
    assert [m.amount for m in created] == [200.0, 250.0, 300.0, 150.0, 100.0]


def test_setup_with_custom_schedule(db, project, admin):
    schedule = MilestoneSchedule((MilestoneShare("Booking", 50), MilestoneShare("Handover", 50)))
    created = payments.setup_milestones(db, project_id=project.id, schedule=schedule, actor=admin)
    assert [m.amount for m in created] == [500.0, 500.0]


def test_setup_requires_budget(db, admin, catalog):
    p = Project(name="No Budget", budget=0.0, spent=0.0, progress=0, status="PLANNING")
    db.add(p)
    db.commit()
    with pytest.raises(PreconditionFailed):
        payments.setup_milestones(db, project_id=p.id, schedule=catalog.milestones, actor=admin)


def test_update_amount_rederives_remaining(db, project, admin, customer):
    m = payments.create_milestone(db, project_id=project.id, stage_name="Tiles", amount=1000.0, actor=admin)
    _settle(db, m.id, admin, customer, amount=400.0)
    m = payments.update_milestone(db, m.id, MilestonePatch(amount=400.0, notes="re-scoped"), actor=admin)
    assert m.status == "PAID"
    assert m.remaining_amount == 0
    assert m.notes == "re-scoped"


def test_delete_recomputes_spent(db, project, admin, customer):
    m = payments.create_milestone(db, project_id=project.id, stage_name="Tiles", amount=250.0, actor=admin)
    _settle(db, m.id, admin, customer)
    db.refresh(project)
    assert project.spent == 250.0
    payments.delete_milestone(db, m.id, actor=admin)
    db.refresh(project)
    assert project.spent == 0.0


def test_missing_milestone_is_not_found(db, admin):
    with pytest.raises(NotFound):
        payments.request_acknowledgment(db, uuid.uuid4(), admin)


def test_summary_and_stats(db, project, admin, customer):
    today = local_today()
    a = payments.create_milestone(db, project_id=project.id, stage_name="A", amount=100.0, due_date=today - timedelta(days=2), actor=admin)
    b = payments.create_milestone(db, project_id=project.id, stage_name="B", amount=200.0, due_date=today + timedelta(days=2), actor=admin)
    _settle(db, a.id, admin, customer, amount=40.0)

    summary = payments.summarize_project_milestones(payments.project_milestones(db, project.id))
    assert summary["total_value"] == 300.0
    assert summary["paid_till_date"] == 40.0
    assert summary["remaining_payment"] == 260.0
    assert summary["total_milestones"] == 2
    assert summary["next_payment"]["stage_name"] == "A"

    stats = payments.milestone_stats(payments.list_milestones(db), today)
    assert stats["overdue_count"] == 1
    assert stats["overdue_amount"] == 60.0
    assert stats["partial_payments_count"] == 1

    reminders = payments.due_reminders(db, today)
    assert [m.id for m in reminders] == [b.id]


def test_summary_of_nothing_is_zero():
    summary = payments.summarize_project_milestones([])
    assert summary["total_value"] == 0
    assert summary["next_payment"] is None
