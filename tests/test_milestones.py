import uuid
from dataclasses import replace
from datetime import datetime

import pytest

from app.errors import InvalidAmount, PreconditionFailed
from app.services.milestones import (
    MilestoneSnapshot,
    MilestoneStatus,
    change_amount,
    client_acknowledge,
    confirm_payment,
    format_money,
    request_acknowledgment,
    withdraw_acknowledgment_request,
)

NOW = datetime(2024, 6, 1, 10, 30)


@pytest.fixture
def milestone():
    return MilestoneSnapshot(
        id=uuid.uuid4(),
        project_id=uuid.uuid4(),
        stage_name="Foundation Complete",
        amount=1000.0,
        paid_amount=0.0,
        status=MilestoneStatus.PENDING,
        project_name="Verma Villa",
        client_id=uuid.uuid4(),
        admin_id=uuid.uuid4(),
    )


def _awaiting_admin(m):
    m = request_acknowledgment(m, m.admin_id, NOW).after
    return client_acknowledge(m, True, "Transferred", NOW).after


def test_request_moves_to_awaiting_client(milestone):
    t = request_acknowledgment(milestone, milestone.admin_id, NOW)
    assert t.after.status == MilestoneStatus.AWAITING_CLIENT
    assert t.after.admin_acknowledged is True
    assert t.after.admin_acknowledged_by == milestone.admin_id
    assert t.after.client_acknowledged is False
    assert len(t.intents) == 1
    intent = t.intents[0]
    assert intent.recipient_id == milestone.client_id
    assert intent.category == "PAYMENT_REMINDER"


def test_request_on_paid_milestone_fails(milestone):
    paid = replace(milestone, paid_amount=1000.0, status=MilestoneStatus.PAID)
    with pytest.raises(PreconditionFailed):
        request_acknowledgment(paid, milestone.admin_id, NOW)


def test_client_accept_moves_to_awaiting_admin(milestone):
    m = request_acknowledgment(milestone, milestone.admin_id, NOW).after
    t = client_acknowledge(m, True, "Paid by NEFT", NOW)
    assert t.action == "CLIENT_ACCEPT"
    assert t.after.status == MilestoneStatus.AWAITING_ADMIN
    assert t.after.client_acknowledged is True
    assert t.after.client_notes == "Paid by NEFT"
    assert t.intents[0].recipient_id == milestone.admin_id
    assert t.intents[0].category == "SUCCESS"


def test_client_reject_leaves_milestone_unchanged(milestone):
    m = request_acknowledgment(milestone, milestone.admin_id, NOW).after
    t = client_acknowledge(m, False, "Amount does not match", NOW)
    assert t.action == "CLIENT_REJECT"
    assert t.after == m
    assert not t.changed
    assert t.payment is None
    intent = t.intents[0]
    assert intent.recipient_id == milestone.admin_id
    assert intent.category == "ALERT"
    assert "Amount does not match" in intent.body


def test_client_cannot_answer_without_a_request(milestone):
    with pytest.raises(PreconditionFailed):
        client_acknowledge(milestone, True, None, NOW)


@pytest.mark.parametrize("admin_ack,client_ack", [(False, False), (True, False), (False, True)])
def test_confirm_requires_both_acknowledgments(milestone, admin_ack, client_ack):
    m = replace(
        milestone,
        status=MilestoneStatus.AWAITING_ADMIN,
        admin_acknowledged=admin_ack,
        client_acknowledged=client_ack,
    )
    with pytest.raises(PreconditionFailed):
        confirm_payment(m, NOW)


def test_confirm_with_both_acknowledgments_pays_in_full(milestone):
    m = _awaiting_admin(milestone)
    t = confirm_payment(m, NOW)
    assert t.after.status == MilestoneStatus.PAID
    assert t.after.paid_amount == 1000.0
    assert t.after.remaining_amount == 0
    assert t.after.paid_date == NOW
    assert t.payment.amount == 1000.0
    assert t.record_part_payment is False
    assert t.intents[0].recipient_id == milestone.client_id


def test_part_payments_accumulate_until_paid(milestone):
    m = _awaiting_admin(milestone)
    t = confirm_payment(m, NOW, amount=400.0, is_part_payment=True, receipt_ref="UTR123")
    assert t.after.status == MilestoneStatus.PARTIAL
    assert t.after.paid_amount == 400.0
    assert t.after.paid_date is None
    assert t.record_part_payment is True
    assert t.payment.reference == "UTR123"
    # both flags survive a partial confirmation
    assert t.after.admin_acknowledged and t.after.client_acknowledged

    t = confirm_payment(t.after, NOW, amount=250.0)
    assert t.after.status == MilestoneStatus.PARTIAL
    assert t.after.remaining_amount == 350.0

    t = confirm_payment(t.after, NOW)
    assert t.after.status == MilestoneStatus.PAID
    assert t.after.paid_amount == 1000.0


def test_confirm_rejects_non_positive_amount(milestone):
    m = _awaiting_admin(milestone)
    with pytest.raises(InvalidAmount):
        confirm_payment(m, NOW, amount=-10)


def test_confirm_on_paid_milestone_fails(milestone):
    t = confirm_payment(_awaiting_admin(milestone), NOW)
    with pytest.raises(PreconditionFailed):
        confirm_payment(t.after, NOW, amount=1.0)


def test_withdraw_returns_to_pending(milestone):
    m = request_acknowledgment(milestone, milestone.admin_id, NOW).after
    t = withdraw_acknowledgment_request(m, NOW)
    assert t.after.status == MilestoneStatus.PENDING
    assert not t.after.admin_acknowledged
    assert not t.after.client_acknowledged


def test_withdraw_after_part_payment_returns_to_partial(milestone):
    m = confirm_payment(_awaiting_admin(milestone), NOW, amount=300.0).after
    m = request_acknowledgment(m, milestone.admin_id, NOW).after
    t = withdraw_acknowledgment_request(m, NOW)
    assert t.after.status == MilestoneStatus.PARTIAL
    assert t.after.paid_amount == 300.0


def test_withdraw_without_request_fails(milestone):
    with pytest.raises(PreconditionFailed):
        withdraw_acknowledgment_request(milestone, NOW)


def test_change_amount_rederives_status(milestone):
    m = confirm_payment(_awaiting_admin(milestone), NOW, amount=400.0).after
    t = change_amount(m, 400.0, NOW)
    assert t.after.status == MilestoneStatus.PAID
    assert t.after.remaining_amount == 0
    assert t.after.paid_date == NOW

    t = change_amount(m, 2000.0, NOW)
    assert t.after.status == MilestoneStatus.PARTIAL
    assert t.after.remaining_amount == 1600.0


def test_change_amount_keeps_pending_request(milestone):
    m = request_acknowledgment(milestone, milestone.admin_id, NOW).after
    t = change_amount(m, 1500.0, NOW)
    assert t.after.status == MilestoneStatus.AWAITING_CLIENT


def test_change_amount_rejects_non_positive(milestone):
    with pytest.raises(InvalidAmount):
        change_amount(milestone, 0, NOW)


def test_format_money():
    assert format_money(1234.5, "₹") == "₹1,234.50"
    assert format_money(0, "$") == "$0.00"
