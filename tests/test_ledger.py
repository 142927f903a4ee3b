import pytest
from hypothesis import given, strategies as st

from app.errors import InvalidAmount, InvariantViolation
from app.services.ledger import (
    LedgerState,
    PaymentStatus,
    VendorTotals,
    apply_payment,
    derive_status,
    recalculate_total,
    remaining_for,
)


def test_fresh_ledger_is_pending():
    state = LedgerState(total=1000.0)
    assert state.remaining == 1000.0
    assert state.status == PaymentStatus.PENDING


def test_partial_then_full_payment():
    state, first = apply_payment(LedgerState(total=1000.0), 400.0, mode="CASH")
    assert state.paid == 400.0
    assert state.remaining == 600.0
    assert state.status == PaymentStatus.PARTIAL
    assert first.balance_after == 600.0
    assert first.applied == 400.0
    assert first.mode == "CASH"

    state, second = apply_payment(state, 600.0)
    assert state.remaining == 0
    assert state.status == PaymentStatus.PAID
    assert second.status_after == PaymentStatus.PAID


def test_overpayment_clamps_remaining_at_zero():
    state, record = apply_payment(LedgerState(total=500.0, paid=300.0), 1000.0)
    assert state.remaining == 0
    assert state.paid == 1300.0
    assert state.status == PaymentStatus.PAID
    assert record.applied == 200.0
    assert record.amount == 1000.0


@pytest.mark.parametrize("amount", [0, -1, -0.01, None])
def test_non_positive_amount_is_rejected(amount):
    with pytest.raises(InvalidAmount):
        apply_payment(LedgerState(total=100.0), amount)


def test_negative_amounts_break_the_invariant():
    with pytest.raises(InvariantViolation):
        LedgerState.from_amounts(-1, 0)
    with pytest.raises(InvariantViolation):
        LedgerState.from_amounts(10, -5)


def test_from_amounts_treats_missing_as_zero():
    state = LedgerState.from_amounts(None, None)
    assert state.total == 0.0
    assert state.status == PaymentStatus.PAID


def test_sub_paisa_noise_is_not_a_balance():
    assert remaining_for(0.3, 0.1 + 0.2) == 0
    assert derive_status(0.3, 0.1 + 0.2) == PaymentStatus.PAID
    assert derive_status(100.0, 99.996) == PaymentStatus.PAID
    assert remaining_for(100.0, 99.99) == 0.01
    assert derive_status(100.0, 99.99) == PaymentStatus.PARTIAL


def test_recalculate_keeps_paid_amount():
    state, _ = apply_payment(LedgerState(total=1000.0), 300.0)
    state = recalculate_total(state, 20, 100.0)
    assert state.total == 2000.0
    assert state.paid == 300.0
    assert state.remaining == 1700.0
    assert state.status == PaymentStatus.PARTIAL

    state = recalculate_total(state, 2, 100.0)
    assert state.remaining == 0
    assert state.status == PaymentStatus.PAID


def test_recalculate_rejects_negative_inputs():
    with pytest.raises(InvalidAmount):
        recalculate_total(LedgerState(total=0.0), -1, 10)
    with pytest.raises(InvalidAmount):
        recalculate_total(LedgerState(total=0.0), 1, -10)


@given(st.lists(st.integers(min_value=1, max_value=1_000_000), min_size=1, max_size=20))
def test_payments_summing_to_total_settle_the_ledger(paise):
    state = LedgerState(total=sum(paise) / 100)
    previous_paid = state.paid
    for p in paise:
        state, _ = apply_payment(state, p / 100)
        assert state.paid >= previous_paid
        assert state.remaining >= 0
        previous_paid = state.paid
    assert state.remaining == 0
    assert state.status == PaymentStatus.PAID


@given(
    st.integers(min_value=1, max_value=1_000_000),
    st.lists(st.integers(min_value=1, max_value=2_000_000), min_size=1, max_size=10),
)
def test_remaining_never_goes_negative(total, payments):
    state = LedgerState(total=total / 100)
    for p in payments:
        before = state.remaining
        state, record = apply_payment(state, p / 100)
        assert 0 <= state.remaining <= before
        assert 0 <= record.applied <= p / 100 + 0.005


def test_vendor_totals_follow_orders_and_payments():
    a = LedgerState(total=1000.0)
    b = LedgerState(total=500.0)
    totals = VendorTotals().record_order(a).record_order(b)
    assert totals.total_orders == 2
    assert totals.total_amount == 1500.0
    assert totals.pending_amount == 1500.0

    a, rec1 = apply_payment(a, 300.0)
    b, rec2 = apply_payment(b, 200.0)
    totals = totals.record_payment(rec1).record_payment(rec2)
    assert totals.total_paid == 500.0
    assert totals.pending_amount == 1000.0
    assert totals.drift_from(VendorTotals.recompute([a, b])) == {}


def test_vendor_pending_drops_by_applied_amount_on_overpayment():
    order = LedgerState(total=100.0)
    totals = VendorTotals().record_order(order)
    order, record = apply_payment(order, 150.0)
    totals = totals.record_payment(record)
    assert totals.pending_amount == 0.0
    assert totals.total_paid == 150.0


def test_vendor_totals_adjust_and_remove():
    before = LedgerState(total=1000.0, paid=200.0)
    totals = VendorTotals().record_order(before)
    after = recalculate_total(before, 5, 100.0)
    totals = totals.adjust_order(before, after)
    assert totals.total_amount == 500.0
    assert totals.pending_amount == 300.0

    totals = totals.remove_order(after)
    assert totals.total_orders == 0
    assert totals.total_amount == 0.0
    assert totals.pending_amount == 0.0


def test_drift_reports_disagreeing_fields():
    cached = VendorTotals(total_orders=1, total_amount=100.0, pending_amount=50.0, total_paid=50.0)
    actual = VendorTotals(total_orders=1, total_amount=100.0, pending_amount=40.0, total_paid=60.0)
    drift = cached.drift_from(actual)
    assert set(drift) == {"pending_amount", "total_paid"}
    assert drift["pending_amount"] == {"cached": 50.0, "actual": 40.0}
