"""
Ledger accumulator for billable entities with partial payments
(material orders, raw-material orders, payment milestones).

    remaining = max(0, round(total - paid, 2))
    status    = PAID if remaining == 0 else PARTIAL if paid > 0 else PENDING

Remaining is rounded to the paisa, so a residue below half a paisa
(float noise from part payments) reads as 0 and the entity settles as PAID.

Paid only grows. Every posting yields an immutable PaymentRecord that the
caller persists next to the parent row.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Tuple

from ..errors import InvalidAmount, InvariantViolation
from .time_rules import utc_now

# Money is settled to the paisa; float noise below that is not a balance.
_PLACES = 2


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


def remaining_for(total: float, paid: float) -> float:
    return max(0.0, round(total - paid, _PLACES))


def derive_status(total: float, paid: float) -> PaymentStatus:
    if remaining_for(total, paid) == 0:
        return PaymentStatus.PAID
    if paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


@dataclass(frozen=True)
class LedgerState:
    total: float
    paid: float = 0.0

    @classmethod
    def from_amounts(cls, total: Optional[float], paid: Optional[float]) -> "LedgerState":
        state = cls(total=float(total or 0.0), paid=float(paid or 0.0))
        state.check()
        return state

    @property
    def remaining(self) -> float:
        return remaining_for(self.total, self.paid)

    @property
    def status(self) -> PaymentStatus:
        return derive_status(self.total, self.paid)

    def check(self) -> None:
        if self.total < 0:
            raise InvariantViolation("ledger total is negative", total=self.total)
        if self.paid < 0:
            raise InvariantViolation("ledger paid amount is negative", paid=self.paid)


@dataclass(frozen=True)
class PaymentRecord:
    amount: float
    paid_after: float
    balance_after: float
    status_after: PaymentStatus
    # How much of the amount actually reduced the outstanding balance
    applied: float
    recorded_at: datetime
    mode: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


def apply_payment(
    state: LedgerState,
    amount: float,
    *,
    mode: Optional[str] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> Tuple[LedgerState, PaymentRecord]:
    """Post ``amount`` against a ledger; overpayment clamps remaining at zero."""
    if amount is None or amount <= 0:
        raise InvalidAmount("amount", amount)

    new_state = replace(state, paid=state.paid + amount)
    new_state.check()
    if new_state.paid < state.paid or new_state.remaining > state.remaining:
        raise InvariantViolation("payment moved the ledger backwards", paid_before=state.paid, paid_after=new_state.paid)

    record = PaymentRecord(
        amount=amount,
        paid_after=new_state.paid,
        balance_after=new_state.remaining,
        status_after=new_state.status,
        applied=round(state.remaining - new_state.remaining, _PLACES),
        recorded_at=utc_now(),
        mode=mode,
        reference=reference,
        notes=notes,
    )
    return new_state, record


def recalculate_total(state: LedgerState, quantity: float, unit_price: float) -> LedgerState:
    """Order edited after creation: total = quantity * unit_price, paid kept."""
    if quantity is None or quantity < 0:
        raise InvalidAmount("quantity", quantity, "quantity must not be negative")
    if unit_price is None or unit_price < 0:
        raise InvalidAmount("unit_price", unit_price, "unit price must not be negative")
    return retarget(state, quantity * unit_price)


def retarget(state: LedgerState, new_total: float) -> LedgerState:
    if new_total is None or new_total < 0:
        raise InvalidAmount("total", new_total, "total must not be negative")
    new_state = replace(state, total=float(new_total))
    new_state.check()
    return new_state


@dataclass(frozen=True)
class VendorTotals:
    """Cached aggregate over a vendor's order ledgers"""
    total_orders: int = 0
    total_amount: float = 0.0
    pending_amount: float = 0.0
    total_paid: float = 0.0

    def record_order(self, ledger: LedgerState) -> "VendorTotals":
        return replace(
            self,
            total_orders=self.total_orders + 1,
            total_amount=self.total_amount + ledger.total,
            pending_amount=self.pending_amount + ledger.remaining,
            total_paid=self.total_paid + ledger.paid,
        )

    def record_payment(self, record: PaymentRecord) -> "VendorTotals":
        # pending tracks outstanding balances, so it drops by what the payment
        # actually settled; total_paid takes the full amount
        return replace(
            self,
            pending_amount=max(0.0, round(self.pending_amount - record.applied, _PLACES)),
            total_paid=self.total_paid + record.amount,
        )

    def adjust_order(self, before: LedgerState, after: LedgerState) -> "VendorTotals":
        return replace(
            self,
            total_amount=self.total_amount - before.total + after.total,
            pending_amount=max(0.0, round(self.pending_amount - before.remaining + after.remaining, _PLACES)),
        )

    def remove_order(self, ledger: LedgerState) -> "VendorTotals":
        return replace(
            self,
            total_orders=max(0, self.total_orders - 1),
            total_amount=self.total_amount - ledger.total,
            pending_amount=max(0.0, round(self.pending_amount - ledger.remaining, _PLACES)),
            total_paid=self.total_paid - ledger.paid,
        )

    @classmethod
    def recompute(cls, ledgers: Iterable[LedgerState]) -> "VendorTotals":
        totals = cls()
        for ledger in ledgers:
            totals = totals.record_order(ledger)
        return totals

    def drift_from(self, other: "VendorTotals") -> dict:
        """Fields where two aggregates disagree beyond rounding; empty when consistent."""
        drift = {}
        for name in ("total_orders", "total_amount", "pending_amount", "total_paid"):
            a, b = getattr(self, name), getattr(other, name)
            if abs(a - b) > 10 ** -_PLACES:
                drift[name] = {"cached": a, "actual": b}
        return drift
