"""
Payment milestone acknowledgment workflow.

    PENDING ──request──▶ AWAITING_CLIENT ──client accepts──▶ AWAITING_ADMIN
       ▲                    │     │                              │
       └────withdraw────────┘     └─client rejects (no change)   │ confirm
                                                                 ▼
                                              PARTIAL ◀──────▶ PAID

Confirming requires both acknowledgment flags. A partial confirmation keeps
the flags set, so further confirmations may follow until the balance is
settled. A client rejection leaves the milestone untouched and alerts the
admin, who can re-request or withdraw the request.

Functions here are pure: they take a snapshot and return a Transition with
the new snapshot, an optional ledger posting and the notifications to send.
Persistence and delivery are the caller's job.
"""
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from ..config import settings
from ..errors import InvalidAmount, PreconditionFailed
from .ledger import LedgerState, PaymentRecord, PaymentStatus, apply_payment, retarget
from .notifications import NotificationIntent


class MilestoneStatus(str, Enum):
    PENDING = "PENDING"
    AWAITING_CLIENT = "AWAITING_CLIENT"
    AWAITING_ADMIN = "AWAITING_ADMIN"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


AWAITING = (MilestoneStatus.AWAITING_CLIENT, MilestoneStatus.AWAITING_ADMIN)


@dataclass(frozen=True)
class MilestoneSnapshot:
    id: uuid.UUID
    project_id: uuid.UUID
    stage_name: str
    amount: float
    paid_amount: float
    status: MilestoneStatus
    admin_acknowledged: bool = False
    admin_acknowledged_at: Optional[datetime] = None
    admin_acknowledged_by: Optional[uuid.UUID] = None
    client_acknowledged: bool = False
    client_acknowledged_at: Optional[datetime] = None
    client_notes: Optional[str] = None
    paid_date: Optional[datetime] = None
    project_name: Optional[str] = None
    # Recipients resolved from the owning project
    client_id: Optional[uuid.UUID] = None
    admin_id: Optional[uuid.UUID] = None

    @property
    def ledger(self) -> LedgerState:
        return LedgerState.from_amounts(self.amount, self.paid_amount)

    @property
    def remaining_amount(self) -> float:
        return self.ledger.remaining


@dataclass(frozen=True)
class Transition:
    action: str
    before: MilestoneSnapshot
    after: MilestoneSnapshot
    intents: Tuple[NotificationIntent, ...] = ()
    payment: Optional[PaymentRecord] = None
    # Append a PartPayment child row for this posting
    record_part_payment: bool = False

    @property
    def changed(self) -> bool:
        return self.before != self.after


def format_money(amount: float, symbol: Optional[str] = None) -> str:
    return f"{symbol if symbol is not None else settings.currency_symbol}{amount:,.2f}"


def _settled_status(paid: float) -> MilestoneStatus:
    return MilestoneStatus.PARTIAL if paid > 0 else MilestoneStatus.PENDING


def _ensure_open(m: MilestoneSnapshot, action: str) -> None:
    if m.status == MilestoneStatus.PAID:
        raise PreconditionFailed(f"Cannot {action}: milestone is already paid", milestone_id=str(m.id))


def request_acknowledgment(m: MilestoneSnapshot, actor_id: Optional[uuid.UUID], now: datetime) -> Transition:
    """Admin asks the client to acknowledge the payment; valid from any state before PAID."""
    _ensure_open(m, "request acknowledgment")
    after = replace(
        m,
        status=MilestoneStatus.AWAITING_CLIENT,
        admin_acknowledged=True,
        admin_acknowledged_at=now,
        admin_acknowledged_by=actor_id,
        # A fresh request needs a fresh answer
        client_acknowledged=False,
        client_acknowledged_at=None,
        client_notes=None,
    )
    intents = (
        NotificationIntent(
            recipient_id=m.client_id,
            project_id=m.project_id,
            title="Payment Acknowledgment Required",
            body=f"Please acknowledge the payment of {format_money(m.remaining_amount)} for {m.stage_name}.",
            category="PAYMENT_REMINDER",
        ),
    )
    return Transition(action="REQUEST_ACK", before=m, after=after, intents=intents)


def client_acknowledge(m: MilestoneSnapshot, accepted: bool, notes: Optional[str], now: datetime) -> Transition:
    if m.status != MilestoneStatus.AWAITING_CLIENT:
        raise PreconditionFailed(
            "No acknowledgment request is waiting for the client",
            milestone_id=str(m.id),
            status=m.status.value,
        )
    if not accepted:
        reason = f": {notes}" if notes else ""
        intents = (
            NotificationIntent(
                recipient_id=m.admin_id,
                project_id=m.project_id,
                title="Payment Acknowledgment Rejected",
                body=f"Client rejected the payment acknowledgment for {m.stage_name}{reason}",
                category="ALERT",
            ),
        )
        return Transition(action="CLIENT_REJECT", before=m, after=m, intents=intents)

    after = replace(
        m,
        status=MilestoneStatus.AWAITING_ADMIN,
        client_acknowledged=True,
        client_acknowledged_at=now,
        client_notes=notes,
    )
    intents = (
        NotificationIntent(
            recipient_id=m.admin_id,
            project_id=m.project_id,
            title="Payment Acknowledged by Client",
            body=f"Client acknowledged the payment for {m.stage_name}. Please confirm receipt.",
            category="SUCCESS",
        ),
    )
    return Transition(action="CLIENT_ACCEPT", before=m, after=after, intents=intents)


def withdraw_acknowledgment_request(m: MilestoneSnapshot, now: datetime) -> Transition:
    """Admin cancels an outstanding request, e.g. after a client rejection."""
    if m.status not in AWAITING:
        raise PreconditionFailed(
            "No acknowledgment request to withdraw",
            milestone_id=str(m.id),
            status=m.status.value,
        )
    after = replace(
        m,
        status=_settled_status(m.paid_amount),
        admin_acknowledged=False,
        admin_acknowledged_at=None,
        admin_acknowledged_by=None,
        client_acknowledged=False,
        client_acknowledged_at=None,
    )
    intents = (
        NotificationIntent(
            recipient_id=m.client_id,
            project_id=m.project_id,
            title="Payment Request Withdrawn",
            body=f"The acknowledgment request for {m.stage_name} has been withdrawn.",
            category="INFO",
        ),
    )
    return Transition(action="WITHDRAW_ACK", before=m, after=after, intents=intents)


def confirm_payment(
    m: MilestoneSnapshot,
    now: datetime,
    amount: Optional[float] = None,
    is_part_payment: bool = False,
    notes: Optional[str] = None,
    receipt_ref: Optional[str] = None,
) -> Transition:
    """
    Admin confirms money received. Requires both acknowledgments.

    ``amount`` defaults to the outstanding balance. Re-invoking applies the
    amount again; duplicate submissions are not detected here.
    """
    _ensure_open(m, "confirm payment")
    if not (m.admin_acknowledged and m.client_acknowledged):
        raise PreconditionFailed(
            "Both admin and client must acknowledge before confirming payment",
            milestone_id=str(m.id),
            admin_acknowledged=m.admin_acknowledged,
            client_acknowledged=m.client_acknowledged,
        )

    if amount is None:
        amount = m.remaining_amount
    ledger, record = apply_payment(m.ledger, amount, reference=receipt_ref, notes=notes)
    fully_paid = ledger.status == PaymentStatus.PAID

    after = replace(
        m,
        paid_amount=ledger.paid,
        status=MilestoneStatus.PAID if fully_paid else MilestoneStatus.PARTIAL,
        paid_date=now if fully_paid else m.paid_date,
    )
    if fully_paid:
        title = "Payment Confirmed"
        body = f"Payment of {format_money(m.amount)} for {m.stage_name} has been received in full. Thank you!"
    else:
        title = "Part Payment Received"
        body = (
            f"Part payment of {format_money(amount)} for {m.stage_name} has been received. "
            f"Remaining: {format_money(ledger.remaining)}"
        )
    intents = (
        NotificationIntent(
            recipient_id=m.client_id,
            project_id=m.project_id,
            title=title,
            body=body,
            category="SUCCESS",
        ),
    )
    return Transition(
        action="CONFIRM",
        before=m,
        after=after,
        intents=intents,
        payment=record,
        record_part_payment=is_part_payment or not fully_paid,
    )


def change_amount(m: MilestoneSnapshot, new_amount: float, now: datetime) -> Transition:
    """
    Re-target the milestone amount; paid is kept and remaining/status re-derived.

    An outstanding acknowledgment request survives the edit unless the new
    amount is already covered.
    """
    if new_amount is None or new_amount <= 0:
        raise InvalidAmount("amount", new_amount)
    ledger = retarget(m.ledger, new_amount)
    if ledger.status == PaymentStatus.PAID:
        status = MilestoneStatus.PAID
    elif m.status in AWAITING:
        status = m.status
    else:
        status = _settled_status(ledger.paid)
    after = replace(
        m,
        amount=ledger.total,
        status=status,
        paid_date=(m.paid_date or now) if status == MilestoneStatus.PAID else None,
    )
    return Transition(action="UPDATE", before=m, after=after)
