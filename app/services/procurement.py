"""
Procurement: material orders with vendor running totals, and the
raw-material sales side (enquiries converted into orders).

Every posting against an order updates the order ledger, its immutable
payment row and the vendor counters inside a single transaction.
"""
import uuid
from datetime import date
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from ..errors import InvalidAmount, PreconditionFailed
from ..models.models import (
    Enquiry,
    MaterialOrder,
    MaterialPayment,
    RawMaterialOrder,
    RawMaterialPayment,
    User,
    Vendor,
)
from .audit import create_audit_log
from .ledger import LedgerState, PaymentStatus, VendorTotals, apply_payment, recalculate_total
from .locks import entity_lock
from .store import Store
from .time_rules import in_reminder_window, utc_now


log = structlog.get_logger()


def ledger_of(row, total_attr: str) -> LedgerState:
    return LedgerState.from_amounts(getattr(row, total_attr), row.paid_amount)


def write_ledger(row, total_attr: str, state: LedgerState) -> None:
    setattr(row, total_attr, state.total)
    row.paid_amount = state.paid
    row.remaining_amount = state.remaining
    row.payment_status = state.status.value


def vendor_totals(v: Vendor) -> VendorTotals:
    return VendorTotals(
        total_orders=v.total_orders or 0,
        total_amount=v.total_amount or 0.0,
        pending_amount=v.pending_amount or 0.0,
        total_paid=v.total_paid or 0.0,
    )


def write_vendor_totals(v: Vendor, totals: VendorTotals) -> None:
    v.total_orders = totals.total_orders
    v.total_amount = totals.total_amount
    v.pending_amount = totals.pending_amount
    v.total_paid = totals.total_paid


def _actor(actor: Optional[User]) -> dict:
    return {"actor_id": actor.id if actor else None, "actor_role": actor.role if actor else None}


# =====================
# Material orders
# =====================

def list_materials(
    db: Session,
    project_id: Optional[uuid.UUID] = None,
    vendor_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> List[MaterialOrder]:
    q = db.query(MaterialOrder)
    if project_id:
        q = q.filter(MaterialOrder.project_id == project_id)
    if vendor_id:
        q = q.filter(MaterialOrder.vendor_id == vendor_id)
    if status:
        q = q.filter(MaterialOrder.status == status)
    if payment_status:
        q = q.filter(MaterialOrder.payment_status == payment_status)
    return q.order_by(MaterialOrder.order_date.desc()).all()


def create_material(db: Session, data: dict, actor: Optional[User] = None) -> MaterialOrder:
    """Create an order; total = quantity * unit_price and the vendor counters grow with it."""
    store = Store(db)
    ledger = recalculate_total(LedgerState(total=0.0), data.get("quantity"), data.get("unit_price"))
    vendor_id = data.get("vendor_id")
    with store.transaction():
        vendor = store.get(Vendor, vendor_id, lock=True) if vendor_id else None
        material = MaterialOrder(**data)
        if vendor is not None and not material.supplier:
            material.supplier = vendor.name
        write_ledger(material, "total_cost", ledger)
        db.add(material)
        db.flush()
        if vendor is not None:
            write_vendor_totals(vendor, vendor_totals(vendor).record_order(ledger))
        create_audit_log(
            db,
            entity_type="material",
            entity_id=material.id,
            action="CREATE",
            context={"vendor_id": vendor_id, "total_cost": ledger.total},
            **_actor(actor),
        )
    log.info("material_created", material_id=str(material.id), vendor_id=str(vendor_id) if vendor_id else None, total_cost=ledger.total)
    return material


def deliver_material(
    db: Session,
    material_id: uuid.UUID,
    *,
    received_quantity: Optional[float] = None,
    quality_check: bool = False,
    quality_notes: Optional[str] = None,
    actor: Optional[User] = None,
) -> MaterialOrder:
    if received_quantity is not None and received_quantity < 0:
        raise InvalidAmount("received_quantity", received_quantity, "received quantity must not be negative")
    store = Store(db)
    with store.transaction():
        material = store.get(MaterialOrder, material_id)
        material.status = "DELIVERED"
        material.delivered_date = utc_now()
        if received_quantity is not None:
            material.received_quantity = received_quantity
        material.quality_check = quality_check
        material.quality_notes = quality_notes
        create_audit_log(
            db,
            entity_type="material",
            entity_id=material.id,
            action="DELIVER",
            context={"received_quantity": received_quantity, "quality_check": quality_check},
            **_actor(actor),
        )
    return material


def record_material_payment(
    db: Session,
    material_id: uuid.UUID,
    amount: float,
    *,
    payment_mode: Optional[str] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    receipt_url: Optional[str] = None,
    actor: Optional[User] = None,
) -> Tuple[MaterialOrder, MaterialPayment]:
    """
    Post a payment against a material order.

    Order ledger, payment row and vendor counters commit together or not at all.
    """
    if amount is None or amount <= 0:
        raise InvalidAmount("amount", amount)
    store = Store(db)
    with entity_lock("material", material_id):
        with store.transaction():
            material = store.get(MaterialOrder, material_id, lock=True)
            state, record = apply_payment(
                ledger_of(material, "total_cost"),
                amount,
                mode=payment_mode,
                reference=reference,
                notes=notes,
            )
            write_ledger(material, "total_cost", state)
            payment = store.create(
                MaterialPayment,
                material_id=material.id,
                vendor_id=material.vendor_id,
                amount=record.amount,
                balance_after=record.balance_after,
                payment_mode=payment_mode,
                reference=reference,
                notes=notes,
                receipt_url=receipt_url,
                payment_date=record.recorded_at,
                created_by=actor.id if actor else None,
            )
            if material.vendor_id:
                # Lock order: material first, then vendor
                with entity_lock("vendor", material.vendor_id):
                    vendor = store.get(Vendor, material.vendor_id, lock=True)
                    write_vendor_totals(vendor, vendor_totals(vendor).record_payment(record))
                    db.flush()
            create_audit_log(
                db,
                entity_type="material",
                entity_id=material.id,
                action="PAYMENT",
                changes_json={
                    "paid_amount": {"after": state.paid},
                    "remaining_amount": {"after": state.remaining},
                    "payment_status": {"after": state.status.value},
                },
                context={"amount": amount, "vendor_id": material.vendor_id, "payment_id": payment.id},
                **_actor(actor),
            )
    log.info(
        "material_payment_recorded",
        material_id=str(material_id),
        amount=amount,
        remaining=state.remaining,
        payment_status=state.status.value,
    )
    return material, payment


def update_material(db: Session, material_id: uuid.UUID, patch, actor: Optional[User] = None) -> MaterialOrder:
    """
    Apply a MaterialPatch. Quantity or price edits recompute the total and
    keep the vendor counters in step; a vendor change moves the order's
    figures from the old vendor to the new one.
    """
    fields = patch.model_dump(exclude_unset=True)
    store = Store(db)
    with entity_lock("material", material_id):
        with store.transaction():
            material = store.get(MaterialOrder, material_id, lock=True)
            before = ledger_of(material, "total_cost")
            old_vendor_id = material.vendor_id
            quantity = fields.pop("quantity", material.quantity)
            unit_price = fields.pop("unit_price", material.unit_price)
            new_vendor_id = fields.pop("vendor_id", old_vendor_id)
            for key, value in fields.items():
                setattr(material, key, value)
            material.quantity = quantity
            material.unit_price = unit_price
            after = recalculate_total(before, quantity, unit_price)
            write_ledger(material, "total_cost", after)

            if new_vendor_id != old_vendor_id:
                if old_vendor_id:
                    old_vendor = store.get(Vendor, old_vendor_id, lock=True)
                    write_vendor_totals(old_vendor, vendor_totals(old_vendor).remove_order(before))
                if new_vendor_id:
                    new_vendor = store.get(Vendor, new_vendor_id, lock=True)
                    write_vendor_totals(new_vendor, vendor_totals(new_vendor).record_order(after))
                material.vendor_id = new_vendor_id
            elif old_vendor_id and before != after:
                vendor = store.get(Vendor, old_vendor_id, lock=True)
                write_vendor_totals(vendor, vendor_totals(vendor).adjust_order(before, after))
            db.flush()
            create_audit_log(
                db,
                entity_type="material",
                entity_id=material.id,
                action="UPDATE",
                changes_json={
                    "total_cost": {"before": before.total, "after": after.total},
                    "vendor_id": {"before": old_vendor_id, "after": new_vendor_id},
                },
                **_actor(actor),
            )
    return material


def delete_material(db: Session, material_id: uuid.UUID, actor: Optional[User] = None) -> None:
    store = Store(db)
    with entity_lock("material", material_id):
        with store.transaction():
            material = store.get(MaterialOrder, material_id, lock=True)
            ledger = ledger_of(material, "total_cost")
            if material.vendor_id:
                vendor = store.get(Vendor, material.vendor_id, lock=True)
                write_vendor_totals(vendor, vendor_totals(vendor).remove_order(ledger))
            create_audit_log(
                db,
                entity_type="material",
                entity_id=material.id,
                action="DELETE",
                changes_json={"before": {"total_cost": ledger.total, "paid_amount": ledger.paid}},
                **_actor(actor),
            )
            store.delete(material)


def material_stats(materials: List[MaterialOrder]) -> dict:
    total_cost = sum(m.total_cost or 0.0 for m in materials)
    total_paid = sum(m.paid_amount or 0.0 for m in materials)
    return {
        "total_orders": len(materials),
        "total_cost": total_cost,
        "total_paid": total_paid,
        "total_pending": sum(m.remaining_amount or 0.0 for m in materials),
        "by_status": {
            s.lower(): sum(1 for m in materials if m.status == s)
            for s in ("PENDING", "ORDERED", "SHIPPED", "DELIVERED")
        },
        "by_payment": {
            "unpaid": sum(1 for m in materials if m.payment_status == PaymentStatus.PENDING.value),
            "partial": sum(1 for m in materials if m.payment_status == PaymentStatus.PARTIAL.value),
            "paid": sum(1 for m in materials if m.payment_status == PaymentStatus.PAID.value),
        },
    }


def material_reminders(db: Session, today: date) -> List[MaterialOrder]:
    """Unsettled orders whose reminder window has opened; overdue orders stay listed."""
    candidates = (
        db.query(MaterialOrder)
        .filter(
            MaterialOrder.payment_status.in_([PaymentStatus.PENDING.value, PaymentStatus.PARTIAL.value]),
            MaterialOrder.reminder_enabled.is_(True),
            MaterialOrder.payment_due_date.isnot(None),
        )
        .order_by(MaterialOrder.payment_due_date.asc())
        .all()
    )
    return [
        m for m in candidates
        if in_reminder_window(m.payment_due_date, m.reminder_days, today, upper_bound=False)
    ]


# =====================
# Vendors
# =====================

def list_vendors(db: Session, specialty: Optional[str] = None, is_active: Optional[bool] = None) -> List[Vendor]:
    q = db.query(Vendor)
    if specialty:
        q = q.filter(Vendor.specialty == specialty)
    if is_active is not None:
        q = q.filter(Vendor.is_active.is_(is_active))
    return q.order_by(Vendor.name.asc()).all()


def create_vendor(db: Session, data: dict, actor: Optional[User] = None) -> Vendor:
    store = Store(db)
    with store.transaction():
        vendor = store.create(Vendor, **data)
        create_audit_log(db, entity_type="vendor", entity_id=vendor.id, action="CREATE", **_actor(actor))
    return vendor


def update_vendor(db: Session, vendor_id: uuid.UUID, patch, actor: Optional[User] = None) -> Vendor:
    """VendorPatch carries contact and banking details only; counters are never patched."""
    fields = patch.model_dump(exclude_unset=True)
    store = Store(db)
    with store.transaction():
        vendor = store.get(Vendor, vendor_id)
        store.update(vendor, **fields)
        create_audit_log(
            db,
            entity_type="vendor",
            entity_id=vendor.id,
            action="UPDATE",
            changes_json={"fields": sorted(fields)},
            **_actor(actor),
        )
    return vendor


def delete_vendor(db: Session, vendor_id: uuid.UUID, actor: Optional[User] = None) -> bool:
    """Delete a vendor with no orders; a vendor with history is deactivated instead. Returns True if deleted."""
    store = Store(db)
    with store.transaction():
        vendor = store.get(Vendor, vendor_id)
        has_orders = db.query(MaterialOrder.id).filter(MaterialOrder.vendor_id == vendor.id).first() is not None
        if has_orders:
            vendor.is_active = False
            action = "DEACTIVATE"
        else:
            action = "DELETE"
        create_audit_log(db, entity_type="vendor", entity_id=vendor.id, action=action, **_actor(actor))
        if not has_orders:
            store.delete(vendor)
    return not has_orders


def recompute_vendor(db: Session, vendor_id: uuid.UUID) -> Vendor:
    """Rebuild the cached counters from the vendor's order ledgers."""
    store = Store(db)
    with entity_lock("vendor", vendor_id):
        with store.transaction():
            vendor = store.get(Vendor, vendor_id, lock=True)
            orders = store.query(MaterialOrder, MaterialOrder.vendor_id == vendor.id)
            actual = VendorTotals.recompute(ledger_of(o, "total_cost") for o in orders)
            drift = vendor_totals(vendor).drift_from(actual)
            if drift:
                log.warning("vendor_totals_drift", vendor_id=str(vendor_id), drift=drift)
            write_vendor_totals(vendor, actual)
    return vendor


def vendor_history(db: Session, vendor_id: uuid.UUID, limit: int = 20) -> Tuple[Vendor, List[MaterialOrder], List[MaterialPayment]]:
    vendor = Store(db).get(Vendor, vendor_id)
    orders = (
        db.query(MaterialOrder)
        .filter(MaterialOrder.vendor_id == vendor.id)
        .order_by(MaterialOrder.order_date.desc())
        .limit(limit)
        .all()
    )
    payments = (
        db.query(MaterialPayment)
        .filter(MaterialPayment.vendor_id == vendor.id)
        .order_by(MaterialPayment.payment_date.desc())
        .limit(limit)
        .all()
    )
    return vendor, orders, payments


# =====================
# Raw materials
# =====================

def create_enquiry(db: Session, data: dict) -> Enquiry:
    store = Store(db)
    with store.transaction():
        enquiry = store.create(Enquiry, status="NEW", **data)
    return enquiry


def quote_enquiry(db: Session, enquiry_id: uuid.UUID, quoted_price: float, notes: Optional[str] = None) -> Enquiry:
    if quoted_price is None or quoted_price <= 0:
        raise InvalidAmount("quoted_price", quoted_price)
    store = Store(db)
    with store.transaction():
        enquiry = store.get(Enquiry, enquiry_id)
        _ensure_enquiry_open(enquiry)
        enquiry.quoted_price = quoted_price
        enquiry.status = "QUOTED"
        if notes:
            enquiry.notes = notes
    return enquiry


def negotiate_enquiry(db: Session, enquiry_id: uuid.UUID, final_price: float, notes: Optional[str] = None) -> Enquiry:
    if final_price is None or final_price <= 0:
        raise InvalidAmount("final_price", final_price)
    store = Store(db)
    with store.transaction():
        enquiry = store.get(Enquiry, enquiry_id)
        _ensure_enquiry_open(enquiry)
        enquiry.final_price = final_price
        enquiry.is_negotiated = True
        enquiry.status = "NEGOTIATING"
        if notes:
            enquiry.notes = notes
    return enquiry


def _ensure_enquiry_open(enquiry: Enquiry) -> None:
    if enquiry.status in ("CONVERTED", "LOST"):
        raise PreconditionFailed(f"Enquiry is already {enquiry.status.lower()}", enquiry_id=str(enquiry.id))


def convert_enquiry(db: Session, enquiry_id: uuid.UUID, data: dict, actor: Optional[User] = None) -> RawMaterialOrder:
    """Turn an enquiry into a confirmed order priced at the negotiated (else quoted) rate."""
    store = Store(db)
    with entity_lock("enquiry", enquiry_id):
        with store.transaction():
            enquiry = store.get(Enquiry, enquiry_id, lock=True)
            _ensure_enquiry_open(enquiry)
            unit_price = enquiry.final_price or enquiry.quoted_price
            if not unit_price:
                raise PreconditionFailed("Enquiry has no quoted price to convert", enquiry_id=str(enquiry.id))
            ledger = recalculate_total(LedgerState(total=0.0), enquiry.quantity, unit_price)
            order = RawMaterialOrder(
                enquiry_id=enquiry.id,
                customer_name=enquiry.customer_name,
                customer_phone=enquiry.customer_phone,
                customer_address=enquiry.customer_address,
                material_type=enquiry.material_type,
                quantity=enquiry.quantity,
                unit=enquiry.unit,
                unit_price=unit_price,
                delivery_address=enquiry.delivery_address or enquiry.customer_address or "",
                delivery_date=data.get("delivery_date") or enquiry.delivery_date,
                vehicle_number=data.get("vehicle_number"),
                driver_name=data.get("driver_name"),
                driver_phone=data.get("driver_phone"),
                notes=data.get("notes"),
                status="CONFIRMED",
            )
            write_ledger(order, "total_amount", ledger)
            db.add(order)
            db.flush()
            enquiry.status = "CONVERTED"
            enquiry.converted_order_id = order.id
            create_audit_log(
                db,
                entity_type="raw_material_order",
                entity_id=order.id,
                action="CREATE",
                context={"enquiry_id": enquiry.id, "total_amount": ledger.total},
                **_actor(actor),
            )
    return order


def list_enquiries(db: Session, status: Optional[str] = None) -> List[Enquiry]:
    q = db.query(Enquiry)
    if status:
        q = q.filter(Enquiry.status == status)
    return q.order_by(Enquiry.created_at.desc()).all()


def list_raw_orders(db: Session, status: Optional[str] = None, payment_status: Optional[str] = None) -> List[RawMaterialOrder]:
    q = db.query(RawMaterialOrder)
    if status:
        q = q.filter(RawMaterialOrder.status == status)
    if payment_status:
        q = q.filter(RawMaterialOrder.payment_status == payment_status)
    return q.order_by(RawMaterialOrder.created_at.desc()).all()


def create_raw_order(db: Session, data: dict, actor: Optional[User] = None) -> RawMaterialOrder:
    ledger = recalculate_total(LedgerState(total=0.0), data.get("quantity"), data.get("unit_price"))
    store = Store(db)
    with store.transaction():
        order = RawMaterialOrder(status="PENDING", **data)
        write_ledger(order, "total_amount", ledger)
        db.add(order)
        db.flush()
        create_audit_log(
            db,
            entity_type="raw_material_order",
            entity_id=order.id,
            action="CREATE",
            context={"total_amount": ledger.total},
            **_actor(actor),
        )
    return order


def dispatch_raw_order(db: Session, order_id: uuid.UUID, data: dict) -> RawMaterialOrder:
    store = Store(db)
    with store.transaction():
        order = store.get(RawMaterialOrder, order_id)
        if order.status not in ("PENDING", "CONFIRMED"):
            raise PreconditionFailed(f"Cannot dispatch an order that is {order.status.lower()}", order_id=str(order.id))
        for key in ("vehicle_number", "driver_name", "driver_phone"):
            if data.get(key):
                setattr(order, key, data[key])
        order.status = "DISPATCHED"
        order.dispatched_at = utc_now()
    return order


def deliver_raw_order(db: Session, order_id: uuid.UUID, notes: Optional[str] = None) -> RawMaterialOrder:
    store = Store(db)
    with store.transaction():
        order = store.get(RawMaterialOrder, order_id)
        if order.status == "DELIVERED":
            raise PreconditionFailed("Order is already delivered", order_id=str(order.id))
        order.status = "DELIVERED"
        order.delivered_date = utc_now()
        if notes:
            order.notes = notes
    return order


def record_raw_payment(
    db: Session,
    order_id: uuid.UUID,
    amount: float,
    *,
    payment_mode: Optional[str] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    actor: Optional[User] = None,
) -> Tuple[RawMaterialOrder, RawMaterialPayment]:
    if amount is None or amount <= 0:
        raise InvalidAmount("amount", amount)
    store = Store(db)
    with entity_lock("raw_material_order", order_id):
        with store.transaction():
            order = store.get(RawMaterialOrder, order_id, lock=True)
            state, record = apply_payment(ledger_of(order, "total_amount"), amount, mode=payment_mode, reference=reference, notes=notes)
            write_ledger(order, "total_amount", state)
            if payment_mode:
                order.payment_mode = payment_mode
            payment = store.create(
                RawMaterialPayment,
                order_id=order.id,
                amount=record.amount,
                balance_after=record.balance_after,
                payment_mode=payment_mode,
                reference=reference,
                notes=notes,
                payment_date=record.recorded_at,
            )
            create_audit_log(
                db,
                entity_type="raw_material_order",
                entity_id=order.id,
                action="PAYMENT",
                context={"amount": amount, "payment_id": payment.id, "remaining": state.remaining},
                **_actor(actor),
            )
    log.info("raw_material_payment_recorded", order_id=str(order_id), amount=amount, remaining=state.remaining)
    return order, payment


def raw_material_stats(enquiries: List[Enquiry], orders: List[RawMaterialOrder]) -> dict:
    converted = sum(1 for e in enquiries if e.status == "CONVERTED")
    total_revenue = sum(o.total_amount or 0.0 for o in orders)
    collected = sum(o.paid_amount or 0.0 for o in orders)
    return {
        "enquiries": {
            "total": len(enquiries),
            "new": sum(1 for e in enquiries if e.status == "NEW"),
            "quoted": sum(1 for e in enquiries if e.status == "QUOTED"),
            "negotiating": sum(1 for e in enquiries if e.status == "NEGOTIATING"),
            "converted": converted,
        },
        "orders": {
            "total": len(orders),
            "pending": sum(1 for o in orders if o.status == "PENDING"),
            "confirmed": sum(1 for o in orders if o.status == "CONFIRMED"),
            "dispatched": sum(1 for o in orders if o.status == "DISPATCHED"),
            "delivered": sum(1 for o in orders if o.status == "DELIVERED"),
        },
        "revenue": {
            "total": total_revenue,
            "collected": collected,
            "pending": sum(o.remaining_amount or 0.0 for o in orders),
        },
        "conversion_rate": round(converted / len(enquiries) * 100, 1) if enquiries else 0.0,
    }
