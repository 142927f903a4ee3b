import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    Text,
    Index,
    Uuid,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base
from ..services.time_rules import utc_now


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


def uuid_fk(target: str, ondelete: str = "SET NULL", **kw) -> Mapped[Optional[uuid.UUID]]:
    return mapped_column(Uuid(as_uuid=True), ForeignKey(target, ondelete=ondelete), **kw)


# =====================
# Accounts
# =====================

class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="CUSTOMER", nullable=False)  # SUPER_ADMIN|ADMIN|CUSTOMER
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Admin responsible for a customer account
    assigned_to_id: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


# =====================
# Projects
# =====================

class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = uuid_pk()
    code: Mapped[Optional[str]] = mapped_column(String(50), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    client_id: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id", index=True)
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    client_phone: Mapped[Optional[str]] = mapped_column(String(50))
    client_address: Mapped[Optional[str]] = mapped_column(String(500))
    location: Mapped[Optional[str]] = mapped_column(String(500))
    status: Mapped[str] = mapped_column(String(50), default="PLANNING")  # PLANNING|ACTIVE|STRUCTURE|FINISHING|COMPLETED|ON_HOLD
    # Visual progress percentage 0-100, derived from stages
    progress: Mapped[int] = mapped_column(Integer, default=0)
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    deadline: Mapped[Optional[date]] = mapped_column(Date)
    budget: Mapped[float] = mapped_column(Float, default=0.0)
    # Sum of paid amounts over the project's payment milestones
    spent: Mapped[float] = mapped_column(Float, default=0.0)
    description: Mapped[Optional[str]] = mapped_column(String(2000))
    notes: Mapped[Optional[str]] = mapped_column(String(2000))
    stages: Mapped[Optional[list]] = mapped_column(JSON)  # [{name, status, progress}]
    assigned_admin_id: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id", index=True)
    created_by_id: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=utc_now)

    milestones = relationship("PaymentMilestone", back_populates="project", cascade="all, delete-orphan")
    materials = relationship("MaterialOrder", back_populates="project")
    worker_logs = relationship("WorkerLog", back_populates="project")


# =====================
# Payment milestones
# =====================

class PaymentMilestone(Base):
    """Staged progress payment owed by the client of a project"""
    __tablename__ = "payment_milestones"

    id: Mapped[uuid.UUID] = uuid_pk()
    project_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    stage_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    paid_amount: Mapped[float] = mapped_column(Float, default=0.0)
    remaining_amount: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String(30), default="PENDING", index=True)  # PENDING|AWAITING_CLIENT|AWAITING_ADMIN|PARTIAL|PAID
    is_part_payment: Mapped[bool] = mapped_column(Boolean, default=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    paid_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    reminder_days: Mapped[int] = mapped_column(Integer, default=3)
    reminder_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    # Dual acknowledgment
    admin_acknowledged: Mapped[bool] = mapped_column(Boolean, default=False)
    admin_acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    admin_acknowledged_by: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id")
    client_acknowledged: Mapped[bool] = mapped_column(Boolean, default=False)
    client_acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    client_notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=utc_now)

    project = relationship("Project", back_populates="milestones")
    part_payments = relationship("PartPayment", back_populates="milestone", cascade="all, delete-orphan", order_by="PartPayment.created_at")


class PartPayment(Base):
    """Incremental confirmation against a milestone; never edited after insert"""
    __tablename__ = "part_payments"

    id: Mapped[uuid.UUID] = uuid_pk()
    milestone_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("payment_milestones.id", ondelete="CASCADE"), nullable=False, index=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    balance_after: Mapped[float] = mapped_column(Float, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    receipt_ref: Mapped[Optional[str]] = mapped_column(String(500))
    confirmed_by: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    milestone = relationship("PaymentMilestone", back_populates="part_payments")


# =====================
# Procurement
# =====================

class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_person: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    gst_number: Mapped[Optional[str]] = mapped_column(String(50))
    pan_number: Mapped[Optional[str]] = mapped_column(String(50))
    bank_name: Mapped[Optional[str]] = mapped_column(String(255))
    bank_account: Mapped[Optional[str]] = mapped_column(String(100))
    ifsc_code: Mapped[Optional[str]] = mapped_column(String(50))
    specialty: Mapped[str] = mapped_column(String(100), default="GENERAL")
    location: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(String(2000))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Running counters, kept consistent with the vendor's material orders
    total_orders: Mapped[int] = mapped_column(Integer, default=0)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    pending_amount: Mapped[float] = mapped_column(Float, default=0.0)
    total_paid: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=utc_now)

    materials = relationship("MaterialOrder", back_populates="vendor")
    payments = relationship("MaterialPayment", back_populates="vendor")


class MaterialOrder(Base):
    __tablename__ = "material_orders"

    id: Mapped[uuid.UUID] = uuid_pk()
    project_id: Mapped[Optional[uuid.UUID]] = uuid_fk("projects.id", index=True)
    vendor_id: Mapped[Optional[uuid.UUID]] = uuid_fk("vendors.id", index=True)
    item: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(2000))
    material_type: Mapped[Optional[str]] = mapped_column(String(100))
    supplier: Mapped[Optional[str]] = mapped_column(String(255))
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(50), default="PIECES")
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)
    total_cost: Mapped[float] = mapped_column(Float, default=0.0)
    paid_amount: Mapped[float] = mapped_column(Float, default=0.0)
    remaining_amount: Mapped[float] = mapped_column(Float, default=0.0)
    payment_status: Mapped[str] = mapped_column(String(20), default="PENDING", index=True)  # PENDING|PARTIAL|PAID
    status: Mapped[str] = mapped_column(String(20), default="PENDING")  # PENDING|ORDERED|SHIPPED|DELIVERED
    order_date: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    expected_delivery: Mapped[Optional[date]] = mapped_column(Date)
    delivered_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    received_quantity: Mapped[Optional[float]] = mapped_column(Float)
    quality_check: Mapped[bool] = mapped_column(Boolean, default=False)
    quality_notes: Mapped[Optional[str]] = mapped_column(Text)
    payment_due_date: Mapped[Optional[date]] = mapped_column(Date)
    reminder_days: Mapped[int] = mapped_column(Integer, default=3)
    reminder_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    project = relationship("Project", back_populates="materials")
    vendor = relationship("Vendor", back_populates="materials")
    payments = relationship("MaterialPayment", back_populates="material", cascade="all, delete-orphan", order_by="MaterialPayment.payment_date")


class MaterialPayment(Base):
    """Immutable record of one payment posted against a material order"""
    __tablename__ = "material_payments"

    id: Mapped[uuid.UUID] = uuid_pk()
    material_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("material_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    vendor_id: Mapped[Optional[uuid.UUID]] = uuid_fk("vendors.id", index=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    balance_after: Mapped[float] = mapped_column(Float, nullable=False)
    payment_mode: Mapped[Optional[str]] = mapped_column(String(50))
    reference: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    receipt_url: Mapped[Optional[str]] = mapped_column(String(500))
    payment_date: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    created_by: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id")

    material = relationship("MaterialOrder", back_populates="payments")
    vendor = relationship("Vendor", back_populates="payments")

    __table_args__ = (
        Index('idx_material_payment_date', 'material_id', 'payment_date'),
    )


class Enquiry(Base):
    """Raw-material sales enquiry (sand, aggregate, bricks sold by the truck)"""
    __tablename__ = "enquiries"

    id: Mapped[uuid.UUID] = uuid_pk()
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    customer_address: Mapped[Optional[str]] = mapped_column(String(500))
    material_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(50), default="TRUCKS")
    description: Mapped[Optional[str]] = mapped_column(Text)
    delivery_address: Mapped[Optional[str]] = mapped_column(String(500))
    delivery_date: Mapped[Optional[date]] = mapped_column(Date)
    quoted_price: Mapped[Optional[float]] = mapped_column(Float)
    final_price: Mapped[Optional[float]] = mapped_column(Float)
    is_negotiated: Mapped[bool] = mapped_column(Boolean, default=False)
    priority: Mapped[str] = mapped_column(String(20), default="NORMAL")
    status: Mapped[str] = mapped_column(String(20), default="NEW", index=True)  # NEW|QUOTED|NEGOTIATING|CONVERTED|LOST
    converted_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)


class RawMaterialOrder(Base):
    __tablename__ = "raw_material_orders"

    id: Mapped[uuid.UUID] = uuid_pk()
    enquiry_id: Mapped[Optional[uuid.UUID]] = uuid_fk("enquiries.id")
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))
    customer_address: Mapped[Optional[str]] = mapped_column(String(500))
    material_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(50), default="TRUCKS")
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    paid_amount: Mapped[float] = mapped_column(Float, default=0.0)
    remaining_amount: Mapped[float] = mapped_column(Float, default=0.0)
    payment_status: Mapped[str] = mapped_column(String(20), default="PENDING")
    payment_mode: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(20), default="PENDING")  # PENDING|CONFIRMED|DISPATCHED|DELIVERED
    delivery_address: Mapped[Optional[str]] = mapped_column(String(500))
    delivery_date: Mapped[Optional[date]] = mapped_column(Date)
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    delivered_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    vehicle_number: Mapped[Optional[str]] = mapped_column(String(50))
    driver_name: Mapped[Optional[str]] = mapped_column(String(255))
    driver_phone: Mapped[Optional[str]] = mapped_column(String(50))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    payments = relationship("RawMaterialPayment", back_populates="order", cascade="all, delete-orphan", order_by="RawMaterialPayment.payment_date")


class RawMaterialPayment(Base):
    __tablename__ = "raw_material_payments"

    id: Mapped[uuid.UUID] = uuid_pk()
    order_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("raw_material_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    balance_after: Mapped[float] = mapped_column(Float, nullable=False)
    payment_mode: Mapped[Optional[str]] = mapped_column(String(50))
    reference: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    payment_date: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    order = relationship("RawMaterialOrder", back_populates="payments")


# =====================
# Workforce
# =====================

class CustomWorkerCategory(Base):
    __tablename__ = "custom_worker_categories"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    default_rate: Mapped[float] = mapped_column(Float, default=500.0)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)


class WorkerLog(Base):
    """Daily wage log for a crew of one worker category"""
    __tablename__ = "worker_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    project_id: Mapped[Optional[uuid.UUID]] = uuid_fk("projects.id", index=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    custom_category: Mapped[Optional[str]] = mapped_column(String(100))
    worker_name: Mapped[Optional[str]] = mapped_column(String(255))
    worker_role: Mapped[Optional[str]] = mapped_column(String(100))
    count: Mapped[int] = mapped_column(Integer, default=1)
    shift: Mapped[str] = mapped_column(String(20), default="DAY")  # DAY|NIGHT|FULL_DAY|HALF_DAY
    shift_fraction: Mapped[float] = mapped_column(Float, default=1.0)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    hours_worked: Mapped[float] = mapped_column(Float, default=8.0)
    rate_per_worker: Mapped[float] = mapped_column(Float, nullable=False)
    # Derived by the wage calculator; never written directly
    total_wage: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="PENDING", index=True)  # PENDING|PAID
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    week_number: Mapped[int] = mapped_column(Integer, index=True)
    week_year: Mapped[int] = mapped_column(Integer)
    # Quality tracking
    work_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    verified_by: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id")
    has_mistake: Mapped[bool] = mapped_column(Boolean, default=False)
    mistake_description: Mapped[Optional[str]] = mapped_column(Text)
    fault_tolerance: Mapped[Optional[str]] = mapped_column(String(20))  # LOW|MEDIUM|HIGH
    mistake_acknowledged: Mapped[bool] = mapped_column(Boolean, default=False)
    mistake_acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    project = relationship("Project", back_populates="worker_logs")

    __table_args__ = (
        Index('idx_worker_logs_week', 'week_year', 'week_number'),
    )


# =====================
# Leads
# =====================

class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    source: Mapped[str] = mapped_column(String(50), default="WEBSITE")
    interest: Mapped[Optional[str]] = mapped_column(String(1000))
    budget: Mapped[Optional[float]] = mapped_column(Float)
    priority: Mapped[str] = mapped_column(String(20), default="MEDIUM")
    temperature: Mapped[Optional[str]] = mapped_column(String(20))  # HOT|WARM|COLD
    stage: Mapped[str] = mapped_column(String(30), default="NEW", index=True)
    # Append-only [{stage, date, previous_stage, note}]
    stage_history: Mapped[list] = mapped_column(JSON, default=list)
    assigned_to_id: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    follow_up_count: Mapped[int] = mapped_column(Integer, default=0)
    next_follow_up: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_contact_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_converted: Mapped[bool] = mapped_column(Boolean, default=False)
    converted_project_id: Mapped[Optional[uuid.UUID]] = uuid_fk("projects.id")
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    lost_reason: Mapped[Optional[str]] = mapped_column(String(1000))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    follow_ups = relationship("FollowUp", back_populates="lead", cascade="all, delete-orphan", order_by="FollowUp.created_at")


class FollowUp(Base):
    __tablename__ = "follow_ups"

    id: Mapped[uuid.UUID] = uuid_pk()
    lead_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), default="CALL")  # CALL|VISIT|EMAIL|MEETING|WHATSAPP
    notes: Mapped[Optional[str]] = mapped_column(Text)
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    next_action: Mapped[Optional[str]] = mapped_column(String(500))
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    outcome: Mapped[Optional[str]] = mapped_column(String(1000))
    created_by_id: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    lead = relationship("Lead", back_populates="follow_ups")


# =====================
# Notifications & audit
# =====================

class Notification(Base):
    """In-app notification delivered to a user's inbox"""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id: Mapped[Optional[uuid.UUID]] = uuid_fk("projects.id", ondelete="CASCADE")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(30), default="INFO")  # INFO|SUCCESS|ALERT|PAYMENT_REMINDER
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    __table_args__ = (
        Index('idx_notifications_user_read', 'user_id', 'read'),
        Index('idx_notifications_created', 'created_at'),
    )


class AuditLog(Base):
    """Append-only audit log for ledger postings and milestone transitions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # milestone|material|raw_material_order|vendor|worker_log|lead
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|UPDATE|PAYMENT|REQUEST_ACK|CLIENT_ACCEPT|CLIENT_REJECT|...
    actor_id: Mapped[Optional[uuid.UUID]] = uuid_fk("users.id", index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(20))
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )
