import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class MaterialCreate(BaseModel):
    item: str = Field(min_length=1, max_length=255)
    project_id: Optional[uuid.UUID] = None
    vendor_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    material_type: Optional[str] = None
    supplier: Optional[str] = None
    quantity: float = Field(gt=0)
    unit: str = "PIECES"
    unit_price: float = Field(ge=0)
    status: str = Field(default="PENDING", pattern="^(PENDING|ORDERED|SHIPPED|DELIVERED)$")
    expected_delivery: Optional[date] = None
    payment_due_date: Optional[date] = None
    reminder_days: int = Field(default=3, ge=0)
    reminder_enabled: bool = True
    notes: Optional[str] = None


class MaterialPatch(BaseModel):
    """Editable order fields; totals and payment state are re-derived, never set."""
    item: Optional[str] = Field(default=None, min_length=1, max_length=255)
    project_id: Optional[uuid.UUID] = None
    vendor_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    material_type: Optional[str] = None
    supplier: Optional[str] = None
    quantity: Optional[float] = Field(default=None, gt=0)
    unit: Optional[str] = None
    unit_price: Optional[float] = Field(default=None, ge=0)
    status: Optional[str] = Field(default=None, pattern="^(PENDING|ORDERED|SHIPPED|DELIVERED)$")
    expected_delivery: Optional[date] = None
    payment_due_date: Optional[date] = None
    reminder_days: Optional[int] = Field(default=None, ge=0)
    reminder_enabled: Optional[bool] = None
    notes: Optional[str] = None


class DeliverRequest(BaseModel):
    received_quantity: Optional[float] = Field(default=None, ge=0)
    quality_check: bool = False
    quality_notes: Optional[str] = None


class PaymentRequest(BaseModel):
    amount: float = Field(gt=0)
    payment_mode: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None


class MaterialPaymentResponse(BaseModel):
    id: uuid.UUID
    material_id: uuid.UUID
    vendor_id: Optional[uuid.UUID] = None
    amount: float
    balance_after: float
    payment_mode: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None
    payment_date: datetime

    class Config:
        from_attributes = True


class MaterialResponse(BaseModel):
    id: uuid.UUID
    item: str
    project_id: Optional[uuid.UUID] = None
    vendor_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    material_type: Optional[str] = None
    supplier: Optional[str] = None
    quantity: float
    unit: str
    unit_price: float
    total_cost: float
    paid_amount: float
    remaining_amount: float
    payment_status: str
    status: str
    order_date: datetime
    expected_delivery: Optional[date] = None
    delivered_date: Optional[datetime] = None
    received_quantity: Optional[float] = None
    quality_check: bool
    quality_notes: Optional[str] = None
    payment_due_date: Optional[date] = None
    reminder_days: int
    reminder_enabled: bool
    notes: Optional[str] = None
    payments: List[MaterialPaymentResponse] = []

    class Config:
        from_attributes = True


class MaterialPaymentResult(BaseModel):
    material: MaterialResponse
    payment: MaterialPaymentResponse


# ---------- VENDORS ----------

class VendorBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None
    pan_number: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account: Optional[str] = None
    ifsc_code: Optional[str] = None
    specialty: str = "GENERAL"
    location: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("phone", "email", "address", "gst_number", "pan_number", "bank_name", "bank_account", "ifsc_code", "location", "notes", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class VendorCreate(VendorBase):
    pass


class VendorPatch(BaseModel):
    """Contact and banking details only; the running totals are not editable."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None
    pan_number: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account: Optional[str] = None
    ifsc_code: Optional[str] = None
    specialty: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class VendorResponse(VendorBase):
    id: uuid.UUID
    is_active: bool
    total_orders: int
    total_amount: float
    pending_amount: float
    total_paid: float
    created_at: datetime

    class Config:
        from_attributes = True


class VendorDetail(BaseModel):
    vendor: VendorResponse
    orders: List[MaterialResponse]
    payments: List[MaterialPaymentResponse]


# ---------- RAW MATERIALS ----------

class EnquiryCreate(BaseModel):
    customer_name: str = Field(min_length=1, max_length=255)
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    material_type: str
    quantity: float = Field(gt=0)
    unit: str = "TRUCKS"
    description: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_date: Optional[date] = None
    priority: str = "NORMAL"
    notes: Optional[str] = None


class QuoteRequest(BaseModel):
    quoted_price: float = Field(gt=0)
    notes: Optional[str] = None


class NegotiateRequest(BaseModel):
    final_price: float = Field(gt=0)
    notes: Optional[str] = None


class ConvertEnquiryRequest(BaseModel):
    delivery_date: Optional[date] = None
    vehicle_number: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    notes: Optional[str] = None


class EnquiryResponse(BaseModel):
    id: uuid.UUID
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    material_type: str
    quantity: float
    unit: str
    description: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_date: Optional[date] = None
    quoted_price: Optional[float] = None
    final_price: Optional[float] = None
    is_negotiated: bool
    priority: str
    status: str
    converted_order_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RawOrderCreate(BaseModel):
    customer_name: str = Field(min_length=1, max_length=255)
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    material_type: str
    quantity: float = Field(gt=0)
    unit: str = "TRUCKS"
    unit_price: float = Field(ge=0)
    delivery_address: Optional[str] = None
    delivery_date: Optional[date] = None
    vehicle_number: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    notes: Optional[str] = None


class DispatchRequest(BaseModel):
    vehicle_number: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None


class RawDeliverRequest(BaseModel):
    notes: Optional[str] = None


class RawPaymentRequest(BaseModel):
    amount: float = Field(gt=0)
    payment_mode: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class RawPaymentResponse(BaseModel):
    id: uuid.UUID
    order_id: uuid.UUID
    amount: float
    balance_after: float
    payment_mode: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    payment_date: datetime

    class Config:
        from_attributes = True


class RawOrderResponse(BaseModel):
    id: uuid.UUID
    enquiry_id: Optional[uuid.UUID] = None
    customer_name: str
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    material_type: str
    quantity: float
    unit: str
    unit_price: float
    total_amount: float
    paid_amount: float
    remaining_amount: float
    payment_status: str
    payment_mode: Optional[str] = None
    status: str
    delivery_address: Optional[str] = None
    delivery_date: Optional[date] = None
    dispatched_at: Optional[datetime] = None
    delivered_date: Optional[datetime] = None
    vehicle_number: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    payments: List[RawPaymentResponse] = []

    class Config:
        from_attributes = True
