import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..models.models import Enquiry, RawMaterialOrder, User
from ..schemas.procurement import (
    ConvertEnquiryRequest,
    DispatchRequest,
    EnquiryCreate,
    EnquiryResponse,
    NegotiateRequest,
    QuoteRequest,
    RawDeliverRequest,
    RawOrderCreate,
    RawOrderResponse,
    RawPaymentRequest,
)
from ..services import procurement as svc
from ..services.store import Store


router = APIRouter(prefix="/raw-materials", tags=["raw-materials"])


# ---------- Enquiries ----------

@router.get("/enquiries", response_model=List[EnquiryResponse])
def list_enquiries(status: Optional[str] = None, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.list_enquiries(db, status=status)


@router.post("/enquiries", response_model=EnquiryResponse, status_code=201)
def create_enquiry(payload: EnquiryCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.create_enquiry(db, payload.model_dump())


@router.get("/enquiries/{enquiry_id}", response_model=EnquiryResponse)
def get_enquiry(enquiry_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return Store(db).get(Enquiry, enquiry_id)


@router.post("/enquiries/{enquiry_id}/quote", response_model=EnquiryResponse)
def quote_enquiry(enquiry_id: uuid.UUID, payload: QuoteRequest, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.quote_enquiry(db, enquiry_id, payload.quoted_price, payload.notes)


@router.post("/enquiries/{enquiry_id}/negotiate", response_model=EnquiryResponse)
def negotiate_enquiry(enquiry_id: uuid.UUID, payload: NegotiateRequest, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.negotiate_enquiry(db, enquiry_id, payload.final_price, payload.notes)


@router.post("/enquiries/{enquiry_id}/convert", response_model=RawOrderResponse, status_code=201)
def convert_enquiry(
    enquiry_id: uuid.UUID,
    payload: ConvertEnquiryRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.convert_enquiry(db, enquiry_id, payload.model_dump(), actor=user)


# ---------- Orders ----------

@router.get("/orders", response_model=List[RawOrderResponse])
def list_orders(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.list_raw_orders(db, status=status, payment_status=payment_status)


@router.post("/orders", response_model=RawOrderResponse, status_code=201)
def create_order(payload: RawOrderCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.create_raw_order(db, payload.model_dump(), actor=user)


@router.get("/orders/{order_id}", response_model=RawOrderResponse)
def get_order(order_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return Store(db).get(RawMaterialOrder, order_id)


@router.post("/orders/{order_id}/dispatch", response_model=RawOrderResponse)
def dispatch_order(order_id: uuid.UUID, payload: DispatchRequest, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.dispatch_raw_order(db, order_id, payload.model_dump())


@router.post("/orders/{order_id}/deliver", response_model=RawOrderResponse)
def deliver_order(order_id: uuid.UUID, payload: RawDeliverRequest, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.deliver_raw_order(db, order_id, payload.notes)


@router.post("/orders/{order_id}/payments", response_model=RawOrderResponse, status_code=201)
def record_payment(order_id: uuid.UUID, payload: RawPaymentRequest, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    fields = payload.model_dump()
    order, _ = svc.record_raw_payment(db, order_id, fields.pop("amount"), actor=user, **fields)
    return order


@router.get("/stats")
def raw_material_stats(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.raw_material_stats(svc.list_enquiries(db), svc.list_raw_orders(db))
