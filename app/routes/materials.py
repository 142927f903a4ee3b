import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..models.models import MaterialOrder, User
from ..schemas.procurement import (
    DeliverRequest,
    MaterialCreate,
    MaterialPatch,
    MaterialPaymentResult,
    MaterialResponse,
    PaymentRequest,
)
from ..services import procurement as svc
from ..services.store import Store
from ..services.time_rules import local_today


router = APIRouter(prefix="/materials", tags=["materials"])


@router.get("", response_model=List[MaterialResponse])
def list_materials(
    project_id: Optional[uuid.UUID] = None,
    vendor_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.list_materials(db, project_id=project_id, vendor_id=vendor_id, status=status, payment_status=payment_status)


@router.get("/stats")
def material_stats(
    project_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.material_stats(svc.list_materials(db, project_id=project_id))


@router.get("/reminders", response_model=List[MaterialResponse])
def material_reminders(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.material_reminders(db, local_today())


@router.post("", response_model=MaterialResponse, status_code=201)
def create_material(payload: MaterialCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.create_material(db, payload.model_dump(), actor=user)


@router.get("/{material_id}", response_model=MaterialResponse)
def get_material(material_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return Store(db).get(MaterialOrder, material_id)


@router.patch("/{material_id}", response_model=MaterialResponse)
def update_material(
    material_id: uuid.UUID,
    payload: MaterialPatch,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.update_material(db, material_id, payload, actor=user)


@router.post("/{material_id}/deliver", response_model=MaterialResponse)
def deliver_material(
    material_id: uuid.UUID,
    payload: DeliverRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.deliver_material(db, material_id, actor=user, **payload.model_dump())


@router.post("/{material_id}/payments", response_model=MaterialPaymentResult, status_code=201)
def record_payment(
    material_id: uuid.UUID,
    payload: PaymentRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    fields = payload.model_dump()
    material, payment = svc.record_material_payment(db, material_id, fields.pop("amount"), actor=user, **fields)
    return {"material": material, "payment": payment}


@router.delete("/{material_id}")
def delete_material(material_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    svc.delete_material(db, material_id, actor=user)
    return {"status": "ok"}
