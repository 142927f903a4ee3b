import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..models.models import User
from ..schemas.procurement import VendorCreate, VendorDetail, VendorPatch, VendorResponse
from ..services import procurement as svc


router = APIRouter(prefix="/vendors", tags=["vendors"])


@router.get("", response_model=List[VendorResponse])
def list_vendors(
    specialty: Optional[str] = None,
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.list_vendors(db, specialty=specialty, is_active=is_active)


@router.post("", response_model=VendorResponse, status_code=201)
def create_vendor(payload: VendorCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.create_vendor(db, payload.model_dump(), actor=user)


@router.get("/{vendor_id}", response_model=VendorDetail)
def get_vendor(vendor_id: uuid.UUID, limit: int = 20, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    vendor, orders, payments = svc.vendor_history(db, vendor_id, limit=limit)
    return {"vendor": vendor, "orders": orders, "payments": payments}


@router.patch("/{vendor_id}", response_model=VendorResponse)
def update_vendor(
    vendor_id: uuid.UUID,
    payload: VendorPatch,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    return svc.update_vendor(db, vendor_id, payload, actor=user)


@router.post("/{vendor_id}/recompute", response_model=VendorResponse)
def recompute_vendor(vendor_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return svc.recompute_vendor(db, vendor_id)


@router.delete("/{vendor_id}")
def delete_vendor(vendor_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    deleted = svc.delete_vendor(db, vendor_id, actor=user)
    return {"status": "ok", "deleted": deleted, "deactivated": not deleted}
