import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import structlog

from ..db import get_db
from ..errors import NotFound, PreconditionFailed
from ..models.models import User
from ..schemas.auth import (
    AdminCreate,
    CustomerCreate,
    LoginRequest,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserOut,
)
from ..services.time_rules import utc_now
from .security import (
    get_password_hash,
    verify_password,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    require_admin,
    require_super_admin,
)


router = APIRouter(prefix="/auth", tags=["auth"])
log = structlog.get_logger()


def _create_user(db: Session, req: RegisterRequest, role: str, assigned_to_id=None) -> User:
    email = req.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise PreconditionFailed("User already exists with this email", email=email)
    user = User(
        name=req.name,
        email=email,
        phone=req.phone,
        address=req.address,
        password_hash=get_password_hash(req.password),
        role=role,
        assigned_to_id=assigned_to_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    log.info("user_created", user_id=str(user.id), role=role)
    return user


def _tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(str(user.id), role=user.role),
        refresh_token=create_refresh_token(str(user.id)),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    # Self-registration always yields a customer account
    user = _create_user(db, req, "CUSTOMER")
    return _tokens(user)


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == req.email.lower()).first()
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User not active")
    user.last_login_at = utc_now()
    db.commit()
    return _tokens(user)


@router.post("/refresh", response_model=TokenResponse)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_token(req.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=400, detail="Invalid refresh token")
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid subject")
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not active")
    return _tokens(user)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.put("/profile", response_model=UserOut)
def update_profile(req: ProfileUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    for key, value in req.model_dump(exclude_unset=True).items():
        setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return user


@router.get("/customers", response_model=List[UserOut])
def list_customers(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    q = db.query(User).filter(User.role == "CUSTOMER")
    if user.role == "ADMIN":
        q = q.filter(User.assigned_to_id == user.id)
    return q.order_by(User.created_at.desc()).all()


@router.post("/customers", response_model=UserOut, status_code=201)
def create_customer(req: CustomerCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return _create_user(db, req, "CUSTOMER", assigned_to_id=req.assigned_to_id or user.id)


@router.post("/users", response_model=UserOut, status_code=201)
def create_staff_user(req: AdminCreate, db: Session = Depends(get_db), user: User = Depends(require_super_admin)):
    return _create_user(db, req, req.role)


@router.delete("/users/{user_id}")
def deactivate_user(user_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_super_admin)):
    target = db.query(User).filter(User.id == user_id).first()
    if target is None:
        raise NotFound("User", user_id)
    if target.id == user.id:
        raise PreconditionFailed("You cannot deactivate your own account")
    target.is_active = False
    db.commit()
    return {"status": "ok"}
