from datetime import datetime
from typing import Optional
import uuid

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8)
    phone: Optional[str] = None
    address: Optional[str] = None


class CustomerCreate(RegisterRequest):
    # Admin creating a customer account; defaults to the creating admin
    assigned_to_id: Optional[uuid.UUID] = None


class AdminCreate(RegisterRequest):
    role: str = Field(default="ADMIN", pattern="^(ADMIN|SUPER_ADMIN)$")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    role: str
    is_active: bool
    assigned_to_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = None
    address: Optional[str] = None
