from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool
from typing import Optional
from datetime import datetime
from enum import Enum

class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    name: Optional[str] = None
    can_sell: bool = False


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class CapabilitiesUpdate(BaseModel):
    can_sell: StrictBool


class UserInDB(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    email: EmailStr
    name: Optional[str] = None
    password_hash: str
    role: UserRole = UserRole.USER

    # capabilities are independent; a user may hold both
    can_buy: bool = True
    can_sell: bool = False

    # stripe connect
    stripe_account_id: Optional[str] = None
    stripe_onboarding_complete: bool = False

    created_at: datetime
    last_active_at: datetime
