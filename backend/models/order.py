from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class UsageType(str, Enum):
    PERSONAL = "PERSONAL"
    COMMERCIAL = "COMMERCIAL"
    EDUCATIONAL = "EDUCATIONAL"
    BROADCAST = "BROADCAST"
    STREAMING = "STREAMING"
    LIVE_PERFORMANCE = "LIVE_PERFORMANCE"
    OTHER = "OTHER"


class OrderCreate(BaseModel):
    seller_id: str
    title: str = Field(..., min_length=1)
    tempo: Optional[str] = None
    notes: Optional[str] = None
    length_minutes: int = Field(..., gt=0)
    sheet_music_url: Optional[str] = None
    intended_use: Optional[str] = None
    usage_type: UsageType = UsageType.PERSONAL


class OrderSellerUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    audio_file_url: Optional[str] = None


class OrderCancel(BaseModel):
    reason: Optional[str] = None


class MessageCreate(BaseModel):
    order_id: str
    content: str = Field(..., min_length=1, max_length=5000)
