from pydantic import BaseModel
from typing import Optional
from enum import Enum


class PayoutStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PAID = "PAID"
    FAILED = "FAILED"


class PayoutStatusUpdate(BaseModel):
    status: PayoutStatus
    reason: Optional[str] = None
