from pydantic import BaseModel, Field
from typing import List, Optional


class ProfileUpsert(BaseModel):
    bio: Optional[str] = None
    instrument: Optional[str] = None
    price_per_minute: Optional[float] = Field(None, gt=0)
    is_available: Optional[bool] = None
    profile_image: Optional[str] = None
    audio_samples: Optional[List[str]] = None


class ServiceCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    included: List[str] = []
    excluded: List[str] = []
    base_price: float = Field(..., gt=0)
    credit_required: str = ""
    credit_instructions: str = ""


class ServiceUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    included: Optional[List[str]] = None
    excluded: Optional[List[str]] = None
    base_price: Optional[float] = Field(None, gt=0)
    credit_required: Optional[str] = None
    credit_instructions: Optional[str] = None
    is_active: Optional[bool] = None
