from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RedemptionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class RedemptionMethod(str, Enum):
    BANK = "BANK"
    UPI = "UPI"


class CreateRedemptionRequest(BaseModel):
    method: RedemptionMethod
    points: int = Field(..., gt=0, strict=True)


class RedemptionRequest(BaseModel):
    id: UUID
    user_id: UUID
    points: int = Field(..., gt=0)
    status: RedemptionStatus = RedemptionStatus.PENDING
    method: RedemptionMethod
    payout_ref: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
