from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

IFSC_PATTERN = r"^[A-Z]{4}0[A-Z0-9]{6}$"
UPI_PATTERN = r"^\w+@[\w.]+$"


class Identity(BaseModel):
    """Verified caller identity as supplied by the OAuth provider."""

    email: EmailStr
    name: Optional[str] = None
    image: Optional[str] = None


class UserProfile(BaseModel):
    expertise: Optional[str] = None
    bio: Optional[str] = None


class User(BaseModel):
    id: UUID
    email: EmailStr
    name: Optional[str] = None
    image: Optional[str] = None
    profile: UserProfile = Field(default_factory=UserProfile)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UpdateProfileRequest(BaseModel):
    expertise: str = Field(..., min_length=1, max_length=200)
    bio: Optional[str] = Field(default=None, max_length=500)


class BankDetailsRequest(BaseModel):
    account_holder: Optional[str] = Field(default=None, min_length=2)
    account_number: Optional[str] = Field(default=None, min_length=6, max_length=20)
    ifsc: Optional[str] = Field(default=None, pattern=IFSC_PATTERN)
    upi_id: Optional[str] = Field(default=None, pattern=UPI_PATTERN)


class BankDetailsView(BaseModel):
    user_id: UUID
    account_holder: Optional[str] = None
    account_number_masked: Optional[str] = None
    ifsc: Optional[str] = None
    upi_id: Optional[str] = None
    updated_at: Optional[datetime] = None
