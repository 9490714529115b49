"""
Pydantic schemas for user-related request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from bus_booking.models.enums import UserRole

PHONE_PATTERN = r"^\+?[0-9 ()-]{5,31}$"


class UserCreate(BaseModel):
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=100, pattern=r"^[a-zA-Z0-9_]+$")
    password: str = Field(..., min_length=8, max_length=72)
    first_name: Optional[str] = Field(None, min_length=2, max_length=100)
    last_name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=32, pattern=PHONE_PATTERN)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    """Only the fields present in the body are changed; phone_number may be cleared with null."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    first_name: Optional[str] = Field(None, min_length=2, max_length=100, alias="firstName")
    last_name: Optional[str] = Field(None, min_length=2, max_length=100, alias="lastName")
    phone_number: Optional[str] = Field(
        None, max_length=32, pattern=PHONE_PATTERN, alias="phoneNumber"
    )


class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
