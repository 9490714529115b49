"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import AliasChoices, BaseModel, Field, StringConstraints, field_validator

from bus_booking.models.enums import BookingStatus
from bus_booking.schemas.payment import PaymentResponse

SeatNumber = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=32)]


class BookingCreate(BaseModel):
    schedule_id: int = Field(validation_alias=AliasChoices("schedule_id", "scheduleId"))
    seat_numbers: list[SeatNumber] = Field(
        min_length=1,
        validation_alias=AliasChoices("seat_numbers", "seatNumbers", "unitIds", "unit_ids"),
    )

    @field_validator("seat_numbers")
    @classmethod
    def seats_unique(cls, seats: list[str]) -> list[str]:
        if len(set(seats)) != len(seats):
            raise ValueError("seat numbers must be unique within a booking")
        return seats


class BookingResponse(BaseModel):
    id: int
    user_id: int
    schedule_id: int
    seat_numbers: list[str]
    seat_count: int
    total_amount: Decimal
    status: BookingStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingDetailResponse(BookingResponse):
    payment: Optional[PaymentResponse] = None
