"""
Pydantic schemas for routes and schedules.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from bus_booking.models.enums import ScheduleStatus


class RouteCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    origin: str = Field(..., min_length=1, max_length=255)
    destination: str = Field(..., min_length=1, max_length=255)
    distance_km: Decimal = Field(..., ge=0)
    duration_minutes: int = Field(..., gt=0)
    base_price: Decimal = Field(..., ge=0, decimal_places=2)


class RouteUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    origin: Optional[str] = Field(None, min_length=1, max_length=255)
    destination: Optional[str] = Field(None, min_length=1, max_length=255)
    distance_km: Optional[Decimal] = Field(None, ge=0)
    duration_minutes: Optional[int] = Field(None, gt=0)
    base_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    is_active: Optional[bool] = None


class RouteResponse(BaseModel):
    id: int
    name: str
    origin: str
    destination: str
    distance_km: Decimal
    duration_minutes: int
    base_price: Decimal
    is_active: bool

    model_config = {"from_attributes": True}


class ScheduleCreate(BaseModel):
    route_id: int
    bus_number: str = Field(..., min_length=1, max_length=50)
    departure_time: datetime
    arrival_time: datetime
    total_seats: int = Field(..., gt=0, le=1000)
    price: Decimal = Field(..., ge=0, decimal_places=2)

    @model_validator(mode="after")
    def arrival_after_departure(self) -> "ScheduleCreate":
        if self.arrival_time <= self.departure_time:
            raise ValueError("arrival_time must be after departure_time")
        return self


class ScheduleUpdate(BaseModel):
    bus_number: Optional[str] = Field(None, min_length=1, max_length=50)
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    total_seats: Optional[int] = Field(None, gt=0, le=1000)
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)


class ScheduleResponse(BaseModel):
    id: int
    route_id: int
    bus_number: str
    departure_time: datetime
    arrival_time: datetime
    total_seats: int
    available_seats: int
    price: Decimal
    status: ScheduleStatus
    route: Optional[RouteResponse] = None

    model_config = {"from_attributes": True}


class ScheduleDetailResponse(ScheduleResponse):
    booked_seats: list[str] = []


class ScheduleListResponse(BaseModel):
    schedules: list[ScheduleResponse]
    total: int
    cached: bool = False
