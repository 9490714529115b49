"""
Pydantic schemas for payment initiation, confirmation and reads.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from bus_booking.models.enums import PaymentStatus


class PaymentIntentCreate(BaseModel):
    booking_id: int = Field(validation_alias=AliasChoices("booking_id", "bookingId"))


class PaymentConfirm(BaseModel):
    payment_id: int = Field(validation_alias=AliasChoices("payment_id", "paymentId"))


class PaymentResponse(BaseModel):
    id: int
    booking_id: int
    amount: Decimal
    currency: str
    provider_payment_id: str
    status: PaymentStatus
    paid_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentIntentResponse(BaseModel):
    payment_id: int
    provider_payment_id: str
    client_secret: Optional[str]
    amount: Decimal
    currency: str
    status: PaymentStatus


class WebhookAck(BaseModel):
    received: bool = True
