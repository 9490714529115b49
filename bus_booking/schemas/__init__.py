from bus_booking.schemas.user import UserCreate, UserResponse, UserLogin, Token
from bus_booking.schemas.schedule import (
    RouteCreate, RouteResponse,
    ScheduleCreate, ScheduleUpdate, ScheduleResponse, ScheduleDetailResponse, ScheduleListResponse,
)
from bus_booking.schemas.payment import (
    PaymentIntentCreate, PaymentConfirm, PaymentResponse, PaymentIntentResponse, WebhookAck,
)
from bus_booking.schemas.booking import BookingCreate, BookingResponse, BookingDetailResponse

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "RouteCreate", "RouteResponse",
    "ScheduleCreate", "ScheduleUpdate", "ScheduleResponse", "ScheduleDetailResponse", "ScheduleListResponse",
    "PaymentIntentCreate", "PaymentConfirm", "PaymentResponse", "PaymentIntentResponse", "WebhookAck",
    "BookingCreate", "BookingResponse", "BookingDetailResponse",
]
