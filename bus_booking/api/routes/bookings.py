"""
Booking endpoints with concurrency-safe seat reservation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from bus_booking.api.deps import get_cache, get_lifecycle
from bus_booking.core.security import Principal, get_current_principal, require_admin
from bus_booking.models.enums import BookingStatus
from bus_booking.schemas.booking import BookingCreate, BookingDetailResponse, BookingResponse
from bus_booking.schemas.payment import PaymentResponse
from bus_booking.services.booking_lifecycle import BookingLifecycle, BookingView
from bus_booking.services.cache_service import ScheduleCache

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _detail(view: BookingView) -> BookingDetailResponse:
    detail = BookingDetailResponse.model_validate(view.booking)
    if view.payment is not None:
        detail.payment = PaymentResponse.model_validate(view.payment)
    return detail


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    principal: Principal = Depends(get_current_principal),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
    cache: ScheduleCache = Depends(get_cache),
):
    """
    Hold seats on a schedule. The booking starts PENDING until its payment settles.

    409 lists the seats someone else already holds; 400 when fewer seats
    remain than requested.
    """
    booking = await lifecycle.create(principal, booking_data.schedule_id, booking_data.seat_numbers)
    # Invalidate search cache since available_seats changed
    await cache.invalidate_schedules()
    return booking


@router.get("/me", response_model=list[BookingResponse])
async def list_my_bookings(
    principal: Principal = Depends(get_current_principal),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    """Get all bookings for the authenticated user."""
    return await lifecycle.list_for_user(principal.user_id)


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    schedule_id: Optional[int] = Query(None),
    admin: Principal = Depends(require_admin),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.list_all(status=booking_status, schedule_id=schedule_id)


@router.get("/{booking_id}", response_model=BookingDetailResponse)
async def get_booking(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    return _detail(await lifecycle.get(principal, booking_id))


@router.post("/{booking_id}/cancel", response_model=BookingDetailResponse)
async def cancel_booking(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
    cache: ScheduleCache = Depends(get_cache),
):
    """Cancel a booking and release seats back to the schedule."""
    view = await lifecycle.cancel(principal, booking_id)
    await cache.invalidate_schedules()
    return _detail(view)
