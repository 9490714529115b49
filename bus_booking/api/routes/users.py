"""
Profile endpoints for the authenticated user.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bus_booking.api.deps import get_lifecycle
from bus_booking.core.security import get_current_user_id
from bus_booking.db.session import get_db
from bus_booking.schemas.booking import BookingResponse
from bus_booking.schemas.user import ProfileUpdate, UserResponse
from bus_booking.services.auth_service import get_user, update_profile
from bus_booking.services.booking_lifecycle import BookingLifecycle

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/profile", response_model=UserResponse)
async def get_profile(user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return await get_user(db, user_id)


@router.put("/profile", response_model=UserResponse)
async def update_profile_endpoint(
    changes: ProfileUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Change name or phone number. Email, username and role are not editable here."""
    return await update_profile(db, user_id, changes)


@router.get("/bookings", response_model=list[BookingResponse])
async def list_profile_bookings(
    user_id: int = Depends(get_current_user_id),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    """Same listing as /bookings/me, newest first."""
    return await lifecycle.list_for_user(user_id)
