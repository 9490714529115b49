"""
Schedule endpoints with Redis caching on search.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from bus_booking.api.deps import get_cache, get_ledger
from bus_booking.core.logging import get_logger
from bus_booking.core.security import Principal, require_admin
from bus_booking.db.session import get_db
from bus_booking.models.enums import ScheduleStatus
from bus_booking.schemas.schedule import (
    ScheduleCreate,
    ScheduleDetailResponse,
    ScheduleListResponse,
    ScheduleResponse,
    ScheduleUpdate,
)
from bus_booking.services.cache_service import ScheduleCache
from bus_booking.services.inventory_ledger import InventoryLedger
from bus_booking.services.schedule_service import (
    cancel_schedule,
    create_schedule,
    get_schedule_detail,
    list_schedules,
    search_schedules,
    update_schedule,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/schedules", tags=["Schedules"])


@router.post("", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_schedule_endpoint(
    schedule_data: ScheduleCreate,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: ScheduleCache = Depends(get_cache),
):
    """Create a departure. Requires the admin role."""
    schedule = await create_schedule(db, schedule_data)
    await cache.invalidate_schedules()
    return schedule


@router.get("", response_model=ScheduleListResponse)
async def list_schedules_endpoint(
    route_id: Optional[int] = Query(None),
    day: Optional[date] = Query(None, alias="date"),
    schedule_status: Optional[ScheduleStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    schedules, total = await list_schedules(db, route_id=route_id, day=day, status=schedule_status)
    return ScheduleListResponse(
        schedules=[ScheduleResponse.model_validate(s) for s in schedules],
        total=total,
    )


@router.get("/search", response_model=ScheduleListResponse)
async def search_schedules_endpoint(
    origin: str = Query(..., min_length=1),
    destination: str = Query(..., min_length=1),
    day: date = Query(..., alias="date"),
    db: AsyncSession = Depends(get_db),
    cache: ScheduleCache = Depends(get_cache),
):
    """
    Bookable departures for a day.
    Results are cached in Redis; any seat movement or schedule edit drops them.
    """
    cached = await cache.get_search(origin, destination, day.isoformat())
    if cached:
        logger.info("schedule_search_cache_hit", origin=origin, destination=destination, date=day.isoformat())
        cached["cached"] = True
        return ScheduleListResponse(**cached)

    schedules = await search_schedules(db, origin, destination, day)
    response = ScheduleListResponse(
        schedules=[ScheduleResponse.model_validate(s) for s in schedules],
        total=len(schedules),
        cached=False,
    )

    await cache.set_search(origin, destination, day.isoformat(), response.model_dump(mode="json"))
    return response


@router.get("/{schedule_id}", response_model=ScheduleDetailResponse)
async def get_schedule_endpoint(
    schedule_id: int,
    db: AsyncSession = Depends(get_db),
    ledger: InventoryLedger = Depends(get_ledger),
):
    """Single schedule with its held seats. Not cached (needs real-time seat counts)."""
    schedule, booked_seats = await get_schedule_detail(db, ledger, schedule_id)
    detail = ScheduleDetailResponse.model_validate(schedule)
    detail.booked_seats = booked_seats
    return detail


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule_endpoint(
    schedule_id: int,
    changes: ScheduleUpdate,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    ledger: InventoryLedger = Depends(get_ledger),
    cache: ScheduleCache = Depends(get_cache),
):
    schedule = await update_schedule(db, ledger, schedule_id, changes)
    await cache.invalidate_schedules()
    return schedule


@router.post("/{schedule_id}/cancel", response_model=ScheduleResponse)
async def cancel_schedule_endpoint(
    schedule_id: int,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: ScheduleCache = Depends(get_cache),
):
    """Stop sales for a departure. Existing bookings are kept."""
    schedule = await cancel_schedule(db, schedule_id)
    await cache.invalidate_schedules()
    return schedule
