"""
Route catalog endpoints. Writes are admin only.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from bus_booking.api.deps import get_cache
from bus_booking.core.security import Principal, require_admin
from bus_booking.db.session import get_db
from bus_booking.schemas.schedule import RouteCreate, RouteResponse, RouteUpdate
from bus_booking.services.cache_service import ScheduleCache
from bus_booking.services.schedule_service import (
    create_route,
    deactivate_route,
    get_route,
    list_routes,
    update_route,
)

router = APIRouter(prefix="/routes", tags=["Routes"])


@router.post("", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route_endpoint(
    route_data: RouteCreate,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await create_route(db, route_data)


@router.get("", response_model=list[RouteResponse])
async def list_routes_endpoint(db: AsyncSession = Depends(get_db)):
    """Active routes, by name."""
    return await list_routes(db)


@router.get("/{route_id}", response_model=RouteResponse)
async def get_route_endpoint(route_id: int, db: AsyncSession = Depends(get_db)):
    return await get_route(db, route_id)


@router.put("/{route_id}", response_model=RouteResponse)
async def update_route_endpoint(
    route_id: int,
    changes: RouteUpdate,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: ScheduleCache = Depends(get_cache),
):
    """Fields left out of the body are unchanged."""
    route = await update_route(db, route_id, changes)
    # search matches on route origin/destination
    await cache.invalidate_schedules()
    return route


@router.delete("/{route_id}", response_model=RouteResponse)
async def delete_route_endpoint(
    route_id: int,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: ScheduleCache = Depends(get_cache),
):
    """Deactivate the route. Repeating the call is harmless."""
    route = await deactivate_route(db, route_id)
    await cache.invalidate_schedules()
    return route
