"""
Catalog service: routes and their schedules.

Seat counters are never written here directly. Capacity changes go through
the inventory ledger so that available_seats stays consistent with the
seats actually held.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bus_booking.core.errors import InvalidStateTransition, NotFound, ValidationFailure
from bus_booking.core.logging import get_logger
from bus_booking.models.enums import ScheduleStatus
from bus_booking.models.route import Route
from bus_booking.models.schedule import Schedule
from bus_booking.schemas.schedule import RouteCreate, RouteUpdate, ScheduleCreate, ScheduleUpdate
from bus_booking.services.inventory_ledger import InventoryLedger

logger = get_logger(__name__)


def _day_window(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


async def create_route(db: AsyncSession, route_data: RouteCreate) -> Route:
    route = Route(**route_data.model_dump())
    db.add(route)
    await db.commit()
    await db.refresh(route)

    logger.info("route_created", route_id=route.id, origin=route.origin, destination=route.destination)
    return route


async def list_routes(db: AsyncSession) -> list[Route]:
    result = await db.execute(select(Route).where(Route.is_active.is_(True)).order_by(Route.name.asc()))
    return list(result.scalars().all())


async def get_route(db: AsyncSession, route_id: int) -> Route:
    route = await db.get(Route, route_id)
    if route is None:
        raise NotFound(f"Route {route_id} not found", reason="route_not_found")
    return route


async def update_route(db: AsyncSession, route_id: int, changes: RouteUpdate) -> Route:
    """Admin edit. Existing schedules keep their own price and times."""
    route = await get_route(db, route_id)

    values = changes.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in values.items():
        setattr(route, field, value)

    await db.commit()
    await db.refresh(route)

    logger.info("route_updated", route_id=route_id, fields=sorted(values))
    return route


async def deactivate_route(db: AsyncSession, route_id: int) -> Route:
    """
    Soft delete. The route drops out of listings and search and takes no new
    schedules; its existing schedules and bookings are kept.
    """
    route = await get_route(db, route_id)
    if route.is_active:
        route.is_active = False
        await db.commit()
        await db.refresh(route)
        logger.info("route_deactivated", route_id=route_id)
    return route


async def create_schedule(db: AsyncSession, schedule_data: ScheduleCreate) -> Schedule:
    """Create a departure with every seat available."""
    route = await get_route(db, schedule_data.route_id)
    if not route.is_active:
        raise ValidationFailure(f"Route {route.id} is inactive", reason="route_inactive")

    schedule = Schedule(
        route_id=schedule_data.route_id,
        bus_number=schedule_data.bus_number,
        departure_time=schedule_data.departure_time,
        arrival_time=schedule_data.arrival_time,
        total_seats=schedule_data.total_seats,
        available_seats=schedule_data.total_seats,
        price=schedule_data.price,
        status=ScheduleStatus.SCHEDULED,
    )
    db.add(schedule)
    await db.commit()
    await db.refresh(schedule)

    logger.info(
        "schedule_created",
        schedule_id=schedule.id,
        route_id=schedule.route_id,
        seats=schedule.total_seats,
        price=str(schedule.price),
    )
    return schedule


async def get_schedule(db: AsyncSession, schedule_id: int) -> Schedule:
    schedule = await db.get(Schedule, schedule_id)
    if schedule is None:
        raise NotFound(f"Schedule {schedule_id} not found", reason="schedule_not_found")
    return schedule


async def get_schedule_detail(
    db: AsyncSession, ledger: InventoryLedger, schedule_id: int
) -> tuple[Schedule, list[str]]:
    """Schedule plus the seats currently held on it. Not cached (needs real-time seats)."""
    schedule = await get_schedule(db, schedule_id)
    booked = await ledger.held_seats(db, schedule_id)
    return schedule, booked


async def list_schedules(
    db: AsyncSession,
    route_id: Optional[int] = None,
    day: Optional[date] = None,
    status: Optional[ScheduleStatus] = None,
) -> tuple[list[Schedule], int]:
    query = select(Schedule)
    if route_id is not None:
        query = query.where(Schedule.route_id == route_id)
    if day is not None:
        start, end = _day_window(day)
        query = query.where(Schedule.departure_time >= start, Schedule.departure_time < end)
    if status is not None:
        query = query.where(Schedule.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(query.order_by(Schedule.departure_time.asc()))
    return list(result.scalars().all()), total


async def search_schedules(
    db: AsyncSession, origin: str, destination: str, day: date
) -> list[Schedule]:
    """
    Bookable departures between two places on one day.
    Origin and destination match case-insensitively anywhere in the route's names.
    Uses the ix_schedules_status_departure index for the status/date filter.
    """
    start, end = _day_window(day)
    result = await db.execute(
        select(Schedule)
        .join(Route, Schedule.route_id == Route.id)
        .where(
            Route.origin.ilike(f"%{origin}%"),
            Route.destination.ilike(f"%{destination}%"),
            Route.is_active.is_(True),
            Schedule.departure_time >= start,
            Schedule.departure_time < end,
            Schedule.status == ScheduleStatus.SCHEDULED,
            Schedule.available_seats > 0,
        )
        .order_by(Schedule.departure_time.asc())
    )
    return list(result.scalars().all())


async def update_schedule(
    db: AsyncSession, ledger: InventoryLedger, schedule_id: int, changes: ScheduleUpdate
) -> Schedule:
    """
    Apply an admin edit. A new total_seats shifts available_seats by the same
    delta; a new price only affects bookings made afterwards.
    """
    schedule = await get_schedule(db, schedule_id)
    if schedule.status != ScheduleStatus.SCHEDULED:
        raise InvalidStateTransition(
            "schedule",
            schedule.status.value,
            schedule.status.value,
            message="Only scheduled departures can be edited",
        )

    values = changes.model_dump(exclude_unset=True, exclude_none=True)
    departure = values.get("departure_time", schedule.departure_time)
    arrival = values.get("arrival_time", schedule.arrival_time)
    if _comparable(arrival) <= _comparable(departure):
        raise ValidationFailure("arrival_time must be after departure_time", reason="invalid_schedule_times")

    total_seats = values.pop("total_seats", None)
    if total_seats is not None:
        await ledger.resize(db, schedule_id, total_seats)

    for field, value in values.items():
        setattr(schedule, field, value)

    await db.commit()
    await db.refresh(schedule)

    logger.info("schedule_updated", schedule_id=schedule_id, fields=sorted(changes.model_fields_set))
    return schedule


async def cancel_schedule(db: AsyncSession, schedule_id: int) -> Schedule:
    """Stop selling a departure. Existing bookings are left as they are."""
    schedule = await get_schedule(db, schedule_id)
    if schedule.status == ScheduleStatus.CANCELLED:
        return schedule
    if schedule.status == ScheduleStatus.COMPLETED:
        raise InvalidStateTransition(
            "schedule", ScheduleStatus.COMPLETED.value, ScheduleStatus.CANCELLED.value
        )

    schedule.status = ScheduleStatus.CANCELLED
    await db.commit()
    await db.refresh(schedule)

    logger.info("schedule_cancelled", schedule_id=schedule_id)
    return schedule


def _comparable(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are always UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
