"""
Tests for seat reservation and release against a schedule's capacity.
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from bus_booking.core.errors import (
    InsufficientCapacity,
    NotFound,
    SeatConflict,
    TransientFailure,
    ValidationFailure,
)
from bus_booking.models.booking import Booking, SeatAllocation
from bus_booking.models.enums import ACTIVE_BOOKING_STATUSES, BookingStatus, ScheduleStatus
from bus_booking.models.schedule import Schedule
from bus_booking.services.inventory_ledger import normalize_seats

from tests.conftest import create_schedule


async def capacity_snapshot(database, schedule_id: int) -> tuple[int, int, int]:
    """(available, seats held by active bookings, total)"""
    async with database.session() as session:
        schedule = await session.get(Schedule, schedule_id)
        held = await session.scalar(
            select(func.coalesce(func.sum(Booking.seat_count), 0)).where(
                Booking.schedule_id == schedule_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
        )
        return schedule.available_seats, held, schedule.total_seats


def test_normalize_seats_strips_and_rejects_bad_input():
    assert normalize_seats([" A1", "B2 "]) == ["A1", "B2"]

    with pytest.raises(ValidationFailure) as exc:
        normalize_seats([])
    assert exc.value.reason == "no_seats_requested"

    with pytest.raises(ValidationFailure) as exc:
        normalize_seats(["A1", "  "])
    assert exc.value.reason == "blank_seat_number"

    with pytest.raises(ValidationFailure) as exc:
        normalize_seats(["A1", "A1 "])
    assert exc.value.reason == "duplicate_seat_number"


@pytest.mark.asyncio
async def test_reserve_two_seats(database, ledger, test_user, test_schedule):
    """40 seats available, reserve 2: 38 left, PENDING booking at 2 x price."""
    booking = await ledger.reserve(test_user.id, test_schedule.id, ["A1", "A2"])

    assert booking.status == BookingStatus.PENDING
    assert booking.seat_count == 2
    assert booking.seat_numbers == ["A1", "A2"]
    assert booking.total_amount == Decimal("50.00")

    available, held, total = await capacity_snapshot(database, test_schedule.id)
    assert (available, held, total) == (38, 2, 40)


@pytest.mark.asyncio
async def test_reserve_held_seat_lists_conflicts(database, ledger, test_user, other_user, test_schedule):
    await ledger.reserve(test_user.id, test_schedule.id, ["A1", "A2"])

    with pytest.raises(SeatConflict) as exc:
        await ledger.reserve(other_user.id, test_schedule.id, ["A3", "A2", "A1"])

    assert exc.value.conflicting_seats == ["A1", "A2"]
    assert exc.value.status_code == 409
    assert exc.value.to_dict()["conflicting_seats"] == ["A1", "A2"]

    # capacity untouched by the failed attempt
    available, held, _ = await capacity_snapshot(database, test_schedule.id)
    assert (available, held) == (38, 2)


@pytest.mark.asyncio
async def test_reserve_more_than_available(database, ledger, test_user, test_route):
    schedule = await create_schedule(database, test_route, total_seats=3)

    with pytest.raises(InsufficientCapacity) as exc:
        await ledger.reserve(test_user.id, schedule.id, ["A1", "A2", "A3", "A4"])

    assert exc.value.reason == "insufficient_capacity"
    assert exc.value.status_code == 400
    assert exc.value.details == {"requested": 4, "available": 3}

    available, held, _ = await capacity_snapshot(database, schedule.id)
    assert (available, held) == (3, 0)


@pytest.mark.asyncio
async def test_reserve_unknown_schedule(ledger, test_user):
    with pytest.raises(NotFound):
        await ledger.reserve(test_user.id, 999999, ["A1"])


@pytest.mark.asyncio
async def test_reserve_on_cancelled_schedule(database, ledger, test_user, test_schedule):
    async with database.transaction() as session:
        schedule = await session.get(Schedule, test_schedule.id)
        schedule.status = ScheduleStatus.CANCELLED

    with pytest.raises(ValidationFailure) as exc:
        await ledger.reserve(test_user.id, test_schedule.id, ["A1"])
    assert exc.value.reason == "schedule_not_bookable"


@pytest.mark.asyncio
async def test_concurrent_race_for_last_seat(database, ledger, test_user, other_user, single_seat_schedule):
    """
    CRITICAL CONCURRENCY TEST:
    Two customers try to take the only seat at the same time.
    Exactly one gets it; the other sees a conflict or no capacity.
    """
    results = await asyncio.gather(
        ledger.reserve(test_user.id, single_seat_schedule.id, ["A1"]),
        ledger.reserve(other_user.id, single_seat_schedule.id, ["A1"]),
        return_exceptions=True,
    )

    bookings = [r for r in results if isinstance(r, Booking)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(bookings) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], (SeatConflict, InsufficientCapacity))

    available, held, total = await capacity_snapshot(database, single_seat_schedule.id)
    assert (available, held, total) == (0, 1, 1)


@pytest.mark.asyncio
async def test_concurrent_reservations_keep_seats_disjoint(database, ledger, test_user, test_schedule):
    """Overlapping requests in parallel: no seat is ever held twice and capacity adds up."""
    requests = [["A1", "A2"], ["A2", "A3"], ["A3", "A4"], ["A5"], ["A1", "A5"]]
    results = await asyncio.gather(
        *(ledger.reserve(test_user.id, test_schedule.id, seats) for seats in requests),
        return_exceptions=True,
    )
    for result in results:
        # storage may stay busy under contention; that must roll back cleanly too
        assert isinstance(result, (Booking, SeatConflict, InsufficientCapacity, TransientFailure))

    async with database.session() as session:
        seats = (
            await session.execute(
                select(SeatAllocation.seat_number).where(SeatAllocation.schedule_id == test_schedule.id)
            )
        ).scalars().all()
    assert len(seats) == len(set(seats))

    booked = [seat for r in results if isinstance(r, Booking) for seat in r.seat_numbers]
    assert sorted(booked) == sorted(seats)

    available, held, total = await capacity_snapshot(database, test_schedule.id)
    assert available + held == total
    assert held == len(seats)


@pytest.mark.asyncio
async def test_release_is_idempotent(database, ledger, test_user, test_schedule):
    booking = await ledger.reserve(test_user.id, test_schedule.id, ["A1", "A2", "A3"])

    async with database.transaction() as session:
        assert await ledger.release(session, booking) == 3
    async with database.transaction() as session:
        assert await ledger.release(session, booking) == 0

    async with database.session() as session:
        schedule = await session.get(Schedule, test_schedule.id)
        assert schedule.available_seats == 40
        assert await ledger.held_seats(session, test_schedule.id) == []


@pytest.mark.asyncio
async def test_released_seat_can_be_booked_again(database, ledger, test_user, other_user, test_schedule):
    booking = await ledger.reserve(test_user.id, test_schedule.id, ["C7"])
    async with database.transaction() as session:
        await ledger.release(session, booking)

    rebooked = await ledger.reserve(other_user.id, test_schedule.id, ["C7"])
    assert rebooked.seat_numbers == ["C7"]


@pytest.mark.asyncio
async def test_resize_shifts_available_seats(database, ledger, test_user, test_schedule):
    await ledger.reserve(test_user.id, test_schedule.id, ["A1", "A2"])

    async with database.transaction() as session:
        await ledger.resize(session, test_schedule.id, 30)

    available, held, total = await capacity_snapshot(database, test_schedule.id)
    assert (available, held, total) == (28, 2, 30)


@pytest.mark.asyncio
async def test_resize_below_held_seats_is_rejected(database, ledger, test_user, test_route):
    schedule = await create_schedule(database, test_route, total_seats=5)
    await ledger.reserve(test_user.id, schedule.id, ["A1", "A2", "A3"])

    with pytest.raises(InsufficientCapacity):
        async with database.transaction() as session:
            await ledger.resize(session, schedule.id, 2)

    available, held, total = await capacity_snapshot(database, schedule.id)
    assert (available, held, total) == (2, 3, 5)
