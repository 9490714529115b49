"""
Inventory ledger: seat allocation against a schedule's capacity.

CONCURRENCY STRATEGY
====================

Problem:
  Two customers grab the last seat (or the same seat) at the same moment.
  Both read available_seats=1, both decrement, both get a booking.

Solution, three layers deep:

  1. The schedule row is read with SELECT ... FOR UPDATE, so on PostgreSQL
     concurrent reservations for one schedule queue behind each other.

  2. The capacity decrement is a conditional UPDATE:
       UPDATE schedules SET available_seats = available_seats - :n
       WHERE id = :id AND status = 'SCHEDULED' AND available_seats >= :n
     Zero rows affected means someone else took the seats first.

  3. Every held seat is a row in seat_allocations with a unique
     (schedule_id, seat_number) constraint. A second holder of a seat
     fails at INSERT time no matter what the isolation level saw.

  Decrement, booking insert and allocation inserts share one transaction:
  they commit together or not at all.

Transient storage errors (lock timeouts, serialization failures, SQLite
"database is locked") roll back and the whole reservation is re-validated
from scratch, up to max_attempts times.
"""

import asyncio
import time
from typing import Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from bus_booking.core.errors import (
    Conflict,
    InsufficientCapacity,
    NotFound,
    SeatConflict,
    TransientFailure,
    ValidationFailure,
)
from bus_booking.core.logging import get_logger
from bus_booking.core.metrics import db_retries, record_reservation, reservation_latency
from bus_booking.db.base import utcnow
from bus_booking.db.session import Database
from bus_booking.models.booking import Booking, SeatAllocation
from bus_booking.models.enums import BookingStatus, ScheduleStatus
from bus_booking.models.schedule import Schedule

logger = get_logger(__name__)

RETRY_BACKOFF_SECONDS = 0.05


def normalize_seats(seat_numbers: Iterable[str]) -> list[str]:
    seats = [str(seat).strip() for seat in seat_numbers]
    if not seats:
        raise ValidationFailure("At least one seat number is required", reason="no_seats_requested")
    if any(not seat for seat in seats):
        raise ValidationFailure("Seat numbers must not be blank", reason="blank_seat_number")
    if len(set(seats)) != len(seats):
        raise ValidationFailure("Seat numbers must be unique within a booking", reason="duplicate_seat_number")
    return seats


class InventoryLedger:
    def __init__(self, database: Database, max_attempts: int = 3):
        self.database = database
        self.max_attempts = max_attempts

    async def reserve(self, user_id: int, schedule_id: int, seat_numbers: Iterable[str]) -> Booking:
        """
        Hold seats on a schedule and create the PENDING booking for them.

        Raises:
            ValidationFailure: empty, blank or duplicated seat list, or schedule not open for booking
            NotFound: unknown schedule
            SeatConflict: one or more seats already held (lists them)
            InsufficientCapacity: fewer seats left than requested
            TransientFailure: storage stayed busy for every attempt
        """
        seats = normalize_seats(seat_numbers)
        start = time.perf_counter()
        try:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    async with self.database.transaction() as session:
                        booking = await self._reserve_once(session, user_id, schedule_id, seats)
                except IntegrityError as exc:
                    raise await self._conflict_from_integrity_error(schedule_id, seats, exc) from exc
                except OperationalError as exc:
                    db_retries.inc()
                    logger.info(
                        "reservation_retry",
                        schedule_id=schedule_id,
                        attempt=attempt,
                        error=str(exc.orig) if exc.orig else str(exc),
                    )
                    if attempt == self.max_attempts:
                        record_reservation("unavailable")
                        raise TransientFailure(
                            "Reservation could not be completed, please retry",
                            retry_after_seconds=1,
                        ) from exc
                    await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)
                    continue

                record_reservation("reserved")
                logger.info(
                    "booking_reserved",
                    booking_id=booking.id,
                    user_id=user_id,
                    schedule_id=schedule_id,
                    seats=seats,
                    total_amount=str(booking.total_amount),
                    attempt=attempt,
                )
                return booking
            # unreachable: the last attempt either returns or raises
            raise TransientFailure("Reservation could not be completed, please retry")
        finally:
            reservation_latency.observe(time.perf_counter() - start)

    async def _reserve_once(
        self,
        session: AsyncSession,
        user_id: int,
        schedule_id: int,
        seats: list[str],
    ) -> Booking:
        schedule = (
            await session.execute(select(Schedule).where(Schedule.id == schedule_id).with_for_update())
        ).scalar_one_or_none()

        if schedule is None:
            raise NotFound(f"Schedule {schedule_id} not found", reason="schedule_not_found")

        if schedule.status != ScheduleStatus.SCHEDULED:
            raise ValidationFailure(
                "Schedule is not available for booking",
                reason="schedule_not_bookable",
                schedule_status=schedule.status.value,
            )

        held = await self.held_seats(session, schedule_id, seats)
        if held:
            record_reservation("seat_conflict")
            logger.warning("booking_failed_seat_conflict", schedule_id=schedule_id, conflicting_seats=held)
            raise SeatConflict(held)

        if len(seats) > schedule.available_seats:
            record_reservation("insufficient_capacity")
            logger.warning(
                "booking_failed_no_seats",
                schedule_id=schedule_id,
                requested=len(seats),
                available=schedule.available_seats,
            )
            raise InsufficientCapacity(len(seats), schedule.available_seats)

        decremented = await session.execute(
            update(Schedule)
            .where(
                Schedule.id == schedule_id,
                Schedule.status == ScheduleStatus.SCHEDULED,
                Schedule.available_seats >= len(seats),
            )
            .values(
                available_seats=Schedule.available_seats - len(seats),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if decremented.rowcount == 0:
            # the snapshot we validated against is stale; report the committed count
            available = await session.scalar(
                select(Schedule.available_seats).where(Schedule.id == schedule_id)
            )
            record_reservation("insufficient_capacity")
            raise InsufficientCapacity(len(seats), available or 0)

        booking = Booking(
            user_id=user_id,
            schedule_id=schedule_id,
            seat_numbers=seats,
            seat_count=len(seats),
            total_amount=schedule.price * len(seats),
            status=BookingStatus.PENDING,
        )
        session.add(booking)
        await session.flush()

        session.add_all(
            SeatAllocation(schedule_id=schedule_id, booking_id=booking.id, seat_number=seat)
            for seat in seats
        )
        await session.flush()
        return booking

    async def _conflict_from_integrity_error(
        self,
        schedule_id: int,
        seats: list[str],
        exc: IntegrityError,
    ) -> Conflict:
        async with self.database.session() as session:
            held = await self.held_seats(session, schedule_id, seats)
        if held:
            record_reservation("seat_conflict")
            logger.warning("booking_failed_seat_race", schedule_id=schedule_id, conflicting_seats=held)
            return SeatConflict(held)
        logger.error("booking_failed_integrity", schedule_id=schedule_id, error=str(exc.orig))
        return Conflict("Reservation conflicted with a concurrent change", reason="reservation_conflict")

    async def release(self, session: AsyncSession, booking: Booking) -> int:
        """
        Give a booking's seats back to its schedule, inside the caller's transaction.

        Capacity is restored by the number of allocation rows actually removed,
        so a second release of the same booking changes nothing.
        """
        removed = await session.execute(
            delete(SeatAllocation)
            .where(SeatAllocation.booking_id == booking.id)
            .execution_options(synchronize_session=False)
        )
        released = removed.rowcount or 0
        if released:
            await session.execute(
                update(Schedule)
                .where(Schedule.id == booking.schedule_id)
                .values(
                    available_seats=Schedule.available_seats + released,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
        logger.info(
            "seats_released",
            booking_id=booking.id,
            schedule_id=booking.schedule_id,
            seats_released=released,
        )
        return released

    async def resize(self, session: AsyncSession, schedule_id: int, total_seats: int) -> None:
        """
        Change a schedule's total capacity, shifting available seats by the same delta.
        Refuses to shrink below the number of seats currently held.
        """
        schedule = (
            await session.execute(
                select(Schedule)
                .where(Schedule.id == schedule_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if schedule is None:
            raise NotFound(f"Schedule {schedule_id} not found", reason="schedule_not_found")

        delta = total_seats - schedule.total_seats
        if delta == 0:
            return

        resized = await session.execute(
            update(Schedule)
            .where(Schedule.id == schedule_id, Schedule.available_seats + delta >= 0)
            .values(
                total_seats=total_seats,
                available_seats=Schedule.available_seats + delta,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if resized.rowcount == 0:
            held = schedule.total_seats - schedule.available_seats
            raise InsufficientCapacity(
                held,
                total_seats,
                message=f"Cannot reduce capacity to {total_seats}: {held} seats are already held",
            )

        logger.info("schedule_resized", schedule_id=schedule_id, total_seats=total_seats, delta=delta)

    async def held_seats(
        self,
        session: AsyncSession,
        schedule_id: int,
        seats: Optional[list[str]] = None,
    ) -> list[str]:
        """Seats on a schedule currently held by PENDING or CONFIRMED bookings."""
        query = select(SeatAllocation.seat_number).where(SeatAllocation.schedule_id == schedule_id)
        if seats is not None:
            query = query.where(SeatAllocation.seat_number.in_(seats))
        result = await session.execute(query.order_by(SeatAllocation.seat_number))
        return list(result.scalars().all())
