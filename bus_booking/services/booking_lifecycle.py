"""
Booking lifecycle.

    create --> PENDING --(payment settled)--> CONFIRMED
                  |                               |
                  +-----------(cancel)------------+--> CANCELLED

COMPLETED is set by schedule completion outside this service and is
terminal. CANCELLED is terminal too; cancelling it again is a no-op.

Every transition is a compare-and-set UPDATE guarded by the expected
current status, so two racing requests can never both apply it.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bus_booking.core.errors import AccessDenied, InvalidStateTransition, NotFound
from bus_booking.core.logging import get_logger
from bus_booking.core.metrics import booking_cancellations, record_payment_transition
from bus_booking.core.security import Principal
from bus_booking.db.base import utcnow
from bus_booking.db.session import Database
from bus_booking.models.booking import Booking
from bus_booking.models.enums import ACTIVE_BOOKING_STATUSES, BookingStatus, PaymentStatus
from bus_booking.models.payment import Payment
from bus_booking.services.inventory_ledger import InventoryLedger

logger = get_logger(__name__)


@dataclass
class BookingView:
    booking: Booking
    payment: Optional[Payment] = None


class BookingLifecycle:
    def __init__(self, database: Database, ledger: InventoryLedger):
        self.database = database
        self.ledger = ledger

    async def create(self, principal: Principal, schedule_id: int, seat_numbers: Iterable[str]) -> Booking:
        return await self.ledger.reserve(principal.user_id, schedule_id, seat_numbers)

    async def get(self, principal: Principal, booking_id: int) -> BookingView:
        async with self.database.session() as session:
            booking = await self._load_accessible(session, principal, booking_id)
            payment = await payment_for_booking(session, booking_id)
        return BookingView(booking, payment)

    async def list_all(
        self,
        status: Optional[BookingStatus] = None,
        schedule_id: Optional[int] = None,
    ) -> list[Booking]:
        query = select(Booking)
        if status is not None:
            query = query.where(Booking.status == status)
        if schedule_id is not None:
            query = query.where(Booking.schedule_id == schedule_id)
        async with self.database.session() as session:
            result = await session.execute(query.order_by(Booking.created_at.desc(), Booking.id.desc()))
            return list(result.scalars().all())

    async def list_for_user(self, user_id: int) -> list[Booking]:
        async with self.database.session() as session:
            result = await session.execute(
                select(Booking)
                .where(Booking.user_id == user_id)
                .order_by(Booking.created_at.desc(), Booking.id.desc())
            )
            return list(result.scalars().all())

    async def cancel(self, principal: Principal, booking_id: int) -> BookingView:
        """
        Cancel a PENDING or CONFIRMED booking: release its seats and, when the
        payment was already captured, mark it REFUNDED. All in one transaction.
        Cancelling an already CANCELLED booking returns it unchanged.
        """
        async with self.database.transaction() as session:
            booking = await self._load_accessible(session, principal, booking_id, for_update=True)

            if booking.status == BookingStatus.COMPLETED:
                raise InvalidStateTransition(
                    "booking",
                    BookingStatus.COMPLETED.value,
                    BookingStatus.CANCELLED.value,
                    message="Cannot cancel completed booking",
                )

            cancelled = False
            if booking.status in ACTIVE_BOOKING_STATUSES:
                cancelled = await self._transition(
                    session, booking_id, ACTIVE_BOOKING_STATUSES, BookingStatus.CANCELLED
                )

            if cancelled:
                released = await self.ledger.release(session, booking)
                refunded = await session.execute(
                    update(Payment)
                    .where(Payment.booking_id == booking_id, Payment.status == PaymentStatus.COMPLETED)
                    .values(status=PaymentStatus.REFUNDED, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                if refunded.rowcount:
                    record_payment_transition(PaymentStatus.REFUNDED.value, "cancel")
                booking_cancellations.labels(result="cancelled").inc()
                logger.info(
                    "booking_cancelled",
                    booking_id=booking_id,
                    user_id=booking.user_id,
                    cancelled_by=principal.user_id,
                    schedule_id=booking.schedule_id,
                    seats_released=released,
                    payment_refunded=bool(refunded.rowcount),
                )
            else:
                await session.refresh(booking)
                if booking.status != BookingStatus.CANCELLED:
                    # lost a race against a completion
                    raise InvalidStateTransition(
                        "booking", booking.status.value, BookingStatus.CANCELLED.value
                    )
                booking_cancellations.labels(result="noop").inc()
                logger.info("booking_cancel_noop", booking_id=booking_id)

            await session.refresh(booking)
            payment = await payment_for_booking(session, booking_id)
        return BookingView(booking, payment)

    async def confirm(self, session: AsyncSession, booking_id: int) -> Optional[BookingStatus]:
        """
        PENDING -> CONFIRMED inside the caller's (payment settlement) transaction.
        Returns the booking's status afterwards; CONFIRMED bookings stay CONFIRMED.
        """
        if await self._transition(session, booking_id, (BookingStatus.PENDING,), BookingStatus.CONFIRMED):
            logger.info("booking_confirmed", booking_id=booking_id)
            return BookingStatus.CONFIRMED
        return await session.scalar(select(Booking.status).where(Booking.id == booking_id))

    async def lock(self, session: AsyncSession, booking_id: int) -> None:
        """Take the booking's row lock. Writers that also touch its payment lock the booking first."""
        await session.execute(select(Booking.id).where(Booking.id == booking_id).with_for_update())

    async def _transition(
        self,
        session: AsyncSession,
        booking_id: int,
        from_statuses: Iterable[BookingStatus],
        to_status: BookingStatus,
    ) -> bool:
        result = await session.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status.in_(list(from_statuses)))
            .values(status=to_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _load_accessible(
        self,
        session: AsyncSession,
        principal: Principal,
        booking_id: int,
        for_update: bool = False,
    ) -> Booking:
        booking = await session.get(Booking, booking_id, with_for_update=for_update or None)
        if booking is None:
            raise NotFound("Booking not found", reason="booking_not_found")
        if not principal.can_access(booking.user_id):
            raise AccessDenied("Access denied")
        return booking


async def payment_for_booking(session: AsyncSession, booking_id: int) -> Optional[Payment]:
    result = await session.execute(select(Payment).where(Payment.booking_id == booking_id))
    return result.scalar_one_or_none()
