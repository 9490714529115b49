"""
Payment reconciliation between local payment rows and the processor.

Two channels report a settled charge:
  - direct: the customer's client calls /payments/confirm, we ask the
    processor for the intent's status
  - webhook: the processor posts a signed event

They arrive in any order, and either may arrive twice. Both funnel into
_settle(), a compare-and-set UPDATE

    UPDATE payments SET status='COMPLETED', paid_at=now()
    WHERE id = :id AND provider_payment_id = :intent AND status IN ('PENDING', 'FAILED')

followed, in the same transaction, by the PENDING -> CONFIRMED booking
transition. Whichever channel commits first applies both; the other
matches zero rows and reports the already-completed payment.

Settlement locks the booking row before touching the payment row, the
same order booking cancellation uses, so the two never deadlock.

Processor calls are made outside database transactions so that no row
lock is held across network I/O.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bus_booking.core.errors import (
    AccessDenied,
    Conflict,
    InvalidSignature,
    InvalidStateTransition,
    NotFound,
    PaymentNotSettled,
)
from bus_booking.core.logging import get_logger
from bus_booking.core.metrics import record_payment_transition, record_webhook_event
from bus_booking.core.security import Principal
from bus_booking.db.base import utcnow
from bus_booking.db.session import Database
from bus_booking.models.booking import Booking
from bus_booking.models.enums import BookingStatus, PaymentStatus
from bus_booking.models.payment import Payment
from bus_booking.services.booking_lifecycle import BookingLifecycle, payment_for_booking
from bus_booking.services.interfaces.payment_processor import (
    SETTLEMENT_FAILED,
    SETTLEMENT_SUCCEEDED,
    PaymentProcessor,
    ProcessorEvent,
    ProcessorIntent,
    to_minor_units,
)

logger = get_logger(__name__)

# A FAILED attempt on the same intent can still be paid (the customer retries the card)
SETTLEABLE_STATUSES = (PaymentStatus.PENDING, PaymentStatus.FAILED)


@dataclass
class InitiatedPayment:
    payment: Payment
    client_secret: Optional[str]


class PaymentReconciler:
    def __init__(
        self,
        database: Database,
        lifecycle: BookingLifecycle,
        processor: PaymentProcessor,
        currency: str = "usd",
    ):
        self.database = database
        self.lifecycle = lifecycle
        self.processor = processor
        self.currency = currency

    async def initiate(self, principal: Principal, booking_id: int) -> InitiatedPayment:
        """
        Open (or reuse) a processor payment intent for a PENDING booking and
        point the booking's single payment row at it.
        """
        async with self.database.session() as session:
            booking = await session.get(Booking, booking_id)
            payment = await payment_for_booking(session, booking_id)
        self._check_payable(principal, booking, payment)

        intent: Optional[ProcessorIntent] = None
        if payment is not None:
            existing = await self.processor.retrieve_intent(payment.provider_payment_id)
            if existing.succeeded:
                # funds were captured but neither channel has told us yet
                settled = await self._settle_by_id(payment.id, existing.id, channel="initiate")
                return InitiatedPayment(settled, client_secret=None)
            if (
                existing.is_open
                and existing.amount == to_minor_units(booking.total_amount, self.currency)
                and existing.currency == self.currency
            ):
                intent = existing

        reused = intent is not None
        if intent is None:
            intent = await self.processor.create_intent(
                booking.total_amount,
                self.currency,
                metadata={
                    "booking_id": booking.id,
                    "user_id": booking.user_id,
                    "schedule_id": booking.schedule_id,
                },
            )

        try:
            async with self.database.transaction() as session:
                booking = await session.get(Booking, booking_id, with_for_update=True)
                payment = await payment_for_booking(session, booking_id)
                self._check_payable(principal, booking, payment)

                if payment is None:
                    payment = Payment(
                        booking_id=booking.id,
                        amount=booking.total_amount,
                        currency=self.currency,
                        payment_method="stripe",
                        provider_payment_id=intent.id,
                        status=PaymentStatus.PENDING,
                    )
                    session.add(payment)
                else:
                    payment.provider_payment_id = intent.id
                    payment.amount = booking.total_amount
                    payment.currency = self.currency
                    payment.status = PaymentStatus.PENDING
                await session.flush()
        except IntegrityError as exc:
            raise Conflict(
                "Payment for this booking is already being initiated",
                reason="payment_initiation_in_progress",
            ) from exc

        record_payment_transition(PaymentStatus.PENDING.value, "initiate")
        logger.info(
            "payment_initiated",
            payment_id=payment.id,
            booking_id=booking_id,
            provider_payment_id=intent.id,
            amount=str(payment.amount),
            reused_intent=reused,
        )
        return InitiatedPayment(payment, client_secret=intent.client_secret)

    async def confirm_direct(self, principal: Principal, payment_id: int) -> Payment:
        """
        Client-driven settlement check. Idempotent: an already COMPLETED
        payment is returned unchanged.
        """
        async with self.database.session() as session:
            payment = await session.get(Payment, payment_id)
            if payment is None:
                raise NotFound("Payment not found", reason="payment_not_found")
            owner_id = await session.scalar(select(Booking.user_id).where(Booking.id == payment.booking_id))

        if owner_id != principal.user_id:
            raise AccessDenied("Access denied")

        if payment.status == PaymentStatus.COMPLETED:
            logger.info("payment_confirm_noop", payment_id=payment_id)
            return payment
        if payment.status == PaymentStatus.REFUNDED:
            raise InvalidStateTransition(
                "payment", PaymentStatus.REFUNDED.value, PaymentStatus.COMPLETED.value
            )

        intent = await self.processor.retrieve_intent(payment.provider_payment_id)
        if not intent.succeeded:
            logger.info("payment_not_settled", payment_id=payment_id, provider_status=intent.status)
            raise PaymentNotSettled(intent.status)

        return await self._settle_by_id(payment_id, intent.id, channel="direct")

    async def handle_provider_notification(self, payload: bytes, signature: Optional[str]) -> None:
        """
        Processor-driven settlement. The payload must be the raw request body.
        Unknown event types are accepted and ignored.
        """
        try:
            event = self.processor.parse_event(payload, signature)
        except InvalidSignature as exc:
            record_webhook_event("unverified", "rejected")
            logger.warning("webhook_signature_invalid", reason=exc.reason, error=exc.message)
            raise

        if event.type == SETTLEMENT_SUCCEEDED:
            outcome = await self._apply_settlement(event)
        elif event.type == SETTLEMENT_FAILED:
            outcome = await self._apply_failure(event)
        else:
            outcome = "ignored"
            logger.info("webhook_event_ignored", event_id=event.id, event_type=event.type)

        known = event.type in (SETTLEMENT_SUCCEEDED, SETTLEMENT_FAILED)
        record_webhook_event(event.type if known else "other", outcome)

    async def get_payment(self, principal: Principal, payment_id: int) -> Payment:
        async with self.database.session() as session:
            payment = await session.get(Payment, payment_id)
            if payment is None:
                raise NotFound("Payment not found", reason="payment_not_found")
            owner_id = await session.scalar(select(Booking.user_id).where(Booking.id == payment.booking_id))
        if not principal.can_access(owner_id):
            raise AccessDenied("Access denied")
        return payment

    async def _apply_settlement(self, event: ProcessorEvent) -> str:
        if not event.intent_id:
            return "ignored"
        async with self.database.transaction() as session:
            payment = await self._payment_by_reference(session, event.intent_id)
            if payment is None:
                logger.info("webhook_payment_unknown", event_id=event.id, provider_payment_id=event.intent_id)
                return "ignored"
            _, applied = await self._settle(session, payment.id, event.intent_id, channel="webhook")
        return "applied" if applied else "noop"

    async def _apply_failure(self, event: ProcessorEvent) -> str:
        if not event.intent_id:
            return "ignored"
        async with self.database.transaction() as session:
            # a late failure never downgrades a COMPLETED payment
            result = await session.execute(
                update(Payment)
                .where(
                    Payment.provider_payment_id == event.intent_id,
                    Payment.status == PaymentStatus.PENDING,
                )
                .values(status=PaymentStatus.FAILED, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        if result.rowcount:
            record_payment_transition(PaymentStatus.FAILED.value, "webhook")
            logger.info("payment_failed", provider_payment_id=event.intent_id, event_id=event.id)
            return "applied"
        logger.info("payment_failure_noop", provider_payment_id=event.intent_id, event_id=event.id)
        return "noop"

    async def _settle_by_id(self, payment_id: int, intent_id: str, channel: str) -> Payment:
        async with self.database.transaction() as session:
            payment, applied = await self._settle(session, payment_id, intent_id, channel)
        if not applied and payment.status != PaymentStatus.COMPLETED:
            if payment.provider_payment_id != intent_id:
                raise Conflict(
                    "Payment was re-initiated with a new processor reference; confirm again",
                    reason="payment_reference_rotated",
                )
            raise InvalidStateTransition("payment", payment.status.value, PaymentStatus.COMPLETED.value)
        return payment

    async def _settle(
        self,
        session: AsyncSession,
        payment_id: int,
        intent_id: str,
        channel: str,
    ) -> tuple[Payment, bool]:
        """
        Complete the payment and confirm its booking, exactly once.
        Returns the payment as stored afterwards and whether this call applied the change.
        """
        booking_id = await session.scalar(select(Payment.booking_id).where(Payment.id == payment_id))
        # booking row before payment row, the same order cancel takes them
        await self.lifecycle.lock(session, booking_id)

        now = utcnow()
        result = await session.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.provider_payment_id == intent_id,
                Payment.status.in_(SETTLEABLE_STATUSES),
            )
            .values(status=PaymentStatus.COMPLETED, paid_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1

        if applied:
            booking_status = await self.lifecycle.confirm(session, booking_id)
            if booking_status == BookingStatus.CANCELLED:
                # captured after the customer cancelled: the money is owed back
                await session.execute(
                    update(Payment)
                    .where(Payment.id == payment_id)
                    .values(status=PaymentStatus.REFUNDED, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                record_payment_transition(PaymentStatus.REFUNDED.value, channel)
                logger.warning(
                    "payment_settled_after_cancellation",
                    payment_id=payment_id,
                    booking_id=booking_id,
                    channel=channel,
                )
            else:
                record_payment_transition(PaymentStatus.COMPLETED.value, channel)
                logger.info(
                    "payment_completed",
                    payment_id=payment_id,
                    booking_id=booking_id,
                    booking_status=booking_status.value if booking_status else None,
                    channel=channel,
                )
        else:
            logger.info("payment_settle_noop", payment_id=payment_id, channel=channel)

        payment = await session.get(Payment, payment_id, populate_existing=True)
        return payment, applied

    async def _payment_by_reference(self, session: AsyncSession, intent_id: str) -> Optional[Payment]:
        result = await session.execute(select(Payment).where(Payment.provider_payment_id == intent_id))
        return result.scalar_one_or_none()

    def _check_payable(
        self,
        principal: Principal,
        booking: Optional[Booking],
        payment: Optional[Payment],
    ) -> None:
        if booking is None:
            raise NotFound("Booking not found", reason="booking_not_found")
        if booking.user_id != principal.user_id:
            raise AccessDenied("Access denied")
        if payment is not None and payment.status == PaymentStatus.COMPLETED:
            raise Conflict("Booking is already paid", reason="already_paid")
        if booking.status != BookingStatus.PENDING:
            raise InvalidStateTransition(
                "booking",
                booking.status.value,
                BookingStatus.CONFIRMED.value,
                message="Booking is not pending payment",
            )
