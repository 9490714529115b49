"""
Stripe implementation of the PaymentProcessor interface.

The SDK is synchronous, so calls run in a worker thread. The API key is
passed per request instead of being set on the `stripe` module.
"""

import asyncio
from decimal import Decimal
from typing import Optional

import stripe

from bus_booking.core.errors import InvalidSignature, PaymentRejected, UpstreamFailure
from bus_booking.core.logging import get_logger
from bus_booking.services.interfaces.payment_processor import (
    PaymentProcessor,
    ProcessorEvent,
    ProcessorIntent,
    to_minor_units,
)

logger = get_logger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 300


def _map_stripe_error(exc: stripe.StripeError) -> Exception:
    """Map Stripe SDK errors onto the service error taxonomy."""
    if isinstance(exc, stripe.CardError):
        return PaymentRejected(exc.user_message or "Your card was declined.")
    if isinstance(exc, stripe.InvalidRequestError):
        return PaymentRejected(exc.user_message or "Invalid payment request.")
    if isinstance(exc, (stripe.AuthenticationError, stripe.PermissionError)):
        return UpstreamFailure(
            "Payment processor credentials are invalid or unauthorized.",
            reason="payment_processor_misconfigured",
        )
    return UpstreamFailure("Temporary payment processor error, please retry.")


def _to_intent(intent: stripe.PaymentIntent) -> ProcessorIntent:
    return ProcessorIntent(
        id=intent.id,
        status=intent.status,
        amount=intent.amount,
        currency=intent.currency,
        client_secret=getattr(intent, "client_secret", None),
    )


class StripeProcessor(PaymentProcessor):
    def __init__(self, api_key: str, webhook_secret: str):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    async def create_intent(self, amount: Decimal, currency: str, metadata: dict) -> ProcessorIntent:
        params = {
            "amount": to_minor_units(amount, currency),
            "currency": currency,
            "metadata": {key: str(value) for key, value in metadata.items()},
            "automatic_payment_methods": {"enabled": True},
            "api_key": self.api_key,
        }
        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.create, **params)
        except stripe.StripeError as exc:
            logger.warning("stripe_create_intent_failed", error=str(exc), error_type=type(exc).__name__)
            raise _map_stripe_error(exc) from exc
        return _to_intent(intent)

    async def retrieve_intent(self, intent_id: str) -> ProcessorIntent:
        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.retrieve, intent_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            logger.warning(
                "stripe_retrieve_intent_failed",
                intent_id=intent_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise _map_stripe_error(exc) from exc
        return _to_intent(intent)

    def parse_event(self, payload: bytes, signature: Optional[str]) -> ProcessorEvent:
        if not signature:
            raise InvalidSignature("Missing Stripe-Signature header")
        try:
            # signature is checked over the exact bytes before the body is parsed
            event = stripe.Webhook.construct_event(
                payload, signature, self.webhook_secret, tolerance=WEBHOOK_TOLERANCE_SECONDS
            )
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignature(f"Webhook signature verification failed: {exc}") from exc
        except ValueError as exc:
            # UnicodeDecodeError and JSONDecodeError both land here
            raise InvalidSignature(f"Webhook payload is not valid JSON: {exc}", reason="invalid_payload") from exc

        try:
            data_object = event["data"]["object"]
            intent_id = data_object["id"] if data_object.get("object") == "payment_intent" else None
            return ProcessorEvent(id=event["id"], type=event["type"], intent_id=intent_id, data=dict(data_object))
        except (KeyError, TypeError, AttributeError) as exc:
            raise InvalidSignature("Webhook payload is not a processor event", reason="invalid_payload") from exc
