"""
Tests for the Stripe adapter: error mapping and webhook verification.
"""

import json
import time
from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from bus_booking.core.errors import InvalidSignature, PaymentRejected, UpstreamFailure
from bus_booking.infrastructure.stripe_processor import StripeProcessor
from bus_booking.services.interfaces.payment_processor import to_minor_units

from tests.conftest import WEBHOOK_SECRET, sign_payload, webhook_payload


@pytest.fixture
def stripe_processor() -> StripeProcessor:
    return StripeProcessor(api_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)


def raising(exc):
    def _raise(*args, **kwargs):
        raise exc
    return _raise


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("25.00")) == 2500
    assert to_minor_units(Decimal("10.005")) == 1001
    assert to_minor_units(Decimal("0.1")) == 10


def test_to_minor_units_zero_decimal_currencies():
    assert to_minor_units(Decimal("2500"), "jpy") == 2500
    assert to_minor_units(Decimal("2500"), "JPY") == 2500
    assert to_minor_units(Decimal("1499.5"), "krw") == 1500
    assert to_minor_units(Decimal("25.00"), "eur") == 2500


@pytest.mark.asyncio
async def test_create_intent_in_zero_decimal_currency(monkeypatch, stripe_processor):
    captured = {}

    def fake_create(**params):
        captured.update(params)
        return SimpleNamespace(
            id="pi_jpy", status="requires_payment_method", amount=params["amount"],
            currency=params["currency"], client_secret="pi_jpy_secret",
        )

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    intent = await stripe_processor.create_intent(Decimal("3000"), "jpy", {})

    assert captured["amount"] == 3000
    assert intent.amount == 3000


@pytest.mark.asyncio
async def test_create_intent_passes_cents_and_key(monkeypatch, stripe_processor):
    captured = {}

    def fake_create(**params):
        captured.update(params)
        return SimpleNamespace(
            id="pi_123", status="requires_payment_method", amount=params["amount"],
            currency=params["currency"], client_secret="pi_123_secret",
        )

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    intent = await stripe_processor.create_intent(Decimal("50.00"), "usd", {"booking_id": 7})

    assert captured["amount"] == 5000
    assert captured["api_key"] == "sk_test_123"
    assert captured["metadata"] == {"booking_id": "7"}
    assert intent.id == "pi_123"
    assert intent.client_secret == "pi_123_secret"
    assert intent.is_open and not intent.succeeded


@pytest.mark.asyncio
async def test_retrieve_intent(monkeypatch, stripe_processor):
    monkeypatch.setattr(
        stripe.PaymentIntent,
        "retrieve",
        lambda intent_id, api_key=None: SimpleNamespace(
            id=intent_id, status="succeeded", amount=5000, currency="usd", client_secret=None,
        ),
    )

    intent = await stripe_processor.retrieve_intent("pi_done")
    assert intent.succeeded
    assert not intent.is_open


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected, reason",
    [
        (stripe.CardError("declined", "card", "card_declined"), PaymentRejected, "payment_rejected"),
        (stripe.InvalidRequestError("bad amount", "amount"), PaymentRejected, "payment_rejected"),
        (stripe.AuthenticationError("bad key"), UpstreamFailure, "payment_processor_misconfigured"),
        (stripe.APIConnectionError("network down"), UpstreamFailure, "payment_processor_unavailable"),
        (stripe.RateLimitError("slow down"), UpstreamFailure, "payment_processor_unavailable"),
    ],
)
async def test_stripe_errors_are_mapped(monkeypatch, stripe_processor, error, expected, reason):
    monkeypatch.setattr(stripe.PaymentIntent, "create", raising(error))

    with pytest.raises(expected) as exc:
        await stripe_processor.create_intent(Decimal("10.00"), "usd", {})

    assert exc.value.reason == reason
    assert exc.value.status_code == (400 if expected is PaymentRejected else 502)


def test_parse_signed_event(stripe_processor):
    payload = webhook_payload("payment_intent.succeeded", "pi_abc", event_id="evt_1")

    event = stripe_processor.parse_event(payload.encode("utf-8"), sign_payload(payload))

    assert event.id == "evt_1"
    assert event.type == "payment_intent.succeeded"
    assert event.intent_id == "pi_abc"
    assert event.data["status"] == "succeeded"


def test_parse_event_goes_through_stripe_construct_event(monkeypatch, stripe_processor):
    payload = webhook_payload("payment_intent.succeeded", "pi_abc")
    signature = sign_payload(payload)
    calls = []
    construct_event = stripe.Webhook.construct_event

    def spy(*args, **kwargs):
        calls.append((args, kwargs))
        return construct_event(*args, **kwargs)

    monkeypatch.setattr(stripe.Webhook, "construct_event", spy)

    stripe_processor.parse_event(payload.encode("utf-8"), signature)

    (args, kwargs), = calls
    assert args[1:] == (signature, WEBHOOK_SECRET)
    assert kwargs["tolerance"] == 300


def test_parse_event_for_other_objects_has_no_intent(stripe_processor):
    payload = json.dumps({
        "id": "evt_2",
        "type": "charge.refunded",
        "data": {"object": {"id": "ch_1", "object": "charge"}},
    })

    event = stripe_processor.parse_event(payload.encode("utf-8"), sign_payload(payload))

    assert event.intent_id is None


@pytest.mark.parametrize(
    "signature",
    [
        None,
        "",
        "garbage",
        "t=1,v1=deadbeef",
    ],
)
def test_parse_event_rejects_bad_signatures(stripe_processor, signature):
    payload = webhook_payload("payment_intent.succeeded", "pi_abc")

    with pytest.raises(InvalidSignature) as exc:
        stripe_processor.parse_event(payload.encode("utf-8"), signature)
    assert exc.value.reason == "invalid_signature"


def test_parse_event_rejects_stale_signature(stripe_processor):
    payload = webhook_payload("payment_intent.succeeded", "pi_abc")
    stale = sign_payload(payload, timestamp=int(time.time()) - 3600)

    with pytest.raises(InvalidSignature):
        stripe_processor.parse_event(payload.encode("utf-8"), stale)


def test_parse_event_rejects_signed_garbage(stripe_processor):
    payload = "this is not json"

    with pytest.raises(InvalidSignature) as exc:
        stripe_processor.parse_event(payload.encode("utf-8"), sign_payload(payload))
    assert exc.value.reason == "invalid_payload"
