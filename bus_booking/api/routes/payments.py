"""
Payment endpoints: intent creation, direct confirmation and the processor webhook.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from bus_booking.api.deps import get_reconciler
from bus_booking.core.security import Principal, get_current_principal
from bus_booking.schemas.payment import (
    PaymentConfirm,
    PaymentIntentCreate,
    PaymentIntentResponse,
    PaymentResponse,
    WebhookAck,
)
from bus_booking.services.payment_reconciliation import PaymentReconciler

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    body: PaymentIntentCreate,
    principal: Principal = Depends(get_current_principal),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    initiated = await reconciler.initiate(principal, body.booking_id)
    payment = initiated.payment
    return PaymentIntentResponse(
        payment_id=payment.id,
        provider_payment_id=payment.provider_payment_id,
        client_secret=initiated.client_secret,
        amount=payment.amount,
        currency=payment.currency,
        status=payment.status,
    )


@router.post("/confirm", response_model=PaymentResponse)
async def confirm_payment(
    body: PaymentConfirm,
    principal: Principal = Depends(get_current_principal),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """Ask the processor whether the charge went through; confirms the booking if so."""
    return await reconciler.confirm_direct(principal, body.payment_id)


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """
    Processor notifications. No user token: the signature over the raw body
    is the authentication, so the body is read unparsed.
    """
    payload = await request.body()
    await reconciler.handle_provider_notification(payload, stripe_signature)
    return WebhookAck()


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    principal: Principal = Depends(get_current_principal),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    return await reconciler.get_payment(principal, payment_id)
