"""
Payment processor interface.
Keeps the reconciliation logic independent of the concrete gateway SDK.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

# Processor event types the reconciler acts on
SETTLEMENT_SUCCEEDED = "payment_intent.succeeded"
SETTLEMENT_FAILED = "payment_intent.payment_failed"

INTENT_SUCCEEDED = "succeeded"
# Intent states that can no longer be paid against
CLOSED_INTENT_STATUSES = frozenset({"succeeded", "canceled"})


# Currencies Stripe charges in whole units, with no minor unit
ZERO_DECIMAL_CURRENCIES = frozenset({
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
    "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
})


def to_minor_units(amount: Decimal, currency: str = "usd") -> int:
    """Convert a decimal amount to the processor's integer unit (cents, or whole yen etc.)."""
    factor = Decimal("1") if currency.lower() in ZERO_DECIMAL_CURRENCIES else Decimal("100")
    return int((amount * factor).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ProcessorIntent:
    id: str
    status: str
    amount: int  # minor units
    currency: str
    client_secret: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == INTENT_SUCCEEDED

    @property
    def is_open(self) -> bool:
        return self.status not in CLOSED_INTENT_STATUSES


@dataclass(frozen=True)
class ProcessorEvent:
    id: str
    type: str
    intent_id: Optional[str] = None
    data: dict = field(default_factory=dict)


class PaymentProcessor(ABC):
    """
    Interface for an external payment processor.

    Implementations:
    - StripeProcessor: Stripe PaymentIntents + signed webhooks
    """

    @abstractmethod
    async def create_intent(self, amount: Decimal, currency: str, metadata: dict) -> ProcessorIntent:
        """
        Ask the processor for a new payment handle.

        Args:
            amount: Amount to charge, in major units
            currency: ISO currency code
            metadata: Opaque key/values echoed back on the processor side

        Raises:
            UpstreamFailure: processor unreachable or erroring
            PaymentRejected: processor refused the request
        """

    @abstractmethod
    async def retrieve_intent(self, intent_id: str) -> ProcessorIntent:
        """Fetch the processor's current view of a payment handle."""

    @abstractmethod
    def parse_event(self, payload: bytes, signature: Optional[str]) -> ProcessorEvent:
        """
        Verify and decode a webhook delivery.

        Args:
            payload: Raw request body, byte-for-byte as received
            signature: Signature header sent by the processor

        Raises:
            InvalidSignature: payload not signed by the processor or malformed
        """
