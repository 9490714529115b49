"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .payment_processor import PaymentProcessor, ProcessorEvent, ProcessorIntent

__all__ = ["PaymentProcessor", "ProcessorEvent", "ProcessorIntent"]
