"""
Request dependencies handing out the per-application services built in create_app().
"""

from fastapi import Request

from bus_booking.services.booking_lifecycle import BookingLifecycle
from bus_booking.services.cache_service import ScheduleCache
from bus_booking.services.inventory_ledger import InventoryLedger
from bus_booking.services.payment_reconciliation import PaymentReconciler


def get_ledger(request: Request) -> InventoryLedger:
    return request.app.state.ledger


def get_lifecycle(request: Request) -> BookingLifecycle:
    return request.app.state.lifecycle


def get_reconciler(request: Request) -> PaymentReconciler:
    return request.app.state.reconciler


def get_cache(request: Request) -> ScheduleCache:
    return request.app.state.cache
