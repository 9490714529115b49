"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from bus_booking.api.routes import auth, users, bus_routes, schedules, bookings, payments

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(bus_routes.router)
api_router.include_router(schedules.router)
api_router.include_router(bookings.router)
api_router.include_router(payments.router)
