"""
Seed data: an administrator account and one sample route with a departure.

Safe to run repeatedly:
    python -m bus_booking.db.seed
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from bus_booking.core.config import Settings, get_settings
from bus_booking.core.logging import get_logger, setup_logging
from bus_booking.core.security import hash_password
from bus_booking.db.session import Database
from bus_booking.models.enums import ScheduleStatus, UserRole
from bus_booking.models.route import Route
from bus_booking.models.schedule import Schedule
from bus_booking.models.user import User

logger = get_logger(__name__)

SAMPLE_ROUTE = {
    "name": "Express North",
    "origin": "Lisbon",
    "destination": "Porto",
    "distance_km": Decimal("313.00"),
    "duration_minutes": 210,
    "base_price": Decimal("25.00"),
}


async def seed(database: Database, settings: Settings) -> None:
    async with database.transaction() as session:
        admin = await session.scalar(select(User).where(User.email == settings.ADMIN_EMAIL))
        if admin is None:
            session.add(
                User(
                    email=settings.ADMIN_EMAIL,
                    username="admin",
                    hashed_password=hash_password(settings.ADMIN_PASSWORD),
                    first_name="Admin",
                    last_name="User",
                    role=UserRole.ADMIN,
                )
            )
            logger.info("seed_admin_created", email=settings.ADMIN_EMAIL)

        route = await session.scalar(select(Route).where(Route.name == SAMPLE_ROUTE["name"]))
        if route is None:
            route = Route(**SAMPLE_ROUTE)
            session.add(route)
            await session.flush()

            departure = (datetime.now(timezone.utc) + timedelta(days=7)).replace(
                hour=8, minute=0, second=0, microsecond=0
            )
            session.add(
                Schedule(
                    route_id=route.id,
                    bus_number="EXP-101",
                    departure_time=departure,
                    arrival_time=departure + timedelta(minutes=route.duration_minutes),
                    total_seats=40,
                    available_seats=40,
                    price=route.base_price,
                    status=ScheduleStatus.SCHEDULED,
                )
            )
            logger.info("seed_route_created", route=route.name)


async def main() -> None:
    setup_logging()
    settings = get_settings()
    database = Database.from_settings(settings)
    try:
        await database.create_all()
        await seed(database, settings)
    finally:
        await database.dispose()


if __name__ == "__main__":
    asyncio.run(main())
