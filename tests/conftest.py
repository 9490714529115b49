"""
Pytest fixtures for test database, client, payment processor and authentication.

Each test gets its own database (a throwaway SQLite file unless
TEST_DATABASE_URL points somewhere else) with tables created and dropped
around it, and its own application built by create_app().
"""

import hashlib
import hmac
import itertools
import json
import os
import time
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from bus_booking.core.security import Principal, create_access_token, hash_password
from bus_booking.db.session import Database
from bus_booking.infrastructure.stripe_processor import StripeProcessor
from bus_booking.main import create_app
from bus_booking.models.enums import ScheduleStatus, UserRole
from bus_booking.models.route import Route
from bus_booking.models.schedule import Schedule
from bus_booking.models.user import User
from bus_booking.services.cache_service import ScheduleCache
from bus_booking.services.interfaces.payment_processor import ProcessorIntent, to_minor_units

WEBHOOK_SECRET = "whsec_test_secret"
DEPARTURE = (datetime.now(timezone.utc) + timedelta(days=30)).replace(hour=9, minute=0, second=0, microsecond=0)


class FakeProcessor(StripeProcessor):
    """
    Stripe stand-in that keeps intents in memory.
    Webhook parsing is inherited, so signatures are verified for real.
    """

    def __init__(self):
        super().__init__(api_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET)
        self.intents: dict[str, ProcessorIntent] = {}
        self.created: list[dict] = []
        self._ids = itertools.count(1)

    async def create_intent(self, amount: Decimal, currency: str, metadata: dict) -> ProcessorIntent:
        n = next(self._ids)
        intent = ProcessorIntent(
            id=f"pi_test_{n}",
            status="requires_payment_method",
            amount=to_minor_units(amount, currency),
            currency=currency,
            client_secret=f"pi_test_{n}_secret_abc",
        )
        self.intents[intent.id] = intent
        self.created.append({"amount": amount, "currency": currency, "metadata": metadata})
        return intent

    async def retrieve_intent(self, intent_id: str) -> ProcessorIntent:
        return self.intents[intent_id]

    def set_status(self, intent_id: str, status: str) -> None:
        intent = self.intents[intent_id]
        self.intents[intent_id] = ProcessorIntent(
            id=intent.id,
            status=status,
            amount=intent.amount,
            currency=intent.currency,
            client_secret=intent.client_secret,
        )

    def succeed(self, intent_id: str) -> None:
        self.set_status(intent_id, "succeeded")


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def webhook_payload(event_type: str, intent_id: str, event_id: str = "evt_test_1") -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": intent_id, "object": "payment_intent", "status": "succeeded"}},
    })


def auth_headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


def principal_for(user: User) -> Principal:
    return Principal(user_id=user.id, role=user.role)


@pytest_asyncio.fixture(scope="function")
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Create tables, yield the storage handle, then drop tables for isolation."""
    url = os.getenv("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path}/test.db")
    db = Database(url)
    await db.create_all()
    yield db
    await db.drop_all()
    await db.dispose()


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest_asyncio.fixture
async def app(database: Database, processor: FakeProcessor):
    return create_app(database=database, processor=processor, cache=ScheduleCache(None))


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def ledger(app):
    return app.state.ledger


@pytest.fixture
def lifecycle(app):
    return app.state.lifecycle


@pytest.fixture
def reconciler(app):
    return app.state.reconciler


async def _create_user(database: Database, email: str, username: str, role: UserRole = UserRole.CUSTOMER) -> User:
    async with database.transaction() as session:
        user = User(
            email=email,
            username=username,
            hashed_password=hash_password("testpassword123"),
            role=role,
        )
        session.add(user)
    return user


@pytest_asyncio.fixture
async def test_user(database: Database) -> User:
    return await _create_user(database, "test@example.com", "testuser")


@pytest_asyncio.fixture
async def other_user(database: Database) -> User:
    return await _create_user(database, "other@example.com", "otheruser")


@pytest_asyncio.fixture
async def admin_user(database: Database) -> User:
    return await _create_user(database, "admin@example.com", "adminuser", role=UserRole.ADMIN)


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Authorization headers with Bearer token."""
    return auth_headers_for(test_user)


@pytest.fixture
def other_headers(other_user: User) -> dict:
    return auth_headers_for(other_user)


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return auth_headers_for(admin_user)


@pytest_asyncio.fixture
async def test_route(database: Database) -> Route:
    async with database.transaction() as session:
        route = Route(
            name="Coastal Line",
            origin="Lisbon",
            destination="Porto",
            distance_km=Decimal("313.00"),
            duration_minutes=210,
            base_price=Decimal("25.00"),
        )
        session.add(route)
    return route


async def create_schedule(database: Database, route: Route, total_seats: int = 40, price: str = "25.00") -> Schedule:
    async with database.transaction() as session:
        schedule = Schedule(
            route_id=route.id,
            bus_number="BUS-100",
            departure_time=DEPARTURE,
            arrival_time=DEPARTURE + timedelta(minutes=route.duration_minutes),
            total_seats=total_seats,
            available_seats=total_seats,
            price=Decimal(price),
            status=ScheduleStatus.SCHEDULED,
        )
        session.add(schedule)
    return schedule


@pytest_asyncio.fixture
async def test_schedule(database: Database, test_route: Route) -> Schedule:
    """A schedule with 40 seats at 25.00 each."""
    return await create_schedule(database, test_route)


@pytest_asyncio.fixture
async def single_seat_schedule(database: Database, test_route: Route) -> Schedule:
    return await create_schedule(database, test_route, total_seats=1)
