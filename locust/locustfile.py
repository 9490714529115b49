"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overbooking
  locust -f locustfile.py --tags throughput   # Test search cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

The concurrency scenario needs an admin account (ADMIN_EMAIL/ADMIN_PASSWORD,
see `python -m bus_booking.db.seed`) to create its schedule.
"""

import os
import random
import string
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@busbooking.local")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "change-me-admin")
RACE_SEATS = 10

# Shared state
SCHEDULE_IDS = []
SEARCH_DAY = (datetime.now(timezone.utc) + timedelta(days=7)).date().isoformat()
RACE_SCHEDULE_ID = None


def random_email():
    return f"load_{random.randint(10000, 99999)}@test.com"


def random_username():
    return "u_" + "".join(random.choices(string.ascii_lowercase, k=8))


def register_and_login(client) -> dict:
    email = random_email()
    client.post("/api/v1/auth/register", json={
        "email": email,
        "username": random_username(),
        "password": "test12345",
    })
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": "test12345"})
    if resp.status_code == 200:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


def create_race_schedule(client) -> None:
    """One schedule with 10 seats that every ConcurrencyUser fights over."""
    resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    if resp.status_code != 200:
        print("\nAdmin login failed, run the seed first\n")
        return
    admin_headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}

    resp = client.post("/api/v1/routes", json={
        "name": "Load Test Line",
        "origin": "Loadville",
        "destination": "Stresstown",
        "distance_km": "120.00",
        "duration_minutes": 90,
        "base_price": "10.00",
    }, headers=admin_headers)
    if resp.status_code != 201:
        return

    departure = datetime.now(timezone.utc) + timedelta(days=7)
    resp = client.post("/api/v1/schedules", json={
        "route_id": resp.json()["id"],
        "bus_number": "LOAD-1",
        "departure_time": departure.isoformat(),
        "arrival_time": (departure + timedelta(minutes=90)).isoformat(),
        "total_seats": RACE_SEATS,
        "price": "10.00",
    }, headers=admin_headers)
    if resp.status_code == 201:
        globals()["RACE_SCHEDULE_ID"] = resp.json()["id"]
        print(f"\nCreated schedule {RACE_SCHEDULE_ID} with {RACE_SEATS} seats\n")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users -> 10 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM seat_allocations WHERE schedule_id = X;
    Should be <= 10, and available_seats + that count = 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = register_and_login(self.client)
        if not RACE_SCHEDULE_ID:
            create_race_schedule(self.client)

    @tag("concurrency")
    @task
    def book_contested_seat(self):
        """All users fight for the same 10 seat numbers."""
        if not RACE_SCHEDULE_ID or not self.headers:
            return

        seat = f"A{random.randint(1, RACE_SEATS)}"
        with self.client.post("/api/v1/bookings",
            json={"scheduleId": RACE_SCHEDULE_ID, "unitIds": [seat]},
            headers=self.headers,
            catch_response=True,
            name="/api/v1/bookings [race]",
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: seat taken
            elif resp.status_code == 400 and resp.json().get("reason") == "insufficient_capacity":
                resp.success()  # Expected: sold out
            elif resp.status_code == 503:
                resp.success()  # Storage busy, client retries
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Search cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def search_cached(self):
        """Hammer the cached endpoint."""
        resp = self.client.get(
            f"/api/v1/schedules/search?origin=lisbon&destination=porto&date={SEARCH_DAY}",
            name="/api/v1/schedules/search [cached]",
        )
        if resp.status_code == 200:
            for schedule in resp.json().get("schedules", []):
                if schedule["id"] not in SCHEDULE_IDS:
                    SCHEDULE_IDS.append(schedule["id"])

    @tag("throughput", "read")
    @task(3)
    def get_schedule_detail(self):
        """Read individual schedules with their held seats."""
        if SCHEDULE_IDS:
            schedule_id = random.choice(SCHEDULE_IDS)
            self.client.get(f"/api/v1/schedules/{schedule_id}", name="/api/v1/schedules/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = register_and_login(self.client)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_schedule_id(self):
        """Book non-existent schedule."""
        with self.client.post("/api/v1/bookings",
            json={"schedule_id": 999999, "seat_numbers": ["A1"]},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def empty_seats(self):
        """Try to book no seats at all."""
        with self.client.post("/api/v1/bookings",
            json={"schedule_id": 1, "seat_numbers": []},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def duplicate_seats(self):
        """Same seat twice in one request."""
        with self.client.post("/api/v1/bookings",
            json={"schedule_id": 1, "seat_numbers": ["A1", "A1"]},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/bookings",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def unsigned_webhook(self):
        """Webhook without a processor signature."""
        with self.client.post("/api/v1/payments/webhook",
            data='{"type": "payment_intent.succeeded"}',
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def missing_auth(self):
        """Try booking without auth."""
        with self.client.post("/api/v1/bookings",
            json={"schedule_id": 1, "seat_numbers": ["A1"]},
            catch_response=True,
        ) as resp:
            self._expect(resp, [401])
