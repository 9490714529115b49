"""
Tests for booking endpoints.
"""

import pytest
from httpx import AsyncClient


async def book(client: AsyncClient, headers: dict, schedule_id: int, seats: list[str]):
    return await client.post(
        "/api/v1/bookings",
        json={"scheduleId": schedule_id, "unitIds": seats},
        headers=headers,
    )


async def available_seats(client: AsyncClient, schedule_id: int) -> int:
    response = await client.get(f"/api/v1/schedules/{schedule_id}")
    return response.json()["available_seats"]


@pytest.mark.asyncio
async def test_book_seats(client: AsyncClient, auth_headers, test_schedule):
    """Successful booking decrements available seats and prices the seats."""
    response = await book(client, auth_headers, test_schedule.id, ["A1", "A2"])
    assert response.status_code == 201
    data = response.json()
    assert data["schedule_id"] == test_schedule.id
    assert data["seat_numbers"] == ["A1", "A2"]
    assert data["seat_count"] == 2
    assert data["total_amount"] == "50.00"
    assert data["status"] == "PENDING"

    assert await available_seats(client, test_schedule.id) == 38


@pytest.mark.asyncio
async def test_book_with_snake_case_body(client: AsyncClient, auth_headers, test_schedule):
    response = await client.post(
        "/api/v1/bookings",
        json={"schedule_id": test_schedule.id, "seat_numbers": ["A1"]},
        headers=auth_headers,
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_book_seats_unauthenticated(client: AsyncClient, test_schedule):
    """Unauthenticated booking returns 401."""
    response = await client.post(
        "/api/v1/bookings",
        json={"scheduleId": test_schedule.id, "unitIds": ["A1"]},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_book_taken_seat(client: AsyncClient, auth_headers, other_headers, test_schedule):
    """A held seat returns 409 listing exactly the conflicting seats."""
    await book(client, auth_headers, test_schedule.id, ["A1", "A2"])

    response = await book(client, other_headers, test_schedule.id, ["A2", "A3"])
    assert response.status_code == 409
    data = response.json()
    assert data["error"] == "conflict"
    assert data["reason"] == "seat_conflict"
    assert data["conflicting_seats"] == ["A2"]

    assert await available_seats(client, test_schedule.id) == 38


@pytest.mark.asyncio
async def test_book_too_many_seats(client: AsyncClient, auth_headers, single_seat_schedule):
    """Requesting more seats than available returns 400 with a reason."""
    response = await book(client, auth_headers, single_seat_schedule.id, ["A1", "A2"])
    assert response.status_code == 400
    data = response.json()
    assert data["reason"] == "insufficient_capacity"
    assert data["available"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"scheduleId": 1, "unitIds": []},
        {"scheduleId": 1, "unitIds": ["A1", "A1"]},
        {"scheduleId": 1, "unitIds": ["  "]},
        {"unitIds": ["A1"]},
        {"scheduleId": 1},
    ],
)
async def test_book_invalid_body(client: AsyncClient, auth_headers, body):
    response = await client.post("/api/v1/bookings", json=body, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "validation_failure"


@pytest.mark.asyncio
async def test_book_nonexistent_schedule(client: AsyncClient, auth_headers):
    """Booking non-existent schedule returns 404."""
    response = await book(client, auth_headers, 99999, ["A1"])
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cancel_booking(client: AsyncClient, auth_headers, test_schedule):
    """Cancellation restores seats to the schedule."""
    book_response = await book(client, auth_headers, test_schedule.id, ["A1", "A2", "A3"])
    booking_id = book_response.json()["id"]

    cancel_response = await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=auth_headers)
    assert cancel_response.status_code == 200
    assert cancel_response.json()["status"] == "CANCELLED"

    assert await available_seats(client, test_schedule.id) == 40


@pytest.mark.asyncio
async def test_cancel_already_cancelled(client: AsyncClient, auth_headers, test_schedule):
    """Double-cancelling is a no-op success and releases seats once."""
    book_response = await book(client, auth_headers, test_schedule.id, ["A1"])
    booking_id = book_response.json()["id"]

    await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=auth_headers)
    response = await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert await available_seats(client, test_schedule.id) == 40


@pytest.mark.asyncio
async def test_admin_can_cancel_any_booking(client: AsyncClient, auth_headers, admin_headers, other_headers, test_schedule):
    booking_id = (await book(client, auth_headers, test_schedule.id, ["A1"])).json()["id"]

    response = await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=other_headers)
    assert response.status_code == 403

    response = await client.post(f"/api/v1/bookings/{booking_id}/cancel", headers=admin_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_get_booking_access(client: AsyncClient, auth_headers, other_headers, admin_headers, test_schedule):
    booking_id = (await book(client, auth_headers, test_schedule.id, ["A1"])).json()["id"]

    response = await client.get(f"/api/v1/bookings/{booking_id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["payment"] is None

    assert (await client.get(f"/api/v1/bookings/{booking_id}", headers=other_headers)).status_code == 403
    assert (await client.get(f"/api/v1/bookings/{booking_id}", headers=admin_headers)).status_code == 200
    assert (await client.get("/api/v1/bookings/424242", headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_list_user_bookings(client: AsyncClient, auth_headers, other_headers, test_schedule):
    """User can see only their own bookings."""
    await book(client, auth_headers, test_schedule.id, ["A1"])
    await book(client, other_headers, test_schedule.id, ["A2"])

    response = await client.get("/api/v1/bookings/me", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert len(data) == 1
    assert data[0]["seat_numbers"] == ["A1"]


@pytest.mark.asyncio
async def test_list_all_bookings_is_admin_only(client: AsyncClient, auth_headers, admin_headers, test_schedule):
    first = (await book(client, auth_headers, test_schedule.id, ["A1"])).json()
    await book(client, auth_headers, test_schedule.id, ["A2"])
    await client.post(f"/api/v1/bookings/{first['id']}/cancel", headers=auth_headers)

    assert (await client.get("/api/v1/bookings", headers=auth_headers)).status_code == 403

    response = await client.get("/api/v1/bookings", headers=admin_headers)
    assert response.status_code == 200
    assert len(response.json()) == 2

    response = await client.get("/api/v1/bookings?status=CANCELLED", headers=admin_headers)
    assert [b["id"] for b in response.json()] == [first["id"]]
