"""
HTTP tests for the appointment endpoints
"""

from datetime import date, timedelta

import booking
from errors import StorageFailure

AUTH_U = {"X-User-Id": "user-u"}
AUTH_V = {"X-User-Id": "user-v"}


async def far_slot(client) -> dict:
    """An available slot at least two days out, so it can still be cancelled."""
    response = await client.get("/api/appointments/available")
    cutoff = booking.current_time().date() + timedelta(days=2)
    return next(s for s in response.json()["data"] if date.fromisoformat(s["date"]) >= cutoff)


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "message": "Server is running"}


async def test_available_slots(client):
    response = await client.get("/api/appointments/available")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    slots = body["data"]
    assert 0 < len(slots) <= 240
    keys = [(s["date"], s["startTime"]) for s in slots]
    assert keys == sorted(keys)
    assert all(s["status"] == "available" and s["ownerId"] is None for s in slots)


async def test_book_requires_identity(client):
    response = await client.post("/api/appointments/book", json={"appointmentId": 1})

    assert response.status_code == 401
    assert response.json()["success"] is False


async def test_book_validates_body(client):
    response = await client.post("/api/appointments/book", json={}, headers=AUTH_U)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"


async def test_book_unknown_slot(client):
    await client.get("/api/appointments/available")

    response = await client.post(
        "/api/appointments/book", json={"appointmentId": 999999}, headers=AUTH_U
    )

    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


async def test_book_list_and_cancel(client):
    slot = await far_slot(client)

    response = await client.post(
        "/api/appointments/book", json={"appointmentId": slot["id"]}, headers=AUTH_U
    )
    assert response.status_code == 201
    booked = response.json()["data"]
    assert booked["status"] == "booked"
    assert booked["ownerId"] == "user-u"

    response = await client.get("/api/appointments/my-appointments", headers=AUTH_U)
    assert [s["id"] for s in response.json()["data"]] == [slot["id"]]

    response = await client.get("/api/appointments/available")
    assert slot["id"] not in {s["id"] for s in response.json()["data"]}

    response = await client.post(
        "/api/appointments/book", json={"appointmentId": slot["id"]}, headers=AUTH_V
    )
    assert response.status_code == 409
    assert response.json()["error"] == "ALREADY_BOOKED"

    response = await client.delete(f"/api/appointments/{slot['id']}/cancel", headers=AUTH_V)
    assert response.status_code == 403
    assert response.json()["error"] == "NOT_OWNER"

    response = await client.delete(f"/api/appointments/{slot['id']}/cancel", headers=AUTH_U)
    assert response.status_code == 200
    cancelled = response.json()["data"]
    assert cancelled["status"] == "available"
    assert cancelled["ownerId"] is None

    response = await client.get("/api/appointments/my-appointments", headers=AUTH_U)
    assert response.json()["data"] == []


async def test_second_booking_same_day_conflicts(client):
    first = await far_slot(client)
    response = await client.get("/api/appointments/available")
    second = next(
        s for s in response.json()["data"]
        if s["date"] == first["date"] and s["id"] != first["id"]
    )

    response = await client.post(
        "/api/appointments/book", json={"appointmentId": first["id"]}, headers=AUTH_U
    )
    assert response.status_code == 201

    response = await client.post(
        "/api/appointments/book", json={"appointmentId": second["id"]}, headers=AUTH_U
    )
    assert response.status_code == 409
    assert response.json()["error"] == "DUPLICATE_BOOKING_SAME_DAY"


async def test_storage_failure_is_server_error(client, monkeypatch):
    async def broken(session, user_id):
        raise StorageFailure()

    monkeypatch.setattr(booking, "list_booked_for", broken)

    response = await client.get("/api/appointments/my-appointments", headers=AUTH_U)

    assert response.status_code == 503
    assert response.json()["error"] == "STORAGE_FAILURE"
