"""Tests for appointment endpoints."""

import asyncio
from uuid import uuid4

import pytest
from httpx import AsyncClient
from starlette.requests import Request

from app.api.v1.endpoints.appointments import _cancel_on_disconnect
from app.schemas.realtime import EventKind

# Monday, before the 2030 daylight saving change
START = "2030-03-04T09:00:00+01:00"


def _payload(practice: dict, **overrides) -> dict:
    data = {
        "provider_id": str(practice["provider_id"]),
        "room_id": str(practice["room_id"]),
        "patient_id": str(practice["patient_id"]),
        "title": "Check-up",
        "start_at": START,
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_ping(client: AsyncClient) -> None:
    """Test ping endpoint."""
    response = await client.get("/api/v1/ping")
    assert response.status_code == 200
    assert response.json() == {"message": "pong"}


@pytest.mark.asyncio
class TestAuthorization:
    """Tests for role resolution."""

    async def test_missing_role_rejected(self, client: AsyncClient) -> None:
        """Requests without a role are unauthenticated."""
        response = await client.get("/api/v1/appointments/")
        assert response.status_code == 401
        assert response.json()["error"] == "missing_credentials"

    async def test_unknown_role_rejected(self, client: AsyncClient) -> None:
        """Roles outside the practice staff are unauthenticated."""
        response = await client.get("/api/v1/appointments/", headers={"X-User-Role": "patient"})
        assert response.status_code == 401

    async def test_bearer_role_accepted(self, client: AsyncClient, practice: dict) -> None:
        """The role can come from the Authorization header."""
        response = await client.get(
            "/api/v1/appointments/",
            headers={"Authorization": "Bearer role:admin"},
        )
        assert response.status_code == 200

    async def test_assistant_cannot_cancel(
        self,
        client: AsyncClient,
        practice: dict,
        assistant_headers: dict,
    ) -> None:
        """Cancelling is reserved to practitioners and admins."""
        created = await client.post(
            "/api/v1/appointments/", json=_payload(practice), headers=assistant_headers
        )

        response = await client.patch(
            f"/api/v1/appointments/{created.json()['id']}/cancel",
            headers=assistant_headers,
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"


@pytest.mark.asyncio
class TestAppointmentEndpoints:
    """Tests for booking, reading and cancelling over HTTP."""

    async def test_create_appointment(
        self,
        client: AsyncClient,
        practice: dict,
        assistant_headers: dict,
    ) -> None:
        """Test creating an appointment."""
        response = await client.post(
            "/api/v1/appointments/",
            json=_payload(practice, notes=[{"body": "First visit"}]),
            headers=assistant_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "scheduled"
        assert data["slot_minutes"] == 30
        assert data["provider"]["full_name"] == "Dr Jade Nguyen"
        assert data["created_by"] == "front-desk"
        assert [note["kind"] for note in data["notes"]] == ["note", "notification"]
        assert response.headers["X-Request-ID"]

    async def test_double_booking_conflict(
        self,
        client: AsyncClient,
        practice: dict,
        assistant_headers: dict,
    ) -> None:
        """Overlapping bookings return 409."""
        first = await client.post(
            "/api/v1/appointments/", json=_payload(practice), headers=assistant_headers
        )
        assert first.status_code == 201

        response = await client.post(
            "/api/v1/appointments/",
            json=_payload(practice, start_at="2030-03-04T09:15:00+01:00"),
            headers=assistant_headers,
        )
        assert response.status_code == 409
        assert response.json()["error"] == "double_booking"

    async def test_misaligned_start(
        self,
        client: AsyncClient,
        practice: dict,
        assistant_headers: dict,
    ) -> None:
        """Off-grid starts return 422 with a domain code."""
        response = await client.post(
            "/api/v1/appointments/",
            json=_payload(practice, start_at="2030-03-04T09:10:00+01:00"),
            headers=assistant_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_slot_alignment"

    async def test_unknown_provider(
        self,
        client: AsyncClient,
        practice: dict,
        assistant_headers: dict,
    ) -> None:
        """Unknown references return 404."""
        response = await client.post(
            "/api/v1/appointments/",
            json=_payload(practice, provider_id=str(uuid4())),
            headers=assistant_headers,
        )
        assert response.status_code == 404
        assert response.json()["error"] == "provider_not_found"

    async def test_invalid_payload(
        self,
        client: AsyncClient,
        practice: dict,
        assistant_headers: dict,
    ) -> None:
        """Titles shorter than three characters fail validation."""
        response = await client.post(
            "/api/v1/appointments/",
            json=_payload(practice, title="X"),
            headers=assistant_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "validation_failed"

    async def test_get_appointment(
        self,
        client: AsyncClient,
        practice: dict,
        assistant_headers: dict,
    ) -> None:
        """Test getting a specific appointment."""
        created = await client.post(
            "/api/v1/appointments/", json=_payload(practice), headers=assistant_headers
        )
        appointment_id = created.json()["id"]

        response = await client.get(
            f"/api/v1/appointments/{appointment_id}", headers=assistant_headers
        )
        assert response.status_code == 200
        assert response.json()["id"] == appointment_id

        missing = await client.get(f"/api/v1/appointments/{uuid4()}", headers=assistant_headers)
        assert missing.status_code == 404
        assert missing.json()["error"] == "appointment_not_found"

    async def test_cancel_appointment(
        self,
        client: AsyncClient,
        practice: dict,
        assistant_headers: dict,
        practitioner_headers: dict,
    ) -> None:
        """Practitioners can cancel, and cancelling again changes nothing."""
        created = await client.post(
            "/api/v1/appointments/", json=_payload(practice), headers=assistant_headers
        )
        appointment_id = created.json()["id"]

        response = await client.patch(
            f"/api/v1/appointments/{appointment_id}/cancel",
            json={"reason": "patient ill"},
            headers=practitioner_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cancelled"
        assert data["cancel_reason"] == "patient ill"

        again = await client.patch(
            f"/api/v1/appointments/{appointment_id}/cancel",
            headers=practitioner_headers,
        )
        assert again.status_code == 200
        assert len(again.json()["notes"]) == len(data["notes"])

    async def test_list_appointments(
        self,
        client: AsyncClient,
        practice: dict,
        assistant_headers: dict,
    ) -> None:
        """Test listing appointments with filters."""
        await client.post(
            "/api/v1/appointments/", json=_payload(practice), headers=assistant_headers
        )
        await client.post(
            "/api/v1/appointments/",
            json=_payload(
                practice,
                provider_id=str(practice["other_provider_id"]),
                room_id=str(practice["other_room_id"]),
            ),
            headers=assistant_headers,
        )
        params = {"start": "2030-03-04T00:00:00+01:00", "end": "2030-03-05T00:00:00+01:00"}

        response = await client.get(
            "/api/v1/appointments/", params=params, headers=assistant_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert len(data["appointments"]) == 2
        assert len(data["providers"]) == 2
        assert data["meta"]["cursor"] == 2
        assert data["meta"]["timezone"]

        ids = f"{practice['provider_id']},{uuid4()}"
        filtered = await client.get(
            "/api/v1/appointments/",
            params={**params, "provider_id": ids, "include_notes": "true"},
            headers=assistant_headers,
        )
        appointments = filtered.json()["appointments"]
        assert [a["provider"]["id"] for a in appointments] == [str(practice["provider_id"])]
        assert appointments[0]["notes"][0]["body"] == "slot created by assistant"

    async def test_list_invalid_range(self, client: AsyncClient, assistant_headers: dict) -> None:
        """Inverted windows return invalid_range."""
        response = await client.get(
            "/api/v1/appointments/",
            params={"start": "2030-03-05T00:00:00Z", "end": "2030-03-04T00:00:00Z"},
            headers=assistant_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_range"

    async def test_list_invalid_provider_filter(
        self, client: AsyncClient, assistant_headers: dict
    ) -> None:
        """Malformed ids in filters fail validation."""
        response = await client.get(
            "/api/v1/appointments/",
            params={"provider_id": "not-a-uuid"},
            headers=assistant_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "validation_failed"


@pytest.mark.asyncio
class TestUpdatesEndpoint:
    """Tests for the long-poll change feed."""

    async def test_poll_times_out_empty(self, client: AsyncClient, assistant_headers: dict) -> None:
        """Without changes the poll answers with no events and the same cursor."""
        response = await client.get(
            "/api/v1/appointments/updates", params={"cursor": 0}, headers=assistant_headers
        )
        assert response.status_code == 200
        assert response.json() == {"events": [], "cursor": 0}
        assert response.headers["Cache-Control"] == "no-store"

    async def test_poll_replays_missed_events(
        self,
        client: AsyncClient,
        practice: dict,
        assistant_headers: dict,
    ) -> None:
        """Events after the cursor are returned immediately."""
        created = await client.post(
            "/api/v1/appointments/", json=_payload(practice), headers=assistant_headers
        )

        response = await client.get(
            "/api/v1/appointments/updates", params={"cursor": 0}, headers=assistant_headers
        )
        data = response.json()
        assert data["cursor"] == 1
        assert data["events"][0]["kind"] == "created"
        assert data["events"][0]["appointment"]["id"] == created.json()["id"]

    async def test_pending_poll_woken_by_booking(
        self,
        client: AsyncClient,
        broker,
        practice: dict,
        assistant_headers: dict,
    ) -> None:
        """A waiting client receives the booking made by another one."""
        broker.default_timeout = 5

        poll = asyncio.create_task(
            client.get(
                "/api/v1/appointments/updates", params={"cursor": 0}, headers=assistant_headers
            )
        )
        for _ in range(50):
            if broker.pending_waiters:
                break
            await asyncio.sleep(0.01)
        assert broker.pending_waiters == 1

        await client.post(
            "/api/v1/appointments/", json=_payload(practice), headers=assistant_headers
        )
        response = await asyncio.wait_for(poll, timeout=2)

        assert response.status_code == 200
        assert response.json()["cursor"] == 1

    async def test_negative_cursor_rejected(
        self, client: AsyncClient, assistant_headers: dict
    ) -> None:
        """Cursors are never negative."""
        response = await client.get(
            "/api/v1/appointments/updates", params={"cursor": -1}, headers=assistant_headers
        )
        assert response.status_code == 422


def _request(disconnected: bool) -> Request:
    async def receive() -> dict:
        if disconnected:
            return {"type": "http.disconnect"}
        await asyncio.sleep(3600)
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request({"type": "http", "method": "GET", "path": "/", "headers": []}, receive)


@pytest.mark.asyncio
class TestDisconnectWatcher:
    """Tests for releasing long-polls whose client went away."""

    async def test_disconnect_cancels_pending_poll(self, broker) -> None:
        """A departed client's waiter is released."""
        broker.default_timeout = 5
        poll = asyncio.create_task(broker.poll(0))
        await asyncio.sleep(0)
        assert broker.pending_waiters == 1

        await asyncio.wait_for(_cancel_on_disconnect(_request(disconnected=True), poll), 1)

        with pytest.raises(asyncio.CancelledError):
            await poll
        assert broker.pending_waiters == 0

    async def test_watcher_stops_once_poll_is_answered(self, broker) -> None:
        """A connected client's poll is left to finish on its own."""
        broker.default_timeout = 5
        poll = asyncio.create_task(broker.poll(0))
        await asyncio.sleep(0)
        watcher = asyncio.create_task(_cancel_on_disconnect(_request(disconnected=False), poll))

        broker.emit(EventKind.CREATED, {"id": "appointment-1"})
        batch = await asyncio.wait_for(poll, 1)
        await asyncio.wait_for(watcher, 2)

        assert batch.cursor == 1
        assert broker.pending_waiters == 0
