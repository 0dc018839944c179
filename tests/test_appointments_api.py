"""End-to-end tests for the appointment endpoints."""

from datetime import UTC, datetime

import pytest
from httpx import AsyncClient

from .conftest import TODAY, TOMORROW


async def _reserve(client: AsyncClient, payload: dict, headers: dict) -> dict:
    response = await client.post("/api/v1/appointments/", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_reserve_appointment(client: AsyncClient, staff_headers, reservation_payload) -> None:
    """Test reserving an appointment."""
    data = await _reserve(client, reservation_payload, staff_headers)

    assert data["status"] == "scheduled"
    assert data["display_status"] == "scheduled"
    assert data["provisional"] is False
    assert data["appointment_time"] == "09:30"
    assert data["appointment_date"] == TOMORROW.isoformat()


@pytest.mark.asyncio
async def test_double_booking_returns_409(
    client: AsyncClient, seed, staff_headers, reservation_payload
) -> None:
    """Test double booking returns 409."""
    await _reserve(client, reservation_payload, staff_headers)

    payload = {**reservation_payload, "patient_id": str(seed["patient_ids"][1])}
    response = await client.post("/api/v1/appointments/", json=payload, headers=staff_headers)

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "ConflictException"
    assert body["code"] == "SLOT_ALREADY_BOOKED"


@pytest.mark.asyncio
async def test_malformed_time_returns_422(
    client: AsyncClient, staff_headers, reservation_payload
) -> None:
    """Test malformed time returns 422."""
    payload = {**reservation_payload, "appointment_time": "9:30am"}
    response = await client.post("/api/v1/appointments/", json=payload, headers=staff_headers)
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_unaligned_time_returns_422(
    client: AsyncClient, staff_headers, reservation_payload
) -> None:
    """Test unaligned time returns 422."""
    payload = {**reservation_payload, "appointment_time": "09:40"}
    response = await client.post("/api/v1/appointments/", json=payload, headers=staff_headers)
    assert response.status_code == 422
    assert response.json()["code"] == "SLOT_NOT_AVAILABLE"


@pytest.mark.asyncio
async def test_patient_self_booking_is_provisional(
    client: AsyncClient, patient, patient_headers, reservation_payload
) -> None:
    """Test patient self booking is provisional."""
    payload = {k: v for k, v in reservation_payload.items() if k != "patient_id"}
    data = await _reserve(client, payload, patient_headers)

    assert data["provisional"] is True
    assert data["patient_id"] == str(patient.id)

    mine = await client.get("/api/v1/appointments/mine", headers=patient_headers)
    assert mine.status_code == 200
    assert [a["id"] for a in mine.json()] == [data["id"]]


@pytest.mark.asyncio
async def test_get_by_id_and_uid(client: AsyncClient, staff_headers, reservation_payload) -> None:
    """Test reading an appointment by id and by uid."""
    created = await _reserve(client, reservation_payload, staff_headers)

    by_id = await client.get(f"/api/v1/appointments/{created['id']}", headers=staff_headers)
    by_uid = await client.get(
        f"/api/v1/appointments/{created['appointment_uid']}", headers=staff_headers
    )

    assert by_id.status_code == 200
    assert by_uid.status_code == 200
    assert by_id.json() == by_uid.json()


@pytest.mark.asyncio
async def test_get_unknown_appointment(client: AsyncClient, seed, staff_headers) -> None:
    """Test reading an unknown appointment."""
    response = await client.get("/api/v1/appointments/APT-NOPE", headers=staff_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "APPOINTMENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_other_clinic_staff_is_forbidden(
    client: AsyncClient, staff_headers, other_staff_headers, reservation_payload
) -> None:
    """Test other clinic staff is forbidden."""
    created = await _reserve(client, reservation_payload, staff_headers)
    response = await client.get(
        f"/api/v1/appointments/{created['id']}", headers=other_staff_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_full_lifecycle_with_consent(
    client: AsyncClient, staff_headers, reservation_payload
) -> None:
    """Test full lifecycle with consent."""
    created = await _reserve(client, reservation_payload, staff_headers)
    url = f"/api/v1/appointments/{created['id']}/status"

    # Completing straight from scheduled is illegal
    response = await client.patch(url, json={"status": "completed"}, headers=staff_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "ILLEGAL_TRANSITION"

    # Starting requires consent
    response = await client.patch(url, json={"status": "in-progress"}, headers=staff_headers)
    assert response.status_code == 422
    assert response.json()["code"] == "CONSENT_REQUIRED"

    response = await client.patch(
        url, json={"status": "in-progress", "consent_confirmed": True}, headers=staff_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "in-progress"
    assert response.json()["consent_confirmed_at"] is not None

    response = await client.patch(url, json={"status": "completed"}, headers=staff_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    # Terminal
    response = await client.patch(url, json={"status": "cancelled"}, headers=staff_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_patient_may_only_cancel(
    client: AsyncClient, patient_headers, reservation_payload
) -> None:
    """Test patient may only cancel."""
    payload = {k: v for k, v in reservation_payload.items() if k != "patient_id"}
    created = await _reserve(client, payload, patient_headers)
    url = f"/api/v1/appointments/{created['id']}/status"

    response = await client.patch(
        url, json={"status": "in-progress", "consent_confirmed": True}, headers=patient_headers
    )
    assert response.status_code == 403

    response = await client.patch(url, json={"status": "cancelled"}, headers=patient_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_cancel_endpoint_frees_slot(
    client: AsyncClient, seed, staff_headers, reservation_payload
) -> None:
    """Test cancel endpoint frees slot."""
    created = await _reserve(client, reservation_payload, staff_headers)

    response = await client.patch(
        f"/api/v1/appointments/{created['id']}/cancel", headers=staff_headers
    )
    assert response.status_code == 200
    assert response.json()["cancelled_at"] is not None

    payload = {**reservation_payload, "patient_id": str(seed["patient_ids"][1])}
    await _reserve(client, payload, staff_headers)


@pytest.mark.asyncio
async def test_reschedule_endpoint(
    client: AsyncClient, seed, staff_headers, reservation_payload
) -> None:
    """Test rescheduling through the API."""
    created = await _reserve(client, reservation_payload, staff_headers)
    other = {
        **reservation_payload,
        "patient_id": str(seed["patient_ids"][1]),
        "appointment_time": "11:00",
    }
    await _reserve(client, other, staff_headers)
    url = f"/api/v1/appointments/{created['id']}/reschedule"

    response = await client.patch(
        url,
        json={"appointment_date": TOMORROW.isoformat(), "appointment_time": "11:00"},
        headers=staff_headers,
    )
    assert response.status_code == 409

    unchanged = await client.get(f"/api/v1/appointments/{created['id']}", headers=staff_headers)
    assert unchanged.json()["appointment_time"] == "09:30"

    response = await client.patch(
        url,
        json={"appointment_date": TOMORROW.isoformat(), "appointment_time": "10:30"},
        headers=staff_headers,
    )
    assert response.status_code == 200
    assert response.json()["appointment_time"] == "10:30"
    assert response.json()["appointment_uid"] == created["appointment_uid"]


@pytest.mark.asyncio
async def test_confirm_provisional_booking(
    client: AsyncClient, staff_headers, patient_headers, reservation_payload
) -> None:
    """Test confirming a provisional booking."""
    payload = {k: v for k, v in reservation_payload.items() if k != "patient_id"}
    created = await _reserve(client, payload, patient_headers)
    url = f"/api/v1/appointments/{created['id']}/confirm"

    response = await client.patch(url, headers=patient_headers)
    assert response.status_code == 403

    response = await client.patch(url, headers=staff_headers)
    assert response.status_code == 200
    assert response.json()["provisional"] is False

    # Idempotent
    response = await client.patch(url, headers=staff_headers)
    assert response.status_code == 200
    assert response.json()["provisional"] is False


@pytest.mark.asyncio
async def test_update_medical_conditions(
    client: AsyncClient, staff_headers, patient_headers, reservation_payload
) -> None:
    """Test updating medical conditions."""
    created = await _reserve(client, reservation_payload, staff_headers)
    url = f"/api/v1/appointments/{created['id']}"

    response = await client.patch(
        url,
        json={"medical_conditions": ["Diabetes", " BP: 140/90 ", ""], "notes": "Fasting"},
        headers=staff_headers,
    )
    assert response.status_code == 200
    assert response.json()["medical_conditions"] == ["Diabetes", "BP: 140/90"]
    assert response.json()["notes"] == "Fasting"
    assert response.json()["status"] == "scheduled"

    response = await client.patch(url, json={"notes": "x"}, headers=patient_headers)
    assert response.status_code == 403

    response = await client.patch(
        url, json={"patient_note": "Running late"}, headers=patient_headers
    )
    assert response.status_code == 200
    assert response.json()["patient_note"] == "Running late"

    await client.patch(f"{url}/cancel", headers=staff_headers)
    response = await client.patch(
        url, json={"medical_conditions": ["Asthma"]}, headers=staff_headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_clinic_list_filters_and_missed_view(
    client: AsyncClient, seed, staff_headers, reservation_payload, clock
) -> None:
    """Test clinic list filters and missed view."""
    today_payload = {
        **reservation_payload,
        "appointment_date": TODAY.isoformat(),
        "appointment_time": "15:00",
    }
    today = await _reserve(client, today_payload, staff_headers)
    tomorrow = await _reserve(
        client,
        {**reservation_payload, "patient_id": str(seed["patient_ids"][1])},
        staff_headers,
    )
    url = f"/api/v1/appointments/clinic/{seed['clinic_id']}"

    response = await client.get(url, headers=staff_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert [a["id"] for a in body["items"]] == [today["id"], tomorrow["id"]]

    response = await client.get(url, params={"missed": "true"}, headers=staff_headers)
    assert response.json()["total"] == 0

    # Time passes beyond the 15:00 start without the patient being seen
    clock.advance(hours=2)

    response = await client.get(url, params={"missed": "true"}, headers=staff_headers)
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == today["id"]
    assert body["items"][0]["display_status"] == "missed"
    assert body["items"][0]["status"] == "scheduled"

    response = await client.get(url, params={"date": TOMORROW.isoformat()}, headers=staff_headers)
    assert [a["id"] for a in response.json()["items"]] == [tomorrow["id"]]

    response = await client.get(
        url, params={"search": tomorrow["appointment_uid"][4:]}, headers=staff_headers
    )
    assert response.json()["total"] == 1

    response = await client.get(url, params={"page_size": 1, "page": 2}, headers=staff_headers)
    assert response.json()["total"] == 2
    assert len(response.json()["items"]) == 1


@pytest.mark.asyncio
async def test_missed_filter_counts_a_started_minute(
    client: AsyncClient, staff_headers, reservation_payload, clock
) -> None:
    """Test the missed filter flags a slot once the clock is past its first second."""
    payload = {
        **reservation_payload,
        "appointment_date": TODAY.isoformat(),
        "appointment_time": "15:00",
    }
    booked = await _reserve(client, payload, staff_headers)
    url = f"/api/v1/appointments/clinic/{reservation_payload['clinic_id']}"

    # 15:00:00 in Asia/Kolkata
    clock.current = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)
    response = await client.get(url, params={"missed": "true"}, headers=staff_headers)
    assert response.json()["total"] == 0

    clock.current = datetime(2026, 3, 2, 9, 30, 30, tzinfo=UTC)
    response = await client.get(url, params={"missed": "true"}, headers=staff_headers)
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == booked["id"]
    assert body["items"][0]["display_status"] == "missed"

    response = await client.get(url, params={"missed": "false"}, headers=staff_headers)
    assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(
    client: AsyncClient, staff_headers, reservation_payload
) -> None:
    """Test LIKE wildcards in the search term do not match every appointment."""
    await _reserve(client, reservation_payload, staff_headers)
    url = f"/api/v1/appointments/clinic/{reservation_payload['clinic_id']}"

    for term in ("%", "_", "APT%"):
        response = await client.get(url, params={"search": term}, headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 0

    response = await client.get(url, params={"search": "apt-"}, headers=staff_headers)
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_clinic_list_forbidden_for_other_clinic(
    client: AsyncClient, seed, other_staff_headers, patient_headers
) -> None:
    """Test the clinic list is forbidden to another clinic's staff."""
    url = f"/api/v1/appointments/clinic/{seed['clinic_id']}"
    assert (await client.get(url, headers=other_staff_headers)).status_code == 403
    assert (await client.get(url, headers=patient_headers)).status_code == 403


@pytest.mark.asyncio
async def test_booked_slots_endpoint(
    client: AsyncClient, seed, staff_headers, reservation_payload
) -> None:
    """Test the booked slots endpoint."""
    await _reserve(client, reservation_payload, staff_headers)
    response = await client.get(
        f"/api/v1/doctors/{seed['doctor_id']}/booked-slots",
        params={"date": TOMORROW.isoformat()},
        headers=staff_headers,
    )
    assert response.status_code == 200
    assert response.json()["booked"] == ["09:30"]


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client: AsyncClient, reservation_payload) -> None:
    """Test invalid token is rejected."""
    response = await client.post(
        "/api/v1/appointments/",
        json=reservation_payload,
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401
