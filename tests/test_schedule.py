"""Tests for doctor schedule configuration."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from appointment_engine.models.doctors import doctors
from appointment_engine.schemas.availability import ScheduleUpdate
from appointment_engine.services.availability_service import AvailabilityService

from .conftest import TOMORROW


@pytest.mark.asyncio
async def test_get_schedule(client: AsyncClient, seed, staff_headers) -> None:
    """Test reading a doctor schedule."""
    response = await client.get(
        f"/api/v1/doctors/{seed['doctor_id']}/schedule", headers=staff_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["slot_duration_minutes"] == 30
    assert data["timezone"] == "Asia/Kolkata"
    assert data["uses_clinic_availability"] is False


@pytest.mark.asyncio
async def test_schedule_falls_back_to_clinic(
    client: AsyncClient, seed, other_staff_headers
) -> None:
    """Test schedule falls back to clinic."""
    response = await client.get(
        f"/api/v1/doctors/{seed['other_doctor_id']}/schedule", headers=other_staff_headers
    )
    data = response.json()
    assert data["uses_clinic_availability"] is True
    assert data["uses_clinic_duration"] is True
    assert data["slot_duration_minutes"] == 15


@pytest.mark.asyncio
async def test_update_schedule_changes_slots(client: AsyncClient, seed, staff_headers) -> None:
    """Test update schedule changes slots."""
    response = await client.put(
        f"/api/v1/doctors/{seed['doctor_id']}/schedule",
        json={
            "availability": {
                "tuesday": {"morning": {"start": "10:00", "end": "11:00"}},
            },
            "slot_duration_minutes": 20,
        },
        headers=staff_headers,
    )
    assert response.status_code == 200
    assert response.json()["slot_duration_minutes"] == 20
    assert "Tuesday" in response.json()["availability"]

    slots = await client.get(
        f"/api/v1/doctors/{seed['doctor_id']}/slots",
        params={"date": TOMORROW.isoformat()},
        headers=staff_headers,
    )
    assert slots.json()["slots"] == ["10:00", "10:20", "10:40"]


@pytest.mark.asyncio
async def test_null_restores_clinic_defaults(client: AsyncClient, seed, staff_headers) -> None:
    """Test explicit nulls restore clinic defaults."""
    response = await client.put(
        f"/api/v1/doctors/{seed['doctor_id']}/schedule",
        json={"slot_duration_minutes": None},
        headers=staff_headers,
    )
    data = response.json()
    assert data["uses_clinic_duration"] is True
    assert data["slot_duration_minutes"] == 15
    # Availability was not part of the update
    assert data["uses_clinic_availability"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("duration", [0, -30])
async def test_non_positive_duration_is_rejected(
    client: AsyncClient, seed, staff_headers, duration
) -> None:
    """Test a non-positive slot duration is rejected."""
    response = await client.put(
        f"/api/v1/doctors/{seed['doctor_id']}/schedule",
        json={"slot_duration_minutes": duration},
        headers=staff_headers,
    )
    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_SLOT_DURATION"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "availability",
    [
        {"Monday": {"morning": {"start": "12:00", "end": "09:00"}}},
        {"Funday": {"morning": {"start": "09:00", "end": "12:00"}}},
        {"Monday": {"morning": {"start": "9", "end": "12:00"}}},
    ],
)
async def test_invalid_windows_are_rejected(
    client: AsyncClient, seed, staff_headers, availability
) -> None:
    """Test invalid windows are rejected."""
    response = await client.put(
        f"/api/v1/doctors/{seed['doctor_id']}/schedule",
        json={"availability": availability},
        headers=staff_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_requires_clinic_staff(client: AsyncClient, seed, other_staff_headers) -> None:
    """Test update requires clinic staff."""
    response = await client.put(
        f"/api/v1/doctors/{seed['doctor_id']}/schedule",
        json={"slot_duration_minutes": 10},
        headers=other_staff_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_schedule_update_is_stamped_by_the_clock(db_session, seed, staff, clock) -> None:
    """Test the schedule write takes its updated_at from the injected clock."""
    clock.advance(days=3, minutes=7)

    await AvailabilityService().update_schedule(
        db_session, staff, seed["doctor_id"], ScheduleUpdate(slot_duration_minutes=20), clock
    )

    result = await db_session.execute(
        select(doctors.c.updated_at).where(doctors.c.id == seed["doctor_id"])
    )
    updated_at = result.scalar_one()
    assert updated_at.replace(tzinfo=None) == clock.now().replace(tzinfo=None)
