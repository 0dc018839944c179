"""Helpers shared by the appointment services."""

import secrets
from collections.abc import Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.core.exceptions import (
    AppException,
    ConflictException,
    ValidationException,
)
from appointment_engine.models.appointments import (
    PATIENT_DAY_UNIQUE_INDEX,
    SLOT_UNIQUE_INDEX,
    appointments,
)
from appointment_engine.models.clinics import clinics
from appointment_engine.scheduling.lifecycle import display_status, is_missed
from appointment_engine.schemas.appointments import AppointmentResponse

APPOINTMENT_UID_PREFIX = "APT"


def generate_appointment_uid() -> str:
    """Human-facing appointment reference, e.g. ``APT-3F9A1C07B2D4``."""
    return f"{APPOINTMENT_UID_PREFIX}-{secrets.token_hex(6).upper()}"


def build_appointment_response(
    row: Mapping[str, Any],
    now_local: datetime,
) -> AppointmentResponse:
    """Build the API representation of an appointment row, including the missed view."""
    data = dict(row)
    data.pop("clinic_timezone", None)
    data["medical_conditions"] = list(data.get("medical_conditions") or [])
    data["is_missed"] = is_missed(
        data["status"], data["appointment_date"], data["appointment_time"], now_local
    )
    data["display_status"] = display_status(
        data["status"], data["appointment_date"], data["appointment_time"], now_local
    )
    return AppointmentResponse.model_validate(data)


def appointment_lookup_clause(appointment_id: str | UUID) -> Any:
    """WHERE clause matching either the internal id or the human-facing uid."""
    if isinstance(appointment_id, UUID):
        return appointments.c.id == appointment_id
    try:
        return appointments.c.id == UUID(appointment_id)
    except ValueError:
        return appointments.c.appointment_uid == appointment_id


async def fetch_appointment(
    db: AsyncSession,
    appointment_id: str | UUID,
) -> dict[str, Any] | None:
    """Load an appointment together with its clinic's timezone."""
    stmt = (
        select(appointments, clinics.c.timezone.label("clinic_timezone"))
        .join(clinics, appointments.c.clinic_id == clinics.c.id)
        .where(appointment_lookup_clause(appointment_id))
    )
    result = await db.execute(stmt)
    row = result.mappings().first()
    return dict(row) if row else None


async def fetch_clinic_timezone(db: AsyncSession, clinic_id: UUID) -> str | None:
    """Timezone name configured for a clinic."""
    result = await db.execute(select(clinics.c.timezone).where(clinics.c.id == clinic_id))
    return result.scalar_one_or_none()


def integrity_error_to_exception(exc: IntegrityError) -> AppException:
    """
    Map a storage constraint violation on appointments to an application error.

    Unique-index violations are the expected outcome of losing a booking race
    and become ConflictException; they are never retried here.
    """
    message = str(exc.orig) if exc.orig is not None else str(exc)

    if SLOT_UNIQUE_INDEX in message or "appointments.appointment_time" in message:
        return ConflictException(
            "This time slot is already booked. Please choose another slot.",
            code="SLOT_ALREADY_BOOKED",
        )
    if PATIENT_DAY_UNIQUE_INDEX in message or "appointments.patient_id" in message:
        return ConflictException(
            "The patient already has an appointment at this clinic on this date.",
            code="DUPLICATE_APPOINTMENT_ON_DATE",
        )
    if "appointment_uid" in message:
        return ConflictException(
            "Appointment with this UID already exists",
            code="DUPLICATE_ENTRY",
        )
    if "foreign key" in message.lower():
        return ValidationException(
            "Unknown clinic, doctor or patient reference",
            code="INVALID_REFERENCE",
        )
    return ValidationException(
        "Appointment data violates a storage constraint",
        code="CONSTRAINT_VIOLATION",
    )
