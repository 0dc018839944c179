"""Booking ledger: the allocation authority for doctor time slots.

Double-booking is prevented by the partial unique index
``uq_appointments_active_slot`` on (clinic, doctor, date, time) for active
statuses. A reservation is one conditional INSERT; there is no
read-then-write check, so concurrent workers on separate processes or hosts
cannot both win the same slot.
"""

from datetime import date
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import insert, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.core.clock import Clock, local_now
from appointment_engine.core.exceptions import (
    ConflictException,
    NotFoundException,
    ServiceUnavailableException,
    ValidationException,
)
from appointment_engine.models.appointments import appointments
from appointment_engine.models.patients import patients
from appointment_engine.scheduling.lifecycle import ACTIVE_STATUSES
from appointment_engine.schemas.appointments import (
    AppointmentResponse,
    AppointmentStatus,
    BookedSlotsResponse,
    ReservationRequest,
)
from appointment_engine.schemas.auth import Caller
from appointment_engine.services.access import ensure_clinic_staff
from appointment_engine.services.availability_service import AvailabilityService
from appointment_engine.services.common import (
    build_appointment_response,
    generate_appointment_uid,
    integrity_error_to_exception,
)

logger = structlog.get_logger()


class BookingLedger:
    """Reserves doctor slots under concurrent access."""

    def __init__(self, availability: AvailabilityService | None = None):
        """Initialize ledger with the availability service used for slot checks."""
        self.availability = availability or AvailabilityService()

    async def load_doctor(self, db: AsyncSession, doctor_id: UUID) -> dict[str, Any]:
        """Load a doctor context or raise NotFoundException."""
        context = await self.availability.get_doctor_context(db, doctor_id)
        if context is None:
            raise NotFoundException("Doctor not found", code="DOCTOR_NOT_FOUND")
        return context

    async def validate_slot(
        self,
        db: AsyncSession,
        doctor: dict[str, Any],
        clinic_id: UUID,
        appointment_date: date,
        appointment_time: str,
        clock: Clock,
    ) -> None:
        """
        Check that a slot may be taken right now.

        The slot set is recomputed from live availability and leave; the
        slot cache is never consulted here.

        Raises:
            ValidationException: If the date is past, the doctor does not
                practise at the clinic, or the time is not a generated slot
        """
        now_local = local_now(clock, doctor["timezone"])
        if appointment_date < now_local.date():
            raise ValidationException(
                "Appointment date is in the past",
                code="PAST_DATE",
            )

        if doctor["clinic_id"] != clinic_id:
            raise ValidationException(
                "Doctor does not practise at this clinic",
                code="DOCTOR_NOT_IN_CLINIC",
            )

        slots = await self.availability.compute_slots(db, doctor, appointment_date, now_local)
        if appointment_time not in slots:
            raise ValidationException(
                f"{appointment_time} on {appointment_date.isoformat()} is not an available slot "
                "for this doctor",
                code="SLOT_NOT_AVAILABLE",
            )

    async def reserve(
        self,
        db: AsyncSession,
        caller: Caller,
        data: ReservationRequest,
        clock: Clock,
    ) -> AppointmentResponse:
        """
        Reserve a slot and create the appointment.

        Patients always book for themselves and their bookings are
        provisional until the clinic confirms them. Staff book for any
        patient at their own clinic.

        Args:
            db: Database session
            caller: Authenticated caller
            data: Reservation request
            clock: Time source

        Returns:
            Created appointment

        Raises:
            ValidationException: Malformed or non-bookable slot
            NotFoundException: Unknown doctor or patient
            ForbiddenException: Staff of another clinic
            ConflictException: Slot (or the patient's day) already held
            ServiceUnavailableException: Storage failure
        """
        # Patients book for themselves, pending confirmation
        if caller.is_patient:
            patient_id = caller.id
            provisional = True
        else:
            ensure_clinic_staff(caller, data.clinic_id)
            if data.patient_id is None:
                raise ValidationException("patient_id is required", code="PATIENT_REQUIRED")
            patient_id = data.patient_id
            provisional = data.provisional

        doctor = await self.load_doctor(db, data.doctor_id)

        # Check patient exists
        patient = await db.execute(select(patients.c.id).where(patients.c.id == patient_id))
        if patient.first() is None:
            raise NotFoundException("Patient not found", code="PATIENT_NOT_FOUND")

        # Validate against live availability, never the cache
        await self.validate_slot(
            db, doctor, data.clinic_id, data.appointment_date, data.appointment_time, clock
        )

        now = clock.now()
        values = {
            "id": uuid4(),
            "appointment_uid": generate_appointment_uid(),
            "clinic_id": data.clinic_id,
            "doctor_id": data.doctor_id,
            "patient_id": patient_id,
            "doctor_name": doctor["full_name"],
            "appointment_date": data.appointment_date,
            "appointment_time": data.appointment_time,
            "appointment_type": data.appointment_type.value,
            "status": AppointmentStatus.SCHEDULED.value,
            "provisional": provisional,
            "patient_note": data.patient_note,
            "medical_conditions": data.medical_conditions,
            "created_at": now,
            "updated_at": now,
        }

        # The partial unique indexes decide races between concurrent reservations
        stmt = insert(appointments).values(**values).returning(appointments)
        try:
            result = await db.execute(stmt)
            row = result.mappings().one()
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            error = integrity_error_to_exception(e)
            if isinstance(error, ConflictException):
                logger.info(
                    "appointment_reservation_conflict",
                    doctor_id=str(data.doctor_id),
                    date=data.appointment_date.isoformat(),
                    time=data.appointment_time,
                    code=error.code,
                )
            raise error from e
        except DBAPIError as e:
            await db.rollback()
            logger.error("appointment_reservation_failed", error=str(e))
            raise ServiceUnavailableException() from e

        logger.info(
            "appointment_reserved",
            appointment_id=str(row["id"]),
            appointment_uid=row["appointment_uid"],
            doctor_id=str(data.doctor_id),
            date=data.appointment_date.isoformat(),
            time=data.appointment_time,
            provisional=provisional,
        )

        return build_appointment_response(row, local_now(clock, doctor["timezone"]))

    async def get_booked_slots(
        self,
        db: AsyncSession,
        doctor_id: UUID,
        appointment_date: date,
    ) -> BookedSlotsResponse:
        """Slot start times held by active appointments of a doctor on a date."""
        stmt = (
            select(appointments.c.appointment_time)
            .where(
                appointments.c.doctor_id == doctor_id,
                appointments.c.appointment_date == appointment_date,
                appointments.c.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
            .order_by(appointments.c.appointment_time)
        )
        result = await db.execute(stmt)
        return BookedSlotsResponse(
            doctor_id=doctor_id,
            appointment_date=appointment_date,
            booked=list(result.scalars().all()),
        )
