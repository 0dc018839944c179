"""Rescheduling and cancellation of existing appointments."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.core.clock import Clock, local_now
from appointment_engine.core.exceptions import (
    IllegalTransitionException,
    NotFoundException,
    ServiceUnavailableException,
)
from appointment_engine.models.appointments import appointments
from appointment_engine.scheduling.lifecycle import ACTIVE_STATUSES
from appointment_engine.schemas.appointments import (
    AppointmentResponse,
    AppointmentStatus,
    RescheduleRequest,
)
from appointment_engine.schemas.auth import Caller
from appointment_engine.services.access import ensure_can_access
from appointment_engine.services.booking_service import BookingLedger
from appointment_engine.services.common import (
    build_appointment_response,
    fetch_appointment,
    integrity_error_to_exception,
)

logger = structlog.get_logger()


class RescheduleCoordinator:
    """Moves and cancels appointments without ever leaving partial state."""

    def __init__(self, ledger: BookingLedger | None = None):
        """Initialize coordinator with the ledger used to validate new slots."""
        self.ledger = ledger or BookingLedger()

    async def _load(self, db: AsyncSession, caller: Caller, appointment_id: str | UUID) -> dict[str, Any]:
        appointment = await fetch_appointment(db, appointment_id)
        if appointment is None:
            raise NotFoundException("Appointment not found", code="APPOINTMENT_NOT_FOUND")
        ensure_can_access(caller, appointment)
        return appointment

    async def reschedule(
        self,
        db: AsyncSession,
        caller: Caller,
        appointment_id: str | UUID,
        data: RescheduleRequest,
        clock: Clock,
    ) -> AppointmentResponse:
        """
        Move a scheduled appointment to another slot of the same doctor.

        The new slot is validated exactly as for a reservation before the row
        is touched, then date and time change in one conditional UPDATE, so
        the old slot is released in the same statement that takes the new
        one. The appointment keeps its id, uid and created_at.

        Raises:
            NotFoundException: Unknown appointment
            ForbiddenException: Caller may not modify the appointment
            IllegalTransitionException: Appointment is not scheduled
            ValidationException: New slot is past or not generated
            ConflictException: New slot already held
            ServiceUnavailableException: Storage failure
        """
        # Check access and get current state
        appointment = await self._load(db, caller, appointment_id)
        if appointment["status"] != AppointmentStatus.SCHEDULED.value:
            raise IllegalTransitionException(
                f"Only scheduled appointments can be rescheduled (current: {appointment['status']})",
                code="NOT_RESCHEDULABLE",
            )

        # Same slot, nothing to do
        if (
            appointment["appointment_date"] == data.appointment_date
            and appointment["appointment_time"] == data.appointment_time
        ):
            return build_appointment_response(
                appointment, local_now(clock, appointment["clinic_timezone"])
            )

        # Validate the new slot exactly as for a reservation
        doctor = await self.ledger.load_doctor(db, appointment["doctor_id"])
        await self.ledger.validate_slot(
            db,
            doctor,
            appointment["clinic_id"],
            data.appointment_date,
            data.appointment_time,
            clock,
        )

        # Guarded write: zero rows means the appointment changed since it was read
        stmt = (
            update(appointments)
            .where(
                appointments.c.id == appointment["id"],
                appointments.c.status == AppointmentStatus.SCHEDULED.value,
                appointments.c.doctor_id == appointment["doctor_id"],
            )
            .values(
                appointment_date=data.appointment_date,
                appointment_time=data.appointment_time,
                updated_at=clock.now(),
            )
            .returning(appointments)
        )
        try:
            result = await db.execute(stmt)
            row = result.mappings().first()
            if row is None:
                await db.rollback()
                raise IllegalTransitionException(
                    "Appointment changed while rescheduling; reload and try again",
                    code="NOT_RESCHEDULABLE",
                )
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise integrity_error_to_exception(e) from e
        except DBAPIError as e:
            await db.rollback()
            logger.error("appointment_reschedule_failed", error=str(e))
            raise ServiceUnavailableException() from e

        logger.info(
            "appointment_rescheduled",
            appointment_id=str(row["id"]),
            from_date=appointment["appointment_date"].isoformat(),
            from_time=appointment["appointment_time"],
            to_date=data.appointment_date.isoformat(),
            to_time=data.appointment_time,
        )

        return build_appointment_response(row, local_now(clock, appointment["clinic_timezone"]))

    async def cancel(
        self,
        db: AsyncSession,
        caller: Caller,
        appointment_id: str | UUID,
        clock: Clock,
    ) -> AppointmentResponse:
        """
        Cancel an open appointment.

        The status write frees the slot immediately since only active
        statuses are covered by the slot uniqueness index.

        Raises:
            NotFoundException: Unknown appointment
            ForbiddenException: Caller may not modify the appointment
            IllegalTransitionException: Appointment already completed or cancelled
        """
        # Check access
        appointment = await self._load(db, caller, appointment_id)
        now = clock.now()

        stmt = (
            update(appointments)
            .where(
                appointments.c.id == appointment["id"],
                appointments.c.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
            .values(
                status=AppointmentStatus.CANCELLED.value,
                cancelled_at=now,
                updated_at=now,
            )
            .returning(appointments)
        )
        try:
            result = await db.execute(stmt)
            row = result.mappings().first()
            await db.commit()
        except DBAPIError as e:
            await db.rollback()
            logger.error("appointment_cancel_failed", error=str(e))
            raise ServiceUnavailableException() from e

        if row is None:
            current = await fetch_appointment(db, appointment["id"])
            status = current["status"] if current else appointment["status"]
            raise IllegalTransitionException(
                f"Cannot change appointment status from '{status}' to 'cancelled'"
            )

        logger.info(
            "appointment_cancelled",
            appointment_id=str(row["id"]),
            cancelled_by=caller.role.value,
        )

        return build_appointment_response(row, local_now(clock, appointment["clinic_timezone"]))
