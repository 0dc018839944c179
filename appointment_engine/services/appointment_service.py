"""Appointment service: reads and lifecycle transitions."""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, func, not_, or_, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.core.clock import Clock, local_now
from appointment_engine.core.exceptions import (
    ForbiddenException,
    IllegalTransitionException,
    NotFoundException,
    ServiceUnavailableException,
    ValidationException,
)
from appointment_engine.models.appointments import appointments
from appointment_engine.models.clinics import clinics
from appointment_engine.scheduling.calendar import format_hhmm
from appointment_engine.scheduling.lifecycle import (
    ACTIVE_STATUSES,
    allowed_sources,
    ensure_transition,
)
from appointment_engine.schemas.appointments import (
    AppointmentDetailsUpdate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    StatusTransition,
)
from appointment_engine.schemas.auth import Caller
from appointment_engine.services.access import ensure_can_access, ensure_clinic_staff
from appointment_engine.services.common import (
    build_appointment_response,
    fetch_appointment,
    fetch_clinic_timezone,
)
from appointment_engine.services.reschedule_service import RescheduleCoordinator

logger = structlog.get_logger()


def missed_condition(now_local: datetime) -> Any:
    """SQL condition matching scheduled appointments whose start has passed."""
    today = now_local.date()
    current_time = format_hhmm(now_local.hour * 60 + now_local.minute)
    # Any time past HH:MM:00 means the HH:MM slot itself has started
    if now_local.second or now_local.microsecond:
        started = appointments.c.appointment_time <= current_time
    else:
        started = appointments.c.appointment_time < current_time
    return and_(
        appointments.c.status == AppointmentStatus.SCHEDULED.value,
        or_(
            appointments.c.appointment_date < today,
            and_(
                appointments.c.appointment_date == today,
                started,
            ),
        ),
    )


class AppointmentService:
    """Service for reading appointments and moving them through their lifecycle."""

    def __init__(self, coordinator: RescheduleCoordinator | None = None):
        """Initialize service with the coordinator that owns cancellation."""
        self.coordinator = coordinator or RescheduleCoordinator()

    async def _load(self, db: AsyncSession, caller: Caller, appointment_id: str | UUID) -> dict[str, Any]:
        appointment = await fetch_appointment(db, appointment_id)
        if appointment is None:
            raise NotFoundException("Appointment not found", code="APPOINTMENT_NOT_FOUND")
        ensure_can_access(caller, appointment)
        return appointment

    async def _conditional_update(
        self,
        db: AsyncSession,
        conditions: list[Any],
        values: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Apply a guarded UPDATE and return the new row, or None when the guard failed."""
        stmt = update(appointments).where(and_(*conditions)).values(**values).returning(appointments)
        try:
            result = await db.execute(stmt)
            row = result.mappings().first()
            await db.commit()
        except DBAPIError as e:
            await db.rollback()
            logger.error("appointment_update_failed", error=str(e))
            raise ServiceUnavailableException() from e
        return dict(row) if row else None

    async def _classify_failed_update(
        self,
        db: AsyncSession,
        appointment_id: UUID,
        target: str,
    ) -> IllegalTransitionException | NotFoundException:
        current = await fetch_appointment(db, appointment_id)
        if current is None:
            return NotFoundException("Appointment not found", code="APPOINTMENT_NOT_FOUND")
        return IllegalTransitionException(
            f"Cannot change appointment status from '{current['status']}' to '{target}'"
        )

    async def get_appointment(
        self,
        db: AsyncSession,
        caller: Caller,
        appointment_id: str | UUID,
        clock: Clock,
    ) -> AppointmentResponse:
        """
        Get appointment by ID or appointment UID.

        Args:
            db: Database session
            caller: Authenticated caller
            appointment_id: Appointment UUID or human-facing UID
            clock: Time source for the missed view

        Returns:
            Appointment details

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If caller doesn't have access
        """
        appointment = await self._load(db, caller, appointment_id)
        return build_appointment_response(
            appointment, local_now(clock, appointment["clinic_timezone"])
        )

    async def list_clinic_appointments(
        self,
        db: AsyncSession,
        caller: Caller,
        clinic_id: UUID,
        filters: AppointmentFilters,
        clock: Clock,
    ) -> AppointmentListResponse:
        """
        List a clinic's appointments with filtering and pagination.

        Args:
            db: Database session
            caller: Authenticated caller (clinic staff)
            clinic_id: Clinic ID
            filters: Filter and pagination parameters
            clock: Time source for the missed view

        Returns:
            Paginated list of appointments ordered by date and time
        """
        ensure_clinic_staff(caller, clinic_id)

        timezone_name = await fetch_clinic_timezone(db, clinic_id)
        if timezone_name is None:
            raise NotFoundException("Clinic not found", code="CLINIC_NOT_FOUND")
        now_local = local_now(clock, timezone_name)

        # Build where conditions
        conditions = [appointments.c.clinic_id == clinic_id]

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.missed is True:
            conditions.append(missed_condition(now_local))
        elif filters.missed is False:
            conditions.append(not_(missed_condition(now_local)))

        if filters.doctor_id:
            conditions.append(appointments.c.doctor_id == filters.doctor_id)

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.appointment_date:
            conditions.append(appointments.c.appointment_date == filters.appointment_date)

        if filters.from_date:
            conditions.append(appointments.c.appointment_date >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.appointment_date <= filters.to_date)

        if filters.provisional is not None:
            conditions.append(appointments.c.provisional == filters.provisional)

        if filters.appointment_type:
            conditions.append(appointments.c.appointment_type == filters.appointment_type.value)

        if filters.search:
            # Wildcards in user input match literally
            term = filters.search.strip().replace("\\", "\\\\")
            term = term.replace("%", "\\%").replace("_", "\\_")
            conditions.append(appointments.c.appointment_uid.ilike(f"%{term}%", escape="\\"))

        # Count total
        count_stmt = select(func.count()).select_from(appointments).where(and_(*conditions))
        total_result = await db.execute(count_stmt)
        total = total_result.scalar() or 0

        offset = (filters.page - 1) * filters.page_size

        # Get paginated results
        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.appointment_date, appointments.c.appointment_time)
            .limit(filters.page_size)
            .offset(offset)
        )

        result = await db.execute(stmt)
        items = [build_appointment_response(row, now_local) for row in result.mappings().all()]

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    async def list_patient_appointments(
        self,
        db: AsyncSession,
        caller: Caller,
        clock: Clock,
        status: AppointmentStatus | None = None,
    ) -> list[AppointmentResponse]:
        """The calling patient's appointments across all clinics."""
        if not caller.is_patient:
            raise ForbiddenException("Only patients have personal appointment lists")

        conditions = [appointments.c.patient_id == caller.id]
        if status:
            conditions.append(appointments.c.status == status.value)

        stmt = (
            select(appointments, clinics.c.timezone.label("clinic_timezone"))
            .join(clinics, appointments.c.clinic_id == clinics.c.id)
            .where(and_(*conditions))
            .order_by(appointments.c.appointment_date, appointments.c.appointment_time)
        )
        result = await db.execute(stmt)
        return [
            build_appointment_response(row, local_now(clock, row["clinic_timezone"]))
            for row in result.mappings().all()
        ]

    async def transition(
        self,
        db: AsyncSession,
        caller: Caller,
        appointment_id: str | UUID,
        data: StatusTransition,
        clock: Clock,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new status.

        The write is a single UPDATE guarded by the statuses the target may be
        entered from, so of two concurrent transitions only one can apply.

        Args:
            db: Database session
            caller: Authenticated caller
            appointment_id: Appointment UUID or UID
            data: Target status and consent acknowledgement
            clock: Time source

        Returns:
            Updated appointment

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If a patient attempts anything but cancellation
            ValidationException: If consent is missing when starting a consultation
            IllegalTransitionException: If the transition is not allowed
        """
        target = data.status
        if target is AppointmentStatus.CANCELLED:
            return await self.coordinator.cancel(db, caller, appointment_id, clock)

        # Check access and get current state
        appointment = await self._load(db, caller, appointment_id)
        if not caller.is_staff:
            raise ForbiddenException("Only clinic staff may change appointment status")

        ensure_transition(AppointmentStatus(appointment["status"]), target)

        now = clock.now()
        values: dict[str, Any] = {"status": target.value, "updated_at": now}
        if target is AppointmentStatus.IN_PROGRESS:
            if not data.consent_confirmed:
                raise ValidationException(
                    "Patient consent must be confirmed before starting the consultation",
                    code="CONSENT_REQUIRED",
                )
            values["consent_confirmed_at"] = now

        # Only one of two concurrent transitions can match the source statuses
        sources = [s.value for s in allowed_sources(target)]
        row = await self._conditional_update(
            db,
            [appointments.c.id == appointment["id"], appointments.c.status.in_(sources)],
            values,
        )
        if row is None:
            raise await self._classify_failed_update(db, appointment["id"], target.value)

        logger.info(
            "appointment_transitioned",
            appointment_id=str(row["id"]),
            from_status=appointment["status"],
            to_status=target.value,
        )

        return build_appointment_response(row, local_now(clock, appointment["clinic_timezone"]))

    async def confirm(
        self,
        db: AsyncSession,
        caller: Caller,
        appointment_id: str | UUID,
        clock: Clock,
    ) -> AppointmentResponse:
        """
        Confirm a provisional booking.

        Confirming an already confirmed appointment returns it unchanged.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If caller is not staff of the appointment's clinic
            IllegalTransitionException: If the appointment is no longer scheduled
        """
        appointment = await self._load(db, caller, appointment_id)
        ensure_clinic_staff(caller, appointment["clinic_id"])
        now_local = local_now(clock, appointment["clinic_timezone"])

        if appointment["status"] != AppointmentStatus.SCHEDULED.value:
            raise IllegalTransitionException(
                f"Only scheduled appointments can be confirmed (current: {appointment['status']})"
            )
        # Already confirmed
        if not appointment["provisional"]:
            return build_appointment_response(appointment, now_local)

        row = await self._conditional_update(
            db,
            [
                appointments.c.id == appointment["id"],
                appointments.c.status == AppointmentStatus.SCHEDULED.value,
                appointments.c.provisional.is_(True),
            ],
            {"provisional": False, "updated_at": clock.now()},
        )
        # Lost a race with another confirmation
        if row is None:
            current = await fetch_appointment(db, appointment["id"])
            if current is not None and current["status"] == AppointmentStatus.SCHEDULED.value:
                return build_appointment_response(current, now_local)
            raise await self._classify_failed_update(db, appointment["id"], "confirmed")

        logger.info("appointment_confirmed", appointment_id=str(row["id"]))
        return build_appointment_response(row, now_local)

    async def update_details(
        self,
        db: AsyncSession,
        caller: Caller,
        appointment_id: str | UUID,
        data: AppointmentDetailsUpdate,
        clock: Clock,
    ) -> AppointmentResponse:
        """
        Update notes and medical conditions of an open appointment.

        Patients may only edit their own note; clinical fields are staff-only.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If a patient edits clinical fields
            IllegalTransitionException: If the appointment is completed or cancelled
        """
        appointment = await self._load(db, caller, appointment_id)
        now_local = local_now(clock, appointment["clinic_timezone"])

        # Build update values
        update_values = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None
        }
        if caller.is_patient and set(update_values) - {"patient_note"}:
            raise ForbiddenException("Patients may only update their own note")

        if AppointmentStatus(appointment["status"]) not in ACTIVE_STATUSES:
            raise IllegalTransitionException(
                f"Appointment is {appointment['status']} and can no longer be edited"
            )

        # No changes, return current state
        if not update_values:
            return build_appointment_response(appointment, now_local)

        update_values["updated_at"] = clock.now()
        row = await self._conditional_update(
            db,
            [
                appointments.c.id == appointment["id"],
                appointments.c.status.in_([s.value for s in ACTIVE_STATUSES]),
            ],
            update_values,
        )
        if row is None:
            current = await fetch_appointment(db, appointment["id"])
            status = current["status"] if current else appointment["status"]
            raise IllegalTransitionException(
                f"Appointment is {status} and can no longer be edited"
            )

        logger.info(
            "appointment_details_updated",
            appointment_id=str(row["id"]),
            fields=sorted(k for k in update_values if k != "updated_at"),
        )
        return build_appointment_response(row, now_local)
