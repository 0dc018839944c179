"""Availability and slot service."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.config import settings
from appointment_engine.core.clock import Clock, local_now
from appointment_engine.core.exceptions import NotFoundException, ValidationException
from appointment_engine.core.redis_client import CacheManager
from appointment_engine.models.clinics import clinics
from appointment_engine.models.doctor_leaves import doctor_leaves
from appointment_engine.models.doctors import doctors
from appointment_engine.scheduling.calendar import OpenInterval, resolve_open_intervals
from appointment_engine.scheduling.slots import generate_slots
from appointment_engine.schemas.auth import Caller
from appointment_engine.schemas.availability import (
    ScheduleResponse,
    ScheduleUpdate,
    SlotListResponse,
)
from appointment_engine.services.access import ensure_clinic_staff

logger = structlog.get_logger()


class AvailabilityService:
    """Resolves doctor availability and the bookable slots derived from it."""

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager

    @staticmethod
    def _slots_cache_key(doctor_id: UUID, target_date: date) -> str:
        """Generate cache key for a doctor's slot list."""
        return f"slots:{doctor_id}:{target_date.isoformat()}"

    def invalidate_slots(self, doctor_id: UUID) -> None:
        """Drop every cached slot list of a doctor."""
        if self.cache:
            self.cache.delete_pattern(f"slots:{doctor_id}:*")

    async def get_doctor_context(self, db: AsyncSession, doctor_id: UUID) -> dict[str, Any] | None:
        """Load a doctor with the clinic settings its schedule falls back to."""
        stmt = (
            select(
                doctors.c.id,
                doctors.c.clinic_id,
                doctors.c.full_name,
                doctors.c.status,
                doctors.c.availability,
                doctors.c.slot_duration_minutes,
                clinics.c.timezone,
                clinics.c.default_availability.label("clinic_availability"),
                clinics.c.slot_duration_minutes.label("clinic_slot_duration_minutes"),
            )
            .join(clinics, doctors.c.clinic_id == clinics.c.id)
            .where(doctors.c.id == doctor_id)
        )
        result = await db.execute(stmt)
        row = result.mappings().first()
        return dict(row) if row else None

    @staticmethod
    def effective_template(context: dict[str, Any]) -> Any:
        """Doctor's own weekly template, or the clinic default."""
        if context["availability"] is not None:
            return context["availability"]
        return context["clinic_availability"]

    @staticmethod
    def effective_duration(context: dict[str, Any]) -> int:
        """Doctor's slot duration, or the clinic default."""
        return (
            context["slot_duration_minutes"]
            or context["clinic_slot_duration_minutes"]
            or settings.default_slot_duration_minutes
        )

    async def is_on_leave(self, db: AsyncSession, doctor_id: UUID, target_date: date) -> bool:
        """Check whether a leave entry exists for the doctor on the date."""
        stmt = select(doctor_leaves.c.id).where(
            doctor_leaves.c.doctor_id == doctor_id,
            doctor_leaves.c.leave_date == target_date,
        )
        result = await db.execute(stmt)
        return result.first() is not None

    async def resolve_for_context(
        self,
        db: AsyncSession,
        context: dict[str, Any],
        target_date: date,
    ) -> list[OpenInterval]:
        """Open intervals for an already loaded doctor context."""
        if context["status"] != "active":
            return []
        on_leave = await self.is_on_leave(db, context["id"], target_date)
        return resolve_open_intervals(self.effective_template(context), target_date, on_leave)

    async def resolve(
        self,
        db: AsyncSession,
        doctor_id: UUID,
        target_date: date,
    ) -> list[OpenInterval]:
        """
        Resolve a doctor's open intervals for a date.

        Leave is an absolute override. An unknown doctor or unreadable
        template yields no intervals rather than an error.

        Args:
            db: Database session
            doctor_id: Doctor ID
            target_date: Calendar date

        Returns:
            Open intervals in minutes since midnight
        """
        context = await self.get_doctor_context(db, doctor_id)
        if context is None:
            return []
        return await self.resolve_for_context(db, context, target_date)

    async def compute_slots(
        self,
        db: AsyncSession,
        context: dict[str, Any],
        target_date: date,
        now_local: datetime,
    ) -> list[str]:
        """
        Compute slots from live availability, bypassing the cache.

        Raises:
            ValidationException: If the configured slot duration is not positive
        """
        intervals = await self.resolve_for_context(db, context, target_date)
        try:
            return generate_slots(intervals, self.effective_duration(context), target_date, now_local)
        except ValueError as e:
            raise ValidationException(
                "Invalid slot duration configured for this doctor",
                code="INVALID_SLOT_DURATION",
            ) from e

    async def get_slots(
        self,
        db: AsyncSession,
        doctor_id: UUID,
        target_date: date,
        clock: Clock,
        use_cache: bool = True,
    ) -> SlotListResponse:
        """
        Get the bookable slot start times for a doctor on a date.

        Args:
            db: Database session
            doctor_id: Doctor ID
            target_date: Calendar date
            clock: Time source for past-slot filtering
            use_cache: Whether a cached slot list may be served

        Returns:
            Ordered slot list

        Raises:
            NotFoundException: If the doctor does not exist
        """
        # Try cache first
        if self.cache and use_cache:
            cached = self.cache.get_json(self._slots_cache_key(doctor_id, target_date))
            if cached:
                logger.debug("slot_cache_hit", doctor_id=str(doctor_id), date=target_date.isoformat())
                return SlotListResponse.model_validate(cached)

        context = await self.get_doctor_context(db, doctor_id)
        if context is None:
            raise NotFoundException("Doctor not found", code="DOCTOR_NOT_FOUND")

        now_local = local_now(clock, context["timezone"])
        slots = await self.compute_slots(db, context, target_date, now_local)

        response = SlotListResponse(
            doctor_id=doctor_id,
            appointment_date=target_date,
            timezone=context["timezone"],
            duration_minutes=self.effective_duration(context),
            slots=slots,
        )

        # Cache the result
        if self.cache:
            self.cache.set_json(
                self._slots_cache_key(doctor_id, target_date),
                response.model_dump(mode="json"),
                ttl=settings.slot_cache_ttl_seconds,
            )

        return response

    def _schedule_response(self, context: dict[str, Any]) -> ScheduleResponse:
        return ScheduleResponse(
            doctor_id=context["id"],
            clinic_id=context["clinic_id"],
            timezone=context["timezone"],
            availability=self.effective_template(context),
            slot_duration_minutes=self.effective_duration(context),
            uses_clinic_availability=context["availability"] is None,
            uses_clinic_duration=context["slot_duration_minutes"] is None,
        )

    async def get_schedule(self, db: AsyncSession, doctor_id: UUID) -> ScheduleResponse:
        """Get a doctor's effective weekly template and slot duration."""
        context = await self.get_doctor_context(db, doctor_id)
        if context is None:
            raise NotFoundException("Doctor not found", code="DOCTOR_NOT_FOUND")
        return self._schedule_response(context)

    async def update_schedule(
        self,
        db: AsyncSession,
        caller: Caller,
        doctor_id: UUID,
        data: ScheduleUpdate,
        clock: Clock,
    ) -> ScheduleResponse:
        """
        Replace a doctor's weekly template and/or slot duration.

        Args:
            db: Database session
            caller: Authenticated caller (clinic staff)
            doctor_id: Doctor ID
            data: Fields to replace; explicit nulls restore the clinic default
            clock: Time source for the updated_at stamp

        Returns:
            Updated effective schedule

        Raises:
            NotFoundException: If the doctor does not exist
            ForbiddenException: If the caller is not staff of the doctor's clinic
            ValidationException: If the slot duration is not positive
        """
        context = await self.get_doctor_context(db, doctor_id)
        if context is None:
            raise NotFoundException("Doctor not found", code="DOCTOR_NOT_FOUND")
        ensure_clinic_staff(caller, context["clinic_id"])

        # Build update values
        fields = data.model_dump(exclude_unset=True)
        update_values: dict[str, Any] = {}

        if "slot_duration_minutes" in fields:
            duration = fields["slot_duration_minutes"]
            if duration is not None and duration <= 0:
                raise ValidationException(
                    "slot_duration_minutes must be a positive number of minutes",
                    code="INVALID_SLOT_DURATION",
                )
            update_values["slot_duration_minutes"] = duration

        if "availability" in fields:
            update_values["availability"] = (
                None
                if data.availability is None
                else {
                    day: schedule.model_dump(exclude_none=True)
                    for day, schedule in data.availability.items()
                }
            )

        if update_values:
            update_values["updated_at"] = clock.now()
            await db.execute(
                update(doctors).where(doctors.c.id == doctor_id).values(**update_values)
            )
            await db.commit()
            self.invalidate_slots(doctor_id)
            logger.info(
                "doctor_schedule_updated",
                doctor_id=str(doctor_id),
                fields=sorted(k for k in update_values if k != "updated_at"),
            )
            context = await self.get_doctor_context(db, doctor_id)

        return self._schedule_response(context)  # type: ignore[arg-type]
