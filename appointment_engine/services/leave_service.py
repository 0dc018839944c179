"""Doctor leave service."""

from datetime import date, timedelta
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.config import settings
from appointment_engine.core.clock import Clock
from appointment_engine.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from appointment_engine.models.doctor_leaves import doctor_leaves
from appointment_engine.scheduling.calendar import weekday_name
from appointment_engine.schemas.auth import Caller
from appointment_engine.schemas.leaves import LeaveCreate, LeaveResponse
from appointment_engine.services.access import ensure_clinic_staff
from appointment_engine.services.availability_service import AvailabilityService

logger = structlog.get_logger()


class LeaveService:
    """Marks doctors unavailable on whole calendar dates."""

    def __init__(self, availability: AvailabilityService | None = None):
        """Initialize service with the availability service whose cache it invalidates."""
        self.availability = availability or AvailabilityService()

    async def _load_doctor(self, db: AsyncSession, doctor_id: UUID) -> dict:
        context = await self.availability.get_doctor_context(db, doctor_id)
        if context is None:
            raise NotFoundException("Doctor not found", code="DOCTOR_NOT_FOUND")
        return context

    async def create_leaves(
        self,
        db: AsyncSession,
        caller: Caller,
        doctor_id: UUID,
        data: LeaveCreate,
        clock: Clock,
    ) -> list[LeaveResponse]:
        """
        Put a doctor on leave for a date or an inclusive date range.

        Dates already on leave are skipped. Existing appointments on those
        dates are left untouched; only future slot generation is affected.

        Args:
            db: Database session
            caller: Authenticated caller (clinic staff)
            doctor_id: Doctor ID
            data: Leave range and optional reason
            clock: Time source for the created_at stamp

        Returns:
            Newly created leave entries

        Raises:
            NotFoundException: If the doctor does not exist
            ForbiddenException: If the caller is not staff of the doctor's clinic
            ValidationException: If the range is longer than allowed
            ConflictException: If a concurrent request created the same dates
        """
        doctor = await self._load_doctor(db, doctor_id)
        ensure_clinic_staff(caller, doctor["clinic_id"])

        end_date = data.end_date or data.start_date
        span = (end_date - data.start_date).days + 1
        if span > settings.max_leave_range_days:
            raise ValidationException(
                f"Leave range may not exceed {settings.max_leave_range_days} days",
                code="LEAVE_RANGE_TOO_LONG",
            )

        # Skip dates already on leave
        existing_result = await db.execute(
            select(doctor_leaves.c.leave_date).where(
                doctor_leaves.c.doctor_id == doctor_id,
                doctor_leaves.c.leave_date.between(data.start_date, end_date),
            )
        )
        existing = set(existing_result.scalars().all())

        now = clock.now()
        rows = []
        for offset in range(span):
            leave_date = data.start_date + timedelta(days=offset)
            if leave_date in existing:
                continue
            rows.append(
                {
                    "id": uuid4(),
                    "doctor_id": doctor_id,
                    "clinic_id": doctor["clinic_id"],
                    "leave_date": leave_date,
                    "day": weekday_name(leave_date),
                    "reason": data.reason,
                    "created_at": now,
                }
            )

        if not rows:
            return []

        try:
            await db.execute(insert(doctor_leaves), rows)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise ConflictException(
                "Leave already recorded for one of these dates",
                code="LEAVE_EXISTS",
            ) from e

        self.availability.invalidate_slots(doctor_id)
        logger.info(
            "leave_created",
            doctor_id=str(doctor_id),
            start_date=data.start_date.isoformat(),
            end_date=end_date.isoformat(),
            created=len(rows),
        )

        return [LeaveResponse.model_validate(row) for row in rows]

    async def list_leaves(
        self,
        db: AsyncSession,
        doctor_id: UUID,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[LeaveResponse]:
        """List a doctor's leave entries ordered by date."""
        await self._load_doctor(db, doctor_id)

        conditions = [doctor_leaves.c.doctor_id == doctor_id]
        if from_date:
            conditions.append(doctor_leaves.c.leave_date >= from_date)
        if to_date:
            conditions.append(doctor_leaves.c.leave_date <= to_date)

        result = await db.execute(
            select(doctor_leaves).where(and_(*conditions)).order_by(doctor_leaves.c.leave_date)
        )
        return [LeaveResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def delete_leave(
        self,
        db: AsyncSession,
        caller: Caller,
        doctor_id: UUID,
        leave_id: UUID,
    ) -> None:
        """
        Remove a leave entry, making the date bookable again.

        Raises:
            NotFoundException: If the doctor or leave entry does not exist
            ForbiddenException: If the caller is not staff of the doctor's clinic
        """
        doctor = await self._load_doctor(db, doctor_id)
        ensure_clinic_staff(caller, doctor["clinic_id"])

        result = await db.execute(
            delete(doctor_leaves)
            .where(
                doctor_leaves.c.id == leave_id,
                doctor_leaves.c.doctor_id == doctor_id,
            )
            .returning(doctor_leaves.c.leave_date)
        )
        leave_date = result.scalar_one_or_none()
        if leave_date is None:
            await db.rollback()
            raise NotFoundException("Leave entry not found", code="LEAVE_NOT_FOUND")
        await db.commit()

        self.availability.invalidate_slots(doctor_id)
        logger.info(
            "leave_deleted",
            doctor_id=str(doctor_id),
            leave_date=leave_date.isoformat(),
        )
