"""Doctor schedule endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from appointment_engine.dependencies import (
    CacheManagerDep,
    ClockDep,
    CurrentCaller,
    DatabaseSession,
)
from appointment_engine.schemas.availability import ScheduleResponse, ScheduleUpdate
from appointment_engine.services.availability_service import AvailabilityService

router = APIRouter()


@router.get(
    "/{doctor_id}/schedule",
    response_model=ScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Get doctor schedule",
)
async def get_schedule(
    doctor_id: UUID,
    caller: CurrentCaller,
    db: DatabaseSession,
) -> ScheduleResponse:
    """Effective weekly template and slot duration of a doctor."""
    return await AvailabilityService().get_schedule(db, doctor_id)


@router.put(
    "/{doctor_id}/schedule",
    response_model=ScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Update doctor schedule",
)
async def update_schedule(
    doctor_id: UUID,
    data: ScheduleUpdate,
    caller: CurrentCaller,
    db: DatabaseSession,
    cache: CacheManagerDep,
    clock: ClockDep,
) -> ScheduleResponse:
    """
    Replace a doctor's weekly template and/or slot duration.

    Omitted fields are left unchanged; explicit nulls fall back to the
    clinic defaults. Only staff of the doctor's clinic may do this.

    Args:
        doctor_id: Doctor ID
        data: Schedule fields to replace
        caller: Authenticated caller
        db: Database session
        cache: Slot cache to invalidate
        clock: Time source

    Returns:
        Updated effective schedule
    """
    service = AvailabilityService(cache)
    return await service.update_schedule(db, caller, doctor_id, data, clock)
