"""Doctor leave endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from appointment_engine.dependencies import CacheManagerDep, ClockDep, CurrentCaller, DatabaseSession
from appointment_engine.schemas.leaves import LeaveCreate, LeaveResponse
from appointment_engine.services.availability_service import AvailabilityService
from appointment_engine.services.leave_service import LeaveService

router = APIRouter()


@router.post(
    "/{doctor_id}/leaves",
    response_model=list[LeaveResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Mark doctor on leave",
)
async def create_leaves(
    doctor_id: UUID,
    data: LeaveCreate,
    caller: CurrentCaller,
    db: DatabaseSession,
    cache: CacheManagerDep,
    clock: ClockDep,
) -> list[LeaveResponse]:
    """
    Put a doctor on leave for a date or an inclusive date range.

    Args:
        doctor_id: Doctor ID
        data: Leave range and reason
        caller: Authenticated caller (clinic staff)
        db: Database session
        cache: Slot cache to invalidate
        clock: Time source

    Returns:
        Newly created leave entries; dates already on leave are skipped
    """
    service = LeaveService(AvailabilityService(cache))
    return await service.create_leaves(db, caller, doctor_id, data, clock)


@router.get(
    "/{doctor_id}/leaves",
    response_model=list[LeaveResponse],
    status_code=status.HTTP_200_OK,
    summary="List doctor leave",
)
async def list_leaves(
    doctor_id: UUID,
    caller: CurrentCaller,
    db: DatabaseSession,
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
) -> list[LeaveResponse]:
    """Leave entries of a doctor, optionally bounded by date."""
    return await LeaveService().list_leaves(db, doctor_id, from_date, to_date)


@router.delete(
    "/{doctor_id}/leaves/{leave_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a leave entry",
)
async def delete_leave(
    doctor_id: UUID,
    leave_id: UUID,
    caller: CurrentCaller,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> None:
    """Remove a leave entry so the date becomes bookable again."""
    service = LeaveService(AvailabilityService(cache))
    await service.delete_leave(db, caller, doctor_id, leave_id)
