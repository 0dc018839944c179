"""Slot listing endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from appointment_engine.dependencies import CacheManagerDep, ClockDep, CurrentCaller, DatabaseSession
from appointment_engine.schemas.appointments import BookedSlotsResponse
from appointment_engine.schemas.availability import SlotListResponse
from appointment_engine.services.availability_service import AvailabilityService
from appointment_engine.services.booking_service import BookingLedger

router = APIRouter()


@router.get(
    "/{doctor_id}/slots",
    response_model=SlotListResponse,
    status_code=status.HTTP_200_OK,
    summary="List bookable slots",
)
async def list_slots(
    doctor_id: UUID,
    caller: CurrentCaller,
    db: DatabaseSession,
    cache: CacheManagerDep,
    clock: ClockDep,
    target_date: date = Query(..., alias="date", description="Calendar date, YYYY-MM-DD"),
) -> SlotListResponse:
    """
    List the slot start times a doctor offers on a date.

    Slots that have already started (in the clinic's timezone) are omitted.
    Booked slots are still listed; see the booked-slots endpoint.

    Args:
        doctor_id: Doctor ID
        caller: Authenticated caller
        db: Database session
        cache: Slot cache
        clock: Time source
        target_date: Date to list

    Returns:
        Ordered slot list
    """
    service = AvailabilityService(cache)
    return await service.get_slots(db, doctor_id, target_date, clock)


@router.get(
    "/{doctor_id}/booked-slots",
    response_model=BookedSlotsResponse,
    status_code=status.HTTP_200_OK,
    summary="List held slots",
)
async def list_booked_slots(
    doctor_id: UUID,
    caller: CurrentCaller,
    db: DatabaseSession,
    target_date: date = Query(..., alias="date", description="Calendar date, YYYY-MM-DD"),
) -> BookedSlotsResponse:
    """Slot start times held by scheduled or in-progress appointments."""
    return await BookingLedger().get_booked_slots(db, doctor_id, target_date)
