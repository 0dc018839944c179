"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from appointment_engine.dependencies import ClockDep, CurrentCaller, DatabaseSession
from appointment_engine.schemas.appointments import (
    AppointmentDetailsUpdate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentType,
    RescheduleRequest,
    ReservationRequest,
    StatusTransition,
)
from appointment_engine.services.appointment_service import AppointmentService
from appointment_engine.services.booking_service import BookingLedger
from appointment_engine.services.reschedule_service import RescheduleCoordinator

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reserve a slot",
)
async def reserve_appointment(
    data: ReservationRequest,
    caller: CurrentCaller,
    db: DatabaseSession,
    clock: ClockDep,
) -> AppointmentResponse:
    """
    Reserve a doctor's slot and create the appointment.

    Patients book for themselves and their bookings start provisional.
    A slot already held by another active appointment yields 409.

    Args:
        data: Reservation request
        caller: Authenticated caller
        db: Database session
        clock: Time source

    Returns:
        Created appointment
    """
    return await BookingLedger().reserve(db, caller, data, clock)


@router.get(
    "/mine",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    summary="List my appointments",
)
async def list_my_appointments(
    caller: CurrentCaller,
    db: DatabaseSession,
    clock: ClockDep,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
) -> list[AppointmentResponse]:
    """Appointments of the authenticated patient ordered by date and time."""
    return await AppointmentService().list_patient_appointments(db, caller, clock, status_filter)


@router.get(
    "/clinic/{clinic_id}",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List clinic appointments",
)
async def list_clinic_appointments(
    clinic_id: UUID,
    caller: CurrentCaller,
    db: DatabaseSession,
    clock: ClockDep,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    missed: bool | None = Query(None, description="Only (or no) overdue scheduled appointments"),
    doctor_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
    appointment_date: date | None = Query(None, alias="date"),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    provisional: bool | None = Query(None),
    appointment_type: AppointmentType | None = Query(None),
    search: str | None = Query(None, max_length=32),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List a clinic's appointments with filtering.

    Args:
        clinic_id: Clinic ID
        caller: Authenticated caller (clinic staff)
        db: Database session
        clock: Time source for the missed view
        status_filter: Filter by stored status
        missed: Filter by the derived missed view
        doctor_id: Filter by doctor ID
        patient_id: Filter by patient ID
        appointment_date: Filter by exact date
        from_date: Earliest date, inclusive
        to_date: Latest date, inclusive
        provisional: Filter by provisional flag
        appointment_type: Filter by appointment type
        search: Appointment UID fragment
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        status=status_filter,
        missed=missed,
        doctor_id=doctor_id,
        patient_id=patient_id,
        appointment_date=appointment_date,
        from_date=from_date,
        to_date=to_date,
        provisional=provisional,
        appointment_type=appointment_type,
        search=search,
        page=page,
        page_size=page_size,
    )
    return await AppointmentService().list_clinic_appointments(db, caller, clinic_id, filters, clock)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment",
)
async def get_appointment(
    appointment_id: str,
    caller: CurrentCaller,
    db: DatabaseSession,
    clock: ClockDep,
) -> AppointmentResponse:
    """Get an appointment by UUID or appointment UID."""
    return await AppointmentService().get_appointment(db, caller, appointment_id, clock)


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Change appointment status",
)
async def transition_appointment(
    appointment_id: str,
    data: StatusTransition,
    caller: CurrentCaller,
    db: DatabaseSession,
    clock: ClockDep,
) -> AppointmentResponse:
    """
    Move an appointment through its lifecycle.

    Args:
        appointment_id: Appointment UUID or UID
        data: Target status; starting a consultation requires consent
        caller: Authenticated caller
        db: Database session
        clock: Time source

    Returns:
        Updated appointment
    """
    return await AppointmentService().transition(db, caller, appointment_id, data, clock)


@router.patch(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: str,
    data: RescheduleRequest,
    caller: CurrentCaller,
    db: DatabaseSession,
    clock: ClockDep,
) -> AppointmentResponse:
    """Move a scheduled appointment to another slot of the same doctor."""
    return await RescheduleCoordinator().reschedule(db, caller, appointment_id, data, clock)


@router.patch(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: str,
    caller: CurrentCaller,
    db: DatabaseSession,
    clock: ClockDep,
) -> AppointmentResponse:
    """Cancel a scheduled or in-progress appointment, freeing its slot."""
    return await RescheduleCoordinator().cancel(db, caller, appointment_id, clock)


@router.patch(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Confirm provisional booking",
)
async def confirm_appointment(
    appointment_id: str,
    caller: CurrentCaller,
    db: DatabaseSession,
    clock: ClockDep,
) -> AppointmentResponse:
    """Confirm a provisional booking made by a patient."""
    return await AppointmentService().confirm(db, caller, appointment_id, clock)


@router.patch(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Update appointment details",
)
async def update_appointment_details(
    appointment_id: str,
    data: AppointmentDetailsUpdate,
    caller: CurrentCaller,
    db: DatabaseSession,
    clock: ClockDep,
) -> AppointmentResponse:
    """
    Update medical conditions and notes of an open appointment.

    Args:
        appointment_id: Appointment UUID or UID
        data: Fields to update
        caller: Authenticated caller
        db: Database session
        clock: Time source

    Returns:
        Updated appointment
    """
    return await AppointmentService().update_details(db, caller, appointment_id, data, clock)
