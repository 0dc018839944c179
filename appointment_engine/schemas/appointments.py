"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from appointment_engine.scheduling.calendar import parse_hhmm


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentType(str, Enum):
    """Appointment type enumeration."""

    IN_PERSON = "in_person"
    VIDEO = "video"


class ReservationRequest(BaseModel):
    """Schema for reserving a slot."""

    clinic_id: UUID
    doctor_id: UUID
    patient_id: UUID | None = Field(
        None,
        description="Required for staff bookings; patients always book for themselves",
    )
    appointment_date: date
    appointment_time: str = Field(..., description="Slot start time, HH:MM")
    appointment_type: AppointmentType = AppointmentType.IN_PERSON
    provisional: bool = False
    patient_note: str | None = Field(None, max_length=1000)
    medical_conditions: list[str] = Field(default_factory=list, max_length=50)

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Validate HH:MM format."""
        parse_hhmm(v)
        return v


class RescheduleRequest(BaseModel):
    """Schema for moving an appointment to another slot."""

    appointment_date: date
    appointment_time: str = Field(..., description="Slot start time, HH:MM")

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Validate HH:MM format."""
        parse_hhmm(v)
        return v


class StatusTransition(BaseModel):
    """Schema for an appointment status change."""

    status: AppointmentStatus
    consent_confirmed: bool = Field(
        False,
        description="Staff acknowledgement of patient consent, required to start a consultation",
    )


class AppointmentDetailsUpdate(BaseModel):
    """Schema for updating clinical details of an open appointment."""

    medical_conditions: list[str] | None = Field(None, max_length=50)
    notes: str | None = Field(None, max_length=2000)
    patient_note: str | None = Field(None, max_length=1000)

    @field_validator("medical_conditions")
    @classmethod
    def strip_conditions(cls, v: list[str] | None) -> list[str] | None:
        """Drop blank entries, keeping "name" or "name: value" strings."""
        if v is None:
            return v
        return [item.strip() for item in v if item and item.strip()]


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    appointment_uid: str
    clinic_id: UUID
    doctor_id: UUID
    patient_id: UUID
    doctor_name: str | None = None
    appointment_date: date
    appointment_time: str
    appointment_type: AppointmentType
    status: AppointmentStatus
    display_status: str
    is_missed: bool
    provisional: bool
    patient_note: str | None = None
    notes: str | None = None
    medical_conditions: list[str] = Field(default_factory=list)
    consent_confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    missed: bool | None = None
    doctor_id: UUID | None = None
    patient_id: UUID | None = None
    appointment_date: date | None = None
    from_date: date | None = None
    to_date: date | None = None
    provisional: bool | None = None
    appointment_type: AppointmentType | None = None
    search: str | None = Field(None, max_length=32, description="Appointment UID fragment")
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class BookedSlotsResponse(BaseModel):
    """Slot start times currently held for a doctor on a date."""

    doctor_id: UUID
    appointment_date: date
    booked: list[str]
