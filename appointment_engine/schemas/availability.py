"""Schemas for doctor schedules and slot listings."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from appointment_engine.scheduling.calendar import WEEKDAY_NAMES, parse_hhmm


class TimeWindow(BaseModel):
    """One named availability window (morning or evening)."""

    start: str = Field(..., description="HH:MM")
    end: str = Field(..., description="HH:MM")
    is_off: bool = False

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Validate HH:MM format."""
        parse_hhmm(v)
        return v

    @model_validator(mode="after")
    def validate_order(self) -> "TimeWindow":
        """Validate start is before end."""
        if parse_hhmm(self.start) >= parse_hhmm(self.end):
            raise ValueError("Window start must be before end")
        return self


class DaySchedule(BaseModel):
    """Availability windows for a single weekday."""

    morning: TimeWindow | None = None
    evening: TimeWindow | None = None


class ScheduleUpdate(BaseModel):
    """Schema for replacing a doctor's weekly template and slot duration."""

    availability: dict[str, DaySchedule] | None = Field(
        None,
        description="Weekday name to windows; null falls back to the clinic default",
    )
    slot_duration_minutes: int | None = Field(
        None,
        description="Slot length in minutes; null falls back to the clinic default",
    )

    @field_validator("availability")
    @classmethod
    def normalize_days(cls, v: dict[str, DaySchedule] | None) -> dict[str, DaySchedule] | None:
        """Canonicalize weekday names and reject unknown ones."""
        if v is None:
            return v
        canonical = {name.lower(): name for name in WEEKDAY_NAMES}
        normalized: dict[str, DaySchedule] = {}
        for day, schedule in v.items():
            name = canonical.get(day.strip().lower())
            if name is None:
                raise ValueError(f"Unknown weekday: {day}")
            normalized[name] = schedule
        return normalized


class ScheduleResponse(BaseModel):
    """A doctor's effective schedule configuration."""

    doctor_id: UUID
    clinic_id: UUID
    timezone: str
    availability: dict | list | None
    slot_duration_minutes: int
    uses_clinic_availability: bool
    uses_clinic_duration: bool


class SlotListResponse(BaseModel):
    """Bookable slot start times for a doctor on a date."""

    doctor_id: UUID
    appointment_date: date
    timezone: str
    duration_minutes: int
    slots: list[str]
