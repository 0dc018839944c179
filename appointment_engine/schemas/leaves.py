"""Doctor leave schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class LeaveCreate(BaseModel):
    """Schema for marking a doctor on leave for one day or an inclusive range."""

    start_date: date
    end_date: date | None = None
    reason: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_range(self) -> "LeaveCreate":
        """Validate end date is not before start date."""
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class LeaveResponse(BaseModel):
    """Schema for a single leave entry."""

    id: UUID
    doctor_id: UUID
    clinic_id: UUID
    leave_date: date
    day: str
    reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
