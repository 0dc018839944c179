"""Authentication schemas."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class CallerRole(str, Enum):
    """Kinds of authenticated callers."""

    PATIENT = "patient"
    STAFF = "staff"


class Caller(BaseModel):
    """Identity extracted from a verified access token."""

    id: UUID
    role: CallerRole
    clinic_id: UUID | None = None

    @property
    def is_staff(self) -> bool:
        """Check if the caller is a clinic staff member."""
        return self.role is CallerRole.STAFF

    @property
    def is_patient(self) -> bool:
        """Check if the caller is a patient."""
        return self.role is CallerRole.PATIENT
