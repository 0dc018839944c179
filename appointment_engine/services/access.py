"""Caller authorization checks shared by the scheduling services."""

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from appointment_engine.core.exceptions import ForbiddenException
from appointment_engine.schemas.auth import Caller


def ensure_clinic_staff(caller: Caller, clinic_id: UUID) -> None:
    """Require a staff member of the given clinic."""
    if not caller.is_staff or caller.clinic_id != clinic_id:
        raise ForbiddenException("Only staff of this clinic may perform this action")


def ensure_can_access(caller: Caller, appointment: Mapping[str, Any]) -> None:
    """Require clinic staff or the patient the appointment belongs to."""
    if caller.is_staff and caller.clinic_id == appointment["clinic_id"]:
        return
    if caller.is_patient and caller.id == appointment["patient_id"]:
        return
    raise ForbiddenException("Access denied to this appointment")
