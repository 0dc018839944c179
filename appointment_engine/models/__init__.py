"""Database models."""

from appointment_engine.models.appointments import appointments
from appointment_engine.models.clinics import clinics
from appointment_engine.models.doctor_leaves import doctor_leaves
from appointment_engine.models.doctors import doctors
from appointment_engine.models.metadata import metadata
from appointment_engine.models.patients import patients

__all__ = [
    "appointments",
    "clinics",
    "doctor_leaves",
    "doctors",
    "metadata",
    "patients",
]
