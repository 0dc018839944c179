"""Pure scheduling logic: availability, slots and appointment lifecycle."""

from appointment_engine.scheduling.calendar import (
    OpenInterval,
    format_hhmm,
    parse_hhmm,
    resolve_open_intervals,
    weekday_name,
)
from appointment_engine.scheduling.slots import generate_slots

__all__ = [
    "OpenInterval",
    "format_hhmm",
    "generate_slots",
    "parse_hhmm",
    "resolve_open_intervals",
    "weekday_name",
]
