"""Appointment lifecycle rules.

``scheduled -> in-progress -> completed``, with ``cancelled`` reachable from
either open state. ``missed`` is a read-only view of a ``scheduled``
appointment whose start has already passed; it is never stored.
"""

from datetime import date, datetime, time

from appointment_engine.core.exceptions import IllegalTransitionException
from appointment_engine.scheduling.calendar import parse_hhmm
from appointment_engine.schemas.appointments import AppointmentStatus

MISSED = "missed"

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.IN_PROGRESS: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

# Statuses that occupy a slot; also the states in which details may change
ACTIVE_STATUSES = frozenset({AppointmentStatus.SCHEDULED, AppointmentStatus.IN_PROGRESS})


def allowed_sources(target: AppointmentStatus) -> frozenset[AppointmentStatus]:
    """Statuses from which ``target`` may be entered."""
    return frozenset(source for source, targets in ALLOWED_TRANSITIONS.items() if target in targets)


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """Check whether ``current -> target`` is a valid transition."""
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    """Raise IllegalTransitionException unless ``current -> target`` is valid."""
    if not can_transition(current, target):
        raise IllegalTransitionException(
            f"Cannot change appointment status from '{current.value}' to '{target.value}'"
        )


def is_missed(
    status: AppointmentStatus | str,
    appointment_date: date,
    appointment_time: str,
    now_local: datetime,
) -> bool:
    """A scheduled appointment whose start is strictly before ``now_local``."""
    if AppointmentStatus(status) is not AppointmentStatus.SCHEDULED:
        return False
    hours, minutes = divmod(parse_hhmm(appointment_time), 60)
    start = datetime.combine(appointment_date, time(hours, minutes))
    return start < now_local.replace(tzinfo=None)


def display_status(
    status: AppointmentStatus | str,
    appointment_date: date,
    appointment_time: str,
    now_local: datetime,
) -> str:
    """Stored status, or ``missed`` for an overdue scheduled appointment."""
    if is_missed(status, appointment_date, appointment_time, now_local):
        return MISSED
    return AppointmentStatus(status).value
