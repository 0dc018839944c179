"""Discretisation of open intervals into bookable slot start times."""

from collections.abc import Iterable
from datetime import date, datetime

from appointment_engine.scheduling.calendar import OpenInterval, format_hhmm


def generate_slots(
    intervals: Iterable[OpenInterval],
    duration_minutes: int,
    target_date: date,
    now_local: datetime | None = None,
) -> list[str]:
    """
    Generate ``HH:MM`` slot start times for a date.

    Each interval ``[start, end)`` yields ``start, start + duration, ...`` for as
    long as the whole slot fits; a boundary equal to ``end`` is never emitted.
    When ``now_local`` (wall-clock time in the clinic timezone) falls on
    ``target_date`` only slots starting strictly after it are kept; for a date
    already in the past nothing is returned.

    Args:
        intervals: Open intervals for the date
        duration_minutes: Slot length in minutes
        target_date: Date the slots belong to
        now_local: Current time in the clinic timezone, if past filtering applies

    Returns:
        Slot start times in ascending order

    Raises:
        ValueError: If ``duration_minutes`` is not positive
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")

    cutoff: int | None = None
    if now_local is not None:
        today = now_local.date()
        if target_date < today:
            return []
        if target_date == today:
            cutoff = now_local.hour * 60 + now_local.minute

    starts: set[int] = set()
    for interval in intervals:
        slot = interval.start
        while slot + duration_minutes <= interval.end:
            if cutoff is None or slot > cutoff:
                starts.add(slot)
            slot += duration_minutes

    return [format_hhmm(start) for start in sorted(starts)]
