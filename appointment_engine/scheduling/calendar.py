"""Weekly availability resolution.

A doctor's week is described by a template keyed by weekday name, each day
holding up to two named windows::

    {"Monday": {"morning": {"start": "09:00", "end": "13:00", "is_off": false},
                "evening": {"start": "16:00", "end": "19:00", "is_off": true}}}

The list form used by older clinic records, ``[{"day": "Monday", "morning": ...}]``,
is accepted as well. Resolution never raises: anything unreadable yields no
availability for the day.
"""

from collections.abc import Mapping
from datetime import date
from typing import Any, NamedTuple

import structlog

logger = structlog.get_logger()

WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
WINDOW_NAMES = ("morning", "evening")


class OpenInterval(NamedTuple):
    """Half-open ``[start, end)`` interval in minutes since midnight."""

    start: int
    end: int


class MalformedTemplateError(ValueError):
    """Raised internally when a weekly template cannot be interpreted."""


def parse_hhmm(value: str) -> int:
    """Convert ``HH:MM`` to minutes since midnight."""
    if not isinstance(value, str) or len(value) != 5 or value[2] != ":":
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hours, minutes = value[:2], value[3:]
    if not (hours.isdigit() and minutes.isdigit()):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    h, m = int(hours), int(minutes)
    if h > 23 or m > 59:
        raise ValueError(f"Time out of range: {value!r}")
    return h * 60 + m


def format_hhmm(minutes: int) -> str:
    """Convert minutes since midnight to ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def weekday_name(target_date: date) -> str:
    """English weekday name of a date, e.g. ``"Monday"``."""
    return WEEKDAY_NAMES[target_date.weekday()]


def _day_entry(template: Any, day: str) -> Any:
    if isinstance(template, Mapping):
        for key, value in template.items():
            if isinstance(key, str) and key.lower() == day.lower():
                return value
        return None
    if isinstance(template, list):
        for item in template:
            if isinstance(item, Mapping) and str(item.get("day", "")).lower() == day.lower():
                return item
        return None
    raise MalformedTemplateError("Availability template must be a mapping or a list")


def _window_interval(window: Any) -> OpenInterval | None:
    if window is None:
        return None
    if not isinstance(window, Mapping):
        raise MalformedTemplateError("Window must be a mapping")
    if window.get("is_off"):
        return None
    try:
        start = parse_hhmm(window["start"])
        end = parse_hhmm(window["end"])
    except (KeyError, ValueError) as e:
        raise MalformedTemplateError(str(e)) from e
    if start >= end:
        raise MalformedTemplateError("Window start must be before end")
    return OpenInterval(start, end)


def resolve_open_intervals(
    template: Any,
    target_date: date,
    on_leave: bool = False,
) -> list[OpenInterval]:
    """
    Resolve the open intervals of a weekly template for one calendar date.

    Args:
        template: Weekly availability template (mapping or list form)
        target_date: Calendar date to resolve
        on_leave: Whether a leave entry exists for the doctor on that date

    Returns:
        Open intervals ordered by start time; empty when on leave, when the
        day has no windows, or when the template is malformed
    """
    if on_leave or template is None:
        return []

    day = weekday_name(target_date)
    try:
        entry = _day_entry(template, day)
        if entry is None:
            return []
        if not isinstance(entry, Mapping):
            raise MalformedTemplateError("Day entry must be a mapping")
        intervals = [
            interval
            for interval in (_window_interval(entry.get(name)) for name in WINDOW_NAMES)
            if interval is not None
        ]
    except MalformedTemplateError as e:
        logger.warning(
            "availability_template_malformed",
            day=day,
            date=target_date.isoformat(),
            error=str(e),
        )
        return []

    return sorted(intervals)
