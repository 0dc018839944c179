"""Time source abstraction.

Slot generation and past-date checks depend on "now"; the clock is injected
so that those paths stay deterministic under test.
"""

from datetime import UTC, datetime, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from appointment_engine.config import settings

logger = structlog.get_logger()


class Clock(Protocol):
    """Anything that can tell the current instant."""

    def now(self) -> datetime:
        """Return the current time as an aware datetime."""
        ...


class SystemClock:
    """Clock backed by the system time."""

    def now(self) -> datetime:
        """Return the current UTC time."""
        return datetime.now(UTC)


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the zone for an IANA name, falling back to the configured default."""
    for candidate in (name, settings.default_timezone):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("unknown_timezone", timezone=candidate)
    return UTC


def local_now(clock: Clock, timezone_name: str | None) -> datetime:
    """Current wall-clock time in the given clinic timezone."""
    return clock.now().astimezone(resolve_timezone(timezone_name))
