"""Tests for the appointment state machine and the derived missed view."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from appointment_engine.core.exceptions import ConflictException, IllegalTransitionException
from appointment_engine.scheduling.calendar import OpenInterval
from appointment_engine.scheduling.lifecycle import (
    MISSED,
    allowed_sources,
    can_transition,
    display_status,
    ensure_transition,
    is_missed,
)
from appointment_engine.scheduling.slots import generate_slots
from appointment_engine.schemas.appointments import AppointmentStatus as S

NOW = datetime(2026, 3, 2, 14, 5, tzinfo=ZoneInfo("Asia/Kolkata"))


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (S.SCHEDULED, S.IN_PROGRESS),
        (S.SCHEDULED, S.CANCELLED),
        (S.IN_PROGRESS, S.COMPLETED),
        (S.IN_PROGRESS, S.CANCELLED),
    ],
)
def test_allowed_transitions(current, target) -> None:
    """Test permitted status transitions."""
    assert can_transition(current, target)
    ensure_transition(current, target)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (S.SCHEDULED, S.COMPLETED),
        (S.SCHEDULED, S.SCHEDULED),
        (S.IN_PROGRESS, S.SCHEDULED),
        (S.COMPLETED, S.SCHEDULED),
        (S.COMPLETED, S.CANCELLED),
        (S.CANCELLED, S.SCHEDULED),
        (S.CANCELLED, S.IN_PROGRESS),
    ],
)
def test_rejected_transitions(current, target) -> None:
    """Test rejected transitions."""
    assert not can_transition(current, target)
    with pytest.raises(IllegalTransitionException):
        ensure_transition(current, target)


def test_illegal_transition_is_a_conflict() -> None:
    """Test illegal transition is a conflict."""
    with pytest.raises(ConflictException) as exc_info:
        ensure_transition(S.COMPLETED, S.IN_PROGRESS)
    assert exc_info.value.status_code == 409
    assert exc_info.value.code == "ILLEGAL_TRANSITION"


def test_allowed_sources() -> None:
    """Test source statuses for each target."""
    assert allowed_sources(S.CANCELLED) == {S.SCHEDULED, S.IN_PROGRESS}
    assert allowed_sources(S.COMPLETED) == {S.IN_PROGRESS}
    assert allowed_sources(S.SCHEDULED) == frozenset()


def test_scheduled_in_the_past_is_missed() -> None:
    """Test scheduled in the past is missed."""
    assert is_missed(S.SCHEDULED, date(2026, 3, 1), "18:00", NOW)
    assert is_missed("scheduled", date(2026, 3, 2), "14:00", NOW)
    assert display_status(S.SCHEDULED, date(2026, 3, 2), "09:00", NOW) == MISSED


def test_scheduled_in_the_future_is_not_missed() -> None:
    """Test scheduled in the future is not missed."""
    assert not is_missed(S.SCHEDULED, date(2026, 3, 2), "14:30", NOW)
    assert not is_missed(S.SCHEDULED, date(2026, 3, 3), "09:00", NOW)
    assert display_status(S.SCHEDULED, date(2026, 3, 3), "09:00", NOW) == "scheduled"


def test_slot_is_missed_once_its_minute_has_started() -> None:
    """Test a slot counts as missed as soon as the clock is past HH:MM:00."""
    started = datetime(2026, 3, 2, 14, 0, 30, tzinfo=ZoneInfo("Asia/Kolkata"))
    on_the_minute = started.replace(second=0)

    assert is_missed(S.SCHEDULED, date(2026, 3, 2), "14:00", started)
    assert not is_missed(S.SCHEDULED, date(2026, 3, 2), "14:00", on_the_minute)
    assert not is_missed(S.SCHEDULED, date(2026, 3, 2), "14:01", started)


def test_slot_leaves_listing_when_it_becomes_missed() -> None:
    """Test no slot is neither bookable nor missed at a sub-minute instant."""
    now = datetime(2026, 3, 2, 14, 0, 30, tzinfo=ZoneInfo("Asia/Kolkata"))
    slots = generate_slots([OpenInterval(13 * 60, 15 * 60)], 30, date(2026, 3, 2), now)

    assert "14:00" not in slots
    assert is_missed(S.SCHEDULED, date(2026, 3, 2), "14:00", now)
    assert not any(is_missed(S.SCHEDULED, date(2026, 3, 2), slot, now) for slot in slots)


@pytest.mark.parametrize("status", [S.IN_PROGRESS, S.COMPLETED, S.CANCELLED])
def test_only_scheduled_can_be_missed(status) -> None:
    """Test only scheduled can be missed."""
    assert not is_missed(status, date(2026, 3, 1), "09:00", NOW)
    assert display_status(status, date(2026, 3, 1), "09:00", NOW) == status.value
