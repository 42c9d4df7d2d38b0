"""Tests for the attendance window state machine."""

from __future__ import annotations

import dataclasses
import datetime

import pytest

from factories import at, make_session
from verification.config import WindowConfig
from verification.errors import ErrorKind
from verification.types import AttendanceStatus
from verification.window import AttendanceWindowEvaluator, WindowState, default_window


@pytest.fixture
def evaluator() -> AttendanceWindowEvaluator:
    return AttendanceWindowEvaluator(WindowConfig(late_threshold_minutes=10))


@pytest.mark.parametrize(
    "now,state,allowed",
    [
        (at(8, 0), WindowState.EARLY, False),
        (at(8, 44, 59), WindowState.EARLY, False),
        (at(8, 45), WindowState.OPEN, True),
        (at(9, 0), WindowState.OPEN, True),
        (at(9, 10), WindowState.OPEN, True),
        (at(9, 10, 1), WindowState.LATE, True),
        (at(9, 30), WindowState.LATE, True),
        (at(9, 30, 1), WindowState.CLOSED, False),
    ],
)
def test_window_states(evaluator, session, now, state, allowed) -> None:
    decision = evaluator.evaluate(now, session)

    assert decision.state is state
    assert decision.allowed is allowed


def test_early_attempt_reports_minutes_remaining(evaluator, session) -> None:
    decision = evaluator.evaluate(at(8, 44, 30), session)

    assert decision.minutes_remaining == 1
    rejection = decision.as_rejection()
    assert rejection is not None
    assert rejection.kind is ErrorKind.WINDOW_EARLY
    assert rejection.details == {"minutes_remaining": 1}


def test_late_state_reports_whole_minutes_late(evaluator, session) -> None:
    decision = evaluator.evaluate(at(9, 25, 59), session)

    assert decision.state is WindowState.LATE
    assert decision.minutes_late == 25
    assert decision.as_rejection() is None


def test_closed_window_maps_to_window_closed(evaluator, session) -> None:
    rejection = evaluator.evaluate(at(11, 0), session).as_rejection()

    assert rejection is not None
    assert rejection.kind is ErrorKind.WINDOW_CLOSED
    assert not rejection.recoverable


def test_attempt_on_another_day_is_closed(evaluator, session) -> None:
    decision = evaluator.evaluate(at(9, 0, date=datetime.date(2024, 3, 5)), session)

    assert decision.state is WindowState.CLOSED
    assert not decision.allowed


def test_timestamps_are_interpreted_in_session_timezone(evaluator) -> None:
    plus_two = datetime.timezone(datetime.timedelta(hours=2))
    session = make_session()
    now = datetime.datetime(2024, 3, 4, 11, 5, tzinfo=plus_two)

    assert evaluator.evaluate(now, session).state is WindowState.OPEN
    assert evaluator.determine_status(now, session) is AttendanceStatus.LATE


def test_naive_timestamp_is_rejected(evaluator, session) -> None:
    with pytest.raises(ValueError):
        evaluator.evaluate(datetime.datetime(2024, 3, 4, 9, 0), session)


@pytest.mark.parametrize(
    "check_in,status",
    [
        (at(8, 50), AttendanceStatus.PRESENT),
        (at(8, 59), AttendanceStatus.PRESENT),
        (at(9, 0), AttendanceStatus.PRESENT),
        (at(9, 0, 1), AttendanceStatus.LATE),
        (at(9, 5), AttendanceStatus.LATE),
        (at(9, 10), AttendanceStatus.LATE),
        (at(9, 10, 1), AttendanceStatus.ABSENT),
        (at(9, 15), AttendanceStatus.ABSENT),
    ],
)
def test_determine_status(evaluator, session, check_in, status) -> None:
    assert evaluator.determine_status(check_in, session) is status


def test_zero_late_threshold_marks_any_delay_absent(session) -> None:
    evaluator = AttendanceWindowEvaluator(WindowConfig(late_threshold_minutes=0))

    assert evaluator.determine_status(at(9, 0), session) is AttendanceStatus.PRESENT
    assert evaluator.determine_status(at(9, 0, 1), session) is AttendanceStatus.ABSENT


def test_default_window_surrounds_class_time() -> None:
    window = default_window(datetime.time(9, 0), datetime.time(10, 0))

    assert window.start_time == datetime.time(8, 45)
    assert window.end_time == datetime.time(10, 15)


def test_session_without_window_uses_default_window(evaluator) -> None:
    session = dataclasses.replace(make_session(), attendance_window=None)

    assert evaluator.evaluate(at(8, 44), session).state is WindowState.EARLY
    assert evaluator.evaluate(at(8, 45), session).state is WindowState.OPEN
    assert evaluator.evaluate(at(10, 15), session).state is WindowState.LATE
    assert evaluator.evaluate(at(10, 15, 1), session).state is WindowState.CLOSED


def test_default_window_saturates_at_day_boundaries() -> None:
    window = default_window(datetime.time(0, 5), datetime.time(23, 50))

    assert window.start_time == datetime.time.min
    assert window.end_time == datetime.time.max
