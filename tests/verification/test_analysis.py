"""Tests for attendance statistics and summaries."""

from __future__ import annotations

import datetime

import pytest

from verification.analysis import calculate_attendance_stats, stats_from_records, summarize_attendance
from verification.types import AttendanceMethod, AttendanceRecord, AttendanceStatus

DAY = datetime.date(2024, 3, 4)


def _record(offset: int, status: AttendanceStatus, **kwargs) -> AttendanceRecord:
    return AttendanceRecord(
        student_id=kwargs.pop("student_id", "s1"),
        class_id=kwargs.pop("class_id", "CS101"),
        date=DAY + datetime.timedelta(days=offset),
        status=status,
        **kwargs,
    )


P, L, A, E = (
    AttendanceStatus.PRESENT,
    AttendanceStatus.LATE,
    AttendanceStatus.ABSENT,
    AttendanceStatus.EXCUSED,
)


def test_stats_count_late_as_attended() -> None:
    records = [_record(0, P), _record(1, L), _record(2, A), _record(3, E), _record(4, P)]

    stats = calculate_attendance_stats(records, total_sessions=6)

    assert stats.total_sessions == 6
    assert stats.attended_sessions == 3
    assert stats.attendance_rate == 50.0
    assert stats.late_count == 1
    assert stats.absent_count == 1
    assert stats.excused_count == 1


def test_rate_is_rounded_to_two_decimals() -> None:
    stats = calculate_attendance_stats([_record(0, P), _record(1, P)], total_sessions=3)

    assert stats.attendance_rate == 66.67


def test_zero_sessions_gives_zero_rate() -> None:
    assert calculate_attendance_stats([], total_sessions=0).attendance_rate == 0.0


def test_current_streak_counts_back_from_latest_record() -> None:
    records = [_record(0, P), _record(1, P), _record(2, P), _record(3, A), _record(4, L), _record(5, P)]

    stats = calculate_attendance_stats(reversed(records), total_sessions=6)

    assert stats.current_streak == 2
    assert stats.longest_streak == 3


def test_streak_broken_by_latest_absence_is_zero() -> None:
    stats = calculate_attendance_stats([_record(0, P), _record(1, A)], total_sessions=2)

    assert stats.current_streak == 0
    assert stats.longest_streak == 1


def test_stats_from_records_counts_distinct_sessions() -> None:
    records = [_record(0, P), _record(0, P, class_id="MATH200"), _record(1, A)]

    stats = stats_from_records(records)

    assert stats.total_sessions == 3
    assert stats.attendance_rate == 66.67


def test_summary_breaks_down_by_status_method_and_day() -> None:
    records = [
        _record(0, P, student_id="s1"),
        _record(0, L, student_id="s2", method=AttendanceMethod.QR_CODE),
        _record(0, A, student_id="s3", method=AttendanceMethod.MANUAL),
        _record(1, P, student_id="s1"),
        _record(9, P, student_id="s1"),
    ]

    summary = summarize_attendance(records, DAY, DAY + datetime.timedelta(days=1))

    assert summary.total_records == 4
    assert summary.status_breakdown["PRESENT"] == 2
    assert summary.status_breakdown["LATE"] == 1
    assert summary.status_breakdown["EXCUSED"] == 0
    assert summary.method_breakdown == {
        "FACE_RECOGNITION": 2,
        "QR_CODE": 1,
        "MANUAL": 1,
        "AUTO_MARKED": 0,
    }
    first, second = summary.daily
    assert (first.date, first.present, first.late, first.absent, first.total) == (DAY, 1, 1, 1, 3)
    assert first.rate == pytest.approx(66.67)
    assert second.rate == 100.0


def test_summary_of_empty_range() -> None:
    summary = summarize_attendance([], DAY, DAY)

    assert summary.total_records == 0
    assert summary.daily == []
    assert set(summary.status_breakdown.values()) == {0}
