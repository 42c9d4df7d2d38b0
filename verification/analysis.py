"""Attendance statistics computed from verified attendance records."""

from __future__ import annotations

import datetime
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from .matching import round_half_up
from .types import AttendanceMethod, AttendanceRecord, AttendanceStatus

_ATTENDED = frozenset({AttendanceStatus.PRESENT, AttendanceStatus.LATE})


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round_half_up(part / whole * 100)


@dataclass(slots=True)
class AttendanceStats:
    """Per-student attendance totals and streaks."""

    total_sessions: int
    attended_sessions: int
    attendance_rate: float
    late_count: int
    absent_count: int
    excused_count: int
    current_streak: int
    longest_streak: int


@dataclass(slots=True)
class DailyStat:
    date: datetime.date
    present: int
    absent: int
    late: int
    total: int
    rate: float


@dataclass(slots=True)
class AttendanceSummary:
    total_records: int
    status_breakdown: Dict[str, int] = field(default_factory=dict)
    method_breakdown: Dict[str, int] = field(default_factory=dict)
    daily: List[DailyStat] = field(default_factory=list)


def _streaks(records: Sequence[AttendanceRecord]) -> tuple[int, int]:
    """Return ``(current, longest)`` runs of attended records.

    The current streak counts consecutive attended records back from the most
    recent one.
    """

    newest_first = sorted(records, key=lambda record: record.date, reverse=True)

    current = 0
    for record in newest_first:
        if record.status not in _ATTENDED:
            break
        current += 1

    longest = 0
    run = 0
    for record in newest_first:
        if record.status in _ATTENDED:
            run += 1
            longest = max(longest, run)
        else:
            run = 0
    return current, longest


def calculate_attendance_stats(
    records: Iterable[AttendanceRecord], total_sessions: int
) -> AttendanceStats:
    """Summarise one student's records against the number of scheduled sessions.

    Args:
        records: The student's attendance records.
        total_sessions: Sessions the student was expected to attend.

    Returns:
        AttendanceStats where PRESENT and LATE both count as attended and the
        rate is a percentage rounded to two decimals.
    """

    records = list(records)
    attended = sum(1 for record in records if record.status in _ATTENDED)
    current, longest = _streaks(records)

    return AttendanceStats(
        total_sessions=total_sessions,
        attended_sessions=attended,
        attendance_rate=_percent(attended, total_sessions),
        late_count=sum(1 for record in records if record.status == AttendanceStatus.LATE),
        absent_count=sum(1 for record in records if record.status == AttendanceStatus.ABSENT),
        excused_count=sum(1 for record in records if record.status == AttendanceStatus.EXCUSED),
        current_streak=current,
        longest_streak=longest,
    )


def summarize_attendance(
    records: Iterable[AttendanceRecord],
    start: datetime.date,
    end: datetime.date,
) -> AttendanceSummary:
    """Break down records dated within ``[start, end]`` by status, method and day."""

    selected = [record for record in records if start <= record.date <= end]

    status_breakdown = {status.value: 0 for status in AttendanceStatus}
    method_breakdown = {method.value: 0 for method in AttendanceMethod}
    by_day: Dict[datetime.date, List[AttendanceRecord]] = defaultdict(list)

    for record in selected:
        status_breakdown[AttendanceStatus(record.status).value] += 1
        method_breakdown[AttendanceMethod(record.method).value] += 1
        by_day[record.date].append(record)

    daily = []
    for day in sorted(by_day):
        day_records = by_day[day]
        present = sum(1 for record in day_records if record.status == AttendanceStatus.PRESENT)
        late = sum(1 for record in day_records if record.status == AttendanceStatus.LATE)
        absent = sum(1 for record in day_records if record.status == AttendanceStatus.ABSENT)
        daily.append(
            DailyStat(
                date=day,
                present=present,
                absent=absent,
                late=late,
                total=len(day_records),
                rate=_percent(present + late, len(day_records)),
            )
        )

    return AttendanceSummary(
        total_records=len(selected),
        status_breakdown=status_breakdown,
        method_breakdown=method_breakdown,
        daily=daily,
    )


def stats_from_records(records: Iterable[AttendanceRecord]) -> AttendanceStats:
    """Stats where the session count is the number of distinct class/date pairs seen."""

    records = list(records)
    sessions = {(record.class_id, record.date) for record in records}
    return calculate_attendance_stats(records, len(sessions))


__all__ = [
    "AttendanceStats",
    "AttendanceSummary",
    "DailyStat",
    "calculate_attendance_stats",
    "stats_from_records",
    "summarize_attendance",
]
