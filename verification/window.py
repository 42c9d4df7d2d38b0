"""Attendance window state machine.

Two separate decisions are made here. :meth:`AttendanceWindowEvaluator.evaluate`
answers "may the student attempt a check-in right now?" and
:meth:`AttendanceWindowEvaluator.determine_status` answers "what status does a
check-in at this instant earn?". Both are pure functions of their inputs.
"""

from __future__ import annotations

import datetime
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import WindowConfig
from .errors import ErrorKind, Rejection
from .types import AttendanceStatus, AttendanceWindow, ClassSession

logger = logging.getLogger(__name__)

_ANCHOR_DATE = datetime.date(2000, 1, 1)


class WindowState(str, Enum):
    EARLY = "early"
    OPEN = "open"
    LATE = "late"
    CLOSED = "closed"


@dataclass(frozen=True)
class WindowDecision:
    """Whether an attempt is allowed at a given instant, and why."""

    allowed: bool
    state: WindowState
    reason: str
    minutes_remaining: Optional[int] = None
    minutes_late: Optional[int] = None

    def as_rejection(self) -> Optional[Rejection]:
        if self.allowed:
            return None
        if self.state is WindowState.EARLY:
            return Rejection.of(
                ErrorKind.WINDOW_EARLY, self.reason, minutes_remaining=self.minutes_remaining
            )
        return Rejection.of(ErrorKind.WINDOW_CLOSED, self.reason)


def _shift(wall_time: datetime.time, delta: datetime.timedelta) -> datetime.time:
    """Shift a wall-clock time, saturating at the start and end of the day."""

    moved = datetime.datetime.combine(_ANCHOR_DATE, wall_time) + delta
    if moved.date() < _ANCHOR_DATE:
        return datetime.time.min
    if moved.date() > _ANCHOR_DATE:
        return datetime.time.max
    return moved.time()


def default_window(
    start_time: datetime.time,
    end_time: datetime.time,
    config: Optional[WindowConfig] = None,
) -> AttendanceWindow:
    """Window used for sessions that do not define one explicitly.

    Opens ``check_in_window_minutes`` before class start and closes
    ``check_out_window_minutes`` after class end.
    """

    config = config or WindowConfig()
    return AttendanceWindow(
        start_time=_shift(start_time, -datetime.timedelta(minutes=config.check_in_window_minutes)),
        end_time=_shift(end_time, datetime.timedelta(minutes=config.check_out_window_minutes)),
    )


def _localize(now: datetime.datetime, session: ClassSession) -> datetime.datetime:
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("Window evaluation requires a timezone-aware timestamp")
    return now.astimezone(session.tz)


class AttendanceWindowEvaluator:
    """Evaluate attempt windows and check-in statuses for class sessions."""

    def __init__(self, config: Optional[WindowConfig] = None) -> None:
        self.config = config or WindowConfig()

    def window_for(self, session: ClassSession) -> AttendanceWindow:
        """The session's own window, or the default one around its class time."""

        if session.attendance_window is not None:
            return session.attendance_window
        return default_window(session.start_time, session.end_time, self.config)

    def evaluate(self, now: datetime.datetime, session: ClassSession) -> WindowDecision:
        """Map ``now`` onto the session's attempt window.

        Args:
            now: Timezone-aware instant of the attempt.
            session: Scheduled session, interpreted in ``session.tz``.

        Returns:
            WindowDecision with ``allowed`` set for the OPEN and LATE states.

        Raises:
            ValueError: If ``now`` is naive.
        """

        local_now = _localize(now, session)
        if local_now.date() != session.date:
            return WindowDecision(
                allowed=False,
                state=WindowState.CLOSED,
                reason="Attendance is only available on the day of the class",
            )

        window = self.window_for(session)
        window_start = session.at(window.start_time)
        window_end = session.at(window.end_time)

        if local_now < window_start:
            remaining = math.ceil((window_start - local_now).total_seconds() / 60)
            return WindowDecision(
                allowed=False,
                state=WindowState.EARLY,
                reason=f"Attendance opens in {remaining} minutes",
                minutes_remaining=remaining,
            )

        if local_now > window_end:
            return WindowDecision(
                allowed=False,
                state=WindowState.CLOSED,
                reason="Attendance window has closed",
            )

        elapsed = local_now - session.starts_at
        if elapsed > self.config.late_threshold:
            minutes_late = int(elapsed.total_seconds() // 60)
            return WindowDecision(
                allowed=True,
                state=WindowState.LATE,
                reason=f"Class started {minutes_late} minutes ago",
                minutes_late=minutes_late,
            )

        return WindowDecision(allowed=True, state=WindowState.OPEN, reason="Attendance window is open")

    def determine_status(self, check_in: datetime.datetime, session: ClassSession) -> AttendanceStatus:
        """Status earned by a check-in at ``check_in``.

        On time or early is PRESENT, up to and including the late threshold
        is LATE, anything later is ABSENT.
        """

        difference = _localize(check_in, session) - session.starts_at
        if difference <= datetime.timedelta(0):
            return AttendanceStatus.PRESENT
        if difference <= self.config.late_threshold:
            return AttendanceStatus.LATE
        return AttendanceStatus.ABSENT


__all__ = [
    "AttendanceWindowEvaluator",
    "WindowDecision",
    "WindowState",
    "default_window",
]
