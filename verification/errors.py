"""Error taxonomy for the verification engine.

Every rejected check-in carries a :class:`Rejection` whose ``kind`` is one of
the closed :class:`ErrorKind` variants. Exceptions are reserved for
conditions a caller has to handle explicitly (integrity failures, duplicate
records at insert time, unusable enrollment batches and location signal
failures raised by providers).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

if TYPE_CHECKING:
    from .types import AttendanceRecord


class ErrorKind(str, Enum):
    """Closed set of reasons an attempt can be rejected."""

    NO_FACE_DETECTED = "no_face_detected"
    MULTIPLE_FACES_DETECTED = "multiple_faces_detected"
    LOW_QUALITY_IMAGE = "low_quality_image"
    NO_MATCH = "no_match"
    LOCATION_INVALID = "location_invalid"
    WINDOW_EARLY = "window_early"
    WINDOW_CLOSED = "window_closed"
    DUPLICATE_ATTENDANCE = "duplicate_attendance"
    DECRYPTION_INTEGRITY_FAILURE = "decryption_integrity_failure"
    SIGNAL_TIMEOUT = "signal_timeout"

    @property
    def recoverable(self) -> bool:
        """Whether a fresh attempt can succeed without operator action."""
        return self not in _UNRECOVERABLE

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES[self]


_UNRECOVERABLE = frozenset(
    {
        ErrorKind.WINDOW_EARLY,
        ErrorKind.WINDOW_CLOSED,
        ErrorKind.DUPLICATE_ATTENDANCE,
        ErrorKind.DECRYPTION_INTEGRITY_FAILURE,
    }
)

_USER_MESSAGES = {
    ErrorKind.NO_FACE_DETECTED: "No face was detected. Please retake the photo.",
    ErrorKind.MULTIPLE_FACES_DETECTED: "More than one face was detected. Make sure only you are in frame.",
    ErrorKind.LOW_QUALITY_IMAGE: "The photo quality is too low. Please retake it in better conditions.",
    ErrorKind.NO_MATCH: "Face verification failed. Please try again with a new photo.",
    ErrorKind.LOCATION_INVALID: "Location validation failed. Please ensure you are in the correct classroom.",
    ErrorKind.WINDOW_EARLY: "Attendance is not open yet.",
    ErrorKind.WINDOW_CLOSED: "Attendance window has closed.",
    ErrorKind.DUPLICATE_ATTENDANCE: "Attendance already recorded for today.",
    ErrorKind.DECRYPTION_INTEGRITY_FAILURE: "Your face profile needs to be reviewed. Please contact an administrator.",
    ErrorKind.SIGNAL_TIMEOUT: "Location signals were unavailable. Please try again.",
}


@dataclass(frozen=True)
class Rejection:
    """Structured reason attached to a rejected verification attempt.

    ``message`` is safe to show to end users. ``details`` holds the failing
    sub-metrics for diagnostics and never contains biometric data.
    """

    kind: ErrorKind
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, kind: ErrorKind, message: Optional[str] = None, **details: Any) -> "Rejection":
        return cls(kind=kind, message=message or kind.user_message, details=dict(details))

    @property
    def recoverable(self) -> bool:
        return self.kind.recoverable


class VerificationError(Exception):
    """Base class for errors raised by the verification engine."""

    kind: Optional[ErrorKind] = None


class DescriptorLengthError(ValueError):
    """Raised when a descriptor is not exactly the expected length."""

    def __init__(self, actual: int, expected: int) -> None:
        super().__init__(f"Face descriptors must have {expected} values, got {actual}")
        self.actual = actual
        self.expected = expected


class DecryptionIntegrityFailure(VerificationError):
    """A stored template was tampered with, corrupted or failed its hash check."""

    kind = ErrorKind.DECRYPTION_INTEGRITY_FAILURE

    def __init__(
        self,
        message: str = "Biometric template failed integrity verification",
        *,
        template_hash: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.template_hash = template_hash


class DuplicateAttendance(VerificationError):
    """A non-superseded record already exists for the student, class and date."""

    kind = ErrorKind.DUPLICATE_ATTENDANCE

    def __init__(self, existing: Optional["AttendanceRecord"] = None) -> None:
        super().__init__("Attendance already recorded for this class and date")
        self.existing = existing


class EnrollmentError(VerificationError):
    """No enrollment image produced a usable template."""

    def __init__(self, message: str, rejections: Sequence[Rejection] = ()) -> None:
        super().__init__(message)
        self.rejections = tuple(rejections)


class LocationSignalError(VerificationError):
    """A location provider could not produce a signal."""


class SignalTimeout(LocationSignalError):
    """A location signal was not available before the deadline."""

    kind = ErrorKind.SIGNAL_TIMEOUT


__all__ = [
    "DecryptionIntegrityFailure",
    "DescriptorLengthError",
    "DuplicateAttendance",
    "EnrollmentError",
    "ErrorKind",
    "LocationSignalError",
    "Rejection",
    "SignalTimeout",
    "VerificationError",
]
