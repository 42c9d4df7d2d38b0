"""Collaborator interfaces consumed by the verification service.

Implementations are injected into :class:`verification.orchestrator.VerificationService`.
The Django-backed stores live in :mod:`verification.stores`; the DeepFace
detector lives in :mod:`verification.detector`. Tests use in-memory fakes.
"""

from __future__ import annotations

import datetime
from typing import Optional, Protocol, Sequence

from .types import (
    AttendanceRecord,
    ClassSession,
    EnrolledProfile,
    FaceSample,
    GpsFix,
    WifiNetwork,
)


class EnrollmentStore(Protocol):
    def get_profile(self, user_id: str) -> Optional[EnrolledProfile]:
        """Usable templates only; flagged ones are reported in ``flagged_templates``."""
        ...

    def put_profile(self, user_id: str, profile: EnrolledProfile) -> None:
        """Replace any existing profile for ``user_id`` wholesale."""
        ...

    def delete_profile(self, user_id: str) -> None:
        ...

    def flag_template(self, user_id: str, template_hash: str) -> None:
        """Mark a template that failed integrity checks for manual review."""
        ...


class SessionStore(Protocol):
    def get_session(self, class_id: str, date: datetime.date) -> Optional[ClassSession]:
        ...


class AttendanceStore(Protocol):
    def find_record(
        self, student_id: str, class_id: str, date: datetime.date
    ) -> Optional[AttendanceRecord]:
        """Return the non-superseded record for the key, if any."""
        ...

    def insert_record(self, record: AttendanceRecord) -> AttendanceRecord:
        """Persist ``record`` atomically.

        Raises:
            DuplicateAttendance: A non-superseded record already exists for
                ``(student_id, class_id, date)``.
        """
        ...


class LocationProvider(Protocol):
    """Source of location signals; calls may block and may raise ``LocationSignalError``."""

    def scan_wifi(self) -> Sequence[WifiNetwork]:
        ...

    def get_gps_fix(self) -> Optional[GpsFix]:
        ...


class FaceDetector(Protocol):
    def detect_faces(self, image: bytes) -> Sequence[FaceSample]:
        """Return every face found in an encoded image.

        Each sample carries its landmarks, detector confidence and a
        128-length descriptor. An empty sequence means no face was found.
        """
        ...


__all__ = [
    "AttendanceStore",
    "EnrollmentStore",
    "FaceDetector",
    "LocationProvider",
    "SessionStore",
]
