"""Domain types shared by the verification components."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Mapping, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from django.db import models

from .errors import DescriptorLengthError, Rejection

if TYPE_CHECKING:
    from .location import LocationDecision

DESCRIPTOR_LENGTH = 128


def as_descriptor(values: Any) -> np.ndarray:
    """Coerce ``values`` into a 128-length ``float32`` descriptor.

    Raises:
        DescriptorLengthError: When the input is not a flat 128-value vector.
        ValueError: When the input contains non-finite values.
    """

    try:
        vector = np.asarray(values, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise ValueError("Face descriptors must contain numeric values") from exc

    if vector.ndim != 1 or vector.shape[0] != DESCRIPTOR_LENGTH:
        raise DescriptorLengthError(int(vector.size), DESCRIPTOR_LENGTH)
    if not np.all(np.isfinite(vector)):
        raise ValueError("Face descriptors must contain only finite values")
    return vector


class AttendanceStatus(models.TextChoices):
    PRESENT = "PRESENT", "Present"
    LATE = "LATE", "Late"
    ABSENT = "ABSENT", "Absent"
    EXCUSED = "EXCUSED", "Excused"
    PENDING = "PENDING", "Pending"


class AttendanceMethod(models.TextChoices):
    FACE_RECOGNITION = "FACE_RECOGNITION", "Face recognition"
    QR_CODE = "QR_CODE", "QR code"
    MANUAL = "MANUAL", "Manual"
    AUTO_MARKED = "AUTO_MARKED", "Auto marked"


class Point(NamedTuple):
    x: float
    y: float


class FaceBox(NamedTuple):
    """Face bounding box in pixel coordinates of the source image."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)


@dataclass(frozen=True)
class FaceSample:
    """A single detected face within a captured frame.

    Attributes:
        image: Full source frame as an ``(height, width, 3)`` RGB array.
        box: Face bounding box within ``image``.
        landmarks: Named landmark points (``left_eye``, ``right_eye``,
            ``nose``, ``mouth_left``, ``mouth_right``) in image coordinates.
            ``left_eye`` is the eye with the smaller x coordinate.
        confidence: Detector confidence in [0, 1].
        descriptor: Optional 128-length descriptor produced by the detector.
    """

    image: np.ndarray
    box: FaceBox
    landmarks: Mapping[str, Point] = field(default_factory=dict)
    confidence: float = 1.0
    descriptor: Optional[np.ndarray] = None

    @property
    def image_size(self) -> Tuple[int, int]:
        """Return ``(width, height)`` of the source frame."""
        height, width = self.image.shape[:2]
        return int(width), int(height)


@dataclass(frozen=True)
class Pose:
    """Head pose estimate in degrees."""

    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0

    @property
    def max_angle(self) -> float:
        return max(abs(self.yaw), abs(self.pitch), abs(self.roll))


@dataclass(frozen=True)
class QualityScore:
    """Immutable quality assessment of one face sample."""

    score: float
    brightness: float
    sharpness: float
    face_size_px: float
    face_ratio: float
    pose: Pose
    issues: Tuple[str, ...] = ()

    def passes(self, floor: float) -> bool:
        return self.score >= floor

    def as_details(self) -> Dict[str, Any]:
        """Return the sub-metrics rounded for display."""
        return {
            "score": round(self.score, 2),
            "brightness": round(self.brightness, 2),
            "sharpness": round(self.sharpness, 2),
            "face_size_px": round(self.face_size_px, 2),
            "face_ratio": round(self.face_ratio, 2),
            "max_pose_angle": round(self.pose.max_angle, 2),
            "issues": list(self.issues),
        }


@dataclass(frozen=True)
class EncryptedTemplate:
    """Encrypted descriptor as stored at rest; every field is hex-encoded."""

    ciphertext: str
    iv: str
    auth_tag: str
    template_hash: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "ciphertext": self.ciphertext,
            "iv": self.iv,
            "authTag": self.auth_tag,
            "templateHash": self.template_hash,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, str]) -> "EncryptedTemplate":
        return cls(
            ciphertext=payload["ciphertext"],
            iv=payload["iv"],
            auth_tag=payload["authTag"],
            template_hash=payload["templateHash"],
        )


@dataclass(frozen=True)
class EnrolledProfile:
    """Usable templates of one user.

    ``flagged_templates`` counts templates withheld because they await
    integrity review.
    """

    templates: Tuple[EncryptedTemplate, ...]
    average_quality: float
    flagged_templates: int = 0


@dataclass(frozen=True)
class GeoFence:
    latitude: float
    longitude: float
    radius_m: float


@dataclass(frozen=True)
class SessionLocation:
    """Where a class session has to be attended from."""

    wifi_ssids: Tuple[str, ...] = ()
    gps: Optional[GeoFence] = None
    name: str = ""

    @property
    def is_constrained(self) -> bool:
        return bool(self.wifi_ssids) or self.gps is not None


@dataclass(frozen=True)
class AttendanceWindow:
    start_time: datetime.time
    end_time: datetime.time


@dataclass(frozen=True)
class ClassSession:
    """Scheduled class meeting; wall-clock times are local to ``tz``."""

    class_id: str
    date: datetime.date
    start_time: datetime.time
    end_time: datetime.time
    attendance_window: Optional[AttendanceWindow] = None
    location: SessionLocation = field(default_factory=SessionLocation)
    tz: datetime.tzinfo = datetime.timezone.utc

    def at(self, wall_time: datetime.time) -> datetime.datetime:
        """Return the aware instant of ``wall_time`` on the session date."""
        return datetime.datetime.combine(self.date, wall_time, tzinfo=self.tz)

    @property
    def starts_at(self) -> datetime.datetime:
        return self.at(self.start_time)


@dataclass(frozen=True)
class WifiNetwork:
    ssid: str
    signal_strength: Optional[float] = None


@dataclass(frozen=True)
class GpsFix:
    latitude: float
    longitude: float
    accuracy_m: Optional[float] = None


@dataclass(frozen=True)
class CheckInContext:
    """Location signals supplied by the caller.

    ``None`` means the caller did not supply the signal; the service then
    asks its location provider, if one is configured.
    """

    wifi: Optional[Sequence[WifiNetwork]] = None
    gps: Optional[GpsFix] = None


@dataclass(frozen=True)
class AttendanceRecord:
    student_id: str
    class_id: str
    date: datetime.date
    status: AttendanceStatus
    method: AttendanceMethod = AttendanceMethod.FACE_RECOGNITION
    check_in_time: Optional[datetime.datetime] = None
    confidence: Optional[float] = None


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of one check-in attempt.

    ``accepted`` is ``True`` only when a new attendance record was written.
    ``reason`` is set for every other outcome, including duplicates, where
    ``record`` holds the record that already existed.
    """

    accepted: bool
    stage: str
    confidence: float
    status: Optional[AttendanceStatus] = None
    matched_profile_index: Optional[int] = None
    reason: Optional[Rejection] = None
    record: Optional[AttendanceRecord] = None
    quality: Optional[QualityScore] = None
    location: Optional["LocationDecision"] = None


__all__ = [
    "DESCRIPTOR_LENGTH",
    "AttendanceMethod",
    "AttendanceRecord",
    "AttendanceStatus",
    "AttendanceWindow",
    "CheckInContext",
    "ClassSession",
    "EncryptedTemplate",
    "EnrolledProfile",
    "FaceBox",
    "FaceSample",
    "GeoFence",
    "GpsFix",
    "Point",
    "Pose",
    "QualityScore",
    "SessionLocation",
    "VerificationResult",
    "WifiNetwork",
    "as_descriptor",
]
