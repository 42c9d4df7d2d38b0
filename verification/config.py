"""Typed configuration for each verification component.

Every component receives one of these frozen dataclasses. They are built from
Django settings via ``from_settings()`` and validated once on construction, so
the rest of the engine can trust the values it is given.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


def _require_unit_interval(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ImproperlyConfigured(f"{name} must be between 0.0 and 1.0, got {value!r}.")


@dataclass(frozen=True)
class SizeBreakpoints:
    """Face-to-image area ratios that drive the size multiplier."""

    too_small: float = 0.10
    too_large: float = 0.60
    optimal_min: float = 0.15
    optimal_max: float = 0.40
    too_small_multiplier: float = 0.6
    too_large_multiplier: float = 0.7
    suboptimal_multiplier: float = 0.8


@dataclass(frozen=True)
class PoseBreakpoints:
    """Maximum head rotation (degrees) tolerated before penalties apply."""

    moderate: float = 15.0
    extreme: float = 30.0
    moderate_multiplier: float = 0.7
    extreme_multiplier: float = 0.5


@dataclass(frozen=True)
class QualityConfig:
    size: SizeBreakpoints = field(default_factory=SizeBreakpoints)
    pose: PoseBreakpoints = field(default_factory=PoseBreakpoints)
    brightness_min: float = 0.3
    brightness_max: float = 0.8
    brightness_multiplier: float = 0.6
    sharpness_min: float = 0.5
    sharpness_multiplier: float = 0.7
    sharpness_divisor: float = 50.0
    acceptance_floor: float = 0.7

    def __post_init__(self) -> None:
        size = self.size
        if not 0.0 < size.too_small <= size.optimal_min <= size.optimal_max <= size.too_large:
            raise ImproperlyConfigured(
                "Size breakpoints must satisfy 0 < too_small <= optimal_min <= optimal_max <= too_large."
            )
        if not 0.0 <= self.pose.moderate <= self.pose.extreme:
            raise ImproperlyConfigured("Pose breakpoints must satisfy 0 <= moderate <= extreme.")
        if not 0.0 <= self.brightness_min < self.brightness_max <= 1.0:
            raise ImproperlyConfigured("Brightness range must lie within [0, 1] and be non-empty.")
        if self.sharpness_divisor <= 0:
            raise ImproperlyConfigured("sharpness_divisor must be positive.")
        _require_unit_interval("sharpness_min", self.sharpness_min)
        _require_unit_interval("acceptance_floor", self.acceptance_floor)
        for name in (
            "brightness_multiplier",
            "sharpness_multiplier",
        ):
            _require_unit_interval(name, getattr(self, name))
        for name in (
            "too_small_multiplier",
            "too_large_multiplier",
            "suboptimal_multiplier",
        ):
            _require_unit_interval(name, getattr(size, name))
        _require_unit_interval("moderate_multiplier", self.pose.moderate_multiplier)
        _require_unit_interval("extreme_multiplier", self.pose.extreme_multiplier)

    @classmethod
    def from_settings(cls) -> "QualityConfig":
        return cls(
            sharpness_divisor=float(getattr(settings, "VERIFICATION_SHARPNESS_DIVISOR", 50.0)),
            acceptance_floor=float(getattr(settings, "VERIFICATION_QUALITY_FLOOR", 0.7)),
        )


@dataclass(frozen=True)
class MatchingConfig:
    similarity_threshold: float = 0.7
    high_confidence_threshold: float = 0.8

    def __post_init__(self) -> None:
        _require_unit_interval("similarity_threshold", self.similarity_threshold)
        _require_unit_interval("high_confidence_threshold", self.high_confidence_threshold)

    @classmethod
    def from_settings(cls) -> "MatchingConfig":
        return cls(
            similarity_threshold=float(
                getattr(settings, "VERIFICATION_SIMILARITY_THRESHOLD", 0.7)
            ),
            high_confidence_threshold=float(
                getattr(settings, "VERIFICATION_HIGH_CONFIDENCE_THRESHOLD", 0.8)
            ),
        )


@dataclass(frozen=True)
class WindowConfig:
    late_threshold_minutes: int = 10
    check_in_window_minutes: int = 15
    check_out_window_minutes: int = 15

    def __post_init__(self) -> None:
        for name in ("late_threshold_minutes", "check_in_window_minutes", "check_out_window_minutes"):
            if getattr(self, name) < 0:
                raise ImproperlyConfigured(f"{name} must not be negative.")

    @property
    def late_threshold(self) -> datetime.timedelta:
        return datetime.timedelta(minutes=self.late_threshold_minutes)

    @classmethod
    def from_settings(cls) -> "WindowConfig":
        return cls(
            late_threshold_minutes=int(getattr(settings, "VERIFICATION_LATE_THRESHOLD_MINUTES", 10)),
            check_in_window_minutes=int(getattr(settings, "VERIFICATION_CHECK_IN_WINDOW_MINUTES", 15)),
            check_out_window_minutes=int(getattr(settings, "VERIFICATION_CHECK_OUT_WINDOW_MINUTES", 15)),
        )


@dataclass(frozen=True)
class LocationConfig:
    earth_radius_m: float = 6_371_000.0
    max_gps_accuracy_m: Optional[float] = None

    def __post_init__(self) -> None:
        if self.earth_radius_m <= 0:
            raise ImproperlyConfigured("earth_radius_m must be positive.")
        if self.max_gps_accuracy_m is not None and self.max_gps_accuracy_m < 0:
            raise ImproperlyConfigured("max_gps_accuracy_m must not be negative.")

    @classmethod
    def from_settings(cls) -> "LocationConfig":
        accuracy = getattr(settings, "VERIFICATION_MAX_GPS_ACCURACY_METERS", None)
        return cls(max_gps_accuracy_m=float(accuracy) if accuracy is not None else None)


@dataclass(frozen=True)
class VerificationConfig:
    quality: QualityConfig = field(default_factory=QualityConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    window: WindowConfig = field(default_factory=WindowConfig)
    location: LocationConfig = field(default_factory=LocationConfig)
    signal_timeout_seconds: float = 10.0
    worker_pool_size: int = 4

    def __post_init__(self) -> None:
        if self.signal_timeout_seconds <= 0:
            raise ImproperlyConfigured("signal_timeout_seconds must be positive.")
        if self.worker_pool_size < 1:
            raise ImproperlyConfigured("worker_pool_size must be at least 1.")

    @classmethod
    def from_settings(cls) -> "VerificationConfig":
        return cls(
            quality=QualityConfig.from_settings(),
            matching=MatchingConfig.from_settings(),
            window=WindowConfig.from_settings(),
            location=LocationConfig.from_settings(),
            signal_timeout_seconds=float(
                getattr(settings, "VERIFICATION_SIGNAL_TIMEOUT_SECONDS", 10.0)
            ),
            worker_pool_size=int(getattr(settings, "VERIFICATION_WORKER_POOL_SIZE", 4)),
        )


__all__ = [
    "LocationConfig",
    "MatchingConfig",
    "PoseBreakpoints",
    "QualityConfig",
    "SizeBreakpoints",
    "VerificationConfig",
    "WindowConfig",
]
