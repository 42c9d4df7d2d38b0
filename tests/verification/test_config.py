"""Tests for component configuration validation and settings loading."""

from __future__ import annotations

import pytest
from django.core.exceptions import ImproperlyConfigured

from verification.config import (
    LocationConfig,
    MatchingConfig,
    PoseBreakpoints,
    QualityConfig,
    SizeBreakpoints,
    VerificationConfig,
    WindowConfig,
)


def test_defaults_are_valid() -> None:
    config = VerificationConfig()

    assert config.quality.acceptance_floor == 0.7
    assert config.matching.similarity_threshold == 0.7
    assert config.matching.high_confidence_threshold == 0.8
    assert config.window.late_threshold_minutes == 10
    assert config.location.earth_radius_m == 6_371_000.0
    assert config.location.max_gps_accuracy_m is None


@pytest.mark.parametrize(
    "factory",
    [
        lambda: QualityConfig(acceptance_floor=1.2),
        lambda: QualityConfig(brightness_min=0.9, brightness_max=0.8),
        lambda: QualityConfig(sharpness_divisor=0),
        lambda: QualityConfig(size=SizeBreakpoints(optimal_min=0.5, optimal_max=0.4)),
        lambda: QualityConfig(pose=PoseBreakpoints(moderate=40, extreme=30)),
        lambda: MatchingConfig(similarity_threshold=-0.1),
        lambda: WindowConfig(late_threshold_minutes=-1),
        lambda: LocationConfig(earth_radius_m=0),
        lambda: LocationConfig(max_gps_accuracy_m=-5),
        lambda: VerificationConfig(signal_timeout_seconds=0),
        lambda: VerificationConfig(worker_pool_size=0),
    ],
)
def test_invalid_values_are_rejected(factory) -> None:
    with pytest.raises(ImproperlyConfigured):
        factory()


def test_from_settings_reads_django_settings(settings) -> None:
    settings.VERIFICATION_QUALITY_FLOOR = 0.6
    settings.VERIFICATION_SIMILARITY_THRESHOLD = 0.75
    settings.VERIFICATION_LATE_THRESHOLD_MINUTES = 5
    settings.VERIFICATION_SIGNAL_TIMEOUT_SECONDS = 2.5
    settings.VERIFICATION_WORKER_POOL_SIZE = 2
    settings.VERIFICATION_MAX_GPS_ACCURACY_METERS = 25

    config = VerificationConfig.from_settings()

    assert config.quality.acceptance_floor == 0.6
    assert config.matching.similarity_threshold == 0.75
    assert config.window.late_threshold_minutes == 5
    assert config.signal_timeout_seconds == 2.5
    assert config.worker_pool_size == 2
    assert config.location.max_gps_accuracy_m == 25.0


def test_from_settings_validates_values(settings) -> None:
    settings.VERIFICATION_HIGH_CONFIDENCE_THRESHOLD = 3

    with pytest.raises(ImproperlyConfigured):
        MatchingConfig.from_settings()
