"""WiFi and GPS location validation.

The validator is pure: signals are collected elsewhere (with a timeout) and
passed in. A signal that could not be collected is passed as ``None`` and
counts as invalid for that signal only, so the other signal can still carry
the decision.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .config import LocationConfig
from .errors import ErrorKind, Rejection
from .types import GeoFence, GpsFix, SessionLocation, WifiNetwork

logger = logging.getLogger(__name__)


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    radius_m: float = 6_371_000.0,
) -> float:
    """Great-circle distance in metres between two coordinates."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    # Rounding can push near-antipodal pairs just outside [0, 1].
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return radius_m * c


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    if math.isnan(latitude) or math.isnan(longitude):
        return False
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def categorize_signal_strength(signal_strength: float) -> str:
    """Bucket an RSSI reading (dBm) into a display category."""

    if signal_strength >= -50:
        return "excellent"
    if signal_strength >= -60:
        return "good"
    if signal_strength >= -70:
        return "fair"
    return "poor"


@dataclass(frozen=True)
class WifiCheck:
    valid: bool
    confidence: float
    matched_ssids: Tuple[str, ...] = ()
    available: bool = True


@dataclass(frozen=True)
class GpsCheck:
    valid: bool
    confidence: float
    distance_m: Optional[float] = None
    available: bool = True
    reason: str = ""


@dataclass(frozen=True)
class LocationDecision:
    """Fused WiFi/GPS outcome for one required location.

    ``wifi`` and ``gps`` are ``None`` when the location does not require that
    signal at all.
    """

    valid: bool
    confidence: float
    wifi: Optional[WifiCheck] = None
    gps: Optional[GpsCheck] = None
    location_name: str = ""

    def as_rejection(self) -> Optional[Rejection]:
        if self.valid:
            return None
        details = {"confidence": round(self.confidence, 2)}
        if self.wifi is not None:
            details["wifi_available"] = self.wifi.available
            details["wifi_confidence"] = round(self.wifi.confidence, 2)
        if self.gps is not None:
            details["gps_available"] = self.gps.available
            if self.gps.distance_m is not None:
                details["gps_distance_m"] = round(self.gps.distance_m, 2)
        return Rejection.of(ErrorKind.LOCATION_INVALID, **details)


@dataclass(frozen=True)
class MultiLocationDecision:
    """Outcome of checking several candidate locations.

    ``valid_locations`` lists ``(index, decision)`` pairs in evaluation order;
    ``best`` is the valid pair with the highest confidence, first wins ties.
    """

    valid_locations: Tuple[Tuple[int, LocationDecision], ...]
    best: Optional[Tuple[int, LocationDecision]]

    @property
    def valid(self) -> bool:
        return self.best is not None


class LocationValidator:
    """Score presence at a required location from WiFi and GPS signals."""

    def __init__(self, config: Optional[LocationConfig] = None) -> None:
        self.config = config or LocationConfig()

    def check_wifi(
        self, required_ssids: Sequence[str], visible: Optional[Sequence[WifiNetwork]]
    ) -> WifiCheck:
        """Fraction of required SSIDs currently visible, case-insensitively."""

        if visible is None:
            return WifiCheck(valid=False, confidence=0.0, available=False)
        if not required_ssids:
            return WifiCheck(valid=False, confidence=0.0)

        seen = {network.ssid.lower() for network in visible}
        matched = tuple(ssid for ssid in required_ssids if ssid.lower() in seen)
        confidence = len(matched) / len(required_ssids)
        return WifiCheck(valid=confidence > 0, confidence=confidence, matched_ssids=matched)

    def check_gps(self, fence: GeoFence, fix: Optional[GpsFix]) -> GpsCheck:
        """Haversine distance from ``fix`` to the fence centre against its radius."""

        if fix is None:
            return GpsCheck(valid=False, confidence=0.0, available=False, reason="GPS fix unavailable")
        if not is_valid_coordinate(fix.latitude, fix.longitude):
            return GpsCheck(valid=False, confidence=0.0, reason="Invalid coordinates provided")

        max_accuracy = self.config.max_gps_accuracy_m
        if max_accuracy is not None and fix.accuracy_m is not None and fix.accuracy_m > max_accuracy:
            return GpsCheck(
                valid=False,
                confidence=0.0,
                reason=f"Location accuracy too low (>{max_accuracy:g}m)",
            )

        distance = haversine_distance(
            fix.latitude,
            fix.longitude,
            fence.latitude,
            fence.longitude,
            self.config.earth_radius_m,
        )
        valid = distance <= fence.radius_m
        if not valid:
            return GpsCheck(valid=False, confidence=0.0, distance_m=distance, reason="Outside the allowed radius")
        if fence.radius_m <= 0:
            return GpsCheck(valid=True, confidence=1.0, distance_m=distance)
        return GpsCheck(valid=True, confidence=max(0.0, 1.0 - distance / fence.radius_m), distance_m=distance)

    def validate(
        self,
        location: SessionLocation,
        wifi: Optional[Sequence[WifiNetwork]] = None,
        gps: Optional[GpsFix] = None,
    ) -> LocationDecision:
        """Fuse WiFi and GPS checks for ``location``.

        A location without any requirement is always satisfied. Otherwise the
        decision is valid when either required signal validates, and the
        reported confidence is the larger of the two signal confidences.
        """

        if not location.is_constrained:
            return LocationDecision(valid=True, confidence=1.0, location_name=location.name)

        wifi_check = self.check_wifi(location.wifi_ssids, wifi) if location.wifi_ssids else None
        gps_check = self.check_gps(location.gps, gps) if location.gps is not None else None

        valid = bool((wifi_check and wifi_check.valid) or (gps_check and gps_check.valid))
        confidence = max(
            wifi_check.confidence if wifi_check else 0.0,
            gps_check.confidence if gps_check else 0.0,
        )

        logger.debug(
            "Location %r: valid=%s confidence=%.2f",
            location.name,
            valid,
            confidence,
        )
        return LocationDecision(
            valid=valid,
            confidence=confidence,
            wifi=wifi_check,
            gps=gps_check,
            location_name=location.name,
        )

    def validate_many(
        self,
        locations: Sequence[SessionLocation],
        wifi: Optional[Sequence[WifiNetwork]] = None,
        gps: Optional[GpsFix] = None,
    ) -> MultiLocationDecision:
        valid_locations: List[Tuple[int, LocationDecision]] = []
        best: Optional[Tuple[int, LocationDecision]] = None

        for index, location in enumerate(locations):
            decision = self.validate(location, wifi, gps)
            if not decision.valid:
                continue
            valid_locations.append((index, decision))
            if best is None or decision.confidence > best[1].confidence:
                best = (index, decision)

        return MultiLocationDecision(valid_locations=tuple(valid_locations), best=best)


__all__ = [
    "GpsCheck",
    "LocationDecision",
    "LocationValidator",
    "MultiLocationDecision",
    "WifiCheck",
    "categorize_signal_strength",
    "haversine_distance",
    "is_valid_coordinate",
]
