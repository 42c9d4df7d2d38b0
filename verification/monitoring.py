"""Prometheus metrics and escalation hooks for the verification engine."""

from __future__ import annotations

import datetime as _dt
import logging
import threading
import time
from collections import deque
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

_ALERTS: deque[Dict[str, Any]] = deque()
_ALERTS_LOCK = threading.Lock()


def _max_alert_history() -> int:
    value = getattr(settings, "VERIFICATION_ALERT_HISTORY", 50)
    try:
        numeric = int(value)
    except (TypeError, ValueError):  # pragma: no cover - defensive
        numeric = 50
    return max(1, numeric)


def _format_timestamp(ts: float) -> str:
    return _dt.datetime.fromtimestamp(ts, tz=_dt.timezone.utc).isoformat()


def _append_alert(event_type: str, message: str, data: Dict[str, Any]) -> None:
    payload = {
        "timestamp": _format_timestamp(time.time()),
        "type": event_type,
        "severity": "error",
        "message": message,
        "data": data,
    }
    with _ALERTS_LOCK:
        _ALERTS.append(payload)
        max_alerts = _max_alert_history()
        while len(_ALERTS) > max_alerts:
            _ALERTS.popleft()


def _build_metrics() -> None:
    global REGISTRY
    global ATTEMPT_COUNTER
    global STAGE_DURATION_HISTOGRAM
    global SIMILARITY_HISTOGRAM
    global INTEGRITY_FAILURE_COUNTER
    global SIGNAL_TIMEOUT_COUNTER
    global ENROLLMENT_COUNTER

    REGISTRY = CollectorRegistry(auto_describe=True)

    ATTEMPT_COUNTER = Counter(
        "verification_attempts",
        "Check-in attempts by outcome",
        labelnames=("outcome",),
        registry=REGISTRY,
    )
    STAGE_DURATION_HISTOGRAM = Histogram(
        "verification_stage_duration_seconds",
        "Duration of verification pipeline stages",
        labelnames=("stage",),
        buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        registry=REGISTRY,
    )
    SIMILARITY_HISTOGRAM = Histogram(
        "verification_match_similarity",
        "Best descriptor similarity observed per attempt",
        buckets=(0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0),
        registry=REGISTRY,
    )
    INTEGRITY_FAILURE_COUNTER = Counter(
        "verification_template_integrity_failures",
        "Stored templates that failed authentication or hash verification",
        registry=REGISTRY,
    )
    SIGNAL_TIMEOUT_COUNTER = Counter(
        "verification_signal_timeouts",
        "Location signals that were unavailable before the deadline",
        labelnames=("signal",),
        registry=REGISTRY,
    )
    ENROLLMENT_COUNTER = Counter(
        "verification_enrollments",
        "Enrollment attempts by status",
        labelnames=("status",),
        registry=REGISTRY,
    )


_build_metrics()


def reset_for_tests() -> None:
    """Reset alerts and metrics (intended for test suites)."""

    with _ALERTS_LOCK:
        _ALERTS.clear()
    _build_metrics()


def metric_value(name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
    """Return the current value of a sample in the verification registry."""

    return REGISTRY.get_sample_value(name, labels or {})


def record_attempt(outcome: str) -> None:
    """Count a finished check-in attempt under ``outcome`` (error kind or ``accepted``)."""

    ATTEMPT_COUNTER.labels(outcome=outcome).inc()


def record_enrollment(success: bool) -> None:
    ENROLLMENT_COUNTER.labels(status="success" if success else "failure").inc()


def observe_similarity(similarity: float) -> None:
    SIMILARITY_HISTOGRAM.observe(min(1.0, max(0.0, similarity)))


def observe_stage_duration(stage: str, duration: float) -> None:
    STAGE_DURATION_HISTOGRAM.labels(stage=stage).observe(max(0.0, duration))


def record_signal_timeout(signal: str) -> None:
    SIGNAL_TIMEOUT_COUNTER.labels(signal=signal).inc()
    logger.warning(
        "Location signal '%s' unavailable before deadline",
        signal,
        extra={"event": "signal_timeout", "signal": signal},
    )


def report_integrity_failure(user_id: str, template_hash: Optional[str]) -> None:
    """Escalate a template that failed integrity verification.

    The record is logged at ERROR, which the Sentry logging integration turns
    into an event. Only the hash prefix is included.
    """

    hash_prefix = (template_hash or "")[:12]
    INTEGRITY_FAILURE_COUNTER.inc()
    message = "Biometric template failed integrity verification"
    logger.error(
        message,
        extra={
            "event": "template_integrity_failure",
            "user_id": user_id,
            "template_hash_prefix": hash_prefix,
        },
    )
    _append_alert(
        "template_integrity_failure",
        message,
        {"user_id": user_id, "template_hash_prefix": hash_prefix},
    )


def get_alerts() -> List[Dict[str, Any]]:
    """Return escalated alerts, oldest first."""

    with _ALERTS_LOCK:
        return [dict(alert) for alert in _ALERTS]


def export_metrics() -> Tuple[bytes, str]:
    """Render the verification registry in the Prometheus exposition format."""

    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


__all__ = [
    "export_metrics",
    "get_alerts",
    "metric_value",
    "observe_similarity",
    "observe_stage_duration",
    "record_attempt",
    "record_enrollment",
    "record_signal_timeout",
    "report_integrity_failure",
    "reset_for_tests",
]
