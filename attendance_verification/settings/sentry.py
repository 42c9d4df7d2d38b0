"""Sentry wiring for production deployments.

Sentry is the escalation channel for biometric template integrity failures:
the logging integration turns ERROR records from the verification engine
into events, and those events are tagged so operators can route them to
manual review. Nothing that could carry biometric material leaves the
process.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from django.core.exceptions import ImproperlyConfigured

import sentry_sdk
from sentry_sdk.integrations.django import DjangoIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from . import base as base_settings

__all__ = ["SentryOptions", "initialize_sentry", "scrub_event", "sentry_options_from_env"]

FILTERED = "[Filtered]"

_SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie", "x-signature"})
# Keys that may hold descriptors, key material or raw captures.
_BIOMETRIC_KEYS = frozenset({"descriptor", "embedding", "plaintext", "template", "image", "secret"})

INTEGRITY_EVENT = "template_integrity_failure"


@dataclass(frozen=True)
class SentryOptions:
    dsn: str
    environment: str
    release: Optional[str]
    traces_sample_rate: float
    send_default_pii: bool


def _sample_rate(var_name: str, default: float) -> float:
    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ImproperlyConfigured(f"{var_name} must be a number between 0.0 and 1.0.") from exc
    if not 0.0 <= value <= 1.0:
        raise ImproperlyConfigured(f"{var_name} must be between 0.0 and 1.0 when provided.")
    return value


def sentry_options_from_env() -> Optional[SentryOptions]:
    """Resolve Sentry options, or ``None`` when no DSN is configured."""

    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        return None
    return SentryOptions(
        dsn=dsn,
        environment=os.environ.get("SENTRY_ENVIRONMENT", "production"),
        release=os.environ.get("SENTRY_RELEASE"),
        traces_sample_rate=_sample_rate("SENTRY_TRACES_SAMPLE_RATE", default=0.0),
        send_default_pii=base_settings._get_bool_env("SENTRY_SEND_DEFAULT_PII", default=False),
    )


def _filter_mapping(values: Any, sensitive: frozenset) -> None:
    if not isinstance(values, dict):
        return
    for key in list(values):
        if str(key).lower() in sensitive:
            values[key] = FILTERED


def scrub_event(event: dict[str, Any], send_default_pii: bool) -> dict[str, Any]:
    """Remove credentials and biometric payloads from ``event`` and tag integrity failures."""

    request = event.get("request")
    if isinstance(request, dict):
        _filter_mapping(request.get("headers"), _SENSITIVE_HEADERS)
        _filter_mapping(request.get("data"), _BIOMETRIC_KEYS)

    extra = event.get("extra")
    _filter_mapping(extra, _BIOMETRIC_KEYS)

    breadcrumbs = event.get("breadcrumbs")
    if isinstance(breadcrumbs, dict):
        for crumb in breadcrumbs.get("values", []):
            _filter_mapping(crumb.get("data"), _BIOMETRIC_KEYS)

    if isinstance(extra, dict) and extra.get("event") == INTEGRITY_EVENT:
        tags = event.setdefault("tags", {})
        tags["verification.integrity"] = "failed"
        tags["verification.review"] = "required"

    if not send_default_pii:
        event.pop("user", None)
    return event


def initialize_sentry(options: Optional[SentryOptions] = None) -> bool:
    """Initialise the SDK; returns ``False`` when Sentry is not configured."""

    options = options or sentry_options_from_env()
    if options is None:
        return False

    def _before_send(event: dict[str, Any], _hint: object | None) -> dict[str, Any]:
        return scrub_event(event, options.send_default_pii)

    sentry_sdk.init(
        dsn=options.dsn,
        environment=options.environment,
        release=options.release,
        integrations=[
            DjangoIntegration(transaction_style="url"),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=options.traces_sample_rate,
        send_default_pii=options.send_default_pii,
        before_send=_before_send,
    )
    return True
