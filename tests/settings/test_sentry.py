"""Tests for the Sentry initialisation helpers."""

from __future__ import annotations

import pytest
from django.core.exceptions import ImproperlyConfigured

from attendance_verification.settings import sentry


@pytest.fixture
def captured_init(monkeypatch):
    captured = {}
    monkeypatch.setattr(sentry.sentry_sdk, "init", lambda **kwargs: captured.update(kwargs))
    return captured


def test_initialize_sentry_is_a_noop_without_dsn(monkeypatch, captured_init):
    monkeypatch.delenv("SENTRY_DSN", raising=False)

    assert sentry.sentry_options_from_env() is None
    assert sentry.initialize_sentry() is False
    assert captured_init == {}


def test_initialize_sentry_configures_sdk_from_environment(monkeypatch, captured_init):
    monkeypatch.setenv("SENTRY_DSN", "https://public@example.invalid/1")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "0.25")
    monkeypatch.setenv("SENTRY_ENVIRONMENT", "staging")
    monkeypatch.delenv("SENTRY_SEND_DEFAULT_PII", raising=False)

    assert sentry.initialize_sentry() is True

    assert captured_init["dsn"] == "https://public@example.invalid/1"
    assert captured_init["environment"] == "staging"
    assert captured_init["traces_sample_rate"] == 0.25
    assert captured_init["send_default_pii"] is False
    integration_types = {type(integration) for integration in captured_init["integrations"]}
    assert integration_types == {sentry.DjangoIntegration, sentry.LoggingIntegration}


def test_before_send_scrubs_and_tags_integrity_failures(captured_init):
    options = sentry.SentryOptions(
        dsn="https://public@example.invalid/1",
        environment="test",
        release=None,
        traces_sample_rate=0.0,
        send_default_pii=False,
    )
    sentry.initialize_sentry(options)
    event = {
        "user": {"id": "s1"},
        "extra": {"event": sentry.INTEGRITY_EVENT, "descriptor": [0.1], "template_hash_prefix": "abc"},
        "breadcrumbs": {"values": [{"data": {"Embedding": [0.2], "stage": "matching"}}]},
    }

    scrubbed = captured_init["before_send"](event, None)

    assert "user" not in scrubbed
    assert scrubbed["extra"]["descriptor"] == sentry.FILTERED
    assert scrubbed["extra"]["template_hash_prefix"] == "abc"
    assert scrubbed["breadcrumbs"]["values"][0]["data"] == {"Embedding": sentry.FILTERED, "stage": "matching"}
    assert scrubbed["tags"] == {"verification.integrity": "failed", "verification.review": "required"}


@pytest.mark.parametrize("value", ["abc", "1.5", "-0.1"])
def test_invalid_sample_rate_is_rejected(monkeypatch, value):
    monkeypatch.setenv("SENTRY_DSN", "https://public@example.invalid/1")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", value)

    with pytest.raises(ImproperlyConfigured):
        sentry.sentry_options_from_env()


def test_scrub_event_filters_headers_and_request_data():
    event = {
        "request": {
            "headers": {"Authorization": "Bearer token", "accept": "image/jpeg"},
            "data": {"image": "base64...", "class_id": "CS101"},
        },
        "user": {"id": "s1"},
    }

    scrubbed = sentry.scrub_event(event, send_default_pii=True)

    assert scrubbed["request"]["headers"] == {"Authorization": sentry.FILTERED, "accept": "image/jpeg"}
    assert scrubbed["request"]["data"] == {"image": sentry.FILTERED, "class_id": "CS101"}
    assert scrubbed["user"] == {"id": "s1"}
    assert "tags" not in scrubbed
