"""Smoke tests for the production settings module."""

from __future__ import annotations

import importlib
import sys

import pytest

_SETTINGS_MODULES = [
    "attendance_verification.settings.production",
    "attendance_verification.settings.sentry",
    "attendance_verification.settings.base",
    "attendance_verification.settings",
]


def _reload_production_settings(monkeypatch):
    """Import a fresh copy of the production settings; the originals are restored afterwards."""

    for module in _SETTINGS_MODULES:
        monkeypatch.delitem(sys.modules, module, raising=False)
    return importlib.import_module("attendance_verification.settings.production")


@pytest.fixture
def production_env(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.setenv("VERIFICATION_TEMPLATE_SECRET", "production-test-secret")
    monkeypatch.setenv("DB_NAME", "ci_db")
    monkeypatch.setenv("DB_USER", "ci_user")
    monkeypatch.setenv("DB_PASSWORD", "ci_password")
    monkeypatch.setenv("DB_HOST", "postgres")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("DB_CONN_MAX_AGE", "120")
    return monkeypatch


def test_production_database_configuration(production_env):
    settings = _reload_production_settings(production_env)

    database = settings.DATABASES["default"]
    assert database["ENGINE"] == "django.db.backends.postgresql"
    assert database["NAME"] == "ci_db"
    assert database["USER"] == "ci_user"
    assert database["PASSWORD"] == "ci_password"
    assert database["HOST"] == "postgres"
    assert database["PORT"] == "6543"
    assert database["CONN_MAX_AGE"] == 120
    assert settings.DEBUG is False


def test_production_keeps_explicit_database_url(production_env):
    production_env.setenv("DATABASE_URL", "postgres://svc:pw@db.internal:5432/attendance")

    settings = _reload_production_settings(production_env)

    database = settings.DATABASES["default"]
    assert database["HOST"] == "db.internal"
    assert database["NAME"] == "attendance"


def test_verification_tunables_read_from_environment(production_env):
    production_env.setenv("VERIFICATION_QUALITY_FLOOR", "0.65")
    production_env.setenv("VERIFICATION_LATE_THRESHOLD_MINUTES", "5")
    production_env.setenv("VERIFICATION_MAX_GPS_ACCURACY_METERS", "30")

    settings = _reload_production_settings(production_env)

    assert settings.VERIFICATION_QUALITY_FLOOR == 0.65
    assert settings.VERIFICATION_LATE_THRESHOLD_MINUTES == 5
    assert settings.VERIFICATION_MAX_GPS_ACCURACY_METERS == 30.0
    assert settings.VERIFICATION_TEMPLATE_SECRET == "production-test-secret"


def test_out_of_range_tunable_is_rejected(production_env):
    from django.core.exceptions import ImproperlyConfigured

    production_env.setenv("VERIFICATION_SIMILARITY_THRESHOLD", "1.5")

    with pytest.raises(ImproperlyConfigured):
        _reload_production_settings(production_env)
