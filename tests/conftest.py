"""Shared fixtures for the verification test suite."""

from __future__ import annotations

from typing import List

import pytest

from factories import (
    FakeDetector,
    InMemoryAttendanceStore,
    InMemoryEnrollmentStore,
    InMemorySessionStore,
    make_session,
)
from verification import monitoring
from verification.codec import BiometricTemplateCodec
from verification.config import VerificationConfig
from verification.orchestrator import VerificationService
from verification.types import ClassSession


@pytest.fixture(autouse=True)
def _reset_metrics():
    monitoring.reset_for_tests()
    yield


@pytest.fixture(scope="session")
def codec() -> BiometricTemplateCodec:
    codec = BiometricTemplateCodec(secret="unit-test-secret", salt="biometric-salt")
    codec.warm_up()
    return codec


@pytest.fixture
def detector() -> FakeDetector:
    return FakeDetector()


@pytest.fixture
def enrollment_store() -> InMemoryEnrollmentStore:
    return InMemoryEnrollmentStore()


@pytest.fixture
def attendance_store() -> InMemoryAttendanceStore:
    return InMemoryAttendanceStore()


@pytest.fixture
def session() -> ClassSession:
    return make_session()


@pytest.fixture
def service_factory(codec, detector, enrollment_store, attendance_store):
    """Build services sharing the default fakes; keyword arguments override them."""

    created: List[VerificationService] = []

    def build(**overrides) -> VerificationService:
        options = {
            "detector": detector,
            "enrollment_store": enrollment_store,
            "session_store": InMemorySessionStore(make_session()),
            "attendance_store": attendance_store,
            "codec": codec,
            "config": VerificationConfig(signal_timeout_seconds=0.5),
        }
        options.update(overrides)
        service = VerificationService(**options)
        created.append(service)
        return service

    yield build

    for service in created:
        service.close()
