"""Tests for the shared cryptographic helpers."""

from __future__ import annotations

import pytest
from django.core.exceptions import ImproperlyConfigured

from src.common.crypto import (
    IV_LENGTH,
    DerivedKey,
    InvalidTag,
    RequestSigner,
    SealedPayload,
    constant_time_equals,
    derive_key,
    open_sealed,
    seal,
    sha256_hex,
)

KEY = derive_key("crypto-test-secret", "crypto-test-salt")


def test_derive_key_is_deterministic_and_salt_dependent() -> None:
    assert len(KEY) == 32
    assert derive_key("crypto-test-secret", "crypto-test-salt") == KEY
    assert derive_key("crypto-test-secret", "other-salt") != KEY


def test_seal_and_open() -> None:
    sealed = seal(KEY, b"payload")

    assert len(sealed.iv) == IV_LENGTH
    assert open_sealed(KEY, sealed) == b"payload"


def test_open_rejects_modified_ciphertext() -> None:
    sealed = seal(KEY, b"payload")
    altered = SealedPayload(
        ciphertext=bytes([sealed.ciphertext[0] ^ 0x01]) + sealed.ciphertext[1:],
        iv=sealed.iv,
        tag=sealed.tag,
    )

    with pytest.raises(InvalidTag):
        open_sealed(KEY, altered)


def test_seal_requires_bytes() -> None:
    with pytest.raises(TypeError):
        seal(KEY, "text")


def test_hex_round_trip_and_length_validation() -> None:
    sealed = seal(KEY, b"payload", iv=b"\x00" * IV_LENGTH)
    encoded = sealed.to_hex()

    assert SealedPayload.from_hex(encoded["ciphertext"], encoded["iv"], encoded["tag"]) == sealed
    with pytest.raises(ValueError):
        SealedPayload.from_hex(encoded["ciphertext"], "00" * 12, encoded["tag"])
    with pytest.raises(ValueError):
        SealedPayload.from_hex(encoded["ciphertext"], encoded["iv"], "00")
    with pytest.raises(ValueError):
        SealedPayload.from_hex("not-hex", encoded["iv"], encoded["tag"])


def test_sha256_and_constant_time_equals() -> None:
    digest = sha256_hex("abc")

    assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    assert constant_time_equals(digest, sha256_hex(b"abc"))
    assert not constant_time_equals(digest, sha256_hex("abd"))


def test_derived_key_uses_overrides_before_settings(settings) -> None:
    settings.SOME_SECRET = "from-settings"
    settings.SOME_SALT = "crypto-test-salt"

    assert DerivedKey("SOME_SECRET", "SOME_SALT", secret_override="crypto-test-secret").get() == KEY


def test_derived_key_requires_configuration(settings) -> None:
    settings.SOME_SECRET = None

    with pytest.raises(ImproperlyConfigured):
        DerivedKey("SOME_SECRET", "SOME_SALT").get()


def test_request_signer_accepts_fresh_signature() -> None:
    signer = RequestSigner("signing-secret", tolerance_seconds=60)
    signature = signer.sign('{"student":"s1"}', 1_700_000_000)

    assert signer.verify('{"student":"s1"}', signature, 1_700_000_000, now=1_700_000_030)
    assert signer.verify('{"student":"s1"}', signature.upper(), 1_700_000_000, now=1_700_000_030)


def test_request_signer_rejects_stale_or_forged_signature() -> None:
    signer = RequestSigner("signing-secret", tolerance_seconds=60)
    signature = signer.sign("payload", 1_700_000_000)

    assert not signer.verify("payload", signature, 1_700_000_000, now=1_700_000_061)
    assert not signer.verify("payload!", signature, 1_700_000_000, now=1_700_000_000)
    assert not RequestSigner("other", tolerance_seconds=60).verify(
        "payload", signature, 1_700_000_000, now=1_700_000_000
    )


def test_request_signer_defaults_to_secret_key(settings) -> None:
    settings.SECRET_KEY = "django-secret"
    settings.VERIFICATION_REQUEST_SIGNATURE_TOLERANCE_SECONDS = 5

    signer = RequestSigner()

    assert signer.tolerance_seconds == 5
    assert signer.sign("x", 1) == RequestSigner("django-secret").sign("x", 1)


def test_request_signer_requires_secret(settings) -> None:
    settings.SECRET_KEY = ""

    with pytest.raises(ImproperlyConfigured):
        RequestSigner()
