"""Centralised cryptographic helpers: key derivation, AEAD sealing and HMAC signing."""

from __future__ import annotations

import hashlib
import hmac
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

BytesLike = Union[bytes, bytearray, memoryview]

KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16

# Node-compatible scrypt cost parameters.
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


def _coerce_bytes(value: BytesLike | str) -> bytes:
    """Normalise text or bytes-like input to ``bytes``."""

    if isinstance(value, str):
        return value.encode()
    return bytes(value)


def derive_key(secret: BytesLike | str, salt: BytesLike | str) -> bytes:
    """Derive a 256-bit key from ``secret`` and ``salt`` with scrypt."""

    kdf = Scrypt(salt=_coerce_bytes(salt), length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(_coerce_bytes(secret))


@dataclass(frozen=True, slots=True)
class SealedPayload:
    """AES-256-GCM output split into ciphertext, IV and authentication tag."""

    ciphertext: bytes
    iv: bytes
    tag: bytes

    def to_hex(self) -> Dict[str, str]:
        return {
            "ciphertext": self.ciphertext.hex(),
            "iv": self.iv.hex(),
            "tag": self.tag.hex(),
        }

    @classmethod
    def from_hex(cls, ciphertext: str, iv: str, tag: str) -> "SealedPayload":
        """Decode hex fields, rejecting malformed encodings and wrong lengths."""

        payload = cls(
            ciphertext=bytes.fromhex(ciphertext),
            iv=bytes.fromhex(iv),
            tag=bytes.fromhex(tag),
        )
        if len(payload.iv) != IV_LENGTH:
            raise ValueError(f"IV must be {IV_LENGTH} bytes, got {len(payload.iv)}")
        if len(payload.tag) != TAG_LENGTH:
            raise ValueError(f"Authentication tag must be {TAG_LENGTH} bytes, got {len(payload.tag)}")
        return payload


def seal(key: bytes, plaintext: BytesLike, *, iv: Optional[bytes] = None) -> SealedPayload:
    """Encrypt ``plaintext`` with AES-256-GCM under a fresh random 16-byte IV."""

    if not isinstance(plaintext, (bytes, bytearray, memoryview)):
        raise TypeError("seal expects a bytes-like object")
    nonce = iv if iv is not None else os.urandom(IV_LENGTH)
    output = AESGCM(key).encrypt(nonce, bytes(plaintext), None)
    return SealedPayload(ciphertext=output[:-TAG_LENGTH], iv=nonce, tag=output[-TAG_LENGTH:])


def open_sealed(key: bytes, payload: SealedPayload) -> bytes:
    """Decrypt and authenticate ``payload``.

    Raises:
        InvalidTag: When the ciphertext, IV or tag was altered or the key is wrong.
    """

    return AESGCM(key).decrypt(payload.iv, payload.ciphertext + payload.tag, None)


def sha256_hex(data: BytesLike | str) -> str:
    return hashlib.sha256(_coerce_bytes(data)).hexdigest()


def constant_time_equals(left: BytesLike | str, right: BytesLike | str) -> bool:
    """Compare secrets or digests without short-circuiting on the first mismatch."""

    return hmac.compare_digest(_coerce_bytes(left), _coerce_bytes(right))


@dataclass(slots=True)
class DerivedKey:
    """Lazily derive a key from Django settings, exactly once per instance."""

    secret_setting: str
    salt_setting: str
    secret_override: BytesLike | str | None = None
    salt_override: BytesLike | str | None = None
    _key: bytes | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def _resolve(self, override: BytesLike | str | None, setting_name: str) -> bytes:
        value = override
        if value is None:
            value = getattr(settings, setting_name, None)
        if value is None or value == "":
            raise ImproperlyConfigured(f"{setting_name} is not configured.")
        return _coerce_bytes(value)

    def get(self) -> bytes:
        if self._key is None:
            with self._lock:
                if self._key is None:
                    secret = self._resolve(self.secret_override, self.secret_setting)
                    salt = self._resolve(self.salt_override, self.salt_setting)
                    self._key = derive_key(secret, salt)
        return self._key


class RequestSigner:
    """HMAC-SHA256 signatures over ``"{timestamp}.{payload}"``.

    Used for any signed hand-off with external services; verification is
    constant-time and rejects timestamps outside the tolerance window.
    """

    def __init__(
        self,
        secret: BytesLike | str | None = None,
        *,
        tolerance_seconds: Optional[int] = None,
    ) -> None:
        if secret is None:
            secret = getattr(settings, "SECRET_KEY", None)
        if not secret:
            raise ImproperlyConfigured("A signing secret is required.")
        self._secret = _coerce_bytes(secret)
        if tolerance_seconds is None:
            tolerance_seconds = int(
                getattr(settings, "VERIFICATION_REQUEST_SIGNATURE_TOLERANCE_SECONDS", 300)
            )
        self.tolerance_seconds = tolerance_seconds

    def sign(self, payload: BytesLike | str, timestamp: int) -> str:
        message = f"{int(timestamp)}.".encode() + _coerce_bytes(payload)
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def verify(
        self,
        payload: BytesLike | str,
        signature: str,
        timestamp: int,
        *,
        now: Optional[float] = None,
    ) -> bool:
        current = time.time() if now is None else now
        if abs(current - int(timestamp)) > self.tolerance_seconds:
            return False
        expected = self.sign(payload, timestamp)
        return constant_time_equals(signature.lower(), expected)


__all__ = [
    "DerivedKey",
    "IV_LENGTH",
    "InvalidTag",
    "KEY_LENGTH",
    "RequestSigner",
    "SealedPayload",
    "TAG_LENGTH",
    "constant_time_equals",
    "derive_key",
    "open_sealed",
    "seal",
    "sha256_hex",
]
