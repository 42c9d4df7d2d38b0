"""Biometric template codec.

Descriptors are serialised as compact JSON arrays, encrypted with AES-256-GCM
under a key derived once (scrypt) from the service secret and a fixed domain
salt, and stored hex-encoded next to a SHA-256 digest of the plaintext. The
digest supports duplicate detection and integrity checks without decrypting.

Decryption fails closed: any authentication failure, malformed field or
unexpected plaintext raises :class:`DecryptionIntegrityFailure`; no partial
or best-effort descriptor is ever returned.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import numpy as np

from src.common.crypto import (
    BytesLike,
    DerivedKey,
    InvalidTag,
    SealedPayload,
    constant_time_equals,
    open_sealed,
    seal,
    sha256_hex,
)

from .errors import DecryptionIntegrityFailure, DescriptorLengthError
from .types import EncryptedTemplate, as_descriptor

logger = logging.getLogger(__name__)


def serialize_descriptor(descriptor: np.ndarray) -> bytes:
    """Return the canonical JSON encoding of a descriptor."""

    vector = as_descriptor(descriptor)
    return json.dumps([float(value) for value in vector], separators=(",", ":")).encode()


def template_hash(descriptor: np.ndarray) -> str:
    """One-way SHA-256 digest of the canonical descriptor encoding."""

    return sha256_hex(serialize_descriptor(descriptor))


def short_hash(value: str) -> str:
    """Abbreviated digest that is safe to put in log records."""

    return value[:12]


class BiometricTemplateCodec:
    """Encrypt, decrypt and fingerprint face descriptors."""

    def __init__(
        self,
        secret: BytesLike | str | None = None,
        salt: BytesLike | str | None = None,
    ) -> None:
        self._key = DerivedKey(
            "VERIFICATION_TEMPLATE_SECRET",
            "VERIFICATION_TEMPLATE_SALT",
            secret_override=secret,
            salt_override=salt,
        )

    def warm_up(self) -> None:
        """Derive the key eagerly so the first request does not pay for scrypt."""

        self._key.get()

    def encrypt(self, descriptor: np.ndarray) -> EncryptedTemplate:
        plaintext = serialize_descriptor(descriptor)
        sealed = seal(self._key.get(), plaintext)
        return EncryptedTemplate(
            ciphertext=sealed.ciphertext.hex(),
            iv=sealed.iv.hex(),
            auth_tag=sealed.tag.hex(),
            template_hash=sha256_hex(plaintext),
        )

    def decrypt(self, template: EncryptedTemplate, *, verify_hash: bool = True) -> np.ndarray:
        """Decrypt ``template`` back into a descriptor.

        Args:
            template: Stored template.
            verify_hash: Also compare the plaintext digest with the stored
                ``template_hash`` when one is present.

        Raises:
            DecryptionIntegrityFailure: On tag mismatch, malformed fields,
                unparseable plaintext or digest mismatch.
        """

        try:
            payload = SealedPayload.from_hex(template.ciphertext, template.iv, template.auth_tag)
        except ValueError as exc:
            raise DecryptionIntegrityFailure(
                "Stored template fields are malformed", template_hash=template.template_hash
            ) from exc

        try:
            plaintext = open_sealed(self._key.get(), payload)
        except InvalidTag as exc:
            raise DecryptionIntegrityFailure(
                "Template authentication failed", template_hash=template.template_hash
            ) from exc

        try:
            descriptor = as_descriptor(json.loads(plaintext))
        except (ValueError, DescriptorLengthError) as exc:
            # Authenticated but not a descriptor: written with this key by something else.
            raise DecryptionIntegrityFailure(
                "Decrypted template is not a valid descriptor", template_hash=template.template_hash
            ) from exc

        if verify_hash and template.template_hash:
            if not constant_time_equals(sha256_hex(plaintext), template.template_hash.lower()):
                raise DecryptionIntegrityFailure(
                    "Template digest does not match its contents",
                    template_hash=template.template_hash,
                )

        return descriptor

    def verify_integrity(self, descriptor: np.ndarray, expected_hash: str) -> bool:
        """Recompute the digest of ``descriptor`` and compare in constant time."""

        try:
            computed = template_hash(descriptor)
        except (ValueError, DescriptorLengthError):
            return False
        return constant_time_equals(computed, expected_hash.lower())

    def try_decrypt(self, template: EncryptedTemplate) -> Optional[np.ndarray]:
        """Decrypt ``template`` or log the integrity failure and return ``None``."""

        try:
            return self.decrypt(template)
        except DecryptionIntegrityFailure:
            logger.error(
                "Biometric template %s failed integrity verification",
                short_hash(template.template_hash),
            )
            return None


__all__ = [
    "BiometricTemplateCodec",
    "serialize_descriptor",
    "short_hash",
    "template_hash",
]
