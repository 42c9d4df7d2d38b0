"""Common cryptographic utilities shared across the project."""

from .crypto import (
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

__all__ = [
    "derive_key",
    "seal",
    "open_sealed",
    "sha256_hex",
    "constant_time_equals",
    "DerivedKey",
    "SealedPayload",
    "RequestSigner",
    "InvalidTag",
]
