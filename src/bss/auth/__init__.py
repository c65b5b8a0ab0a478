"""Authorization event verification."""

from bss.auth.verifier import (
    IdentityVerifier,
    NoopSignatureVerifier,
    SignatureVerifier,
    decode_envelope,
)

__all__ = [
    "IdentityVerifier",
    "NoopSignatureVerifier",
    "SignatureVerifier",
    "decode_envelope",
]
