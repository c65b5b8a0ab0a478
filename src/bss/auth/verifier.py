"""
Authorization credential verification.

Clients authorize mutating requests with a Nostr event of kind 24242,
base64-encoded in the header ``Authorization: Nostr <base64(json)>``.

Checks, in order:
1. Presence (an absent header is fine when the credential is optional)
2. Scheme prefix and base64/JSON envelope
3. Event kind
4. Required fields (pubkey, sig, created_at) and tag shape
5. Pubkey allow-list
6. Freshness (created_at no more than max age in the past)
7. Signature, via the configured SignatureVerifier
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime
from typing import Any, Callable, Protocol, runtime_checkable

import orjson

from bss.exceptions import (
    CredentialExpiredError,
    IdentityNotAuthorizedError,
    IncompleteCredentialError,
    MalformedCredentialError,
    MissingCredentialError,
    WrongCredentialKindError,
)
from bss.logging import get_logger
from bss.types import (
    AUTH_EVENT_KIND,
    AUTH_SCHEME,
    AuthorizationEvent,
    ServerPolicy,
    VerifiedIdentity,
    utc_now,
)

logger = get_logger(__name__)

_REQUIRED_FIELDS = ("pubkey", "sig", "created_at")


@runtime_checkable
class SignatureVerifier(Protocol):
    """Checks that an event's signature was produced by its pubkey.

    Implementations raise InvalidSignatureError on rejection.
    """

    def verify(self, event: AuthorizationEvent) -> None:
        ...


class NoopSignatureVerifier:
    """Accepts every signature.

    Only the structure of the event is validated, so the claimed pubkey
    is not proven. Deployments that need real authentication must plug
    in a Schnorr (BIP-340) verifier here.
    """

    def verify(self, event: AuthorizationEvent) -> None:
        return None


def decode_envelope(encoded: str) -> dict[str, Any]:
    """Decode a base64 (standard or URL-safe) JSON object.

    Raises:
        MalformedCredentialError: If the payload is not base64 JSON object.
    """
    normalized = encoded.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        raw = base64.b64decode(normalized, validate=True)
        data = orjson.loads(raw)
    except (binascii.Error, ValueError) as e:
        raise MalformedCredentialError("Invalid authorization format") from e

    if not isinstance(data, dict):
        raise MalformedCredentialError("Invalid authorization format")
    return data


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == 0


class IdentityVerifier:
    """Validates authorization headers and extracts the claimed identity."""

    def __init__(
        self,
        signature_verifier: SignatureVerifier | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.signature_verifier = signature_verifier or NoopSignatureVerifier()
        self._clock = clock

    def verify(
        self,
        header_value: str | None,
        policy: ServerPolicy,
        required: bool = True,
    ) -> VerifiedIdentity:
        """Verify an Authorization header value.

        Args:
            header_value: Raw header value, or None when absent.
            policy: Allow-list and credential age limits.
            required: Whether an absent header is an error.

        Returns:
            VerifiedIdentity; anonymous when no header was sent and none required.

        Raises:
            AuthenticationError: A subclass naming the failed check.
        """
        if not header_value:
            if not required:
                return VerifiedIdentity(pubkey=None)
            raise MissingCredentialError("Authorization header required")

        prefix = f"{AUTH_SCHEME} "
        if not header_value.startswith(prefix):
            raise MalformedCredentialError("Invalid authorization format")

        data = decode_envelope(header_value[len(prefix):])

        kind = data.get("kind")
        if isinstance(kind, bool) or kind != AUTH_EVENT_KIND:
            raise WrongCredentialKindError("Invalid event kind", {"kind": kind})

        missing = [name for name in _REQUIRED_FIELDS if _is_blank(data.get(name))]
        if missing:
            raise IncompleteCredentialError("Invalid event structure", {"missing": missing})

        if not isinstance(data["pubkey"], str) or not isinstance(data["sig"], str):
            raise MalformedCredentialError("Invalid authorization format")
        created_at = data["created_at"]
        if isinstance(created_at, bool) or not isinstance(created_at, (int, float)):
            raise MalformedCredentialError("Invalid authorization format")

        tags = data.get("tags")
        if tags is not None and (
            not isinstance(tags, list) or not all(isinstance(tag, list) for tag in tags)
        ):
            raise MalformedCredentialError("Invalid authorization format")

        event = AuthorizationEvent.from_dict(data)

        if not policy.allows_pubkey(event.pubkey):
            raise IdentityNotAuthorizedError("Pubkey not authorized")

        age = int(self._clock().timestamp()) - event.created_at
        if age > policy.auth_max_age_seconds:
            raise CredentialExpiredError("Event too old", {"age_seconds": age})

        self.signature_verifier.verify(event)

        logger.debug(
            "Authorization accepted", pubkey=event.pubkey[:12], action=event.action
        )
        return VerifiedIdentity(pubkey=event.pubkey, event=event)
