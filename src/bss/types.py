"""
Core types for the blob storage server.

This module defines the fundamental data structures used throughout the system:
- ServerPolicy, the immutable configuration value threaded into engine calls
- Frozen dataclasses for blobs and their wire descriptors
- AuthorizationEvent, the decoded kind 24242 credential
- Helper functions for ID generation, timestamps and address validation
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from uuid6 import uuid7

AUTH_EVENT_KIND = 24242
AUTH_SCHEME = "Nostr"
DEFAULT_MEDIA_TYPE = "application/octet-stream"
BLOB_TTL = timedelta(hours=24)
AUTH_MAX_AGE_SECONDS = 300

DEFAULT_ALLOWED_MIME_TYPES: tuple[str, ...] = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/webm",
    "video/quicktime",
    "audio/mpeg",
    "audio/wav",
    "audio/ogg",
    "application/pdf",
    "text/plain",
)
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

MIME_TO_EXT: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "audio/ogg": ".ogg",
    "application/pdf": ".pdf",
    "text/plain": ".txt",
}

# Object store metadata keys
META_CONTENT_TYPE = "content_type"
META_UPLOADER = "uploader"
META_EXPIRES_AT = "expires_at"

_HEX64 = re.compile(r"^[a-f0-9]{64}$")


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "req")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def is_valid_sha256(value: str) -> bool:
    """Check that a value is a lowercase hex SHA-256 digest."""
    return bool(_HEX64.match(value))


def is_valid_pubkey(value: str) -> bool:
    """Check that a value is a 64-char lowercase hex public key."""
    return bool(_HEX64.match(value))


def extension_for(media_type: str | None) -> str:
    """Return the file extension for a media type, or "" if unknown."""
    if not media_type:
        return ""
    return MIME_TO_EXT.get(media_type, "")


def blob_url(base_url: str, sha256: str, media_type: str | None) -> str:
    """Build the public retrieval URL for a blob."""
    return f"{base_url.rstrip('/')}/{sha256}{extension_for(media_type)}"


@dataclass(frozen=True)
class ServerPolicy:
    """Immutable admission and authorization policy.

    Built from Settings once and passed explicitly to every engine call,
    so tests can vary limits without touching the environment.
    """

    allowed_pubkeys: frozenset[str] = frozenset()
    allowed_mime_types: tuple[str, ...] = DEFAULT_ALLOWED_MIME_TYPES
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    blob_ttl: timedelta = BLOB_TTL
    auth_max_age_seconds: int = AUTH_MAX_AGE_SECONDS

    def allows_pubkey(self, pubkey: str) -> bool:
        """An empty allow-list admits every identity."""
        return not self.allowed_pubkeys or pubkey in self.allowed_pubkeys

    def allows_media_type(self, media_type: str) -> bool:
        return media_type in self.allowed_mime_types


@dataclass(frozen=True)
class AuthorizationEvent:
    """Decoded kind 24242 authorization event.

    Tags are kept so the requested action (the ``t`` tag) can be logged
    and checked by signature verifiers.
    """

    pubkey: str
    sig: str
    created_at: int
    kind: int = AUTH_EVENT_KIND
    tags: tuple[tuple[str, ...], ...] = ()

    @property
    def action(self) -> str | None:
        """Value of the first ``t`` tag, e.g. "upload" or "delete"."""
        for tag in self.tags:
            if len(tag) >= 2 and tag[0] == "t":
                return tag[1]
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthorizationEvent:
        """Build from a structurally checked event object.

        ``tags`` must already be a list of lists.
        """
        return cls(
            pubkey=data["pubkey"],
            sig=data["sig"],
            created_at=int(data["created_at"]),
            kind=data["kind"],
            tags=tuple(tuple(str(part) for part in tag) for tag in data.get("tags") or []),
        )


@dataclass(frozen=True)
class VerifiedIdentity:
    """Outcome of credential verification.

    ``pubkey`` is None when no credential was supplied and none was required.
    """

    pubkey: str | None
    event: AuthorizationEvent | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.pubkey is None


@dataclass(frozen=True)
class Blob:
    """A stored blob as reconstructed from object store metadata."""

    sha256: str
    size: int
    media_type: str
    owner: str | None
    created_at: datetime
    expires_at: datetime | None = None

    def to_descriptor(self, base_url: str) -> BlobDescriptor:
        return BlobDescriptor(
            sha256=self.sha256,
            size=self.size,
            type=self.media_type,
            uploaded=int(self.created_at.timestamp()),
            url=blob_url(base_url, self.sha256, self.media_type),
        )


@dataclass(frozen=True)
class BlobDescriptor:
    """Blob descriptor as returned to clients (BUD-02)."""

    sha256: str
    size: int
    type: str
    uploaded: int
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "sha256": self.sha256,
            "size": self.size,
            "type": self.type,
            "uploaded": self.uploaded,
            "url": self.url,
        }


@dataclass(frozen=True)
class AdmissionResult:
    """Result of admitting an upload.

    ``created`` is False when the content address already existed and
    the stored blob was returned unchanged.
    """

    descriptor: BlobDescriptor
    created: bool


@dataclass(frozen=True)
class BlobContent:
    """Bytes and media type of a fetched blob."""

    data: bytes
    media_type: str
    size: int


@dataclass(frozen=True)
class BlobInfo:
    """Existence check result for a blob."""

    media_type: str
    size: int
    uploaded_at: datetime


@dataclass
class SweepReport:
    """Result of one expiry sweep over the object store."""

    examined: int = 0
    evicted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "examined": self.examined,
            "evicted": len(self.evicted),
            "failed": len(self.failed),
        }
