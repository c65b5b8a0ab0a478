"""Conversion between object store heads and Blob records."""

from __future__ import annotations

from datetime import datetime, timezone

from bss.storage.base import ObjectHead
from bss.types import (
    DEFAULT_MEDIA_TYPE,
    META_CONTENT_TYPE,
    META_EXPIRES_AT,
    META_UPLOADER,
    Blob,
)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp into aware UTC, or None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def blob_from_head(head: ObjectHead) -> Blob:
    metadata = head.metadata
    return Blob(
        sha256=head.key,
        size=head.size,
        media_type=metadata.get(META_CONTENT_TYPE) or DEFAULT_MEDIA_TYPE,
        owner=metadata.get(META_UPLOADER),
        created_at=head.uploaded_at,
        expires_at=parse_timestamp(metadata.get(META_EXPIRES_AT)),
    )
