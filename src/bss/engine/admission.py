"""
Blob admission: validate, address, deduplicate and persist uploads.

Content is hashed with SHA-256 and the digest is the storage key. If the
key already exists the stored blob is returned unchanged: no write, no
change of owner or upload time.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Callable

from bss.engine.records import blob_from_head
from bss.exceptions import PayloadTooLargeError, UnsupportedMediaTypeError
from bss.logging import get_logger
from bss.storage.base import ObjectStore
from bss.types import (
    META_CONTENT_TYPE,
    META_EXPIRES_AT,
    META_UPLOADER,
    AdmissionResult,
    ServerPolicy,
    utc_now,
)

logger = get_logger(__name__)


def content_address(data: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of data."""
    return hashlib.sha256(data).hexdigest()


def normalize_media_type(header_value: str | None) -> str | None:
    """Strip parameters and case from a Content-Type header value.

    ``"Image/PNG; charset=binary"`` becomes ``"image/png"``.
    """
    if not header_value:
        return None
    media_type = header_value.split(";", 1)[0].strip().lower()
    return media_type or None


class AdmissionEngine:
    """Admits uploads into the object store."""

    def __init__(self, store: ObjectStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self._clock = clock

    def check_size(self, size: int, policy: ServerPolicy) -> None:
        """Reject a payload size over the policy limit.

        Also used by the API layer against Content-Length before the
        body is read.
        """
        if size > policy.max_file_size:
            raise PayloadTooLargeError(
                f"File too large. Maximum size: {policy.max_file_size} bytes",
                {"size": size, "max_size": policy.max_file_size},
            )

    async def admit(
        self,
        data: bytes,
        media_type: str,
        uploader: str,
        policy: ServerPolicy,
        base_url: str,
    ) -> AdmissionResult:
        """Admit an upload.

        Args:
            data: Raw payload bytes.
            media_type: Declared media type of the payload.
            uploader: Verified pubkey of the uploader.
            policy: Size and media type limits.
            base_url: Origin used to build the descriptor URL.

        Returns:
            AdmissionResult with ``created`` False for duplicate content.

        Raises:
            PayloadTooLargeError: Payload exceeds policy.max_file_size.
            UnsupportedMediaTypeError: Media type not allowed.
            StoreError: The object store failed.
        """
        self.check_size(len(data), policy)

        if not policy.allows_media_type(media_type):
            raise UnsupportedMediaTypeError(
                f"Unsupported file type: {media_type}", {"media_type": media_type}
            )

        sha256 = content_address(data)

        existing = await self.store.head(sha256)
        if existing is not None:
            logger.info("Duplicate upload", sha256=sha256[:12], uploader=uploader[:12])
            return AdmissionResult(
                descriptor=blob_from_head(existing).to_descriptor(base_url),
                created=False,
            )

        expires_at = self._clock() + policy.blob_ttl
        head = await self.store.put(
            sha256,
            data,
            {
                META_CONTENT_TYPE: media_type,
                META_UPLOADER: uploader,
                META_EXPIRES_AT: expires_at.isoformat(),
            },
        )

        logger.info(
            "Stored blob",
            sha256=sha256[:12],
            size=len(data),
            media_type=media_type,
            uploader=uploader[:12],
        )
        return AdmissionResult(
            descriptor=blob_from_head(head).to_descriptor(base_url),
            created=True,
        )
