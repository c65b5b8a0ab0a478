"""Blob retrieval by content address.

Reads never evaluate expiry: an expired blob stays fetchable until a
listing or sweep evicts it.
"""

from __future__ import annotations

from bss.exceptions import BlobNotFoundError, InvalidAddressError
from bss.logging import get_logger
from bss.storage.base import ObjectStore
from bss.types import (
    DEFAULT_MEDIA_TYPE,
    META_CONTENT_TYPE,
    BlobContent,
    BlobInfo,
    is_valid_sha256,
)

logger = get_logger(__name__)


def validate_address(sha256: str) -> str:
    """Return sha256 unchanged if it is 64 lowercase hex chars.

    Raises:
        InvalidAddressError: Otherwise.
    """
    if not is_valid_sha256(sha256):
        raise InvalidAddressError("Invalid hash format")
    return sha256


def split_blob_path(name: str) -> str:
    """Extract the content address from a ``<sha256>[.ext]`` path segment."""
    return name.split(".", 1)[0]


class RetrievalEngine:
    """Resolves content addresses to stored bytes and metadata."""

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    async def fetch(self, sha256: str) -> BlobContent:
        """Fetch blob bytes.

        Raises:
            InvalidAddressError: sha256 is not a valid digest.
            BlobNotFoundError: No blob under sha256.
        """
        validate_address(sha256)
        obj = await self.store.get(sha256)
        if obj is None:
            logger.debug("Blob not found", sha256=sha256[:12])
            raise BlobNotFoundError("Blob not found")
        return BlobContent(
            data=obj.data,
            media_type=obj.metadata.get(META_CONTENT_TYPE) or DEFAULT_MEDIA_TYPE,
            size=obj.size,
        )

    async def exists(self, sha256: str) -> BlobInfo:
        """Check a blob exists and return its attributes.

        Raises:
            InvalidAddressError: sha256 is not a valid digest.
            BlobNotFoundError: No blob under sha256.
        """
        validate_address(sha256)
        head = await self.store.head(sha256)
        if head is None:
            raise BlobNotFoundError("Blob not found")
        return BlobInfo(
            media_type=head.metadata.get(META_CONTENT_TYPE) or DEFAULT_MEDIA_TYPE,
            size=head.size,
            uploaded_at=head.uploaded_at,
        )
