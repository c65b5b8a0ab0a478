"""
Ownership and lifecycle: listing by owner, expiry eviction, owner-only deletion.

Expiry is decided by the pure predicate ``is_expired``; eviction is the
separate, idempotent action taken by every enumeration path (owner
listing and the periodic sweep) when the predicate holds.
"""

from __future__ import annotations

from datetime import datetime
from typing import AsyncIterator, Callable

from bss.engine.records import blob_from_head
from bss.engine.retrieval import validate_address
from bss.exceptions import BlobNotFoundError, InvalidIdentityError, NotOwnerError, StoreError
from bss.logging import get_logger
from bss.storage.base import ObjectStore
from bss.types import Blob, BlobDescriptor, SweepReport, is_valid_pubkey, utc_now

logger = get_logger(__name__)

LIST_PAGE_SIZE = 1000


def is_expired(blob: Blob, now: datetime) -> bool:
    """Return whether a blob's retention window has passed.

    Blobs without a readable expiry never expire.
    """
    return blob.expires_at is not None and blob.expires_at < now


def validate_owner(owner: str) -> str:
    """Return owner unchanged if it is a 64-char lowercase hex pubkey.

    Raises:
        InvalidIdentityError: Otherwise.
    """
    if not is_valid_pubkey(owner):
        raise InvalidIdentityError("Invalid pubkey format")
    return owner


class LifecycleEngine:
    """Lists blobs by owner, evicts expired blobs and deletes on owner request."""

    def __init__(
        self,
        store: ObjectStore,
        clock: Callable[[], datetime] = utc_now,
        page_size: int = LIST_PAGE_SIZE,
    ) -> None:
        self.store = store
        self._clock = clock
        self.page_size = page_size

    async def _evict(self, blob: Blob, report: SweepReport) -> None:
        """Delete one expired blob; a failure leaves it for the next pass."""
        try:
            await self.store.delete(blob.sha256)
        except StoreError as e:
            logger.warning("Failed to evict expired blob", sha256=blob.sha256, error=str(e))
            report.failed.append(blob.sha256)
            return
        logger.info("Evicted expired blob", sha256=blob.sha256[:12])
        report.evicted.append(blob.sha256)

    async def scan(self, report: SweepReport) -> AsyncIterator[Blob]:
        """Enumerate live blobs page by page, evicting expired ones on the way.

        Args:
            report: Collects examined/evicted/failed counts.

        Yields:
            Every blob that is not expired.
        """
        now = self._clock()
        cursor: str | None = None
        while True:
            listing = await self.store.list(
                include_metadata=True, cursor=cursor, limit=self.page_size
            )
            for head in listing.objects:
                report.examined += 1
                blob = blob_from_head(head)
                if is_expired(blob, now):
                    await self._evict(blob, report)
                    continue
                yield blob
            if not listing.truncated or listing.cursor is None:
                break
            cursor = listing.cursor

    async def list_by_owner(self, owner: str, base_url: str) -> list[BlobDescriptor]:
        """List non-expired blobs uploaded by owner.

        Order follows store enumeration and is not guaranteed.

        Raises:
            InvalidIdentityError: owner is not a 64-char hex pubkey.
            StoreError: Enumeration failed.
        """
        validate_owner(owner)

        report = SweepReport()
        descriptors = [
            blob.to_descriptor(base_url)
            async for blob in self.scan(report)
            if blob.owner == owner
        ]
        logger.info(
            "Listed blobs",
            owner=owner[:12],
            returned=len(descriptors),
            **report.to_dict(),
        )
        return descriptors

    async def sweep(self) -> SweepReport:
        """Evict every expired blob in the store."""
        report = SweepReport()
        async for _ in self.scan(report):
            pass
        logger.info("Expiry sweep complete", **report.to_dict())
        return report

    async def delete(self, sha256: str, requester: str) -> None:
        """Delete a blob on behalf of its owner.

        Raises:
            InvalidAddressError: sha256 is not a valid digest.
            BlobNotFoundError: No blob under sha256.
            NotOwnerError: requester did not upload the blob.
        """
        validate_address(sha256)
        head = await self.store.head(sha256)
        if head is None:
            raise BlobNotFoundError("Blob not found")

        blob = blob_from_head(head)
        if blob.owner != requester:
            logger.warning(
                "Delete refused for non-owner",
                sha256=sha256[:12],
                requester=requester[:12],
            )
            raise NotOwnerError("Unauthorized - not the uploader", {"sha256": sha256})

        await self.store.delete(sha256)
        logger.info("Deleted blob", sha256=sha256[:12], owner=requester[:12])
