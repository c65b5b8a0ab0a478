"""InMemoryObjectStore: dict-based object storage for development and testing."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from bss.storage.base import ObjectHead, ObjectListing, ObjectStore, StoredObject
from bss.types import utc_now


class InMemoryObjectStore(ObjectStore):
    """In-memory object store.

    The clock is injectable so tests can control upload timestamps.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._heads: dict[str, ObjectHead] = {}
        self._data: dict[str, bytes] = {}
        self.put_count = 0

    def __contains__(self, key: object) -> bool:
        return key in self._heads

    def __len__(self) -> int:
        return len(self._heads)

    async def put(self, key: str, data: bytes, metadata: dict[str, str]) -> ObjectHead:
        head = ObjectHead(
            key=key,
            size=len(data),
            uploaded_at=self._clock(),
            metadata=dict(metadata),
        )
        self._heads[key] = head
        self._data[key] = bytes(data)
        self.put_count += 1
        return head

    async def get(self, key: str) -> StoredObject | None:
        head = self._heads.get(key)
        if head is None:
            return None
        return StoredObject(head=head, data=self._data[key])

    async def head(self, key: str) -> ObjectHead | None:
        return self._heads.get(key)

    async def delete(self, key: str) -> bool:
        self._data.pop(key, None)
        return self._heads.pop(key, None) is not None

    async def list(
        self,
        *,
        include_metadata: bool = True,
        cursor: str | None = None,
        limit: int = 1000,
    ) -> ObjectListing:
        keys = sorted(k for k in self._heads if cursor is None or k > cursor)
        page = keys[:limit]
        objects = tuple(
            self._heads[k]
            if include_metadata
            else ObjectHead(key=k, size=self._heads[k].size, uploaded_at=self._heads[k].uploaded_at)
            for k in page
        )
        truncated = len(keys) > limit
        return ObjectListing(
            objects=objects,
            truncated=truncated,
            cursor=page[-1] if truncated and page else None,
        )
