"""
Base classes for object storage.

The engines only talk to an ObjectStore: a flat key space of immutable
byte payloads, each with a small string-to-string metadata map and the
time the store accepted it. Implementations wrap their own I/O failures
in StoreError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class ObjectHead:
    """Object attributes without the payload."""

    key: str
    size: int
    uploaded_at: datetime
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StoredObject:
    """Object attributes with the payload."""

    head: ObjectHead
    data: bytes

    @property
    def size(self) -> int:
        return self.head.size

    @property
    def metadata(self) -> dict[str, str]:
        return self.head.metadata


@dataclass(frozen=True)
class ObjectListing:
    """One page of a store enumeration.

    When ``truncated`` is True, pass ``cursor`` back to ``list`` for the
    next page.
    """

    objects: tuple[ObjectHead, ...]
    truncated: bool = False
    cursor: str | None = None


class ObjectStore(ABC):
    """Abstract interface for object store implementations."""

    async def init(self) -> None:
        """Prepare the store for use."""
        return None

    async def close(self) -> None:
        """Release resources held by the store."""
        return None

    @abstractmethod
    async def put(self, key: str, data: bytes, metadata: dict[str, str]) -> ObjectHead:
        """Store a payload under key and return its head."""
        ...

    @abstractmethod
    async def get(self, key: str) -> StoredObject | None:
        """Get an object with its payload, or None if absent."""
        ...

    @abstractmethod
    async def head(self, key: str) -> ObjectHead | None:
        """Get object attributes, or None if absent."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete an object. Return True when something was removed."""
        ...

    @abstractmethod
    async def list(
        self,
        *,
        include_metadata: bool = True,
        cursor: str | None = None,
        limit: int = 1000,
    ) -> ObjectListing:
        """List objects in key order, one page at a time."""
        ...
