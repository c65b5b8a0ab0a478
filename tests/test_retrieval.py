"""
Tests for blob retrieval.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from bss.engine.retrieval import RetrievalEngine, split_blob_path
from bss.exceptions import BlobNotFoundError, InvalidAddressError
from bss.storage.base import ObjectStore
from bss.storage.memory import InMemoryObjectStore
from bss.types import DEFAULT_MEDIA_TYPE, META_CONTENT_TYPE

from conftest import FakeClock

DIGEST = "ab" * 32

INVALID_ADDRESSES = [
    "",
    "abc",
    "AB" * 32,
    "g" * 64,
    "a" * 63,
    "a" * 65,
    "../" + "a" * 61,
]


@pytest.fixture
def engine(memory_store: InMemoryObjectStore) -> RetrievalEngine:
    return RetrievalEngine(memory_store)


class TestFetch:
    """Tests for fetching blob bytes."""

    @pytest.mark.asyncio
    async def test_fetch_returns_bytes(
        self, engine: RetrievalEngine, memory_store: InMemoryObjectStore
    ) -> None:
        """Test that stored bytes and type come back verbatim."""
        await memory_store.put(DIGEST, b"payload", {META_CONTENT_TYPE: "image/gif"})

        content = await engine.fetch(DIGEST)

        assert content.data == b"payload"
        assert content.media_type == "image/gif"
        assert content.size == 7

    @pytest.mark.asyncio
    async def test_fetch_defaults_media_type(
        self, engine: RetrievalEngine, memory_store: InMemoryObjectStore
    ) -> None:
        """Test that missing metadata falls back to octet-stream."""
        await memory_store.put(DIGEST, b"payload", {})
        content = await engine.fetch(DIGEST)
        assert content.media_type == DEFAULT_MEDIA_TYPE

    @pytest.mark.asyncio
    async def test_fetch_missing(self, engine: RetrievalEngine) -> None:
        """Test that an unknown address is not found."""
        with pytest.raises(BlobNotFoundError):
            await engine.fetch(DIGEST)


class TestExists:
    """Tests for existence checks."""

    @pytest.mark.asyncio
    async def test_exists(
        self, engine: RetrievalEngine, memory_store: InMemoryObjectStore, clock: FakeClock
    ) -> None:
        """Test that attributes are returned for a stored blob."""
        await memory_store.put(DIGEST, b"12345", {META_CONTENT_TYPE: "text/plain"})

        info = await engine.exists(DIGEST)

        assert info.media_type == "text/plain"
        assert info.size == 5
        assert info.uploaded_at == clock()

    @pytest.mark.asyncio
    async def test_exists_missing(self, engine: RetrievalEngine) -> None:
        """Test that an unknown address is not found."""
        with pytest.raises(BlobNotFoundError):
            await engine.exists(DIGEST)


class TestAddressValidation:
    """Tests that invalid addresses never reach the store."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("address", INVALID_ADDRESSES)
    async def test_invalid_address_rejected_before_store(self, address: str) -> None:
        """Test that fetch and exists reject bad input without store access."""
        store = AsyncMock(spec=ObjectStore)
        engine = RetrievalEngine(store)

        with pytest.raises(InvalidAddressError):
            await engine.fetch(address)
        with pytest.raises(InvalidAddressError):
            await engine.exists(address)

        store.get.assert_not_called()
        store.head.assert_not_called()


class TestSplitBlobPath:
    """Tests for extracting the address from a path segment."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            (DIGEST, DIGEST),
            (f"{DIGEST}.png", DIGEST),
            (f"{DIGEST}.tar.gz", DIGEST),
        ],
    )
    def test_split(self, name: str, expected: str) -> None:
        """Test that any extension is stripped."""
        assert split_blob_path(name) == expected
