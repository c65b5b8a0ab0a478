"""
Local object store for blob payloads.

Payloads live as files under {root}/blobs/{key[:2]}/{key}; size, upload
time and metadata live in SQLite at {root}/objects.db.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable

import aiosqlite
import orjson

from bss.exceptions import StoreError
from bss.logging import get_logger
from bss.storage.base import ObjectHead, ObjectListing, ObjectStore, StoredObject
from bss.types import utc_now

logger = get_logger(__name__)


def _write_atomic(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileObjectStore(ObjectStore):
    """Filesystem + SQLite object store.

    Concurrent puts of the same key keep the first committed metadata row.
    """

    def __init__(
        self,
        root: str | Path,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            root: Base directory for payloads and the metadata database.
            clock: Source of upload timestamps.
        """
        self.root = Path(root)
        self.blobs_dir = self.root / "blobs"
        self.db_path = self.root / "objects.db"
        self._clock = clock
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Create directories and database schema."""
        if self._db:
            return
        self.blobs_dir.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS objects (
                key TEXT PRIMARY KEY,
                size INTEGER NOT NULL,
                uploaded_at TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT '{}'
            )
        """)
        await self._db.commit()
        logger.info("Object store initialized", root=str(self.root))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("FileObjectStore not initialized. Call init() first.")
        return self._db

    def _blob_path(self, key: str) -> Path:
        """Get the payload path for a key.

        Uses first 2 chars as subdirectory for better filesystem performance.
        """
        return self.blobs_dir / key[:2] / key

    def _row_to_head(self, row: aiosqlite.Row, include_metadata: bool = True) -> ObjectHead:
        return ObjectHead(
            key=row["key"],
            size=row["size"],
            uploaded_at=datetime.fromisoformat(row["uploaded_at"]),
            metadata=orjson.loads(row["metadata"]) if include_metadata else {},
        )

    async def _fetch_head(self, key: str) -> ObjectHead | None:
        async with self._conn().execute(
            "SELECT * FROM objects WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_head(row) if row else None

    async def put(self, key: str, data: bytes, metadata: dict[str, str]) -> ObjectHead:
        db = self._conn()
        try:
            await asyncio.to_thread(_write_atomic, self._blob_path(key), data)
            await db.execute(
                """
                INSERT OR IGNORE INTO objects (key, size, uploaded_at, metadata)
                VALUES (?, ?, ?, ?)
                """,
                (
                    key,
                    len(data),
                    self._clock().isoformat(),
                    orjson.dumps(metadata).decode("utf-8"),
                ),
            )
            await db.commit()
            head = await self._fetch_head(key)
        except (OSError, aiosqlite.Error) as e:
            raise StoreError("Failed to store object", {"operation": "put", "key": key}) from e

        if head is None:
            raise StoreError("Object vanished after put", {"operation": "put", "key": key})
        logger.debug("Stored object", key=key[:12], size=len(data))
        return head

    async def get(self, key: str) -> StoredObject | None:
        try:
            head = await self._fetch_head(key)
            if head is None:
                return None
            data = await asyncio.to_thread(self._blob_path(key).read_bytes)
        except FileNotFoundError:
            logger.warning("Payload file missing for indexed object", key=key)
            return None
        except (OSError, aiosqlite.Error) as e:
            raise StoreError("Failed to read object", {"operation": "get", "key": key}) from e
        return StoredObject(head=head, data=data)

    async def head(self, key: str) -> ObjectHead | None:
        try:
            return await self._fetch_head(key)
        except aiosqlite.Error as e:
            raise StoreError("Failed to read object head", {"operation": "head", "key": key}) from e

    async def delete(self, key: str) -> bool:
        db = self._conn()
        try:
            cursor = await db.execute("DELETE FROM objects WHERE key = ?", (key,))
            await db.commit()
            removed = cursor.rowcount > 0
            await asyncio.to_thread(self._blob_path(key).unlink, missing_ok=True)
        except (OSError, aiosqlite.Error) as e:
            raise StoreError("Failed to delete object", {"operation": "delete", "key": key}) from e
        return removed

    async def list(
        self,
        *,
        include_metadata: bool = True,
        cursor: str | None = None,
        limit: int = 1000,
    ) -> ObjectListing:
        try:
            async with self._conn().execute(
                """
                SELECT * FROM objects
                WHERE key > ?
                ORDER BY key
                LIMIT ?
                """,
                (cursor or "", limit + 1),
            ) as result:
                rows = await result.fetchall()
        except aiosqlite.Error as e:
            raise StoreError("Failed to list objects", {"operation": "list"}) from e

        truncated = len(rows) > limit
        objects = tuple(self._row_to_head(row, include_metadata) for row in rows[:limit])
        return ObjectListing(
            objects=objects,
            truncated=truncated,
            cursor=objects[-1].key if truncated else None,
        )

    async def count(self) -> int:
        """Get total count of stored objects."""
        async with self._conn().execute("SELECT COUNT(*) FROM objects") as cursor:
            row = await cursor.fetchone()
            return row[0] if row else 0
