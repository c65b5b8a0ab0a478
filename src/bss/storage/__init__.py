"""
Object storage backends.

- FileObjectStore: payload files plus an aiosqlite metadata index
- InMemoryObjectStore: dict-backed store for tests and development
"""

from bss.storage.base import ObjectHead, ObjectListing, ObjectStore, StoredObject
from bss.storage.file_store import FileObjectStore
from bss.storage.memory import InMemoryObjectStore

__all__ = [
    "FileObjectStore",
    "InMemoryObjectStore",
    "ObjectHead",
    "ObjectListing",
    "ObjectStore",
    "StoredObject",
]
