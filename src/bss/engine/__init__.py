"""
Blob lifecycle engines.

- admission: validate, address, deduplicate and persist uploads
- retrieval: fetch bytes and existence checks by content address
- lifecycle: owner listing, expiry eviction, owner-only deletion
"""

from bss.engine.admission import AdmissionEngine, content_address, normalize_media_type
from bss.engine.lifecycle import LifecycleEngine, is_expired, validate_owner
from bss.engine.retrieval import RetrievalEngine, split_blob_path, validate_address

__all__ = [
    "AdmissionEngine",
    "LifecycleEngine",
    "RetrievalEngine",
    "content_address",
    "is_expired",
    "normalize_media_type",
    "split_blob_path",
    "validate_address",
    "validate_owner",
]
