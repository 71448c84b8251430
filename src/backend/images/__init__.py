"""
Image ingestion and deduplication cache.

Provides:
- Canonical storage keys (keys.py)
- WebP transcoding (transcoder.py)
- Existing-keys index over the blob store (index.py)
- Persistent lookup cache with a JSON checkpoint (cache.py)
- The resolver state machine (resolver.py)
- Bounded-concurrency batch orchestration (batch.py)
- The operational facade used by the app and CLI (service.py)

Only the leaf modules are re-exported here; the resolver, batch and service
modules depend on the storage and network packages and are imported directly.
"""

from .cache import LookupCache
from .errors import FetchError, ImageIngestError, ListError, TranscodeError, UploadError
from .index import ExistingKeysIndex
from .keys import derive_storage_key, is_storage_key
from .transcoder import ImageTranscoder, TranscodeConfig, TranscodeResult

__all__ = [
    "LookupCache",
    "ExistingKeysIndex",
    "FetchError",
    "ImageIngestError",
    "ListError",
    "TranscodeError",
    "UploadError",
    "derive_storage_key",
    "is_storage_key",
    "ImageTranscoder",
    "TranscodeConfig",
    "TranscodeResult",
]
