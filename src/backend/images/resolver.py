"""
Image resolver: logical key + source URL -> public URL of the mirrored WebP.

Lookup order, stopping at the first hit:
1. Lookup cache     - no network at all.
2. Existing keys    - the canonical object is already in the store; the URL
                      is rebuilt from the key without downloading anything.
                      Recovers uploads whose checkpoint never got written.
3. Cold path        - fetch, transcode, upload without overwrite. A store
                      answer of ALREADY_EXISTS means another resolution won
                      the race and is treated as success.

Blocking work (fetch, Pillow, storage HTTP) runs in worker threads so many
resolutions can be in flight on one event loop.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..storage.blob_store import BlobStore, UploadOutcome
from .cache import LookupCache
from .errors import ImageIngestError
from .index import ExistingKeysIndex
from .keys import derive_storage_key
from .transcoder import ImageTranscoder, TranscodeResult

DEFAULT_CHECKPOINT_EVERY = 10

# (url) -> raw bytes; raises FetchError
FetchFunc = Callable[[str], bytes]
# (raw bytes) -> encoded image; raises TranscodeError
TranscodeFunc = Callable[[bytes], TranscodeResult]

logger = logging.getLogger(__name__)


class ResolveSource(str, Enum):
    """Which tier answered a resolution."""
    CACHE = "cache"
    STORE = "store"
    UPLOAD = "upload"


@dataclass
class ResolverStats:
    """Counters since the resolver was created."""
    cache_hits: int = 0
    store_hits: int = 0
    uploads: int = 0
    already_existed: int = 0
    failures: int = 0
    bytes_uploaded: int = 0

    def record(self, source: ResolveSource) -> None:
        if source == ResolveSource.CACHE:
            self.cache_hits += 1
        elif source == ResolveSource.STORE:
            self.store_hits += 1

    def to_dict(self) -> dict:
        return {
            "cache_hits": self.cache_hits,
            "store_hits": self.store_hits,
            "uploads": self.uploads,
            "already_existed": self.already_existed,
            "failures": self.failures,
            "bytes_uploaded": self.bytes_uploaded,
        }


class ImageResolver:
    """
    Guarantees one canonical stored copy per logical key.

    The resolver is the only writer of the lookup cache and the existing-keys
    index. Concurrent calls for the same key inside this process queue on a
    per-key lock so only one of them does the cold path; across processes the
    no-overwrite upload keeps the store consistent.

    Usage:
        resolver = ImageResolver(
            store=store,
            cache=cache,
            index=index,
            fetch_func=fetch_image_bytes,
        )
        url = await resolver.resolve(page_id, cover_url)
    """

    def __init__(
        self,
        *,
        store: BlobStore,
        cache: LookupCache,
        index: ExistingKeysIndex,
        fetch_func: FetchFunc,
        transcode_func: Optional[TranscodeFunc] = None,
        checkpoint_every: int = DEFAULT_CHECKPOINT_EVERY,
    ) -> None:
        self._store = store
        self._cache = cache
        self._index = index
        self._fetch_func = fetch_func
        self._transcode_func = transcode_func or ImageTranscoder().transcode
        self._checkpoint_every = max(0, int(checkpoint_every))
        self._stats = ResolverStats()
        self._key_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @property
    def stats(self) -> ResolverStats:
        return self._stats

    @property
    def cache(self) -> LookupCache:
        return self._cache

    @property
    def index(self) -> ExistingKeysIndex:
        return self._index

    async def resolve(self, logical_key: str, source_url: str) -> str:
        """
        Return the public URL of the mirrored image for ``logical_key``.

        Raises:
            ValueError: If ``logical_key`` is empty.
            FetchError: Source could not be downloaded within the limits.
            TranscodeError: Source is not a decodable image.
            UploadError: Store rejected the write.
        """
        if not logical_key:
            raise ValueError("logical_key must not be empty")

        cached = self._cache.get(logical_key)
        if cached is not None:
            self._stats.record(ResolveSource.CACHE)
            return cached

        lock = self._key_lock(logical_key)
        async with lock:
            url, source = await self._resolve_locked(logical_key, source_url)
        self._stats.record(source)
        return url

    async def checkpoint(self) -> bool:
        """Persist the cache if anything changed since the last save."""
        if self._cache.pending == 0:
            return True
        return await asyncio.to_thread(self._cache.save)

    def _key_lock(self, logical_key: str) -> asyncio.Lock:
        lock = self._key_locks.get(logical_key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[logical_key] = lock
        return lock

    async def _resolve_locked(self, logical_key: str, source_url: str) -> tuple[str, ResolveSource]:
        # A queued caller finds the URL its predecessor just stored.
        cached = self._cache.get(logical_key)
        if cached is not None:
            return cached, ResolveSource.CACHE

        storage_key = derive_storage_key(logical_key)
        if self._index.has(storage_key):
            url = await self._remember(logical_key, self._store.public_url(storage_key))
            logger.debug("Store hit for %s -> %s", logical_key, storage_key)
            return url, ResolveSource.STORE

        try:
            await self._upload_cold(logical_key, source_url, storage_key)
        except ImageIngestError as exc:
            self._stats.failures += 1
            if exc.key is None:
                exc.key = logical_key
            raise

        url = await self._remember(logical_key, self._store.public_url(storage_key))
        return url, ResolveSource.UPLOAD

    async def _upload_cold(self, logical_key: str, source_url: str, storage_key: str) -> None:
        raw = await asyncio.to_thread(self._fetch_func, source_url)
        result = await asyncio.to_thread(self._transcode_func, raw)
        outcome = await asyncio.to_thread(
            self._store.upload,
            storage_key,
            result.data,
            result.content_type,
        )

        if outcome == UploadOutcome.ALREADY_EXISTS:
            self._stats.already_existed += 1
            logger.info("Object %s for %s already stored, reusing it", storage_key, logical_key)
        else:
            self._stats.uploads += 1
            self._stats.bytes_uploaded += result.encoded_bytes
            logger.info(
                "Uploaded %s for %s: %dx%d q=%d, %d -> %d bytes (%.0f%% smaller)",
                storage_key,
                logical_key,
                result.width,
                result.height,
                result.quality,
                result.source_bytes,
                result.encoded_bytes,
                result.reduction * 100,
            )

        self._index.add(storage_key)

    async def _remember(self, logical_key: str, url: str) -> str:
        stored = self._cache.put(logical_key, url)
        if self._checkpoint_every and self._cache.pending >= self._checkpoint_every:
            await asyncio.to_thread(self._cache.save)
        return stored
