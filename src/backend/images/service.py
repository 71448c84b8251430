"""
Operational facade over the image cache, used by the HTTP app and the CLI.

Operations: resolve_all, rebuild_existing_keys_index, save_checkpoint,
clear_cache and status.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from src.shared.stats.metrics import compute_hit_ratio

from ..net.fetch import fetch_image_bytes
from ..settings.models import AppSettings
from ..storage.blob_store import BlobStore, SupabaseBlobStore
from .batch import BatchOrchestrator, BatchReport, ImageRequest, Resolved, SkippedObserver
from .cache import LookupCache
from .index import DEFAULT_PAGE_SIZE, ExistingKeysIndex
from .resolver import FetchFunc, ImageResolver
from .transcoder import ImageTranscoder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageServiceStatus:
    cache_size: int
    index_size: int
    store_connected: bool
    index_complete: Optional[bool]
    pending_checkpoint: int
    counters: dict

    def to_dict(self) -> dict:
        hits = self.counters.get("cache_hits", 0) + self.counters.get("store_hits", 0)
        lookups = hits + sum(self.counters.get(k, 0) for k in ("uploads", "already_existed", "failures"))
        return {
            "cache_size": self.cache_size,
            "index_size": self.index_size,
            "store_connected": self.store_connected,
            "index_complete": self.index_complete,
            "pending_checkpoint": self.pending_checkpoint,
            **self.counters,
            "hit_ratio": round(compute_hit_ratio(hits, lookups), 4),
        }


class ImageService:
    def __init__(
        self,
        *,
        store: BlobStore,
        cache: LookupCache,
        index: ExistingKeysIndex,
        resolver: ImageResolver,
        orchestrator: BatchOrchestrator,
        concurrency: int,
        index_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._store = store
        self._cache = cache
        self._index = index
        self._resolver = resolver
        self._orchestrator = orchestrator
        self._concurrency = concurrency
        self._index_page_size = index_page_size

    @property
    def resolver(self) -> ImageResolver:
        return self._resolver

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    @property
    def index_complete(self) -> Optional[bool]:
        return self._index.last_rebuild_complete

    def load_checkpoint(self) -> int:
        return self._cache.load()

    async def resolve_all(
        self,
        items: Sequence[ImageRequest],
        concurrency: Optional[int] = None,
    ) -> list[Resolved]:
        return await self._orchestrator.resolve_all(items, self._concurrency if concurrency is None else concurrency)

    async def run_batch(
        self,
        items: Sequence[ImageRequest],
        concurrency: Optional[int] = None,
    ) -> BatchReport:
        return await self._orchestrator.run(items, self._concurrency if concurrency is None else concurrency)

    async def rebuild_existing_keys_index(self) -> int:
        return await asyncio.to_thread(self._index.rebuild, self._store, page_size=self._index_page_size)

    async def save_checkpoint(self) -> bool:
        return await asyncio.to_thread(self._cache.save)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Image lookup cache cleared")

    async def status(self) -> ImageServiceStatus:
        connected = await asyncio.to_thread(self._store.is_reachable)
        return ImageServiceStatus(
            cache_size=len(self._cache),
            index_size=len(self._index),
            store_connected=connected,
            index_complete=self._index.last_rebuild_complete,
            pending_checkpoint=self._cache.pending,
            counters=self._resolver.stats.to_dict(),
        )


def build_image_service(
    settings: AppSettings,
    *,
    base_dir: Path,
    store: Optional[BlobStore] = None,
    fetch_func: Optional[FetchFunc] = None,
    on_skipped: Optional[SkippedObserver] = None,
) -> ImageService:
    """
    Wire the image cache from settings and load the checkpoint.

    ``store`` and ``fetch_func`` default to Supabase Storage and the bounded
    urllib fetcher; tests pass in fakes.
    """
    ingest = settings.ingest
    retry = settings.get_retry()

    if store is None:
        store = SupabaseBlobStore(
            url=settings.storage.url,
            service_key=settings.storage.service_key,
            bucket=settings.storage.bucket,
            prefix=settings.storage.prefix,
            retry=retry,
        )
    if fetch_func is None:
        fetch_func = functools.partial(
            fetch_image_bytes,
            max_bytes=ingest.max_fetch_bytes,
            timeout_s=ingest.fetch_timeout_s,
            retry=retry,
        )

    checkpoint_path = Path(ingest.checkpoint_path).expanduser()
    if not checkpoint_path.is_absolute():
        checkpoint_path = base_dir / checkpoint_path

    cache = LookupCache(checkpoint_path)
    cache.load()
    index = ExistingKeysIndex()
    resolver = ImageResolver(
        store=store,
        cache=cache,
        index=index,
        fetch_func=fetch_func,
        transcode_func=ImageTranscoder(settings.get_transcode()).transcode,
        checkpoint_every=ingest.checkpoint_every,
    )
    orchestrator = BatchOrchestrator(
        resolver,
        group_delay_s=ingest.group_delay_s,
        on_skipped=on_skipped,
    )
    return ImageService(
        store=store,
        cache=cache,
        index=index,
        resolver=resolver,
        orchestrator=orchestrator,
        concurrency=ingest.concurrency,
        index_page_size=ingest.index_page_size,
    )
