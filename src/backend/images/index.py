"""
In-memory index of object keys present in the blob store.

Built once at startup by paging through the store listing, extended as
uploads succeed, never shrunk. A missing key here only costs a redundant
upload attempt (which the store answers with ALREADY_EXISTS), so a partial
index after a failed listing is kept rather than discarded.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, Optional

from .errors import ListError

if TYPE_CHECKING:
    from src.backend.storage.blob_store import BlobStore

DEFAULT_PAGE_SIZE = 1000

logger = logging.getLogger(__name__)


class ExistingKeysIndex:
    """
    Set of canonical storage keys known to exist in the blob store.

    Usage:
        index = ExistingKeysIndex()
        index.rebuild(store)

        if index.has(derive_storage_key(page_id)):
            url = store.public_url(derive_storage_key(page_id))
    """

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._keys: set[str] = set(keys)
        self._lock = threading.RLock()
        self._last_rebuild_complete: Optional[bool] = None
        self._last_rebuild_at: Optional[datetime] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    @property
    def last_rebuild_complete(self) -> Optional[bool]:
        """True/False after a rebuild finished/aborted; None if never rebuilt."""
        return self._last_rebuild_complete

    @property
    def last_rebuild_at(self) -> Optional[datetime]:
        return self._last_rebuild_at

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def add(self, key: str) -> None:
        with self._lock:
            self._keys.add(key)

    def keys(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._keys)

    def rebuild(self, store: "BlobStore", *, page_size: int = DEFAULT_PAGE_SIZE) -> int:
        """
        Replace the index with a full enumeration of the store.

        Pages are requested by offset in name order; a page shorter than
        ``page_size`` ends the listing. A ListError stops early and keeps
        the keys gathered so far.

        Args:
            store: Blob store to enumerate.
            page_size: Listing page size.

        Returns:
            Number of keys in the index afterwards.
        """
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        with self._lock:
            self._keys.clear()

        offset = 0
        pages = 0
        complete = False
        try:
            while True:
                page = store.list_keys(offset=offset, limit=page_size)
                pages += 1
                with self._lock:
                    self._keys.update(page)
                if len(page) < page_size:
                    complete = True
                    break
                offset += len(page)
        except ListError as exc:
            logger.warning(
                "Existing-keys rebuild aborted after %d page(s), keeping %d key(s): %s",
                pages,
                len(self),
                exc,
            )

        self._last_rebuild_complete = complete
        self._last_rebuild_at = datetime.now(timezone.utc)
        count = len(self)
        if complete:
            logger.info("Existing-keys index rebuilt: %d key(s) in %d page(s)", count, pages)
        return count
