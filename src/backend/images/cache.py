"""
Persistent lookup cache: logical key -> public URL.

The checkpoint file is a single JSON object mapping logical keys to public
URLs. It is rewritten wholesale on every save (temp file + replace). Losing it
is harmless: the resolver re-discovers uploaded objects through the
existing-keys index.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class LookupCache:
    """
    In-memory mapping with an explicit load/get/put/save/clear lifecycle.

    Entries are immutable: once a logical key has a URL, later ``put`` calls
    for that key keep the original.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = Path(path) if path is not None else None
        self._entries: dict[str, str] = {}
        self._pending = 0
        self._lock = threading.RLock()
        # Serializes file writes; get/put only ever wait on _lock.
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def pending(self) -> int:
        """Entries added since the last successful save."""
        with self._lock:
            return self._pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._entries)

    def load(self) -> int:
        """
        Replace in-memory entries with the checkpoint file contents.

        A missing file means an empty cache. An unreadable or malformed file
        is logged and also yields an empty cache.

        Returns:
            Number of entries loaded.
        """
        with self._lock:
            self._entries = {}
            self._pending = 0

            if self._path is None or not self._path.exists():
                return 0

            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("Ignoring unreadable image cache %s: %s", self._path, exc)
                return 0

            if not isinstance(raw, dict):
                logger.warning("Ignoring image cache %s: expected a JSON object", self._path)
                return 0

            for key, url in raw.items():
                if isinstance(key, str) and isinstance(url, str) and key and url:
                    self._entries[key] = url

            logger.info("Loaded %d image cache entries from %s", len(self._entries), self._path)
            return len(self._entries)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, url: str) -> str:
        """
        Record ``url`` for ``key`` unless the key is already present.

        Returns:
            The URL stored for ``key`` after the call.
        """
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return existing
            self._entries[key] = url
            self._pending += 1
            return url

    def save(self) -> bool:
        """
        Write every entry to the checkpoint file.

        Returns:
            True on success; False when there is no path or the write failed
            (the cache keeps working from memory).
        """
        if self._path is None:
            return False

        with self._write_lock:
            with self._lock:
                entries = dict(self._entries)
                saved_pending = self._pending

            payload = json.dumps(entries, ensure_ascii=False, indent=2, sort_keys=True) + "\n"
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(payload, encoding="utf-8")
                os.replace(tmp_path, self._path)
            except OSError as exc:
                logger.warning("Failed to save image cache to %s: %s", self._path, exc)
                try:
                    tmp_path.unlink()
                except OSError:
                    pass
                return False

            with self._lock:
                # Entries put during the write stay pending for the next save.
                self._pending = max(0, self._pending - saved_pending)
            logger.debug("Saved %d image cache entries to %s", len(entries), self._path)
            return True

    def clear(self) -> None:
        """Drop every entry and delete the checkpoint file."""
        with self._write_lock, self._lock:
            self._entries.clear()
            self._pending = 0
            if self._path is None:
                return
            try:
                self._path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning("Failed to delete image cache %s: %s", self._path, exc)
