"""
Canonical storage keys for mirrored images.

Key format: <sha256(logical_key)>.webp

The key depends only on the logical key (a Notion page id), never on the
image bytes, so any process can re-derive it and find an object uploaded by
an earlier run without consulting the lookup cache.
"""

from __future__ import annotations

import hashlib
import re

HASH_ALGORITHM = "sha256"

STORAGE_EXTENSION = "webp"
STORAGE_CONTENT_TYPE = "image/webp"

STORAGE_KEY_PATTERN = re.compile(r"^[0-9a-f]{64}\.webp$")


def derive_storage_key(logical_key: str) -> str:
    """
    Map a logical key to its canonical object name.

    Args:
        logical_key: Caller-supplied stable id of the source item.

    Returns:
        Lowercase hex digest of the UTF-8 key plus the image extension.
    """
    digest = hashlib.new(HASH_ALGORITHM, logical_key.encode("utf-8")).hexdigest()
    return f"{digest}.{STORAGE_EXTENSION}"


def is_storage_key(name: str) -> bool:
    """True if ``name`` has the shape produced by derive_storage_key."""
    return bool(STORAGE_KEY_PATTERN.match(name))
