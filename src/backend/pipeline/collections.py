from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from src.backend.content.collections import CollectionSpec, ContentItem
from src.backend.images.batch import ImageRequest
from src.backend.images.service import ImageService

logger = logging.getLogger(__name__)


class ContentSource(Protocol):
    @property
    def spec(self) -> CollectionSpec: ...

    def list_published_items(self) -> list[ContentItem]: ...


def to_image_request(item: ContentItem) -> ImageRequest:
    return ImageRequest(key=item.id, source_url=item.image_url or "", metadata=item.metadata)


async def load_collection(
    *,
    source: ContentSource,
    service: ImageService,
    concurrency: Optional[int] = None,
) -> list[dict[str, Any]]:
    """
    Published items of one collection with images swapped for mirrored URLs.

    - Items without an image pass through with the image field set to None.
    - Items whose image could not be mirrored are left out.
    - Content order is preserved.

    Note:
    - The Notion query is blocking and runs in a thread.
    """
    items = await asyncio.to_thread(source.list_published_items)
    image_field = source.spec.image_field

    requests = [to_image_request(it) for it in items if it.image_url]
    resolved = await service.resolve_all(requests, concurrency)
    urls = {r.request.key: r.public_url for r in resolved}

    out: list[dict[str, Any]] = []
    for item in items:
        if item.image_url and item.id not in urls:
            continue
        row = dict(item.metadata)
        row["id"] = item.id
        row[image_field] = urls.get(item.id) if item.image_url else None
        out.append(row)

    dropped = len(items) - len(out)
    if dropped:
        logger.warning("%s: %d of %d item(s) dropped, image not mirrored", source.spec.name, dropped, len(items))
    return out
