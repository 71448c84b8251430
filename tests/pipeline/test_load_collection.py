import asyncio
import unittest

from src.backend.content.collections import STUDIOS, ContentItem
from src.backend.images.batch import Resolved
from src.backend.pipeline.collections import load_collection, to_image_request


class _Source:
    spec = STUDIOS

    def __init__(self, items) -> None:
        self._items = items

    def list_published_items(self):
        return list(self._items)


class _Service:
    """Resolves every request except the keys in ``broken``."""

    def __init__(self, broken=()) -> None:
        self.broken = set(broken)
        self.requests = []

    async def resolve_all(self, items, concurrency=None):
        self.requests.extend(items)
        return [
            Resolved(request=item, public_url=f"https://cdn/{item.key}.webp")
            for item in items
            if item.key not in self.broken
        ]


def _item(item_id: str, image_url=None) -> ContentItem:
    return ContentItem(id=item_id, image_url=image_url, metadata={"Name": item_id.upper(), "Cover": image_url})


class TestLoadCollection(unittest.TestCase):
    def test_swaps_images_and_preserves_order(self) -> None:
        source = _Source([_item("a", "https://s3/a.jpg"), _item("b"), _item("c", "https://s3/c.jpg")])
        service = _Service()

        rows = asyncio.run(load_collection(source=source, service=service))

        self.assertEqual([r["id"] for r in rows], ["a", "b", "c"])
        self.assertEqual(rows[0]["Cover"], "https://cdn/a.webp")
        self.assertIsNone(rows[1]["Cover"])
        self.assertEqual(rows[2]["Name"], "C")
        self.assertEqual([r.key for r in service.requests], ["a", "c"])

    def test_unmirrored_items_are_dropped(self) -> None:
        source = _Source([_item("a", "https://s3/a.jpg"), _item("b", "https://s3/b.jpg"), _item("c")])

        rows = asyncio.run(load_collection(source=source, service=_Service(broken={"b"})))

        self.assertEqual([r["id"] for r in rows], ["a", "c"])

    def test_to_image_request(self) -> None:
        request = to_image_request(_item("a", "https://s3/a.jpg"))
        self.assertEqual(request.key, "a")
        self.assertEqual(request.source_url, "https://s3/a.jpg")
        self.assertEqual(request.metadata["Name"], "A")


if __name__ == "__main__":
    unittest.main()
