import unittest

from src.backend.images.errors import ListError
from src.backend.images.index import ExistingKeysIndex


class _PagedStore:
    def __init__(self, total: int, fail_at_offset=None) -> None:
        self.names = [f"{i:064x}.webp" for i in range(total)]
        self.fail_at_offset = fail_at_offset
        self.calls = []

    def list_keys(self, *, offset=0, limit=1000):
        self.calls.append((offset, limit))
        if self.fail_at_offset is not None and offset >= self.fail_at_offset:
            raise ListError("listing failed")
        return self.names[offset:offset + limit]


class TestExistingKeysIndex(unittest.TestCase):
    def test_rebuild_pages_until_short_page(self) -> None:
        store = _PagedStore(2037)
        index = ExistingKeysIndex()

        self.assertEqual(index.rebuild(store, page_size=1000), 2037)
        self.assertEqual(store.calls, [(0, 1000), (1000, 1000), (2000, 1000)])
        self.assertTrue(index.last_rebuild_complete)
        self.assertIsNotNone(index.last_rebuild_at)
        self.assertTrue(index.has(store.names[2036]))

    def test_rebuild_exact_multiple_ends_on_empty_page(self) -> None:
        store = _PagedStore(2000)
        index = ExistingKeysIndex()

        self.assertEqual(index.rebuild(store, page_size=1000), 2000)
        self.assertEqual(len(store.calls), 3)

    def test_rebuild_empty_store(self) -> None:
        index = ExistingKeysIndex()
        self.assertEqual(index.rebuild(_PagedStore(0)), 0)
        self.assertTrue(index.last_rebuild_complete)

    def test_list_error_keeps_partial_index(self) -> None:
        store = _PagedStore(2500, fail_at_offset=1000)
        index = ExistingKeysIndex()

        self.assertEqual(index.rebuild(store, page_size=1000), 1000)
        self.assertFalse(index.last_rebuild_complete)
        self.assertTrue(index.has(store.names[999]))
        self.assertFalse(index.has(store.names[1000]))

    def test_rebuild_replaces_previous_contents(self) -> None:
        index = ExistingKeysIndex(["stale.webp"])
        index.rebuild(_PagedStore(3))
        self.assertNotIn("stale.webp", index)
        self.assertEqual(len(index), 3)

    def test_add_and_has(self) -> None:
        index = ExistingKeysIndex()
        self.assertIsNone(index.last_rebuild_complete)
        index.add("k.webp")
        self.assertTrue(index.has("k.webp"))
        self.assertIn("k.webp", index)
        self.assertNotIn(42, index)
        self.assertEqual(index.keys(), frozenset({"k.webp"}))

    def test_rejects_invalid_page_size(self) -> None:
        with self.assertRaises(ValueError):
            ExistingKeysIndex().rebuild(_PagedStore(1), page_size=0)


if __name__ == "__main__":
    unittest.main()
