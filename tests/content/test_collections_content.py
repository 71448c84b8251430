import unittest
from unittest.mock import Mock

from src.backend.content.collections import MOODBOARD, STUDIOS, NotionContentSource, is_published, page_to_item


def _studio_page(page_id: str, name: str, status="Published", cover="https://s3/cover.jpg") -> dict:
    props = {
        "Name": {"type": "title", "title": [{"plain_text": name}]},
        "City": {"type": "select", "select": {"name": "Berlin"}},
        "Website URL": {"type": "url", "url": "https://studio.example"},
        "Latitude": {"type": "number", "number": 52.5},
        "Longitude": {"type": "number", "number": 13.4},
        "Cover": {"type": "files", "files": []},
    }
    if status is not None:
        props["Status"] = {"type": "status", "status": {"name": status}}
    if cover:
        props["Cover"] = {"type": "files", "files": [{"type": "file", "file": {"url": cover}}]}
    return {"id": page_id, "properties": props}


class TestPageToItem(unittest.TestCase):
    def test_maps_studio_fields(self) -> None:
        item = page_to_item(_studio_page("p1", "Atelier Nord"), STUDIOS)

        self.assertEqual(item.id, "p1")
        self.assertEqual(item.image_url, "https://s3/cover.jpg")
        self.assertEqual(item.metadata["Name"], "Atelier Nord")
        self.assertEqual(item.metadata["Website"], "https://studio.example")
        self.assertEqual(item.metadata["Latitude"], 52.5)
        self.assertIsNone(item.metadata["Email2"])
        self.assertEqual(set(item.metadata), set(STUDIOS.fields))

    def test_missing_cover_gives_no_image(self) -> None:
        item = page_to_item(_studio_page("p1", "No Cover", cover=None), STUDIOS)
        self.assertIsNone(item.image_url)

    def test_moodboard_image_field(self) -> None:
        page = {
            "id": "m1",
            "properties": {
                "Name": {"type": "title", "title": [{"plain_text": "Chair"}]},
                "Image": {"type": "files", "files": [{"type": "external", "external": {"url": "https://cdn/c.jpg"}}]},
            },
        }
        item = page_to_item(page, MOODBOARD)
        self.assertEqual(item.image_url, "https://cdn/c.jpg")
        self.assertEqual(item.metadata["name"], "Chair")


class TestPublishedFilter(unittest.TestCase):
    def test_published_passes(self) -> None:
        self.assertTrue(is_published(_studio_page("p1", "A"), STUDIOS))

    def test_draft_filtered(self) -> None:
        self.assertFalse(is_published(_studio_page("p1", "A", status="Draft"), STUDIOS))

    def test_database_without_status_property_passes(self) -> None:
        self.assertTrue(is_published(_studio_page("p1", "A", status=None), STUDIOS))


class TestNotionContentSource(unittest.TestCase):
    def test_list_published_items_filters_and_keeps_order(self) -> None:
        client = Mock()
        client.query_database.return_value = [
            _studio_page("p1", "Alpha"),
            _studio_page("p2", "Beta", status="Draft"),
            {"properties": {}},
            _studio_page("p3", "Gamma", cover=None),
        ]
        source = NotionContentSource(client, "db-1", STUDIOS)

        items = source.list_published_items()

        self.assertEqual([i.id for i in items], ["p1", "p3"])
        client.query_database.assert_called_once_with(
            "db-1",
            sorts=[{"property": "Name", "direction": "ascending"}],
        )


if __name__ == "__main__":
    unittest.main()
