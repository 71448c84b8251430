import io
import json
import unittest
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError

from src.backend.content.notion import NOTION_VERSION, NotionClient, NotionError, extract_property_value
from src.backend.net.retry import RetryConfig


def _response(payload) -> MagicMock:
    resp = MagicMock()
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    resp.read.return_value = json.dumps(payload).encode("utf-8")
    return resp


class TestNotionClient(unittest.TestCase):
    def setUp(self) -> None:
        self.client = NotionClient(token="secret_abc", retry=RetryConfig(enabled=False))

    def test_query_database_follows_cursor(self) -> None:
        pages = [
            _response({"results": [{"id": "p1"}, {"id": "p2"}], "has_more": True, "next_cursor": "cur-1"}),
            _response({"results": [{"id": "p3"}], "has_more": False, "next_cursor": None}),
        ]
        with patch("src.backend.content.notion.urlopen", side_effect=pages) as urlopen:
            results = self.client.query_database(
                "db-1",
                sorts=[{"property": "Name", "direction": "ascending"}],
            )

        self.assertEqual([p["id"] for p in results], ["p1", "p2", "p3"])
        first, second = (c[0][0] for c in urlopen.call_args_list)
        self.assertEqual(first.full_url, "https://api.notion.com/v1/databases/db-1/query")
        self.assertEqual(first.get_header("Notion-version"), NOTION_VERSION)
        self.assertEqual(first.get_header("Authorization"), "Bearer secret_abc")

        first_body = json.loads(first.data.decode("utf-8"))
        second_body = json.loads(second.data.decode("utf-8"))
        self.assertNotIn("start_cursor", first_body)
        self.assertEqual(first_body["sorts"], [{"property": "Name", "direction": "ascending"}])
        self.assertEqual(second_body["start_cursor"], "cur-1")

    def test_max_pages_stops_early(self) -> None:
        page = {"results": [{"id": "p"}], "has_more": True, "next_cursor": "more"}
        with patch("src.backend.content.notion.urlopen", side_effect=[_response(page), _response(page)]) as urlopen:
            results = self.client.query_database("db-1", max_pages=1)

        self.assertEqual(len(results), 1)
        self.assertEqual(urlopen.call_count, 1)

    def test_http_error_raises_notion_error(self) -> None:
        err = HTTPError("https://api.notion.com", 401, "Unauthorized", {}, io.BytesIO(b"{}"))
        with patch("src.backend.content.notion.urlopen", side_effect=err):
            with self.assertRaises(NotionError) as ctx:
                self.client.query_database("db-1")
        self.assertEqual(ctx.exception.http_status, 401)

    def test_payload_without_results_raises(self) -> None:
        with patch("src.backend.content.notion.urlopen", return_value=_response({"object": "error"})):
            with self.assertRaises(NotionError):
                self.client.query_database("db-1")


class TestExtractPropertyValue(unittest.TestCase):
    def test_title_and_rich_text_use_first_fragment(self) -> None:
        prop = {"type": "title", "title": [{"plain_text": "Atelier"}, {"plain_text": " Nord"}]}
        self.assertEqual(extract_property_value(prop), "Atelier")
        self.assertEqual(
            extract_property_value({"type": "rich_text", "rich_text": [{"plain_text": "Berlin"}]}),
            "Berlin",
        )
        self.assertIsNone(extract_property_value({"type": "rich_text", "rich_text": []}))

    def test_select_and_status(self) -> None:
        self.assertEqual(extract_property_value({"type": "select", "select": {"name": "Paris"}}), "Paris")
        self.assertEqual(extract_property_value({"type": "status", "status": {"name": "Published"}}), "Published")
        self.assertIsNone(extract_property_value({"type": "select", "select": None}))

    def test_files_prefer_first_entry(self) -> None:
        hosted = {"type": "files", "files": [{"type": "file", "file": {"url": "https://s3/cover.jpg"}}]}
        external = {"type": "files", "files": [{"type": "external", "external": {"url": "https://cdn/x.png"}}]}
        self.assertEqual(extract_property_value(hosted), "https://s3/cover.jpg")
        self.assertEqual(extract_property_value(external), "https://cdn/x.png")
        self.assertIsNone(extract_property_value({"type": "files", "files": []}))

    def test_number_and_scalars(self) -> None:
        self.assertEqual(extract_property_value({"type": "number", "number": 52.52}), 52.52)
        self.assertIsNone(extract_property_value({"type": "number", "number": None}))
        self.assertEqual(extract_property_value({"type": "url", "url": "https://studio.example"}), "https://studio.example")
        self.assertEqual(extract_property_value({"type": "email", "email": "hi@studio.example"}), "hi@studio.example")
        self.assertIsNone(extract_property_value({"type": "phone_number", "phone_number": ""}))

    def test_missing_property(self) -> None:
        self.assertIsNone(extract_property_value(None))
        self.assertIsNone(extract_property_value({"id": "x"}))


if __name__ == "__main__":
    unittest.main()
