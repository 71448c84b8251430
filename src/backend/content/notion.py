"""
Minimal Notion REST client for reading database pages.

Only database queries are needed: pages come back in batches of up to 100
and are followed through ``next_cursor`` until ``has_more`` is false.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from ..net.retry import RetryConfig, with_retry

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
DEFAULT_TIMEOUT_S = 30.0
MAX_PAGE_SIZE = 100

logger = logging.getLogger(__name__)


class NotionError(RuntimeError):
    """A Notion API call failed after retries."""

    def __init__(self, message: str, *, http_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.http_status = http_status


class NotionClient:
    def __init__(
        self,
        *,
        token: str,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        retry: Optional[RetryConfig] = None,
        base_url: str = NOTION_API_URL,
    ) -> None:
        self._token = token
        self._timeout_s = timeout_s
        self._retry = retry or RetryConfig()
        self._base_url = base_url.rstrip("/")

    def query_database(
        self,
        database_id: str,
        *,
        sorts: Optional[list[dict[str, Any]]] = None,
        page_size: int = MAX_PAGE_SIZE,
        max_pages: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Return every page of a database, following pagination.

        Args:
            database_id: Notion database id.
            sorts: Notion sort objects, e.g. [{"property": "Name", "direction": "ascending"}].
            page_size: Results per request (Notion caps this at 100).
            max_pages: Stop after this many requests (None = no limit).

        Raises:
            NotionError: On HTTP/network failure or an unexpected payload.
        """
        results: list[dict[str, Any]] = []
        cursor: Optional[str] = None
        requests_made = 0

        while True:
            body: dict[str, Any] = {"page_size": max(1, min(MAX_PAGE_SIZE, page_size))}
            if sorts:
                body["sorts"] = sorts
            if cursor:
                body["start_cursor"] = cursor

            payload = self._post(f"/databases/{quote(database_id)}/query", body)
            requests_made += 1

            batch = payload.get("results")
            if not isinstance(batch, list):
                raise NotionError("Notion query returned no results list")
            results.extend(p for p in batch if isinstance(p, dict))

            cursor = payload.get("next_cursor")
            if not payload.get("has_more") or not cursor:
                break
            if max_pages is not None and requests_made >= max_pages:
                logger.warning("Stopping Notion query of %s after %d page(s)", database_id, requests_made)
                break

        return results

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        data = json.dumps(body).encode("utf-8")

        def call() -> bytes:
            req = Request(
                f"{self._base_url}{path}",
                data=data,
                method="POST",
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Notion-Version": NOTION_VERSION,
                    "Content-Type": "application/json",
                },
            )
            with urlopen(req, timeout=self._timeout_s) as resp:
                return resp.read()

        try:
            raw = with_retry(call, config=self._retry, description=f"Notion POST {path}")
        except HTTPError as exc:
            raise NotionError(f"Notion POST {path} failed: HTTP {exc.code}", http_status=exc.code) from exc
        except (URLError, OSError) as exc:
            raise NotionError(f"Notion POST {path} failed: {exc}") from exc

        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise NotionError(f"Notion POST {path} returned invalid JSON") from exc
        if not isinstance(parsed, dict):
            raise NotionError(f"Notion POST {path} returned {type(parsed).__name__}")
        return parsed


def extract_property_value(prop: Optional[dict[str, Any]]) -> Any:
    """
    Flatten a Notion property object to a plain value.

    Text-like properties yield their first fragment, select/status their
    option name, files the first file or external URL. Empty values are None.
    """
    if not isinstance(prop, dict):
        return None

    kind = prop.get("type")
    value = prop.get(kind) if isinstance(kind, str) else None

    if kind in ("title", "rich_text"):
        if isinstance(value, list) and value and isinstance(value[0], dict):
            return value[0].get("plain_text") or None
        return None
    if kind in ("select", "status"):
        if isinstance(value, dict):
            return value.get("name") or None
        return None
    if kind == "files":
        if not isinstance(value, list) or not value or not isinstance(value[0], dict):
            return None
        first = value[0]
        for source in ("file", "external"):
            nested = first.get(source)
            if isinstance(nested, dict) and nested.get("url"):
                return nested["url"]
        return None
    if kind == "number":
        return value
    if value in ("", [], {}):
        return None
    return value
