"""
Key-addressed blob storage backed by Supabase Storage.

Objects live at <bucket>/<prefix>/<key>. Uploads never overwrite: a second
upload of an existing key reports ALREADY_EXISTS instead of replacing the
object, which is what lets concurrent resolutions of the same image converge
on one stored copy without a lock.

Supabase Storage REST endpoints used:
    POST /storage/v1/object/list/{bucket}          (paged listing)
    POST /storage/v1/object/{bucket}/{path}        (upload, x-upsert: false)
    GET  /storage/v1/object/public/{bucket}/{path} (public URL, not called)
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Optional, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from ..images.errors import ListError, UploadError
from ..net.retry import RetryConfig, with_retry

DEFAULT_TIMEOUT_S = 30.0
DEFAULT_CACHE_CONTROL_S = 31536000  # one year; keys never change content

logger = logging.getLogger(__name__)


class UploadOutcome(str, Enum):
    """Result of a no-overwrite upload."""
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class BlobStore(Protocol):
    """What the image resolver needs from durable storage."""

    def list_keys(self, *, offset: int = 0, limit: int = 1000) -> list[str]:
        """One page of object names, sorted by name. Raises ListError."""
        ...

    def upload(self, key: str, data: bytes, content_type: str) -> UploadOutcome:
        """Store ``data`` under ``key`` unless it exists. Raises UploadError."""
        ...

    def public_url(self, key: str) -> str:
        """Public URL for ``key``; pure, no network call."""
        ...

    def is_reachable(self) -> bool:
        ...


class SupabaseBlobStore:
    """
    BlobStore over the Supabase Storage REST API.

    Usage:
        store = SupabaseBlobStore(
            url="https://abc.supabase.co",
            service_key=os.environ["SUPABASE_SERVICE_KEY"],
            bucket="images",
            prefix="webp",
        )
        outcome = store.upload(key, data, "image/webp")
        url = store.public_url(key)
    """

    def __init__(
        self,
        *,
        url: str,
        service_key: str,
        bucket: str,
        prefix: str = "",
        timeout_s: float = DEFAULT_TIMEOUT_S,
        retry: Optional[RetryConfig] = None,
    ) -> None:
        if not url.strip():
            raise ValueError("Supabase URL must not be empty")
        if not bucket.strip():
            raise ValueError("Supabase bucket must not be empty")

        self._url = url.strip().rstrip("/")
        self._service_key = service_key
        self._bucket = bucket.strip()
        self._prefix = prefix.strip().strip("/")
        self._timeout_s = timeout_s
        self._retry = retry or RetryConfig()

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def prefix(self) -> str:
        return self._prefix

    def object_path(self, key: str) -> str:
        return f"{self._prefix}/{key}" if self._prefix else key

    def public_url(self, key: str) -> str:
        return (
            f"{self._url}/storage/v1/object/public/"
            f"{quote(self._bucket)}/{quote(self.object_path(key))}"
        )

    def list_keys(self, *, offset: int = 0, limit: int = 1000) -> list[str]:
        payload = {
            "prefix": self._prefix,
            "limit": limit,
            "offset": offset,
            "sortBy": {"column": "name", "order": "asc"},
        }
        path = f"/storage/v1/object/list/{quote(self._bucket)}"

        try:
            raw = with_retry(
                lambda: self._request(
                    "POST",
                    path,
                    body=json.dumps(payload).encode("utf-8"),
                    headers={"Content-Type": "application/json"},
                ),
                config=self._retry,
                description=f"list {self._bucket}/{self._prefix} @{offset}",
            )
        except HTTPError as exc:
            raise ListError(f"listing {self._bucket} failed: HTTP {exc.code}") from exc
        except (URLError, OSError) as exc:
            raise ListError(f"listing {self._bucket} failed: {exc}") from exc

        try:
            entries = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise ListError(f"listing {self._bucket} returned invalid JSON") from exc
        if not isinstance(entries, list):
            raise ListError(f"listing {self._bucket} returned {type(entries).__name__}, expected list")

        return [str(e["name"]) for e in entries if isinstance(e, dict) and e.get("name")]

    def upload(self, key: str, data: bytes, content_type: str) -> UploadOutcome:
        path = f"/storage/v1/object/{quote(self._bucket)}/{quote(self.object_path(key))}"
        headers = {
            "Content-Type": content_type,
            "Cache-Control": f"max-age={DEFAULT_CACHE_CONTROL_S}",
            "x-upsert": "false",
        }

        try:
            with_retry(
                lambda: self._request("POST", path, body=data, headers=headers),
                config=self._retry,
                description=f"upload {key}",
            )
        except HTTPError as exc:
            detail = _read_error_body(exc)
            if _is_duplicate(exc.code, detail):
                logger.debug("Object already exists: %s", key)
                return UploadOutcome.ALREADY_EXISTS
            message = detail.get("message") or detail.get("error") or exc.reason
            raise UploadError(
                f"upload of {key} rejected: HTTP {exc.code} {message}",
                key=key,
                http_status=exc.code,
            ) from exc
        except (URLError, OSError) as exc:
            raise UploadError(f"upload of {key} failed: {exc}", key=key) from exc

        return UploadOutcome.CREATED

    def is_reachable(self) -> bool:
        try:
            self.list_keys(offset=0, limit=1)
        except ListError as exc:
            logger.warning("Supabase Storage unreachable: %s", exc)
            return False
        return True

    def _request(self, method: str, path: str, *, body: Optional[bytes], headers: dict[str, str]) -> bytes:
        req = Request(
            f"{self._url}{path}",
            data=body,
            method=method,
            headers={
                "Authorization": f"Bearer {self._service_key}",
                "apikey": self._service_key,
                **headers,
            },
        )
        with urlopen(req, timeout=self._timeout_s) as resp:
            return resp.read()


def _read_error_body(exc: HTTPError) -> dict:
    try:
        raw = exc.read()
    except (OSError, ValueError):
        return {}
    if not raw:
        return {}
    try:
        parsed = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _is_duplicate(status: int, detail: dict) -> bool:
    # Older Storage versions answer 400 with statusCode "409" in the body.
    if status == 409:
        return True
    return str(detail.get("statusCode", "")) == "409" or detail.get("error") == "Duplicate"
