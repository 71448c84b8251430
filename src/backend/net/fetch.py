"""
Bounded download of source images.

Every fetch has two ceilings: a maximum payload size and a maximum wait.
Exceeding either, or any network/HTTP failure that survives the retry
policy, raises FetchError for that single URL.
"""

from __future__ import annotations

import http.client
import time
from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from ..images.errors import FetchError
from .retry import RetryConfig, with_retry

DEFAULT_USER_AGENT = "studio-directory-image-mirror/1.0"
DEFAULT_FETCH_TIMEOUT_S = 20.0
DEFAULT_MAX_FETCH_BYTES = 25 * 1024 * 1024  # 25 MiB

CHUNK_SIZE = 64 * 1024


def fetch_image_bytes(
    url: str,
    *,
    max_bytes: int = DEFAULT_MAX_FETCH_BYTES,
    timeout_s: float = DEFAULT_FETCH_TIMEOUT_S,
    retry: Optional[RetryConfig] = None,
) -> bytes:
    """
    Download ``url`` into memory.

    Args:
        url: http(s) URL of the source image.
        max_bytes: Largest accepted payload.
        timeout_s: Longest time a single attempt may take, end to end.
        retry: Backoff policy for 429/5xx answers.

    Returns:
        The raw response body.

    Raises:
        FetchError: On invalid URL, HTTP error, timeout, oversize or empty body.
    """
    scheme = urlparse(url or "").scheme.lower()
    if scheme not in ("http", "https"):
        raise FetchError(f"unsupported source URL: {url!r}", url=url)

    try:
        return with_retry(
            lambda: _fetch_once(url, max_bytes=max_bytes, timeout_s=timeout_s),
            config=retry,
            description=f"GET {url}",
        )
    except FetchError:
        raise
    except HTTPError as exc:
        raise FetchError(f"HTTP {exc.code} fetching {url}", url=url, http_status=exc.code) from exc
    except (URLError, TimeoutError) as exc:
        raise FetchError(f"network error fetching {url}: {exc}", url=url) from exc
    except OSError as exc:
        raise FetchError(f"I/O error fetching {url}: {exc}", url=url) from exc
    except (ValueError, http.client.HTTPException) as exc:
        # Malformed URLs (InvalidURL) and broken responses (IncompleteRead, BadStatusLine).
        raise FetchError(f"bad request or response for {url}: {exc}", url=url) from exc


def _fetch_once(url: str, *, max_bytes: int, timeout_s: float) -> bytes:
    deadline = time.monotonic() + timeout_s
    req = Request(
        url,
        headers={
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept": "image/*,*/*;q=0.8",
        },
    )

    with urlopen(req, timeout=timeout_s) as resp:
        declared = resp.headers.get("Content-Length")
        if declared and declared.strip().isdigit() and int(declared) > max_bytes:
            raise FetchError(
                f"source image too large ({declared} bytes > {max_bytes}): {url}",
                url=url,
            )

        buf = bytearray()
        while True:
            # read1 returns after a single recv, so a slow trickle still hits the deadline check.
            chunk = resp.read1(CHUNK_SIZE)
            if not chunk:
                break
            buf.extend(chunk)
            if len(buf) > max_bytes:
                raise FetchError(
                    f"source image exceeded {max_bytes} bytes: {url}",
                    url=url,
                )
            if time.monotonic() > deadline:
                raise FetchError(f"timed out after {timeout_s:.1f}s reading {url}", url=url)

    if not buf:
        raise FetchError(f"empty response body: {url}", url=url)
    return bytes(buf)
