"""
Tests for src/backend/net/fetch.py

Covers:
- Size ceiling from Content-Length and from the streamed body
- Timeout and HTTP failures map to FetchError
- Retryable statuses are retried before giving up
- A server trickling bytes is cut off at the deadline
- Malformed URLs and truncated bodies map to FetchError
"""

import http.client
import io
import threading
import time
import unittest
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

from src.backend.images.errors import FetchError
from src.backend.net.fetch import fetch_image_bytes
from src.backend.net.retry import RetryConfig

NO_RETRY = RetryConfig(enabled=False)
URL = "https://images.example.com/cover.jpg"


def _response(body: bytes, headers=None) -> MagicMock:
    stream = io.BytesIO(body)
    resp = MagicMock()
    resp.__enter__.return_value = resp
    resp.__exit__.return_value = False
    resp.headers = headers or {}
    resp.read1.side_effect = lambda n=-1: stream.read(n)
    return resp


def _http_error(code: int) -> HTTPError:
    return HTTPError(URL, code, "error", {}, io.BytesIO(b""))


class TestFetchImageBytes(unittest.TestCase):
    def test_returns_body(self) -> None:
        with patch("src.backend.net.fetch.urlopen", return_value=_response(b"\x89PNG-data")) as urlopen:
            data = fetch_image_bytes(URL, retry=NO_RETRY)

        self.assertEqual(data, b"\x89PNG-data")
        req = urlopen.call_args[0][0]
        self.assertEqual(req.full_url, URL)
        self.assertIn("studio-directory", req.get_header("User-agent"))

    def test_rejects_declared_oversize_before_reading(self) -> None:
        resp = _response(b"x" * 10, headers={"Content-Length": "5000"})
        with patch("src.backend.net.fetch.urlopen", return_value=resp):
            with self.assertRaises(FetchError) as ctx:
                fetch_image_bytes(URL, max_bytes=1024, retry=NO_RETRY)

        self.assertIn("too large", str(ctx.exception))
        resp.read1.assert_not_called()

    def test_rejects_streamed_oversize_without_header(self) -> None:
        resp = _response(b"x" * 200_000)
        with patch("src.backend.net.fetch.urlopen", return_value=resp):
            with self.assertRaises(FetchError) as ctx:
                fetch_image_bytes(URL, max_bytes=100_000, retry=NO_RETRY)

        self.assertIn("exceeded", str(ctx.exception))
        self.assertEqual(ctx.exception.url, URL)

    def test_timeout_maps_to_fetch_error(self) -> None:
        with patch("src.backend.net.fetch.urlopen", side_effect=TimeoutError("timed out")):
            with self.assertRaises(FetchError):
                fetch_image_bytes(URL, timeout_s=0.1, retry=NO_RETRY)

    def test_network_error_maps_to_fetch_error(self) -> None:
        with patch("src.backend.net.fetch.urlopen", side_effect=URLError("connection refused")):
            with self.assertRaises(FetchError) as ctx:
                fetch_image_bytes(URL, retry=NO_RETRY)
        self.assertIsNone(ctx.exception.http_status)

    def test_http_404_maps_to_fetch_error_with_status(self) -> None:
        with patch("src.backend.net.fetch.urlopen", side_effect=_http_error(404)) as urlopen:
            with self.assertRaises(FetchError) as ctx:
                fetch_image_bytes(URL)

        self.assertEqual(ctx.exception.http_status, 404)
        self.assertEqual(urlopen.call_count, 1)

    def test_retries_503_then_succeeds(self) -> None:
        retry = RetryConfig(max_retries=2, base_delay_s=0.0, max_delay_s=0.0, jitter_factor=0.0)
        with patch(
            "src.backend.net.fetch.urlopen",
            side_effect=[_http_error(503), _response(b"image")],
        ) as urlopen:
            data = fetch_image_bytes(URL, retry=retry)

        self.assertEqual(data, b"image")
        self.assertEqual(urlopen.call_count, 2)

    def test_empty_body_is_an_error(self) -> None:
        with patch("src.backend.net.fetch.urlopen", return_value=_response(b"")):
            with self.assertRaises(FetchError):
                fetch_image_bytes(URL, retry=NO_RETRY)

    def test_rejects_non_http_url(self) -> None:
        with patch("src.backend.net.fetch.urlopen") as urlopen:
            for url in ("", "ftp://example.com/a.jpg", "file:///etc/passwd"):
                with self.assertRaises(FetchError):
                    fetch_image_bytes(url)
        urlopen.assert_not_called()

    def test_url_with_space_maps_to_fetch_error(self) -> None:
        url = "http://127.0.0.1:9/my cover.jpg"
        with self.assertRaises(FetchError) as ctx:
            fetch_image_bytes(url, timeout_s=1.0, retry=NO_RETRY)
        self.assertEqual(ctx.exception.url, url)

    def test_invalid_url_from_urlopen_maps_to_fetch_error(self) -> None:
        with patch("src.backend.net.fetch.urlopen", side_effect=http.client.InvalidURL("bad path")):
            with self.assertRaises(FetchError) as ctx:
                fetch_image_bytes(URL, retry=NO_RETRY)
        self.assertIsInstance(ctx.exception.__cause__, http.client.InvalidURL)

    def test_truncated_body_maps_to_fetch_error(self) -> None:
        resp = _response(b"")
        resp.read1.side_effect = http.client.IncompleteRead(b"part", 100)
        with patch("src.backend.net.fetch.urlopen", return_value=resp):
            with self.assertRaises(FetchError) as ctx:
                fetch_image_bytes(URL, retry=NO_RETRY)
        self.assertEqual(ctx.exception.url, URL)


class _DripHandler(BaseHTTPRequestHandler):
    """Announces a large body, then sends one byte every 0.1s for up to 3s."""

    def do_GET(self) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "image/jpeg")
        self.send_header("Content-Length", "100000")
        self.end_headers()
        stop_at = time.monotonic() + 3.0
        try:
            while time.monotonic() < stop_at:
                self.wfile.write(b"x")
                self.wfile.flush()
                time.sleep(0.1)
        except OSError:
            return

    def log_message(self, format, *args) -> None:
        pass


class TestFetchDeadline(unittest.TestCase):
    def setUp(self) -> None:
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), _DripHandler)
        thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        thread.start()
        self.addCleanup(self.server.server_close)
        self.addCleanup(self.server.shutdown)

    def test_slow_trickle_is_cut_off_at_deadline(self) -> None:
        url = f"http://127.0.0.1:{self.server.server_address[1]}/cover.jpg"

        started = time.monotonic()
        with self.assertRaises(FetchError) as ctx:
            fetch_image_bytes(url, timeout_s=0.5, retry=NO_RETRY)
        elapsed = time.monotonic() - started

        self.assertIn("timed out", str(ctx.exception))
        self.assertLess(elapsed, 2.0)


if __name__ == "__main__":
    unittest.main()
