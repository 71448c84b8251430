"""
Error taxonomy for image ingestion.

FetchError, TranscodeError and UploadError are per-item failures: the batch
orchestrator turns them into skipped outcomes. ListError only affects the
existing-keys index rebuild, which keeps whatever it gathered.
"""

from __future__ import annotations

from typing import Optional


class ImageIngestError(Exception):
    """Base class for failures while mirroring a single image."""

    def __init__(self, message: str, *, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key


class FetchError(ImageIngestError):
    """Source image unreachable, too slow, too large, or answered with an HTTP error."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        http_status: Optional[int] = None,
        key: Optional[str] = None,
    ) -> None:
        super().__init__(message, key=key)
        self.url = url
        self.http_status = http_status


class TranscodeError(ImageIngestError):
    """Payload is not a decodable image."""


class UploadError(ImageIngestError):
    """Blob store rejected a write for a reason other than key-already-exists."""

    def __init__(
        self,
        message: str,
        *,
        key: Optional[str] = None,
        http_status: Optional[int] = None,
    ) -> None:
        super().__init__(message, key=key)
        self.http_status = http_status


class ListError(ImageIngestError):
    """Blob store enumeration failed."""
