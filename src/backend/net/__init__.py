"""
Network utilities: retry with exponential backoff and bounded image fetches.
"""

from .retry import RetryConfig, extract_status_code, with_retry
from .fetch import DEFAULT_FETCH_TIMEOUT_S, DEFAULT_MAX_FETCH_BYTES, fetch_image_bytes

__all__ = [
    "RetryConfig",
    "extract_status_code",
    "with_retry",
    "DEFAULT_FETCH_TIMEOUT_S",
    "DEFAULT_MAX_FETCH_BYTES",
    "fetch_image_bytes",
]
