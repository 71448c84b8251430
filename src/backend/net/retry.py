"""
Exponential backoff for transient upstream failures (429, 5xx).

Used around every outbound call the backend makes: source image fetches,
Notion queries and Supabase Storage requests. Only errors that carry a
retryable HTTP status are retried; anything else propagates on the first
attempt so callers can map it to their own error type.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Set, TypeVar

DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY_S = 1.0
DEFAULT_MAX_DELAY_S = 30.0
DEFAULT_JITTER_FACTOR = 0.25

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry with exponential backoff.

    Attributes:
        max_retries: Retry attempts after the first call (0 = single attempt).
        base_delay_s: Delay before the first retry.
        max_delay_s: Cap applied to the exponential delay.
        jitter_factor: Extra random delay as a fraction of the computed delay.
        retryable_status_codes: HTTP statuses worth another attempt.
        enabled: If False, the wrapped call runs exactly once.
    """
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_s: float = DEFAULT_BASE_DELAY_S
    max_delay_s: float = DEFAULT_MAX_DELAY_S
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    retryable_status_codes: Set[int] = field(
        default_factory=lambda: set(DEFAULT_RETRYABLE_STATUS_CODES)
    )
    enabled: bool = True

    def to_persist_dict(self) -> dict:
        return {
            "max_retries": self.max_retries,
            "base_delay_s": self.base_delay_s,
            "max_delay_s": self.max_delay_s,
            "jitter_factor": self.jitter_factor,
            "retryable_status_codes": sorted(self.retryable_status_codes),
            "enabled": self.enabled,
        }

    @classmethod
    def from_persist_dict(cls, data: dict) -> "RetryConfig":
        max_retries = _as_int(data.get("max_retries"), DEFAULT_MAX_RETRIES)
        base_delay = _as_float(data.get("base_delay_s"), DEFAULT_BASE_DELAY_S)
        max_delay = _as_float(data.get("max_delay_s"), DEFAULT_MAX_DELAY_S)
        jitter_factor = _as_float(data.get("jitter_factor"), DEFAULT_JITTER_FACTOR)

        codes: set[int] = set()
        raw_codes = data.get("retryable_status_codes")
        if isinstance(raw_codes, (list, tuple)):
            for code in raw_codes:
                try:
                    codes.add(int(code))
                except (TypeError, ValueError):
                    continue
        if not codes:
            codes = set(DEFAULT_RETRYABLE_STATUS_CODES)

        return cls(
            max_retries=max(0, max_retries),
            base_delay_s=max(0.0, base_delay),
            max_delay_s=max(0.0, max_delay),
            jitter_factor=max(0.0, min(1.0, jitter_factor)),
            retryable_status_codes=codes,
            enabled=bool(data.get("enabled", True)),
        )

    def compute_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (attempt is 0-indexed)."""
        delay = min(self.base_delay_s * (2 ** attempt), self.max_delay_s)
        return delay + delay * random.uniform(0, self.jitter_factor)

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.retryable_status_codes


def with_retry(
    func: Callable[[], T],
    *,
    config: Optional[RetryConfig] = None,
    description: str = "request",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``func`` until it succeeds, retrying retryable HTTP failures.

    Blocking by design: callers on the event loop run it through
    ``asyncio.to_thread``.

    Raises:
        The last exception once retries are exhausted, or the first
        non-retryable exception unchanged.
    """
    cfg = config or RetryConfig()
    if not cfg.enabled:
        return func()

    attempt = 0
    while True:
        try:
            return func()
        except Exception as exc:
            status = extract_status_code(exc)
            if status is None or not cfg.is_retryable_status(status):
                raise
            if attempt >= cfg.max_retries:
                raise
            delay = cfg.compute_delay(attempt)
            logger.warning(
                "Retry %d/%d for %s after %.2fs (HTTP %d)",
                attempt + 1,
                cfg.max_retries,
                description,
                delay,
                status,
            )
            sleep(delay)
            attempt += 1


def extract_status_code(exc: BaseException) -> Optional[int]:
    """Pull an HTTP status out of urllib-style (``code``) or ``status`` errors."""
    for attr in ("code", "status", "status_code"):
        value = getattr(exc, attr, None)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return None


def _as_int(value, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
