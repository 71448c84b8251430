from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def compute_runtime_s(
    started_at: Optional[datetime],
    finished_at: Optional[datetime],
    *,
    now: Optional[datetime] = None,
) -> float:
    """
    Compute runtime in seconds.

    A batch that has not started has no runtime; one still running is
    measured up to ``now``.
    """
    if started_at is None:
        return 0.0

    if now is None:
        now = datetime.now(timezone.utc)

    start = _ensure_utc(started_at)
    end = _ensure_utc(finished_at) if finished_at is not None else _ensure_utc(now)

    return max(0.0, float((end - start).total_seconds()))


def compute_items_per_s(resolved: int, skipped: int, runtime_s: float) -> float:
    """
    items_per_s = (resolved + skipped) / runtime  (runtime > 0)

    Skipped items count: they were attempted and consumed a concurrency slot.
    """
    if runtime_s <= 0:
        return 0.0
    return float(int(resolved) + int(skipped)) / float(runtime_s)


def compute_hit_ratio(hits: int, total: int) -> float:
    """Share of lookups answered without a cold fetch, 0.0 when nothing was looked up."""
    if total <= 0:
        return 0.0
    return max(0.0, min(1.0, float(hits) / float(total)))
