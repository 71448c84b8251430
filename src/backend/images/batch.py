"""
Batch orchestration of image resolutions.

Items are cut into contiguous groups of ``concurrency``. Each group runs
concurrently; groups run strictly one after another with a short pause in
between to cap the load on the image hosts and the blob store. A failing item
becomes a Skipped outcome and never fails the batch; the returned list keeps
input order whatever the completion order was.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from src.shared.stats.metrics import compute_items_per_s, compute_runtime_s

from .errors import ImageIngestError
from .resolver import ImageResolver

DEFAULT_CONCURRENCY = 5
DEFAULT_GROUP_DELAY_S = 0.2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageRequest:
    """One item to mirror: logical key, source image URL and pass-through metadata."""
    key: str
    source_url: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Resolved:
    request: ImageRequest
    public_url: str

    @property
    def metadata(self) -> dict[str, Any]:
        return self.request.metadata


@dataclass(frozen=True)
class Skipped:
    request: ImageRequest
    reason: str
    error_type: str


Outcome = Union[Resolved, Skipped]
SkippedObserver = Callable[[Skipped], None]


@dataclass
class BatchReport:
    """Every outcome of a batch, in input order, plus timing."""
    outcomes: list[Outcome]
    groups: int
    started_at: datetime
    finished_at: datetime

    @property
    def resolved(self) -> list[Resolved]:
        return [o for o in self.outcomes if isinstance(o, Resolved)]

    @property
    def skipped(self) -> list[Skipped]:
        return [o for o in self.outcomes if isinstance(o, Skipped)]

    @property
    def runtime_s(self) -> float:
        return compute_runtime_s(self.started_at, self.finished_at)

    def to_dict(self) -> dict:
        resolved = len(self.resolved)
        skipped = self.skipped
        return {
            "total": len(self.outcomes),
            "resolved": resolved,
            "skipped": len(skipped),
            "groups": self.groups,
            "runtime_s": round(self.runtime_s, 3),
            "items_per_s": round(compute_items_per_s(resolved, len(skipped), self.runtime_s), 3),
            "skipped_items": [
                {"key": s.request.key, "error": s.error_type, "reason": s.reason}
                for s in skipped
            ],
        }


class BatchOrchestrator:
    """
    Drives an ImageResolver over many items with bounded concurrency.

    Usage:
        orchestrator = BatchOrchestrator(resolver, on_skipped=report_broken_image)
        resolved = await orchestrator.resolve_all(requests, concurrency=5)
    """

    def __init__(
        self,
        resolver: ImageResolver,
        *,
        group_delay_s: float = DEFAULT_GROUP_DELAY_S,
        on_skipped: Optional[SkippedObserver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._resolver = resolver
        self._group_delay_s = max(0.0, float(group_delay_s))
        self._on_skipped = on_skipped
        self._sleep = sleep

    async def resolve_all(
        self,
        items: Sequence[ImageRequest],
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> list[Resolved]:
        """Resolve ``items``; failed ones are omitted from the result."""
        report = await self.run(items, concurrency)
        return report.resolved

    async def run(
        self,
        items: Sequence[ImageRequest],
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> BatchReport:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        started_at = datetime.now(timezone.utc)
        outcomes: list[Outcome] = []
        groups = 0

        for start in range(0, len(items), concurrency):
            if groups:
                await self._sleep(self._group_delay_s)
            group = items[start:start + concurrency]
            outcomes.extend(await asyncio.gather(*(self._resolve_one(item) for item in group)))
            groups += 1

        await self._resolver.checkpoint()

        report = BatchReport(
            outcomes=outcomes,
            groups=groups,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Image batch done: %d resolved, %d skipped in %d group(s), %.2fs",
            len(report.resolved),
            len(report.skipped),
            groups,
            report.runtime_s,
        )
        return report

    async def _resolve_one(self, item: ImageRequest) -> Outcome:
        try:
            url = await self._resolver.resolve(item.key, item.source_url)
        except ImageIngestError as exc:
            return self._skip(item, exc)
        except Exception as exc:
            logger.exception("Unexpected failure resolving image for %s", item.key)
            return self._skip(item, exc)
        return Resolved(request=item, public_url=url)

    def _skip(self, item: ImageRequest, exc: Exception) -> Skipped:
        skipped = Skipped(request=item, reason=str(exc), error_type=type(exc).__name__)
        logger.warning("Skipping image for %s (%s): %s", item.key, skipped.error_type, skipped.reason)
        if self._on_skipped is not None:
            try:
                self._on_skipped(skipped)
            except Exception:
                logger.exception("Skipped-image observer failed for %s", item.key)
        return skipped
