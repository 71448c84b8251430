#!/usr/bin/env python3
"""
Mirror every published studio/moodboard image into Supabase Storage ahead of
traffic, so the first page load only hits the lookup cache.

Credentials come from environment variables (NOTION_TOKEN, NOTION_DATABASE_ID,
NOTION_MOODBOARD_DATABASE_ID, SUPABASE_URL, SUPABASE_SERVICE_KEY) or, failing
that, from data/config.json.

Example:
  python3 scripts/warm_image_cache.py --collection all --concurrency 8

SIGINT/SIGTERM stop the run after the current group; the lookup cache is
saved before the process exits.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.backend.content.collections import MOODBOARD, STUDIOS, CollectionSpec, NotionContentSource  # noqa: E402
from src.backend.content.notion import NotionClient, NotionError  # noqa: E402
from src.backend.images.service import ImageService, build_image_service  # noqa: E402
from src.backend.pipeline.collections import to_image_request  # noqa: E402
from src.backend.settings.models import AppSettings, ConfigurationError  # noqa: E402
from src.backend.settings.store import SettingsStore  # noqa: E402

logger = logging.getLogger("warm_image_cache")


def _selected_collections(settings: AppSettings, which: str) -> list[tuple[CollectionSpec, str]]:
    selected: list[tuple[CollectionSpec, str]] = []
    if which in ("studios", "all"):
        selected.append((STUDIOS, settings.notion.database_id))
    if which in ("moodboard", "all"):
        if settings.notion.moodboard_database_id:
            selected.append((MOODBOARD, settings.notion.moodboard_database_id))
        elif which == "moodboard":
            raise ConfigurationError("missing required settings: NOTION_MOODBOARD_DATABASE_ID")
    return selected


def _install_signal_handlers(task: "asyncio.Task[int]") -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support.
            pass


async def _warm(service: ImageService, client: NotionClient, collections, concurrency: Optional[int]) -> dict:
    summary: dict = {}
    await service.rebuild_existing_keys_index()

    for spec, database_id in collections:
        source = NotionContentSource(client, database_id, spec)
        items = await asyncio.to_thread(source.list_published_items)
        requests = [to_image_request(it) for it in items if it.image_url]
        report = await service.run_batch(requests, concurrency)
        summary[spec.name] = {
            "published": len(items),
            "without_image": len(items) - len(requests),
            **report.to_dict(),
        }

    summary["status"] = (await service.status()).to_dict()
    return summary


async def run(args: argparse.Namespace) -> int:
    store = SettingsStore(path=Path(args.config))
    settings = store.load_effective()
    if args.concurrency:
        settings.ingest.concurrency = args.concurrency

    try:
        settings.require_complete()
        collections = _selected_collections(settings, args.collection)
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    service = build_image_service(settings, base_dir=REPO_ROOT)
    if args.clear_cache:
        service.clear_cache()

    client = NotionClient(token=settings.notion.token, retry=settings.get_retry())

    task = asyncio.current_task()
    if task is not None:
        _install_signal_handlers(task)

    try:
        summary = await _warm(service, client, collections, args.concurrency)
    except asyncio.CancelledError:
        logger.warning("Interrupted, saving lookup cache before exit")
        return 130
    except NotionError as exc:
        logger.error("Content store unavailable: %s", exc)
        return 1
    finally:
        if not await service.save_checkpoint():
            logger.warning("Lookup cache was not saved")

    print(json.dumps(summary, ensure_ascii=False, indent=2))
    skipped = sum(v.get("skipped", 0) for k, v in summary.items() if k != "status")
    return 1 if skipped else 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Pre-mirror published images into Supabase Storage.")
    p.add_argument(
        "--collection",
        choices=("studios", "moodboard", "all"),
        default="all",
        help="Which Notion collection(s) to warm (default: all configured).",
    )
    p.add_argument("--concurrency", type=int, default=None, help="Images resolved at once per group.")
    p.add_argument("--clear-cache", action="store_true", help="Drop the lookup cache and its checkpoint first.")
    p.add_argument(
        "--config",
        default=str(REPO_ROOT / "data" / "config.json"),
        help="Settings file (environment variables take precedence).",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return p


def main() -> int:
    args = build_parser().parse_args()
    if args.concurrency is not None and args.concurrency < 1:
        print("--concurrency must be >= 1", file=sys.stderr)
        return 2
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
