from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .content.api import create_content_router
from .content.collections import MOODBOARD, STUDIOS, NotionContentSource
from .content.notion import NotionClient
from .images.api import create_images_router
from .images.service import ImageService, build_image_service
from .settings.models import AppSettings
from .settings.store import SettingsStore

DEFAULT_PORT = 3000

logger = logging.getLogger(__name__)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    service: Optional[ImageService] = None,
    studios: Optional[NotionContentSource] = None,
    moodboard: Optional[NotionContentSource] = None,
    repo_root: Optional[Path] = None,
) -> FastAPI:
    """
    Build the application.

    Raises:
        ConfigurationError: If Notion or Supabase credentials are missing and
            the corresponding collaborators were not passed in.
    """
    repo_root = repo_root or _repo_root()
    if settings is None:
        settings = SettingsStore(path=repo_root / "data" / "config.json").load_effective()
    if service is None or studios is None:
        settings.require_complete()

    if service is None:
        service = build_image_service(settings, base_dir=repo_root)

    client: Optional[NotionClient] = None
    if studios is None or (moodboard is None and settings.notion.moodboard_database_id):
        client = NotionClient(token=settings.notion.token, retry=settings.get_retry())
    if studios is None:
        studios = NotionContentSource(client, settings.notion.database_id, STUDIOS)
    if moodboard is None and settings.notion.moodboard_database_id:
        moodboard = NotionContentSource(client, settings.notion.moodboard_database_id, MOODBOARD)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await service.rebuild_existing_keys_index()
        try:
            yield
        finally:
            await service.save_checkpoint()

    app = FastAPI(title="studio-directory", lifespan=lifespan)
    app.include_router(create_content_router(studios=studios, moodboard=moodboard, service=service))
    app.include_router(create_images_router(service=service))

    app.state.settings = settings
    app.state.image_service = service
    app.state.repo_root = repo_root

    frontend_dir = repo_root / "public"
    if frontend_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(frontend_dir), html=True), name="frontend")
    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "src.backend.app:create_app",
        factory=True,
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", DEFAULT_PORT)),
    )


if __name__ == "__main__":
    main()
