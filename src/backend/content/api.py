from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from src.backend.images.service import ImageService
from src.backend.pipeline.collections import load_collection

from .collections import NotionContentSource
from .notion import NotionError

logger = logging.getLogger(__name__)


def create_content_router(
    *,
    studios: NotionContentSource,
    moodboard: Optional[NotionContentSource],
    service: ImageService,
) -> APIRouter:
    router = APIRouter(tags=["content"])

    @router.get("/data")
    async def get_raw_studio_pages() -> Any:
        try:
            return await asyncio.to_thread(studios.list_raw_pages)
        except NotionError as exc:
            logger.error("Fetching studio pages failed: %s", exc)
            return JSONResponse(status_code=500, content={"error": "Failed to fetch data"})

    @router.get("/api/studios")
    async def get_studios() -> list[dict[str, Any]]:
        try:
            return await load_collection(source=studios, service=service)
        except NotionError as exc:
            raise HTTPException(status_code=502, detail=f"Content store unavailable: {exc}") from exc

    @router.get("/api/moodboard")
    async def get_moodboard() -> list[dict[str, Any]]:
        if moodboard is None:
            return []
        try:
            return await load_collection(source=moodboard, service=service)
        except NotionError as exc:
            raise HTTPException(status_code=502, detail=f"Content store unavailable: {exc}") from exc

    return router
