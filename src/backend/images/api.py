from __future__ import annotations

from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from .service import ImageService


class ImageStatusOut(BaseModel):
    cache_size: int
    index_size: int
    store_connected: bool
    index_complete: Optional[bool] = None
    pending_checkpoint: int
    cache_hits: int
    store_hits: int
    uploads: int
    already_existed: int
    failures: int
    bytes_uploaded: int
    hit_ratio: float


class IndexRebuildOut(BaseModel):
    index_size: int
    complete: Optional[bool] = None


class CheckpointOut(BaseModel):
    saved: bool
    cache_size: int


class CacheClearedOut(BaseModel):
    cache_size: int


def create_images_router(*, service: ImageService) -> APIRouter:
    router = APIRouter(prefix="/api/images", tags=["images"])

    @router.get("/status", response_model=ImageStatusOut)
    async def get_status() -> ImageStatusOut:
        status = await service.status()
        return ImageStatusOut(**status.to_dict())

    @router.post("/index/rebuild", response_model=IndexRebuildOut)
    async def rebuild_index() -> IndexRebuildOut:
        size = await service.rebuild_existing_keys_index()
        return IndexRebuildOut(index_size=size, complete=service.index_complete)

    @router.post("/checkpoint", response_model=CheckpointOut)
    async def save_checkpoint() -> CheckpointOut:
        saved = await service.save_checkpoint()
        return CheckpointOut(saved=saved, cache_size=service.cache_size)

    @router.delete("/cache", response_model=CacheClearedOut)
    def clear_cache() -> CacheClearedOut:
        service.clear_cache()
        return CacheClearedOut(cache_size=0)

    return router
