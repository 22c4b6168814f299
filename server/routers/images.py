"""Image lookup routes for meal and pantry item photos."""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import BaseModel, Field

from core.container import get_resolver
from core.logging import get_logger
from services.media.exceptions import InvalidNameError
from services.media.models import CacheStats
from services.media.naming import initials, normalize_name
from services.media.service import ImageResolver

logger = get_logger(__name__)
router = APIRouter(prefix="/api/images", tags=["images"])


class ImageResponse(BaseModel):
    name: str
    key: str
    url: Optional[str] = None
    initials: str


class BatchRequest(BaseModel):
    names: List[str] = Field(default_factory=list, max_length=200)


class BatchResponse(BaseModel):
    images: Dict[str, Optional[str]]


class MarkFailedRequest(BaseModel):
    name: str


def resolver_for(catalog: str = Path(..., description="Image catalog, e.g. 'meals'")) -> ImageResolver:
    resolver = get_resolver(catalog)
    if resolver is None:
        logger.warning("Unknown image catalog requested", catalog=catalog)
        raise HTTPException(status_code=404, detail=f"Unknown image catalog: {catalog}")
    return resolver


@router.get("/{catalog}", response_model=ImageResponse)
async def get_image(
    name: str = Query(..., description="Free-text item name"),
    resolver: ImageResolver = Depends(resolver_for)
):
    """Resolve a name to an image URL, generating one if none exists yet.

    ``url`` is null when no image is available; clients fall back to
    ``initials``.
    """
    if not name.strip():
        raise InvalidNameError("Name must not be blank")

    url = await resolver.get_image(name)
    return ImageResponse(name=name, key=normalize_name(name), url=url, initials=initials(name))


@router.post("/{catalog}/batch", response_model=BatchResponse)
async def get_images_batch(
    request: BatchRequest,
    resolver: ImageResolver = Depends(resolver_for)
):
    """Resolve several names at once. Failures come back as null."""
    return BatchResponse(images=await resolver.get_images_batch(request.names))


@router.post("/{catalog}/preload", status_code=status.HTTP_202_ACCEPTED)
async def preload_images(
    request: BatchRequest,
    resolver: ImageResolver = Depends(resolver_for)
):
    """Start warming the cache in the background and return immediately."""
    task = resolver.preload(request.names)
    return {"success": True, "queued": task is not None}


@router.post("/{catalog}/failed")
async def mark_image_failed(
    request: MarkFailedRequest,
    resolver: ImageResolver = Depends(resolver_for)
):
    """Report a broken image URL so the name cools down before regenerating."""
    if not request.name.strip():
        raise InvalidNameError("Name must not be blank")
    key = resolver.mark_failed(request.name)
    return {"success": True, "key": key}


@router.get("/{catalog}/stats", response_model=CacheStats)
async def get_cache_stats(resolver: ImageResolver = Depends(resolver_for)):
    """Memory cache and in-flight diagnostics."""
    return resolver.stats()


@router.delete("/{catalog}/cache")
async def clear_cache(resolver: ImageResolver = Depends(resolver_for)):
    """Drop every cached entry for the catalog."""
    cleared = resolver.clear_cache()
    return {"success": True, "cleared": cleared}
