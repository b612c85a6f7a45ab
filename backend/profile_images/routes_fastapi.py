"""
Profile Image API Routes

Provides endpoints for:
- Loading a profile image through the memory/network/disk pipeline
- Verifying an image URL exists
- Uploading a new profile image for a user
- Cache statistics and management
- Streaming "image cache updated" events (server-sent events)
"""

import asyncio
import base64
import binascii
import json
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, Field

from .errors import ImageEncodingError, StorageError
from .models import ImageSource
from .service import ProfileImageService

logger = logging.getLogger(__name__)

# ============================================
# Dependencies
# ============================================


def get_service(request: Request) -> ProfileImageService:
    return request.app.state.profile_image_service


def decode_base64_image(image_base64: str) -> bytes:
    """Decode a base64 request field, raising 400 on garbage."""
    try:
        return base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="image_base64 is not valid base64")


# ============================================
# Request/Response Models
# ============================================


class UploadRequest(BaseModel):
    """Request model for uploading a profile image."""
    user_id: str = Field(..., description="Owner of the image, embedded in the storage path")
    image_base64: str = Field(..., description="Base64-encoded image (any format PIL can read)")


class UploadResponse(BaseModel):
    """Response model for a successful upload."""
    success: bool
    url: str
    user_id: str


class VerifyResponse(BaseModel):
    url: str
    exists: bool


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/api/profile-image", tags=["Profile Image"])

X_CACHE = {
    ImageSource.MEMORY: "HIT",
    ImageSource.NETWORK: "MISS",
    ImageSource.DISK: "DISK",
}


# ============================================
# Endpoints
# ============================================

@router.get("")
@router.get("/")
async def load_image(
    request: Request,
    url: str = Query(..., description="Profile image URL"),
    force_reload: bool = Query(False, description="Skip the memory cache"),
):
    """
    Resolve a profile image.

    This endpoint:
    1. Returns the memory-cached image unless force_reload is set
    2. Otherwise fetches with a cache-busting parameter
    3. Falls back to the disk cache if the network fails

    Example:
        GET /api/profile-image?url=https://cdn.example.com/u1.jpg
    """
    service = get_service(request)
    result = await service.load(url, force_reload=force_reload)

    if not result.ok:
        raise HTTPException(status_code=404, detail="Image not available")

    return Response(
        content=result.image.data,
        media_type=result.image.content_type,
        headers={"X-Cache": X_CACHE[result.source]},
    )


@router.get("/verify", response_model=VerifyResponse)
async def verify_image(request: Request, url: str = Query(..., description="Profile image URL")):
    """Check whether an image URL answers 200 to a HEAD request."""
    exists = await get_service(request).verify(url)
    return VerifyResponse(url=url, exists=exists)


@router.post("/upload", response_model=UploadResponse)
async def upload_image(request: Request, body: UploadRequest):
    """
    Upload a new profile image. The user record is not touched; see
    POST /api/users/{user_id}/profile-image for that.

    Example:
        POST /api/profile-image/upload
        {"user_id": "u1", "image_base64": "/9j/4AAQSkZJRg..."}
    """
    image_data = decode_base64_image(body.image_base64)

    try:
        url = await get_service(request).upload(image_data, body.user_id)
    except ImageEncodingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.error(f"[ProfileImage] Upload failed for {body.user_id}: {e}")
        raise HTTPException(status_code=502, detail=f"Upload failed: {e}")

    return UploadResponse(success=True, url=url, user_id=body.user_id)


@router.delete("/cache")
async def clear_cache(
    request: Request,
    url: Optional[str] = Query(None, description="URL to evict; omit to clear everything"),
):
    """Clear one URL, or all cached images."""
    removed = await get_service(request).clear_cache(url)
    return JSONResponse(content={
        "success": True,
        "removed_entries": removed,
    })


@router.get("/stats")
async def get_cache_stats(request: Request):
    """Memory tier, disk tier and in-flight statistics."""
    return JSONResponse(content={
        "success": True,
        "stats": get_service(request).stats(),
    })


@router.get("/events")
async def stream_events(request: Request):
    """Server-sent events: one `image_cache_updated` message per cache update."""
    service = get_service(request)

    async def event_stream():
        async with service.subscribe() as subscription:
            while not await request.is_disconnected():
                try:
                    event = await subscription.get(timeout=15.0)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                payload = json.dumps({"timestamp": event.timestamp})
                yield f"event: image_cache_updated\ndata: {payload}\n\n"

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    return JSONResponse(content={
        "status": "healthy",
        "service": "profile-image",
        "cache_stats": get_service(request).stats(),
    })
