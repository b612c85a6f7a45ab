"""
Profile Image Module

Loads, caches and uploads user profile images.

Features:
- Memory tier with count/size limits and LRU eviction
- Persistent disk tier used as a fallback when the network fails
- Cache-busted fetches with in-flight request coalescing
- JPEG upload to object storage, then cache invalidation and seeding
- "Image cache updated" publish/subscribe events
"""

from .config import ProfileImageConfig
from .errors import ImageDecodeError, ImageEncodingError, ProfileImageError, StorageError
from .models import ImageCacheUpdated, ImageSource, LoadResult, ProfileImage
from .service import ProfileImageService
from .routes_fastapi import router

__all__ = [
    "router",
    "ProfileImageConfig",
    "ProfileImageService",
    "ProfileImage",
    "LoadResult",
    "ImageSource",
    "ImageCacheUpdated",
    "ProfileImageError",
    "ImageEncodingError",
    "ImageDecodeError",
    "StorageError",
]
