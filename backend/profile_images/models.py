"""
Profile Image Data Models

Value types shared by the cache tiers, the fetcher and the service.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from typing import Optional

from PIL import Image


# Format name (as reported by PIL) -> MIME type
FORMAT_TO_MIME = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
    "ICO": "image/x-icon",
}


@dataclass(frozen=True)
class ProfileImage:
    """A decoded image: the original encoded bytes plus what PIL read from them."""
    data: bytes
    width: int
    height: int
    format: str

    @property
    def content_type(self) -> str:
        return FORMAT_TO_MIME.get(self.format, "application/octet-stream")

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    def to_pil(self) -> Image.Image:
        """Open the bytes as a PIL image."""
        return Image.open(BytesIO(self.data))


class ImageSource(str, Enum):
    """Tier a load was served from."""
    MEMORY = "memory"
    NETWORK = "network"
    DISK = "disk"
    NONE = "none"


@dataclass
class LoadResult:
    """Outcome of ProfileImageService.load()."""
    url: str
    image: Optional[ProfileImage] = None
    source: ImageSource = ImageSource.NONE

    @property
    def ok(self) -> bool:
        return self.image is not None


@dataclass(frozen=True)
class ImageCacheUpdated:
    """Broadcast after the cached profile image changes."""
    timestamp: float = field(default_factory=time.time)
