"""
Profile Image Configuration

Environment-backed settings for the cache tiers, the HTTP fetcher and
object storage. Build with ProfileImageConfig.from_env() at the composition
root and pass the result down.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ProfileImageConfig:
    """Settings for the profile image pipeline."""

    # Disk tier
    cache_dir: str = "./profile_image_cache"
    disk_cache_size_mb: int = 200

    # Memory tier
    memory_count_limit: int = 100
    memory_size_mb: int = 50

    # Network
    http_timeout: float = 30.0

    # Upload
    jpeg_quality: int = 90
    storage_prefix: str = "profile_images"

    # Object storage ("memory" or "s3")
    storage_backend: str = "memory"
    storage_public_base_url: str = "https://storage.example.test"
    s3_bucket: Optional[str] = None
    s3_region: Optional[str] = None
    s3_endpoint: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None

    @property
    def memory_size_bytes(self) -> int:
        return self.memory_size_mb * 1024 * 1024

    @property
    def disk_cache_size_bytes(self) -> int:
        return self.disk_cache_size_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "ProfileImageConfig":
        """Read settings from PROFILE_IMAGE_* / S3 environment variables."""
        return cls(
            cache_dir=os.getenv("PROFILE_IMAGE_CACHE_DIR", "./profile_image_cache"),
            disk_cache_size_mb=int(os.getenv("PROFILE_IMAGE_DISK_SIZE_MB", "200")),
            memory_count_limit=int(os.getenv("PROFILE_IMAGE_MEMORY_COUNT_LIMIT", "100")),
            memory_size_mb=int(os.getenv("PROFILE_IMAGE_MEMORY_SIZE_MB", "50")),
            http_timeout=float(os.getenv("PROFILE_IMAGE_HTTP_TIMEOUT", "30")),
            jpeg_quality=int(os.getenv("PROFILE_IMAGE_JPEG_QUALITY", "90")),
            storage_prefix=os.getenv("PROFILE_IMAGE_STORAGE_PREFIX", "profile_images"),
            storage_backend=os.getenv("PROFILE_IMAGE_STORAGE_BACKEND", "memory"),
            storage_public_base_url=os.getenv(
                "PROFILE_IMAGE_PUBLIC_BASE_URL", "https://storage.example.test"
            ),
            s3_bucket=os.getenv("PROFILE_IMAGE_S3_BUCKET"),
            s3_region=os.getenv("PROFILE_IMAGE_S3_REGION"),
            s3_endpoint=os.getenv("PROFILE_IMAGE_S3_ENDPOINT"),
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )
