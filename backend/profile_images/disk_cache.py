"""
Disk Image Cache

File-based persistent tier for profile images with:
- MD5-of-URL file names
- LRU (Least Recently Used) eviction under a size limit
- Metadata index that survives restarts
- Blocking file I/O offloaded to worker threads
"""

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class DiskCacheEntry:
    """Metadata for a cached image."""
    url: str
    content_type: str
    size_bytes: int
    created_at: float
    last_accessed: float


class DiskImageCache:
    """
    Persistent image cache keyed by URL.

    Cache structure:
    cache_dir/
    ├── images/
    │   ├── 9e107d9d372bb6826bd81d3542a419d6.jpg
    │   └── ...
    └── metadata.json
    """

    EXTENSIONS = {
        "image/jpeg": ".jpg",
        "image/png": ".png",
        "image/gif": ".gif",
        "image/webp": ".webp",
        "image/bmp": ".bmp",
        "image/tiff": ".tiff",
        "image/x-icon": ".ico",
    }

    def __init__(self, cache_dir: str = "./profile_image_cache", max_cache_size_bytes: int = 200 * 1024 * 1024):
        self.cache_dir = Path(cache_dir)
        self.images_dir = self.cache_dir / "images"
        self.metadata_file = self.cache_dir / "metadata.json"
        self.max_cache_size_bytes = max_cache_size_bytes

        self._metadata: dict[str, DiskCacheEntry] = {}
        self._lock = asyncio.Lock()

        self._init_cache_dir()
        self._load_metadata()

    def _init_cache_dir(self) -> None:
        """Create cache directories if they don't exist."""
        self.images_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"[DiskCache] Cache directory: {self.cache_dir}")

    def _load_metadata(self) -> None:
        """Load metadata from disk."""
        if not self.metadata_file.exists():
            self._metadata = {}
            return
        try:
            with open(self.metadata_file, "r") as f:
                data = json.load(f)
            self._metadata = {k: DiskCacheEntry(**v) for k, v in data.items()}
            logger.info(f"[DiskCache] Loaded {len(self._metadata)} cached entries")
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"[DiskCache] Failed to load metadata: {e}")
            self._metadata = {}

    def _save_metadata(self) -> None:
        """Save metadata to disk."""
        try:
            data = {k: asdict(v) for k, v in self._metadata.items()}
            with open(self.metadata_file, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error(f"[DiskCache] Failed to save metadata: {e}")

    @staticmethod
    def url_to_hash(url: str) -> str:
        """Convert URL to a safe filename hash."""
        return hashlib.md5(url.encode("utf-8")).hexdigest()

    def _get_cache_path(self, url_hash: str, content_type: str) -> Path:
        ext = self.EXTENSIONS.get(content_type, ".bin")
        return self.images_dir / f"{url_hash}{ext}"

    def _get_total_cache_size(self) -> int:
        return sum(entry.size_bytes for entry in self._metadata.values())

    @staticmethod
    def _read_file(path: Path) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        with open(path, "wb") as f:
            f.write(data)

    def __contains__(self, url: str) -> bool:
        return self.url_to_hash(url) in self._metadata

    def __len__(self) -> int:
        return len(self._metadata)

    async def get(self, url: str) -> Optional[Tuple[bytes, str]]:
        """
        Get cached image by URL.

        Returns:
            Tuple of (image_data, content_type) if cached, None otherwise.
        """
        url_hash = self.url_to_hash(url)

        async with self._lock:
            entry = self._metadata.get(url_hash)
            if entry is None:
                return None

            cache_path = self._get_cache_path(url_hash, entry.content_type)
            try:
                data = await asyncio.to_thread(self._read_file, cache_path)
            except OSError as e:
                logger.warning(f"[DiskCache] Failed to read {cache_path}: {e}")
                await self._remove_entry(url_hash)
                await asyncio.to_thread(self._save_metadata)
                return None

            # LRU tracking
            entry.last_accessed = time.time()
            await asyncio.to_thread(self._save_metadata)

            logger.debug(f"[DiskCache] Cache hit: {url[:60]}...")
            return data, entry.content_type

    async def put(self, url: str, data: bytes, content_type: str) -> bool:
        """
        Cache an image, replacing any existing entry for the URL.

        Returns:
            True if cached successfully, False otherwise.
        """
        if len(data) > self.max_cache_size_bytes:
            logger.warning(f"[DiskCache] Image too large ({len(data)} bytes): {url[:60]}...")
            return False

        url_hash = self.url_to_hash(url)

        async with self._lock:
            # One file per URL, even if the content type changed
            if url_hash in self._metadata:
                await self._remove_entry(url_hash)

            await self._ensure_space(len(data))

            cache_path = self._get_cache_path(url_hash, content_type)
            try:
                await asyncio.to_thread(self._write_file, cache_path, data)
            except OSError as e:
                logger.error(f"[DiskCache] Failed to cache: {e}")
                await asyncio.to_thread(self._save_metadata)
                return False

            now = time.time()
            self._metadata[url_hash] = DiskCacheEntry(
                url=url,
                content_type=content_type,
                size_bytes=len(data),
                created_at=now,
                last_accessed=now,
            )
            await asyncio.to_thread(self._save_metadata)
            logger.debug(f"[DiskCache] Cached: {url[:60]}... ({len(data)} bytes)")
            return True

    async def remove(self, url: str) -> bool:
        """
        Remove the entry for a URL.

        Returns:
            True if an entry was removed.
        """
        url_hash = self.url_to_hash(url)
        async with self._lock:
            if url_hash not in self._metadata:
                return False
            await self._remove_entry(url_hash)
            await asyncio.to_thread(self._save_metadata)
            return True

    async def _remove_entry(self, url_hash: str) -> None:
        """Remove a cache entry (file and metadata). Assumes lock held."""
        entry = self._metadata.pop(url_hash, None)
        if entry is None:
            return
        cache_path = self._get_cache_path(url_hash, entry.content_type)
        try:
            await asyncio.to_thread(cache_path.unlink, True)
            logger.debug(f"[DiskCache] Removed: {entry.url[:60]}...")
        except OSError as e:
            logger.error(f"[DiskCache] Failed to remove file: {e}")

    async def _ensure_space(self, needed_bytes: int) -> None:
        """Evict least recently used entries until needed_bytes fits. Assumes lock held."""
        current_size = self._get_total_cache_size()
        target_size = self.max_cache_size_bytes - needed_bytes

        if current_size <= target_size:
            return

        sorted_entries = sorted(self._metadata.items(), key=lambda x: x[1].last_accessed)

        for url_hash, entry in sorted_entries:
            if current_size <= target_size:
                break
            current_size -= entry.size_bytes
            await self._remove_entry(url_hash)
            logger.info(f"[DiskCache] LRU evicted: {entry.url[:60]}...")

    async def clear_all(self) -> int:
        """
        Clear all cached images.

        Returns:
            Number of entries removed.
        """
        async with self._lock:
            count = len(self._metadata)
            for url_hash in list(self._metadata):
                await self._remove_entry(url_hash)
            self._metadata = {}
            await asyncio.to_thread(self._save_metadata)
            logger.info(f"[DiskCache] Cleared all {count} entries")
            return count

    def get_stats(self) -> dict:
        """Get cache statistics."""
        total_size = self._get_total_cache_size()
        return {
            "total_entries": len(self._metadata),
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
            "max_size_mb": round(self.max_cache_size_bytes / (1024 * 1024), 2),
            "usage_percent": round(total_size / self.max_cache_size_bytes * 100, 1) if self.max_cache_size_bytes > 0 else 0,
        }
