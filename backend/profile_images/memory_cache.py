"""
Memory Image Cache
内存图片缓存

Thread-safe in-process tier for decoded profile images.

Features:
- Thread-safe operations with Lock
- Count limit and byte-size limit
- LRU eviction when either limit is exceeded
- At most one entry per URL
"""

import logging
from collections import OrderedDict
from threading import Lock
from typing import Any, Dict, List, Optional

from .models import ProfileImage

logger = logging.getLogger(__name__)


class MemoryImageCache:
    """
    Thread-safe in-memory image cache
    线程安全的内存图片缓存

    Keys are URL strings. Reads refresh recency; writes evict the least
    recently used entries until both limits hold.
    """

    def __init__(self, count_limit: int = 100, size_limit_bytes: int = 50 * 1024 * 1024):
        """
        Initialize memory cache

        Args:
            count_limit: Maximum number of images to keep
            size_limit_bytes: Maximum total size of cached image bytes
        """
        self._entries: "OrderedDict[str, ProfileImage]" = OrderedDict()
        self._lock = Lock()
        self._count_limit = count_limit
        self._size_limit_bytes = size_limit_bytes
        self._total_bytes = 0
        self._hits = 0
        self._misses = 0

    def get(self, url: str) -> Optional[ProfileImage]:
        """
        Get cached image by URL
        根据 URL 获取缓存图片

        Returns:
            ProfileImage if cached, None otherwise
        """
        with self._lock:
            image = self._entries.get(url)
            if image is None:
                self._misses += 1
                return None
            self._entries.move_to_end(url)
            self._hits += 1
            return image

    def set(self, url: str, image: ProfileImage) -> bool:
        """
        Store image under URL, replacing any existing entry
        存储图片

        Returns:
            False if the image alone exceeds the size limit (not cached)
        """
        if image.size_bytes > self._size_limit_bytes:
            logger.warning(
                f"[MemoryCache] Image too large ({image.size_bytes} bytes): {url[:60]}..."
            )
            return False

        with self._lock:
            previous = self._entries.pop(url, None)
            if previous is not None:
                self._total_bytes -= previous.size_bytes

            self._entries[url] = image
            self._total_bytes += image.size_bytes
            self._evict()
            return True

    def remove(self, url: str) -> bool:
        """
        Remove one entry
        删除缓存条目

        Returns:
            True if removed, False if not found
        """
        with self._lock:
            image = self._entries.pop(url, None)
            if image is None:
                return False
            self._total_bytes -= image.size_bytes
            return True

    def clear(self) -> int:
        """
        Clear all entries
        清空所有缓存

        Returns:
            Number of entries removed
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._total_bytes = 0
            return count

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> List[str]:
        """URLs from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics
        获取缓存统计信息
        """
        with self._lock:
            return {
                "total_entries": len(self._entries),
                "count_limit": self._count_limit,
                "total_size_bytes": self._total_bytes,
                "total_size_mb": round(self._total_bytes / (1024 * 1024), 2),
                "size_limit_mb": round(self._size_limit_bytes / (1024 * 1024), 2),
                "hits": self._hits,
                "misses": self._misses,
            }

    def _evict(self) -> None:
        """Evict least recently used entries (internal, assumes lock held)."""
        while self._entries and (
            len(self._entries) > self._count_limit
            or self._total_bytes > self._size_limit_bytes
        ):
            url, image = self._entries.popitem(last=False)
            self._total_bytes -= image.size_bytes
            logger.debug(f"[MemoryCache] LRU evicted: {url[:60]}...")
