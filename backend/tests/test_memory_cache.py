"""
MemoryImageCache tests
内存图片缓存测试
"""

import pytest

from profile_images.memory_cache import MemoryImageCache
from profile_images.models import ProfileImage


def image_of(size: int) -> ProfileImage:
    return ProfileImage(data=b"x" * size, width=1, height=1, format="JPEG")


class TestMemoryCache:
    """基本读写"""

    def test_get_missing_returns_none(self):
        cache = MemoryImageCache()

        assert cache.get("https://cdn/x.jpg") is None
        assert cache.stats()["misses"] == 1

    def test_set_then_get(self):
        cache = MemoryImageCache()
        image = image_of(10)

        assert cache.set("https://cdn/x.jpg", image) is True
        assert cache.get("https://cdn/x.jpg") is image
        assert cache.stats()["hits"] == 1

    def test_one_entry_per_url(self):
        cache = MemoryImageCache()
        cache.set("u", image_of(10))
        cache.set("u", image_of(30))

        assert len(cache) == 1
        assert cache.stats()["total_size_bytes"] == 30

    def test_remove_and_clear(self):
        cache = MemoryImageCache()
        cache.set("a", image_of(1))
        cache.set("b", image_of(1))

        assert cache.remove("a") is True
        assert cache.remove("a") is False
        assert cache.clear() == 1
        assert len(cache) == 0
        assert cache.stats()["total_size_bytes"] == 0


class TestMemoryCacheEviction:
    """LRU 淘汰"""

    def test_count_limit_evicts_least_recently_used(self):
        cache = MemoryImageCache(count_limit=2)
        cache.set("a", image_of(1))
        cache.set("b", image_of(1))
        cache.get("a")  # b is now least recently used
        cache.set("c", image_of(1))

        assert cache.keys() == ["a", "c"]

    def test_size_limit_evicts_until_it_fits(self):
        cache = MemoryImageCache(count_limit=100, size_limit_bytes=100)
        cache.set("a", image_of(40))
        cache.set("b", image_of(40))
        cache.set("c", image_of(40))

        assert "a" not in cache
        assert cache.keys() == ["b", "c"]
        assert cache.stats()["total_size_bytes"] == 80

    def test_oversized_image_is_rejected(self):
        cache = MemoryImageCache(size_limit_bytes=10)
        cache.set("small", image_of(5))

        assert cache.set("big", image_of(11)) is False
        assert "big" not in cache
        assert "small" in cache

    @pytest.mark.parametrize("count_limit", [1, 3])
    def test_never_exceeds_count_limit(self, count_limit):
        cache = MemoryImageCache(count_limit=count_limit)
        for i in range(10):
            cache.set(f"u{i}", image_of(1))

        assert len(cache) == count_limit
