"""
Profile Image Service

Coordinates the memory tier, the network and the disk tier:

load(url):
1. Memory cache (skipped when force_reload)
2. Cache-busted GET; on success seed memory + disk
3. On any network / decode failure, fall back to disk and re-seed memory

upload(image, user_id):
1. Compress to JPEG
2. PUT to profile_images/<user_id>_<timestamp>.jpg
3. Resolve the download URL
4. Invalidate, seed the caches and broadcast "image cache updated"

Concurrent loads of the same URL share one in-flight fetch. A forced reload
never joins a fetch that a plain load started.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from .codec import ImageInput, decode_image, encode_jpeg
from .config import ProfileImageConfig
from .disk_cache import DiskImageCache
from .errors import ImageDecodeError
from .events import ImageUpdateBroadcaster, Subscription
from .fetcher import ImageFetcher, add_cache_buster
from .memory_cache import MemoryImageCache
from .models import ImageCacheUpdated, ImageSource, LoadResult
from .storage import InMemoryObjectStorage, ObjectStorage, ProgressCallback, S3ObjectStorage

logger = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"


def build_storage(config: ProfileImageConfig) -> ObjectStorage:
    """Create the object storage client selected by config.storage_backend."""
    if config.storage_backend == "s3":
        if not config.s3_bucket:
            raise ValueError("PROFILE_IMAGE_S3_BUCKET is required for the s3 storage backend")
        return S3ObjectStorage(
            bucket=config.s3_bucket,
            region=config.s3_region,
            endpoint=config.s3_endpoint,
            access_key_id=config.aws_access_key_id,
            secret_access_key=config.aws_secret_access_key,
            public_base_url=config.storage_public_base_url,
        )
    if config.storage_backend == "memory":
        return InMemoryObjectStorage(base_url=config.storage_public_base_url)
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")


class ProfileImageService:
    """
    Resolves profile image URLs to images and uploads new ones.

    Owned by the composition root; pass it to whatever needs images.
    """

    def __init__(
        self,
        memory_cache: MemoryImageCache,
        disk_cache: DiskImageCache,
        fetcher: ImageFetcher,
        storage: ObjectStorage,
        events: Optional[ImageUpdateBroadcaster] = None,
        jpeg_quality: int = 90,
        storage_prefix: str = "profile_images",
        clock: Callable[[], float] = time.time,
    ):
        self.memory_cache = memory_cache
        self.disk_cache = disk_cache
        self.fetcher = fetcher
        self.storage = storage
        self.events = events or ImageUpdateBroadcaster()
        self.jpeg_quality = jpeg_quality
        self.storage_prefix = storage_prefix
        self._clock = clock

        # url -> (in-flight fetch shared by concurrent loads of that url, started by a forced load)
        self._pending: Dict[str, Tuple[asyncio.Task, bool]] = {}
        # every running fetch, including ones a forced reload superseded
        self._fetches: Dict[asyncio.Task, str] = {}

    @classmethod
    def from_config(
        cls,
        config: ProfileImageConfig,
        storage: Optional[ObjectStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ProfileImageService":
        return cls(
            memory_cache=MemoryImageCache(
                count_limit=config.memory_count_limit,
                size_limit_bytes=config.memory_size_bytes,
            ),
            disk_cache=DiskImageCache(
                cache_dir=config.cache_dir,
                max_cache_size_bytes=config.disk_cache_size_bytes,
            ),
            fetcher=ImageFetcher(timeout=config.http_timeout, transport=transport),
            storage=storage if storage is not None else build_storage(config),
            jpeg_quality=config.jpeg_quality,
            storage_prefix=config.storage_prefix,
        )

    # ============================================
    # Loading
    # ============================================

    async def load(self, url: str, force_reload: bool = False) -> LoadResult:
        """
        Resolve url to an image.

        Args:
            url: Image URL (without cache-busting parameter)
            force_reload: Skip the memory cache and go to the network

        Returns:
            LoadResult; result.ok is False when neither the network nor the
            disk cache produced an image (show a placeholder).
        """
        if not force_reload:
            cached = self.memory_cache.get(url)
            if cached is not None:
                logger.debug(f"[ProfileImage] Memory hit: {url[:60]}...")
                return LoadResult(url=url, image=cached, source=ImageSource.MEMORY)

        entry = self._pending.get(url)
        if entry is None or (force_reload and not entry[1]):
            # A forced load never reuses a fetch that a plain load started
            if entry is not None:
                logger.debug(f"[ProfileImage] Forced reload supersedes in-flight fetch: {url[:60]}...")
            task = asyncio.create_task(self._fetch_and_cache(url))
            self._pending[url] = (task, force_reload)
            self._fetches[task] = url
            task.add_done_callback(lambda t: self._forget(url, t))
        else:
            task = entry[0]
            logger.debug(f"[ProfileImage] Joining in-flight fetch: {url[:60]}...")

        try:
            # A cancelled waiter must not cancel the fetch other waiters share
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                logger.info(f"[ProfileImage] Fetch cancelled: {url[:60]}...")
                return LoadResult(url=url)
            raise

    def _forget(self, url: str, task: asyncio.Task) -> None:
        self._fetches.pop(task, None)
        entry = self._pending.get(url)
        if entry is not None and entry[0] is task:
            del self._pending[url]

    def _owns_pending(self, url: str) -> bool:
        """True while the running fetch is still the one registered for url."""
        entry = self._pending.get(url)
        return entry is not None and entry[0] is asyncio.current_task()

    async def _fetch_and_cache(self, url: str) -> LoadResult:
        busted_url = add_cache_buster(url, self._clock())
        result = await self.fetcher.fetch(busted_url)

        if result.success and result.image is not None:
            image = result.image
            if self._owns_pending(url):
                self.memory_cache.set(url, image)
                await self.disk_cache.put(url, image.data, image.content_type)
            else:
                logger.debug(f"[ProfileImage] Superseded fetch finished, not caching: {url[:60]}...")
            logger.info(f"[ProfileImage] Loaded from network: {url[:60]}...")
            return LoadResult(url=url, image=image, source=ImageSource.NETWORK)

        logger.warning(f"[ProfileImage] Network load failed ({result.error}), trying disk: {url[:60]}...")
        return await self._load_from_disk(url, seed_memory=self._owns_pending(url))

    async def _load_from_disk(self, url: str, seed_memory: bool = True) -> LoadResult:
        cached = await self.disk_cache.get(url)
        if cached is None:
            logger.info(f"[ProfileImage] No cached image found: {url[:60]}...")
            return LoadResult(url=url)

        data, _content_type = cached
        try:
            image = await asyncio.to_thread(decode_image, data)
        except ImageDecodeError as e:
            logger.warning(f"[ProfileImage] Corrupt disk entry removed ({e}): {url[:60]}...")
            await self.disk_cache.remove(url)
            return LoadResult(url=url)

        if seed_memory:
            self.memory_cache.set(url, image)
        logger.info(f"[ProfileImage] Fallback: loaded from disk cache: {url[:60]}...")
        return LoadResult(url=url, image=image, source=ImageSource.DISK)

    def pending_count(self) -> int:
        return len(self._pending)

    def cancel_pending(self, url: Optional[str] = None) -> int:
        """
        Cancel in-flight fetches (one URL, or all).

        Returns:
            Number of fetches cancelled.
        """
        if url is not None:
            tasks = [task for task, task_url in self._fetches.items() if task_url == url]
        else:
            tasks = list(self._fetches)

        cancelled = 0
        for task in tasks:
            if task.cancel():
                cancelled += 1
        if cancelled:
            logger.info(f"[ProfileImage] Cancelled {cancelled} in-flight fetches")
        return cancelled

    async def verify(self, url: str) -> bool:
        """True iff a HEAD request for url answers 200."""
        return await self.fetcher.head(url)

    async def preload(self, url: str) -> bool:
        """
        Verify and load url so it is in memory before anything displays it.

        Returns:
            True if the image is now cached.
        """
        logger.info(f"[ProfileImage] Preloading: {url[:60]}...")
        if not await self.verify(url):
            logger.warning(f"[ProfileImage] Image URL doesn't exist or is inaccessible: {url[:60]}...")
            return False

        result = await self.load(url)
        if not result.ok:
            logger.warning(f"[ProfileImage] Failed to preload: {url[:60]}...")
            return False

        self.notify_image_updated()
        return True

    # ============================================
    # Uploading
    # ============================================

    def storage_path(self, user_id: str) -> str:
        """profile_images/<user_id>_<unix timestamp>.jpg"""
        return f"{self.storage_prefix}/{user_id}_{int(self._clock())}.jpg"

    async def upload(
        self,
        image: ImageInput,
        user_id: str,
        progress: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Upload a new profile image for user_id.

        Args:
            image: PIL image, encoded bytes or ProfileImage
            user_id: Owner, embedded in the storage path
            progress: Called with the uploaded fraction (0.0-1.0) on the event loop

        Returns:
            Public download URL of the uploaded image.

        Raises:
            ImageEncodingError: image could not be compressed
            StorageError (or the storage client's own error): upload / URL lookup failed
        """
        data = await asyncio.to_thread(encode_jpeg, image, self.jpeg_quality)
        path = self.storage_path(user_id)
        logger.info(f"[ProfileImage] Uploading {len(data)} bytes for user {user_id} to {path}")

        await self.storage.put_object(
            path,
            data,
            JPEG_CONTENT_TYPE,
            progress=self._deliver_on_loop(progress) if progress else None,
        )
        url = await self.storage.download_url(path)
        logger.info(f"[ProfileImage] Got download URL: {url[:80]}")

        uploaded = await asyncio.to_thread(decode_image, data)

        # Normally empty for a fresh path; guards against URL reuse
        await self.invalidate(url)
        self.memory_cache.set(url, uploaded)
        await self.disk_cache.put(url, data, JPEG_CONTENT_TYPE)

        self.notify_image_updated()
        return url

    def _deliver_on_loop(self, progress: ProgressCallback) -> ProgressCallback:
        """Wrap progress so it always runs on this event loop, whatever thread reports it."""
        loop = asyncio.get_running_loop()

        def deliver(fraction: float) -> None:
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                progress(fraction)
            else:
                loop.call_soon_threadsafe(progress, fraction)

        return deliver

    # ============================================
    # Invalidation & notifications
    # ============================================

    async def invalidate(self, url: str) -> None:
        """Drop url from both tiers and cancel fetches that would re-seed them."""
        self.cancel_pending(url)
        self.memory_cache.remove(url)
        await self.disk_cache.remove(url)

    async def clear_cache(self, url: Optional[str] = None) -> int:
        """
        Clear one URL, or everything, from both tiers.

        Returns:
            Number of entries removed across tiers.
        """
        if url is not None:
            logger.info(f"[ProfileImage] Clearing cache for URL: {url[:60]}...")
            self.cancel_pending(url)
            removed = int(self.memory_cache.remove(url))
            removed += int(await self.disk_cache.remove(url))
            return removed

        logger.info("[ProfileImage] Clearing entire image cache")
        self.cancel_pending()
        return self.memory_cache.clear() + await self.disk_cache.clear_all()

    def notify_image_updated(self) -> ImageCacheUpdated:
        return self.events.publish(ImageCacheUpdated(timestamp=self._clock()))

    def subscribe(self) -> Subscription:
        """Subscribe to image cache updated events. Close the subscription when done."""
        return self.events.subscribe()

    def stats(self) -> Dict[str, Any]:
        return {
            "memory": self.memory_cache.stats(),
            "disk": self.disk_cache.get_stats(),
            "pending_fetches": len(self._pending),
            "subscribers": self.events.subscriber_count,
        }

    async def close(self) -> None:
        self.cancel_pending()
        await self.fetcher.close()
        self.events.close_all()
