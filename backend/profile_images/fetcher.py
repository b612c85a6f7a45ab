"""
Image Fetcher

Handles:
- Cache-busted GET requests for profile images
- HEAD requests to check an image exists
- Decoding the response body (off the event loop)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

from .codec import decode_image
from .errors import ImageDecodeError
from .models import ProfileImage

logger = logging.getLogger(__name__)

CACHE_BUSTER_PARAM = "t"


def add_cache_buster(url: str, timestamp: Optional[float] = None) -> str:
    """
    Append a t=<unix timestamp> query parameter to defeat intermediate HTTP caches.

    Example:
        add_cache_buster("https://cdn/x.jpg", 1700000000.5)
        -> "https://cdn/x.jpg?t=1700000000.5"
    """
    if timestamp is None:
        timestamp = time.time()
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{CACHE_BUSTER_PARAM}={timestamp}"


def is_http_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass
class FetchResult:
    """Result of fetching one image."""
    url: str
    success: bool
    status_code: Optional[int] = None
    image: Optional[ProfileImage] = None
    error: Optional[str] = None


class ImageFetcher:
    """
    Fetches profile images over HTTP.

    Usage:
        fetcher = ImageFetcher(timeout=30.0)
        result = await fetcher.fetch(add_cache_buster(url))
        exists = await fetcher.head(url)
    """

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.headers = {
            "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
            # Serve from any cache that has it, otherwise load
            "Cache-Control": "max-stale",
        }
        self.http_client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers=self.headers,
            transport=transport,
        )

    async def close(self):
        """Close HTTP client."""
        await self.http_client.aclose()

    async def fetch(self, url: str) -> FetchResult:
        """
        GET an image and decode it.

        Never raises for network, status or decode problems; those come back
        as an unsuccessful FetchResult.
        """
        if not is_http_url(url):
            logger.warning(f"[ImageFetcher] Invalid URL: {url[:60]}")
            return FetchResult(url=url, success=False, error="Invalid URL")

        try:
            logger.info(f"[ImageFetcher] Fetching: {url[:80]}...")
            response = await self.http_client.get(url)
        except httpx.TimeoutException:
            logger.error(f"[ImageFetcher] Timeout: {url[:60]}...")
            return FetchResult(url=url, success=False, error="Image fetch timeout")
        except httpx.HTTPError as e:
            logger.error(f"[ImageFetcher] Fetch error: {url[:60]}... - {e}")
            return FetchResult(url=url, success=False, error=str(e))

        if response.status_code != 200:
            logger.warning(f"[ImageFetcher] HTTP {response.status_code}: {url[:60]}...")
            return FetchResult(
                url=url,
                success=False,
                status_code=response.status_code,
                error=f"HTTP {response.status_code}",
            )

        try:
            image = await asyncio.to_thread(decode_image, response.content)
        except ImageDecodeError as e:
            logger.warning(f"[ImageFetcher] Undecodable body: {url[:60]}... - {e}")
            return FetchResult(url=url, success=False, status_code=200, error=str(e))

        logger.info(
            f"[ImageFetcher] Success: {url[:40]}... "
            f"({image.size_bytes // 1024}KB, {image.width}x{image.height})"
        )
        return FetchResult(url=url, success=True, status_code=200, image=image)

    async def head(self, url: str) -> bool:
        """
        HEAD an image URL.

        Returns:
            True iff the server answered 200. Transport errors count as missing.
        """
        if not is_http_url(url):
            logger.warning(f"[ImageFetcher] Invalid image URL for verification: {url[:60]}")
            return False

        try:
            response = await self.http_client.head(url)
        except httpx.HTTPError as e:
            logger.error(f"[ImageFetcher] Error verifying image URL: {url[:60]}... - {e}")
            return False

        exists = response.status_code == 200
        logger.info(f"[ImageFetcher] Verification: {'exists' if exists else 'not found'} ({response.status_code})")
        return exists
