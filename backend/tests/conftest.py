"""
Profile image test configuration

Fixtures:
- Image bytes generated with PIL (JPEG / PNG with alpha)
- ImageServer: an httpx.MockTransport that serves images and records requests
- FakeClock: controllable time source for cache busting and upload paths
- Fully wired ProfileImageService backed by a temp disk cache and in-memory storage
"""

import sys
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Tuple

import httpx
import pytest
from PIL import Image

# Add backend directory to the Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from profile_images.disk_cache import DiskImageCache
from profile_images.events import ImageUpdateBroadcaster
from profile_images.fetcher import ImageFetcher
from profile_images.memory_cache import MemoryImageCache
from profile_images.service import ProfileImageService
from profile_images.storage import InMemoryObjectStorage


# ============================================
# Image data
# ============================================

def make_image_bytes(fmt: str = "JPEG", size=(8, 6), color=(200, 30, 30), mode: str = "RGB") -> bytes:
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    output = BytesIO()
    Image.new(mode, size, color).save(output, format=fmt)
    return output.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def other_jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG", size=(4, 4), color=(10, 200, 10))


@pytest.fixture
def png_rgba_bytes() -> bytes:
    return make_image_bytes("PNG", mode="RGBA")


@pytest.fixture(scope="session")
def oversized_png_bytes() -> bytes:
    """A small file whose pixel count is past PIL's decompression bomb limit."""
    return make_image_bytes("PNG", size=(14000, 14000), color=0, mode="1")


# ============================================
# Fake HTTP server
# ============================================

class ImageServer:
    """
    Serves canned responses keyed by URL without the query string.

    Unknown URLs answer 404. Set `fail_with` to an httpx exception to
    simulate a transport error on every request.
    """

    def __init__(self):
        self.routes: Dict[str, Tuple[int, bytes, str]] = {}
        self.requests: List[httpx.Request] = []
        self.fail_with = None
        self.gate = None  # optional asyncio.Event; requests wait on it

    def serve(self, url: str, body: bytes, status: int = 200, content_type: str = "image/jpeg"):
        self.routes[url] = (status, body, content_type)

    def requests_for(self, method: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with

        key = str(request.url).split("?", 1)[0]
        status, body, content_type = self.routes.get(key, (404, b"not found", "text/plain"))
        if request.method == "HEAD":
            body = b""
        return httpx.Response(status, content=body, headers={"content-type": content_type})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def image_server() -> ImageServer:
    return ImageServer()


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================
# Service fixtures
# ============================================

@pytest.fixture
def memory_cache() -> MemoryImageCache:
    return MemoryImageCache(count_limit=10, size_limit_bytes=1024 * 1024)


@pytest.fixture
def disk_cache(tmp_path) -> DiskImageCache:
    return DiskImageCache(cache_dir=str(tmp_path / "cache"), max_cache_size_bytes=1024 * 1024)


@pytest.fixture
def storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage(base_url="https://storage.test")


@pytest.fixture
async def service(memory_cache, disk_cache, image_server, storage, clock):
    """
    ProfileImageService wired to the fake server, temp disk cache and
    in-memory storage. Closed after the test.
    """
    svc = ProfileImageService(
        memory_cache=memory_cache,
        disk_cache=disk_cache,
        fetcher=ImageFetcher(timeout=5.0, transport=image_server.transport),
        storage=storage,
        events=ImageUpdateBroadcaster(),
        clock=clock,
    )
    yield svc
    await svc.close()


# ============================================
# Helper Functions
# ============================================

def assert_loaded(result, source, data=None):
    """Assert a LoadResult carries an image from the expected tier."""
    assert result.ok, f"Load failed for {result.url}"
    assert result.source == source, f"Expected {source}, got {result.source}"
    if data is not None:
        assert result.image.data == data


def assert_not_loaded(result):
    assert not result.ok, f"Load should have failed but came from {result.source}"
    assert result.image is None
