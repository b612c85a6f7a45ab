"""
Object storage for uploaded profile images: S3-compatible and in-memory.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Callable, Dict, Optional, Protocol
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class ObjectStorage(Protocol):
    """Defines the operations the upload path needs from object storage."""

    async def put_object(
        self,
        path: str,
        data: bytes,
        content_type: str,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        ...

    async def download_url(self, path: str) -> str:
        ...


@dataclass
class StoredObject:
    data: bytes
    content_type: str


@dataclass
class InMemoryObjectStorage:
    """Test double and local-dev storage."""

    base_url: str = "https://storage.example.test"
    chunk_size: int = 64 * 1024
    stored_objects: Dict[str, StoredObject] = field(default_factory=dict)
    # Set to make the next calls fail, e.g. StorageError("quota exceeded")
    fail_uploads_with: Optional[Exception] = None
    fail_urls_with: Optional[Exception] = None

    async def put_object(
        self,
        path: str,
        data: bytes,
        content_type: str,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        if self.fail_uploads_with is not None:
            raise self.fail_uploads_with

        total = len(data)
        if progress is not None:
            sent = 0
            while sent < total:
                sent = min(total, sent + self.chunk_size)
                progress(sent / total)
            if total == 0:
                progress(1.0)

        self.stored_objects[path] = StoredObject(data=bytes(data), content_type=content_type)
        logger.debug(f"[ObjectStorage] Stored {path} ({total} bytes)")

    async def download_url(self, path: str) -> str:
        if self.fail_urls_with is not None:
            raise self.fail_urls_with
        if path not in self.stored_objects:
            raise StorageError(f"Object not found: {path}", path=path)
        return f"{self.base_url}/o/{quote(path, safe='')}?alt=media"


@dataclass
class S3ObjectStorage:
    """
    S3-compatible storage client. Objects are served from public_base_url.
    """

    bucket: str
    region: Optional[str] = None
    endpoint: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    public_base_url: Optional[str] = None

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def _upload(self, path: str, data: bytes, content_type: str, progress: Optional[ProgressCallback]) -> None:
        total = len(data) or 1
        transferred = 0

        def on_bytes(amount: int) -> None:
            nonlocal transferred
            transferred += amount
            if progress is not None:
                progress(min(1.0, transferred / total))

        self._client.upload_fileobj(
            BytesIO(data),
            self.bucket,
            path,
            ExtraArgs={"ContentType": content_type},
            Callback=on_bytes,
        )

    async def put_object(
        self,
        path: str,
        data: bytes,
        content_type: str,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        try:
            await asyncio.to_thread(self._upload, path, data, content_type, progress)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"[ObjectStorage] Upload failed for {path}: {e}")
            raise StorageError(str(e), path=path) from e

    async def download_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quote(path)}"
        try:
            # Confirms the object exists before handing out its URL
            await asyncio.to_thread(self._client.head_object, Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"[ObjectStorage] Failed to resolve URL for {path}: {e}")
            raise StorageError(str(e), path=path) from e
        return f"https://{self.bucket}.s3.amazonaws.com/{quote(path)}"
