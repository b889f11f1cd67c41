"""
Object storage gateway.

Hides the object store behind three operations (put, signed_url, delete) so
the upload workflow doesn't care whether bytes land in S3, an S3-compatible
store, or memory. Switching backends is a config change.

- S3StorageGateway: boto3 client, used in production
- InMemoryStorageGateway: dict-backed, used in local development and tests

boto3 is synchronous, so every SDK call runs in a worker thread to keep the
event loop free while large uploads are in flight.

Usage:
    gateway = create_storage_gateway(StorageConfig(bucket="videos"))
    await gateway.put("videos/abc.mp4", file_obj, "video/mp4")
    url = await gateway.signed_url("videos/abc.mp4", ttl_seconds=900)
    await gateway.delete("videos/abc.mp4")
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO, Optional, Protocol
from urllib.parse import quote, urlencode

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from videoteca.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass
class StorageConfig:
    """Connection settings for S3 or an S3-compatible store."""
    bucket: str
    region: str = "us-east-1"
    access_key_id: str = ""
    secret_access_key: str = ""
    endpoint_url: str = ""


class StorageGateway(Protocol):
    """What the workflows need from an object store."""

    async def put(self, key: str, body: BinaryIO, content_type: str) -> None:
        """Upload content under key, overwriting any existing object."""
        ...

    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        """Temporary read URL. Raises NotFoundError if the key is absent."""
        ...

    async def delete(self, key: str) -> None:
        """Remove the object. A missing key is not an error."""
        ...

    async def exists(self, key: str) -> bool:
        ...


class S3StorageGateway:
    """Amazon S3 gateway (works with MinIO/R2 through endpoint_url)."""

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self.bucket = config.bucket
        if client is None:
            client = boto3.client(
                "s3",
                region_name=config.region,
                endpoint_url=config.endpoint_url or None,
                aws_access_key_id=config.access_key_id or None,
                aws_secret_access_key=config.secret_access_key or None,
                config=Config(signature_version="s3v4"),
            )
        self.client = client
        logger.info("S3 storage gateway ready", extra={"bucket": self.bucket})

    async def put(self, key: str, body: BinaryIO, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self.client.upload_fileobj,
                body,
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("S3 upload failed", extra={"key": key, "error": str(e)})
            raise StorageError(f"Failed to upload object: {e}") from e

    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        if not await self.exists(key):
            raise NotFoundError(f"Storage object not found: {key}")
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to sign URL: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_KEY_CODES:
                return
            raise StorageError(f"Failed to delete object: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to delete object: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_KEY_CODES:
                return False
            raise StorageError(f"Failed to stat object: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to stat object: {e}") from e


class InMemoryStorageGateway:
    """Keeps objects in a dict. Used in development and tests.

    Signed URLs use a memory:// scheme but carry the same expiry parameters
    as an S3 presigned URL, so callers can inspect them the same way.
    """

    def __init__(self, bucket: str = "local"):
        self.bucket = bucket
        self.objects: dict[str, tuple[bytes, str]] = {}
        logger.info("In-memory storage gateway ready")

    async def put(self, key: str, body: BinaryIO, content_type: str) -> None:
        self.objects[key] = (body.read(), content_type)

    async def signed_url(self, key: str, ttl_seconds: int) -> str:
        if key not in self.objects:
            raise NotFoundError(f"Storage object not found: {key}")
        query = urlencode({
            "X-Amz-Date": datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"),
            "X-Amz-Expires": ttl_seconds,
        })
        return f"memory://{self.bucket}/{quote(key)}?{query}"

    async def delete(self, key: str) -> None:
        self.objects.pop(key, None)

    async def exists(self, key: str) -> bool:
        return key in self.objects


def create_storage_gateway(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> StorageGateway:
    """Factory: returns the right storage backend for the configuration."""
    if mock_mode:
        return InMemoryStorageGateway(bucket=config.bucket if config else "local")
    if config is None:
        raise ValueError("config is required when not in mock mode")
    return S3StorageGateway(config)
