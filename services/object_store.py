"""S3-compatible object storage for original and detoxified images.

Keys are the durable identifiers; URLs handed to clients are always
presigned at read time and never stored.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from utils.settings import StorageSettings

logger = logging.getLogger(__name__)


def generate_object_key() -> str:
    """Return a unique opaque key: `<epoch millis>-<16 hex chars>`."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}"


class S3ObjectStore:
    """Async facade over a blocking boto3 S3 client.

    Every boto3 call runs in a worker thread so request handlers stay
    non-blocking.

    Args:
        bucket: Bucket name.
        client: A boto3 S3 client (or compatible object).
        signed_url_ttl: Lifetime of presigned GET URLs, in seconds.
    """

    def __init__(self, bucket: str, client: Any, signed_url_ttl: int = 86_400) -> None:
        if not bucket:
            raise ValueError("Bucket name is required.")
        if client is None:
            raise ValueError("S3 client must be provided.")
        self.bucket = bucket
        self.client = client
        self.signed_url_ttl = signed_url_ttl

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "S3ObjectStore":
        client = boto3.client(
            "s3",
            endpoint_url=settings.resolved_endpoint(),
            aws_access_key_id=settings.access_key_id,
            aws_secret_access_key=settings.secret_access_key,
            region_name=settings.region,
            config=Config(signature_version="s3v4"),
        )
        logger.info("Object storage configured for bucket %s", settings.bucket)
        return cls(settings.bucket, client, signed_url_ttl=settings.signed_url_ttl)

    async def upload_image(self, data: bytes, content_type: str, key: Optional[str] = None) -> str:
        """Store `data` under a fresh key (or `key`) and return the key."""
        if not data:
            raise ValueError("Image bytes are required for upload.")
        key = key or generate_object_key()
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        logger.info("Uploaded %d bytes to %s (%s)", len(data), key, content_type)
        return key

    async def exists(self, key: str) -> bool:
        """Return True if an object is stored under `key`."""
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    async def get_image_url(self, key: str, expires_in: Optional[int] = None) -> str:
        """Return a presigned GET URL for `key`."""
        return await asyncio.to_thread(
            self.client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in or self.signed_url_ttl,
        )

    async def delete_image(self, key: str) -> None:
        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        logger.info("Deleted object %s", key)
