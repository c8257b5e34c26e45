"""S3 content store for job artifacts."""

from datetime import UTC, datetime, timedelta
import logging
from typing import Any

import aioboto3
from botocore.client import Config
from botocore.exceptions import ClientError

from app.core.config import Settings, get_settings
from app.storage.base import ContentNotFoundError, ContentStore, InvalidContentPathError
from app.storage.local import safe_filename, sanitize_directory

logger = logging.getLogger(__name__)


class S3ClientNotInitializedError(Exception):
    """Raised when S3 client is used before initialization."""

    pass


class S3ContentStore(ContentStore):
    """Content store backed by an S3 bucket.

    Uses a long-lived aioboto3 client with connection pooling. The client
    must be created with initialize() before use and closed with close()
    on shutdown. Logical paths map to keys under ``s3_key_prefix``.
    """

    def __init__(self, settings: Settings | None = None):
        """Initialize S3 configuration (does not create client).

        Args:
            settings: Optional Settings instance (uses get_settings() if not provided)
        """
        if settings is None:
            settings = get_settings()

        self.session = aioboto3.Session()
        self.bucket = settings.s3_bucket_name
        self.endpoint_url = settings.s3_endpoint_url
        self.region = settings.s3_region
        self.access_key = settings.s3_access_key_id
        self.secret_key = settings.s3_secret_access_key
        self.prefix = settings.s3_key_prefix.strip("/")

        self.config = Config(
            max_pool_connections=settings.s3_max_pool_connections,
            connect_timeout=settings.s3_connect_timeout,
            read_timeout=settings.s3_read_timeout,
            retries={
                "max_attempts": 3,
                "mode": "adaptive",
            },
        )

        self._settings = settings
        self._client: Any = None
        self._client_context: Any = None

    async def initialize(self) -> bool:
        """Create the pooled S3 client and verify the bucket is reachable.

        Returns:
            True if initialization successful, False otherwise
        """
        try:
            self._client_context = self.session.client(
                "s3",
                endpoint_url=self.endpoint_url,
                region_name=self.region,
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                config=self.config,
            )
            self._client = await self._client_context.__aenter__()

            await self._client.head_bucket(Bucket=self.bucket)
            logger.info(
                "S3 client initialized successfully with connection pool (max_connections=%d)",
                self._settings.s3_max_pool_connections,
            )
            return True
        except Exception as e:
            logger.error("Failed to initialize S3 client: %s", e)
            await self._discard_client()
            return False

    async def _discard_client(self) -> None:
        if self._client_context is not None:
            try:
                await self._client_context.__aexit__(None, None, None)
            except Exception as e:
                logger.debug("Ignoring error while discarding S3 client: %s", e)
        self._client = None
        self._client_context = None

    async def close(self) -> None:
        """Close S3 client and release pooled connections."""
        if self._client_context is not None:
            try:
                await self._client_context.__aexit__(None, None, None)
                logger.info("S3 client closed successfully")
            except Exception as e:
                logger.error("Error closing S3 client: %s", e)
            finally:
                self._client = None
                self._client_context = None

    def _ensure_initialized(self) -> None:
        """Ensure client is initialized before operations.

        Raises:
            S3ClientNotInitializedError: If client not initialized
        """
        if self._client is None:
            raise S3ClientNotInitializedError("S3 client not initialized. Call initialize() first.")

    def _key(self, path: str) -> str:
        if not path or path.startswith("/") or ".." in path.split("/"):
            raise InvalidContentPathError(f"Invalid content path: {path!r}")
        return f"{self.prefix}/{path}" if self.prefix else path

    async def save(self, data: bytes, filename: str, directory: str) -> str:
        """Upload a blob.

        Raises:
            S3ClientNotInitializedError: If client not initialized
            ClientError: If upload fails
        """
        self._ensure_initialized()
        logical_path = f"{sanitize_directory(directory)}/{safe_filename(filename)}"
        key = self._key(logical_path)

        try:
            await self._client.put_object(Bucket=self.bucket, Key=key, Body=data)
            logger.info("Uploaded %d bytes to S3: %s", len(data), key)
            return logical_path
        except ClientError as e:
            logger.error("Failed to upload %s to S3: %s", key, e)
            raise

    async def load(self, path: str) -> bytes:
        self._ensure_initialized()
        key = self._key(path)
        try:
            response = await self._client.get_object(Bucket=self.bucket, Key=key)
            async with response["Body"] as stream:
                return await stream.read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise ContentNotFoundError(f"Content not found: {path}") from e
            logger.error("Failed to download %s from S3: %s", key, e)
            raise

    async def exists(self, path: str) -> bool:
        self._ensure_initialized()
        try:
            await self._client.head_object(Bucket=self.bucket, Key=self._key(path))
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404", "NotFound"):
                return False
            raise

    async def delete(self, path: str) -> bool:
        if not await self.exists(path):
            return False
        await self._client.delete_object(Bucket=self.bucket, Key=self._key(path))
        logger.info("Deleted S3 object %s", self._key(path))
        return True

    async def cleanup_expired(self, max_age: timedelta) -> int:
        """Delete objects under the prefix whose LastModified is older than max_age."""
        self._ensure_initialized()
        cutoff = datetime.now(UTC) - max_age
        removed = 0

        paginator = self._client.get_paginator("list_objects_v2")
        prefix = f"{self.prefix}/" if self.prefix else ""
        async for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                if obj["LastModified"] >= cutoff:
                    continue
                try:
                    await self._client.delete_object(Bucket=self.bucket, Key=obj["Key"])
                    removed += 1
                except ClientError as e:
                    logger.warning("Failed to delete expired object %s: %s", obj["Key"], e)

        if removed:
            logger.info("Removed %d expired object(s) from S3", removed)
        return removed

    async def test_connectivity(self) -> bool:
        """Test S3 connectivity with HEAD request to bucket.

        Returns:
            True if client initialized and connection successful, False otherwise
        """
        if self._client is None:
            logger.error("S3 connectivity test failed: client not initialized")
            return False

        try:
            await self._client.head_bucket(Bucket=self.bucket)
            return True
        except Exception as e:
            logger.error("S3 connectivity test failed: %s", e)
            return False
