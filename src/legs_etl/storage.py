"""Object storage capability and its S3 / GCS adapters."""

import asyncio
from typing import TYPE_CHECKING, Any, Protocol

import boto3
from aiohttp import ClientError, ClientResponseError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError
from botocore.exceptions import ClientError as BotoClientError
from gcloud.aio.storage import Storage
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from legs_etl.logging import get_logger

if TYPE_CHECKING:
    from aiohttp import ClientSession

    from legs_etl.config import Settings

logger = get_logger(__name__)

# botocore error codes meaning "object does not exist"
_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class StorageError(Exception):
    """Network or backend failure on get/put/list."""

    def __init__(self, operation: str, key: str, message: str) -> None:
        self.operation = operation
        self.key = key
        super().__init__(f"Storage {operation} failed for '{key}': {message}")


class BlobStorage(Protocol):
    """Narrow storage capability consumed by the pipeline."""

    async def put(self, key: str, data: bytes) -> None:
        """Write ``data`` at ``key``, replacing any previous content."""
        ...

    async def get(self, key: str) -> bytes | None:
        """Read ``key``; ``None`` when the key does not exist."""
        ...

    async def list(self, prefix: str) -> list[str]:
        """List every key starting with ``prefix``."""
        ...


def content_type_for(key: str) -> str:
    """Guess the content type from the key's extension."""
    if key.endswith(".json"):
        return "application/json"
    if key.endswith(".csv"):
        return "text/csv"
    return "application/octet-stream"


class S3BlobStorage:
    """Blob storage on an S3-compatible endpoint (e.g. DigitalOcean Spaces).

    boto3 is synchronous, so every call runs in a worker thread. The client is
    thread-safe and shared by all concurrent tasks.
    """

    def __init__(
        self,
        bucket: str,
        access_key: str,
        secret_access_key: str,
        endpoint_url: str | None = None,
        region: str | None = None,
        max_attempts: int = 5,
        max_connections: int = 100,
    ) -> None:
        """Initialize the S3 adapter.

        Args:
            bucket: Bucket name.
            access_key: Access key id.
            secret_access_key: Secret access key.
            endpoint_url: Optional endpoint for S3-compatible services.
            region: Region name.
            max_attempts: Attempts per request (botocore standard retry mode).
            max_connections: Size of the HTTP connection pool.
        """
        self.bucket = bucket
        session = boto3.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )
        self._client = session.client(
            "s3",
            endpoint_url=endpoint_url,
            config=BotoConfig(
                retries={"max_attempts": max_attempts, "mode": "standard"},
                max_pool_connections=max_connections,
            ),
        )

    def _put(self, key: str, data: bytes) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type_for(key),
        )

    def _get(self, key: str) -> bytes | None:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except BotoClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _MISSING_KEY_CODES:
                return None
            raise
        body: bytes = response["Body"].read()
        return body

    def _list(self, prefix: str) -> list[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            keys.extend(item["Key"] for item in page.get("Contents", []))
        return keys

    async def put(self, key: str, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._put, key, data)
        except (BotoClientError, BotoCoreError) as e:
            raise StorageError("put", key, str(e)) from e

    async def get(self, key: str) -> bytes | None:
        try:
            return await asyncio.to_thread(self._get, key)
        except (BotoClientError, BotoCoreError) as e:
            raise StorageError("get", key, str(e)) from e

    async def list(self, prefix: str) -> list[str]:
        try:
            return await asyncio.to_thread(self._list, prefix)
        except (BotoClientError, BotoCoreError) as e:
            raise StorageError("list", prefix, str(e)) from e

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._client.close()


class GCSBlobStorage:
    """Blob storage on Google Cloud Storage using Application Default Credentials."""

    def __init__(
        self,
        bucket: str,
        session: "ClientSession | None" = None,
        max_attempts: int = 3,
    ) -> None:
        """Initialize the GCS adapter.

        Args:
            bucket: GCS bucket name.
            session: Optional aiohttp ClientSession for connection reuse.
            max_attempts: Attempts per request on transport errors.
        """
        self.bucket = bucket
        self.max_attempts = max_attempts
        self._session = session
        self._storage: Storage | None = None
        self._lock = asyncio.Lock()

    async def _get_storage(self) -> Storage:
        """Get or create the GCS storage client.

        Uses a lock to prevent race conditions when multiple tasks
        call this method concurrently.
        """
        async with self._lock:
            if self._storage is None:
                self._storage = Storage(session=self._session)
            return self._storage

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1.0, max=10.0),
            retry=retry_if_exception_type((ClientError, TimeoutError, ConnectionError)),
            reraise=True,
        )

    async def put(self, key: str, data: bytes) -> None:
        storage = await self._get_storage()
        try:
            async for attempt in self._retrying():
                with attempt:
                    await storage.upload(
                        bucket=self.bucket,
                        object_name=key,
                        file_data=data,
                        content_type=content_type_for(key),
                    )
        except (ClientError, TimeoutError, ConnectionError) as e:
            raise StorageError("put", key, str(e)) from e

    async def get(self, key: str) -> bytes | None:
        storage = await self._get_storage()
        try:
            async for attempt in self._retrying():
                with attempt:
                    try:
                        content: bytes = await storage.download(
                            bucket=self.bucket,
                            object_name=key,
                        )
                    except ClientResponseError as e:
                        if e.status == 404:
                            return None
                        raise
                    return content
        except (ClientError, TimeoutError, ConnectionError) as e:
            raise StorageError("get", key, str(e)) from e
        raise StorageError("get", key, "retry loop exited without a result")

    async def list(self, prefix: str) -> list[str]:
        storage = await self._get_storage()
        keys: list[str] = []
        page_token: str | None = None
        try:
            while True:
                params: dict[str, Any] = {"prefix": prefix}
                if page_token:
                    params["pageToken"] = page_token
                page: dict[str, Any] = {}
                async for attempt in self._retrying():
                    with attempt:
                        page = await storage.list_objects(self.bucket, params=params)
                keys.extend(item["name"] for item in page.get("items", []))
                page_token = page.get("nextPageToken")
                if not page_token:
                    return keys
        except (ClientError, TimeoutError, ConnectionError) as e:
            raise StorageError("list", prefix, str(e)) from e

    async def close(self) -> None:
        """Close the storage client and release resources."""
        if self._storage is not None:
            await self._storage.close()
            self._storage = None


def create_storage(settings: "Settings") -> S3BlobStorage | GCSBlobStorage:
    """Create the storage adapter selected by the settings.

    Raises:
        ValueError: If the s3 backend is selected without both secrets.
    """
    if settings.storage_backend == "gcs":
        logger.info("storage_selected", backend="gcs", bucket=settings.storage_bucket)
        return GCSBlobStorage(bucket=settings.storage_bucket)

    if settings.storage_access_key is None or settings.storage_secret_access_key is None:
        raise ValueError("the s3 backend needs an access key and a secret access key")
    logger.info(
        "storage_selected",
        backend="s3",
        bucket=settings.storage_bucket,
        endpoint_url=settings.storage_endpoint_url,
    )
    return S3BlobStorage(
        bucket=settings.storage_bucket,
        access_key=settings.storage_access_key.get_secret_value(),
        secret_access_key=settings.storage_secret_access_key.get_secret_value(),
        endpoint_url=settings.storage_endpoint_url,
        region=settings.storage_region,
        max_connections=max(settings.etl_concurrency, settings.read_concurrency),
    )
