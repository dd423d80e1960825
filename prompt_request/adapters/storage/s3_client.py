"""S3-compatible object store adapter.

Uses boto3. The client is thread-safe; its blocking calls are dispatched to
Starlette's threadpool so they never stall the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from prompt_request.adapters.storage.base import AbstractObjectStore
from prompt_request.core.config import StorageSettings
from prompt_request.core.errors import StorageAppError

logger = logging.getLogger(__name__)

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}
_BUCKET_RACE_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _storage_error(operation: str, key: str | None, exc: Exception) -> StorageAppError:
    details: dict[str, Any] = {"operation": operation}
    if key is not None:
        details["object_key"] = key
    return StorageAppError(
        code="storage",
        message=f"object store {operation} failed: {exc}",
        details=details,  # type: ignore[arg-type]
    )


class S3ObjectStore(AbstractObjectStore):
    """Object store backed by an S3-API bucket (AWS, MinIO, R2, ...)."""

    def __init__(
        self,
        client: Any,
        bucket: str,
        *,
        region: str = "us-east-1",
        max_attempts: int = 6,
        initial_backoff_seconds: float = 0.2,
        max_backoff_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Wrap an existing boto3 S3 client.

        Args:
            client: boto3 ``s3`` client (or a stubbed one in tests).
            bucket: Bucket holding revision blobs.
            region: Region used as LocationConstraint when creating the bucket.
            max_attempts: Bucket bootstrap attempts before giving up.
            initial_backoff_seconds: First delay between bootstrap attempts.
            max_backoff_seconds: Ceiling for the doubling backoff.
            sleep: Awaitable sleep, injectable for tests.
        """
        self._client = client
        self.bucket = bucket
        self._region = region
        self._max_attempts = max_attempts
        self._initial_backoff = initial_backoff_seconds
        self._max_backoff = max_backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(cls, storage: StorageSettings) -> "S3ObjectStore":
        """Build the boto3 client from configuration.

        Retries are pinned to a single attempt so put/get/delete surface
        failures immediately; timeouts bound every call.
        """
        config = Config(
            region_name=storage.region,
            connect_timeout=storage.connect_timeout_seconds,
            read_timeout=storage.read_timeout_seconds,
            retries={"mode": "standard", "max_attempts": 1},
            s3={"addressing_style": "path" if storage.force_path_style else "auto"},
        )
        client_kwargs: dict[str, Any] = {"config": config}
        if storage.endpoint:
            client_kwargs["endpoint_url"] = storage.endpoint
        if storage.access_key_id and storage.secret_access_key:
            client_kwargs["aws_access_key_id"] = storage.access_key_id
            client_kwargs["aws_secret_access_key"] = storage.secret_access_key

        client = boto3.client("s3", **client_kwargs)
        return cls(
            client,
            storage.bucket,
            region=storage.region,
            max_attempts=storage.bucket_max_attempts,
            initial_backoff_seconds=storage.bucket_initial_backoff_ms / 1000,
            max_backoff_seconds=storage.bucket_max_backoff_ms / 1000,
        )

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await run_in_threadpool(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise _storage_error("put", key, exc) from exc

    def _read_object(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=key)
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    async def get(self, key: str) -> bytes:
        try:
            return await run_in_threadpool(self._read_object, key)
        except (BotoCoreError, ClientError) as exc:
            raise _storage_error("get", key, exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await run_in_threadpool(
                self._client.delete_object, Bucket=self.bucket, Key=key
            )
        except (BotoCoreError, ClientError) as exc:
            raise _storage_error("delete", key, exc) from exc

    async def _bucket_exists(self) -> bool:
        try:
            await run_in_threadpool(self._client.head_bucket, Bucket=self.bucket)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_BUCKET_CODES:
                return False
            raise
        return True

    async def _create_bucket(self) -> None:
        kwargs: dict[str, Any] = {"Bucket": self.bucket}
        # us-east-1 rejects an explicit LocationConstraint
        if self._region and self._region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._region}
        try:
            await run_in_threadpool(self._client.create_bucket, **kwargs)
        except ClientError as exc:
            if _error_code(exc) not in _BUCKET_RACE_CODES:
                raise
            logger.info(
                "storage.bucket_created_concurrently",
                extra={"bucket": self.bucket, "error_code": _error_code(exc)},
            )

    async def ensure_bucket(self) -> None:
        """Make sure the bucket exists, retrying with exponential backoff.

        Each attempt checks for the bucket, tries to create it, then checks
        again so a bucket created by another process in between still counts.

        Raises:
            StorageAppError: If the bucket is still unavailable after the
                last attempt.
        """
        backoff = self._initial_backoff
        last_error: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                if await self._bucket_exists():
                    logger.info(
                        "storage.bucket_ready",
                        extra={"bucket": self.bucket, "attempt": attempt},
                    )
                    return
                try:
                    await self._create_bucket()
                except (BotoCoreError, ClientError) as exc:
                    last_error = exc
                if await self._bucket_exists():
                    logger.info(
                        "storage.bucket_ready",
                        extra={"bucket": self.bucket, "attempt": attempt, "created": True},
                    )
                    return
            except (BotoCoreError, ClientError) as exc:
                last_error = exc

            logger.warning(
                "storage.bucket_unavailable",
                extra={
                    "bucket": self.bucket,
                    "attempt": attempt,
                    "max_attempts": self._max_attempts,
                    "error": str(last_error) if last_error else None,
                },
            )
            if attempt < self._max_attempts:
                await self._sleep(backoff)
                backoff = min(backoff * 2, self._max_backoff)

        raise StorageAppError(
            code="storage",
            message=f"bucket {self.bucket!r} unavailable after {self._max_attempts} attempts",
            details={"operation": "ensure_bucket", "hint": str(last_error) if last_error else ""},
        )
