"""Tests for the object store adapters.

The S3 adapter is exercised against a real boto3 client wired to botocore's
Stubber, so request shapes are validated without network access.
"""

import io

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from prompt_request.adapters.storage.factory import create_object_store
from prompt_request.adapters.storage.in_memory import InMemoryObjectStore
from prompt_request.adapters.storage.s3_client import S3ObjectStore
from prompt_request.core.config import StorageSettings
from prompt_request.core.errors import StorageAppError, ValidationAppError

BUCKET = "docs"


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


def _store(s3_client, **kwargs) -> S3ObjectStore:
    kwargs.setdefault("sleep", RecordingSleep())
    return S3ObjectStore(s3_client, BUCKET, **kwargs)


class TestS3ObjectOperations:
    """put/get/delete and their error mapping."""

    @pytest.mark.asyncio
    async def test_put_sends_content_type(self, s3_client, stubber) -> None:
        stubber.add_response(
            "put_object",
            {},
            {
                "Bucket": BUCKET,
                "Key": "requests/a/rev-1.md",
                "Body": b"# Hi",
                "ContentType": "text/markdown",
            },
        )

        await _store(s3_client).put("requests/a/rev-1.md", b"# Hi", "text/markdown")

    @pytest.mark.asyncio
    async def test_get_returns_body_bytes(self, s3_client, stubber) -> None:
        stubber.add_response(
            "get_object",
            {"Body": StreamingBody(io.BytesIO(b"payload"), len(b"payload"))},
            {"Bucket": BUCKET, "Key": "k"},
        )

        assert await _store(s3_client).get("k") == b"payload"

    @pytest.mark.asyncio
    async def test_delete(self, s3_client, stubber) -> None:
        stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "k"})

        await _store(s3_client).delete("k")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["put_object", "get_object", "delete_object"])
    async def test_client_errors_become_storage_errors(self, s3_client, stubber, operation) -> None:
        stubber.add_client_error(operation, service_error_code="InternalError", http_status_code=500)
        store = _store(s3_client)

        with pytest.raises(StorageAppError) as exc_info:
            if operation == "put_object":
                await store.put("k", b"x", "text/markdown")
            elif operation == "get_object":
                await store.get("k")
            else:
                await store.delete("k")

        assert exc_info.value.code == "storage"
        assert exc_info.value.details["object_key"] == "k"


class TestEnsureBucket:
    """Bucket bootstrap with bounded exponential backoff."""

    @pytest.mark.asyncio
    async def test_existing_bucket_needs_one_call(self, s3_client, stubber) -> None:
        stubber.add_response("head_bucket", {}, {"Bucket": BUCKET})
        sleep = RecordingSleep()

        await _store(s3_client, sleep=sleep).ensure_bucket()

        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_missing_bucket_is_created(self, s3_client, stubber) -> None:
        stubber.add_client_error("head_bucket", service_error_code="404", http_status_code=404)
        stubber.add_response("create_bucket", {}, {"Bucket": BUCKET})
        stubber.add_response("head_bucket", {}, {"Bucket": BUCKET})

        await _store(s3_client).ensure_bucket()

    @pytest.mark.asyncio
    async def test_region_outside_us_east_1_sets_location(self, s3_client, stubber) -> None:
        stubber.add_client_error("head_bucket", service_error_code="NoSuchBucket", http_status_code=404)
        stubber.add_response(
            "create_bucket",
            {},
            {"Bucket": BUCKET, "CreateBucketConfiguration": {"LocationConstraint": "eu-west-1"}},
        )
        stubber.add_response("head_bucket", {}, {"Bucket": BUCKET})

        await _store(s3_client, region="eu-west-1").ensure_bucket()

    @pytest.mark.asyncio
    async def test_concurrent_creation_counts_as_success(self, s3_client, stubber) -> None:
        stubber.add_client_error("head_bucket", service_error_code="404", http_status_code=404)
        stubber.add_client_error(
            "create_bucket", service_error_code="BucketAlreadyOwnedByYou", http_status_code=409
        )
        stubber.add_response("head_bucket", {}, {"Bucket": BUCKET})

        await _store(s3_client).ensure_bucket()

    @pytest.mark.asyncio
    async def test_retries_with_doubling_backoff_then_succeeds(self, s3_client, stubber) -> None:
        for _ in range(2):
            stubber.add_client_error("head_bucket", service_error_code="503", http_status_code=503)
        stubber.add_response("head_bucket", {}, {"Bucket": BUCKET})
        sleep = RecordingSleep()

        await _store(s3_client, sleep=sleep, initial_backoff_seconds=0.2).ensure_bucket()

        assert sleep.delays == [0.2, 0.4]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, s3_client, stubber) -> None:
        for _ in range(4):
            stubber.add_client_error("head_bucket", service_error_code="503", http_status_code=503)
        sleep = RecordingSleep()
        store = _store(
            s3_client,
            sleep=sleep,
            max_attempts=4,
            initial_backoff_seconds=1.0,
            max_backoff_seconds=3.0,
        )

        with pytest.raises(StorageAppError) as exc_info:
            await store.ensure_bucket()

        assert exc_info.value.details["operation"] == "ensure_bucket"
        # No sleep after the final attempt; backoff capped at the maximum
        assert sleep.delays == [1.0, 2.0, 3.0]


class TestInMemoryObjectStore:
    @pytest.mark.asyncio
    async def test_round_trip_and_idempotent_delete(self) -> None:
        store = InMemoryObjectStore()

        await store.put("k", b"data", "text/markdown")
        assert await store.get("k") == b"data"
        assert "k" in store

        await store.delete("k")
        await store.delete("k")
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_missing_key_is_storage_error(self) -> None:
        with pytest.raises(StorageAppError):
            await InMemoryObjectStore().get("missing")


class TestFactory:
    """Backend selection follows STORAGE_BACKEND."""

    def test_memory_backend(self, monkeypatch) -> None:
        monkeypatch.setenv("STORAGE_BACKEND", "memory")

        store = create_object_store(StorageSettings(bucket="b"))

        assert isinstance(store, InMemoryObjectStore)

    def test_s3_backend(self, monkeypatch) -> None:
        monkeypatch.setenv("STORAGE_BACKEND", "s3")

        store = create_object_store(
            StorageSettings(
                bucket="b",
                endpoint="http://localhost:9000",
                access_key_id="minio",
                secret_access_key="minio123",
            )
        )

        assert isinstance(store, S3ObjectStore)
        assert store.bucket == "b"

    def test_unknown_backend(self, monkeypatch) -> None:
        monkeypatch.setenv("STORAGE_BACKEND", "ftp")

        with pytest.raises(ValidationAppError) as exc_info:
            create_object_store(StorageSettings(bucket="b"))

        assert exc_info.value.code == "storage_unknown_backend"
