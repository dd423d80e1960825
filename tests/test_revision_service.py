"""Tests for the revision coordinator.

Run against a real SQLite metadata store and the in-memory object store;
failures are injected by wrapping the store or patching repository calls.
"""

import asyncio
import uuid
from unittest.mock import Mock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from prompt_request.adapters.storage.in_memory import InMemoryObjectStore
from prompt_request.core.errors import (
    DatabaseAppError,
    NotFoundAppError,
    StorageAppError,
    ValidationAppError,
)
from prompt_request.db.models import RequestRecord, RequestRevision
from prompt_request.db.repositories.requests import RequestRepository
from prompt_request.services.public_reader import PublicReader
from prompt_request.services.revision_service import (
    MAX_OFFSET,
    MAX_REV,
    RevisionService,
    clamp_limit,
    clamp_offset,
)
from prompt_request.utils.content_types import ContentKind, sha256_hex

MD = ContentKind.MARKDOWN


class FailingStore(InMemoryObjectStore):
    """In-memory store whose put and/or delete can be made to fail."""

    def __init__(self, *, fail_put: bool = False, fail_delete: bool = False) -> None:
        super().__init__()
        self.fail_put = fail_put
        self.fail_delete = fail_delete
        self.delete_calls: list[str] = []

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        if self.fail_put:
            raise StorageAppError(code="storage", message="put failed")
        await super().put(key, data, content_type)

    async def delete(self, key: str) -> None:
        self.delete_calls.append(key)
        if self.fail_delete:
            raise StorageAppError(code="storage", message="delete failed")
        await super().delete(key)


def _db_error(statement: str = "INSERT") -> OperationalError:
    return OperationalError(statement, {}, Exception("database unavailable"))


async def _record(database, request_uuid):
    async with database.session_factory() as session:
        return await session.get(RequestRecord, request_uuid)


async def _revision_numbers(database, request_uuid) -> list[int]:
    async with database.session_factory() as session:
        result = await session.execute(
            select(RequestRevision.rev_number)
            .where(RequestRevision.request_uuid == request_uuid)
            .order_by(RequestRevision.rev_number)
        )
        return list(result.scalars())


@pytest.fixture
def service(database, store) -> RevisionService:
    return RevisionService(database.session_factory, store)


class TestCreate:
    """Creating a document writes blob then metadata."""

    @pytest.mark.asyncio
    async def test_create_returns_revision_one(self, service, store, account_id) -> None:
        created = await service.create_request(account_id, b"# Hello\n", MD)

        assert created.rev == 1
        assert created.content_type == "text/markdown"
        assert created.size_bytes == 8
        assert created.sha256 == sha256_hex(b"# Hello\n")
        key = f"requests/{created.uuid}/rev-1.md"
        assert store.objects[key] == (b"# Hello\n", "text/markdown")

    @pytest.mark.asyncio
    async def test_create_sets_latest_rev(self, service, database, account_id) -> None:
        created = await service.create_request(account_id, b"{}\n", ContentKind.NDJSON)

        record = await _record(database, created.uuid)
        assert record.latest_rev == 1
        assert record.rev_seq == 1
        assert record.account_id == account_id

    @pytest.mark.asyncio
    async def test_empty_body_is_allowed(self, service, account_id) -> None:
        created = await service.create_request(account_id, b"", MD)

        assert created.size_bytes == 0

    @pytest.mark.asyncio
    async def test_blob_failure_records_nothing(self, database, account_id) -> None:
        service = RevisionService(database.session_factory, FailingStore(fail_put=True))

        with pytest.raises(StorageAppError):
            await service.create_request(account_id, b"x", MD)

        async with database.session_factory() as session:
            rows = await RequestRepository(session).list_owned(account_id, 50, 0)
        assert rows == []

    @pytest.mark.asyncio
    async def test_metadata_failure_compensates_blob(self, database, store, account_id) -> None:
        service = RevisionService(database.session_factory, store)

        with patch.object(RequestRepository, "add_revision", side_effect=_db_error()):
            with pytest.raises(DatabaseAppError):
                await service.create_request(account_id, b"x", MD)

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_failed_compensation_still_raises_original_error(
        self, database, account_id
    ) -> None:
        store = FailingStore(fail_delete=True)
        service = RevisionService(database.session_factory, store)

        with patch.object(RequestRepository, "add_revision", side_effect=_db_error()):
            with pytest.raises(DatabaseAppError):
                await service.create_request(account_id, b"x", MD)

        assert len(store.delete_calls) == 1
        # The orphan is left behind
        assert len(store) == 1


class TestUpdate:
    """Updating appends a revision under the document row lock."""

    @pytest.mark.asyncio
    async def test_update_appends_next_revision(self, service, database, store, account_id) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        updated = await service.update_request(account_id, created.uuid, b"v2", MD)

        assert updated.uuid == created.uuid
        assert updated.rev == 2
        record = await _record(database, created.uuid)
        assert record.latest_rev == 2
        assert store.objects[f"requests/{created.uuid}/rev-1.md"][0] == b"v1"
        assert store.objects[f"requests/{created.uuid}/rev-2.md"][0] == b"v2"

    @pytest.mark.asyncio
    async def test_update_may_change_content_type(self, service, account_id) -> None:
        created = await service.create_request(account_id, b"# md", MD)

        updated = await service.update_request(
            account_id, created.uuid, b'{"a":1}\n', ContentKind.NDJSON
        )

        assert updated.content_type == "application/x-ndjson"

    @pytest.mark.asyncio
    async def test_update_unknown_document_is_not_found(self, service, store, account_id) -> None:
        with pytest.raises(NotFoundAppError):
            await service.update_request(account_id, uuid.uuid4(), b"x", MD)

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_update_by_non_owner_is_not_found(
        self, service, store, account_id, other_account_id
    ) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        with pytest.raises(NotFoundAppError):
            await service.update_request(other_account_id, created.uuid, b"v2", MD)

        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_update_metadata_failure_compensates_blob(
        self, service, database, store, account_id
    ) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        with patch.object(RequestRepository, "add_revision", side_effect=_db_error()):
            with pytest.raises(DatabaseAppError):
                await service.update_request(account_id, created.uuid, b"v2", MD)

        assert list(store.objects) == [f"requests/{created.uuid}/rev-1.md"]
        record = await _record(database, created.uuid)
        assert record.latest_rev == 1

    @pytest.mark.asyncio
    async def test_update_blob_failure_leaves_document_unchanged(
        self, database, account_id
    ) -> None:
        store = FailingStore()
        service = RevisionService(database.session_factory, store)
        created = await service.create_request(account_id, b"v1", MD)
        store.fail_put = True

        with pytest.raises(StorageAppError):
            await service.update_request(account_id, created.uuid, b"v2", MD)

        assert await _revision_numbers(database, created.uuid) == [1]
        assert store.delete_calls == []

    @pytest.mark.asyncio
    async def test_concurrent_updates_get_distinct_revisions(
        self, service, database, store, account_id
    ) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        results = await asyncio.gather(
            service.update_request(account_id, created.uuid, b"A", MD),
            service.update_request(account_id, created.uuid, b"B", MD),
        )

        assert sorted(result.rev for result in results) == [2, 3]
        assert await _revision_numbers(database, created.uuid) == [1, 2, 3]
        bodies = {store.objects[f"requests/{created.uuid}/rev-{rev}.md"][0] for rev in (2, 3)}
        assert bodies == {b"A", b"B"}

        latest = await PublicReader(database.session_factory, store).read(created.uuid)
        assert latest.rev == 3

    @pytest.mark.asyncio
    async def test_update_racing_delete_keeps_every_reference_readable(
        self, service, database, store, account_id
    ) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        await asyncio.gather(
            service.update_request(account_id, created.uuid, b"v2", MD),
            service.delete_revision(account_id, created.uuid, 1),
        )

        assert await _revision_numbers(database, created.uuid) == [2]
        assert list(store.objects) == [f"requests/{created.uuid}/rev-2.md"]
        assert (await PublicReader(database.session_factory, store).read(created.uuid)).body == b"v2"

    @pytest.mark.asyncio
    async def test_shared_lock_stripe_does_not_block_other_documents(
        self, database, store, account_id
    ) -> None:
        service = RevisionService(database.session_factory, store, lock_stripes=1)
        first = await service.create_request(account_id, b"a1", MD)
        second = await service.create_request(account_id, b"b1", MD)

        results = await asyncio.gather(
            service.update_request(account_id, first.uuid, b"a2", MD),
            service.update_request(account_id, second.uuid, b"b2", MD),
        )

        assert [result.rev for result in results] == [2, 2]

    def test_lock_stripes_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            RevisionService(Mock(), InMemoryObjectStore(), lock_stripes=0)


class TestDelete:
    """Deleting commits metadata first, then removes blobs."""

    @pytest.mark.asyncio
    async def test_delete_older_revision_keeps_latest(self, service, database, store, account_id) -> None:
        created = await service.create_request(account_id, b"v1", MD)
        await service.update_request(account_id, created.uuid, b"v2", MD)

        await service.delete_revision(account_id, created.uuid, 1)

        record = await _record(database, created.uuid)
        assert record.latest_rev == 2
        assert await _revision_numbers(database, created.uuid) == [2]
        assert list(store.objects) == [f"requests/{created.uuid}/rev-2.md"]

    @pytest.mark.asyncio
    async def test_delete_latest_moves_pointer_to_new_maximum(
        self, service, database, account_id
    ) -> None:
        created = await service.create_request(account_id, b"v1", MD)
        await service.update_request(account_id, created.uuid, b"v2", MD)
        await service.update_request(account_id, created.uuid, b"v3", MD)

        await service.delete_revision(account_id, created.uuid, 3)

        record = await _record(database, created.uuid)
        assert record.latest_rev == 2

    @pytest.mark.asyncio
    async def test_revision_numbers_are_never_reused(self, service, account_id) -> None:
        created = await service.create_request(account_id, b"v1", MD)
        await service.update_request(account_id, created.uuid, b"v2", MD)
        await service.delete_revision(account_id, created.uuid, 2)

        updated = await service.update_request(account_id, created.uuid, b"v3", MD)

        assert updated.rev == 3

    @pytest.mark.asyncio
    async def test_delete_last_revision_deletes_document(
        self, service, database, store, account_id
    ) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        await service.delete_revision(account_id, created.uuid, 1)

        assert await _record(database, created.uuid) is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_delete_unknown_revision_is_not_found(self, service, account_id) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        with pytest.raises(NotFoundAppError):
            await service.delete_revision(account_id, created.uuid, 5)

    @pytest.mark.asyncio
    async def test_delete_rev_below_one_is_bad_request(self, service, account_id) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        with pytest.raises(ValidationAppError):
            await service.delete_revision(account_id, created.uuid, 0)

    @pytest.mark.asyncio
    async def test_rev_beyond_storable_range_is_bad_request(self, service, account_id) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        with pytest.raises(ValidationAppError):
            await service.delete_revision(account_id, created.uuid, MAX_REV + 1)
        with pytest.raises(ValidationAppError):
            await service.get_revision(account_id, created.uuid, 10**20)

    @pytest.mark.asyncio
    async def test_delete_by_non_owner_is_not_found(
        self, service, store, account_id, other_account_id
    ) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        with pytest.raises(NotFoundAppError):
            await service.delete_revision(other_account_id, created.uuid, 1)
        with pytest.raises(NotFoundAppError):
            await service.delete_request(other_account_id, created.uuid)

        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_blob_delete_failure_is_swallowed(self, database, account_id) -> None:
        store = FailingStore(fail_delete=True)
        service = RevisionService(database.session_factory, store)
        created = await service.create_request(account_id, b"v1", MD)

        await service.delete_revision(account_id, created.uuid, 1)

        assert await _record(database, created.uuid) is None
        assert store.delete_calls == [f"requests/{created.uuid}/rev-1.md"]

    @pytest.mark.asyncio
    async def test_delete_request_removes_all_revisions_and_blobs(
        self, service, database, store, account_id
    ) -> None:
        created = await service.create_request(account_id, b"v1", MD)
        await service.update_request(account_id, created.uuid, b"v2", MD)

        await service.delete_request(account_id, created.uuid)

        assert await _record(database, created.uuid) is None
        assert await _revision_numbers(database, created.uuid) == []
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_metadata_failure_keeps_blob(self, service, store, account_id) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        with patch.object(RequestRepository, "delete_revision", side_effect=_db_error("DELETE")):
            with pytest.raises(DatabaseAppError):
                await service.delete_revision(account_id, created.uuid, 1)

        assert len(store) == 1


class TestListing:
    """Owner-scoped metadata reads."""

    @pytest.mark.asyncio
    async def test_list_requests_only_returns_own_documents(
        self, service, account_id, other_account_id
    ) -> None:
        mine = await service.create_request(account_id, b"mine", MD)
        await service.create_request(other_account_id, b"theirs", MD)

        items = await service.list_requests(account_id)

        assert [item.uuid for item in items] == [mine.uuid]
        assert items[0].latest_rev == 1
        assert items[0].latest_content_type == "text/markdown"

    @pytest.mark.asyncio
    async def test_list_requests_reports_latest_content_type(self, service, account_id) -> None:
        created = await service.create_request(account_id, b"# md", MD)
        await service.update_request(account_id, created.uuid, b"{}\n", ContentKind.NDJSON)

        items = await service.list_requests(account_id)

        assert items[0].latest_rev == 2
        assert items[0].latest_content_type == "application/x-ndjson"

    @pytest.mark.asyncio
    async def test_list_requests_paginates(self, service, account_id) -> None:
        for i in range(3):
            await service.create_request(account_id, f"doc {i}".encode(), MD)

        first = await service.list_requests(account_id, limit=2)
        rest = await service.list_requests(account_id, limit=2, offset=2)

        assert len(first) == 2
        assert len(rest) == 1
        assert {i.uuid for i in first}.isdisjoint({i.uuid for i in rest})

    @pytest.mark.asyncio
    async def test_list_revisions_newest_first(self, service, account_id) -> None:
        created = await service.create_request(account_id, b"v1", MD)
        await service.update_request(account_id, created.uuid, b"v2", MD)

        revisions = await service.list_revisions(account_id, created.uuid)

        assert [r.rev for r in revisions] == [2, 1]
        assert revisions[0].sha256 == sha256_hex(b"v2")

    @pytest.mark.asyncio
    async def test_list_revisions_for_non_owner_is_not_found(
        self, service, account_id, other_account_id
    ) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        with pytest.raises(NotFoundAppError):
            await service.list_revisions(other_account_id, created.uuid)

    @pytest.mark.asyncio
    async def test_get_revision(self, service, account_id, other_account_id) -> None:
        created = await service.create_request(account_id, b"v1", MD)

        info = await service.get_revision(account_id, created.uuid, 1)

        assert info.rev == 1
        assert info.size_bytes == 2
        with pytest.raises(NotFoundAppError):
            await service.get_revision(account_id, created.uuid, 2)
        with pytest.raises(NotFoundAppError):
            await service.get_revision(other_account_id, created.uuid, 1)

    @pytest.mark.asyncio
    async def test_listing_database_failure_is_database_error(self, service, account_id) -> None:
        with patch.object(RequestRepository, "list_owned", side_effect=_db_error("SELECT")):
            with pytest.raises(DatabaseAppError):
                await service.list_requests(account_id)


@pytest.mark.parametrize(
    "value,expected",
    [(None, 50), (0, 1), (-5, 1), (10, 10), (100, 100), (1000, 100)],
)
def test_clamp_limit(value, expected) -> None:
    assert clamp_limit(value) == expected


@pytest.mark.parametrize(
    "value,expected", [(None, 0), (-1, 0), (7, 7), (10**20, MAX_OFFSET)]
)
def test_clamp_offset(value, expected) -> None:
    assert clamp_offset(value) == expected
