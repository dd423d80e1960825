"""Revision coordinator: dual writes across the object store and metadata store.

The two stores share no transaction, so every mutation follows one ordering
rule:

- blobs are written *before* the metadata commit that references them;
- blobs are deleted *after* the metadata commit that stops referencing them.

A reader can therefore never see a revision row pointing at a blob that does
not exist yet. The only inconsistency the protocol admits is an orphaned blob
(a failed compensation, or a crash between commit and delete), which is
logged and left behind.

Per-document serialization has two layers. Updates and deletes take
``SELECT ... FOR UPDATE`` on the document row and hold it until their
transaction ends, blob write included. Within one process they also hold a
striped ``asyncio.Lock`` keyed by document id, which covers backends that
ignore row locks (SQLite).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from prompt_request.adapters.storage.base import AbstractObjectStore
from prompt_request.core.errors import DatabaseAppError, ValidationAppError, not_found
from prompt_request.db.models import utcnow
from prompt_request.db.repositories.requests import RequestRepository
from prompt_request.schemas.requests import RequestCreatedResponse, RequestListItem, RevisionInfo
from prompt_request.utils.content_types import ContentKind, object_key, sha256_hex

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100
FIRST_REV = 1
# Revision numbers are stored as 32-bit integers
MAX_REV = 2**31 - 1
MAX_OFFSET = 2**31 - 1
DEFAULT_LOCK_STRIPES = 64


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_LIST_LIMIT
    return min(max(limit, 1), MAX_LIST_LIMIT)


def clamp_offset(offset: int | None) -> int:
    if offset is None:
        return 0
    return min(max(offset, 0), MAX_OFFSET)


def validate_rev(rev: int) -> None:
    if rev < 1 or rev > MAX_REV:
        raise ValidationAppError(
            code="bad_request",
            message=f"rev must be between 1 and {MAX_REV}",
            details={"rev": rev},
        )


def _database_error(operation: str, exc: SQLAlchemyError) -> DatabaseAppError:
    logger.error(
        "database.operation_failed",
        extra={"operation": operation, "error_type": type(exc).__name__, "error_msg": str(exc)},
    )
    return DatabaseAppError(
        code="database",
        message=f"metadata store {operation} failed",
        details={"operation": operation},
    )


class RevisionService:
    """Owns create/update/delete/list semantics for documents and revisions.

    Attributes:
        session_factory: Produces sessions on the shared engine.
        store: Blob backend for revision payloads.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: AbstractObjectStore,
        *,
        lock_stripes: int = DEFAULT_LOCK_STRIPES,
    ) -> None:
        if lock_stripes < 1:
            raise ValueError("lock_stripes must be >= 1")
        self.session_factory = session_factory
        self.store = store
        self._locks = tuple(asyncio.Lock() for _ in range(lock_stripes))

    def _lock_for(self, request_uuid: uuid.UUID) -> asyncio.Lock:
        """The stripe serializing mutations of one document in this process."""
        return self._locks[request_uuid.int % len(self._locks)]

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Read-only session; metadata failures surface as DatabaseAppError."""
        try:
            async with self.session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            raise _database_error(operation, exc) from exc

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Session inside one transaction, committed on clean exit."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            raise _database_error(operation, exc) from exc

    async def _discard_blob(self, key: str, *, reason: str) -> None:
        """Best-effort blob removal. Failures are logged, never raised."""
        try:
            await self.store.delete(key)
        except Exception as exc:
            logger.warning(
                "storage.blob_delete_failed",
                extra={
                    "object_key": key,
                    "reason": reason,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return
        logger.debug("storage.blob_deleted", extra={"object_key": key, "reason": reason})

    async def create_request(
        self, account_id: int, body: bytes, kind: ContentKind
    ) -> RequestCreatedResponse:
        """Create a document whose first revision holds ``body``.

        Raises:
            StorageAppError: If the blob write fails (nothing was recorded).
            DatabaseAppError: If the metadata transaction fails; the blob has
                been deleted (best effort) before this propagates.
        """
        request_uuid = uuid.uuid4()
        key = object_key(request_uuid, FIRST_REV, kind)
        content_type = kind.canonical_type
        checksum = sha256_hex(body)

        await self.store.put(key, body, content_type)

        now = utcnow()
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    repo = RequestRepository(session)
                    repo.add_request(request_uuid, account_id, FIRST_REV, now)
                    await session.flush()
                    repo.add_revision(
                        request_uuid,
                        FIRST_REV,
                        content_type=content_type,
                        size_bytes=len(body),
                        sha256=checksum,
                        object_key=key,
                        now=now,
                    )
        except SQLAlchemyError as exc:
            await self._discard_blob(key, reason="create_failed")
            raise _database_error("create_request", exc) from exc
        except Exception:
            await self._discard_blob(key, reason="create_failed")
            raise

        logger.info(
            "revision.created",
            extra={
                "request_uuid": str(request_uuid),
                "rev": FIRST_REV,
                "account_id": account_id,
                "content_type": content_type,
                "size_bytes": len(body),
            },
        )
        return RequestCreatedResponse(
            uuid=request_uuid,
            rev=FIRST_REV,
            content_type=content_type,
            size_bytes=len(body),
            sha256=checksum,
            created_at=now,
        )

    async def update_request(
        self,
        account_id: int,
        request_uuid: uuid.UUID,
        body: bytes,
        kind: ContentKind,
    ) -> RequestCreatedResponse:
        """Append a revision to an existing document.

        The next number is ``rev_seq + 1``, read under the document's row
        lock and stripe lock, so two concurrent updates can never mint the
        same number and a number freed by deleting the latest revision is
        never handed out again.

        Raises:
            NotFoundAppError: Unknown document, or owned by someone else.
            StorageAppError: If the blob write fails (transaction rolled back).
            DatabaseAppError: If the metadata transaction fails after the blob
                write; the blob is deleted (best effort) first.
        """
        content_type = kind.canonical_type
        checksum = sha256_hex(body)
        async with self._lock_for(request_uuid):
            next_rev, now = await self._append_revision(
                account_id, request_uuid, body, kind, checksum
            )

        logger.info(
            "revision.created",
            extra={
                "request_uuid": str(request_uuid),
                "rev": next_rev,
                "account_id": account_id,
                "content_type": content_type,
                "size_bytes": len(body),
            },
        )
        return RequestCreatedResponse(
            uuid=request_uuid,
            rev=next_rev,
            content_type=content_type,
            size_bytes=len(body),
            sha256=checksum,
            created_at=now,
        )

    async def _append_revision(
        self,
        account_id: int,
        request_uuid: uuid.UUID,
        body: bytes,
        kind: ContentKind,
        checksum: str,
    ) -> tuple[int, datetime]:
        """Mint, write and record the next revision.

        Must run under the document's stripe lock: compensation deletes the
        blob by key, so no other writer may hold the same number meanwhile.
        """
        content_type = kind.canonical_type
        written_key: str | None = None

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    repo = RequestRepository(session)
                    record = await repo.lock_owned(request_uuid, account_id)
                    if record is None:
                        raise not_found()

                    next_rev = record.rev_seq + 1
                    key = object_key(request_uuid, next_rev, kind)
                    await self.store.put(key, body, content_type)
                    written_key = key

                    now = utcnow()
                    repo.add_revision(
                        request_uuid,
                        next_rev,
                        content_type=content_type,
                        size_bytes=len(body),
                        sha256=checksum,
                        object_key=key,
                        now=now,
                    )
                    record.latest_rev = next_rev
                    record.rev_seq = next_rev
                    record.updated_at = now
        except SQLAlchemyError as exc:
            if written_key is not None:
                await self._discard_blob(written_key, reason="update_failed")
            raise _database_error("update_request", exc) from exc
        except Exception:
            if written_key is not None:
                await self._discard_blob(written_key, reason="update_failed")
            raise

        return next_rev, now

    async def delete_revision(
        self, account_id: int, request_uuid: uuid.UUID, rev: int
    ) -> None:
        """Delete one revision; the document goes with its last revision.

        ``latest_rev`` is moved to the highest remaining revision. The blob is
        removed only after the metadata commit, and a failed removal is
        logged, not raised.
        """
        validate_rev(rev)

        document_deleted = False
        async with (
            self._lock_for(request_uuid),
            self._transaction("delete_revision") as session,
        ):
            repo = RequestRepository(session)
            record = await repo.lock_owned(request_uuid, account_id)
            if record is None:
                raise not_found()

            revision = await repo.get_revision(request_uuid, rev)
            if revision is None:
                raise not_found()
            key = revision.object_key

            await repo.delete_revision(request_uuid, rev)
            remaining = await repo.max_rev(request_uuid)
            if remaining is None:
                await repo.delete_request(request_uuid)
                document_deleted = True
            else:
                record.latest_rev = remaining
                record.updated_at = utcnow()

        logger.info(
            "revision.deleted",
            extra={
                "request_uuid": str(request_uuid),
                "rev": rev,
                "account_id": account_id,
                "document_deleted": document_deleted,
            },
        )
        await self._discard_blob(key, reason="revision_deleted")

    async def delete_request(self, account_id: int, request_uuid: uuid.UUID) -> None:
        """Delete a document with its whole history, then its blobs."""
        async with (
            self._lock_for(request_uuid),
            self._transaction("delete_request") as session,
        ):
            repo = RequestRepository(session)
            record = await repo.lock_owned(request_uuid, account_id)
            if record is None:
                raise not_found()
            keys = await repo.list_object_keys(request_uuid)
            await repo.delete_request(request_uuid)

        logger.info(
            "request.deleted",
            extra={
                "request_uuid": str(request_uuid),
                "account_id": account_id,
                "revisions": len(keys),
            },
        )
        for key in keys:
            await self._discard_blob(key, reason="request_deleted")

    async def list_requests(
        self,
        account_id: int,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[RequestListItem]:
        """The caller's documents, newest first, one page at a time."""
        async with self._session("list_requests") as session:
            rows = await RequestRepository(session).list_owned(
                account_id, clamp_limit(limit), clamp_offset(offset)
            )
        return [RequestListItem.model_validate(row) for row in rows]

    async def list_revisions(
        self, account_id: int, request_uuid: uuid.UUID
    ) -> list[RevisionInfo]:
        async with self._session("list_revisions") as session:
            repo = RequestRepository(session)
            if not await repo.is_owned(request_uuid, account_id):
                raise not_found()
            revisions = await repo.list_revisions(request_uuid)
        return [RevisionInfo.model_validate(revision) for revision in revisions]

    async def get_revision(
        self, account_id: int, request_uuid: uuid.UUID, rev: int
    ) -> RevisionInfo:
        validate_rev(rev)
        async with self._session("get_revision") as session:
            repo = RequestRepository(session)
            if not await repo.is_owned(request_uuid, account_id):
                raise not_found()
            revision = await repo.get_revision(request_uuid, rev)
            if revision is None:
                raise not_found()
        return RevisionInfo.model_validate(revision)
