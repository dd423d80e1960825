"""Queries over documents and their revisions.

The repository never commits; transaction boundaries belong to the caller
(the revision coordinator), which also decides when blobs are written or
removed relative to those boundaries.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import Row, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from prompt_request.db.models import RequestRecord, RequestRevision


class RequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    def add_request(
        self,
        request_uuid: uuid.UUID,
        account_id: int,
        rev: int,
        now: datetime,
    ) -> RequestRecord:
        record = RequestRecord(
            uuid=request_uuid,
            account_id=account_id,
            latest_rev=rev,
            rev_seq=rev,
            created_at=now,
            updated_at=now,
        )
        self.session.add(record)
        return record

    def add_revision(
        self,
        request_uuid: uuid.UUID,
        rev: int,
        *,
        content_type: str,
        size_bytes: int,
        sha256: str,
        object_key: str,
        now: datetime,
    ) -> RequestRevision:
        revision = RequestRevision(
            request_uuid=request_uuid,
            rev_number=rev,
            content_type=content_type,
            size_bytes=size_bytes,
            sha256=sha256,
            object_key=object_key,
            created_at=now,
        )
        self.session.add(revision)
        return revision

    async def lock_owned(
        self, request_uuid: uuid.UUID, account_id: int
    ) -> Optional[RequestRecord]:
        """SELECT ... FOR UPDATE on the document, scoped to its owner.

        The lock is held until the surrounding transaction ends, which
        serializes revision-number allocation and deletes per document.
        """
        result = await self.session.execute(
            select(RequestRecord)
            .where(
                RequestRecord.uuid == request_uuid,
                RequestRecord.account_id == account_id,
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def is_owned(self, request_uuid: uuid.UUID, account_id: int) -> bool:
        result = await self.session.execute(
            select(RequestRecord.uuid).where(
                RequestRecord.uuid == request_uuid,
                RequestRecord.account_id == account_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def list_owned(
        self, account_id: int, limit: int, offset: int
    ) -> Sequence[Row]:
        result = await self.session.execute(
            select(
                RequestRecord.uuid,
                RequestRecord.created_at,
                RequestRecord.updated_at,
                RequestRecord.latest_rev,
                RequestRevision.content_type.label("latest_content_type"),
            )
            .join(
                RequestRevision,
                (RequestRevision.request_uuid == RequestRecord.uuid)
                & (RequestRevision.rev_number == RequestRecord.latest_rev),
            )
            .where(RequestRecord.account_id == account_id)
            .order_by(RequestRecord.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return result.all()

    async def list_revisions(self, request_uuid: uuid.UUID) -> List[RequestRevision]:
        result = await self.session.execute(
            select(RequestRevision)
            .where(RequestRevision.request_uuid == request_uuid)
            .order_by(RequestRevision.rev_number.desc())
        )
        return list(result.scalars().all())

    async def get_revision(
        self, request_uuid: uuid.UUID, rev: int
    ) -> Optional[RequestRevision]:
        result = await self.session.execute(
            select(RequestRevision).where(
                RequestRevision.request_uuid == request_uuid,
                RequestRevision.rev_number == rev,
            )
        )
        return result.scalar_one_or_none()

    async def get_latest_revision(
        self, request_uuid: uuid.UUID
    ) -> Optional[RequestRevision]:
        result = await self.session.execute(
            select(RequestRevision)
            .join(
                RequestRecord,
                (RequestRecord.uuid == RequestRevision.request_uuid)
                & (RequestRecord.latest_rev == RequestRevision.rev_number),
            )
            .where(RequestRecord.uuid == request_uuid)
        )
        return result.scalar_one_or_none()

    async def list_object_keys(self, request_uuid: uuid.UUID) -> List[str]:
        result = await self.session.execute(
            select(RequestRevision.object_key).where(
                RequestRevision.request_uuid == request_uuid
            )
        )
        return list(result.scalars().all())

    async def delete_revision(self, request_uuid: uuid.UUID, rev: int) -> int:
        result = await self.session.execute(
            delete(RequestRevision).where(
                RequestRevision.request_uuid == request_uuid,
                RequestRevision.rev_number == rev,
            )
        )
        return result.rowcount

    async def max_rev(self, request_uuid: uuid.UUID) -> Optional[int]:
        result = await self.session.execute(
            select(func.max(RequestRevision.rev_number)).where(
                RequestRevision.request_uuid == request_uuid
            )
        )
        return result.scalar_one()

    async def delete_request(self, request_uuid: uuid.UUID) -> Tuple[int, int]:
        """Remove every revision row, then the document row."""
        revisions = await self.session.execute(
            delete(RequestRevision).where(RequestRevision.request_uuid == request_uuid)
        )
        requests = await self.session.execute(
            delete(RequestRecord).where(RequestRecord.uuid == request_uuid)
        )
        return revisions.rowcount, requests.rowcount
