"""Unauthenticated reads of the latest or a pinned revision."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from prompt_request.adapters.storage.base import AbstractObjectStore
from prompt_request.core.errors import DatabaseAppError, not_found
from prompt_request.db.repositories.requests import RequestRepository
from prompt_request.services.revision_service import validate_rev
from prompt_request.utils.content_types import kind_for_canonical_type

logger = logging.getLogger(__name__)

FRONT_PAGE_MEDIA_TYPE = "text/markdown; charset=utf-8"

DEFAULT_FRONT_PAGE = """# prompt-request

Versioned markdown and NDJSON documents, readable by anyone with the link.

- `POST /accounts` returns an API key (shown once).
- `POST /requests` with `Authorization: Bearer <key>` and a
  `Content-Type` of `text/markdown` or `application/x-ndjson` stores a document.
- `PUT /requests/{id}` appends a revision.
- `GET /{id}` serves the latest revision; `GET /{id}?rev=N` a specific one.
"""


@dataclass(frozen=True)
class PublicDocument:
    body: bytes
    media_type: str
    rev: int
    sha256: str


def load_front_page(path: str | None = None) -> str:
    """Front page markdown: explicit path, then ./frontpage.md, then the default."""
    if path:
        return Path(path).read_text(encoding="utf-8")
    local = Path("frontpage.md")
    if local.is_file():
        return local.read_text(encoding="utf-8")
    return DEFAULT_FRONT_PAGE


class PublicReader:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: AbstractObjectStore,
        front_page: str = DEFAULT_FRONT_PAGE,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self._front_page = front_page

    def front_page(self) -> str:
        return self._front_page

    async def read(self, request_uuid: uuid.UUID, rev: int | None = None) -> PublicDocument:
        """Fetch a revision's bytes; the latest one when ``rev`` is omitted.

        Raises:
            ValidationAppError: If ``rev`` < 1.
            NotFoundAppError: Unknown document or revision.
            DatabaseAppError: Metadata lookup failed.
            StorageAppError: Blob fetch failed.
        """
        if rev is not None:
            validate_rev(rev)

        try:
            async with self.session_factory() as session:
                repo = RequestRepository(session)
                if rev is None:
                    revision = await repo.get_latest_revision(request_uuid)
                else:
                    revision = await repo.get_revision(request_uuid, rev)
        except SQLAlchemyError as exc:
            logger.error(
                "public_read.lookup_failed",
                extra={"request_uuid": str(request_uuid), "error_msg": str(exc)},
            )
            raise DatabaseAppError(
                code="database",
                message="metadata store public_read failed",
                details={"operation": "public_read"},
            ) from exc

        if revision is None:
            raise not_found()

        body = await self.store.get(revision.object_key)

        kind = kind_for_canonical_type(revision.content_type)
        media_type = kind.response_type if kind else revision.content_type
        return PublicDocument(
            body=body,
            media_type=media_type,
            rev=revision.rev_number,
            sha256=revision.sha256,
        )
