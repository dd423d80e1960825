from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Query, Request, Response, status

from prompt_request.core.auth import CurrentAccount
from prompt_request.core.dependencies import get_container
from prompt_request.core.file_validation import read_body_limited
from prompt_request.schemas.requests import RequestCreatedResponse, RequestListItem, RevisionInfo
from prompt_request.utils.content_types import parse_content_type

router = APIRouter(prefix="/requests", tags=["Requests"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=RequestCreatedResponse,
)
async def create_request(request: Request, auth: CurrentAccount) -> RequestCreatedResponse:
    """Store a new document as revision 1.

    The raw request body is the document; ``Content-Type`` must be markdown
    or NDJSON.
    """
    container = get_container(request)
    body = await read_body_limited(request, container.settings.app.max_upload_bytes)
    kind = parse_content_type(request.headers.get("content-type"))
    return await container.revisions.create_request(auth.account_id, body, kind)


@router.put(
    "/{request_uuid}",
    status_code=status.HTTP_201_CREATED,
    response_model=RequestCreatedResponse,
)
async def update_request(
    request_uuid: uuid.UUID, request: Request, auth: CurrentAccount
) -> RequestCreatedResponse:
    """Append a revision to an owned document."""
    container = get_container(request)
    body = await read_body_limited(request, container.settings.app.max_upload_bytes)
    kind = parse_content_type(request.headers.get("content-type"))
    return await container.revisions.update_request(auth.account_id, request_uuid, body, kind)


@router.get("", response_model=list[RequestListItem])
async def list_requests(
    request: Request,
    auth: CurrentAccount,
    limit: Annotated[int | None, Query(description="Page size, clamped to 1..100")] = None,
    offset: Annotated[int | None, Query(description="Rows to skip")] = None,
) -> list[RequestListItem]:
    return await get_container(request).revisions.list_requests(auth.account_id, limit, offset)


@router.get("/{request_uuid}/revisions", response_model=list[RevisionInfo])
async def list_revisions(
    request_uuid: uuid.UUID, request: Request, auth: CurrentAccount
) -> list[RevisionInfo]:
    return await get_container(request).revisions.list_revisions(auth.account_id, request_uuid)


@router.get("/{request_uuid}/revisions/{rev}", response_model=RevisionInfo)
async def get_revision(
    request_uuid: uuid.UUID, rev: int, request: Request, auth: CurrentAccount
) -> RevisionInfo:
    return await get_container(request).revisions.get_revision(auth.account_id, request_uuid, rev)


@router.delete("/{request_uuid}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_request(
    request_uuid: uuid.UUID,
    request: Request,
    auth: CurrentAccount,
    rev: Annotated[int | None, Query(description="Delete only this revision")] = None,
) -> Response:
    """Delete one revision, or the whole document when ``rev`` is omitted."""
    revisions = get_container(request).revisions
    if rev is None:
        await revisions.delete_request(auth.account_id, request_uuid)
    else:
        await revisions.delete_revision(auth.account_id, request_uuid, rev)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
