from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response

from prompt_request.core.dependencies import get_container
from prompt_request.core.rate_limit import enforce_public_read_limit
from prompt_request.services.public_reader import FRONT_PAGE_MEDIA_TYPE

router = APIRouter(tags=["Public"], dependencies=[Depends(enforce_public_read_limit)])


@router.get("/", response_class=Response)
async def front_page(request: Request) -> Response:
    """Serve the markdown front page."""
    return Response(
        content=get_container(request).public_reader.front_page(),
        media_type=FRONT_PAGE_MEDIA_TYPE,
    )


@router.get("/{request_uuid}", response_class=Response)
async def read_document(
    request_uuid: uuid.UUID,
    request: Request,
    rev: Annotated[int | None, Query(description="Pinned revision; latest when omitted")] = None,
) -> Response:
    """Serve the raw bytes of a document revision, exactly as uploaded."""
    document = await get_container(request).public_reader.read(request_uuid, rev)
    return Response(content=document.body, media_type=document.media_type)
