"""Upload size enforcement for raw request bodies."""
from __future__ import annotations

import logging

from fastapi import Request

from prompt_request.core.config import settings
from prompt_request.core.errors import PayloadTooLargeAppError

logger = logging.getLogger(__name__)


def _too_large(max_bytes: int, actual: int | None = None) -> PayloadTooLargeAppError:
    details = {"max_bytes": max_bytes}
    if actual is not None:
        details["actual_bytes"] = actual
    return PayloadTooLargeAppError(
        code="payload_too_large",
        message=f"Body too large. Maximum size: {max_bytes} bytes",
        details=details,  # type: ignore[arg-type]
    )


async def read_body_limited(request: Request, max_bytes: int | None = None) -> bytes:
    """Read the request body in chunks enforcing the max size limit.

    Validates the declared Content-Length first so oversized uploads are
    rejected without being read, then enforces the limit again while
    streaming (chunked bodies carry no length).

    Args:
        request: Incoming request whose body is the raw document.
        max_bytes: Override for the configured limit.

    Returns:
        Body bytes if within the allowed size limit.

    Raises:
        PayloadTooLargeAppError: If the body exceeds the limit.
    """
    limit = max_bytes if max_bytes is not None else settings.app.max_upload_bytes

    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        logger.warning(
            "upload.rejected_by_header",
            extra={"content_length": int(declared), "max_bytes": limit},
        )
        raise _too_large(limit, int(declared))

    # Chunked reading with secondary enforcement
    size = 0
    chunks: list[bytes] = []

    async for chunk in request.stream():
        if not chunk:
            continue
        size += len(chunk)
        if size > limit:
            logger.warning(
                "upload.rejected_by_chunked_read",
                extra={"size": size, "max_bytes": limit},
            )
            raise _too_large(limit)
        chunks.append(chunk)

    return b"".join(chunks)
