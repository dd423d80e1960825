"""Content type handling for uploaded documents.

Maps the caller-supplied ``Content-Type`` onto the closed set of supported
kinds, and derives checksums and storage keys from a document's content.
"""

from __future__ import annotations

import enum
import hashlib
import logging
import uuid
from typing import Optional

from prompt_request.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


class ContentKind(str, enum.Enum):
    MARKDOWN = "markdown"
    NDJSON = "ndjson"

    @property
    def canonical_type(self) -> str:
        """Content type recorded on the revision and the blob."""
        return _CANONICAL[self]

    @property
    def response_type(self) -> str:
        """Content type served on public reads."""
        if self is ContentKind.MARKDOWN:
            return "text/markdown; charset=utf-8"
        return self.canonical_type

    @property
    def extension(self) -> str:
        return "md" if self is ContentKind.MARKDOWN else "jsonl"


_CANONICAL = {
    ContentKind.MARKDOWN: "text/markdown",
    ContentKind.NDJSON: "application/x-ndjson",
}

_MIME_MAP = {
    "text/markdown": ContentKind.MARKDOWN,
    "text/x-markdown": ContentKind.MARKDOWN,
    "application/x-ndjson": ContentKind.NDJSON,
    "application/jsonl": ContentKind.NDJSON,
    "application/jsonlines": ContentKind.NDJSON,
}


def get_content_kind_from_mime(mime_type: str) -> Optional[ContentKind]:
    """Map a MIME type (parameters and case ignored) to a content kind.

    Args:
        mime_type: MIME type string (e.g., 'text/markdown; charset=utf-8').

    Returns:
        ContentKind or None if unsupported.
    """
    base = mime_type.split(";", 1)[0].strip().lower()
    return _MIME_MAP.get(base)


def parse_content_type(header_value: str | None) -> ContentKind:
    """Validate the request's Content-Type header.

    Raises:
        ValidationAppError: If the header is missing or not a supported type.
    """
    if not header_value:
        raise ValidationAppError(code="bad_request", message="missing content-type")

    kind = get_content_kind_from_mime(header_value)
    if kind is None:
        base = header_value.split(";", 1)[0].strip().lower()
        logger.info("content_type.rejected", extra={"content_type": base})
        raise ValidationAppError(
            code="bad_request",
            message=f"unsupported content-type: {base}",
            details={"content_type": base},
        )
    return kind


def kind_for_canonical_type(content_type: str) -> Optional[ContentKind]:
    """Reverse lookup used when serving stored revisions."""
    for kind, canonical in _CANONICAL.items():
        if canonical == content_type:
            return kind
    return None


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def object_key(request_uuid: uuid.UUID, rev: int, kind: ContentKind) -> str:
    """Deterministic blob key: requests/{uuid}/rev-{rev}.{ext}."""
    return f"requests/{request_uuid}/rev-{rev}.{kind.extension}"
