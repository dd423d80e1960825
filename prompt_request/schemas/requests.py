"""Pydantic schemas for document ("request") and revision metadata."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RequestCreatedResponse(BaseModel):
    """Metadata of a freshly written revision (create or update)."""

    uuid: UUID = Field(..., description="Public identifier of the document.")
    rev: int = Field(..., ge=1, description="Revision number that was just written.")
    content_type: str = Field(
        ..., description="Canonical content type: text/markdown or application/x-ndjson."
    )
    size_bytes: int = Field(..., ge=0, description="Size of the stored payload in bytes.")
    sha256: str = Field(
        ...,
        min_length=64,
        max_length=64,
        description="Lowercase hex SHA-256 of the exact bytes stored.",
    )
    created_at: datetime = Field(..., description="When the revision was recorded.")


class RequestListItem(BaseModel):
    """One of the caller's documents, newest first."""

    model_config = ConfigDict(from_attributes=True)

    uuid: UUID
    created_at: datetime
    updated_at: datetime
    latest_rev: int = Field(..., ge=1)
    latest_content_type: str


class RevisionInfo(BaseModel):
    """Immutable metadata of a single revision."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    rev: int = Field(..., ge=1, validation_alias="rev_number")
    created_at: datetime
    content_type: str
    size_bytes: int
    sha256: str

