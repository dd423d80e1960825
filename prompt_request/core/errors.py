"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses. Each subclass maps to
exactly one HTTP status in ``prompt_request.core.exception_handlers``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    max_bytes: int
    actual_bytes: int
    retry_after: int
    content_type: str
    rev: int
    object_key: str
    operation: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input validation fails (bad request)."""


class AuthenticationAppError(AppError):
    """Raised when a bearer credential is missing, malformed or unknown."""


class NotFoundAppError(AppError):
    """Raised for unknown documents/revisions, and for ones the caller does not own."""


class PayloadTooLargeAppError(AppError):
    """Raised when an upload exceeds the configured size cap."""


@dataclass
class RateLimitedAppError(AppError):
    """Raised when a fixed-window limiter rejects a call."""

    retry_after_seconds: int = 1


class StorageAppError(AppError):
    """Raised when the object store fails."""


class DatabaseAppError(AppError):
    """Raised when the metadata store fails."""


class InternalAppError(AppError):
    """Raised on invariant violations and other unexpected states."""


def not_found() -> NotFoundAppError:
    """Uniform not-found error; never reveals whether the row exists for someone else."""
    return NotFoundAppError(code="not_found", message="Not found")
