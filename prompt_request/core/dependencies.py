"""Access to the per-process service container from request handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from prompt_request.core.container import ServiceContainer


def get_container(request: Request) -> "ServiceContainer":
    """Return the container built by the app factory (``app.state.container``)."""
    return request.app.state.container
