from __future__ import annotations

from prompt_request.api.routes.accounts import router as accounts_router
from prompt_request.api.routes.health import router as health_router
from prompt_request.api.routes.public import router as public_router
from prompt_request.api.routes.requests import router as requests_router

__all__ = ["accounts_router", "health_router", "public_router", "requests_router"]
