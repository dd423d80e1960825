"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers,
service container, lifespan) to improve testability.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from prompt_request.api.routes import (
    accounts_router,
    health_router,
    public_router,
    requests_router,
)
from prompt_request.core.config import Settings, settings
from prompt_request.core.container import ServiceContainer
from prompt_request.core.exception_handlers import setup_exception_handlers
from prompt_request.core.logging import configure_logging
from prompt_request.core.middleware import request_id_middleware
from prompt_request.core.openapi import apply_openapi_customizations

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Settings | None = None,
    *,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; the global settings when omitted.
        container: Pre-wired services (tests); built from settings when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or (container.settings if container else settings)

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    services = container or ServiceContainer.build(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await services.startup()
        try:
            yield
        finally:
            await services.shutdown()
            logger.info("app.stopped")

    app = FastAPI(
        title="prompt-request",
        description=(
            "Versioned markdown and NDJSON documents. Accounts are anonymous "
            "and identified by a bearer API key; every write appends an "
            "immutable revision, and any revision can be read publicly by "
            "document UUID."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )
    app.state.container = services

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    # The catch-all public route must be registered last
    prefix = cfg.app.api_prefix.rstrip("/")
    app.include_router(health_router)
    app.include_router(accounts_router, prefix=prefix)
    app.include_router(requests_router, prefix=prefix)
    app.include_router(public_router)

    apply_openapi_customizations(app, api_prefix=prefix)

    return app
