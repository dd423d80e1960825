"""Composition root.

Everything with process lifetime (connection pool, object store client, the
three rate limiters, the services built on them) is created here once and
handed to request handlers through ``app.state.container``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from prompt_request.adapters.rate_limit.base import AbstractRateLimiter
from prompt_request.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from prompt_request.adapters.storage.base import AbstractObjectStore
from prompt_request.adapters.storage.factory import create_object_store
from prompt_request.core.auth import AuthGate
from prompt_request.core.config import Settings
from prompt_request.db.session import Database
from prompt_request.services.account_service import AccountService
from prompt_request.services.public_reader import PublicReader, load_front_page
from prompt_request.services.revision_service import RevisionService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    store: AbstractObjectStore
    account_limiter: AbstractRateLimiter
    public_read_limiter: AbstractRateLimiter
    account_create_limiter: AbstractRateLimiter
    auth_gate: AuthGate
    accounts: AccountService
    revisions: RevisionService
    public_reader: PublicReader

    @classmethod
    def build(
        cls,
        cfg: Settings,
        *,
        database: Database | None = None,
        store: AbstractObjectStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "ServiceContainer":
        """Wire the service graph from configuration.

        Args:
            cfg: Resolved settings.
            database: Pre-built database (tests); built from cfg when omitted.
            store: Pre-built object store (tests); built from cfg when omitted.
            clock: Monotonic time source shared by the limiters.
        """
        database = database or Database.from_settings(cfg.database)
        store = store or create_object_store(cfg.storage)
        sessions = database.session_factory
        pepper = cfg.app.api_key_pepper

        account_limiter = InMemoryFixedWindowRateLimiter(
            window_seconds=cfg.app.account_rate_window_seconds, clock=clock
        )
        public_read_limiter = InMemoryFixedWindowRateLimiter(
            window_seconds=cfg.app.public_read_rate_window_seconds, clock=clock
        )
        account_create_limiter = InMemoryFixedWindowRateLimiter(
            window_seconds=cfg.app.account_create_rate_window_seconds, clock=clock
        )

        return cls(
            settings=cfg,
            database=database,
            store=store,
            account_limiter=account_limiter,
            public_read_limiter=public_read_limiter,
            account_create_limiter=account_create_limiter,
            auth_gate=AuthGate(sessions, account_limiter, pepper),
            accounts=AccountService(sessions, pepper),
            revisions=RevisionService(sessions, store),
            public_reader=PublicReader(sessions, store, load_front_page(cfg.app.front_page_path)),
        )

    async def startup(self) -> None:
        """Bootstrap external resources. A failure here aborts startup."""
        if self.settings.database.create_schema:
            await self.database.create_schema()
        if self.settings.storage.create_bucket:
            await self.store.ensure_bucket()
        logger.info(
            "app.started",
            extra={
                "app_env": self.settings.app_env,
                "storage_backend": self.settings.storage.backend,
            },
        )

    async def shutdown(self) -> None:
        await self.database.dispose()
