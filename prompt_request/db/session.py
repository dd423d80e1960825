"""Async engine and session factory for the metadata store."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from prompt_request.core.config import DatabaseSettings
from prompt_request.db.models import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns the engine (connection pool) and hands out sessions.

    One instance lives for the life of the process and is shared by every
    request handler.
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 10,
        pool_timeout: float = 10.0,
        command_timeout: float = 30.0,
    ) -> None:
        engine_kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            engine_kwargs["pool_size"] = pool_size
            engine_kwargs["pool_timeout"] = pool_timeout
        if "+asyncpg" in url:
            engine_kwargs["connect_args"] = {"command_timeout": command_timeout}

        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @classmethod
    def from_settings(cls, database: DatabaseSettings) -> "Database":
        return cls(
            database.url,
            echo=database.echo,
            pool_size=database.max_connections,
            pool_timeout=database.pool_timeout_seconds,
            command_timeout=database.command_timeout_seconds,
        )

    async def create_schema(self) -> None:
        """Create missing tables. Development and test bootstrap only."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.schema_created")

    async def dispose(self) -> None:
        await self.engine.dispose()
