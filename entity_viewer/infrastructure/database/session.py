"""Database handle used by viewers to execute statements."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from ...core.config import Settings


class Database:
    """Wraps the async engine that every query of a viewer goes through."""

    def __init__(self, dsn: str, *, echo: bool = False) -> None:
        self.engine: AsyncEngine = create_async_engine(dsn, echo=echo, future=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        return cls(settings.database_dsn, echo=settings.database_echo)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def init_models(self, metadata: MetaData) -> None:
        """Create missing tables described by ``metadata``."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """Connection whose work is committed when the block exits cleanly."""
        async with self.engine.begin() as conn:
            yield conn

    async def aclose(self) -> None:
        await self.engine.dispose()
