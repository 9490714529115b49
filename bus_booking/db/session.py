"""
Explicit storage handle.

A Database owns one async engine (and its connection pool) plus a session
factory. It is created by the application lifespan, or handed to
create_app() by tests, and passed into every service that needs storage.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from bus_booking import models  # noqa: F401  registers tables on Base.metadata
from bus_booking.core.config import Settings
from bus_booking.db.base import Base


class Database:
    def __init__(self, url: str, *, echo: bool = False, **engine_kwargs):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings, url: Optional[str] = None) -> "Database":
        url = url or settings.DATABASE_URL
        if url.startswith("sqlite"):
            return cls(url, echo=settings.DEBUG)
        return cls(
            url,
            echo=settings.DEBUG,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_pre_ping=True,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Plain session; the caller controls commits."""
        async with self.session_factory() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session inside one transaction: commit on exit, rollback on error."""
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Request-scoped session for read endpoints."""
    async with get_database(request).session() as session:
        yield session
