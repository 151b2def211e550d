from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from app.core.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    poolclass=AsyncAdaptedQueuePool,
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency for FastAPI routes: one session per request."""
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker = AsyncSessionLocal,
) -> AsyncIterator[AsyncSession]:
    """Session for work running outside a request (workers, cron scripts).

    Rolls back on error so a failed background job never leaves a
    half-written transaction on a pooled connection.
    """
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
