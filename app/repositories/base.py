from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """Holds the request's ``AsyncSession``.

    Repositories built from the same session share one unit of work, so a
    service can touch several tables and commit once.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[AsyncSession]:
        """Nested transaction: a failure inside rolls back only this block."""
        async with self._db.begin_nested():
            yield self._db

    async def flush(self) -> None:
        await self._db.flush()

    async def commit(self) -> None:
        await self._db.commit()

    async def rollback(self) -> None:
        await self._db.rollback()
