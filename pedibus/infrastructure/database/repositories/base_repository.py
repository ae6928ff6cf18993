from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class BaseRepository:
    """Repositories read through their own short-lived session unless the caller
    hands in the session of an ongoing transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """One atomic unit: commits on success, rolls back on any exception."""
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    @asynccontextmanager
    async def _use(self, db: Optional[AsyncSession]) -> AsyncIterator[AsyncSession]:
        if db is not None:
            yield db
            return
        async with self.session_factory() as session:
            yield session
