from sqlalchemy import NullPool, event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pedibus.core.config import Settings
from pedibus.core.logger import logger
from pedibus.infrastructure.database.base import Base


def normalize_database_url(url: str) -> str:
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


def _serialize_sqlite_writers(engine: AsyncEngine):
    """SQLite ignores FOR UPDATE, so every transaction takes the write lock up front.

    The driver's own deferred BEGIN is disabled and replaced by BEGIN IMMEDIATE.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Owns the async engine and the session factory handed to repositories."""

    def __init__(self, settings: Settings):
        url = normalize_database_url(settings.database_url)
        engine_kwargs = {"echo": settings.database_echo}
        if url.startswith("postgresql"):
            engine_kwargs.update(poolclass=NullPool, pool_pre_ping=True)

        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        if url.startswith("sqlite"):
            _serialize_sqlite_writers(self.engine)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

    async def init_db(self):
        async with self.engine.begin() as conn:
            import pedibus.domain.schemas.models  # noqa: F401
            logger.info("🔄 Creating database tables...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("[Database] Tables ready.")

    async def dispose(self):
        await self.engine.dispose()
