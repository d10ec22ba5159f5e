# db.py
import logging
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)

# Base class for declarative models. All models in `models.py` inherit from this.
Base = declarative_base()


def normalize_database_url(url: str) -> str:
    """Rewrites plain PostgreSQL URLs so they use the asyncpg driver."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    # SQLite ignores FOREIGN KEY constraints unless asked per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Owns the async engine and session factory for one application instance.

    The app builds exactly one of these in `create_app` and keeps it on
    `app.state.database`; request handlers receive sessions through `get_db`.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = normalize_database_url(url)

        engine_kwargs = {"echo": echo}
        if self.url.startswith("sqlite"):
            logger.info("Using local SQLite database.")
        else:
            logger.info("Connecting to PostgreSQL database.")
            # `pool_recycle` keeps idle connections from being dropped by the
            # database or network infrastructure.
            engine_kwargs.update(pool_size=10, max_overflow=5, pool_timeout=30, pool_recycle=1800)

        self.engine = create_async_engine(self.url, **engine_kwargs)
        if self.url.startswith("sqlite"):
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self.session_maker = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def create_all(self) -> None:
        # Models must be imported so their tables are registered on Base.
        from hausjogja import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables verified/created.")

    async def dispose(self) -> None:
        await self.engine.dispose()


# --- FastAPI Dependency ---

async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session to each request.

    Rolls back whatever the handler left uncommitted when it raises, and
    always closes the session.
    """
    database: Database = request.app.state.database
    async with database.session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
