import asyncio
import logging

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(settings: Settings) -> AsyncEngine:
    """
    Builds the pooled async engine for the configured database
    """
    if settings.database_url.startswith("sqlite"):
        engine = create_async_engine(settings.database_url)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def wait_for_database(engine: AsyncEngine, retries: int, delay: float) -> None:
    """
    Waits until the database accepts connections.
    Retries a fixed number of times with a fixed delay, then re-raises the last error.
    """
    attempts = max(retries, 1)
    for attempt in range(1, attempts + 1):
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return
        except (DBAPIError, OSError) as exc:
            if attempt == attempts:
                logger.error("Database unavailable after %d attempts", attempts)
                raise
            logger.warning(
                "Database connection failed (attempt %d/%d): %s; retrying in %.1fs",
                attempt, attempts, exc, delay,
            )
            await asyncio.sleep(delay)


async def create_tables(engine: AsyncEngine) -> None:
    # Import models so they register on Base.metadata
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
