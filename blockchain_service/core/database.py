"""
Job store engine and session factory (SQLAlchemy 2.0 async).

The API process and the worker each call ``init_database()`` once at
start-up; repositories take the session factory rather than the module
global so tests can hand them an in-memory store.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import settings, DatabaseConfig
from .logging import get_logger

logger = get_logger(__name__)

async_engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database() -> async_sessionmaker[AsyncSession]:
    """Create the engine for the job store and return its session factory."""
    global async_engine, async_session_maker

    if async_session_maker is not None:
        return async_session_maker

    url = DatabaseConfig.get_database_url(async_driver=True)
    logger.info("Connecting to job store", host=url.split("@")[-1])

    async_engine = create_async_engine(
        url,
        **DatabaseConfig.get_engine_config(),
        echo=settings.debug
    )
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    return async_session_maker


async def close_database() -> None:
    """Dispose of the engine; safe to call when never initialized."""
    global async_engine, async_session_maker

    if async_engine is not None:
        await async_engine.dispose()
        logger.info("Job store connections closed")

    async_engine = None
    async_session_maker = None


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    if async_session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return async_session_maker
