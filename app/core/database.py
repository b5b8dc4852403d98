# app/core/database.py
"""Async engines and session factories for the API and the worker.

Both factories keep ``expire_on_commit=False`` so rows returned by a service
stay readable after its commit. A rollback still expires them.
"""
from typing import AsyncGenerator, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from sqlalchemy import text
import logging

from .config import settings

logger = logging.getLogger(__name__)


def _asyncpg_connect_args(application_name: str, statement_timeout: int) -> Dict[str, Any]:
    return {
        "command_timeout": statement_timeout,
        "server_settings": {
            "jit": "off",
            "application_name": application_name,
            "statement_timeout": f"{statement_timeout}s",
            # Schedule timestamps are stored in UTC; civil time is applied in code
            "timezone": "UTC",
        },
    }


engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_recycle=1800,
    pool_pre_ping=True,
    echo=(settings.environment == 'development'),
    connect_args=_asyncpg_connect_args("college_schedule_api", settings.db_statement_timeout_seconds),
)

# Each Celery task runs its own event loop, so worker connections are never pooled
background_engine = create_async_engine(
    settings.database_url,
    poolclass=NullPool,
    connect_args=_asyncpg_connect_args("college_schedule_worker", settings.worker_statement_timeout_seconds),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

AsyncBackgroundSessionLocal = async_sessionmaker(
    background_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; anything left uncommitted is rolled back"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Rolling back request session: {e}")
            await session.rollback()
            raise

async def health_check_db() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False

async def close_db_connections():
    await engine.dispose()
    await background_engine.dispose()
    logger.info("Database engines disposed")
