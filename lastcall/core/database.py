import asyncio
import asyncpg
from typing import Optional
import logging

from ..config import settings

logger = logging.getLogger(__name__)

# Global connection pool
_pool: Optional[asyncpg.Pool] = None

POOL_CREATE_TIMEOUT = 30.0


async def create_pool() -> asyncpg.Pool:
    """
    Create the asyncpg pool used by PostgresStore.

    Sessions run in UTC so timestamptz values come back as UTC-aware datetimes;
    local-day math for the scheduler happens in Python.
    """
    global _pool

    if _pool is not None:
        return _pool

    try:
        _pool = await asyncio.wait_for(
            asyncpg.create_pool(
                dsn=settings.database_url,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
                command_timeout=settings.db_command_timeout,
                server_settings={
                    "application_name": settings.app_name,
                    "timezone": "UTC",
                },
            ),
            timeout=POOL_CREATE_TIMEOUT,
        )
        logger.info(
            f"[DB] Pool ready: {settings.postgres_host}:{settings.postgres_port}/{settings.postgres_db} "
            f"(min={settings.db_pool_min_size}, max={settings.db_pool_max_size})"
        )
        return _pool
    except asyncio.TimeoutError:
        logger.error(f"[DB] Pool creation timed out after {POOL_CREATE_TIMEOUT:.0f}s")
        raise
    except (asyncpg.PostgresError, OSError) as e:
        logger.error(f"[DB] Failed to create pool: {e}")
        raise


async def close_pool():
    global _pool

    if _pool is not None:
        await _pool.close()
        logger.info("[DB] Pool closed")
        _pool = None


async def get_db_pool() -> asyncpg.Pool:
    """Dependency for getting database pool"""
    if _pool is None:
        await create_pool()
    return _pool


async def ping() -> bool:
    """Round-trip a trivial query; used by /health"""
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        return await conn.fetchval("SELECT 1") == 1
