"""
Database connection and session management

Provides:
- Async PostgreSQL engine and session factory with pooling
- Async Redis client backing the keystroke bus
- Readiness probes and connection pool monitoring utilities
"""

import redis.asyncio as redis
import structlog
from searchstream.core.config import settings
from searchstream.core.resilience import retry_database_operation, retry_redis_operation
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = structlog.get_logger(__name__)

Base = declarative_base()

# PostgreSQL (asyncpg) - shared read-only by every search session
async_engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    echo_pool=settings.DEBUG,
)

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


@retry_database_operation()
async def _ping_postgres() -> None:
    async with async_engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def check_postgres_connection() -> bool:
    """Check if PostgreSQL is accessible (with retry)"""
    try:
        await _ping_postgres()
        return True
    except Exception as e:
        logger.warning("postgres_check_failed", error=str(e))
        return False


# Redis - pooled async client, decoded to str for pub/sub payloads
redis_pool = redis.ConnectionPool.from_url(
    settings.REDIS_URL,
    max_connections=settings.REDIS_MAX_CONNECTIONS,
    socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
    socket_keepalive=True,
    health_check_interval=settings.REDIS_HEALTH_CHECK_INTERVAL,
    decode_responses=True,
)

redis_client = redis.Redis(connection_pool=redis_pool)


@retry_redis_operation()
async def _ping_redis() -> None:
    await redis_client.ping()


async def check_redis_connection() -> bool:
    """Check if Redis is accessible (with retry)"""
    try:
        await _ping_redis()
        return True
    except Exception as e:
        logger.warning("redis_check_failed", error=str(e))
        return False


async def close_connections() -> None:
    """Dispose the engine pool and close the Redis pool (call during app shutdown)."""
    await async_engine.dispose()
    await redis_client.aclose()
    await redis_pool.disconnect()


# Connection Pool Monitoring Functions
def get_db_pool_stats() -> dict:
    """Get PostgreSQL connection pool statistics"""
    pool = async_engine.pool
    return {
        "size": pool.size(),
        "checked_in": pool.checkedin(),
        "checked_out": pool.checkedout(),
        "overflow": pool.overflow(),
    }


def get_redis_pool_stats() -> dict:
    """Get Redis connection pool statistics"""
    return {
        "max_connections": redis_pool.max_connections,
        "in_use_connections": (
            len(redis_pool._in_use_connections) if hasattr(redis_pool, "_in_use_connections") else 0
        ),
        "created_connections": (redis_pool._created_connections if hasattr(redis_pool, "_created_connections") else 0),
    }
