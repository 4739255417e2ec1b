"""
Resilience patterns: Retry Logic

Retry decorators with exponential backoff for transient failures on the
Redis keystroke bus and the PostgreSQL readiness probe.

Lookups on the search path are not retried; a failed lookup yields an
empty result for that settled term.

Usage:
    @retry_redis_operation()
    async def publish():
        ...
"""

import logging

import structlog
from redis.exceptions import RedisError
from sqlalchemy.exc import DatabaseError, OperationalError
from tenacity import after_log, before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = structlog.get_logger(__name__)


def retry_database_operation(max_attempts: int = 3):
    """
    Retry decorator for database operations
    Retries up to 3 times with exponential backoff
    """
    return retry(
        retry=retry_if_exception_type((OperationalError, DatabaseError, OSError)),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        reraise=True,
    )


def retry_redis_operation(max_attempts: int = 3):
    """
    Retry decorator for Redis operations

    Keystroke publishes sit on the typing path, so the backoff is short.
    """
    return retry(
        retry=retry_if_exception_type((RedisError, OSError)),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        reraise=True,
    )
