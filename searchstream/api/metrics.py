"""
Metrics API endpoint

Exposes Prometheus metrics for the search pipeline and its connection pools.
"""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from searchstream.core.database import get_db_pool_stats, get_redis_pool_stats
from searchstream.core.logging import get_logger
from searchstream.core.metrics import (
    db_pool_checked_out,
    db_pool_overflow,
    db_pool_size,
    redis_pool_in_use,
    redis_pool_max_connections,
)

router = APIRouter(prefix="/metrics", tags=["observability"])
logger = get_logger(__name__)


@router.get("", response_class=Response)
async def prometheus_metrics():
    """
    Expose Prometheus metrics in text format.

    Connection pool gauges are refreshed before the registry is rendered.
    """
    try:
        db_stats = get_db_pool_stats()
        db_pool_size.set(db_stats["size"])
        db_pool_checked_out.set(db_stats["checked_out"])
        db_pool_overflow.set(db_stats["overflow"])

        redis_stats = get_redis_pool_stats()
        redis_pool_max_connections.set(redis_stats["max_connections"])
        redis_pool_in_use.set(redis_stats["in_use_connections"])
    except Exception as e:
        # Pool stats are best effort; the registry is still rendered
        logger.debug("pool_stats_unavailable", error=str(e))

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
