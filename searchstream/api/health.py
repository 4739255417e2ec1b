"""
Health check endpoints
"""

import time
from typing import Dict

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.util import get_remote_address

from searchstream.core.config import settings
from searchstream.core.database import check_postgres_connection, check_redis_connection
from searchstream.core.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)
limiter = Limiter(key_func=get_remote_address)


class HealthResponse(BaseModel):
    """Health check response model"""

    status: str
    version: str
    timestamp: float


class ReadinessResponse(BaseModel):
    """Readiness check response model"""

    status: str
    checks: Dict[str, bool]
    timestamp: float


@router.get("/health", response_model=HealthResponse)
@limiter.limit("100/minute")
async def health_check(request: Request):
    """
    Basic health check endpoint
    Returns 200 if the service is running

    Rate limit: 100 requests per minute
    """
    logger.debug("health_check_requested")
    return HealthResponse(
        status="healthy",
        version=settings.APP_VERSION,
        timestamp=time.time(),
    )


@router.get("/ready", response_class=JSONResponse)
@limiter.limit("100/minute")
async def readiness_check(request: Request):
    """
    Readiness check endpoint
    Verifies connectivity to PostgreSQL (search backend) and, when it carries
    the keystroke bus, Redis. Returns 200 if all are reachable, 503 otherwise.

    Rate limit: 100 requests per minute
    """
    logger.debug("readiness_check_requested")

    checks = {"postgres": await check_postgres_connection()}
    if settings.QUERY_BUS_BACKEND == "redis":
        checks["redis"] = await check_redis_connection()

    all_ready = all(checks.values())
    response_status = status.HTTP_200_OK if all_ready else status.HTTP_503_SERVICE_UNAVAILABLE

    if not all_ready:
        logger.warning("readiness_check_failed", checks=checks)
    else:
        logger.debug("readiness_check_passed")

    return JSONResponse(
        status_code=response_status,
        content=ReadinessResponse(
            status="ready" if all_ready else "not_ready",
            checks=checks,
            timestamp=time.time(),
        ).model_dump(),
    )
