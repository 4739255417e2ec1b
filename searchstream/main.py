"""
Main FastAPI application
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from searchstream.api import health, metrics, search, search_ws
from searchstream.core.config import settings
from searchstream.core.database import AsyncSessionLocal, close_connections, redis_client
from searchstream.core.logging import configure_logging, get_logger
from searchstream.core.request_id import RequestIDMiddleware
from searchstream.services.query_builder import QueryBuilder
from searchstream.services.query_bus import InMemoryQueryBus, QueryBus, RedisQueryBus
from searchstream.services.search_gateway import PostgresSearchGateway
from searchstream.services.session_pipeline import PipelineConfig, SessionPipeline

# Configure structured logging
configure_logging()
logger = get_logger(__name__)


# Create rate limiter
limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    description="""
    SearchStream - real-time search-as-you-type gateway

    ## Features
    - WebSocket and Server-Sent Events result streams with per-session debounce
    - Cancellation of superseded lookups
    - PostgreSQL full-text prefix search with ranked, micro-batched results
    - One-shot NDJSON and paged search endpoints
    - Prometheus metrics, structured logging with request IDs
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Request IDs for log correlation
app.add_middleware(RequestIDMiddleware)

# CORS (comma-separated ALLOWED_ORIGINS)
allowed_origins = [origin.strip() for origin in settings.ALLOWED_ORIGINS.split(",")]

if settings.DEBUG:
    allowed_origins.append("*")  # Allow all in development

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(metrics.router)
app.include_router(search.router)
app.include_router(search_ws.router)


def create_query_bus() -> QueryBus:
    """Keystroke bus selected by QUERY_BUS_BACKEND."""
    if settings.QUERY_BUS_BACKEND == "memory":
        return InMemoryQueryBus()
    if settings.QUERY_BUS_BACKEND == "redis":
        return RedisQueryBus(redis_client)
    raise ValueError(f"Unknown QUERY_BUS_BACKEND: {settings.QUERY_BUS_BACKEND}")


@app.on_event("startup")
async def startup_event():
    """Application startup tasks"""
    logger.info(
        "application_startup",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        debug=settings.DEBUG,
        query_bus=settings.QUERY_BUS_BACKEND,
    )

    bus = create_query_bus()
    gateway = PostgresSearchGateway(AsyncSessionLocal, fts_config=settings.SEARCH_FTS_CONFIG)
    builder = QueryBuilder(default_limit=settings.SEARCH_MAX_RESULTS)

    app.state.query_bus = bus
    app.state.search_gateway = gateway
    app.state.query_builder = builder
    app.state.ws_pipeline = SessionPipeline(bus, gateway, builder, PipelineConfig.from_settings(settings, "ws"))
    app.state.sse_pipeline = SessionPipeline(bus, gateway, builder, PipelineConfig.from_settings(settings, "sse"))

    logger.info(
        "search_pipelines_initialized",
        ws_quiet_period_ms=settings.SEARCH_WS_QUIET_PERIOD_MS,
        sse_quiet_period_ms=settings.SEARCH_SSE_QUIET_PERIOD_MS,
        max_results=settings.SEARCH_MAX_RESULTS,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown tasks"""
    logger.info(
        "application_shutdown",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
    )

    for name in ("ws_pipeline", "sse_pipeline"):
        pipeline = getattr(app.state, name, None)
        if pipeline:
            await pipeline.shutdown()

    bus = getattr(app.state, "query_bus", None)
    if bus:
        await bus.close()

    await close_connections()


if __name__ == "__main__":
    uvicorn.run(
        "searchstream.main:app",
        host="0.0.0.0",  # nosec B104 - intentional for Docker container
        port=8000,
        reload=settings.DEBUG,
    )
