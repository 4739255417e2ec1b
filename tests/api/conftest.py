"""Fixtures for API tests: an app wired to in-memory search components."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from searchstream.api import health, metrics, search, search_ws
from searchstream.core.request_id import RequestIDMiddleware
from searchstream.services.query_builder import QueryBuilder
from searchstream.services.query_bus import InMemoryQueryBus
from searchstream.services.session_pipeline import PipelineConfig, SessionPipeline

from tests.conftest import FakeGateway, make_hit


@pytest.fixture
def gateway():
    return FakeGateway(
        results={
            "tv": [make_hit(i, score=1.0 - i / 10, title=f"TV {i}") for i in range(1, 4)],
            "sam": [make_hit(9, score=0.8, title="Samsung Galaxy", description="phone")],
        }
    )


@pytest.fixture
def pipeline_config():
    """Overridable per test module."""
    return {"quiet_period_ms": 50, "max_emissions": 2000}


@pytest.fixture
def app(gateway, pipeline_config):
    """Create a test FastAPI app."""
    app = FastAPI()
    app.state.limiter = search.limiter
    app.add_middleware(RequestIDMiddleware)
    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(search.router)
    app.include_router(search_ws.router)

    bus = InMemoryQueryBus()
    builder = QueryBuilder(default_limit=20)
    app.state.query_bus = bus
    app.state.search_gateway = gateway
    app.state.query_builder = builder
    app.state.ws_pipeline = SessionPipeline(bus, gateway, builder, PipelineConfig(channel="ws", **pipeline_config))
    app.state.sse_pipeline = SessionPipeline(bus, gateway, builder, PipelineConfig(channel="sse", **pipeline_config))
    return app


@pytest.fixture
def client(app):
    """Create a test client sharing one event loop for all calls."""
    with TestClient(app) as client:
        yield client
