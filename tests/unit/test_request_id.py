"""Unit tests for Request ID middleware."""
import uuid

import pytest
import structlog
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from searchstream.core.request_id import RequestIDMiddleware, get_request_id


@pytest.fixture
def app():
    """Create a test FastAPI app with RequestIDMiddleware."""
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)

    @app.get("/echo")
    async def echo_endpoint(request: Request):
        context = structlog.contextvars.get_contextvars()
        return {"request_id": get_request_id(request), "log_request_id": context.get("request_id")}

    return app


@pytest.fixture
def client(app):
    """Create a test client."""
    return TestClient(app)


def test_request_id_auto_generation(client):
    """Request ID is a generated UUID when the client sends none."""
    response = client.get("/echo")
    assert response.status_code == 200

    request_id = response.headers["X-Request-ID"]
    uuid.UUID(request_id)
    assert response.json()["request_id"] == request_id


def test_request_id_from_client(client):
    """A client-provided request ID is reused."""
    client_request_id = "search-123"

    response = client.get("/echo", headers={"X-Request-ID": client_request_id})

    assert response.headers["X-Request-ID"] == client_request_id
    assert response.json()["request_id"] == client_request_id


def test_request_id_bound_into_log_context(client):
    """The request ID is available to structlog while the request runs."""
    response = client.get("/echo", headers={"X-Request-ID": "abc"})
    assert response.json()["log_request_id"] == "abc"


def test_each_request_gets_unique_id(client):
    """Two requests never share a generated ID."""
    assert client.get("/echo").headers["X-Request-ID"] != client.get("/echo").headers["X-Request-ID"]


def test_get_request_id_helper_with_missing_id():
    """get_request_id falls back to "unknown" outside the middleware."""
    app = FastAPI()

    @app.get("/bare")
    async def bare(request: Request):
        return {"request_id": get_request_id(request)}

    assert TestClient(app).get("/bare").json() == {"request_id": "unknown"}
