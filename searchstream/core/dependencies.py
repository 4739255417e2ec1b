"""
FastAPI dependencies for the search components.

The components are created once at startup and stored on ``app.state``;
these accessors work for both HTTP requests and WebSocket connections.
"""

from fastapi import HTTPException, status
from starlette.requests import HTTPConnection

from searchstream.services.query_builder import QueryBuilder
from searchstream.services.search_gateway import SearchGateway
from searchstream.services.session_pipeline import SessionPipeline


def _component(connection: HTTPConnection, name: str):
    component = getattr(connection.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} is not initialized",
        )
    return component


def get_search_gateway(connection: HTTPConnection) -> SearchGateway:
    return _component(connection, "search_gateway")


def get_query_builder(connection: HTTPConnection) -> QueryBuilder:
    return _component(connection, "query_builder")


def get_sse_pipeline(connection: HTTPConnection) -> SessionPipeline:
    return _component(connection, "sse_pipeline")
