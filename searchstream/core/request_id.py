"""
Request ID middleware for correlating HTTP search calls in the logs.
"""
import uuid
from typing import Callable

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to every HTTP request.

    The ID is taken from the X-Request-ID header when the client sends one and
    generated otherwise. It is stored on request.state, bound into the
    structlog context for the duration of the request, and echoed back in the
    X-Request-ID response header.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response


def get_request_id(request: Request) -> str:
    """Return the request ID for the current request, or "unknown" outside the middleware."""
    return getattr(request.state, "request_id", "unknown")
