"""
Search HTTP endpoints

- GET  /api/search            one-shot ranked search, NDJSON (one hit per line)
- GET  /api/search/page       paged search with total count (JSON envelope)
- POST /api/search/keystroke  publish a keystroke fragment for a session
- GET  /api/search/stream     Server-Sent Events: debounced results for a session

SSE wire format, one event per result batch:

    event: results
    data: [{"id": 7, "title": "...", "description": "...", "score": 0.61}]

Keystrokes posted to /keystroke reach every channel the session is attached
to, including a WebSocket opened on /ws/search with the same userId.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from searchstream.core.api_envelope import PaginationMetadata, error_response, success_response
from searchstream.core.config import settings
from searchstream.core.dependencies import get_query_builder, get_search_gateway, get_sse_pipeline
from searchstream.core.logging import get_logger
from searchstream.core.request_id import get_request_id
from searchstream.core.search_errors import InputError, TransientBackendError, require_session_id
from searchstream.services.query_builder import QueryBuilder
from searchstream.services.query_normalizer import normalize
from searchstream.services.result_batcher import encode_batch
from searchstream.services.search_gateway import SearchGateway
from searchstream.services.session_pipeline import SearchSession, SessionPipeline

router = APIRouter(prefix="/api/search", tags=["search"])
logger = get_logger(__name__)
limiter = Limiter(key_func=get_remote_address)

NDJSON_MEDIA_TYPE = "application/x-ndjson"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse_event(event: Dict[str, Any], event_id: Optional[int] = None) -> str:
    """Format an event dictionary as an SSE message.

    ``data`` is written verbatim when it is already a string (an encoded
    batch), and JSON-encoded otherwise.
    """
    event_type = event.get("event", "message")
    data = event.get("data", {})
    if not isinstance(data, str):
        data = json.dumps(data)

    if event_id is not None:
        return f"id: {event_id}\nevent: {event_type}\ndata: {data}\n\n"
    return f"event: {event_type}\ndata: {data}\n\n"


def _error(status_code: int, error: Exception, request: Request, code: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(
            code=code or getattr(error, "code", "SEARCH_ERROR"),
            message=str(error),
            request_id=get_request_id(request),
        ),
    )


@router.get("")
@limiter.limit("300/minute")
async def search_once(
    request: Request,
    q: Optional[str] = Query(None, description="Search term"),
    limit: Optional[int] = Query(None, ge=1, le=settings.SEARCH_PAGE_MAX_SIZE),
    gateway: SearchGateway = Depends(get_search_gateway),
    builder: QueryBuilder = Depends(get_query_builder),
):
    """One-shot ranked search streamed as newline-delimited JSON."""
    term = normalize(q)
    if not term:
        return StreamingResponse(iter(()), media_type=NDJSON_MEDIA_TYPE)

    search_request = builder.build(term, limit)
    try:
        hits = await gateway.execute(search_request)
    except TransientBackendError as e:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, e, request)

    lines = (hit.model_dump_json() + "\n" for hit in hits)
    return StreamingResponse(lines, media_type=NDJSON_MEDIA_TYPE)


@router.get("/page")
@limiter.limit("300/minute")
async def search_page(
    request: Request,
    q: Optional[str] = Query(None, description="Search term"),
    page: int = Query(0, ge=0, description="0-based page index"),
    size: int = Query(20, ge=1, le=settings.SEARCH_PAGE_MAX_SIZE),
    gateway: SearchGateway = Depends(get_search_gateway),
    builder: QueryBuilder = Depends(get_query_builder),
):
    """Paged ranked search with the total number of matches."""
    term = normalize(q)
    if not term:
        pagination = PaginationMetadata.for_page(page, size, 0)
        return success_response([], request_id=get_request_id(request), pagination=pagination, query=term)

    search_request = builder.build(term, size, offset=page * size)
    try:
        hits, total = await gateway.search_page(search_request)
    except TransientBackendError as e:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, e, request)

    pagination = PaginationMetadata.for_page(page, size, total)
    return success_response(
        [hit.model_dump() for hit in hits],
        request_id=get_request_id(request),
        pagination=pagination,
        query=term,
        mode=search_request.mode.value,
    )


@router.post("/keystroke", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit("1200/minute")
async def submit_keystroke(
    request: Request,
    user_id: Optional[str] = Query(None, alias="userId"),
    pipeline: SessionPipeline = Depends(get_sse_pipeline),
):
    """Publish one raw fragment (text/plain body) for a session."""
    try:
        require_session_id(user_id)
    except InputError as e:
        return _error(status.HTTP_400_BAD_REQUEST, e, request)

    body = await request.body()
    raw = body.decode("utf-8", errors="replace")
    accepted = pipeline.submit(user_id, raw)
    return {"accepted": accepted}


async def sse_result_events(pipeline: SessionPipeline, session: SearchSession) -> AsyncIterator[str]:
    """Yield one SSE ``results`` event per batch until the session ends."""
    session_id = session.session_id
    try:
        async for batch in pipeline.stream(session):
            yield format_sse_event({"event": "results", "data": encode_batch(batch)})
    finally:
        await asyncio.shield(pipeline.close(session_id, reason="disconnected", session=session))
        logger.info("search_sse_stream_ended", session_id=session_id, reason=session.engine.close_reason)


@router.get("/stream")
async def stream_results(
    request: Request,
    user_id: Optional[str] = Query(None, alias="userId"),
    pipeline: SessionPipeline = Depends(get_sse_pipeline),
):
    """Server-Sent Events stream of debounced search results for one session."""
    try:
        session = await pipeline.open(user_id)
    except InputError as e:
        return _error(status.HTTP_400_BAD_REQUEST, e, request)

    logger.info("search_sse_stream_started", session_id=user_id)
    return StreamingResponse(
        sse_result_events(pipeline, session),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
