"""
Search WebSocket endpoint

    WS /ws/search?userId=<id>

Client -> server: text frames, each a raw keystroke fragment.
Server -> client: text frames, each a JSON array of ranked hits (one result
batch per frame).

Close codes:
- 1008 (policy violation): userId missing or blank, sent before accepting
- 1000 (normal): the session reached its emission cap
- 1011 (internal error): the session could not be opened (bus unavailable)

Inbound and outbound run as two independent tasks; a failure in one is logged
and never stops the other.
"""

import asyncio

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from starlette.websockets import WebSocketState

from searchstream.core.logging import get_logger
from searchstream.core.search_errors import InputError, require_session_id
from searchstream.services.result_batcher import encode_batch
from searchstream.services.session_pipeline import SearchSession, SessionPipeline

router = APIRouter()
logger = get_logger(__name__)


def is_websocket_connected(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


async def safe_send_text(websocket: WebSocket, text: str) -> bool:
    """Send a text frame, returning False if the socket is already closed."""
    if not is_websocket_connected(websocket):
        return False
    try:
        await websocket.send_text(text)
        return True
    except (RuntimeError, WebSocketDisconnect) as e:
        logger.debug("search_ws_send_skipped", error=str(e))
        return False


async def _receive_fragments(websocket: WebSocket, pipeline: SessionPipeline, session_id: str) -> bool:
    """Forward inbound frames to the bus. Returns True when the client disconnected."""
    try:
        while True:
            raw = await websocket.receive_text()
            pipeline.submit(session_id, raw)
    except WebSocketDisconnect:
        logger.info("search_ws_client_disconnected", session_id=session_id)
        return True
    except Exception as e:
        logger.warning("search_ws_inbound_failed", session_id=session_id, error=str(e))
        return False


async def _send_results(websocket: WebSocket, pipeline: SessionPipeline, session: SearchSession) -> None:
    try:
        async for batch in pipeline.stream(session):
            if not await safe_send_text(websocket, encode_batch(batch)):
                break
    except Exception as e:
        logger.warning("search_ws_outbound_failed", session_id=session.session_id, error=str(e))


@router.websocket("/ws/search")
async def search_websocket(websocket: WebSocket, user_id: str = Query(None, alias="userId")):
    """Bidirectional search-as-you-type session."""
    pipeline: SessionPipeline = websocket.app.state.ws_pipeline
    try:
        session_id = require_session_id(user_id)
    except InputError as e:
        logger.info("search_ws_rejected", code=e.code)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    try:
        session = await pipeline.open(session_id)
    except Exception as e:
        logger.error(
            "search_ws_open_failed",
            session_id=session_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    inbound = asyncio.create_task(_receive_fragments(websocket, pipeline, session_id))
    outbound = asyncio.create_task(_send_results(websocket, pipeline, session))
    try:
        # Outbound ends when the session closes; inbound ends on disconnect
        await asyncio.wait({inbound, outbound}, return_when=asyncio.FIRST_COMPLETED)
        if inbound.done() and not inbound.result():
            await outbound
        elif outbound.done() and not inbound.done():
            if session.engine.closed and is_websocket_connected(websocket):
                inbound.cancel()
                await websocket.close(code=status.WS_1000_NORMAL_CLOSURE)
            else:
                await inbound
    finally:
        for task in (inbound, outbound):
            if not task.done():
                task.cancel()
        await asyncio.gather(inbound, outbound, return_exceptions=True)
        await pipeline.close(session_id, reason="disconnected", session=session)
        logger.info("search_ws_session_ended", session_id=session_id, reason=session.engine.close_reason)
