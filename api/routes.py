"""FastAPI route handlers."""

import asyncio

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from loguru import logger

from messaging.history import HistoryStore
from transport.engine import RouteResult
from transport.router import SessionRouter
from transport.sink import QueueSink

from .dependencies import get_history, get_session_router

router = APIRouter()


def _to_response(result: RouteResult) -> Response:
    if result.is_json:
        return JSONResponse(
            status_code=result.status, content=result.body, headers=result.headers
        )
    return PlainTextResponse(
        status_code=result.status, content=str(result.body), headers=result.headers
    )


# =============================================================================
# Routes
# =============================================================================


@router.get("/sse")
async def open_stream(
    request: Request,
    sessions: SessionRouter = Depends(get_session_router),
):
    """Open an SSE stream; the first event tells the client where to post."""
    sink = QueueSink()
    session = await sessions.open_session(sink)
    client = request.client.host if request.client else "unknown"
    logger.info(f"SSE_CONNECT: session={session.id} client={client}")

    async def event_stream():
        try:
            async for chunk in sink.stream():
                yield chunk
        finally:
            # Runs on client disconnect as well as on server-side close; the
            # stream task may already be cancelled, so close from its own task
            await asyncio.shield(sessions.close_session(session.id))

    return StreamingResponse(
        event_stream(),
        status_code=sink.status,
        media_type="text/event-stream",
        headers={k: v for k, v in sink.headers.items() if k != "Content-Type"},
    )


@router.post("/message")
async def post_message(
    request: Request,
    sessions: SessionRouter = Depends(get_session_router),
):
    """Route a JSON-RPC message to the session named by ``sessionId``."""
    session_id = request.query_params.get("sessionId")
    payload = await request.body()
    result = await sessions.route_request(session_id, payload)
    if result.status >= 400:
        logger.info(
            f"MESSAGE_REJECTED: status={result.status} body={result.body}"
        )
    return _to_response(result)


@router.get("/health")
async def health(
    sessions: SessionRouter = Depends(get_session_router),
    history: HistoryStore = Depends(get_history),
):
    """Health check endpoint."""
    return {
        "status": "ok",
        "sessions": sessions.session_count,
        "messages": len(history),
    }
