"""Session-addressed SSE transport."""

from .engine import (
    ERROR_INVALID_PAYLOAD,
    ERROR_MISSING_SESSION_ID,
    ERROR_SESSION_NOT_FOUND,
    EngineClosedError,
    ProtocolEngine,
    RouteResult,
)
from .router import Session, SessionRouter, SessionState
from .sink import EventSink, QueueSink, SinkClosedError, format_sse_event

__all__ = [
    "ERROR_INVALID_PAYLOAD",
    "ERROR_MISSING_SESSION_ID",
    "ERROR_SESSION_NOT_FOUND",
    "EngineClosedError",
    "EventSink",
    "ProtocolEngine",
    "QueueSink",
    "RouteResult",
    "Session",
    "SessionRouter",
    "SessionState",
    "SinkClosedError",
    "format_sse_event",
]
