"""
Session Transport Router

Multiplexes many logical MCP connections over Server-Sent Events. Each
``GET /sse`` opens a session with its own protocol engine; follow-up
``POST /message?sessionId=...`` requests are routed to that engine, which
pushes its responses back down the session's stream.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Set

from loguru import logger

from .engine import (
    ERROR_MISSING_SESSION_ID,
    EngineClosedError,
    EngineFactory,
    ProtocolEngine,
    RouteResult,
    not_found,
)
from .sink import (
    KEEPALIVE_FRAME,
    SSE_HEADERS,
    EventSink,
    SinkClosedError,
    format_sse_event,
)

_MAX_ID_ATTEMPTS = 8


class SessionState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class _GuardedSink:
    """Sink wrapper that tears the session down on the first failed write."""

    def __init__(self, inner: EventSink, on_failure: Callable[[], None]):
        self._inner = inner
        self._on_failure = on_failure

    @property
    def closed(self) -> bool:
        return self._inner.closed

    async def set_headers(self, status: int, headers: Mapping[str, str]) -> None:
        await self._inner.set_headers(status, headers)

    async def write(self, chunk: str) -> None:
        try:
            await self._inner.write(chunk)
        except Exception as e:
            self._on_failure()
            if isinstance(e, SinkClosedError):
                raise
            raise SinkClosedError(f"write failed: {type(e).__name__}: {e}") from e

    async def close(self) -> None:
        await self._inner.close()


@dataclass
class Session:
    """One open stream and the engine serving it. Owned by the router."""

    id: str
    sink: EventSink
    engine: ProtocolEngine
    state: SessionState = SessionState.OPEN
    created_at: float = field(default_factory=time.time)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    keepalive_task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN


class SessionRouter:
    """
    Owns the live session table.

    The table is private to the router instance and guarded by an
    asyncio lock; nothing else mutates session state. Session ids are never
    reused, so a closed id answers exactly like one that was never issued.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        *,
        endpoint: str = "/message",
        keepalive_interval: Optional[float] = 15.0,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        self._engine_factory = engine_factory
        self._endpoint = endpoint
        self._keepalive_interval = keepalive_interval
        self._id_factory = id_factory
        self._sessions: Dict[str, Session] = {}
        self._issued: Set[str] = set()
        self._lock = asyncio.Lock()
        self._background: Set[asyncio.Task] = set()

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def endpoint_for(self, session_id: str) -> str:
        return f"{self._endpoint}?sessionId={session_id}"

    def _allocate_id(self) -> str:
        """Caller must hold self._lock."""
        for _ in range(_MAX_ID_ATTEMPTS):
            session_id = self._id_factory()
            if session_id and session_id not in self._issued:
                self._issued.add(session_id)
                return session_id
        raise RuntimeError("Could not allocate a unique session id")

    # ==================== Lifecycle ====================

    async def open_session(self, sink: EventSink) -> Session:
        """
        Open a session on a fresh outbound sink.

        The endpoint event is the first frame written, so the caller learns
        where to post before any other traffic. The session only becomes
        visible in the table once its engine is running; on any failure
        nothing is registered and the error propagates.
        """
        async with self._lock:
            session_id = self._allocate_id()

        guarded = _GuardedSink(sink, lambda: self._schedule_close(session_id))
        engine = self._engine_factory(session_id)
        try:
            await guarded.set_headers(200, SSE_HEADERS)
            await guarded.write(
                format_sse_event("endpoint", self.endpoint_for(session_id))
            )
            await engine.start(guarded)
        except BaseException:
            await self._release(session_id, engine, sink)
            raise

        session = Session(id=session_id, sink=guarded, engine=engine)
        async with self._lock:
            self._sessions[session_id] = session
        if self._keepalive_interval:
            session.keepalive_task = asyncio.create_task(self._keepalive(session))

        logger.info(
            f"SESSION_OPEN: id={session_id} live={len(self._sessions)}"
        )
        return session

    async def close_session(self, session_id: Optional[str]) -> bool:
        """
        Tear a session down. Idempotent; unknown ids are a no-op.

        Returns True if this call closed the session.
        """
        if not session_id:
            return False
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            session.state = SessionState.CLOSING

        task = session.keepalive_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        await self._release(session_id, session.engine, session.sink)
        session.state = SessionState.CLOSED

        logger.info(
            f"SESSION_CLOSE: id={session_id} "
            f"age={time.time() - session.created_at:.1f}s live={len(self._sessions)}"
        )
        return True

    async def close_all(self) -> int:
        """Close every live session (server shutdown)."""
        closed = 0
        for session_id in list(self._sessions):
            if await self.close_session(session_id):
                closed += 1
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        return closed

    async def _release(
        self, session_id: str, engine: ProtocolEngine, sink: EventSink
    ) -> None:
        try:
            await engine.aclose()
        except Exception as e:
            logger.warning(f"SESSION_CLOSE: engine close failed for {session_id}: {e}")
        try:
            await sink.close()
        except Exception as e:
            logger.warning(f"SESSION_CLOSE: sink close failed for {session_id}: {e}")

    def _schedule_close(self, session_id: str) -> None:
        """Close from a separate task; the failing writer may be an engine task."""
        if session_id not in self._sessions:
            return
        logger.info(f"SESSION_WRITE_FAILED: id={session_id}")
        task = asyncio.create_task(self.close_session(session_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _keepalive(self, session: Session) -> None:
        try:
            while session.is_open:
                await asyncio.sleep(self._keepalive_interval)
                if not session.is_open:
                    return
                await session.sink.write(KEEPALIVE_FRAME)
        except SinkClosedError:
            return

    # ==================== Routing ====================

    async def route_request(
        self, session_id: Optional[str], payload: bytes
    ) -> RouteResult:
        """
        Hand a follow-up payload to its session's engine.

        Returns 400 when no session id was supplied and 404 when the id is
        unknown, malformed or closed; otherwise whatever the engine answers.
        Payloads for one session reach its engine in arrival order.
        """
        if not session_id:
            return RouteResult.error(
                400, ERROR_MISSING_SESSION_ID, "sessionId query parameter is required"
            )

        session = self._sessions.get(session_id)
        if session is None or not session.is_open:
            logger.debug(f"ROUTE: unknown session {session_id[:64]!r}")
            return not_found()

        async with session.lock:
            if not session.is_open:
                return not_found()
            try:
                return await session.engine.handle(payload)
            except (EngineClosedError, SinkClosedError):
                logger.info(f"ROUTE: session {session_id} closed while handling request")
                await self.close_session(session_id)
                return not_found()
