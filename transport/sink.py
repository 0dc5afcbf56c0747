"""Outbound event sinks.

The router writes to an ``EventSink`` and never to a web framework
directly. ``QueueSink`` is the in-process implementation that an HTTP
streaming response drains.
"""

import asyncio
from typing import AsyncIterator, Dict, Mapping, Optional, Protocol, runtime_checkable

SSE_HEADERS: Dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

KEEPALIVE_FRAME = ": ping\n\n"


class SinkClosedError(Exception):
    """Write attempted on a sink that is closed or broken."""


@runtime_checkable
class EventSink(Protocol):
    """A writable, long-lived channel back to one caller."""

    @property
    def closed(self) -> bool: ...

    async def set_headers(self, status: int, headers: Mapping[str, str]) -> None: ...

    async def write(self, chunk: str) -> None: ...

    async def close(self) -> None: ...


def format_sse_event(event: str, data: str) -> str:
    """Format one Server-Sent Events frame; multi-line data gets one data: per line."""
    lines = data.split("\n") if data else [""]
    payload = "".join(f"data: {line}\n" for line in lines)
    return f"event: {event}\n{payload}\n"


class QueueSink:
    """Buffering sink drained by ``stream()``.

    ``close()`` lets already-buffered frames drain, then ends the stream.
    """

    def __init__(self, max_buffered: int = 1000):
        self.status: int = 200
        self.headers: Dict[str, str] = {}
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=max_buffered)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def set_headers(self, status: int, headers: Mapping[str, str]) -> None:
        self.status = status
        self.headers.update(headers)

    async def write(self, chunk: str) -> None:
        if self._closed:
            raise SinkClosedError("sink is closed")
        await self._queue.put(chunk)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Consumer notices the closed flag once it drains the buffer
            pass

    async def stream(self) -> AsyncIterator[str]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk
            if self._closed and self._queue.empty():
                return
