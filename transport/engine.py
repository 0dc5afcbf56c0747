"""Protocol engine interface used by the session router."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Protocol

from .sink import EventSink

ERROR_MISSING_SESSION_ID = "missing_session_id"
ERROR_SESSION_NOT_FOUND = "session_not_found"
ERROR_INVALID_PAYLOAD = "invalid_payload"


class EngineClosedError(Exception):
    """The engine can no longer accept messages."""


@dataclass(frozen=True)
class RouteResult:
    """HTTP-equivalent answer to a follow-up request.

    ``body`` is either plain text or a JSON-serializable dict.
    """

    status: int
    body: Any = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_json(self) -> bool:
        return isinstance(self.body, dict)

    @classmethod
    def error(cls, status: int, code: str, message: str) -> "RouteResult":
        return cls(status, {"error": message, "code": code})


class ProtocolEngine(Protocol):
    """Per-session protocol implementation, independent of the transport."""

    async def start(self, sink: EventSink) -> None:
        """Begin pushing protocol traffic to ``sink``."""
        ...

    async def handle(self, payload: bytes) -> RouteResult:
        """Accept one inbound message.

        Raises:
            EngineClosedError: the engine has shut down
        """
        ...

    async def aclose(self) -> None:
        """Stop processing and release resources. Must be idempotent."""
        ...


# Called with the new session id
EngineFactory = Callable[[str], ProtocolEngine]


def not_found() -> RouteResult:
    return RouteResult.error(404, ERROR_SESSION_NOT_FOUND, "Could not find session")
