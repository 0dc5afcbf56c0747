"""Shared fakes for the Signal MCP tests."""

from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from messaging.history import HistoryStore
from messaging.models import ChatResult, MessageResult, SendMessageResult
from providers.base import BaseProvider, ProviderConfig
from transport.engine import EngineClosedError, RouteResult
from transport.sink import SinkClosedError, format_sse_event

ACCOUNT = "+15550000000"


class FakeProvider(BaseProvider):
    """In-memory provider; ``inbox`` is drained by receive_messages."""

    def __init__(self, account: str = ACCOUNT):
        super().__init__(ProviderConfig(account=account))
        self.inbox: List[MessageResult] = []
        self.chats: List[ChatResult] = []
        self.sent: list = []
        self.receive_error: Optional[Exception] = None
        self.send_result: Optional[SendMessageResult] = None

    async def receive_messages(self, limit=None, since=None):
        if self.receive_error is not None:
            raise self.receive_error
        messages, self.inbox = self.inbox, []
        return messages

    async def list_chats(self):
        return list(self.chats)

    async def send_message(self, recipient, message, recipient_type=None):
        self.sent.append((recipient, message, recipient_type))
        if self.send_result is not None:
            return self.send_result
        return SendMessageResult(
            success=True, timestamp=1700000000000, message_id="1700000000000"
        )

    async def download_media(self, message_id, attachment_id):
        return {"path": f"/attachments/{attachment_id}"}


class RecordingSink:
    """EventSink that keeps every frame; can be told to fail writes."""

    def __init__(self, fail_headers: bool = False):
        self.status = None
        self.headers = {}
        self.frames: List[str] = []
        self.fail_writes = False
        self.fail_headers = fail_headers
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def set_headers(self, status, headers):
        if self.fail_headers:
            raise OSError("no stream available")
        self.status = status
        self.headers.update(headers)

    async def write(self, chunk):
        if self._closed:
            raise SinkClosedError("closed")
        if self.fail_writes:
            raise ConnectionResetError("peer went away")
        self.frames.append(chunk)

    async def close(self):
        self._closed = True


class FakeEngine:
    """Echoes each payload down the sink as a ``message`` event."""

    instances: List["FakeEngine"] = []

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.sink = None
        self.handled: List[bytes] = []
        self.closed = False
        self.started = False
        FakeEngine.instances.append(self)

    async def start(self, sink):
        self.started = True
        self.sink = sink

    async def handle(self, payload: bytes) -> RouteResult:
        if self.closed:
            raise EngineClosedError("closed")
        self.handled.append(payload)
        await self.sink.write(format_sse_event("message", payload.decode()))
        return RouteResult(202, "Accepted")

    async def aclose(self):
        self.closed = True


def make_message(
    sender: str = "+15551234567",
    timestamp: int = 1700000000000,
    body: Optional[str] = "hello",
    **kwargs,
) -> MessageResult:
    return MessageResult(sender=sender, timestamp=timestamp, body=body, **kwargs)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def history(tmp_path):
    store = HistoryStore(storage_path=str(tmp_path / "history.json"))
    yield store
    store.flush_pending_save()


@pytest.fixture(autouse=True)
def _reset_fake_engines():
    FakeEngine.instances.clear()
    yield
    FakeEngine.instances.clear()


@pytest.fixture
def mock_stdio_server():
    """Mock MCP stdio server."""
    with patch("mcp.server.stdio.stdio_server") as mock_stdio:
        mock_stdio.return_value.__aenter__ = AsyncMock(
            return_value=(MagicMock(), MagicMock())
        )
        mock_stdio.return_value.__aexit__ = AsyncMock(return_value=None)
        yield mock_stdio
