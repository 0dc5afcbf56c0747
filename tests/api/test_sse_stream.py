"""GET /sse over a real socket: uvicorn in a thread, httpx streaming client."""

import socket
import threading
import time

import httpx
import pytest
import uvicorn

from api.app import create_app
from config.settings import Settings
from conftest import ACCOUNT, FakeProvider
from messaging.history import HistoryStore


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


@pytest.fixture
def base_url(tmp_path):
    settings = Settings(
        signal_account=ACCOUNT,
        history_retention_days=100000,
        sse_ping_interval=0,
    )
    app = create_app(
        settings=settings,
        provider=FakeProvider(),
        history=HistoryStore(storage_path=str(tmp_path / "history.json")),
    )
    port = _free_port()
    server = uvicorn.Server(
        uvicorn.Config(app, host="127.0.0.1", port=port, log_level="warning")
    )
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    assert _wait_for(lambda: server.started), "server did not start"
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        server.should_exit = True
        thread.join(timeout=10)


def _session_count(client: httpx.Client) -> int:
    return client.get("/health").json()["sessions"]


def test_sse_stream_lifecycle(base_url):
    with httpx.Client(base_url=base_url, timeout=5) as client:
        with client.stream("GET", "/sse") as resp:
            assert resp.status_code == 200
            assert resp.headers["content-type"].startswith("text/event-stream")
            assert resp.headers["access-control-allow-origin"] == "*"

            lines = resp.iter_lines()
            assert next(lines) == "event: endpoint"
            data = next(lines)
            assert data.startswith("data: /message?sessionId=")
            endpoint = data[len("data: "):]

            assert _session_count(client) == 1
            accepted = client.post(
                endpoint,
                content=(
                    '{"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": '
                    '{"protocolVersion": "2024-11-05", "capabilities": {}, '
                    '"clientInfo": {"name": "pytest", "version": "0.0.1"}}}'
                ),
            )
            assert accepted.status_code == 202

            # Skip the blank separator line, then the pushed response
            assert next(lines) == ""
            assert next(lines) == "event: message"
            assert '"id":1' in next(lines)

        # Disconnect tears the session down
        assert _wait_for(lambda: _session_count(client) == 0)
        assert client.post(endpoint, content="{}").status_code == 404
