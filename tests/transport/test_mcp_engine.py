"""Tests for transport/mcp_engine.py against the real MCP server loop."""

import asyncio
import json

import pytest

from tools.signal_tools import build_registry
from transport.engine import ERROR_INVALID_PAYLOAD, EngineClosedError
from transport.mcp_engine import McpEngine, build_mcp_server, to_mcp_tool
from transport.router import SessionRouter
from transport.sink import QueueSink


def _request(request_id, method, params=None):
    msg = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        msg["params"] = params
    return json.dumps(msg).encode()


INITIALIZE = _request(
    1,
    "initialize",
    {
        "protocolVersion": "2024-11-05",
        "capabilities": {},
        "clientInfo": {"name": "pytest", "version": "0.0.1"},
    },
)
INITIALIZED = json.dumps(
    {"jsonrpc": "2.0", "method": "notifications/initialized"}
).encode()


async def _next_message(stream) -> dict:
    frame = await asyncio.wait_for(stream.__anext__(), timeout=5)
    assert frame.startswith("event: message\n")
    data = "".join(
        line[len("data: "):] for line in frame.splitlines() if line.startswith("data: ")
    )
    return json.loads(data)


@pytest.fixture
def registry(fake_provider, history):
    return build_registry(fake_provider, history)


def test_send_message_is_not_advertised_read_only(registry):
    tools = {spec.name: to_mcp_tool(spec) for spec in registry.list_tools()}
    assert tools["send_message"].annotations.readOnlyHint is False
    assert tools["get_messages"].annotations.readOnlyHint is True
    assert tools["search_messages"].inputSchema["required"] == ["query"]


@pytest.mark.asyncio
async def test_unparsable_payload_is_rejected(registry):
    engine = McpEngine(build_mcp_server(registry), "s1")
    await engine.start(QueueSink())
    try:
        result = await engine.handle(b"not json at all")
        assert result.status == 400
        assert result.body["code"] == ERROR_INVALID_PAYLOAD
    finally:
        await engine.aclose()


@pytest.mark.asyncio
async def test_closed_engine_refuses_messages(registry):
    engine = McpEngine(build_mcp_server(registry), "s1")
    await engine.start(QueueSink())
    await engine.aclose()
    await engine.aclose()
    with pytest.raises(EngineClosedError):
        await engine.handle(INITIALIZE)


@pytest.mark.asyncio
async def test_initialize_and_tool_calls_over_stream(registry):
    engine = McpEngine(build_mcp_server(registry), "s1")
    sink = QueueSink()
    await engine.start(sink)
    stream = sink.stream()
    try:
        accepted = await engine.handle(INITIALIZE)
        assert accepted.status == 202
        init = await _next_message(stream)
        assert init["id"] == 1
        assert init["result"]["serverInfo"]["name"] == "signal-mcp"

        await engine.handle(INITIALIZED)

        await engine.handle(_request(2, "tools/list"))
        listed = await _next_message(stream)
        names = {tool["name"] for tool in listed["result"]["tools"]}
        assert {"get_messages", "send_message", "download_media"} <= names

        await engine.handle(
            _request(
                3,
                "tools/call",
                {"name": "download_media", "arguments": {"messageId": "1"}},
            )
        )
        failed = await _next_message(stream)
        assert failed["id"] == 3
        assert failed["result"]["isError"] is True
        payload = json.loads(failed["result"]["content"][0]["text"])
        assert payload["success"] is False
        assert "attachmentId" in payload["error"]

        await engine.handle(
            _request(4, "tools/call", {"name": "get_recent_chats", "arguments": {}})
        )
        ok = await _next_message(stream)
        assert ok["result"].get("isError") in (None, False)
        assert json.loads(ok["result"]["content"][0]["text"]) == []
    finally:
        await engine.aclose()


@pytest.mark.asyncio
async def test_router_with_mcp_engine_pushes_response_to_session_stream(registry):
    from transport.mcp_engine import mcp_engine_factory

    router = SessionRouter(mcp_engine_factory(registry), keepalive_interval=None)
    sink = QueueSink()
    session = await router.open_session(sink)
    stream = sink.stream()
    try:
        endpoint = await asyncio.wait_for(stream.__anext__(), timeout=5)
        assert endpoint == f"event: endpoint\ndata: /message?sessionId={session.id}\n\n"

        result = await router.route_request(session.id, INITIALIZE)
        assert result.status == 202
        init = await _next_message(stream)
        assert init["id"] == 1
    finally:
        await router.close_all()
