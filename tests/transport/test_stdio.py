"""Tests for serve_stdio with the MCP stdio transport replaced by memory streams."""

import asyncio
import json
from contextlib import asynccontextmanager
from unittest.mock import patch

import anyio
import pytest
from mcp import types
from mcp.shared.message import SessionMessage

from tools.signal_tools import build_registry
from transport.mcp_engine import serve_stdio


@pytest.mark.asyncio
async def test_serve_stdio_answers_initialize_and_tool_calls(fake_provider, history):
    client_send, server_read = anyio.create_memory_object_stream(10)
    server_write, client_recv = anyio.create_memory_object_stream(10)

    @asynccontextmanager
    async def fake_stdio_server():
        yield server_read, server_write

    async def request(request_id, method, params=None):
        msg = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            msg["params"] = params
        await client_send.send(
            SessionMessage(types.JSONRPCMessage.model_validate(msg))
        )
        reply = await asyncio.wait_for(client_recv.receive(), timeout=5)
        return reply.message.model_dump(by_alias=True, exclude_none=True)

    with patch("mcp.server.stdio.stdio_server", fake_stdio_server):
        task = asyncio.create_task(serve_stdio(build_registry(fake_provider, history)))
        try:
            init = await request(
                1,
                "initialize",
                {
                    "protocolVersion": "2024-11-05",
                    "capabilities": {},
                    "clientInfo": {"name": "pytest", "version": "0.0.1"},
                },
            )
            assert init["result"]["serverInfo"]["name"] == "signal-mcp"

            await client_send.send(
                SessionMessage(
                    types.JSONRPCMessage.model_validate(
                        {"jsonrpc": "2.0", "method": "notifications/initialized"}
                    )
                )
            )

            called = await request(
                2,
                "tools/call",
                {
                    "name": "send_message",
                    "arguments": {"recipient": "+15551234567", "message": "hi"},
                },
            )
            payload = json.loads(called["result"]["content"][0]["text"])
            assert payload["success"] is True
            assert fake_provider.sent == [("+15551234567", "hi", "individual")]
        finally:
            await client_send.aclose()
            await asyncio.wait_for(task, timeout=5)


@pytest.mark.asyncio
async def test_serve_stdio_uses_stdio_transport(mock_stdio_server, fake_provider, history):
    with patch("mcp.server.lowlevel.Server.run") as run:
        await serve_stdio(build_registry(fake_provider, history))

    mock_stdio_server.assert_called_once()
    run.assert_awaited_once()
