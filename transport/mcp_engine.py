"""MCP protocol engine: one low-level ``mcp`` server run per session.

Inbound JSON-RPC messages are fed to the server through an anyio memory
stream; everything the server emits is framed as an SSE ``message`` event
and written to the session's sink.
"""

import asyncio
from typing import Any, List, Optional

import anyio
from loguru import logger
from mcp import types
from mcp.server.lowlevel import Server
from mcp.shared.message import SessionMessage
from pydantic import ValidationError

from tools.registry import ToolRegistry, ToolSpec

from .engine import ERROR_INVALID_PAYLOAD, EngineClosedError, RouteResult
from .sink import EventSink, SinkClosedError, format_sse_event

SERVER_NAME = "signal-mcp"
SERVER_VERSION = "1.0.0"


class ToolCallFailed(Exception):
    """Raised inside the MCP handler so the SDK marks the result as an error.

    The message is the JSON error payload, which becomes the text content.
    """


def to_mcp_tool(spec: ToolSpec) -> types.Tool:
    return types.Tool(
        name=spec.name,
        description=spec.description,
        inputSchema=spec.input_schema,
        annotations=types.ToolAnnotations(
            readOnlyHint=spec.auto_approve,
            destructiveHint=not spec.auto_approve,
            openWorldHint=not spec.auto_approve,
        ),
    )


def build_mcp_server(registry: ToolRegistry) -> Server:
    """Create the MCP server definition shared by every session."""
    server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [to_mcp_tool(spec) for spec in registry.list_tools()]

    # Arguments are validated by the registry so failures keep one shape
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Optional[dict]) -> List[types.TextContent]:
        result = await registry.call(name, arguments)
        if result.is_error:
            raise ToolCallFailed(result.to_text())
        return [types.TextContent(type="text", text=result.to_text())]

    return server


class McpEngine:
    """Runs ``server`` for a single session."""

    def __init__(self, server: Server, session_id: str = ""):
        self._server = server
        self._session_id = session_id
        self._read_writer: Any = None
        self._tasks: List[asyncio.Task] = []
        self._closed = False

    async def start(self, sink: EventSink) -> None:
        if self._closed:
            raise EngineClosedError("engine already closed")
        read_writer, read_reader = anyio.create_memory_object_stream(0)
        write_writer, write_reader = anyio.create_memory_object_stream(0)
        self._read_writer = read_writer
        self._tasks = [
            asyncio.create_task(self._run_server(read_reader, write_writer)),
            asyncio.create_task(self._pump(write_reader, sink)),
        ]

    async def _run_server(self, read_reader: Any, write_writer: Any) -> None:
        try:
            await self._server.run(
                read_reader,
                write_writer,
                self._server.create_initialization_options(),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"MCP_ENGINE: server loop for {self._session_id} failed: {e}")

    async def _pump(self, write_reader: Any, sink: EventSink) -> None:
        async with write_reader:
            async for session_message in write_reader:
                data = session_message.message.model_dump_json(
                    by_alias=True, exclude_none=True
                )
                try:
                    await sink.write(format_sse_event("message", data))
                except SinkClosedError:
                    logger.debug(
                        f"MCP_ENGINE: dropping output for closed session {self._session_id}"
                    )
                    return

    async def handle(self, payload: bytes) -> RouteResult:
        if self._closed or self._read_writer is None:
            raise EngineClosedError("engine is not running")
        try:
            message = types.JSONRPCMessage.model_validate_json(payload)
        except ValidationError as e:
            logger.info(f"MCP_ENGINE: unparsable message for {self._session_id}: {e}")
            return RouteResult.error(400, ERROR_INVALID_PAYLOAD, "Could not parse message")

        try:
            await self._read_writer.send(SessionMessage(message))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            raise EngineClosedError("engine input stream closed") from e
        return RouteResult(202, "Accepted")

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._read_writer is not None:
            await self._read_writer.aclose()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []


def mcp_engine_factory(registry: ToolRegistry):
    """Engine factory for SessionRouter: fresh engine per session, shared tools."""
    server = build_mcp_server(registry)

    def factory(session_id: str) -> McpEngine:
        return McpEngine(server, session_id)

    return factory


async def serve_stdio(registry: ToolRegistry) -> None:
    """Serve one client over stdin/stdout until it closes its end."""
    from mcp.server import stdio

    server = build_mcp_server(registry)
    async with stdio.stdio_server() as (read_stream, write_stream):
        logger.info("MCP_STDIO: serving on stdin/stdout")
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )
