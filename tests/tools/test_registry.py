"""Tests for tools/registry.py."""

import pytest
from pydantic import BaseModel

from tools.registry import ToolRegistry, ToolResult, ToolSpec, to_jsonable
from tools.schemas import GetMessagesArgs, SendMessageArgs


class _Echo(BaseModel):
    text: str


async def _echo(args):
    return {"echo": args.text}


async def _explode(args):
    raise RuntimeError("backend unavailable")


async def _soft_fail(args):
    return {"success": False, "error": "nope"}


@pytest.fixture
def registry():
    reg = ToolRegistry()
    reg.register(ToolSpec("echo", "Echo text back", _Echo, _echo))
    reg.register(ToolSpec("explode", "Always fails", _Echo, _explode))
    reg.register(ToolSpec("soft_fail", "Reports failure", _Echo, _soft_fail))
    return reg


def test_duplicate_registration_rejected(registry):
    with pytest.raises(ValueError):
        registry.register(ToolSpec("echo", "again", _Echo, _echo))


def test_input_schema_uses_wire_names():
    spec = ToolSpec("send_message", "Send", SendMessageArgs, _echo, auto_approve=False)
    schema = spec.input_schema
    assert schema["type"] == "object"
    assert "recipientType" in schema["properties"]
    assert set(schema["required"]) == {"recipient", "message"}
    assert "title" not in schema


def test_tool_result_error_shape():
    result = ToolResult.error("bad")
    assert result.is_error
    assert result.payload == {"error": "bad", "success": False}


def test_to_jsonable_handles_nested_models():
    args = GetMessagesArgs(limit=5)
    assert to_jsonable([args]) == [{"limit": 5}]


class TestCall:
    @pytest.mark.asyncio
    async def test_success(self, registry):
        result = await registry.call("echo", {"text": "hi"})
        assert not result.is_error
        assert result.payload == {"echo": "hi"}

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry):
        result = await registry.call("nope", {})
        assert result.is_error
        assert result.payload["error"] == "Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_invalid_arguments_never_reach_handler(self, registry):
        result = await registry.call("echo", {"text": 5})
        assert result.is_error
        assert result.payload["error"].startswith("Invalid arguments:")
        missing = await registry.call("echo", None)
        assert "text" in missing.payload["error"]

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error_result(self, registry):
        result = await registry.call("explode", {"text": "x"})
        assert result.is_error
        assert result.payload == {"error": "backend unavailable", "success": False}

    @pytest.mark.asyncio
    async def test_reported_failure_is_marked_error(self, registry):
        result = await registry.call("soft_fail", {"text": "x"})
        assert result.is_error
        assert '"success": false' in result.to_text()
