"""Tool registry: declarations plus dispatch with uniform error results."""

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from loguru import logger
from pydantic import BaseModel, ValidationError

ToolHandler = Callable[[Any], Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    """A callable operation advertised to the assistant.

    ``auto_approve`` is only advertised; the calling environment decides
    whether to ask the user before invoking the tool.
    """

    name: str
    description: str
    args_model: Type[BaseModel]
    handler: ToolHandler
    auto_approve: bool = True

    @property
    def input_schema(self) -> Dict[str, Any]:
        schema = self.args_model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema


@dataclass(frozen=True)
class ToolResult:
    payload: Any
    is_error: bool = False

    def to_text(self) -> str:
        return json.dumps(self.payload, indent=2, default=str)

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        return cls({"error": message, "success": False}, is_error=True)


def to_jsonable(value: Any) -> Any:
    """Convert handler output (result models, lists of them) to plain JSON data."""
    if isinstance(value, BaseModel):
        dump = getattr(value, "to_result", None)
        if callable(dump):
            return dump()
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    return value


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "Invalid arguments: " + "; ".join(parts)


class ToolRegistry:
    """Fixed set of named tools with schema validation and error containment."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def list_tools(self) -> List[ToolSpec]:
        return list(self._tools.values())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    async def call(self, name: str, arguments: Optional[Dict[str, Any]]) -> ToolResult:
        """
        Validate arguments and run a tool.

        Never raises: unknown tools, invalid arguments and handler failures
        all come back as ``{"error": ..., "success": false}`` error results.
        """
        spec = self._tools.get(name)
        if spec is None:
            logger.warning(f"TOOL_CALL: unknown tool {name!r}")
            return ToolResult.error(f"Unknown tool: {name}")

        try:
            args = spec.args_model.model_validate(arguments or {})
        except ValidationError as e:
            message = format_validation_error(e)
            logger.info(f"TOOL_CALL: {name} rejected: {message}")
            return ToolResult.error(message)

        try:
            result = await spec.handler(args)
        except Exception as e:
            logger.warning(f"TOOL_CALL: {name} failed: {type(e).__name__}: {e}")
            return ToolResult.error(str(e) or type(e).__name__)

        payload = to_jsonable(result)
        failed = isinstance(payload, dict) and payload.get("success") is False
        logger.debug(f"TOOL_CALL: {name} completed (error={failed})")
        return ToolResult(payload, is_error=failed)
