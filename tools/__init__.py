"""Signal tools exposed over MCP."""

from .registry import ToolRegistry, ToolResult, ToolSpec
from .signal_tools import SignalTools, build_registry

__all__ = [
    "SignalTools",
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
    "build_registry",
]
