"""
Signal MCP Server - entry point

Exposes a Signal account (through signal-cli) to MCP clients, either over
Server-Sent Events:
- GET  /sse                      open a session stream
- POST /message?sessionId=<id>   send a JSON-RPC message to that session
- GET  /health                   liveness check

or, with ``--stdio`` (or MCP_TRANSPORT=stdio), to a single client that
launched this process and speaks MCP on stdin/stdout.
"""

import argparse
import asyncio
import sys

from loguru import logger

from api.app import app, create_app
from api.dependencies import build_provider
from config.settings import ConfigurationError, Settings
from messaging.history import HistoryStore
from tools.signal_tools import build_registry
from transport.mcp_engine import serve_stdio

__all__ = ["app", "create_app", "run_stdio"]


def run_stdio(settings: Settings) -> None:
    """Serve the Signal tools over stdin/stdout until the client disconnects."""
    provider = build_provider(settings)
    history = HistoryStore(storage_path=settings.history_path)
    history.cleanup(days_to_keep=settings.history_retention_days)
    registry = build_registry(provider, history)
    try:
        asyncio.run(serve_stdio(registry))
    finally:
        history.flush_pending_save()
        logger.info("stdio session ended")


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Signal MCP server")
    parser.add_argument(
        "--stdio",
        action="store_true",
        help="Serve a single MCP client on stdin/stdout instead of HTTP",
    )
    return parser.parse_args(argv)


if __name__ == "__main__":
    import uvicorn

    from config.settings import get_settings

    args = _parse_args()
    settings = get_settings()
    try:
        settings.require_account()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    if args.stdio or settings.mcp_transport == "stdio":
        run_stdio(settings)
    else:
        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_level="info",
            timeout_graceful_shutdown=5,
        )
