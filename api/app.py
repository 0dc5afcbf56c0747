"""FastAPI application factory and configuration."""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from config.logging_config import configure_logging
from config.settings import Settings, get_settings
from messaging.history import HistoryStore
from providers.base import BaseProvider
from tools.signal_tools import build_registry
from transport.mcp_engine import mcp_engine_factory
from transport.router import SessionRouter

from .dependencies import build_provider
from .middleware import CORSHeadersMiddleware
from .routes import router

# Configure logging first (before any module logs)
_settings = get_settings()
configure_logging(_settings.log_file, _settings.log_level)


_SHUTDOWN_TIMEOUT_S = 5.0
_CLEANUP_INTERVAL_S = 3600.0


async def _best_effort(
    name: str, awaitable, timeout_s: float = _SHUTDOWN_TIMEOUT_S
) -> None:
    """Run a shutdown step with timeout; never raise to callers."""
    try:
        await asyncio.wait_for(awaitable, timeout=timeout_s)
    except TimeoutError:
        logger.warning(f"Shutdown step timed out: {name} ({timeout_s}s)")
    except Exception as e:
        logger.warning(f"Shutdown step failed: {name}: {type(e).__name__}: {e}")


async def _retention_loop(history: HistoryStore, days: int) -> None:
    """Evict old history now and then once an hour."""
    while True:
        try:
            history.cleanup(days_to_keep=days)
        except Exception as e:
            logger.warning(f"History cleanup failed: {e}")
        await asyncio.sleep(_CLEANUP_INTERVAL_S)


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[BaseProvider] = None,
    history: Optional[HistoryStore] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``provider`` and ``history`` default to the signal-cli provider and a
    file-backed store built from ``settings``; tests pass their own.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        cfg = settings or get_settings()
        logger.info("Starting Signal MCP server...")

        msg_provider = provider or build_provider(cfg)
        store = history or HistoryStore(storage_path=cfg.history_path)
        registry = build_registry(msg_provider, store)
        session_router = SessionRouter(
            mcp_engine_factory(registry),
            keepalive_interval=cfg.sse_ping_interval or None,
        )

        app.state.provider = msg_provider
        app.state.history = store
        app.state.tool_registry = registry
        app.state.session_router = session_router

        retention_task = asyncio.create_task(
            _retention_loop(store, cfg.history_retention_days)
        )
        logger.info(
            f"Account: {msg_provider.account}, tools: "
            f"{', '.join(spec.name for spec in registry.list_tools())}"
        )

        yield

        logger.info("Shutdown requested, cleaning up...")
        retention_task.cancel()
        await _best_effort("session_router.close_all", session_router.close_all())
        try:
            store.flush_pending_save()
        except Exception as e:
            logger.warning(f"History flush on shutdown: {e}")
        logger.info("Server shut down cleanly")

    app = FastAPI(
        title="Signal MCP Server",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(CORSHeadersMiddleware)

    # Register routes
    app.include_router(router)

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """Handle unexpected errors with a JSON 500."""
        logger.opt(exception=exc).error(f"General Error: {exc!s}")
        return JSONResponse(
            status_code=500,
            content={"error": "An unexpected error occurred.", "code": "internal_error"},
        )

    return app


# Default app instance for uvicorn
app = create_app()
