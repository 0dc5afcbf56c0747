"""Dependency injection for FastAPI."""

from fastapi import HTTPException, Request

from config.settings import Settings
from messaging.history import HistoryStore
from providers.base import BaseProvider, ProviderConfig
from transport.router import SessionRouter


def build_provider(settings: Settings) -> BaseProvider:
    """Create the signal-cli provider. Raises ConfigurationError without an account."""
    from providers.signal_cli import SignalCLIProvider

    config = ProviderConfig(
        account=settings.require_account(),
        cli_path=settings.signal_cli_path,
        timeout_ms=settings.signal_timeout,
        max_concurrency=settings.signal_max_concurrency,
        attachments_dir=settings.signal_attachments_dir or None,
    )
    return SignalCLIProvider(config)


def _from_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{name} is not initialized")
    return value


def get_session_router(request: Request) -> SessionRouter:
    """The app's session router (created in the lifespan)."""
    return _from_state(request, "session_router")


def get_history(request: Request) -> HistoryStore:
    return _from_state(request, "history")
