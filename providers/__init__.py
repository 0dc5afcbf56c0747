"""Providers package - the messaging backends the tools talk to."""

from .base import BaseProvider, ProviderConfig
from .exceptions import CommandFailedError, CommandTimeoutError, SignalCLIError
from .signal_cli import SignalCLIProvider

__all__ = [
    "BaseProvider",
    "CommandFailedError",
    "CommandTimeoutError",
    "ProviderConfig",
    "SignalCLIError",
    "SignalCLIProvider",
]
