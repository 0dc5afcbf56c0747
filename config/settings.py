"""Centralized configuration using Pydantic Settings."""

import os
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

# signal-cli keeps downloaded attachments here unless --config is overridden
DEFAULT_ATTACHMENTS_DIR = os.path.join(
    os.path.expanduser("~"), ".local", "share", "signal-cli", "attachments"
)


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ==================== Signal Account ====================
    signal_account: str = Field(default="", validation_alias="SIGNAL_ACCOUNT")

    # ==================== signal-cli ====================
    signal_cli_path: str = Field(
        default="signal-cli", validation_alias="SIGNAL_CLI_PATH"
    )
    # Per-command budget in milliseconds
    signal_timeout: int = Field(default=30000, validation_alias="SIGNAL_TIMEOUT")
    # signal-cli locks its data directory; concurrent invocations just wait
    signal_max_concurrency: int = Field(
        default=1, validation_alias="SIGNAL_MAX_CONCURRENCY"
    )
    signal_attachments_dir: str = Field(
        default=DEFAULT_ATTACHMENTS_DIR, validation_alias="SIGNAL_ATTACHMENTS_DIR"
    )

    # ==================== History ====================
    history_path: str = Field(
        default="./signal-mcp-history.json", validation_alias="HISTORY_PATH"
    )
    history_retention_days: int = Field(
        default=30, validation_alias="HISTORY_RETENTION_DAYS"
    )

    # ==================== Transport ====================
    sse_ping_interval: float = Field(
        default=15.0, validation_alias="SSE_PING_INTERVAL"
    )

    # "sse" serves HTTP; "stdio" serves a single client on stdin/stdout
    mcp_transport: Literal["sse", "stdio"] = Field(
        default="sse", validation_alias="MCP_TRANSPORT"
    )

    # ==================== Server ====================
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=3000, validation_alias="PORT")
    log_file: str = Field(default="server.log", validation_alias="LOG_FILE")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @field_validator("signal_account", mode="before")
    @classmethod
    def strip_account(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("signal_timeout", "signal_max_concurrency")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"must be a positive integer, got {v}")
        return v

    @field_validator("mcp_transport", mode="before")
    @classmethod
    def normalize_transport(cls, v):
        if v is None:
            return "sse"
        return str(v).strip().lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"):
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    def require_account(self) -> str:
        """Return the configured account or raise ConfigurationError."""
        if not self.signal_account:
            raise ConfigurationError(
                "SIGNAL_ACCOUNT environment variable must be set "
                "(e.g. SIGNAL_ACCOUNT=+15551234567)"
            )
        return self.signal_account

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
