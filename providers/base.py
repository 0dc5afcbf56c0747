"""Base provider interface - the tools only ever talk to this."""

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel

from messaging.models import ChatResult, MessageResult, SendMessageResult


class ProviderConfig(BaseModel):
    """Configuration for the messaging provider."""

    account: str
    cli_path: str = "signal-cli"
    timeout_ms: int = 30000
    max_concurrency: int = 1
    attachments_dir: Optional[str] = None


class BaseProvider(ABC):
    """Base class for messaging providers."""

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    def account(self) -> str:
        return self.config.account

    @abstractmethod
    async def receive_messages(
        self, limit: Optional[int] = None, since: Optional[int] = None
    ) -> List[MessageResult]:
        """Pull pending messages from the platform."""

    @abstractmethod
    async def list_chats(self) -> List[ChatResult]:
        """List contacts and groups."""

    @abstractmethod
    async def send_message(
        self, recipient: str, message: str, recipient_type: Optional[str] = None
    ) -> SendMessageResult:
        """Send a text message. Failures are returned, not raised."""

    @abstractmethod
    async def download_media(self, message_id: str, attachment_id: str) -> dict:
        """Resolve an attachment to a local path: ``{"path": ...}`` or ``{"error": ...}``."""
