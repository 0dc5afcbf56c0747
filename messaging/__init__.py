"""Signal message models, transforms and history."""

from .history import HistoryStore
from .models import (
    Attachment,
    ChatResult,
    MessageResult,
    RecentChat,
    SendMessageResult,
)
from .transform import parse_contact, parse_envelope, parse_group

__all__ = [
    "Attachment",
    "ChatResult",
    "HistoryStore",
    "MessageResult",
    "RecentChat",
    "SendMessageResult",
    "parse_contact",
    "parse_envelope",
    "parse_group",
]
