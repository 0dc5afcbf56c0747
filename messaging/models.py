"""Normalized result shapes shared by the adapter, the history store and the tools."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ResultModel(BaseModel):
    """Camel-cased on the wire, snake_cased in Python."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_result(self) -> dict:
        """Dump in the wire shape, omitting absent optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Attachment(_ResultModel):
    id: str
    content_type: str = Field(default="application/octet-stream", alias="contentType")
    filename: Optional[str] = None
    size: Optional[int] = None


class MessageResult(_ResultModel):
    """A single Signal message, incoming or outgoing.

    ``recipient`` is only set for outgoing records (sent by this account,
    either through ``send_message`` or synced from another linked device).
    """

    sender: str
    sender_name: Optional[str] = Field(default=None, alias="senderName")
    timestamp: int
    body: Optional[str] = None
    attachments: Optional[List[Attachment]] = None
    is_group: bool = Field(default=False, alias="isGroup")
    group_id: Optional[str] = Field(default=None, alias="groupId")
    recipient: Optional[str] = None

    @property
    def is_outgoing(self) -> bool:
        return self.recipient is not None

    @property
    def dedup_key(self) -> str:
        return f"{self.sender}:{self.timestamp}"


class ChatResult(_ResultModel):
    """A contact or group the account can talk to."""

    contact: str
    contact_name: Optional[str] = Field(default=None, alias="contactName")
    is_group: bool = Field(default=False, alias="isGroup")
    group_name: Optional[str] = Field(default=None, alias="groupName")


class RecentChat(_ResultModel):
    """Per-conversation summary derived from stored history."""

    contact: str
    contact_name: Optional[str] = Field(default=None, alias="contactName")
    is_group: bool = Field(default=False, alias="isGroup")
    group_name: Optional[str] = Field(default=None, alias="groupName")
    last_message_timestamp: int = Field(alias="lastMessageTimestamp")
    last_message_body: Optional[str] = Field(default=None, alias="lastMessageBody")
    unread_count: int = Field(default=0, alias="unreadCount")


class SendMessageResult(_ResultModel):
    success: bool
    timestamp: Optional[int] = None
    message_id: Optional[str] = Field(default=None, alias="messageId")
    error: Optional[str] = None
