"""Argument models for the Signal tools.

Each model's JSON schema is advertised as the tool's ``inputSchema``;
incoming arguments are validated against the same model before the
handler runs.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EmptyArgs(ToolArgs):
    pass


class GetMessagesArgs(ToolArgs):
    limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum number of messages to return",
    )
    contact: Optional[str] = Field(
        default=None,
        description="Only messages with this contact (phone number, name or group id)",
    )
    since: Optional[int] = Field(
        default=None,
        ge=0,
        description="Only messages at or after this Unix timestamp in milliseconds",
    )


class GetRecentChatsArgs(ToolArgs):
    limit: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Maximum number of conversations to return",
    )


class SearchMessagesArgs(ToolArgs):
    query: str = Field(
        min_length=1, description="Text to find in message body, sender or name"
    )
    contact: Optional[str] = Field(
        default=None,
        description="Only messages with this contact (phone number or name)",
    )


class DownloadMediaArgs(ToolArgs):
    message_id: str = Field(
        alias="messageId",
        min_length=1,
        description="ID of the message containing the attachment",
    )
    attachment_id: str = Field(
        alias="attachmentId",
        min_length=1,
        description="ID of the attachment to download",
    )


class SendMessageArgs(ToolArgs):
    recipient: str = Field(
        min_length=1,
        description="Phone number with country code (e.g. +15551234567) or group ID",
    )
    message: str = Field(min_length=1, description="Message text to send")
    recipient_type: Optional[Literal["individual", "group"]] = Field(
        default=None,
        alias="recipientType",
        description=(
            "Whether the recipient is an individual or a group. "
            "Guessed from the recipient format when omitted"
        ),
    )


class MarkReadArgs(ToolArgs):
    contact: str = Field(
        min_length=1, description="Phone number or group ID whose messages were read"
    )
