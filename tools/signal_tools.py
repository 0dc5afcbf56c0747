"""Signal tool handlers and the registry that exposes them."""

from typing import List

from loguru import logger

from messaging.history import HistoryStore
from messaging.models import ChatResult, MessageResult, RecentChat, SendMessageResult
from providers.base import BaseProvider
from providers.exceptions import SignalCLIError
from providers.signal_cli import RECIPIENT_GROUP, resolve_recipient_kind

from .registry import ToolRegistry, ToolSpec
from .schemas import (
    DownloadMediaArgs,
    EmptyArgs,
    GetMessagesArgs,
    GetRecentChatsArgs,
    MarkReadArgs,
    SearchMessagesArgs,
    SendMessageArgs,
)

SEARCH_RESULT_LIMIT = 100


class SignalTools:
    """Handlers backing the Signal tools.

    Read tools first pull pending messages from signal-cli into the history
    store, then answer from the store.
    """

    def __init__(self, provider: BaseProvider, history: HistoryStore):
        self.provider = provider
        self.history = history

    async def sync(self) -> int:
        """Pull pending messages into history. Returns the number of new records."""
        messages = await self.provider.receive_messages()
        return self.history.store_messages(messages)

    async def _sync_best_effort(self) -> None:
        try:
            await self.sync()
        except SignalCLIError as e:
            logger.warning(f"SYNC: serving cached history, receive failed: {e}")

    async def get_messages(self, args: GetMessagesArgs) -> List[MessageResult]:
        await self.sync()
        return self.history.get_recent_messages(
            limit=args.limit, contact=args.contact, since=args.since
        )

    async def list_chats(self, args: EmptyArgs) -> List[ChatResult]:
        chats = await self.provider.list_chats()
        self.history.update_names(chats)
        return chats

    async def get_recent_chats(self, args: GetRecentChatsArgs) -> List[RecentChat]:
        await self._sync_best_effort()
        return self.history.get_recent_chats(limit=args.limit)

    async def search_messages(self, args: SearchMessagesArgs) -> List[MessageResult]:
        await self._sync_best_effort()
        return self.history.search_messages(
            args.query, contact=args.contact, limit=SEARCH_RESULT_LIMIT
        )

    async def download_media(self, args: DownloadMediaArgs) -> dict:
        return await self.provider.download_media(args.message_id, args.attachment_id)

    async def send_message(self, args: SendMessageArgs) -> SendMessageResult:
        kind = resolve_recipient_kind(args.recipient, args.recipient_type)
        result = await self.provider.send_message(args.recipient, args.message, kind)
        if result.success and result.timestamp is not None:
            is_group = kind == RECIPIENT_GROUP
            self.history.store_message(
                MessageResult(
                    sender=self.provider.account,
                    timestamp=result.timestamp,
                    body=args.message,
                    is_group=is_group,
                    group_id=args.recipient if is_group else None,
                    recipient=args.recipient,
                )
            )
        return result

    async def mark_read(self, args: MarkReadArgs) -> dict:
        marked = self.history.mark_as_read(args.contact)
        return {"success": True, "marked": marked}


def build_registry(provider: BaseProvider, history: HistoryStore) -> ToolRegistry:
    """Register every Signal tool against one provider and history store."""
    tools = SignalTools(provider, history)
    registry = ToolRegistry()

    get_messages_description = (
        "Get Signal messages, newest first. Pulls any pending messages first. "
        "Returns sender, senderName, timestamp, body, attachments and group info."
    )
    registry.register(
        ToolSpec(
            name="get_messages",
            description=get_messages_description,
            args_model=GetMessagesArgs,
            handler=tools.get_messages,
        )
    )
    registry.register(
        ToolSpec(
            name="receive_messages",
            description=get_messages_description,
            args_model=GetMessagesArgs,
            handler=tools.get_messages,
        )
    )
    registry.register(
        ToolSpec(
            name="list_chats",
            description=(
                "List all Signal conversations (contacts and groups) "
                "with their display names."
            ),
            args_model=EmptyArgs,
            handler=tools.list_chats,
        )
    )
    registry.register(
        ToolSpec(
            name="get_recent_chats",
            description=(
                "List recent Signal conversations sorted by last activity, with the "
                "last message and the number of unread messages."
            ),
            args_model=GetRecentChatsArgs,
            handler=tools.get_recent_chats,
        )
    )
    registry.register(
        ToolSpec(
            name="search_messages",
            description=(
                "Search Signal message history (case-insensitive) by body, "
                "sender or sender name, optionally limited to one contact."
            ),
            args_model=SearchMessagesArgs,
            handler=tools.search_messages,
        )
    )
    registry.register(
        ToolSpec(
            name="download_media",
            description=(
                "Get the local file path of an attachment from a Signal message."
            ),
            args_model=DownloadMediaArgs,
            handler=tools.download_media,
        )
    )
    registry.register(
        ToolSpec(
            name="send_message",
            description=(
                "Send a message via Signal. Requires individual approval for each "
                "send. Recipient can be a phone number (e.g. +15551234567) or group ID."
            ),
            args_model=SendMessageArgs,
            handler=tools.send_message,
            auto_approve=False,
        )
    )
    registry.register(
        ToolSpec(
            name="mark_read",
            description="Mark all messages from a contact or group as read.",
            args_model=MarkReadArgs,
            handler=tools.mark_read,
        )
    )
    return registry
