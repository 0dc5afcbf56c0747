"""
History Store for Signal messages

Provides persistent storage of observed messages so the assistant can query
recent conversations, search history and track unread counts across restarts.
"""

import json
import os
import threading
import time
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from .models import ChatResult, MessageResult, RecentChat

_DAY_MS = 24 * 60 * 60 * 1000


class HistoryStore:
    """
    Persistent, deduplicating store of normalized Signal messages.

    Records are keyed by ``(sender, timestamp)``; inserting a record that is
    already present is a no-op. Uses a JSON file for storage with
    thread-safe operations and debounced writes.
    """

    def __init__(self, storage_path: str = "signal-mcp-history.json"):
        self.storage_path = storage_path
        self._lock = threading.Lock()
        self._messages: Dict[str, Dict[str, Any]] = {}  # dedup key -> record
        self._names: Dict[str, str] = {}  # address or group id -> display name
        self._dirty = False
        self._save_timer: Optional[threading.Timer] = None
        self._save_debounce_secs = 0.5
        self._load()

    def _load(self) -> None:
        """Load history from disk."""
        if not os.path.exists(self.storage_path):
            return

        try:
            with open(self.storage_path, "r", encoding="utf-8") as f:
                data = json.load(f)

            raw_messages = data.get("messages", []) or []
            for item in raw_messages:
                if not isinstance(item, dict):
                    continue
                try:
                    msg = MessageResult.model_validate(item)
                except ValueError:
                    continue
                record = msg.to_result()
                record["read"] = bool(item.get("read", False))
                self._messages[msg.dedup_key] = record

            raw_names = data.get("names", {}) or {}
            if isinstance(raw_names, dict):
                self._names = {
                    str(k): str(v) for k, v in raw_names.items() if k and v
                }

            logger.info(
                f"Loaded {len(self._messages)} messages from {self.storage_path}"
            )
        except Exception as e:
            logger.error(f"Failed to load history: {e}")

    def _save(self) -> None:
        """Persist history to disk. Caller must hold self._lock."""
        try:
            data = {
                "messages": sorted(
                    self._messages.values(), key=lambda r: r["timestamp"]
                ),
                "names": self._names,
            }
            tmp_path = f"{self.storage_path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.storage_path)
        except Exception as e:
            logger.error(f"Failed to save history: {e}")

    def _schedule_save(self) -> None:
        """Schedule a debounced save. Caller must hold self._lock."""
        self._dirty = True
        if self._save_timer is not None:
            self._save_timer.cancel()
            self._save_timer = None
        self._save_timer = threading.Timer(
            self._save_debounce_secs, self._save_from_timer
        )
        self._save_timer.daemon = True
        self._save_timer.start()

    def _save_from_timer(self) -> None:
        """Timer callback: save if dirty. Runs in timer thread."""
        with self._lock:
            if not self._dirty:
                self._save_timer = None
                return
            self._save()
            self._dirty = False
            self._save_timer = None

    def _flush_save(self) -> None:
        """Immediate save, cancel any pending debounced save. Caller must hold self._lock."""
        if self._save_timer is not None:
            self._save_timer.cancel()
            self._save_timer = None
        self._dirty = False
        self._save()

    def flush_pending_save(self) -> None:
        """Flush any pending debounced save. Call on shutdown to avoid losing data."""
        with self._lock:
            if self._dirty:
                self._flush_save()

    def clear_all(self) -> None:
        """Drop all stored messages and persist an empty store."""
        with self._lock:
            self._messages.clear()
            self._names.clear()
            self._flush_save()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    # ==================== Ingestion ====================

    def _insert(self, message: MessageResult) -> bool:
        """Insert if absent. Caller must hold self._lock."""
        key = message.dedup_key
        if key in self._messages:
            return False
        record = message.to_result()
        # Our own messages never count as unread
        record["read"] = message.is_outgoing
        self._messages[key] = record
        if message.sender_name and not message.is_outgoing:
            self._names.setdefault(message.sender, message.sender_name)
        return True

    def store_message(self, message: MessageResult) -> bool:
        """Store a message. Returns False if an identical (sender, timestamp) exists."""
        with self._lock:
            inserted = self._insert(message)
            if inserted:
                self._schedule_save()
            return inserted

    def store_messages(self, messages: Iterable[MessageResult]) -> int:
        """Store several messages atomically. Returns the number newly inserted."""
        with self._lock:
            inserted = sum(1 for m in messages if self._insert(m))
            if inserted:
                self._schedule_save()
        if inserted:
            logger.debug(f"HISTORY: stored {inserted} new messages")
        return inserted

    def update_names(self, chats: Iterable[ChatResult]) -> None:
        """Remember display names for contacts and groups (from list_chats)."""
        with self._lock:
            changed = False
            for chat in chats:
                if chat.contact_name and self._names.get(chat.contact) != chat.contact_name:
                    self._names[chat.contact] = chat.contact_name
                    changed = True
            if changed:
                self._schedule_save()

    # ==================== Queries ====================

    @staticmethod
    def _matches_contact(record: Dict[str, Any], contact: str) -> bool:
        needle = contact.lower()
        if record.get("groupId") == contact:
            return True
        for field in ("sender", "senderName", "recipient"):
            value = record.get(field)
            if value and needle in value.lower():
                return True
        return False

    @staticmethod
    def _chat_key(record: Dict[str, Any]) -> str:
        if record.get("groupId"):
            return record["groupId"]
        if record.get("recipient"):
            return record["recipient"]
        return record["sender"]

    def _sorted_records(self) -> List[Dict[str, Any]]:
        """Newest first. Caller must hold self._lock."""
        return sorted(
            self._messages.values(), key=lambda r: r["timestamp"], reverse=True
        )

    @staticmethod
    def _to_message(record: Dict[str, Any]) -> MessageResult:
        return MessageResult.model_validate(
            {k: v for k, v in record.items() if k != "read"}
        )

    def get_recent_messages(
        self,
        limit: int = 50,
        contact: Optional[str] = None,
        since: Optional[int] = None,
    ) -> List[MessageResult]:
        """
        Most recent messages, newest first.

        Args:
            limit: Maximum number of messages
            contact: Match sender, display name or (for outgoing) recipient
            since: Only messages with timestamp >= since (ms epoch)
        """
        with self._lock:
            results = []
            for record in self._sorted_records():
                if since is not None and record["timestamp"] < since:
                    continue
                if contact and not self._matches_contact(record, contact):
                    continue
                results.append(self._to_message(record))
                if len(results) >= limit:
                    break
            return results

    def search_messages(
        self, query: str, contact: Optional[str] = None, limit: int = 50
    ) -> List[MessageResult]:
        """Case-insensitive substring search across body, sender and display name."""
        needle = query.lower()
        with self._lock:
            results = []
            for record in self._sorted_records():
                haystacks = (
                    record.get("body"),
                    record.get("sender"),
                    record.get("senderName"),
                )
                if not any(h and needle in h.lower() for h in haystacks):
                    continue
                if contact and not self._matches_contact(record, contact):
                    continue
                results.append(self._to_message(record))
                if len(results) >= limit:
                    break
            return results

    def get_recent_chats(self, limit: int = 20) -> List[RecentChat]:
        """Conversations sorted by their last message, newest first.

        Group messages are grouped by group id, direct messages by the other
        party's address (sender for incoming, recipient for outgoing).
        """
        with self._lock:
            chats: Dict[str, Dict[str, Any]] = {}
            for record in self._sorted_records():
                key = self._chat_key(record)
                chat = chats.get(key)
                if chat is None:
                    is_group = bool(record.get("groupId"))
                    name = self._names.get(key)
                    chat = chats[key] = {
                        "contact": key,
                        "contact_name": name,
                        "is_group": is_group,
                        "group_name": name if is_group else None,
                        "last_message_timestamp": record["timestamp"],
                        "last_message_body": record.get("body"),
                        "unread_count": 0,
                    }
                if not record.get("recipient") and not record.get("read"):
                    chat["unread_count"] += 1

            ordered = sorted(
                chats.values(), key=lambda c: c["last_message_timestamp"], reverse=True
            )
            return [RecentChat(**c) for c in ordered[:limit]]

    # ==================== Bookkeeping ====================

    def mark_as_read(self, address: str) -> int:
        """Mark inbound messages from a contact (or in a group) as read."""
        with self._lock:
            marked = 0
            for record in self._messages.values():
                if record.get("recipient") or record.get("read"):
                    continue
                if record.get("sender") == address or record.get("groupId") == address:
                    record["read"] = True
                    marked += 1
            if marked:
                self._schedule_save()
            return marked

    def cleanup(self, days_to_keep: int = 30, now_ms: Optional[int] = None) -> int:
        """Remove messages older than days_to_keep."""
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        cutoff = now_ms - days_to_keep * _DAY_MS
        with self._lock:
            stale = [k for k, r in self._messages.items() if r["timestamp"] < cutoff]
            for key in stale:
                del self._messages[key]
            if stale:
                self._schedule_save()
                logger.info(f"Cleaned up {len(stale)} old messages")
            return len(stale)
