"""Record transforms for signal-cli JSON output.

signal-cli emits one JSON object per line. These helpers turn the raw
envelope, contact and group objects into the normalized result models.
Anything that is not a chat message (receipts, typing indicators, empty
sync messages) maps to ``None`` so callers can simply filter it out.
"""

from typing import Any, List, Optional

from loguru import logger

from .models import Attachment, ChatResult, MessageResult


def _first(*values: Any) -> Optional[str]:
    for value in values:
        if value:
            return str(value)
    return None


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def parse_attachments(raw: Any) -> Optional[List[Attachment]]:
    """Normalize a dataMessage ``attachments`` list."""
    if not isinstance(raw, list) or not raw:
        return None
    attachments: List[Attachment] = []
    for att in raw:
        if not isinstance(att, dict) or not att.get("id"):
            continue
        size = att.get("size")
        attachments.append(
            Attachment(
                id=str(att["id"]),
                content_type=att.get("contentType") or "application/octet-stream",
                filename=att.get("filename") or None,
                size=size if isinstance(size, int) else None,
            )
        )
    return attachments or None


def parse_envelope(event: Any, account: Optional[str] = None) -> Optional[MessageResult]:
    """
    Convert a ``receive`` output line into a MessageResult.

    Args:
        event: Raw JSON object from signal-cli (``{"envelope": {...}, "account": ...}``)
        account: This account's number, used as sender of synced outgoing messages

    Returns:
        MessageResult, or None if the envelope carries no chat message.
    """
    if not isinstance(event, dict):
        return None
    envelope = event.get("envelope")
    if not isinstance(envelope, dict):
        return None

    data = _dict(envelope.get("dataMessage"))
    sent = _dict(_dict(envelope.get("syncMessage")).get("sentMessage"))
    if not data and not sent:
        return None

    # Sent from one of our other linked devices
    outgoing = not data
    message = sent if outgoing else data

    timestamp = message.get("timestamp") or envelope.get("timestamp")
    if not isinstance(timestamp, int):
        logger.debug(f"TRANSFORM: envelope without usable timestamp: {timestamp!r}")
        return None

    group_id = _first(_dict(message.get("groupInfo")).get("groupId"))
    source = _first(
        envelope.get("sourceNumber"), envelope.get("source"), envelope.get("sourceUuid")
    )

    if outgoing:
        sender = _first(account, event.get("account"), source) or "unknown"
        recipient = group_id or _first(
            message.get("destinationNumber"),
            message.get("destination"),
            message.get("destinationUuid"),
        )
        if recipient is None:
            return None
    else:
        sender = source or "unknown"
        recipient = None

    return MessageResult(
        sender=sender,
        sender_name=envelope.get("sourceName") or None,
        timestamp=timestamp,
        body=message.get("message") or None,
        attachments=parse_attachments(message.get("attachments")),
        is_group=group_id is not None,
        group_id=group_id,
        recipient=recipient,
    )


def parse_contact(raw: Any) -> Optional[ChatResult]:
    """Convert a ``listContacts`` entry. Contacts without an address are skipped."""
    if not isinstance(raw, dict):
        return None
    address = _first(raw.get("number"), raw.get("uuid"))
    if address is None:
        return None
    profile = _dict(raw.get("profile"))
    name = _first(
        raw.get("name"),
        raw.get("profileName"),
        profile.get("givenName"),
    )
    return ChatResult(contact=address, contact_name=name, is_group=False)


def parse_group(raw: Any) -> Optional[ChatResult]:
    """Convert a ``listGroups`` entry. Groups the account has left are skipped."""
    if not isinstance(raw, dict) or not raw.get("id"):
        return None
    if not raw.get("isMember", False):
        return None
    name = raw.get("name") or None
    return ChatResult(
        contact=str(raw["id"]), contact_name=name, is_group=True, group_name=name
    )
