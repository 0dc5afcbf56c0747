"""signal-cli provider.

Runs the external ``signal-cli`` binary in JSON output mode and turns its
line-delimited output into normalized results.
"""

import asyncio
import json
import os
import re
import time
from typing import Any, List, Optional, Sequence

from loguru import logger

from messaging.models import ChatResult, MessageResult, SendMessageResult
from messaging.transform import parse_contact, parse_envelope, parse_group

from .base import BaseProvider, ProviderConfig
from .exceptions import CommandFailedError, CommandTimeoutError, SignalCLIError
from .logging_utils import content_fingerprint, log_command_compact

_GROUP_ID_PATTERN = re.compile(r"^[A-Za-z0-9+/]+=*$")
_KILL_GRACE_S = 5.0

RECIPIENT_INDIVIDUAL = "individual"
RECIPIENT_GROUP = "group"


def is_group_id(recipient: str) -> bool:
    """Guess whether an address is a base64 group id rather than a phone number.

    Phone numbers start with '+'; group ids are base64 and longer than 20 chars.
    """
    if recipient.startswith("+"):
        return False
    return bool(_GROUP_ID_PATTERN.match(recipient)) and len(recipient) > 20


def resolve_recipient_kind(recipient: str, recipient_type: Optional[str] = None) -> str:
    """Use the caller's explicit kind when given, otherwise fall back to the heuristic."""
    if recipient_type is not None:
        if recipient_type not in (RECIPIENT_INDIVIDUAL, RECIPIENT_GROUP):
            raise ValueError(
                f"recipient_type must be '{RECIPIENT_INDIVIDUAL}' or "
                f"'{RECIPIENT_GROUP}', got {recipient_type!r}"
            )
        return recipient_type
    return RECIPIENT_GROUP if is_group_id(recipient) else RECIPIENT_INDIVIDUAL


def parse_json_lines(output: str) -> tuple[List[Any], int]:
    """Parse line-delimited JSON. Returns (records, number of dropped lines)."""
    records: List[Any] = []
    dropped = 0
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError:
            dropped += 1
            logger.warning(
                f"SIGNAL_CLI: dropping unparsable output line "
                f"({len(line)} chars, {content_fingerprint(line)})"
            )
    return records, dropped


class SignalCLIProvider(BaseProvider):
    """Messaging provider backed by the signal-cli binary."""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self._semaphore = asyncio.Semaphore(config.max_concurrency)
        self._pending: set[asyncio.Task] = set()

    def _base_args(self) -> List[str]:
        return ["-a", self.config.account, "--output=json"]

    async def _kill(self, process: Any) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=_KILL_GRACE_S)
        except asyncio.TimeoutError:
            logger.warning("SIGNAL_CLI: process did not exit after kill")

    async def _run(self, args: Sequence[str]) -> List[Any]:
        async with self._semaphore:
            start = time.monotonic()
            try:
                process = await asyncio.create_subprocess_exec(
                    self.config.cli_path,
                    *self._base_args(),
                    *args,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise CommandFailedError(
                    f"Could not start {self.config.cli_path}: {e}"
                ) from e

            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(), timeout=self.config.timeout_ms / 1000
                )
            except asyncio.TimeoutError:
                await self._kill(process)
                logger.warning(
                    f"SIGNAL_CLI: {args[0] if args else ''} timed out "
                    f"after {self.config.timeout_ms}ms"
                )
                raise CommandTimeoutError(self.config.timeout_ms) from None

            duration_ms = (time.monotonic() - start) * 1000
            code = process.returncode
            if code != 0:
                log_command_compact(
                    logger, args, exit_code=code, duration_ms=duration_ms
                )
                raise CommandFailedError.from_exit(
                    code, (stderr or b"").decode("utf-8", errors="replace")
                )

            output = (stdout or b"").decode("utf-8", errors="replace")
            records, dropped = parse_json_lines(output)
            log_command_compact(
                logger,
                args,
                exit_code=code,
                duration_ms=duration_ms,
                records=len(records),
                dropped=dropped,
            )
            return records

    def _discard_result(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug(f"SIGNAL_CLI: abandoned command failed: {exc}")

    async def execute(self, args: Sequence[str]) -> List[Any]:
        """
        Run one signal-cli command and return its parsed output records.

        The subprocess is shielded from caller cancellation: if the caller
        goes away (e.g. its session closed) the command still runs to
        completion or timeout and its result is discarded.

        Raises:
            CommandTimeoutError: the configured budget was exceeded
            CommandFailedError: non-zero exit, or the binary could not be started
        """
        task = asyncio.ensure_future(self._run(list(args)))
        self._pending.add(task)
        task.add_done_callback(self._discard_result)
        return await asyncio.shield(task)

    # ==================== Messages ====================

    async def receive_messages(
        self, limit: Optional[int] = None, since: Optional[int] = None
    ) -> List[MessageResult]:
        """Pull pending envelopes; receipts and typing notifications are skipped."""
        try:
            records = await self.execute(["receive", "--timeout", "1"])
        except SignalCLIError as e:
            raise SignalCLIError(f"Failed to receive messages: {e.message}") from e

        messages = [
            msg
            for msg in (parse_envelope(r, self.account) for r in records)
            if msg is not None
        ]
        if since is not None:
            messages = [m for m in messages if m.timestamp >= since]
        if limit is not None and limit > 0:
            messages = messages[:limit]
        return messages

    async def send_message(
        self, recipient: str, message: str, recipient_type: Optional[str] = None
    ) -> SendMessageResult:
        """Send a message to a phone number or group id."""
        kind = resolve_recipient_kind(recipient, recipient_type)
        args = ["send", "-m", message]
        if kind == RECIPIENT_GROUP:
            args += ["-g", recipient]
        else:
            args.append(recipient)

        try:
            records = await self.execute(args)
        except SignalCLIError as e:
            return SendMessageResult(success=False, error=e.message)

        timestamp = None
        for record in records:
            if isinstance(record, dict) and isinstance(record.get("timestamp"), int):
                timestamp = record["timestamp"]
                break
        if timestamp is None:
            timestamp = int(time.time() * 1000)
        return SendMessageResult(
            success=True, timestamp=timestamp, message_id=str(timestamp)
        )

    # ==================== Contacts & Groups ====================

    async def list_contacts(self) -> List[ChatResult]:
        try:
            records = await self.execute(["listContacts"])
        except SignalCLIError as e:
            raise SignalCLIError(f"Failed to list contacts: {e.message}") from e
        return [c for c in (parse_contact(r) for r in records) if c is not None]

    async def list_groups(self) -> List[ChatResult]:
        try:
            records = await self.execute(["listGroups", "-d"])
        except SignalCLIError as e:
            raise SignalCLIError(f"Failed to list groups: {e.message}") from e
        return [g for g in (parse_group(r) for r in records) if g is not None]

    async def list_chats(self) -> List[ChatResult]:
        """Contacts first, then groups the account is a member of."""
        contacts = await self.list_contacts()
        groups = await self.list_groups()
        return contacts + groups

    # ==================== Attachments ====================

    async def download_media(self, message_id: str, attachment_id: str) -> dict:
        """Resolve an attachment signal-cli already downloaded during receive."""
        if (
            not attachment_id
            or attachment_id in (".", "..")
            or "/" in attachment_id
            or "\\" in attachment_id
        ):
            return {"error": f"Invalid attachment id: {attachment_id!r}"}

        attachments_dir = self.config.attachments_dir
        if not attachments_dir:
            return {"error": "Attachments directory is not configured"}

        path = os.path.join(os.path.abspath(attachments_dir), attachment_id)
        if not os.path.isfile(path):
            logger.info(
                f"DOWNLOAD_MEDIA: attachment {attachment_id} for message "
                f"{message_id} not found"
            )
            return {"error": f"Attachment {attachment_id} not found in {attachments_dir}"}
        return {"path": path}
