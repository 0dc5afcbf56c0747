"""Logging utilities for compact, traceable signal-cli invocation logging.

Message text and recipients are never written to the log; a short content
hash is logged instead so a send can still be correlated with its outcome.
Only flags and the values of known harmless flags are logged verbatim.
"""

import hashlib
import json
from typing import Any, Sequence

# Flags whose following value is user content, whatever it looks like
_CONTENT_FLAGS = frozenset({"-m", "--message"})
# Flags whose following value is safe to log as-is
_PLAIN_VALUE_FLAGS = frozenset({"--timeout", "--output"})


def content_fingerprint(text: str) -> str:
    """Short SHA256 prefix for correlating content without logging it."""
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"fp_{digest[:8]}"


def redact_args(args: Sequence[str]) -> list[str]:
    """Replace message bodies, recipients and group ids with their fingerprint.

    Flags are kept; any other value is fingerprinted unless it follows a
    flag in ``_PLAIN_VALUE_FLAGS``.
    """
    redacted: list[str] = []
    keep_next = False
    hide_next = False
    for arg in args:
        if hide_next:
            redacted.append(content_fingerprint(arg))
            hide_next = False
            continue
        if arg.startswith("-"):
            redacted.append(arg)
            keep_next = arg in _PLAIN_VALUE_FLAGS
            hide_next = arg in _CONTENT_FLAGS
            continue
        redacted.append(arg if keep_next else content_fingerprint(arg))
        keep_next = False
    return redacted


def build_command_summary(
    args: Sequence[str],
    *,
    exit_code: int | None = None,
    duration_ms: float | None = None,
    records: int | None = None,
    dropped: int = 0,
) -> dict[str, Any]:
    """Build compact metadata dict for one signal-cli invocation."""
    summary: dict[str, Any] = {
        "operation": args[0] if args else "",
        "args": redact_args(args[1:]),
    }
    if exit_code is not None:
        summary["exit_code"] = exit_code
    if duration_ms is not None:
        summary["duration_ms"] = round(duration_ms, 1)
    if records is not None:
        summary["records"] = records
    if dropped:
        summary["dropped_lines"] = dropped
    return summary


def log_command_compact(
    logger_instance: Any,
    args: Sequence[str],
    prefix: str = "SIGNAL_CLI",
    **details: Any,
) -> None:
    """Log a single-line JSON summary of an invocation."""
    summary = build_command_summary(args, **details)
    logger_instance.info(f"{prefix}: {json.dumps(summary)}")
