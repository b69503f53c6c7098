"""Filesystem persistence for conversation transcripts.

A conversation is stored as JSONL, one message per line. Lines may be in
canonical form (as written by ``append_message``) or in either provider's
wire shape (exports from older conversation stores); both are read into
canonical ConversationMessage objects.

Design goals:
- Keep callers responsive: all filesystem IO is run in ``asyncio.to_thread``.
- Be resilient: malformed/partial JSONL lines are skipped instead of crashing.
- Support concurrent access: appends use ``fcntl.flock``.
"""

from __future__ import annotations

import asyncio
import fcntl
import json
from contextlib import suppress
from pathlib import Path
from typing import Any

from loguru import logger

from vegabot.core.errors import ToolArgumentsError
from vegabot.core.messages import canonicalize_message
from vegabot.core.models import ConversationMessage


def serialize_message(message: ConversationMessage) -> str:
    """Serialize a canonical message to a JSONL line (no trailing newline)."""
    d: dict[str, Any] = {
        "role": message.role,
        "content": message.content,
        "created_at": message.created_at.isoformat(),
    }
    if message.tool_calls:
        d["tool_calls"] = [
            {"id": tc.id, "name": tc.name, "arguments": tc.arguments} for tc in message.tool_calls
        ]
    if message.tool_use_id:
        d["tool_use_id"] = message.tool_use_id
    if message.is_error:
        d["is_error"] = True
    return json.dumps(d, default=str)


def deserialize_messages(line: str) -> list[ConversationMessage]:
    """Parse one JSONL line into canonical messages.

    Raises:
        json.JSONDecodeError: If the line is not valid JSON.
        TypeError: If the line does not hold a JSON object.
        ToolArgumentsError: If a stored tool call has malformed arguments.
    """
    d = json.loads(line)
    if not isinstance(d, dict):
        raise TypeError(f"expected a JSON object, got {type(d).__name__}")
    return canonicalize_message(d)


def deserialize_messages_safe(line: str) -> list[ConversationMessage] | None:
    """Best-effort line parser; returns None so the caller can skip the line."""
    try:
        return deserialize_messages(line)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, ToolArgumentsError):
        return None


class JsonlConversationStore:
    """Reads and appends conversation transcripts stored as JSONL files."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> list[ConversationMessage]:
        """Load every message of the transcript in file order.

        Returns:
            Canonical messages; an empty list if the file does not exist.
        """
        path = self._path

        def _read() -> tuple[list[ConversationMessage], int, str | None]:
            if not path.exists():
                return [], 0, None

            messages: list[ConversationMessage] = []
            skipped_lines = 0
            first_skipped_preview: str | None = None
            with path.open("r", encoding="utf-8", errors="replace") as f:
                for text_line in f:
                    line = text_line.strip()
                    if not line:
                        continue
                    parsed = deserialize_messages_safe(line)
                    if parsed is None:
                        skipped_lines += 1
                        if first_skipped_preview is None:
                            first_skipped_preview = line[:120]
                        continue
                    messages.extend(parsed)
            return messages, skipped_lines, first_skipped_preview

        messages, skipped_lines, preview = await asyncio.to_thread(_read)
        if skipped_lines:
            logger.warning(
                "Skipped {} malformed conversation line(s) in {}. First error preview: {!r}",
                skipped_lines,
                path,
                preview,
            )
        return messages

    async def append_message(self, message: ConversationMessage) -> None:
        """Append one message to the transcript, creating the file if needed."""
        path = self._path
        line = serialize_message(message) + "\n"

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                # Exclusive lock keeps concurrent writers from interleaving lines.
                fcntl.flock(f, fcntl.LOCK_EX)
                try:
                    f.write(line)
                finally:
                    with suppress(OSError):
                        fcntl.flock(f, fcntl.LOCK_UN)

        await asyncio.to_thread(_write)
