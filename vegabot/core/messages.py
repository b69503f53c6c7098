"""
Canonical conversation message helpers.

Stored history may contain messages persisted in either provider shape (for
example Anthropic content blocks written before a provider switch). This
module is the ingestion boundary: ``canonicalize_messages`` sniffs the shape
once and produces ConversationMessage objects, after which the core only
works with canonical messages.
"""

from __future__ import annotations

import json
import math
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import Any

from loguru import logger

from vegabot.core.models import ConversationMessage, ToolUseRequest
from vegabot.core.providers import AnthropicProviderAdapter, OpenAIProviderAdapter

_VALID_ROLES = ("system", "user", "assistant", "tool")

# Per-message overhead for role and framing, in estimated tokens.
_MESSAGE_OVERHEAD_TOKENS = 10

_anthropic = AnthropicProviderAdapter()
_openai = OpenAIProviderAdapter()


def _parse_created_at(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now()


def _block_text(content: Any) -> str:
    """Flatten tool_result content, which may itself be a list of text blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            str(b.get("text", "")) for b in content if isinstance(b, dict) and "text" in b
        )
    if content is None:
        return ""
    return json.dumps(content, default=str)


def _expand_blocks(
    role: str, blocks: list[dict[str, Any]], created_at: datetime
) -> list[ConversationMessage]:
    """Split an Anthropic block list into canonical messages, keeping block order."""
    out: list[ConversationMessage] = []
    text_parts: list[str] = []
    tool_calls: list[ToolUseRequest] = []

    def flush_text() -> None:
        if text_parts:
            out.append(
                ConversationMessage(role=role, content="\n".join(text_parts), created_at=created_at)  # type: ignore[arg-type]
            )
            text_parts.clear()

    for block in blocks:
        kind = block.get("type") if isinstance(block, dict) else None
        if kind == "text":
            text_parts.append(str(block.get("text", "")))
        elif kind == "tool_use":
            tool_calls.append(_anthropic.from_provider_tool_use(block))
        elif kind == "tool_result":
            flush_text()
            out.append(
                ConversationMessage(
                    role="tool",
                    content=_block_text(block.get("content")),
                    tool_use_id=block.get("tool_use_id"),
                    is_error=bool(block.get("is_error", False)),
                    created_at=created_at,
                )
            )
        else:
            logger.warning("messages: skipping unrecognized content block type {!r}", kind)

    if tool_calls:
        out.append(
            ConversationMessage(
                role="assistant",
                content="\n".join(text_parts),
                tool_calls=tool_calls,
                created_at=created_at,
            )
        )
    else:
        flush_text()
    return out


def canonicalize_message(raw: ConversationMessage | dict[str, Any]) -> list[ConversationMessage]:
    """
    Convert one stored message (canonical or either provider shape) to canonical form.

    A single Anthropic user message holding several tool_result blocks becomes
    several role="tool" messages, so the result is a list.

    Raises:
        ToolArgumentsError: If an OpenAI tool call carries malformed JSON arguments.
    """
    if isinstance(raw, ConversationMessage):
        if isinstance(raw.content, list):
            return _expand_blocks(raw.role, raw.content, raw.created_at)
        return [raw]

    role = raw.get("role")
    if role not in _VALID_ROLES:
        logger.warning("messages: skipping message with unknown role {!r}", role)
        return []
    created_at = _parse_created_at(raw.get("created_at") or raw.get("timestamp"))
    content = raw.get("content")

    if role == "tool":
        return [
            ConversationMessage(
                role="tool",
                content=_block_text(content),
                tool_use_id=raw.get("tool_call_id") or raw.get("tool_use_id"),
                is_error=bool(raw.get("is_error", False)),
                created_at=created_at,
            )
        ]
    if isinstance(content, list):
        return _expand_blocks(role, content, created_at)
    if role == "assistant" and raw.get("tool_calls"):
        calls = [
            tc if isinstance(tc, ToolUseRequest) else _openai.from_provider_tool_use(tc)
            for tc in raw["tool_calls"]
        ]
        return [
            ConversationMessage(
                role="assistant", content=content or "", tool_calls=calls, created_at=created_at
            )
        ]
    return [ConversationMessage(role=role, content=content or "", created_at=created_at)]


def canonicalize_messages(
    messages: Iterable[ConversationMessage | dict[str, Any]],
) -> list[ConversationMessage]:
    """Canonicalize a message sequence, preserving order."""
    out: list[ConversationMessage] = []
    for raw in messages:
        out.extend(canonicalize_message(raw))
    return out


def message_text(message: ConversationMessage | dict[str, Any]) -> str:
    """Best-effort plain text of a message in any shape."""
    if isinstance(message, ConversationMessage):
        return message.text
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            str(b.get("text") or b.get("content") or "")
            for b in content
            if isinstance(b, dict) and (b.get("type") == "text" or "text" in b)
        )
    return ""


def estimate_message_tokens(message: ConversationMessage | dict[str, Any]) -> int:
    """Approximate tokens of one message: characters / 4 plus a fixed overhead."""
    text = message_text(message)
    if isinstance(message, ConversationMessage) and message.tool_calls:
        text += json.dumps([tc.arguments for tc in message.tool_calls], default=str)
    return math.ceil(len(text) / 4) + _MESSAGE_OVERHEAD_TOKENS


def estimate_messages_tokens(messages: Iterable[ConversationMessage | dict[str, Any]]) -> int:
    return sum(math.ceil(len(message_text(m)) / 4) for m in messages)


def trim_messages_to_fit(
    messages: Sequence[ConversationMessage],
    max_tokens: int,
    token_counter: Callable[[ConversationMessage], int] = estimate_message_tokens,
) -> list[ConversationMessage]:
    """
    Drop the oldest non-system messages until the estimate fits in max_tokens.

    System messages are always kept and placed first; the kept conversation
    messages are the most recent ones, in original order.
    """
    system = [m for m in messages if m.role == "system"]
    conversation = [m for m in messages if m.role != "system"]
    total = sum(token_counter(m) for m in system)
    kept: list[ConversationMessage] = []
    for msg in reversed(conversation):
        cost = token_counter(msg)
        if total + cost > max_tokens:
            break
        kept.append(msg)
        total += cost
    kept.reverse()
    return [*system, *kept]


def validate_message(message: ConversationMessage | dict[str, Any] | None) -> list[str]:
    """Return a list of problems with a message; empty when valid."""
    if message is None:
        return ["Message is None"]
    if isinstance(message, ConversationMessage):
        role: Any = message.role
        content: Any = message.content
        has_calls = bool(message.tool_calls)
        tool_use_id = message.tool_use_id
    else:
        role = message.get("role")
        content = message.get("content")
        has_calls = bool(message.get("tool_calls"))
        tool_use_id = message.get("tool_call_id") or message.get("tool_use_id")

    errors: list[str] = []
    if not role:
        errors.append("Missing required field: role")
    elif role not in _VALID_ROLES:
        errors.append(f"Invalid role: {role}")
    if content is None and not (role == "assistant" and has_calls):
        errors.append("Missing required field: content")
    if role == "tool" and not tool_use_id:
        errors.append("Tool message without a tool use id")
    return errors


def extract_for_summarization(
    messages: Sequence[ConversationMessage], max_messages: int = 20
) -> list[ConversationMessage]:
    """Return the last max_messages user/assistant messages, each truncated to 500 chars."""
    chat = [m for m in messages if m.role in ("user", "assistant")]
    if max_messages <= 0:
        return []
    return [
        ConversationMessage(role=m.role, content=m.text[:500], created_at=m.created_at)
        for m in chat[-max_messages:]
    ]
