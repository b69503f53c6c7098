"""
Conversation summarizer for vegabot.

Compresses older conversation turns, or a structured trading snapshot, into a
short summary. A low-cost model is used when one is configured; otherwise, or
when the model call fails or times out, a deterministic extractive summary is
produced instead. Summarization never raises for provider problems.
"""

from __future__ import annotations

import asyncio
import json
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from vegabot.core.messages import estimate_messages_tokens
from vegabot.core.models import ConversationMessage, Provider, SummaryResult
from vegabot.core.ports import SummaryLLMPort

SUMMARY_PROMPTS: dict[str, str] = {
    "conversation": (
        "Summarize this trading assistant conversation in 2-3 sentences.\n"
        "Focus on:\n"
        "- Main topics discussed (trading performance, specific symbols, patterns)\n"
        "- Key insights or recommendations given\n"
        "- Any action items or follow-ups mentioned\n\n"
        "Keep it concise - this summary will be used as context for future messages.\n\n"
        "Conversation:\n{messages}\n\n"
        "Summary:"
    ),
    "trading_context": (
        "Summarize this trader's key metrics in a brief paragraph:\n"
        "- Overall performance (P&L, win rate)\n"
        "- Strongest areas\n"
        "- Areas needing improvement\n"
        "- Notable patterns\n\n"
        "Data:\n{data}\n\n"
        "Summary:"
    ),
    "daily_recap": (
        "Create a brief daily trading recap from this conversation:\n"
        "- Topics covered\n"
        "- Key takeaways\n"
        "- Recommended next steps\n\n"
        "Conversation:\n{messages}\n\n"
        "Recap:"
    ),
}

GENERIC_SUMMARY = "General trading discussion."

# First matching pattern names the topic of a user message.
_TOPIC_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"win rate", re.IGNORECASE), "win rate"),
    (re.compile(r"p[&n]l|profit|loss", re.IGNORECASE), "P&L analysis"),
    (re.compile(r"best (time|hour|day)", re.IGNORECASE), "trading timing"),
    (re.compile(r"symbol|pair|btc|eth", re.IGNORECASE), "symbol performance"),
    (re.compile(r"pattern|behavior", re.IGNORECASE), "trading patterns"),
    (re.compile(r"risk|drawdown", re.IGNORECASE), "risk management"),
    (re.compile(r"strategy", re.IGNORECASE), "trading strategy"),
    (re.compile(r"improve|better", re.IGNORECASE), "improvement areas"),
]

_FIRST_SENTENCE = re.compile(r"^[^.!?]+[.!?]")
_MAX_TOPICS = 3
_PER_MESSAGE_CHARS = 300

MessageLike = ConversationMessage | dict[str, Any]


@dataclass
class MessageSplit:
    """Older messages to condense and recent messages to replay verbatim."""

    to_summarize: list[Any] = field(default_factory=list)
    to_keep: list[Any] = field(default_factory=list)


def _role(message: MessageLike) -> str | None:
    if isinstance(message, ConversationMessage):
        return message.role
    return message.get("role")


def _content(message: MessageLike) -> Any:
    if isinstance(message, ConversationMessage):
        return message.content
    return message.get("content")


def _check_max_length(max_length: int) -> None:
    if max_length <= 0:
        raise ValueError(f"max_length must be > 0, got {max_length}")


def format_messages_for_summary(messages: Sequence[MessageLike]) -> str:
    """Render user/assistant turns as "User:"/"Vega:" lines for a summary prompt."""
    lines = []
    for msg in messages:
        role = _role(msg)
        if role not in ("user", "assistant"):
            continue
        label = "User" if role == "user" else "Vega"
        content = _content(msg)
        text = content[:_PER_MESSAGE_CHARS] if isinstance(content, str) else "[Complex content]"
        lines.append(f"{label}: {text}")
    return "\n\n".join(lines)


def extract_topic(content: Any) -> str | None:
    """Return the first topic whose pattern matches a user message, if any."""
    if not content or not isinstance(content, str):
        return None
    for pattern, topic in _TOPIC_PATTERNS:
        if pattern.search(content):
            return topic
    return None


def extract_first_sentence(content: Any) -> str | None:
    if not content or not isinstance(content, str):
        return None
    match = _FIRST_SENTENCE.match(content)
    sentence = match.group(0) if match else content[:100]
    return sentence.strip() or None


def extractive_summary(messages: Sequence[MessageLike], max_length: int = 500) -> SummaryResult:
    """
    Build a summary without a model call.

    Lists up to three distinct topics matched in user messages, followed by the
    first sentence of the latest assistant reply. Never returns an empty summary.

    Args:
        messages: Conversation messages, oldest first.
        max_length: Maximum summary length in characters.

    Returns:
        A SummaryResult with no token usage and no provider.
    """
    _check_max_length(max_length)
    topics: list[str] = []
    for msg in messages:
        if _role(msg) != "user":
            continue
        topic = extract_topic(_content(msg))
        if topic and topic not in topics:
            topics.append(topic)
        if len(topics) == _MAX_TOPICS:
            break

    assistant = [m for m in messages if _role(m) == "assistant"]
    insight = extract_first_sentence(_content(assistant[-1])) if assistant else None

    summary = ""
    if topics:
        summary = f"Discussed: {', '.join(topics)}."
    if insight:
        summary += f" {insight}"
    summary = summary.strip()[:max_length].strip()
    if not summary:
        summary = GENERIC_SUMMARY[:max_length]
    return SummaryResult(summary=summary, tokens_used=0, provider_used=None, model=None)


def build_structured_summary(context: dict[str, Any], max_length: int = 300) -> SummaryResult:
    """Summarize a trading snapshot from fixed fields (counts, win rate, P&L, top symbol)."""
    _check_max_length(max_length)
    parts: list[str] = []
    core = context.get("summary")
    if isinstance(core, dict):
        parts.append(
            f"{core.get('totalTrades', 0)} trades over "
            f"{core.get('tradingDurationMonths', 0)} months"
        )
    perf = context.get("performance")
    if isinstance(perf, dict):
        parts.append(f"{perf.get('winRate', 0)}% win rate, ${perf.get('totalPnL', 0)} P&L")
    symbols = context.get("symbols")
    if isinstance(symbols, dict) and symbols.get("mostTraded"):
        top = symbols["mostTraded"][0]
        name = top.get("symbol") if isinstance(top, dict) else top
        parts.append(f"Most traded: {name}")
    summary = ". ".join(parts)[:max_length] or "No trading summary available."[:max_length]
    return SummaryResult(summary=summary, tokens_used=0, provider_used=None, model=None)


def needs_summarization(
    messages: Sequence[MessageLike],
    *,
    message_threshold: int = 10,
    token_threshold: int = 4000,
    age_threshold_minutes: int = 30,
) -> bool:
    """
    Return True when history is long enough to condense.

    Triggers on message count or on estimated token size. ``age_threshold_minutes``
    is accepted for callers that already pass it but does not affect the result.
    """
    del age_threshold_minutes
    if not messages:
        return False
    if len(messages) >= message_threshold:
        return True
    return estimate_messages_tokens(messages) >= token_threshold


def split_messages_for_summarization(
    messages: Sequence[Any] | None, keep_recent: int = 6
) -> MessageSplit:
    """
    Split history into an older prefix to summarize and a recent suffix to keep.

    Both parts keep their original order and together contain every message.

    Raises:
        ValueError: If keep_recent is negative.
    """
    if keep_recent < 0:
        raise ValueError(f"keep_recent must be >= 0, got {keep_recent}")
    items = list(messages or [])
    cut = max(len(items) - keep_recent, 0)
    return MessageSplit(to_summarize=items[:cut], to_keep=items[cut:])


class Summarizer:
    """
    Produces conversation and trading-context summaries.

    Holds an optional SummaryLLMPort. Without one, every call takes the
    extractive path; with one, the model is tried first under a timeout.
    """

    def __init__(
        self,
        llm: SummaryLLMPort | None = None,
        *,
        model: str | None = None,
        provider: Provider | None = None,
        timeout_seconds: float = 30.0,
        temperature: float = 0.3,
    ) -> None:
        """
        Args:
            llm: Optional low-cost model adapter. If None, only the extractive
                 path is used.
            model: Model name reported in results; defaults to ``llm.model``.
            provider: Provider reported in results; defaults to ``llm.provider``.
            timeout_seconds: Upper bound for one model call.
            temperature: Sampling temperature for the model call.
        """
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {timeout_seconds}")
        self._llm = llm
        self._model = model or (llm.model if llm is not None else None)
        self._provider = provider or (llm.provider if llm is not None else None)
        self._timeout = timeout_seconds
        self._temperature = temperature

    @property
    def model_enabled(self) -> bool:
        return self._llm is not None

    async def summarize_conversation(
        self,
        messages: Sequence[MessageLike],
        *,
        kind: str = "conversation",
        max_length: int = 500,
    ) -> SummaryResult:
        """
        Summarize conversation messages.

        Args:
            messages: Messages to condense, oldest first.
            kind: Prompt template, "conversation" or "daily_recap".
            max_length: Maximum summary length in characters.

        Returns:
            The summary; an empty summary only when ``messages`` is empty.
        """
        _check_max_length(max_length)
        if not messages:
            return SummaryResult(summary="", tokens_used=0, provider_used=None)

        template = SUMMARY_PROMPTS.get(kind)
        if template is None or "{messages}" not in template:
            logger.warning("summarizer: unknown summary kind {!r}, using 'conversation'", kind)
            template = SUMMARY_PROMPTS["conversation"]
        prompt = template.replace("{messages}", format_messages_for_summary(messages))

        result = await self._summarize_with_model(prompt, max_length)
        if result is None:
            return extractive_summary(messages, max_length)
        return result

    async def summarize_trading_context(
        self, context: dict[str, Any] | None, *, max_length: int = 300
    ) -> SummaryResult:
        """Summarize a structured trading snapshot, falling back to build_structured_summary."""
        _check_max_length(max_length)
        if not context:
            return SummaryResult(summary="", tokens_used=0, provider_used=None)

        symbols = context.get("symbols")
        top = symbols.get("mostTraded", [])[:3] if isinstance(symbols, dict) else None
        data = json.dumps(
            {
                "summary": context.get("summary"),
                "performance": context.get("performance"),
                "topSymbols": top,
            },
            indent=2,
            default=str,
        )
        prompt = SUMMARY_PROMPTS["trading_context"].replace("{data}", data)

        result = await self._summarize_with_model(prompt, max_length)
        if result is None:
            return build_structured_summary(context, max_length)
        return result

    async def _summarize_with_model(self, prompt: str, max_length: int) -> SummaryResult | None:
        """Return a model summary, or None when the caller should fall back."""
        if self._llm is None:
            return None
        try:
            async with asyncio.timeout(self._timeout):
                completion = await self._llm.complete(
                    prompt,
                    max_tokens=math.ceil(max_length / 4),
                    temperature=self._temperature,
                )
        except TimeoutError:
            logger.warning(
                "summarizer: model call timed out after {}s, using fallback", self._timeout
            )
            return None
        except Exception as e:
            logger.warning("summarizer: model call failed, using fallback: {}", e)
            return None

        summary = completion.text.strip()[:max_length].strip()
        if not summary:
            logger.warning("summarizer: model returned an empty summary, using fallback")
            return None
        return SummaryResult(
            summary=summary,
            tokens_used=completion.total_tokens,
            provider_used=self._provider,
            model=self._model,
        )
