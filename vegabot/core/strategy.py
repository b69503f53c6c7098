"""
Context strategy selection.

Decides, per turn, how much conversation history and structured trading data
goes into the prompt. The decision is a pure function of its inputs; nothing
is remembered between turns.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Sequence
from dataclasses import asdict, dataclass, replace
from typing import Any

from loguru import logger

from vegabot.core.models import (
    ContextPlan,
    ContextStrategy,
    MessageType,
    Provider,
    StrategyDecision,
)
from vegabot.core.registry import DEFAULT_REGISTRY, ModelRegistry


@dataclass(frozen=True)
class StrategyThresholds:
    """Message-count and token limits that drive strategy selection."""

    summary_after_messages: int = 10
    minimal_after_messages: int = 20
    max_full_context_tokens: int = 8000
    max_summary_tokens: int = 3000


# Low-cost providers get more generous limits than premium ones.
PROVIDER_THRESHOLD_OVERRIDES: dict[Provider, dict[str, int]] = {
    Provider.DEEPSEEK: {
        "summary_after_messages": 15,
        "minimal_after_messages": 30,
        "max_full_context_tokens": 12000,
    },
    Provider.ANTHROPIC: {
        "summary_after_messages": 10,
        "minimal_after_messages": 20,
        "max_full_context_tokens": 8000,
    },
}

_MAX_MESSAGES = {
    ContextStrategy.FULL: 20,
    ContextStrategy.SUMMARY: 6,
    ContextStrategy.MINIMAL: 4,
    ContextStrategy.NONE: 2,
}

_GENERIC_PATTERNS = [
    re.compile(p)
    for p in (
        r"^(hi|hello|hey|thanks|thank you)",
        r"what can you",
        r"how do you",
        r"tell me about yourself",
        r"who are you",
    )
]
_MARKET_PATTERNS = [
    re.compile(p)
    for p in (
        r"price of",
        r"current price",
        r"stock price",
        r"market.*today",
        r"what is .* trading at",
        r"show me .* chart",
    )
]
_TRADING_PATTERNS = [
    re.compile(p)
    for p in (
        r"win rate",
        r"p[&n]l",
        r"profit",
        r"loss",
        r"trade",
        r"position",
        r"symbol",
        r"performance",
        r"analysis",
        r"pattern",
        r"strategy",
        r"risk",
        r"drawdown",
        r"equity",
    )
]


def thresholds_for(
    provider: Provider | None, base: StrategyThresholds | None = None
) -> StrategyThresholds:
    """Return ``base`` (or the defaults) with the provider's overrides applied."""
    merged = base or StrategyThresholds()
    overrides = PROVIDER_THRESHOLD_OVERRIDES.get(provider) if provider else None
    if overrides:
        merged = replace(merged, **overrides)
    return merged


def detect_message_type(message: Any) -> MessageType:
    """
    Classify a user message with ordered keyword patterns.

    Buckets are tried in order generic, market data, trading analysis; the
    first match wins and anything else is a plain question.
    """
    if not message or not isinstance(message, str):
        return MessageType.UNKNOWN
    text = message.lower().strip()
    if any(p.search(text) for p in _GENERIC_PATTERNS):
        return MessageType.GENERIC
    if any(p.search(text) for p in _MARKET_PATTERNS):
        return MessageType.MARKET_DATA
    if any(p.search(text) for p in _TRADING_PATTERNS):
        return MessageType.TRADING_ANALYSIS
    return MessageType.QUESTION


def estimate_context_tokens(data: Any) -> int:
    """Approximate token size of a JSON-serializable value (serialized length / 4)."""
    if data is None:
        return 0
    try:
        return math.ceil(len(json.dumps(data, default=str)) / 4)
    except (TypeError, ValueError):
        return 0


def _non_negative(value: Any) -> int:
    """Coerce an advisory count to an int >= 0; unusable values count as 0."""
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _decision(
    strategy: ContextStrategy,
    reason: str,
    factors: dict[str, Any],
    recommendations: list[str] | None = None,
) -> StrategyDecision:
    logger.debug("strategy: {} ({})", strategy.value, reason)
    return StrategyDecision(
        strategy=strategy,
        reason=reason,
        factors=factors,
        recommendations=recommendations or [],
    )


def _coerce_message_type(message_type: MessageType | str) -> MessageType:
    if isinstance(message_type, MessageType):
        return message_type
    try:
        return MessageType(message_type)
    except ValueError:
        logger.debug(
            "strategy: unrecognized message type {!r}, treating as question", message_type
        )
        return MessageType.QUESTION


def select_context_strategy(
    model_id: str,
    conversation_depth: int = 0,
    tier: str = "free",
    message_type: MessageType | str = MessageType.QUESTION,
    estimated_context_tokens: int | None = 0,
    has_trade_data: bool = True,
    thresholds: StrategyThresholds | None = None,
    registry: ModelRegistry = DEFAULT_REGISTRY,
) -> StrategyDecision:
    """
    Choose the context strategy for one turn.

    Rules are evaluated in a fixed order and the first match wins: missing trade
    data, generic intent, oversized context, conversation depth (minimal, then
    summary threshold), then tier.

    Args:
        model_id: Target model id; its provider selects the threshold overrides.
        conversation_depth: Number of messages in the conversation so far.
        tier: Subscription tier ("free" or "pro").
        message_type: Result of detect_message_type for the user message.
        estimated_context_tokens: Estimated size of the full trading context.
        has_trade_data: Whether the user has any trade data.
        thresholds: Explicit thresholds, used as given. When None, the defaults
            with the provider's overrides apply.
        registry: Catalog used to resolve the model.

    Returns:
        The decision with its reason, input factors and recommendations.

    Raises:
        ModelNotFoundError: If model_id is not registered.
    """
    model = registry.get_model(model_id)
    limits = thresholds if thresholds is not None else thresholds_for(model.provider)
    kind = _coerce_message_type(message_type)
    depth = _non_negative(conversation_depth)
    tokens = _non_negative(estimated_context_tokens)

    factors: dict[str, Any] = {
        "conversation_depth": depth,
        "tier": tier,
        "message_type": kind.value,
        "provider": model.provider.value,
        "has_trade_data": has_trade_data,
        "estimated_context_tokens": tokens,
        "context_window": model.context_window_tokens,
        "thresholds": asdict(limits),
    }

    if not has_trade_data:
        return _decision(
            ContextStrategy.MINIMAL,
            "No trade data available",
            factors,
            ["Encourage user to connect exchange or upload CSV"],
        )
    if kind in (MessageType.GENERIC, MessageType.OFF_TOPIC):
        return _decision(
            ContextStrategy.NONE, "Message does not require trading context", factors
        )
    if tokens > limits.max_full_context_tokens:
        return _decision(
            ContextStrategy.SUMMARY,
            f"Full context ({tokens} tokens) exceeds limit ({limits.max_full_context_tokens})",
            factors,
            ["Consider summarizing older conversation history"],
        )
    if depth >= limits.minimal_after_messages:
        return _decision(
            ContextStrategy.MINIMAL,
            f"Conversation depth ({depth}) exceeds minimal threshold "
            f"({limits.minimal_after_messages})",
            factors,
            ["Summarize conversation", "Keep only recent exchanges"],
        )
    if depth >= limits.summary_after_messages:
        return _decision(
            ContextStrategy.SUMMARY,
            f"Conversation depth ({depth}) exceeds summary threshold "
            f"({limits.summary_after_messages})",
            factors,
            ["Summarize older messages", "Keep recent context"],
        )
    if tier == "pro":
        return _decision(
            ContextStrategy.FULL, "Pro tier with normal conversation depth", factors
        )
    return _decision(
        ContextStrategy.FULL, "Normal conversation depth with available data", factors
    )


def build_trading_data_summary(full_context: dict[str, Any] | None) -> dict[str, Any] | None:
    """Reduce a trading context to core counts, key performance numbers and the top 3 symbols."""
    if not full_context:
        return None
    summary: dict[str, Any] = {}
    core = full_context.get("summary")
    if isinstance(core, dict):
        summary["summary"] = {
            "totalTrades": core.get("totalTrades"),
            "tradingDurationMonths": core.get("tradingDurationMonths"),
        }
    perf = full_context.get("performance")
    if isinstance(perf, dict):
        summary["performance"] = {
            key: perf.get(key)
            for key in ("totalPnL", "winRate", "profitFactor", "avgWin", "avgLoss")
        }
    symbols = full_context.get("symbols")
    if isinstance(symbols, dict) and symbols.get("mostTraded"):
        summary["topSymbols"] = list(symbols["mostTraded"])[:3]
    return summary


def max_messages_for_strategy(strategy: ContextStrategy) -> int:
    """Recommended number of recent messages to replay under a strategy."""
    return _MAX_MESSAGES.get(strategy, 10)


def build_context_for_strategy(
    strategy: ContextStrategy,
    full_context: dict[str, Any] | None,
    conversation_summary: str | None = None,
    recent_messages: Sequence[Any] = (),
    trading_data_summary: dict[str, Any] | None = None,
) -> ContextPlan:
    """Map a strategy to concrete truncation parameters."""
    available = len(recent_messages)
    if strategy is ContextStrategy.FULL:
        return ContextPlan(
            strategy=strategy,
            trading_context=full_context,
            conversation_summary=conversation_summary,
            include_recent_messages=True,
            recent_message_count=available,
            summarize_history=False,
            reduce_trading_data=False,
        )
    if strategy is ContextStrategy.SUMMARY:
        return ContextPlan(
            strategy=strategy,
            trading_context=trading_data_summary or build_trading_data_summary(full_context),
            conversation_summary=conversation_summary,
            include_recent_messages=True,
            recent_message_count=min(available, _MAX_MESSAGES[strategy]),
            summarize_history=True,
            reduce_trading_data=True,
        )
    if strategy is ContextStrategy.MINIMAL:
        return ContextPlan(
            strategy=strategy,
            trading_context=None,
            conversation_summary=conversation_summary,
            include_recent_messages=True,
            recent_message_count=min(available, _MAX_MESSAGES[strategy]),
            summarize_history=True,
            reduce_trading_data=True,
        )
    return ContextPlan(
        strategy=strategy,
        trading_context=None,
        conversation_summary=None,
        include_recent_messages=True,
        recent_message_count=min(available, _MAX_MESSAGES[ContextStrategy.NONE]),
        summarize_history=False,
        reduce_trading_data=True,
    )
