"""
Core data models for vegabot.

These are plain dataclasses and enums with no external dependencies beyond the
standard library. They represent the domain concepts shared across the system:
model descriptors, tool definitions and calls, conversation messages, and the
per-turn decisions produced by the strategy selector and summarizer.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from vegabot.core.errors import MissingToolSchemaError


class Provider(str, Enum):
    """An external LLM vendor."""

    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    OPENAI = "openai"


class ToolFormat(str, Enum):
    """Wire convention used for tool definitions and tool calls."""

    ANTHROPIC = "anthropic"  # content blocks, input_schema
    OPENAI = "openai"  # function objects, parameters
    NONE = "none"  # model cannot call tools


class CostClass(str, Enum):
    LOW = "low"
    STANDARD = "standard"
    PREMIUM = "premium"


class ContextStrategy(str, Enum):
    """How much history and trading data a turn includes, most permissive first."""

    FULL = "full"
    SUMMARY = "summary"
    MINIMAL = "minimal"
    NONE = "none"

    @property
    def rank(self) -> int:
        """Permissiveness rank: FULL=3, SUMMARY=2, MINIMAL=1, NONE=0."""
        return _STRATEGY_RANK[self]


_STRATEGY_RANK = {
    ContextStrategy.FULL: 3,
    ContextStrategy.SUMMARY: 2,
    ContextStrategy.MINIMAL: 1,
    ContextStrategy.NONE: 0,
}


class MessageType(str, Enum):
    """Heuristic intent bucket of a user message."""

    GENERIC = "generic"
    OFF_TOPIC = "off_topic"
    MARKET_DATA = "market_data"
    TRADING_ANALYSIS = "trading_analysis"
    QUESTION = "question"
    UNKNOWN = "unknown"


# Default JSON schema for tools that take no arguments.
def empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}, "required": []}


@dataclass(frozen=True)
class ModelDescriptor:
    """Static description of a supported model."""

    id: str
    provider: Provider
    tool_format: ToolFormat
    context_window_tokens: int
    cost_class: CostClass
    name: str = ""
    max_output_tokens: int = 4096
    supports_streaming: bool = True
    supports_caching: bool = False
    supports_prefix_caching: bool = False
    supports_vision: bool = False
    cost_per_1m_input: float = 0.0
    cost_per_1m_output: float = 0.0
    best_for: tuple[str, ...] = ()
    tier: str = "free"

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("ModelDescriptor.id must not be empty")
        if self.context_window_tokens <= 0:
            raise ValueError(
                f"Model '{self.id}': context_window_tokens must be > 0, "
                f"got {self.context_window_tokens}"
            )

    @property
    def supports_tools(self) -> bool:
        return self.tool_format is not ToolFormat.NONE

    @property
    def wire_format(self) -> ToolFormat:
        """Message wire convention, independent of tool support."""
        if self.provider is Provider.ANTHROPIC:
            return ToolFormat.ANTHROPIC
        return ToolFormat.OPENAI


@dataclass
class ToolDefinition:
    """
    Provider-agnostic tool definition.

    The canonical shape is Anthropic's (``input_schema``). OpenAI-shaped dicts
    are always derived from it, never stored.
    """

    name: str
    description: str = ""
    input_schema: dict[str, Any] | None = None
    requires_schema: bool = False

    def validate(self) -> None:
        """
        Raises:
            MissingToolSchemaError: If the tool requires a schema but has none.
        """
        if self.requires_schema and not self.input_schema:
            raise MissingToolSchemaError(self.name)

    def to_anthropic_dict(self) -> dict[str, Any]:
        """Serialize to the canonical Anthropic tool shape."""
        self.validate()
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema if self.input_schema else empty_schema(),
        }


@dataclass
class ToolUseRequest:
    """A tool invocation requested by the model, in canonical form."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """The result of executing a tool, bound to the request that asked for it."""

    tool_use_id: str
    payload: Any
    is_error: bool = False

    def content_text(self) -> str:
        """Return the payload as text; non-string payloads are JSON-encoded."""
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, default=str)


@dataclass
class ConversationMessage:
    """A single message in a conversation, in canonical form."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str | list[dict[str, Any]] | None = ""
    tool_calls: list[ToolUseRequest] | None = None
    tool_use_id: str | None = None  # set when role == "tool"
    is_error: bool = False  # set when role == "tool"
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def text(self) -> str:
        """Plain text of the message; text blocks are joined for block content."""
        if isinstance(self.content, str):
            return self.content
        if not self.content:
            return ""
        return "\n".join(
            str(block.get("text", ""))
            for block in self.content
            if isinstance(block, dict) and block.get("type") == "text"
        )


@dataclass(frozen=True)
class PromptContext:
    """
    Read-only per-turn snapshot used by the dynamic prompt generator.

    Built fresh every turn by ``build_prompt_context``; never persisted.
    Fields are ``None`` when the upstream analytics could not establish them.
    """

    has_trade_data: bool = False
    is_first_visit: bool = True
    total_trades: int = 0
    time_of_day: str = "morning"
    days_since_last_trade: int | None = None
    days_since_last_conversation: int | None = None
    recent_trade_count: int = 0

    win_rate: float | None = None
    total_pnl: float | None = None
    profit_factor: float | None = None
    avg_win: float | None = None
    avg_loss: float | None = None
    loss_to_win_ratio: float | None = None
    win_to_loss_ratio: float | None = None

    best_symbol: str | None = None
    best_symbol_win_rate: float | None = None
    worst_symbol: str | None = None
    worst_symbol_win_rate: float | None = None
    worst_symbol_trades: int = 0
    top_symbol: str | None = None
    top_symbol_trades: int = 0
    unique_symbols: int = 0

    win_streak: int = 0
    lose_streak: int = 0
    avg_trades_per_week: int = 0

    best_time_slot: str | None = None
    best_time_slot_win_rate: float | None = None
    worst_time_slot: str | None = None
    worst_time_slot_win_rate: float | None = None

    largest_trade: float | None = None
    avg_trade_size: float | None = None

    last_topic: str | None = None
    explored_topics: frozenset[str] = frozenset()
    new_trades_since_last_visit: int = 0
    experience_level: Literal["beginner", "intermediate", "advanced"] = "intermediate"


@dataclass
class StrategyDecision:
    """The context strategy chosen for one turn, with its explanation."""

    strategy: ContextStrategy
    reason: str
    factors: dict[str, Any] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)


@dataclass
class ContextPlan:
    """Concrete truncation parameters derived from a ContextStrategy."""

    strategy: ContextStrategy
    trading_context: dict[str, Any] | None
    conversation_summary: str | None
    include_recent_messages: bool
    recent_message_count: int
    summarize_history: bool
    reduce_trading_data: bool


@dataclass
class SummaryResult:
    """Outcome of a summarization call. ``provider_used`` is None for the extractive path."""

    summary: str
    tokens_used: int = 0
    provider_used: Provider | None = None
    model: str | None = None


@dataclass
class TurnPlan:
    """Provider-ready payload for one chat turn."""

    model: str
    system: str
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]] | None
    decision: StrategyDecision
    summary: SummaryResult | None = None


@dataclass
class Completion:
    """A single non-streaming reply from a summarization model."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
