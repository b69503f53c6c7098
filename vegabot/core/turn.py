"""
Turn planner for vegabot.

Assembles the provider-ready payload for one chat turn. The planner picks a
context strategy, condenses older history when the strategy asks for it,
composes the system prompt, and renders messages and tools in the target
model's wire format. It makes no model call other than the optional
summarization; invoking the chat model is left to the caller.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from loguru import logger

from vegabot.core.messages import canonicalize_messages
from vegabot.core.models import (
    ConversationMessage,
    ModelDescriptor,
    ToolDefinition,
    TurnPlan,
)
from vegabot.core.registry import DEFAULT_REGISTRY, ModelRegistry
from vegabot.core.strategy import (
    StrategyThresholds,
    build_context_for_strategy,
    detect_message_type,
    estimate_context_tokens,
    select_context_strategy,
    thresholds_for,
)
from vegabot.core.summarizer import (
    Summarizer,
    needs_summarization,
    split_messages_for_summarization,
)
from vegabot.core.tools import transform_messages_for_model, transform_tools_for_model


@dataclass
class TurnRequest:
    """Inputs of one chat turn, as supplied by the conversation handler."""

    model_id: str
    user_message: str
    history: list[ConversationMessage | dict[str, Any]] = field(default_factory=list)
    trading_context: dict[str, Any] | None = None
    tier: str = "free"
    tools: list[ToolDefinition | dict[str, Any]] | None = None
    has_trade_data: bool | None = None  # defaults to bool(trading_context)


def _drop_leading_tool_results(messages: list[ConversationMessage]) -> list[ConversationMessage]:
    """Remove tool results whose originating assistant call was cut off by truncation."""
    start = 0
    while start < len(messages) and messages[start].role == "tool":
        start += 1
    return messages[start:]


class TurnPlanner:
    """
    Builds a TurnPlan for each user message.

    The planner is stateless between turns; every input arrives in the
    TurnRequest, so concurrent turns never share anything but the read-only
    registry and the summarizer's client.
    """

    def __init__(
        self,
        summarizer: Summarizer,
        registry: ModelRegistry = DEFAULT_REGISTRY,
        system_prompt: str = "",
        *,
        threshold_overrides: Mapping[str, int] | None = None,
        keep_recent: int | None = None,
        summary_max_length: int = 500,
    ) -> None:
        """
        Args:
            summarizer: Summarizer used to condense older history.
            registry: Model catalog.
            system_prompt: The base system prompt.
            threshold_overrides: StrategyThresholds fields that replace the
                provider-specific values for every model.
            keep_recent: Upper bound on recent messages kept verbatim when older
                history is summarized.
            summary_max_length: Maximum length of the conversation summary.
        """
        self._summarizer = summarizer
        self._registry = registry
        self._system_prompt = system_prompt
        self._overrides = dict(threshold_overrides or {})
        self._keep_recent = keep_recent
        self._summary_max_length = summary_max_length

    async def plan_turn(self, request: TurnRequest) -> TurnPlan:
        """
        Build the provider-ready payload for one turn.

        Args:
            request: The turn inputs.

        Returns:
            Messages, system prompt and tools in the target model's format,
            together with the strategy decision and any summary produced.

        Raises:
            ModelNotFoundError: If the model id is not registered.
            MissingToolSchemaError: If a tool requires a schema but has none.
        """
        model = self._registry.get_model(request.model_id)
        history = canonicalize_messages(request.history)
        has_data = (
            bool(request.trading_context)
            if request.has_trade_data is None
            else request.has_trade_data
        )

        decision = select_context_strategy(
            model.id,
            conversation_depth=len(history),
            tier=request.tier,
            message_type=detect_message_type(request.user_message),
            estimated_context_tokens=estimate_context_tokens(request.trading_context),
            has_trade_data=has_data,
            thresholds=self._thresholds_for(model),
            registry=self._registry,
        )
        plan = build_context_for_strategy(
            decision.strategy, request.trading_context, recent_messages=history
        )

        keep = plan.recent_message_count if plan.include_recent_messages else 0
        if plan.summarize_history and self._keep_recent is not None:
            keep = min(keep, self._keep_recent)
        split = split_messages_for_summarization(history, keep_recent=keep)
        recent = _drop_leading_tool_results(split.to_keep)

        summary = None
        if plan.summarize_history and split.to_summarize and needs_summarization(history):
            summary = await self._summarizer.summarize_conversation(
                split.to_summarize, max_length=self._summary_max_length
            )
            logger.debug(
                "turn: summarized {} older messages ({} tokens, provider={})",
                len(split.to_summarize),
                summary.tokens_used,
                summary.provider_used,
            )

        system = self._compose_system(plan.trading_context, summary.summary if summary else None)
        canonical = [
            *([ConversationMessage(role="system", content=system)] if system else []),
            *recent,
            ConversationMessage(role="user", content=request.user_message),
        ]
        return TurnPlan(
            model=model.id,
            system=system,
            messages=transform_messages_for_model(canonical, model.id, self._registry),
            tools=transform_tools_for_model(request.tools, model.id, self._registry),
            decision=decision,
            summary=summary,
        )

    def _thresholds_for(self, model: ModelDescriptor) -> StrategyThresholds | None:
        if not self._overrides:
            return None
        return replace(thresholds_for(model.provider), **self._overrides)

    def _compose_system(
        self, trading_context: dict[str, Any] | None, conversation_summary: str | None
    ) -> str:
        system = self._system_prompt
        if trading_context:
            block = json.dumps(trading_context, indent=2, default=str)
            system += f"\n\n## Trading Context\n\n```json\n{block}\n```"
        if conversation_summary:
            system += f"\n\n## Conversation Summary\n\n{conversation_summary}"
        return system.strip()
