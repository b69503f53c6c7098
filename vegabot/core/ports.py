"""
Port interfaces for vegabot.

These are Python Protocol classes defining the contracts that adapters must satisfy.
The core domain imports ONLY from this file (and models.py) for any external dependency.

Adapters implement these protocols without inheriting from them (structural subtyping).
mypy verifies conformance statically.
"""

from __future__ import annotations

from typing import Any, Protocol

from vegabot.core.models import (
    Completion,
    ConversationMessage,
    Provider,
    ToolDefinition,
    ToolFormat,
    ToolResult,
    ToolUseRequest,
)


class SummaryLLMPort(Protocol):
    """
    Interface for the low-cost model used by the summarizer.

    Implementations wrap a provider SDK and perform exactly one non-streaming
    request per call. Any exception raised here is caught by the summarizer,
    which then falls back to its extractive path.
    """

    provider: Provider
    model: str

    async def complete(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> Completion:
        """
        Send a single user prompt and return the reply text with token usage.

        Args:
            prompt: The fully rendered summarization prompt.
            max_tokens: Upper bound on generated tokens.
            temperature: Sampling temperature (kept low for repeatable summaries).
        """
        ...


class ProviderAdapter(Protocol):
    """
    Interface for one provider wire convention.

    Every provider-specific message or tool shape is produced or parsed by an
    implementation of this protocol; adding a provider means adding one adapter.
    All methods are pure.
    """

    format: ToolFormat

    def to_provider_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Render canonical tool definitions in this provider's shape."""
        ...

    def to_provider_messages(self, messages: list[ConversationMessage]) -> list[dict[str, Any]]:
        """Render canonical messages in this provider's shape, preserving order."""
        ...

    def tool_use_message(self, tool_uses: list[ToolUseRequest]) -> dict[str, Any]:
        """Build the assistant message that carries the given tool calls."""
        ...

    def tool_result_message(self, result: ToolResult) -> dict[str, Any]:
        """Build the message that returns a tool result to the model."""
        ...

    def from_provider_tool_use(self, raw: dict[str, Any]) -> ToolUseRequest:
        """Parse one provider tool call into canonical form."""
        ...

    def parse_response(self, response: dict[str, Any]) -> tuple[ConversationMessage, int, int]:
        """Parse a completion response into (assistant message, input tokens, output tokens)."""
        ...
