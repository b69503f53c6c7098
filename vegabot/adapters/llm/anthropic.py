"""Anthropic summarization adapter.

Uses the native Messages API for deployments that summarize with a Claude
model instead of an OpenAI-compatible one.
"""

from __future__ import annotations

import anthropic

from vegabot.core.errors import SummarizationError
from vegabot.core.models import Completion, Provider


class AnthropicSummaryAdapter:
    """
    Summarization client for the Anthropic Messages API.

    Implements SummaryLLMPort via structural subtyping (no explicit inheritance).
    """

    provider = Provider.ANTHROPIC

    def __init__(self, api_key: str, model: str, timeout_seconds: float = 30.0) -> None:
        """
        Args:
            api_key: Anthropic API key.
            model: Model identifier (e.g., "claude-3-5-haiku-20241022").
            timeout_seconds: HTTP timeout applied by the SDK client.
        """
        self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout_seconds)
        self.model = model

    async def complete(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> Completion:
        """
        Send one user prompt and return the concatenated text blocks of the reply.

        Raises:
            SummarizationError: If the reply contains no text.
        """
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            raise SummarizationError("Summarization response was empty")

        usage = response.usage
        return Completion(
            text=text,
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
        )
