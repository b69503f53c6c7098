"""OpenAI-compatible summarization adapter.

Works with any provider that exposes an OpenAI-compatible API:
DeepSeek, OpenAI, local vLLM, LM Studio, etc.

The summarizer only needs one short, non-streaming reply per call, so the
adapter issues a single chat completion and returns its text and usage.
"""

from __future__ import annotations

from typing import Any

from openai import AsyncOpenAI

from vegabot.core.errors import SummarizationError
from vegabot.core.models import Completion, Provider


class OpenAISummaryAdapter:
    """
    Summarization client for OpenAI-compatible endpoints.

    Implements SummaryLLMPort via structural subtyping (no explicit inheritance).
    """

    def __init__(
        self,
        api_base: str,
        api_key: str,
        model: str,
        provider: Provider = Provider.DEEPSEEK,
        timeout_seconds: float = 30.0,
    ) -> None:
        """
        Args:
            api_base: Base URL for the API (e.g., "https://api.deepseek.com/v1").
            api_key: API key for authentication.
            model: Model identifier (e.g., "deepseek-chat").
            provider: Provider reported in summary results.
            timeout_seconds: HTTP timeout applied by the SDK client.
        """
        self._client = AsyncOpenAI(base_url=api_base, api_key=api_key, timeout=timeout_seconds)
        self.model = model
        self.provider = provider

    async def complete(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> Completion:
        """
        Send one user prompt and return the reply.

        Raises:
            SummarizationError: If the response carries no choices or no text.
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        response = await self._client.chat.completions.create(**kwargs)
        if not response.choices:
            raise SummarizationError("Summarization response contained no choices")

        text = response.choices[0].message.content or ""
        if not text.strip():
            raise SummarizationError("Summarization response was empty")

        usage = response.usage
        return Completion(
            text=text,
            input_tokens=(usage.prompt_tokens or 0) if usage else 0,
            output_tokens=(usage.completion_tokens or 0) if usage else 0,
        )
