from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vegabot.adapters.llm.openai import OpenAISummaryAdapter
from vegabot.core.errors import SummarizationError
from vegabot.core.models import Provider


def _response(
    text: str | None, prompt_tokens: int = 40, completion_tokens: int = 12
) -> MagicMock:
    response = MagicMock()
    choice = MagicMock()
    choice.message.content = text
    response.choices = [choice]
    response.usage.prompt_tokens = prompt_tokens
    response.usage.completion_tokens = completion_tokens
    return response


async def test_complete_sends_single_user_prompt() -> None:
    with patch("vegabot.adapters.llm.openai.AsyncOpenAI") as mock_openai:
        mock_client = mock_openai.return_value
        mock_client.chat.completions.create = AsyncMock(return_value=_response("A summary."))

        adapter = OpenAISummaryAdapter(
            api_base="http://test", api_key="key", model="deepseek-chat", timeout_seconds=12
        )
        completion = await adapter.complete("Summarize this", max_tokens=125, temperature=0.3)

        mock_openai.assert_called_once_with(base_url="http://test", api_key="key", timeout=12)
        _, kwargs = mock_client.chat.completions.create.call_args
        assert kwargs == {
            "model": "deepseek-chat",
            "messages": [{"role": "user", "content": "Summarize this"}],
            "max_tokens": 125,
            "temperature": 0.3,
        }
        assert completion.text == "A summary."
        assert completion.total_tokens == 52
        assert adapter.provider is Provider.DEEPSEEK


async def test_provider_is_configurable() -> None:
    with patch("vegabot.adapters.llm.openai.AsyncOpenAI"):
        adapter = OpenAISummaryAdapter(
            api_base="http://test", api_key="key", model="gpt-4o-mini", provider=Provider.OPENAI
        )
    assert adapter.provider is Provider.OPENAI
    assert adapter.model == "gpt-4o-mini"


@pytest.mark.parametrize("text", [None, "", "   "])
async def test_empty_reply_raises(text) -> None:
    with patch("vegabot.adapters.llm.openai.AsyncOpenAI") as mock_openai:
        mock_openai.return_value.chat.completions.create = AsyncMock(return_value=_response(text))
        adapter = OpenAISummaryAdapter(api_base="http://test", api_key="key", model="m")
        with pytest.raises(SummarizationError):
            await adapter.complete("p", max_tokens=10, temperature=0.3)


async def test_no_choices_raises() -> None:
    with patch("vegabot.adapters.llm.openai.AsyncOpenAI") as mock_openai:
        response = MagicMock()
        response.choices = []
        mock_openai.return_value.chat.completions.create = AsyncMock(return_value=response)
        adapter = OpenAISummaryAdapter(api_base="http://test", api_key="key", model="m")
        with pytest.raises(SummarizationError, match="no choices"):
            await adapter.complete("p", max_tokens=10, temperature=0.3)


async def test_missing_usage_counts_as_zero() -> None:
    with patch("vegabot.adapters.llm.openai.AsyncOpenAI") as mock_openai:
        response = _response("ok")
        response.usage = None
        mock_openai.return_value.chat.completions.create = AsyncMock(return_value=response)
        adapter = OpenAISummaryAdapter(api_base="http://test", api_key="key", model="m")
        completion = await adapter.complete("p", max_tokens=10, temperature=0.3)
    assert completion.total_tokens == 0
