from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from vegabot.adapters.llm.anthropic import AnthropicSummaryAdapter
from vegabot.core.errors import SummarizationError
from vegabot.core.models import Provider


def _response(*blocks: SimpleNamespace, usage: SimpleNamespace | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        content=list(blocks),
        usage=usage or SimpleNamespace(input_tokens=30, output_tokens=8),
    )


async def test_complete_joins_text_blocks() -> None:
    with patch("anthropic.AsyncAnthropic") as mock_anthropic:
        mock_client = mock_anthropic.return_value
        mock_client.messages.create = AsyncMock(
            return_value=_response(
                SimpleNamespace(type="text", text="Part one. "),
                SimpleNamespace(type="tool_use", id="x"),
                SimpleNamespace(type="text", text="Part two."),
            )
        )
        adapter = AnthropicSummaryAdapter(
            api_key="key", model="claude-3-5-haiku-20241022", timeout_seconds=9
        )
        completion = await adapter.complete("Summarize", max_tokens=100, temperature=0.2)

        mock_anthropic.assert_called_once_with(api_key="key", timeout=9)
        _, kwargs = mock_client.messages.create.call_args
        assert kwargs == {
            "model": "claude-3-5-haiku-20241022",
            "max_tokens": 100,
            "temperature": 0.2,
            "messages": [{"role": "user", "content": "Summarize"}],
        }
    assert completion.text == "Part one. Part two."
    assert (completion.input_tokens, completion.output_tokens) == (30, 8)
    assert adapter.provider is Provider.ANTHROPIC


async def test_reply_without_text_raises() -> None:
    with patch("anthropic.AsyncAnthropic") as mock_anthropic:
        mock_anthropic.return_value.messages.create = AsyncMock(
            return_value=_response(SimpleNamespace(type="tool_use", id="x"))
        )
        adapter = AnthropicSummaryAdapter(api_key="key", model="m")
        with pytest.raises(SummarizationError):
            await adapter.complete("p", max_tokens=10, temperature=0.3)
