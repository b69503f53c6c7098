from __future__ import annotations

import pytest

from vegabot.core.errors import ToolArgumentsError
from vegabot.core.models import (
    ConversationMessage,
    ToolDefinition,
    ToolFormat,
    ToolResult,
    ToolUseRequest,
)
from vegabot.core.providers import (
    AnthropicProviderAdapter,
    OpenAIProviderAdapter,
    adapter_for_format,
    adapter_for_model,
    parse_tool_arguments,
)
from vegabot.core.registry import get_model


def test_parse_tool_arguments_accepts_object_and_json():
    assert parse_tool_arguments({"a": 1}) == {"a": 1}
    assert parse_tool_arguments('{"symbol": "BTC"}') == {"symbol": "BTC"}
    assert parse_tool_arguments(None) == {}
    assert parse_tool_arguments("") == {}


def test_parse_tool_arguments_rejects_malformed_json():
    with pytest.raises(ToolArgumentsError) as exc_info:
        parse_tool_arguments("{not json", tool_name="get_trades", tool_use_id="call_1")
    err = exc_info.value
    assert err.tool_name == "get_trades"
    assert err.tool_use_id == "call_1"
    assert err.raw_arguments == "{not json"


def test_parse_tool_arguments_rejects_non_object():
    with pytest.raises(ToolArgumentsError, match="must decode to an object"):
        parse_tool_arguments("[1, 2]")
    with pytest.raises(ToolArgumentsError):
        parse_tool_arguments(42)


def test_adapter_for_model_uses_wire_format():
    assert adapter_for_model(get_model("deepseek-chat")).format is ToolFormat.OPENAI
    assert adapter_for_model(get_model("claude-3-5-haiku-20241022")).format is ToolFormat.ANTHROPIC


def test_adapter_for_none_format_raises():
    with pytest.raises(ValueError, match="No provider adapter"):
        adapter_for_format(ToolFormat.NONE)


def test_openai_tools_copy_schema():
    schema = {"type": "object", "properties": {"days": {"type": "integer"}}}
    rendered = OpenAIProviderAdapter().to_provider_tools(
        [ToolDefinition(name="recent", description="Recent trades", input_schema=schema)]
    )
    assert rendered == [
        {
            "type": "function",
            "function": {"name": "recent", "description": "Recent trades", "parameters": schema},
        }
    ]
    rendered[0]["function"]["parameters"]["properties"]["days"]["type"] = "string"
    assert schema["properties"]["days"]["type"] == "integer"


def test_anthropic_drops_system_and_merges_tool_results():
    messages = [
        ConversationMessage(role="system", content="be brief"),
        ConversationMessage(role="user", content="check both"),
        ConversationMessage(
            role="assistant",
            content="",
            tool_calls=[
                ToolUseRequest(id="a", name="x", arguments={}),
                ToolUseRequest(id="b", name="y", arguments={"n": 1}),
            ],
        ),
        ConversationMessage(role="tool", content="one", tool_use_id="a"),
        ConversationMessage(role="tool", content="two", tool_use_id="b", is_error=True),
    ]
    out = AnthropicProviderAdapter().to_provider_messages(messages)
    assert [m["role"] for m in out] == ["user", "assistant", "user"]
    assert out[1]["content"] == [
        {"type": "tool_use", "id": "a", "name": "x", "input": {}},
        {"type": "tool_use", "id": "b", "name": "y", "input": {"n": 1}},
    ]
    assert out[2]["content"] == [
        {"type": "tool_result", "tool_use_id": "a", "content": "one", "is_error": False},
        {"type": "tool_result", "tool_use_id": "b", "content": "two", "is_error": True},
    ]


def test_anthropic_assistant_text_precedes_tool_use():
    msg = ConversationMessage(
        role="assistant",
        content="Let me look.",
        tool_calls=[ToolUseRequest(id="a", name="x")],
    )
    out = AnthropicProviderAdapter().to_provider_messages([msg])
    assert out[0]["content"][0] == {"type": "text", "text": "Let me look."}
    assert out[0]["content"][1]["type"] == "tool_use"


def test_openai_keeps_system_and_null_content_for_tool_calls():
    messages = [
        ConversationMessage(role="system", content="be brief"),
        ConversationMessage(
            role="assistant", content="", tool_calls=[ToolUseRequest(id="c1", name="x")]
        ),
        ConversationMessage(role="tool", content="done", tool_use_id="c1"),
    ]
    out = OpenAIProviderAdapter().to_provider_messages(messages)
    assert out[0] == {"role": "system", "content": "be brief"}
    assert "content" in out[1]
    assert out[1]["content"] is None
    assert out[1]["tool_calls"][0]["function"] == {"name": "x", "arguments": "{}"}
    assert out[2] == {"role": "tool", "tool_call_id": "c1", "content": "done"}


def test_openai_error_result_is_prefixed_without_extra_keys():
    msg = OpenAIProviderAdapter().tool_result_message(
        ToolResult(tool_use_id="c1", payload="timeout", is_error=True)
    )
    assert msg == {
        "role": "tool",
        "tool_call_id": "c1",
        "content": "Error: timeout",
    }


def test_openai_error_prefix_not_doubled():
    msg = OpenAIProviderAdapter().tool_result_message(
        ToolResult(tool_use_id="c1", payload="Error: timeout", is_error=True)
    )
    assert msg["content"] == "Error: timeout"


def test_anthropic_parse_response():
    response = {
        "content": [
            {"type": "text", "text": "Checking."},
            {"type": "tool_use", "id": "tu1", "name": "get_trades", "input": {"limit": 5}},
        ],
        "usage": {"input_tokens": 100, "output_tokens": 20},
    }
    msg, in_tokens, out_tokens = AnthropicProviderAdapter().parse_response(response)
    assert msg.text == "Checking."
    assert msg.tool_calls == [ToolUseRequest(id="tu1", name="get_trades", arguments={"limit": 5})]
    assert (in_tokens, out_tokens) == (100, 20)


def test_openai_parse_response_with_malformed_arguments():
    response = {
        "choices": [
            {
                "message": {
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "c1",
                            "type": "function",
                            "function": {"name": "get_trades", "arguments": "{oops"},
                        }
                    ],
                }
            }
        ]
    }
    with pytest.raises(ToolArgumentsError) as exc_info:
        OpenAIProviderAdapter().parse_response(response)
    assert exc_info.value.tool_use_id == "c1"
