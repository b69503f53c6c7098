"""
Tool format transformation between provider wire conventions.

Tool catalogs are authored in the canonical (Anthropic) shape and rendered for
the target model on demand. The target convention always comes from the
model's descriptor; the shape of an input is only inspected for data that
arrives from outside (stored catalogs, legacy messages, raw provider calls).
"""

from __future__ import annotations

import copy
from collections.abc import Sequence
from typing import Any

from loguru import logger

from vegabot.core.messages import canonicalize_messages
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
    adapter_for_model,
    schema_or_default,
)
from vegabot.core.registry import DEFAULT_REGISTRY, ModelRegistry

ToolLike = ToolDefinition | dict[str, Any]

_anthropic = AnthropicProviderAdapter()
_openai = OpenAIProviderAdapter()


def detect_tool_format(tool: Any) -> ToolFormat | None:
    """
    Identify the wire shape of a tool definition.

    Returns:
        ToolFormat.ANTHROPIC for ``input_schema`` tools (and bare ``{"name": ...}``
        dicts, which are treated as schema-less canonical tools), ToolFormat.OPENAI
        for ``function``-wrapped or ``parameters`` tools, None when unrecognized.
    """
    if isinstance(tool, ToolDefinition):
        return ToolFormat.ANTHROPIC
    if not isinstance(tool, dict):
        return None
    if "input_schema" in tool:
        return ToolFormat.ANTHROPIC
    if "function" in tool or tool.get("type") == "function" or "parameters" in tool:
        return ToolFormat.OPENAI
    if isinstance(tool.get("name"), str):
        return ToolFormat.ANTHROPIC
    return None


def anthropic_to_openai(tool: dict[str, Any]) -> dict[str, Any]:
    """Convert a canonical tool dict to the OpenAI function shape."""
    return {
        "type": "function",
        "function": {
            "name": tool.get("name", ""),
            "description": tool.get("description") or "",
            "parameters": schema_or_default(tool.get("input_schema")),
        },
    }


def openai_to_anthropic(tool: dict[str, Any]) -> dict[str, Any]:
    """Convert an OpenAI tool dict (wrapped or unwrapped) to the canonical shape."""
    func = tool.get("function") or tool
    return {
        "name": func.get("name", ""),
        "description": func.get("description") or "",
        "input_schema": schema_or_default(func.get("parameters")),
    }


def _convert_tool(tool: ToolLike, target: ToolFormat) -> Any:
    if isinstance(tool, ToolDefinition):
        if target is ToolFormat.OPENAI:
            return _openai.to_provider_tools([tool])[0]
        return _anthropic.to_provider_tools([tool])[0]

    source = detect_tool_format(tool)
    if source is None:
        logger.warning("tools: unrecognized tool shape, passing through unchanged: {!r}", tool)
        return tool
    if source is target:
        return tool
    if target is ToolFormat.OPENAI:
        return anthropic_to_openai(tool)
    return openai_to_anthropic(tool)


def transform_tools_for_model(
    tools: Sequence[ToolLike] | None,
    model_id: str,
    registry: ModelRegistry = DEFAULT_REGISTRY,
) -> list[Any] | None:
    """
    Render a tool catalog for the given model.

    Args:
        tools: Tool definitions in either wire shape, or ToolDefinition objects.
        model_id: Target model id.
        registry: Catalog used to resolve the model.

    Returns:
        The catalog in the model's tool format, or None when the catalog is empty
        or the model cannot call tools. A catalog already in the target shape is
        returned as-is.

    Raises:
        ModelNotFoundError: If model_id is not registered.
    """
    model = registry.get_model(model_id)
    if not tools:
        return None
    if not model.supports_tools:
        logger.debug("tools: model {} does not support tools, dropping catalog", model_id)
        return None

    target = model.tool_format
    if all(
        not isinstance(t, ToolDefinition) and detect_tool_format(t) is target for t in tools
    ):
        return list(tools)
    return [_convert_tool(t, target) for t in tools]


def _coerce_result(result: ToolResult | dict[str, Any]) -> ToolResult:
    if isinstance(result, ToolResult):
        return result
    return ToolResult(
        tool_use_id=result.get("tool_use_id") or result.get("id") or "",
        payload=result.get("result", result.get("content", "")),
        is_error=bool(result.get("is_error") or result.get("isError")),
    )


def transform_tool_result_for_model(
    result: ToolResult | dict[str, Any],
    model_id: str,
    registry: ModelRegistry = DEFAULT_REGISTRY,
) -> dict[str, Any]:
    """
    Build the message that returns a tool result to the given model.

    Accepts a ToolResult or a dict with ``id``/``result``/``is_error`` keys.
    An error result is always marked as an error in the provider shape.

    Raises:
        ModelNotFoundError: If model_id is not registered.
    """
    model = registry.get_model(model_id)
    return adapter_for_model(model).tool_result_message(_coerce_result(result))


def _looks_anthropic_call(raw: dict[str, Any]) -> bool:
    return raw.get("type") == "tool_use" or ("input" in raw and "function" not in raw)


def normalize_tool_use(
    raw: dict[str, Any] | ToolUseRequest,
    model_id: str,
    registry: ModelRegistry = DEFAULT_REGISTRY,
) -> ToolUseRequest:
    """
    Parse a tool call emitted by a model into canonical form.

    Both wire shapes are accepted whatever the model's provider, since stored
    calls may predate a provider switch.

    Raises:
        ModelNotFoundError: If model_id is not registered.
        ToolArgumentsError: If the arguments are malformed JSON or not a JSON object.
    """
    model = registry.get_model(model_id)
    if isinstance(raw, ToolUseRequest):
        return raw
    if _looks_anthropic_call(raw):
        if model.wire_format is not ToolFormat.ANTHROPIC:
            logger.debug("tools: Anthropic-shaped tool call for model {}", model_id)
        return _anthropic.from_provider_tool_use(raw)
    return _openai.from_provider_tool_use(raw)


def _coerce_tool_use(tool_use: ToolUseRequest | dict[str, Any]) -> ToolUseRequest:
    if isinstance(tool_use, ToolUseRequest):
        return tool_use
    return ToolUseRequest(
        id=tool_use.get("id", ""),
        name=tool_use.get("name", ""),
        arguments=copy.deepcopy(tool_use.get("input") or tool_use.get("arguments") or {}),
    )


def build_tool_use_message(
    tool_use: ToolUseRequest | dict[str, Any] | Sequence[ToolUseRequest | dict[str, Any]],
    model_id: str,
    registry: ModelRegistry = DEFAULT_REGISTRY,
) -> dict[str, Any]:
    """
    Build the assistant message carrying one or more tool calls.

    Raises:
        ModelNotFoundError: If model_id is not registered.
    """
    model = registry.get_model(model_id)
    if isinstance(tool_use, (ToolUseRequest, dict)):
        calls = [_coerce_tool_use(tool_use)]
    else:
        calls = [_coerce_tool_use(tu) for tu in tool_use]
    return adapter_for_model(model).tool_use_message(calls)


def has_tool_calls(message: ConversationMessage | dict[str, Any]) -> bool:
    """Return True if a message in either wire shape (or canonical form) requests tools."""
    if isinstance(message, ConversationMessage):
        if message.tool_calls:
            return True
        content: Any = message.content
    else:
        if message.get("tool_calls"):
            return True
        content = message.get("content")
    if isinstance(content, list):
        return any(isinstance(b, dict) and b.get("type") == "tool_use" for b in content)
    return False


def extract_tool_calls(message: ConversationMessage | dict[str, Any]) -> list[ToolUseRequest]:
    """
    Return every tool call of a message, in order, in canonical form.

    Raises:
        ToolArgumentsError: If an OpenAI call carries malformed JSON arguments.
    """
    calls: list[ToolUseRequest] = []
    if isinstance(message, ConversationMessage):
        content: Any = message.content
        raw_calls: Any = message.tool_calls or []
    else:
        content = message.get("content")
        raw_calls = message.get("tool_calls") or []

    if isinstance(content, list):
        calls.extend(
            _anthropic.from_provider_tool_use(b)
            for b in content
            if isinstance(b, dict) and b.get("type") == "tool_use"
        )
    for call in raw_calls:
        if isinstance(call, ToolUseRequest):
            calls.append(call)
        else:
            calls.append(_openai.from_provider_tool_use(call))
    return calls


def transform_messages_for_model(
    messages: Sequence[ConversationMessage | dict[str, Any]],
    model_id: str,
    registry: ModelRegistry = DEFAULT_REGISTRY,
) -> list[dict[str, Any]]:
    """
    Render a conversation for the given model, preserving order.

    Stored messages in either provider shape are canonicalized first. System
    messages are dropped for Anthropic models, which take the system prompt
    as a separate request field.

    Raises:
        ModelNotFoundError: If model_id is not registered.
    """
    model = registry.get_model(model_id)
    return adapter_for_model(model).to_provider_messages(canonicalize_messages(messages))


def parse_provider_response(
    response: dict[str, Any],
    model_id: str,
    registry: ModelRegistry = DEFAULT_REGISTRY,
) -> tuple[ConversationMessage, int, int]:
    """
    Parse a raw completion response from the model's provider.

    Returns:
        (assistant message with canonical tool_calls, input tokens, output tokens)

    Raises:
        ModelNotFoundError: If model_id is not registered.
        ToolArgumentsError: If a tool call carries malformed arguments.
    """
    model = registry.get_model(model_id)
    return adapter_for_model(model).parse_response(response)
