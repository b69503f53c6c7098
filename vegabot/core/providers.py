"""
Provider wire adapters.

One adapter per wire convention. Each adapter owns every provider-specific
shape: tool definitions, assistant tool-call messages, tool results and
response parsing. The rest of the core switches on ModelDescriptor.wire_format
and never inspects provider shapes itself.

Both adapters implement ProviderAdapter via structural subtyping.
"""

from __future__ import annotations

import copy
import json
from typing import Any

from vegabot.core.errors import ToolArgumentsError
from vegabot.core.models import (
    ConversationMessage,
    ModelDescriptor,
    ToolDefinition,
    ToolFormat,
    ToolResult,
    ToolUseRequest,
    empty_schema,
)
from vegabot.core.ports import ProviderAdapter

# Prefix applied to OpenAI-style error results; role=tool messages have no
# standard error field, so the text itself has to say it.
ERROR_PREFIX = "Error: "


def parse_tool_arguments(
    raw: Any,
    *,
    tool_name: str | None = None,
    tool_use_id: str | None = None,
) -> dict[str, Any]:
    """
    Parse tool-call arguments that may arrive as a JSON string or an object.

    Args:
        raw: A dict, a JSON-encoded object string, or None/"" for no arguments.
        tool_name: Tool name, for error reporting.
        tool_use_id: Tool call id, for error reporting.

    Returns:
        The arguments as a dict.

    Raises:
        ToolArgumentsError: If the string is not valid JSON or does not encode an object.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if not isinstance(raw, str):
        raise ToolArgumentsError(
            f"Tool '{tool_name}' arguments must be an object or JSON string, "
            f"got {type(raw).__name__}",
            tool_name=tool_name,
            tool_use_id=tool_use_id,
            raw_arguments=repr(raw),
        )
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolArgumentsError(
            f"Tool '{tool_name}' arguments are not valid JSON: {exc.msg} (pos {exc.pos})",
            tool_name=tool_name,
            tool_use_id=tool_use_id,
            raw_arguments=raw,
        ) from exc
    if not isinstance(parsed, dict):
        raise ToolArgumentsError(
            f"Tool '{tool_name}' arguments must decode to an object, got {type(parsed).__name__}",
            tool_name=tool_name,
            tool_use_id=tool_use_id,
            raw_arguments=raw,
        )
    return parsed


def schema_or_default(schema: Any) -> dict[str, Any]:
    if not schema:
        return empty_schema()
    return copy.deepcopy(schema)


class AnthropicProviderAdapter:
    """Content-block wire convention: tool_use / tool_result blocks, input_schema."""

    format = ToolFormat.ANTHROPIC

    def to_provider_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [copy.deepcopy(tool.to_anthropic_dict()) for tool in tools]

    def to_provider_messages(self, messages: list[ConversationMessage]) -> list[dict[str, Any]]:
        """
        Render canonical messages as Anthropic messages.

        System messages are dropped (Anthropic takes the system prompt separately).
        Consecutive tool results are merged into one user message, since Anthropic
        expects every result for an assistant turn in the following user turn.
        """
        out: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                continue
            if msg.role == "tool":
                block = self._tool_result_block(
                    msg.tool_use_id or "", msg.text, is_error=msg.is_error
                )
                prev = out[-1] if out else None
                if (
                    prev is not None
                    and prev["role"] == "user"
                    and isinstance(prev["content"], list)
                    and prev["content"]
                    and all(b.get("type") == "tool_result" for b in prev["content"])
                ):
                    prev["content"].append(block)
                else:
                    out.append({"role": "user", "content": [block]})
                continue
            if msg.role == "assistant" and msg.tool_calls:
                blocks: list[dict[str, Any]] = []
                if msg.text:
                    blocks.append({"type": "text", "text": msg.text})
                blocks.extend(self._tool_use_block(tc) for tc in msg.tool_calls)
                out.append({"role": "assistant", "content": blocks})
                continue
            content = msg.content if isinstance(msg.content, list) else msg.text
            out.append({"role": msg.role, "content": copy.deepcopy(content)})
        return out

    def tool_use_message(self, tool_uses: list[ToolUseRequest]) -> dict[str, Any]:
        return {
            "role": "assistant",
            "content": [self._tool_use_block(tc) for tc in tool_uses],
        }

    def tool_result_message(self, result: ToolResult) -> dict[str, Any]:
        return {
            "role": "user",
            "content": [
                self._tool_result_block(
                    result.tool_use_id, result.content_text(), is_error=result.is_error
                )
            ],
        }

    def from_provider_tool_use(self, raw: dict[str, Any]) -> ToolUseRequest:
        name = raw.get("name", "")
        return ToolUseRequest(
            id=raw.get("id", ""),
            name=name,
            arguments=parse_tool_arguments(
                raw.get("input"), tool_name=name, tool_use_id=raw.get("id")
            ),
        )

    def parse_response(self, response: dict[str, Any]) -> tuple[ConversationMessage, int, int]:
        content = response.get("content")
        text = ""
        tool_calls: list[ToolUseRequest] = []
        if isinstance(content, list):
            text = "\n".join(b.get("text", "") for b in content if b.get("type") == "text")
            tool_calls = [
                self.from_provider_tool_use(b) for b in content if b.get("type") == "tool_use"
            ]
        elif isinstance(content, str):
            text = content
        usage = response.get("usage") or {}
        message = ConversationMessage(
            role="assistant", content=text, tool_calls=tool_calls or None
        )
        return message, int(usage.get("input_tokens") or 0), int(usage.get("output_tokens") or 0)

    @staticmethod
    def _tool_use_block(tool_use: ToolUseRequest) -> dict[str, Any]:
        return {
            "type": "tool_use",
            "id": tool_use.id,
            "name": tool_use.name,
            "input": copy.deepcopy(tool_use.arguments),
        }

    @staticmethod
    def _tool_result_block(tool_use_id: str, content: str, *, is_error: bool) -> dict[str, Any]:
        return {
            "type": "tool_result",
            "tool_use_id": tool_use_id,
            "content": content,
            "is_error": bool(is_error),
        }


class OpenAIProviderAdapter:
    """Function-call wire convention: tool_calls / role=tool, function.parameters."""

    format = ToolFormat.OPENAI

    def to_provider_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        rendered = []
        for tool in tools:
            canonical = tool.to_anthropic_dict()
            rendered.append(
                {
                    "type": "function",
                    "function": {
                        "name": canonical["name"],
                        "description": canonical["description"],
                        "parameters": schema_or_default(canonical["input_schema"]),
                    },
                }
            )
        return rendered

    def to_provider_messages(self, messages: list[ConversationMessage]) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "tool":
                out.append(self._tool_message(msg.tool_use_id or "", msg.text, msg.is_error))
                continue
            if msg.role == "assistant" and msg.tool_calls:
                d = self.tool_use_message(msg.tool_calls)
                # content stays an explicit key; null when there is no text
                d["content"] = msg.text or None
                out.append(d)
                continue
            out.append({"role": msg.role, "content": msg.text})
        return out

    def tool_use_message(self, tool_uses: list[ToolUseRequest]) -> dict[str, Any]:
        return {
            "role": "assistant",
            "content": None,  # must be present and null when tool_calls is set
            "tool_calls": [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                }
                for tc in tool_uses
            ],
        }

    def tool_result_message(self, result: ToolResult) -> dict[str, Any]:
        return self._tool_message(result.tool_use_id, result.content_text(), result.is_error)

    def from_provider_tool_use(self, raw: dict[str, Any]) -> ToolUseRequest:
        func = raw.get("function") or raw
        name = func.get("name", "")
        return ToolUseRequest(
            id=raw.get("id", ""),
            name=name,
            arguments=parse_tool_arguments(
                func.get("arguments"), tool_name=name, tool_use_id=raw.get("id")
            ),
        )

    def parse_response(self, response: dict[str, Any]) -> tuple[ConversationMessage, int, int]:
        choices = response.get("choices") or [{}]
        msg = choices[0].get("message") or {}
        tool_calls = [self.from_provider_tool_use(tc) for tc in msg.get("tool_calls") or []]
        usage = response.get("usage") or {}
        message = ConversationMessage(
            role="assistant", content=msg.get("content") or "", tool_calls=tool_calls or None
        )
        return (
            message,
            int(usage.get("prompt_tokens") or 0),
            int(usage.get("completion_tokens") or 0),
        )

    @staticmethod
    def _tool_message(tool_call_id: str, content: str, is_error: bool) -> dict[str, Any]:
        d: dict[str, Any] = {"role": "tool", "tool_call_id": tool_call_id, "content": content}
        # the tool message schema has no error field; the prefix marks the error
        if is_error and not content.startswith(ERROR_PREFIX):
            d["content"] = ERROR_PREFIX + content
        return d


_ADAPTERS: dict[ToolFormat, ProviderAdapter] = {
    ToolFormat.ANTHROPIC: AnthropicProviderAdapter(),
    ToolFormat.OPENAI: OpenAIProviderAdapter(),
}


def adapter_for_format(fmt: ToolFormat) -> ProviderAdapter:
    """
    Return the adapter for a wire convention.

    Raises:
        ValueError: For ToolFormat.NONE, which has no wire shape.
    """
    try:
        return _ADAPTERS[fmt]
    except KeyError:
        raise ValueError(f"No provider adapter for format '{fmt.value}'") from None


def adapter_for_model(model: ModelDescriptor) -> ProviderAdapter:
    """Return the adapter matching a model's message wire convention."""
    return adapter_for_format(model.wire_format)
