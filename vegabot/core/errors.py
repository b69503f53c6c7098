"""
Exception hierarchy for vegabot.

Configuration errors fail fast: an unknown model id or a tool that needs a
schema but has none is a deployment mistake and must surface immediately.
Argument parse errors are raised to the caller so a malformed tool call is
never executed with guessed parameters. Summarization errors never leave the
summarizer; it recovers via the extractive path.
"""

from __future__ import annotations


class VegabotError(Exception):
    """Base class for all vegabot errors."""


class ConfigurationError(VegabotError):
    """A deployment or configuration mistake that must not be masked."""


class ModelNotFoundError(ConfigurationError, KeyError):
    """Raised when a model id is not present in the registry."""

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unknown model id '{model_id}'")
        self.model_id = model_id

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return f"Unknown model id '{self.model_id}'"


class MissingToolSchemaError(ConfigurationError):
    """Raised when a tool declared as requiring a schema has none."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' requires an input schema but none was given")
        self.tool_name = tool_name


class ToolArgumentsError(VegabotError, ValueError):
    """Raised when a tool call carries arguments that cannot be parsed into an object."""

    def __init__(
        self,
        message: str,
        *,
        tool_name: str | None = None,
        tool_use_id: str | None = None,
        raw_arguments: str | None = None,
    ) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.tool_use_id = tool_use_id
        self.raw_arguments = raw_arguments


class MissingContextError(VegabotError, KeyError):
    """Raised when a prompt template references a context field that is unset."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Missing context key: {key}")
        self.key = key

    def __str__(self) -> str:
        return f"Missing context key: {self.key}"


class SummarizationError(VegabotError):
    """Raised by summarization clients on an unusable model reply."""
