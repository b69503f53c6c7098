"""
Model registry for vegabot.

A static catalog mapping model ids to their provider, tool wire format,
context window and cost profile. The catalog is built once at import time and
is read-only afterwards. Lookups of unknown ids raise ModelNotFoundError;
they never fall back to a default model, since a silent default would pair
a model with the wrong wire format.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from vegabot.core.errors import ModelNotFoundError
from vegabot.core.models import CostClass, ModelDescriptor, Provider, ToolFormat

BUILTIN_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="claude-3-5-haiku-20241022",
        provider=Provider.ANTHROPIC,
        tool_format=ToolFormat.ANTHROPIC,
        context_window_tokens=200_000,
        cost_class=CostClass.STANDARD,
        name="Claude 3.5 Haiku",
        max_output_tokens=4096,
        supports_caching=True,
        supports_vision=True,
        cost_per_1m_input=0.80,
        cost_per_1m_output=4.00,
        best_for=("quick-tasks", "parsing", "classification", "simple-chat"),
        tier="free",
    ),
    ModelDescriptor(
        id="claude-sonnet-4-5-20250929",
        provider=Provider.ANTHROPIC,
        tool_format=ToolFormat.ANTHROPIC,
        context_window_tokens=200_000,
        cost_class=CostClass.PREMIUM,
        name="Claude Sonnet 4.5",
        max_output_tokens=8192,
        supports_caching=True,
        supports_vision=True,
        cost_per_1m_input=3.00,
        cost_per_1m_output=15.00,
        best_for=("complex-analysis", "reasoning", "writing", "multi-step"),
        tier="pro",
    ),
    ModelDescriptor(
        id="deepseek-chat",
        provider=Provider.DEEPSEEK,
        tool_format=ToolFormat.OPENAI,
        context_window_tokens=64_000,
        cost_class=CostClass.LOW,
        name="DeepSeek Chat",
        max_output_tokens=4096,
        supports_prefix_caching=True,  # DeepSeek caches message prefixes automatically
        cost_per_1m_input=0.14,
        cost_per_1m_output=0.28,
        best_for=("general-chat", "cost-efficient", "high-volume"),
        tier="free",
    ),
    ModelDescriptor(
        id="deepseek-reasoner",
        provider=Provider.DEEPSEEK,
        tool_format=ToolFormat.OPENAI,
        context_window_tokens=64_000,
        cost_class=CostClass.LOW,
        name="DeepSeek Reasoner",
        max_output_tokens=8192,
        supports_prefix_caching=True,
        cost_per_1m_input=0.55,
        cost_per_1m_output=2.19,
        best_for=("analysis", "reasoning", "multi-step", "complex-queries"),
        tier="pro",
    ),
)


class ModelRegistry:
    """Read-only catalog of ModelDescriptor objects keyed by id."""

    def __init__(self, models: Iterable[ModelDescriptor] = ()) -> None:
        catalog: dict[str, ModelDescriptor] = {}
        for model in models:
            if model.id in catalog:
                raise ValueError(f"Model '{model.id}' is already registered")
            catalog[model.id] = model
        self._models: Mapping[str, ModelDescriptor] = MappingProxyType(catalog)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)

    def all(self) -> list[ModelDescriptor]:
        """Return every registered model in registration order."""
        return list(self._models.values())

    def has_model(self, model_id: str) -> bool:
        return model_id in self._models

    def get_model(self, model_id: str) -> ModelDescriptor:
        """
        Look up a model by id.

        Raises:
            ModelNotFoundError: If the id is not registered.
        """
        try:
            return self._models[model_id]
        except KeyError:
            raise ModelNotFoundError(model_id) from None

    def get_provider(self, model_id: str) -> Provider:
        return self.get_model(model_id).provider

    def get_tool_format(self, model_id: str) -> ToolFormat:
        return self.get_model(model_id).tool_format

    def supports_tools(self, model_id: str) -> bool:
        return self.get_model(model_id).supports_tools

    def context_window(self, model_id: str) -> int:
        return self.get_model(model_id).context_window_tokens

    def max_output(self, model_id: str) -> int:
        return self.get_model(model_id).max_output_tokens

    def models_by_provider(self, provider: Provider) -> list[ModelDescriptor]:
        return [m for m in self._models.values() if m.provider is provider]

    def models_with_feature(self, feature: str) -> list[ModelDescriptor]:
        """Return models whose boolean attribute ``feature`` is True (e.g. "supports_caching")."""
        return [m for m in self._models.values() if getattr(m, feature, False) is True]

    def default_model(self, provider: Provider, tier: str = "free") -> ModelDescriptor | None:
        """
        Pick the default model of a provider for a subscription tier.

        Pro users get the provider's pro model when there is one; everyone else
        gets the free-tier model, or the first model of the provider.
        """
        models = self.models_by_provider(provider)
        if tier == "pro":
            for model in models:
                if model.tier == "pro":
                    return model
        for model in models:
            if model.tier == "free":
                return model
        return models[0] if models else None

    def estimate_cost(self, model_id: str, input_tokens: int, output_tokens: int) -> float:
        """Estimated request cost in USD."""
        model = self.get_model(model_id)
        return (input_tokens / 1_000_000) * model.cost_per_1m_input + (
            output_tokens / 1_000_000
        ) * model.cost_per_1m_output


DEFAULT_REGISTRY = ModelRegistry(BUILTIN_MODELS)


def get_model(model_id: str) -> ModelDescriptor:
    """Look up a model in the built-in catalog. Raises ModelNotFoundError."""
    return DEFAULT_REGISTRY.get_model(model_id)


def get_provider(model_id: str) -> Provider:
    return DEFAULT_REGISTRY.get_provider(model_id)


def get_tool_format(model_id: str) -> ToolFormat:
    return DEFAULT_REGISTRY.get_tool_format(model_id)
