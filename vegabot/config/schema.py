"""
Configuration schema for vegabot.

Settings are loaded from a JSON file (default: ~/.vegabot/config.json).
Individual fields can be overridden via environment variables using the
VEGABOT_ prefix and ``__`` for nesting (e.g., VEGABOT_SUMMARIZER__API_KEY).
Environment variables take precedence over the file.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from vegabot.core.registry import DEFAULT_REGISTRY

DEFAULT_CONFIG_PATH = Path.home() / ".vegabot" / "config.json"


class SummarizerConfig(BaseModel):
    """Low-cost model used to condense conversation history."""

    enabled: bool = True
    provider: Literal["deepseek", "openai", "anthropic"] = "deepseek"
    model: str = "deepseek-chat"
    api_base: str = "https://api.deepseek.com/v1"
    api_key: str = ""
    api_key_env: str = "DEEPSEEK_API_KEY"  # read when api_key is empty
    timeout_seconds: float = 30.0
    temperature: float = 0.3
    max_length: int = 500
    trading_max_length: int = 300

    @model_validator(mode="after")
    def _validate_ranges(self) -> SummarizerConfig:
        if self.timeout_seconds <= 0:
            raise ValueError("summarizer.timeout_seconds must be > 0")
        if not (0 <= self.temperature <= 1):
            raise ValueError("summarizer.temperature must be between 0 and 1")
        if self.max_length <= 0 or self.trading_max_length <= 0:
            raise ValueError("summarizer max lengths must be > 0")
        return self

    def resolve_api_key(self) -> str:
        """Return the configured key, falling back to the ``api_key_env`` variable."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env, "")
        return ""


class ContextConfig(BaseModel):
    """Optional global overrides for the context strategy thresholds."""

    summary_after_messages: int | None = None
    minimal_after_messages: int | None = None
    max_full_context_tokens: int | None = None
    max_summary_tokens: int | None = None
    keep_recent_messages: int = 6

    @model_validator(mode="after")
    def _validate_thresholds(self) -> ContextConfig:
        for name, value in self.threshold_overrides().items():
            if value <= 0:
                raise ValueError(f"context.{name} must be > 0")
        if (
            self.summary_after_messages is not None
            and self.minimal_after_messages is not None
            and self.minimal_after_messages <= self.summary_after_messages
        ):
            raise ValueError(
                "context.minimal_after_messages must be greater than "
                "context.summary_after_messages"
            )
        if self.keep_recent_messages < 0:
            raise ValueError("context.keep_recent_messages must be >= 0")
        return self

    def threshold_overrides(self) -> dict[str, int]:
        """Return only the thresholds that were set explicitly."""
        fields = (
            "summary_after_messages",
            "minimal_after_messages",
            "max_full_context_tokens",
            "max_summary_tokens",
        )
        return {name: getattr(self, name) for name in fields if getattr(self, name) is not None}


class PromptsConfig(BaseModel):
    max_prompts: int = 5
    coach_mode: bool = False

    @field_validator("max_prompts")
    @classmethod
    def _check_max_prompts(cls, value: int) -> int:
        if value < 0:
            raise ValueError("prompts.max_prompts must be >= 0")
        return value


class Settings(BaseSettings):
    """Root configuration object for vegabot."""

    model_config = SettingsConfigDict(
        env_prefix="VEGABOT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    default_model: str = "deepseek-chat"
    summarizer: SummarizerConfig = Field(default_factory=SummarizerConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment first so it wins over values read from the JSON file.
        return (env_settings, init_settings)

    @field_validator("default_model")
    @classmethod
    def _check_default_model(cls, value: str) -> str:
        if value not in DEFAULT_REGISTRY:
            known = ", ".join(m.id for m in DEFAULT_REGISTRY.all())
            raise ValueError(f"default_model '{value}' is not a known model ({known})")
        return value

    @classmethod
    def load(cls, path: Path = DEFAULT_CONFIG_PATH) -> Settings:
        """
        Load settings from a JSON file, then apply environment overrides.

        Missing keys use their default values.
        The file is optional; without it, defaults and environment apply.
        """
        data: dict[str, Any] = {}
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8"))
        return cls(**data)

    def save(self, path: Path = DEFAULT_CONFIG_PATH) -> None:
        """Persist settings to a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            self.model_dump_json(indent=2, exclude_none=False),
            encoding="utf-8",
        )
