"""
CLI entry point for vegabot.

Commands:
  vegabot models              List the registered models
  vegabot classify MESSAGE    Classify a user message
  vegabot strategy            Select a context strategy for a turn
  vegabot summarize FILE      Summarize a JSONL conversation transcript
  vegabot plan FILE           Build the provider payload for the next turn
  vegabot prompts FILE        Generate a greeting and suggested prompts
  vegabot status              Show configuration and status
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import cyclopts

from vegabot.config.schema import DEFAULT_CONFIG_PATH, Settings
from vegabot.core.errors import VegabotError
from vegabot.core.models import MessageType, Provider
from vegabot.core.summarizer import Summarizer

app = cyclopts.App(
    name="vegabot", help="Conversation orchestration for the Vega trading assistant."
)


@app.command
def models() -> None:
    """List the registered models."""
    from rich.console import Console  # noqa: PLC0415
    from rich.table import Table  # noqa: PLC0415

    from vegabot.core.registry import DEFAULT_REGISTRY  # noqa: PLC0415

    table = Table(title="Models")
    for column in ("id", "provider", "tools", "context", "cost", "tier"):
        table.add_column(column)
    for model in DEFAULT_REGISTRY.all():
        table.add_row(
            model.id,
            model.provider.value,
            model.tool_format.value,
            f"{model.context_window_tokens:,}",
            model.cost_class.value,
            model.tier,
        )
    Console().print(table)


@app.command
def classify(message: str) -> None:
    """Print the message type of MESSAGE."""
    from vegabot.core.strategy import detect_message_type  # noqa: PLC0415

    print(detect_message_type(message).value)


@app.command
def strategy(
    model: str | None = None,
    depth: int = 0,
    tier: str = "free",
    message: str | None = None,
    tokens: int = 0,
    no_data: bool = False,
    config: Path = DEFAULT_CONFIG_PATH,
) -> None:
    """Select the context strategy for one turn and print the decision as JSON."""
    from rich.console import Console  # noqa: PLC0415

    from vegabot.core.strategy import (  # noqa: PLC0415
        detect_message_type,
        select_context_strategy,
    )

    settings = _load_settings(config)
    kind = detect_message_type(message) if message else MessageType.QUESTION
    with _cli_errors():
        decision = select_context_strategy(
            model or settings.default_model,
            conversation_depth=depth,
            tier=tier,
            message_type=kind,
            estimated_context_tokens=tokens,
            has_trade_data=not no_data,
            thresholds=_config_thresholds(settings, model or settings.default_model),
        )
    Console().print_json(
        data={
            "strategy": decision.strategy.value,
            "reason": decision.reason,
            "factors": decision.factors,
            "recommendations": decision.recommendations,
        }
    )


@app.command
def summarize(
    file: Path,
    kind: str = "conversation",
    max_length: int | None = None,
    config: Path = DEFAULT_CONFIG_PATH,
    log_level: str = "WARNING",
) -> None:
    """Summarize the conversation stored in FILE (JSONL)."""
    from vegabot.adapters.persistence.jsonl import JsonlConversationStore  # noqa: PLC0415

    _setup_logging(log_level)
    settings = _load_settings(config)

    async def _run() -> None:
        messages = await JsonlConversationStore(file).load()
        if not messages:
            print("No messages to summarize.")
            return
        result = await build_summarizer(settings).summarize_conversation(
            messages,
            kind=kind,
            max_length=max_length or settings.summarizer.max_length,
        )
        source = result.model or "extractive"
        print(result.summary)
        print(f"({source}, {result.tokens_used} tokens)", file=sys.stderr)

    with _cli_errors():
        asyncio.run(_run())


@app.command
def plan(
    file: Path,
    message: str,
    model: str | None = None,
    tier: str = "free",
    context: Path | None = None,
    config: Path = DEFAULT_CONFIG_PATH,
    log_level: str = "WARNING",
) -> None:
    """Build the provider payload for the next turn of the conversation in FILE."""
    from rich.console import Console  # noqa: PLC0415

    from vegabot.adapters.persistence.jsonl import JsonlConversationStore  # noqa: PLC0415
    from vegabot.core.turn import TurnPlanner, TurnRequest  # noqa: PLC0415

    _setup_logging(log_level)
    settings = _load_settings(config)
    trading_context = _read_json(context) if context else None
    planner = TurnPlanner(
        build_summarizer(settings),
        threshold_overrides=settings.context.threshold_overrides(),
        keep_recent=settings.context.keep_recent_messages,
        summary_max_length=settings.summarizer.max_length,
    )

    async def _run() -> dict[str, Any]:
        history = await JsonlConversationStore(file).load()
        turn = await planner.plan_turn(
            TurnRequest(
                model_id=model or settings.default_model,
                user_message=message,
                history=list(history),
                trading_context=trading_context,
                tier=tier,
            )
        )
        return {
            "model": turn.model,
            "strategy": turn.decision.strategy.value,
            "reason": turn.decision.reason,
            "summary": turn.summary.summary if turn.summary else None,
            "system": turn.system,
            "messages": turn.messages,
            "tools": turn.tools,
        }

    with _cli_errors():
        payload = asyncio.run(_run())
    Console().print_json(data=payload)


@app.command
def prompts(
    file: Path,
    max_prompts: int | None = None,
    coach: bool | None = None,
    config: Path = DEFAULT_CONFIG_PATH,
) -> None:
    """
    Print a greeting and suggested prompts for the analytics snapshot in FILE.

    FILE is a JSON object with ``tradesStats``, ``analytics`` and
    ``previousConversations`` keys.
    """
    from vegabot.core.prompts import (  # noqa: PLC0415
        build_prompt_context,
        generate_dynamic_prompts,
    )

    settings = _load_settings(config)
    data = _read_json(file)
    ctx = build_prompt_context(
        data.get("tradesStats"),
        data.get("analytics"),
        data.get("previousConversations") or (),
    )
    result = generate_dynamic_prompts(
        ctx,
        max_prompts=settings.prompts.max_prompts if max_prompts is None else max_prompts,
        coach_mode=settings.prompts.coach_mode if coach is None else coach,
    )
    if result.greeting:
        print(result.greeting)
    for prompt in result.prompts:
        print(f"  - {prompt}")


@app.command
def status(config: Path = DEFAULT_CONFIG_PATH) -> None:
    """Show the current configuration."""
    settings = _load_settings(config)
    summarizer = settings.summarizer
    if not summarizer.enabled:
        summary_state = "disabled (extractive only)"
    elif not summarizer.resolve_api_key():
        summary_state = f"no API key (set {summarizer.api_key_env}), extractive only"
    else:
        summary_state = f"{summarizer.provider}/{summarizer.model}"
    overrides = settings.context.threshold_overrides()
    print(f"Model:      {settings.default_model}")
    print(f"Summarizer: {summary_state}")
    print(f"Thresholds: {overrides or 'provider defaults'}")
    print(f"Prompts:    {settings.prompts.max_prompts} (coach mode: {settings.prompts.coach_mode})")


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _setup_logging(level: str) -> None:
    """
    Configure loguru for CLI output.

    Removes the default loguru stderr handler and replaces it with one that
    uses a consistent timestamp+level format. SDK loggers that are too chatty
    at DEBUG are clamped to WARNING via the stdlib logging bridge.

    Args:
        level: Log level string (case-insensitive), e.g. "INFO", "DEBUG".

    Raises:
        SystemExit: If the level is not a valid log level name.
    """
    import logging  # noqa: PLC0415

    from loguru import logger  # noqa: PLC0415

    normalised = level.upper()
    if normalised not in _VALID_LOG_LEVELS:
        valid = ", ".join(sorted(_VALID_LOG_LEVELS))
        print(f"error: invalid --log-level '{level}'. Valid values: {valid}", file=sys.stderr)
        raise SystemExit(1)

    logger.remove()
    logger.add(
        sys.stderr,
        level=normalised,
        format=("<green>{time:YYYY-MM-DD HH:mm:ss}</green> <level>{level:<8}</level> {message}"),
        colorize=True,
    )
    for noisy in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_summarizer(settings: Settings) -> Summarizer:
    """
    Construct the Summarizer described by the settings.

    Falls back to an extractive-only summarizer when summarization by model is
    disabled or no API key can be found.

    Args:
        settings: Loaded application settings.
    """
    from loguru import logger  # noqa: PLC0415

    cfg = settings.summarizer
    options: dict[str, Any] = {
        "timeout_seconds": cfg.timeout_seconds,
        "temperature": cfg.temperature,
    }
    if not cfg.enabled:
        return Summarizer(**options)
    api_key = cfg.resolve_api_key()
    if not api_key:
        logger.info("summarizer: no API key configured, using extractive summaries")
        return Summarizer(**options)

    llm: Any
    if cfg.provider == "anthropic":
        from vegabot.adapters.llm.anthropic import AnthropicSummaryAdapter  # noqa: PLC0415

        llm = AnthropicSummaryAdapter(
            api_key=api_key, model=cfg.model, timeout_seconds=cfg.timeout_seconds
        )
    else:
        from vegabot.adapters.llm.openai import OpenAISummaryAdapter  # noqa: PLC0415

        llm = OpenAISummaryAdapter(
            api_base=cfg.api_base,
            api_key=api_key,
            model=cfg.model,
            provider=Provider(cfg.provider),
            timeout_seconds=cfg.timeout_seconds,
        )
    return Summarizer(llm, **options)


def _config_thresholds(settings: Settings, model_id: str) -> Any:
    """Provider thresholds with the configured overrides applied, or None."""
    from dataclasses import replace  # noqa: PLC0415

    from vegabot.core.registry import DEFAULT_REGISTRY  # noqa: PLC0415
    from vegabot.core.strategy import thresholds_for  # noqa: PLC0415

    overrides = settings.context.threshold_overrides()
    if not overrides or model_id not in DEFAULT_REGISTRY:
        return None
    return replace(thresholds_for(DEFAULT_REGISTRY.get_provider(model_id)), **overrides)


def _load_settings(path: Path) -> Settings:
    from pydantic import ValidationError  # noqa: PLC0415

    try:
        return Settings.load(path)
    except (ValidationError, json.JSONDecodeError) as e:
        print(f"error: invalid configuration in {path}: {e}", file=sys.stderr)
        raise SystemExit(1) from e


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"error: cannot read {path}: {e}", file=sys.stderr)
        raise SystemExit(1) from e
    if not isinstance(data, dict):
        print(f"error: {path} must contain a JSON object", file=sys.stderr)
        raise SystemExit(1)
    return data


@contextmanager
def _cli_errors() -> Iterator[None]:
    """Turn a VegabotError into a one-line error message and exit code 1."""
    try:
        yield
    except VegabotError as e:
        print(f"error: {e}", file=sys.stderr)
        raise SystemExit(1) from e


def main() -> None:
    app()


if __name__ == "__main__":
    main()
