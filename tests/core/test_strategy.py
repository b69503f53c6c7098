from __future__ import annotations

import itertools

import pytest

from vegabot.core.errors import ModelNotFoundError
from vegabot.core.models import ContextStrategy, MessageType, Provider
from vegabot.core.strategy import (
    StrategyThresholds,
    build_context_for_strategy,
    build_trading_data_summary,
    detect_message_type,
    estimate_context_tokens,
    max_messages_for_strategy,
    select_context_strategy,
    thresholds_for,
)

CLAUDE = "claude-3-5-haiku-20241022"
DEEPSEEK = "deepseek-chat"


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("hey, thanks!", MessageType.GENERIC),
        ("Hello there", MessageType.GENERIC),
        ("who are you?", MessageType.GENERIC),
        ("what's my win rate this month?", MessageType.TRADING_ANALYSIS),
        ("Show me my P&L", MessageType.TRADING_ANALYSIS),
        ("what is the current price of ETH", MessageType.MARKET_DATA),
        ("what is BTC trading at", MessageType.MARKET_DATA),
        ("should I buy a car?", MessageType.QUESTION),
        ("", MessageType.UNKNOWN),
        (None, MessageType.UNKNOWN),
        (42, MessageType.UNKNOWN),
    ],
)
def test_detect_message_type(message, expected):
    assert detect_message_type(message) is expected


def test_market_patterns_win_over_trading_patterns():
    # "trading at" also contains the trading keyword "trade"
    assert detect_message_type("what is SOL trading at right now") is MessageType.MARKET_DATA


def test_deep_free_conversation_is_minimal():
    decision = select_context_strategy(CLAUDE, conversation_depth=25, tier="free")
    assert decision.strategy is ContextStrategy.MINIMAL
    assert "Conversation depth (25)" in decision.reason
    assert decision.recommendations


def test_default_thresholds_apply_verbatim_when_given():
    decision = select_context_strategy(
        DEEPSEEK, conversation_depth=25, thresholds=StrategyThresholds()
    )
    assert decision.strategy is ContextStrategy.MINIMAL


def test_deepseek_thresholds_are_more_generous():
    assert select_context_strategy(DEEPSEEK, conversation_depth=25).strategy is (
        ContextStrategy.SUMMARY
    )
    assert select_context_strategy(DEEPSEEK, conversation_depth=14).strategy is (
        ContextStrategy.FULL
    )
    assert select_context_strategy(DEEPSEEK, conversation_depth=30).strategy is (
        ContextStrategy.MINIMAL
    )


def test_no_trade_data_wins_over_everything():
    decision = select_context_strategy(
        CLAUDE,
        conversation_depth=0,
        tier="pro",
        message_type=MessageType.GENERIC,
        has_trade_data=False,
    )
    assert decision.strategy is ContextStrategy.MINIMAL
    assert decision.reason == "No trade data available"


def test_generic_message_needs_no_context():
    decision = select_context_strategy(
        CLAUDE, conversation_depth=50, message_type=MessageType.GENERIC
    )
    assert decision.strategy is ContextStrategy.NONE


def test_off_topic_string_message_type():
    decision = select_context_strategy(CLAUDE, message_type="off_topic")
    assert decision.strategy is ContextStrategy.NONE


def test_oversized_context_is_summarized():
    decision = select_context_strategy(CLAUDE, estimated_context_tokens=9000)
    assert decision.strategy is ContextStrategy.SUMMARY
    assert "9000 tokens" in decision.reason


def test_summary_threshold():
    decision = select_context_strategy(CLAUDE, conversation_depth=10)
    assert decision.strategy is ContextStrategy.SUMMARY
    assert "summary threshold (10)" in decision.reason


def test_tier_only_changes_the_reason():
    free = select_context_strategy(CLAUDE, conversation_depth=3, tier="free")
    pro = select_context_strategy(CLAUDE, conversation_depth=3, tier="pro")
    assert free.strategy is pro.strategy is ContextStrategy.FULL
    assert free.reason != pro.reason


def test_factors_record_inputs():
    decision = select_context_strategy(
        DEEPSEEK, conversation_depth=4, estimated_context_tokens=123
    )
    assert decision.factors["conversation_depth"] == 4
    assert decision.factors["estimated_context_tokens"] == 123
    assert decision.factors["provider"] == "deepseek"
    assert decision.factors["thresholds"]["summary_after_messages"] == 15


def test_unrecognized_message_type_is_treated_as_question():
    decision = select_context_strategy(DEEPSEEK, message_type="command")
    assert decision.strategy is ContextStrategy.FULL
    assert decision.factors["message_type"] == "question"
    deep = select_context_strategy(CLAUDE, conversation_depth=25, message_type="command")
    assert deep.strategy is ContextStrategy.MINIMAL


def test_unknown_model_raises():
    with pytest.raises(ModelNotFoundError):
        select_context_strategy("nope")


@pytest.mark.parametrize("depth", [-5, None, "abc", float("nan")])
def test_odd_depths_are_treated_as_zero(depth):
    decision = select_context_strategy(CLAUDE, conversation_depth=depth)
    assert decision.strategy is ContextStrategy.FULL
    assert decision.factors["conversation_depth"] == 0


def test_odd_token_estimates_are_treated_as_zero():
    for tokens in (None, -1, float("inf")):
        decision = select_context_strategy(CLAUDE, estimated_context_tokens=tokens)
        assert decision.strategy is ContextStrategy.FULL


def test_deeper_conversations_never_get_more_context():
    for model_id, tier, kind, tokens, has_data in itertools.product(
        (CLAUDE, DEEPSEEK),
        ("free", "pro"),
        (MessageType.QUESTION, MessageType.TRADING_ANALYSIS, MessageType.GENERIC),
        (0, 5000, 20000),
        (True, False),
    ):
        ranks = [
            select_context_strategy(
                model_id,
                conversation_depth=depth,
                tier=tier,
                message_type=kind,
                estimated_context_tokens=tokens,
                has_trade_data=has_data,
            ).strategy.rank
            for depth in range(0, 45)
        ]
        assert ranks == sorted(ranks, reverse=True)


def test_missing_data_is_never_full():
    for depth in range(0, 40, 3):
        for kind in MessageType:
            decision = select_context_strategy(
                DEEPSEEK, conversation_depth=depth, message_type=kind, has_trade_data=False
            )
            assert decision.strategy is not ContextStrategy.FULL


def test_thresholds_for_provider():
    assert thresholds_for(Provider.DEEPSEEK).minimal_after_messages == 30
    assert thresholds_for(Provider.ANTHROPIC) == StrategyThresholds()
    assert thresholds_for(Provider.OPENAI) == StrategyThresholds()
    assert thresholds_for(None) == StrategyThresholds()


def test_estimate_context_tokens():
    assert estimate_context_tokens(None) == 0
    assert estimate_context_tokens({"a": "x" * 100}) == 28  # 109 chars of JSON


def _full_context() -> dict:
    return {
        "summary": {"totalTrades": 240, "tradingDurationMonths": 8, "extra": True},
        "performance": {
            "totalPnL": 1520.5,
            "winRate": 54.2,
            "profitFactor": 1.4,
            "avgWin": 80,
            "avgLoss": -60,
            "sharpe": 1.1,
        },
        "symbols": {"mostTraded": ["BTC", "ETH", "SOL", "DOGE"]},
        "hourly": {"09": 12},
    }


def test_trading_data_summary_keeps_core_fields():
    summary = build_trading_data_summary(_full_context())
    assert summary == {
        "summary": {"totalTrades": 240, "tradingDurationMonths": 8},
        "performance": {
            "totalPnL": 1520.5,
            "winRate": 54.2,
            "profitFactor": 1.4,
            "avgWin": 80,
            "avgLoss": -60,
        },
        "topSymbols": ["BTC", "ETH", "SOL"],
    }
    assert build_trading_data_summary(None) is None


def test_build_context_for_each_strategy():
    context = _full_context()
    recent = list(range(12))

    full = build_context_for_strategy(ContextStrategy.FULL, context, recent_messages=recent)
    assert full.trading_context is context
    assert full.recent_message_count == 12
    assert not full.summarize_history and not full.reduce_trading_data

    summary = build_context_for_strategy(
        ContextStrategy.SUMMARY, context, "earlier talk", recent_messages=recent
    )
    assert summary.trading_context["topSymbols"] == ["BTC", "ETH", "SOL"]
    assert summary.conversation_summary == "earlier talk"
    assert summary.recent_message_count == 6
    assert summary.summarize_history and summary.reduce_trading_data

    minimal = build_context_for_strategy(ContextStrategy.MINIMAL, context, recent_messages=recent)
    assert minimal.trading_context is None
    assert minimal.recent_message_count == 4

    none = build_context_for_strategy(
        ContextStrategy.NONE, context, "earlier talk", recent_messages=recent
    )
    assert none.trading_context is None
    assert none.conversation_summary is None
    assert none.recent_message_count == 2
    assert not none.summarize_history


def test_recent_count_never_exceeds_available():
    plan = build_context_for_strategy(ContextStrategy.SUMMARY, None, recent_messages=[1, 2])
    assert plan.recent_message_count == 2


def test_max_messages_for_strategy():
    assert [max_messages_for_strategy(s) for s in ContextStrategy] == [20, 6, 4, 2]
