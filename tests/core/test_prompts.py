from __future__ import annotations

from datetime import datetime, timezone

import pytest

from vegabot.core.errors import MissingContextError
from vegabot.core.models import PromptContext
from vegabot.core.prompts import (
    FALLBACK_NO_DATA,
    TEMPLATES,
    PromptTemplate,
    build_prompt_context,
    calculate_streaks,
    coach_mode_starters,
    determine_experience_level,
    generate_dynamic_prompts,
    generate_greeting,
    interpolate_template,
    rank_time_slots,
    shorten_prompt,
    time_of_day,
    topic_from_summary,
    verify_templates,
)

NOW = datetime(2025, 6, 15, 9, 0, tzinfo=timezone.utc)


def _losing_context(**overrides) -> PromptContext:
    values = {
        "has_trade_data": True,
        "is_first_visit": False,
        "total_trades": 64,
        "win_rate": 35,
        "total_pnl": -500,
        "lose_streak": 4,
    }
    values.update(overrides)
    return PromptContext(**values)


def test_templates_are_consistent():
    verify_templates()
    assert len({t.key for t in TEMPLATES}) == len(TEMPLATES)


def test_verify_templates_rejects_undeclared_placeholder():
    bad = PromptTemplate("bad", "Why {win_rate}?", (), lambda c: True, 1, "performance")
    with pytest.raises(ValueError, match="placeholders not in requires"):
        verify_templates([bad])


def test_verify_templates_rejects_duplicate_keys():
    tpl = TEMPLATES[0]
    with pytest.raises(ValueError, match="Duplicate"):
        verify_templates([tpl, tpl])


def test_interpolation_formats_values():
    ctx = PromptContext(win_rate=42.567, total_pnl=-12345.4, total_trades=1250)
    assert interpolate_template("{win_rate}%", ctx) == "42.6%"
    assert interpolate_template("${total_pnl}", ctx) == "$12,345"
    assert interpolate_template("{total_trades} trades", ctx) == "1,250 trades"
    symbol_ctx = PromptContext(best_symbol_win_rate=60)
    assert interpolate_template("{best_symbol_win_rate}", symbol_ctx) == "60.0"


def test_interpolation_of_unset_field_raises():
    with pytest.raises(MissingContextError) as exc_info:
        interpolate_template("Why {best_symbol}?", PromptContext())
    assert exc_info.value.key == "best_symbol"
    assert str(exc_info.value) == "Missing context key: best_symbol"


def test_template_with_missing_field_does_not_apply():
    weak = next(t for t in TEMPLATES if t.key == "weak_win_rate")
    assert not weak.applies(PromptContext())
    assert weak.applies(PromptContext(win_rate=20))


@pytest.mark.parametrize(
    ("hour", "expected"),
    [
        (5, "morning"),
        (11, "morning"),
        (12, "afternoon"),
        (17, "evening"),
        (21, "night"),
        (2, "night"),
    ],
)
def test_time_of_day(hour, expected):
    assert time_of_day(datetime(2025, 1, 1, hour)) == expected


def test_greeting_first_visit():
    ctx = PromptContext(is_first_visit=True, total_trades=1250, has_trade_data=True)
    assert generate_greeting(ctx) == "Welcome to Vega! I see 1,250 trades to analyze."
    assert generate_greeting(PromptContext()) == (
        "Welcome to Vega! Connect your exchange or upload trades to get started."
    )


@pytest.mark.parametrize(
    ("days", "suffix"),
    [
        (0, "Back again!"),
        (1, "Good to see you!"),
        (3, "Been a few days!"),
        (6, "It's been a while!"),
        (40, "Great to see you again!"),
    ],
)
def test_greeting_returning_user(days, suffix):
    ctx = PromptContext(is_first_visit=False, days_since_last_conversation=days)
    assert generate_greeting(ctx, now=datetime(2025, 1, 1, 20)) == f"Good evening! {suffix}"


def test_greeting_is_deterministic():
    ctx = _losing_context(days_since_last_conversation=2)
    assert generate_greeting(ctx) == generate_greeting(ctx)


def test_no_trade_data_uses_onboarding_prompts():
    result = generate_dynamic_prompts(PromptContext(), max_prompts=3)
    assert result.prompts == list(FALLBACK_NO_DATA[:3])
    assert result.greeting


def test_prompts_for_losing_trader():
    result = generate_dynamic_prompts(_losing_context())
    assert result.prompts == [
        "Why am I down $500? What's going wrong?",
        "Help me break my 4-trade losing streak",
        "What patterns appear in my losing trades?",
        "Why is my win rate only 35.0%?",
        "How can I improve my risk-adjusted returns?",
    ]


def test_explored_topics_are_deprioritized():
    ctx = _losing_context(explored_topics=frozenset({"win rate"}))
    prompts = generate_dynamic_prompts(ctx).prompts
    assert prompts[0] == "Help me break my 4-trade losing streak"


def test_prompt_count_limits():
    assert generate_dynamic_prompts(_losing_context(), max_prompts=0).prompts == []
    assert len(generate_dynamic_prompts(_losing_context(), max_prompts=2).prompts) == 2
    assert generate_dynamic_prompts(_losing_context(), include_greeting=False).greeting is None


def test_prompts_are_unique():
    prompts = generate_dynamic_prompts(_losing_context(), max_prompts=20).prompts
    assert len(prompts) == len(set(prompts))


def test_coach_mode_shortens_prompts():
    prompts = generate_dynamic_prompts(_losing_context(), coach_mode=True).prompts
    assert "Why am I down $500?" in prompts
    assert all(len(p) <= 53 for p in prompts)


def test_shorten_prompt():
    assert shorten_prompt("Let's review my entries - the last ten") == "review my entries"
    assert shorten_prompt("x" * 60) == "x" * 50 + "..."


def test_coach_mode_starters():
    assert coach_mode_starters(PromptContext())[0] == "What can you help me with?"
    starters = coach_mode_starters(_losing_context(best_symbol="BTC"), max_prompts=4)
    assert starters == [
        "Why am I losing?",
        "Fix my win rate",
        "Breaking my losing streak",
        "Analyze my BTC",
    ]


def test_topic_from_summary():
    assert topic_from_summary("We covered position sizing for BTC") == "position sizing"
    assert topic_from_summary("Nothing relevant") is None
    assert topic_from_summary(None) is None


def test_calculate_streaks_counts_from_most_recent():
    trades = [
        {"time": "2025-06-01T00:00:00Z", "pnl": -5},
        {"time": "2025-06-03T00:00:00Z", "pnl": 4},
        {"time": "2025-06-04T00:00:00Z", "pnl": 0},
        {"time": "2025-06-05T00:00:00Z", "pnl": 2},
    ]
    assert calculate_streaks(trades) == (2, 0)
    assert calculate_streaks([{"time": "2025-06-01", "pnl": -1}]) == (0, 1)
    assert calculate_streaks([]) == (0, 0)


def test_rank_time_slots_ignores_thin_slots():
    best, worst = rank_time_slots(
        [
            {"label": "Asia", "trades": 10, "winRate": 40},
            {"label": "London", "trades": 12, "winRate": 61},
            {"label": "Weekend", "trades": 2, "winRate": 100},
        ]
    )
    assert best == ("London", 61.0)
    assert worst == ("Asia", 40.0)
    assert rank_time_slots(None) == (None, None)


def test_experience_levels():
    assert determine_experience_level(None, None) == "beginner"
    assert determine_experience_level({"totalTrades": 30}, {}, now=NOW) == "beginner"
    veteran = {"totalTrades": 400, "oldestTrade": "2023-01-01T00:00:00Z"}
    assert (
        determine_experience_level(veteran, {"winRate": 52, "profitFactor": 1.5}, now=NOW)
        == "advanced"
    )
    assert (
        determine_experience_level(veteran, {"winRate": 40, "profitFactor": 1.5}, now=NOW)
        == "intermediate"
    )
    recent = {"totalTrades": 400, "oldestTrade": "2025-05-01T00:00:00Z"}
    assert determine_experience_level(recent, {}, now=NOW) == "beginner"


def test_experience_level_accepts_naive_now():
    veteran = {"totalTrades": 400, "oldestTrade": "2023-01-01T00:00:00Z"}
    naive = datetime(2025, 6, 15, 9, 0)
    assert (
        determine_experience_level(veteran, {"winRate": 52, "profitFactor": 1.5}, now=naive)
        == "advanced"
    )


def _snapshot() -> tuple[dict, dict, list[dict]]:
    trades_stats = {
        "totalTrades": 120,
        "oldestTrade": "2025-01-01T00:00:00Z",
        "newestTrade": "2025-06-10T00:00:00Z",
        "newTradesSinceLastVisit": 6,
    }
    analytics = {
        "winRate": 48.456,
        "totalPnL": 950.123,
        "profitFactor": 1.3,
        "avgWin": 60,
        "avgLoss": -100,
        "symbols": {
            "BTC": {"trades": 40, "winRate": 62},
            "ETH": {"trades": 12, "winRate": 30},
            "DOGE": {"trades": 2, "winRate": 100},
        },
        "hourlyStats": {
            "morning": {"trades": 20, "winRate": 58},
            "night": {"trades": 8, "winRate": 31},
            "afternoon": {"trades": 3, "winRate": 90},
        },
        "recentTrades": [
            {"time": "2025-06-10T10:00:00Z", "pnl": 5},
            {"time": "2025-06-09T10:00:00Z", "pnl": 3},
            {"time": "2025-06-08T10:00:00Z", "pnl": -2},
            {"time": "2025-05-01T00:00:00Z", "pnl": 1},
        ],
    }
    previous = [
        {
            "summary": "We discussed win rate and risk management.",
            "updated_at": "2025-06-12T09:00:00Z",
        }
    ]
    return trades_stats, analytics, previous


def test_build_prompt_context():
    ctx = build_prompt_context(*_snapshot(), now=NOW)
    assert ctx.has_trade_data is True
    assert ctx.is_first_visit is False
    assert ctx.time_of_day == "morning"
    assert ctx.days_since_last_conversation == 3
    assert ctx.last_topic == "win rate"
    assert ctx.explored_topics == frozenset({"win rate"})
    assert ctx.days_since_last_trade == 5
    assert ctx.avg_trades_per_week == 5
    assert ctx.new_trades_since_last_visit == 6
    assert ctx.win_rate == 48.46
    assert ctx.total_pnl == 950.12
    assert ctx.avg_loss == 100.0
    assert ctx.loss_to_win_ratio == 1.7
    assert ctx.win_to_loss_ratio == 0.6
    assert (ctx.best_symbol, ctx.worst_symbol, ctx.top_symbol) == ("BTC", "ETH", "BTC")
    assert ctx.unique_symbols == 3
    assert (ctx.best_time_slot, ctx.worst_time_slot) == ("morning", "night")
    assert (ctx.win_streak, ctx.lose_streak) == (2, 0)
    assert ctx.recent_trade_count == 3
    assert ctx.largest_trade is None
    assert ctx.experience_level == "intermediate"


def test_prompts_from_snapshot():
    ctx = build_prompt_context(*_snapshot(), now=NOW)
    result = generate_dynamic_prompts(ctx)
    assert result.greeting == "Good morning! Been a few days!"
    assert result.prompts == [
        "Analyze my 6 new trades",
        "What's wrong with my ETH trades?",
        "How did my last 3 trades go?",
        "How can I reduce my average loss of $100?",
        "Should I avoid trading during night?",
    ]


def test_first_visit_context_without_trades():
    ctx = build_prompt_context({"totalTrades": 0}, None, now=NOW)
    assert ctx.has_trade_data is False
    assert ctx.is_first_visit is True
    assert ctx.experience_level == "beginner"
