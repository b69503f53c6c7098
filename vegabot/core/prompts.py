"""
Dynamic prompt and greeting generation.

Turns an analytics snapshot into a PromptContext, then picks a handful of
personalized follow-up questions and a greeting from it. Each template names
the context fields it needs; a template is only considered once all of them
are present, so interpolation of a selected template cannot fail.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Literal

from loguru import logger

from vegabot.core.errors import MissingContextError
from vegabot.core.models import PromptContext

ExperienceLevel = Literal["beginner", "intermediate", "advanced"]

_PLACEHOLDER = re.compile(r"\{(\w+)\}")
_CONTEXT_FIELDS = frozenset(f.name for f in fields(PromptContext))

# Currency amounts are shown unsigned; the template wording carries the sign.
_CURRENCY_FIELDS = frozenset({"total_pnl", "avg_win", "avg_loss", "largest_trade", "avg_trade_size"})

EXPLORED_PENALTY = 30
SYMBOL_MIN_TRADES = 5
TIME_SLOT_MIN_TRADES = 5


@dataclass(frozen=True)
class PromptTemplate:
    """A personalized question, shown when its condition holds."""

    key: str
    template: str
    requires: tuple[str, ...]
    condition: Callable[[PromptContext], bool]
    priority: int
    category: str

    def placeholders(self) -> set[str]:
        return set(_PLACEHOLDER.findall(self.template))

    def applies(self, ctx: PromptContext) -> bool:
        """Evaluate the condition once every required field is set."""
        if any(getattr(ctx, name) is None for name in self.requires):
            return False
        return bool(self.condition(ctx))


@dataclass
class DynamicPrompts:
    greeting: str | None
    prompts: list[str] = field(default_factory=list)


# Questions are phrased as the user would type them to Vega.
TEMPLATES: tuple[PromptTemplate, ...] = (
    # performance
    PromptTemplate(
        "strong_win_rate",
        "What's making my {win_rate}% win rate work?",
        ("win_rate",),
        lambda c: c.win_rate >= 55,
        75,
        "performance",
    ),
    PromptTemplate(
        "weak_win_rate",
        "Why is my win rate only {win_rate}%?",
        ("win_rate",),
        lambda c: 0 < c.win_rate < 40,
        90,
        "performance",
    ),
    PromptTemplate(
        "profitable_trader",
        "What's my edge that's made me ${total_pnl}?",
        ("total_pnl",),
        lambda c: c.total_pnl > 100,
        70,
        "performance",
    ),
    PromptTemplate(
        "losing_trader",
        "Why am I down ${total_pnl}? What's going wrong?",
        ("total_pnl",),
        lambda c: c.total_pnl < -100,
        95,
        "performance",
    ),
    PromptTemplate(
        "profit_factor_below_one",
        "My profit factor is {profit_factor}. How do I get it above 1?",
        ("profit_factor",),
        lambda c: 0 < c.profit_factor < 1,
        80,
        "performance",
    ),
    # symbols
    PromptTemplate(
        "best_symbol",
        "Why is {best_symbol} my best performer at {best_symbol_win_rate}%?",
        ("best_symbol", "best_symbol_win_rate"),
        lambda c: c.best_symbol_win_rate >= 60,
        80,
        "symbols",
    ),
    PromptTemplate(
        "worst_symbol",
        "What's wrong with my {worst_symbol} trades?",
        ("worst_symbol", "worst_symbol_win_rate"),
        lambda c: c.worst_symbol_win_rate < 35 and c.worst_symbol_trades >= SYMBOL_MIN_TRADES,
        85,
        "symbols",
    ),
    PromptTemplate(
        "top_symbol_focus",
        "How are my {top_symbol} trades performing?",
        ("top_symbol",),
        lambda c: c.top_symbol_trades >= 10,
        65,
        "symbols",
    ),
    PromptTemplate(
        "diverse_portfolio",
        "Am I trading too many symbols ({unique_symbols} pairs)?",
        ("unique_symbols",),
        lambda c: c.unique_symbols >= 8,
        60,
        "symbols",
    ),
    # activity
    PromptTemplate(
        "recent_trades",
        "How did my last {recent_trade_count} trades go?",
        ("recent_trade_count",),
        lambda c: 0 < c.recent_trade_count <= 20,
        85,
        "activity",
    ),
    PromptTemplate(
        "heavy_trading",
        "Am I overtrading? I took {recent_trade_count} trades this week",
        ("recent_trade_count",),
        lambda c: c.recent_trade_count > 20,
        88,
        "activity",
    ),
    PromptTemplate(
        "no_recent_trades",
        "What should I focus on after {days_since_last_trade} days away?",
        ("days_since_last_trade",),
        lambda c: 7 <= c.days_since_last_trade < 30,
        70,
        "activity",
    ),
    PromptTemplate(
        "long_absence",
        "Give me a recap - it's been {days_since_last_trade} days",
        ("days_since_last_trade",),
        lambda c: c.days_since_last_trade >= 30,
        75,
        "activity",
    ),
    # patterns
    PromptTemplate(
        "winning_streak",
        "What's working in my {win_streak}-trade win streak?",
        ("win_streak",),
        lambda c: c.win_streak >= 3,
        82,
        "patterns",
    ),
    PromptTemplate(
        "losing_streak",
        "Help me break my {lose_streak}-trade losing streak",
        ("lose_streak",),
        lambda c: c.lose_streak >= 3,
        92,
        "patterns",
    ),
    PromptTemplate(
        "consistent_trader",
        "Is {avg_trades_per_week} trades per week too many?",
        ("avg_trades_per_week",),
        lambda c: 5 <= c.avg_trades_per_week <= 20,
        55,
        "patterns",
    ),
    # timing
    PromptTemplate(
        "best_time_slot",
        "Why do I perform better during {best_time_slot}?",
        ("best_time_slot", "best_time_slot_win_rate"),
        lambda c: c.best_time_slot_win_rate >= 55,
        68,
        "timing",
    ),
    PromptTemplate(
        "worst_time_slot",
        "Should I avoid trading during {worst_time_slot}?",
        ("worst_time_slot", "worst_time_slot_win_rate"),
        lambda c: c.worst_time_slot_win_rate < 40,
        72,
        "timing",
    ),
    # risk
    PromptTemplate(
        "high_avg_loss",
        "How can I reduce my average loss of ${avg_loss}?",
        ("avg_loss", "avg_win", "loss_to_win_ratio"),
        lambda c: c.loss_to_win_ratio > 1.5,
        78,
        "risk",
    ),
    PromptTemplate(
        "good_risk_reward",
        "How can I maintain my {win_to_loss_ratio}x reward ratio?",
        ("avg_loss", "avg_win", "win_to_loss_ratio"),
        lambda c: c.win_to_loss_ratio >= 1.5,
        60,
        "risk",
    ),
    PromptTemplate(
        "position_sizing",
        "Is my position sizing consistent?",
        ("largest_trade", "avg_trade_size"),
        lambda c: c.avg_trade_size > 0 and c.largest_trade > c.avg_trade_size * 3,
        65,
        "risk",
    ),
    # milestone
    PromptTemplate(
        "trade_count_milestone",
        "What patterns do you see in my {total_trades} trades?",
        ("total_trades",),
        lambda c: c.total_trades >= 100 and c.total_trades % 100 < 10,
        50,
        "milestone",
    ),
    PromptTemplate(
        "first_hundred",
        "I'm almost at 100 trades - what should I know?",
        ("total_trades",),
        lambda c: 80 <= c.total_trades < 100,
        55,
        "milestone",
    ),
    # returning
    PromptTemplate(
        "welcome_back",
        "Can we follow up on {last_topic}?",
        ("last_topic", "days_since_last_conversation"),
        lambda c: c.days_since_last_conversation >= 1,
        88,
        "returning",
    ),
    PromptTemplate(
        "new_data_since_last_visit",
        "Analyze my {new_trades_since_last_visit} new trades",
        ("new_trades_since_last_visit",),
        lambda c: c.new_trades_since_last_visit >= 5,
        90,
        "returning",
    ),
)

FALLBACK_BY_EXPERIENCE: dict[str, tuple[str, ...]] = {
    "beginner": (
        "What are my biggest trading mistakes?",
        "How can I improve my entries?",
        "Am I risking too much per trade?",
        "Which trades should I avoid?",
        "What's one thing I should focus on?",
    ),
    "intermediate": (
        "What patterns appear in my losing trades?",
        "How can I improve my risk-adjusted returns?",
        "Should I specialize in fewer symbols?",
        "What's my optimal trade frequency?",
        "Where's my biggest edge?",
    ),
    "advanced": (
        "How can I optimize my position sizing?",
        "What correlations exist in my trades?",
        "Analyze my performance by market conditions",
        "What behavioral patterns affect my trading?",
        "How can I compound my edge?",
    ),
}

FALLBACK_NO_DATA: tuple[str, ...] = (
    "What can Vega help me with?",
    "How do I connect my exchange?",
    "Show me what insights I'll get",
    "What makes Vega different?",
    "How does the AI analysis work?",
)

_TIME_OF_DAY_GREETINGS = {
    "morning": "Good morning!",
    "afternoon": "Good afternoon!",
    "evening": "Good evening!",
    "night": "Hey night owl!",
}
_FIRST_TIME_GREETING = "Welcome to Vega!"

# Topics found in past conversation summaries, in match order.
_SUMMARY_TOPIC_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"win rate", re.IGNORECASE), "win rate"),
    (re.compile(r"risk management", re.IGNORECASE), "risk management"),
    (re.compile(r"position siz", re.IGNORECASE), "position sizing"),
    (re.compile(r"losing trades?|losses", re.IGNORECASE), "losing trades"),
    (re.compile(r"winning trades?|wins", re.IGNORECASE), "winning trades"),
    (re.compile(r"overtrading", re.IGNORECASE), "trading frequency"),
    (re.compile(r"symbols?|pairs?", re.IGNORECASE), "symbol analysis"),
    (re.compile(r"timing|hours?|session", re.IGNORECASE), "timing"),
    (re.compile(r"pattern|behavior", re.IGNORECASE), "trading patterns"),
]

TOPIC_CATEGORIES: dict[str, str] = {
    "win rate": "performance",
    "losing trades": "performance",
    "winning trades": "performance",
    "risk management": "risk",
    "position sizing": "risk",
    "trading frequency": "activity",
    "symbol analysis": "symbols",
    "timing": "timing",
    "trading patterns": "patterns",
}


def verify_templates(templates: Iterable[PromptTemplate] = TEMPLATES) -> None:
    """
    Check that every template placeholder is a required PromptContext field.

    Raises:
        ValueError: On a duplicate key, an undeclared placeholder, or an unknown field.
    """
    seen: set[str] = set()
    for tpl in templates:
        if tpl.key in seen:
            raise ValueError(f"Duplicate prompt template key '{tpl.key}'")
        seen.add(tpl.key)
        unknown = set(tpl.requires) - _CONTEXT_FIELDS
        if unknown:
            raise ValueError(f"Template '{tpl.key}' requires unknown fields: {sorted(unknown)}")
        undeclared = tpl.placeholders() - set(tpl.requires)
        if undeclared:
            raise ValueError(
                f"Template '{tpl.key}' uses placeholders not in requires: {sorted(undeclared)}"
            )


verify_templates()


def _format_value(name: str, value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    if name.endswith(("_rate", "_ratio")):
        return f"{value:.1f}"
    if name in _CURRENCY_FIELDS:
        return f"{abs(value):,.0f}"
    if isinstance(value, int):
        return f"{value:,}"
    return f"{value:,.1f}"


def interpolate_template(template: str, ctx: PromptContext) -> str:
    """
    Fill ``{field}`` placeholders from a PromptContext.

    Rates and ratios get one decimal; currency fields are shown unsigned with
    thousands separators and no decimals; other numbers get thousands separators.

    Raises:
        MissingContextError: If a referenced field is missing or None.
    """

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        value = getattr(ctx, name, None)
        if value is None:
            raise MissingContextError(name)
        return _format_value(name, value)

    return _PLACEHOLDER.sub(substitute, template)


def time_of_day(moment: datetime) -> str:
    hour = moment.hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def _get(data: Mapping[str, Any] | None, *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among camelCase/snake_case aliases."""
    if not data:
        return default
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def _parse_date(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str) and value:
        try:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("prompts: ignoring unparseable date {!r}", value)
            return None
    else:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _days_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 86400


def _trade_count(data: Mapping[str, Any]) -> int:
    return int(_get(data, "totalTrades", "total_trades", "trades", default=0) or 0)


def _round2(value: Any) -> float | None:
    return round(float(value), 2) if value else None


def topic_from_summary(text: str | None) -> str | None:
    """Return the first known topic mentioned in a conversation summary or title."""
    if not text:
        return None
    for pattern, topic in _SUMMARY_TOPIC_PATTERNS:
        if pattern.search(text):
            return topic
    return None


def calculate_streaks(trades: Sequence[Mapping[str, Any]]) -> tuple[int, int]:
    """
    Return the current (win streak, lose streak) counted from the most recent trade.

    Break-even trades are skipped; at most one of the two values is non-zero.
    """
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    ordered = sorted(
        trades,
        key=lambda t: _parse_date(_get(t, "time", "trade_time")) or epoch,
        reverse=True,
    )
    wins = losses = 0
    for trade in ordered:
        pnl = float(_get(trade, "pnl", "realizedPnl", "realized_pnl", default=0) or 0)
        if pnl > 0:
            if losses:
                break
            wins += 1
        elif pnl < 0:
            if wins:
                break
            losses += 1
    return wins, losses


def rank_time_slots(
    time_data: Any,
) -> tuple[tuple[str, float] | None, tuple[str, float] | None]:
    """Return the best and worst (label, win rate) among slots with enough trades."""
    slots: list[tuple[str, float, int]] = []
    if isinstance(time_data, Mapping):
        for label, value in time_data.items():
            if isinstance(value, Mapping):
                slots.append(
                    (
                        str(label),
                        float(_get(value, "winRate", "win_rate", default=0) or 0),
                        int(_get(value, "trades", "count", default=0) or 0),
                    )
                )
    elif isinstance(time_data, Sequence) and not isinstance(time_data, str):
        for value in time_data:
            if isinstance(value, Mapping):
                slots.append(
                    (
                        str(_get(value, "label", default="")),
                        float(_get(value, "winRate", "win_rate", default=0) or 0),
                        int(_get(value, "trades", "count", default=0) or 0),
                    )
                )
    qualified = [s for s in slots if s[2] >= TIME_SLOT_MIN_TRADES]
    if not qualified:
        return None, None
    qualified.sort(key=lambda s: s[1], reverse=True)
    best, worst = qualified[0], qualified[-1]
    return (best[0], best[1]), (worst[0], worst[1])


def determine_experience_level(
    trades_stats: Mapping[str, Any] | None,
    analytics: Mapping[str, Any] | None,
    *,
    now: datetime | None = None,
) -> ExperienceLevel:
    """
    Classify a trader from trade count, trading history length and results.

    Win rate is read as a percentage, like every other win rate in the
    analytics snapshot.
    """
    total = _trade_count(trades_stats) if trades_stats else 0
    if total == 0:
        return "beginner"
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    oldest = _parse_date(_get(trades_stats, "oldestTrade", "oldest_trade"))
    months = max(1, math.floor(_days_between(oldest, moment) / 30)) if oldest else 1

    if total < 50 or months < 3:
        return "beginner"
    if total < 200 or months < 12:
        return "intermediate"
    win_rate = float(_get(analytics, "winRate", "win_rate", default=0) or 0)
    profit_factor = float(_get(analytics, "profitFactor", "profit_factor", default=0) or 0)
    if win_rate > 45 and profit_factor > 1.1:
        return "advanced"
    return "intermediate"


def build_prompt_context(
    trades_stats: Mapping[str, Any] | None,
    analytics: Mapping[str, Any] | None,
    previous_conversations: Sequence[Mapping[str, Any]] = (),
    *,
    now: datetime | None = None,
) -> PromptContext:
    """
    Assemble the per-turn PromptContext from analytics and conversation metadata.

    Args:
        trades_stats: Trade counts and dates (``totalTrades``, ``oldestTrade``,
            ``newestTrade``, ``newTradesSinceLastVisit``).
        analytics: Performance snapshot (``winRate``, ``totalPnL``, ``symbols``,
            ``hourlyStats``, ``recentTrades``, ...).
        previous_conversations: Earlier conversations, most recent first, each with
            ``summary``, ``title`` and ``created_at``/``updated_at``.
        now: Reference time; defaults to the current local time.

    Returns:
        A read-only context snapshot.
    """
    moment = now or datetime.now().astimezone()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    total = _trade_count(trades_stats) if trades_stats else 0
    values: dict[str, Any] = {
        "has_trade_data": total > 0,
        "is_first_visit": not previous_conversations,
        "total_trades": total,
        "time_of_day": time_of_day(moment),
    }

    if previous_conversations:
        last = previous_conversations[0]
        last_date = _parse_date(_get(last, "updated_at", "created_at"))
        if last_date is not None:
            values["days_since_last_conversation"] = max(
                0, math.floor(_days_between(last_date, moment))
            )
        values["last_topic"] = topic_from_summary(last.get("summary"))
        explored = set()
        for conv in previous_conversations:
            for text in (conv.get("summary"), conv.get("title")):
                topic = topic_from_summary(text)
                if topic:
                    explored.add(topic)
        values["explored_topics"] = frozenset(explored)

    if total == 0:
        values["experience_level"] = determine_experience_level(trades_stats, analytics, now=moment)
        return PromptContext(**values)

    newest = _parse_date(_get(trades_stats, "newestTrade", "newest_trade"))
    oldest = _parse_date(_get(trades_stats, "oldestTrade", "oldest_trade"))
    if newest is not None:
        values["days_since_last_trade"] = max(0, math.floor(_days_between(newest, moment)))
    if newest is not None and oldest is not None:
        trading_days = max(1, math.ceil(_days_between(oldest, newest)))
        values["avg_trades_per_week"] = round(total / max(1, trading_days / 7))
    values["new_trades_since_last_visit"] = int(
        _get(trades_stats, "newTradesSinceLastVisit", "new_trades_since_last_visit", default=0)
    )

    if analytics:
        values.update(_performance_fields(analytics))
        values.update(_symbol_fields(analytics.get("symbols")))

        best_slot, worst_slot = rank_time_slots(_get(analytics, "hourlyStats", "timeAnalysis"))
        if best_slot:
            values["best_time_slot"], values["best_time_slot_win_rate"] = best_slot
        if worst_slot:
            values["worst_time_slot"], values["worst_time_slot_win_rate"] = worst_slot

        recent = _get(analytics, "recentTrades", "recent_trades")
        if isinstance(recent, Sequence) and not isinstance(recent, str):
            values["win_streak"], values["lose_streak"] = calculate_streaks(recent)
            values["recent_trade_count"] = sum(
                1
                for t in recent
                if (d := _parse_date(_get(t, "time", "trade_time"))) is not None
                and _days_between(d, moment) <= 7
            )

        largest_win = _get(analytics, "largestWin", "largest_win")
        largest_loss = _get(analytics, "largestLoss", "largest_loss")
        if largest_win or largest_loss:
            values["largest_trade"] = max(abs(largest_win or 0), abs(largest_loss or 0))
        avg_size = _get(analytics, "avgTradeSize", "avg_trade_size")
        if avg_size:
            values["avg_trade_size"] = float(avg_size)

    values["experience_level"] = determine_experience_level(trades_stats, analytics, now=moment)
    return PromptContext(**values)


def _performance_fields(analytics: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {
        "win_rate": _round2(_get(analytics, "winRate", "win_rate")),
        "total_pnl": _round2(_get(analytics, "totalPnL", "total_pnl")),
        "profit_factor": _get(analytics, "profitFactor", "profit_factor") or None,
        "avg_win": _round2(_get(analytics, "avgWin", "avg_win")),
    }
    avg_loss = _round2(_get(analytics, "avgLoss", "avg_loss"))
    out["avg_loss"] = abs(avg_loss) if avg_loss else None
    if out["avg_win"] and out["avg_loss"]:
        out["loss_to_win_ratio"] = round(out["avg_loss"] / out["avg_win"], 1)
        out["win_to_loss_ratio"] = round(out["avg_win"] / out["avg_loss"], 1)
    return out


def _symbol_fields(symbols: Any) -> dict[str, Any]:
    if not isinstance(symbols, Mapping) or not symbols:
        return {}
    entries = [(str(name), data) for name, data in symbols.items() if isinstance(data, Mapping)]
    out: dict[str, Any] = {"unique_symbols": len(symbols)}
    if not entries:
        return out

    qualified = [e for e in entries if _trade_count(e[1]) >= SYMBOL_MIN_TRADES]
    if qualified:
        by_win_rate = sorted(
            qualified,
            key=lambda e: float(_get(e[1], "winRate", "win_rate", default=0) or 0),
            reverse=True,
        )
        best, worst = by_win_rate[0], by_win_rate[-1]
        out["best_symbol"] = best[0]
        out["best_symbol_win_rate"] = round(float(_get(best[1], "winRate", "win_rate", default=0)), 2)
        out["worst_symbol"] = worst[0]
        out["worst_symbol_win_rate"] = round(
            float(_get(worst[1], "winRate", "win_rate", default=0)), 2
        )
        out["worst_symbol_trades"] = _trade_count(worst[1])

    top = max(entries, key=lambda e: _trade_count(e[1]))
    out["top_symbol"] = top[0]
    out["top_symbol_trades"] = _trade_count(top[1])
    return out


def generate_greeting(ctx: PromptContext, now: datetime | None = None) -> str:
    """Build a deterministic greeting from time of day and visit history."""
    period = time_of_day(now) if now is not None else ctx.time_of_day
    greeting = _TIME_OF_DAY_GREETINGS.get(period, _TIME_OF_DAY_GREETINGS["morning"])

    if ctx.is_first_visit:
        if ctx.total_trades > 0:
            return f"{_FIRST_TIME_GREETING} I see {ctx.total_trades:,} trades to analyze."
        return f"{_FIRST_TIME_GREETING} Connect your exchange or upload trades to get started."

    days = ctx.days_since_last_conversation
    if days is None:
        return greeting
    if days == 0:
        returning = "Back again!"
    elif days == 1:
        returning = "Good to see you!"
    elif days <= 3:
        returning = "Been a few days!"
    elif days <= 7:
        returning = "It's been a while!"
    else:
        returning = "Great to see you again!"
    return f"{greeting} {returning}"


@dataclass
class _Candidate:
    text: str
    priority: int
    category: str


def _select_diverse(candidates: list[_Candidate], limit: int) -> list[_Candidate]:
    """One candidate per category by priority, then fill with the highest remaining."""
    selected: list[_Candidate] = []
    used: set[str] = set()
    for cand in candidates:
        if len(selected) >= limit:
            break
        if cand.category not in used:
            selected.append(cand)
            used.add(cand.category)
    for cand in candidates:
        if len(selected) >= limit:
            break
        if all(s.text != cand.text for s in selected):
            selected.append(cand)
    return selected


def shorten_prompt(prompt: str) -> str:
    """Trim a prompt for coach mode: drop lead-ins, trailing explanations, cap at 50 chars."""
    short = re.sub(r"^(Let's|Want to|Should we|How about we)\s+", "", prompt, flags=re.IGNORECASE)
    short = re.sub(r"\s+-\s+.*$", "", short)
    short = re.sub(r"\?.*$", "?", short)
    if len(short) > 50:
        return short[:50] + "..."
    return short


def generate_dynamic_prompts(
    ctx: PromptContext,
    *,
    max_prompts: int = 5,
    include_greeting: bool = True,
    coach_mode: bool = False,
    now: datetime | None = None,
) -> DynamicPrompts:
    """
    Pick up to ``max_prompts`` personalized questions and a greeting.

    Categories the user already explored in earlier conversations are
    penalized. Experience-level fallbacks always compete at low priority, so
    the list is filled even when few templates apply.
    """
    greeting = generate_greeting(ctx, now) if include_greeting else None
    if max_prompts <= 0:
        return DynamicPrompts(greeting=greeting, prompts=[])
    if not ctx.has_trade_data:
        return DynamicPrompts(greeting=greeting, prompts=list(FALLBACK_NO_DATA[:max_prompts]))

    explored = {TOPIC_CATEGORIES.get(t, t) for t in ctx.explored_topics}
    candidates: list[_Candidate] = []
    for tpl in TEMPLATES:
        if not tpl.applies(ctx):
            continue
        priority = tpl.priority - EXPLORED_PENALTY if tpl.category in explored else tpl.priority
        candidates.append(_Candidate(interpolate_template(tpl.template, ctx), priority, tpl.category))

    fallbacks = FALLBACK_BY_EXPERIENCE.get(
        ctx.experience_level, FALLBACK_BY_EXPERIENCE["intermediate"]
    )
    candidates.extend(
        _Candidate(text, 30 - i, "fallback") for i, text in enumerate(fallbacks)
    )
    # stable sort keeps template order among equal priorities
    candidates.sort(key=lambda c: c.priority, reverse=True)

    selected = _select_diverse(candidates, max_prompts)
    texts = [shorten_prompt(c.text) if coach_mode else c.text for c in selected]
    return DynamicPrompts(greeting=greeting, prompts=texts)


def coach_mode_starters(ctx: PromptContext, max_prompts: int = 5) -> list[str]:
    """Very short conversation starters for coach mode."""
    if not ctx.has_trade_data:
        return [
            "What can you help me with?",
            "How does this work?",
            "Show me the demo",
            "Teach me about trading",
        ][:max_prompts]

    starters: list[str] = []
    if ctx.total_pnl is not None and ctx.total_pnl < 0:
        starters.append("Why am I losing?")
    if ctx.win_rate is not None and ctx.win_rate < 45:
        starters.append("Fix my win rate")
    if ctx.lose_streak >= 3:
        starters.append("Breaking my losing streak")
    if ctx.win_streak >= 3:
        starters.append("What's working?")
    if ctx.best_symbol:
        starters.append(f"Analyze my {ctx.best_symbol}")
    if ctx.recent_trade_count > 0:
        starters.append("Review recent trades")
    starters.extend(
        [
            "Quick analysis",
            "What should I focus on?",
            "My biggest weakness",
            "Where's my edge?",
            "Improve my trading",
        ]
    )
    return list(dict.fromkeys(starters))[:max_prompts]
