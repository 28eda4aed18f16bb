"""Rule-driven follow-up suggestions with per-rule cooldowns, one engine per session."""
from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field

from app.config import settings
from app.models.catalog import PortfolioSummary, RiskChange, RiskLevel, RiskTrend, Supplier
from app.models.intents import Intent, IntentCategory
from app.models.response import Suggestion

C = IntentCategory
MAX_SUGGESTIONS = 3
HISTORY_LIMIT = 20

DEFAULT_SUGGESTIONS: tuple[Suggestion, ...] = (
    Suggestion(id="default_overview", text="Show my risk overview", icon="chart"),
    Suggestion(id="default_high_risk", text="Which suppliers are high risk?", icon="search"),
    Suggestion(id="default_changes", text="Any recent risk changes?", icon="alert"),
)


@dataclass(slots=True)
class SuggestionContext:
    intent: Intent
    suppliers: list[Supplier] = field(default_factory=list)
    portfolio: PortfolioSummary | None = None
    risk_changes: list[RiskChange] = field(default_factory=list)
    result_count: int = 0
    has_handoff: bool = False
    history: list[str] = field(default_factory=list)
    turn: int = 0

    @property
    def first(self) -> Supplier | None:
        return self.suppliers[0] if self.suppliers else None

    @property
    def topic(self) -> str:
        entities = self.intent.entities
        return entities.commodity or entities.category or "this category"


@dataclass(frozen=True, slots=True)
class SuggestionRule:
    id: str
    applies_to: frozenset[IntentCategory]
    condition: Callable[[SuggestionContext], bool]
    generate: Callable[[SuggestionContext], Suggestion]
    priority: Callable[[SuggestionContext], int]
    cooldown: int = 0


def _short(supplier: Supplier) -> str:
    return supplier.name.split(" ")[0]


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def _high(ctx: SuggestionContext) -> int:
    return ctx.portfolio.distribution.get("high", 0) if ctx.portfolio else 0


def _unrated(ctx: SuggestionContext) -> int:
    return ctx.portfolio.distribution.get("unrated", 0) if ctx.portfolio else 0


def _worsening(ctx: SuggestionContext) -> list[Supplier]:
    return [s for s in ctx.suppliers if s.trend is RiskTrend.WORSENING]


def _riskiest(ctx: SuggestionContext) -> Supplier | None:
    rated = [s for s in ctx.suppliers if s.level is not RiskLevel.UNRATED]
    return max(rated, key=lambda s: s.score) if rated else None


def _safest(ctx: SuggestionContext) -> Supplier | None:
    rated = [s for s in ctx.suppliers if s.level is not RiskLevel.UNRATED]
    return min(rated, key=lambda s: s.score) if rated else None


def _worsened_changes(ctx: SuggestionContext) -> list[RiskChange]:
    return [c for c in ctx.risk_changes if c.direction == "worsened"]


def _biggest_change(ctx: SuggestionContext) -> RiskChange | None:
    if not ctx.risk_changes:
        return None
    return max(ctx.risk_changes, key=lambda c: abs(c.current_score - c.previous_score))


def _always(ctx: SuggestionContext) -> bool:
    return True


def _rule(
    rule_id: str,
    applies_to: tuple[IntentCategory, ...],
    text: Callable[[SuggestionContext], str],
    icon: str,
    priority: Callable[[SuggestionContext], int],
    condition: Callable[[SuggestionContext], bool] = _always,
    cooldown: int = 0,
) -> SuggestionRule:
    return SuggestionRule(
        id=rule_id,
        applies_to=frozenset(applies_to),
        condition=condition,
        generate=lambda ctx: Suggestion(id=rule_id, text=text(ctx), icon=icon, rule_id=rule_id),
        priority=priority,
        cooldown=cooldown,
    )


INFLATION = (
    C.INFLATION_SUMMARY,
    C.INFLATION_DRIVERS,
    C.INFLATION_IMPACT,
    C.INFLATION_JUSTIFICATION,
    C.INFLATION_SCENARIOS,
)

SUGGESTION_RULES: tuple[SuggestionRule, ...] = (
    # portfolio overview
    _rule(
        "high_risk_drilldown", (C.PORTFOLIO_OVERVIEW,),
        lambda ctx: f"Review your {_plural(_high(ctx), 'high-risk supplier')}", "alert",
        lambda ctx: 100 if _high(ctx) > 3 else 80,
        condition=lambda ctx: _high(ctx) > 0,
    ),
    _rule(
        "unrated_inquiry", (C.PORTFOLIO_OVERVIEW,),
        lambda ctx: f"Why are {_plural(_unrated(ctx), 'supplier')} unrated?", "lightbulb",
        lambda ctx: 60 if _unrated(ctx) > 5 else 40,
        condition=lambda ctx: _unrated(ctx) > 0,
        cooldown=3,
    ),
    _rule(
        "risk_by_category", (C.PORTFOLIO_OVERVIEW,),
        lambda ctx: "View risk breakdown by category", "chart", lambda ctx: 50,
    ),
    _rule(
        "setup_alerts_after_overview", (C.PORTFOLIO_OVERVIEW,),
        lambda ctx: "Set up risk change alerts", "alert", lambda ctx: 30,
        condition=lambda ctx: C.SETUP_CONFIG.value not in ctx.history,
        cooldown=5,
    ),
    # filtered discovery
    _rule(
        "compare_filtered", (C.FILTERED_DISCOVERY,),
        lambda ctx: f"Compare these {ctx.result_count} suppliers", "compare",
        lambda ctx: 90 if ctx.result_count <= 4 else 70,
        condition=lambda ctx: 2 <= ctx.result_count <= 5,
    ),
    _rule(
        "export_large_list", (C.FILTERED_DISCOVERY,),
        lambda ctx: f"Export all {ctx.result_count} suppliers", "document", lambda ctx: 60,
        condition=lambda ctx: ctx.result_count > 5,
    ),
    _rule(
        "find_alternatives_for_risky", (C.FILTERED_DISCOVERY,),
        lambda ctx: f"Find alternatives to {_short(_riskiest(ctx))}", "search", lambda ctx: 85,
        condition=lambda ctx: _riskiest(ctx) is not None and _riskiest(ctx).level is RiskLevel.HIGH,
    ),
    _rule(
        "focus_worsening", (C.FILTERED_DISCOVERY, C.PORTFOLIO_OVERVIEW),
        lambda ctx: f"Focus on {_plural(len(_worsening(ctx)), 'worsening supplier')}", "alert",
        lambda ctx: 95,
        condition=lambda ctx: len(_worsening(ctx)) > 0,
        cooldown=2,
    ),
    # supplier deep dive
    _rule(
        "explain_score", (C.SUPPLIER_DEEP_DIVE,),
        lambda ctx: f"Why is {_short(ctx.first)} {ctx.first.level.value.replace('-', ' ')} risk?", "lightbulb",
        lambda ctx: 90,
        condition=lambda ctx: ctx.first is not None and ctx.first.level is not RiskLevel.UNRATED,
    ),
    _rule(
        "find_supplier_alternatives", (C.SUPPLIER_DEEP_DIVE, C.EXPLANATION_WHY),
        lambda ctx: f"Find alternatives to {_short(ctx.first)}", "search",
        lambda ctx: 100 if ctx.first.trend is RiskTrend.WORSENING else 80,
        condition=lambda ctx: ctx.first is not None and ctx.first.level in (RiskLevel.HIGH, RiskLevel.MEDIUM_HIGH),
    ),
    _rule(
        "compare_with_peers", (C.SUPPLIER_DEEP_DIVE,),
        lambda ctx: f"Compare with other {ctx.first.category} suppliers", "compare", lambda ctx: 60,
        condition=lambda ctx: ctx.first is not None,
    ),
    _rule(
        "view_risk_history", (C.SUPPLIER_DEEP_DIVE, C.EXPLANATION_WHY),
        lambda ctx: f"View {_short(ctx.first)}'s risk history", "chart", lambda ctx: 50,
        condition=lambda ctx: ctx.first is not None,
        cooldown=2,
    ),
    # trend detection
    _rule(
        "view_worsened_suppliers", (C.TREND_DETECTION,),
        lambda ctx: f"Review {_plural(len(_worsened_changes(ctx)), 'supplier')} with increased risk", "alert",
        lambda ctx: 95,
        condition=lambda ctx: len(_worsened_changes(ctx)) > 0,
    ),
    _rule(
        "investigate_biggest_change", (C.TREND_DETECTION,),
        lambda ctx: f"Why did {_biggest_change(ctx).supplier_name}'s score change?", "lightbulb",
        lambda ctx: 85,
        condition=lambda ctx: _biggest_change(ctx) is not None,
    ),
    _rule(
        "setup_alerts_after_trends", (C.TREND_DETECTION,),
        lambda ctx: "Set up alerts for future changes", "alert", lambda ctx: 70,
        cooldown=5,
    ),
    # comparison
    _rule(
        "pick_safest", (C.COMPARISON,),
        lambda ctx: f"Why is {_short(_safest(ctx))} the safest option?", "lightbulb", lambda ctx: 80,
        condition=lambda ctx: _safest(ctx) is not None,
    ),
    _rule(
        "find_more_options", (C.COMPARISON, C.ACTION_TRIGGER),
        lambda ctx: "Find more supplier options", "search", lambda ctx: 60,
    ),
    _rule(
        "export_comparison", (C.COMPARISON,),
        lambda ctx: "Export this comparison", "document", lambda ctx: 40,
    ),
    # market context
    _rule(
        "show_affected_suppliers", (C.MARKET_CONTEXT, *INFLATION),
        lambda ctx: "Show my affected suppliers", "search", lambda ctx: 90,
        condition=lambda ctx: C.INFLATION_IMPACT.value not in ctx.history[-1:],
    ),
    _rule(
        "industry_risk_overview", (C.MARKET_CONTEXT,),
        lambda ctx: "View industry risk overview", "chart", lambda ctx: 70,
    ),
    # inflation
    _rule(
        "explain_drivers", (C.INFLATION_SUMMARY, C.INFLATION_IMPACT, C.MARKET_CONTEXT),
        lambda ctx: f"What's driving {ctx.topic} prices?", "lightbulb", lambda ctx: 85,
        condition=lambda ctx: ctx.intent.category is not C.INFLATION_DRIVERS,
    ),
    _rule(
        "model_scenario", (C.INFLATION_DRIVERS, C.INFLATION_IMPACT, C.INFLATION_SUMMARY),
        lambda ctx: f"What if {ctx.topic if ctx.intent.entities.commodity else 'steel'} rises another 10%?", "chart",
        lambda ctx: 75,
        cooldown=2,
    ),
    _rule(
        "validate_increase", (C.INFLATION_DRIVERS, C.INFLATION_IMPACT),
        lambda ctx: "Is my supplier's price increase justified?", "compare", lambda ctx: 65,
    ),
    _rule(
        "negotiation_points", (C.INFLATION_JUSTIFICATION, C.INFLATION_SCENARIOS),
        lambda ctx: "Give me negotiation talking points", "message", lambda ctx: 80,
    ),
    # handoff
    _rule(
        "find_alternatives_after_handoff", (C.RESTRICTED_QUERY,),
        lambda ctx: "Find alternative suppliers instead", "search", lambda ctx: 80,
    ),
    _rule(
        "compare_after_handoff", (C.RESTRICTED_QUERY,),
        lambda ctx: "Compare with other suppliers", "compare", lambda ctx: 70,
    ),
    # general
    _rule(
        "show_overview_general", (C.GENERAL, C.SETUP_CONFIG, C.REPORTING_EXPORT),
        lambda ctx: "Show my risk overview", "chart", lambda ctx: 50,
        condition=lambda ctx: C.PORTFOLIO_OVERVIEW.value not in ctx.history,
    ),
    _rule(
        "high_risk_general", (C.GENERAL, C.SETUP_CONFIG, C.REPORTING_EXPORT),
        lambda ctx: "Which suppliers are high risk?", "search", lambda ctx: 40,
    ),
)


class SuggestionEngine:
    """Conversation-aware follow-up generator for one chat session."""

    def __init__(self, rules: tuple[SuggestionRule, ...] = SUGGESTION_RULES):
        self._rules = rules
        self.reset()

    def reset(self) -> None:
        self.history: list[str] = []
        self.viewed_suppliers: set[str] = set()
        self.cooldowns: dict[str, int] = {}
        self.turn = 0

    def _cooling_down(self, rule: SuggestionRule) -> bool:
        last = self.cooldowns.get(rule.id)
        return bool(rule.cooldown) and last is not None and self.turn - last < rule.cooldown

    def generate(
        self,
        intent: Intent,
        *,
        suppliers: list[Supplier] | None = None,
        portfolio: PortfolioSummary | None = None,
        risk_changes: list[RiskChange] | None = None,
        result_count: int | None = None,
        has_handoff: bool = False,
    ) -> list[Suggestion]:
        self.turn += 1
        suppliers = suppliers or []
        ctx = SuggestionContext(
            intent=intent,
            suppliers=suppliers,
            portfolio=portfolio,
            risk_changes=risk_changes or [],
            result_count=result_count if result_count is not None else len(suppliers),
            has_handoff=has_handoff,
            history=list(self.history),
            turn=self.turn,
        )

        self.history.append(intent.category.value)
        del self.history[:-HISTORY_LIMIT]
        if len(suppliers) == 1:
            self.viewed_suppliers.add(suppliers[0].id)

        candidates = [
            rule
            for rule in self._rules
            if intent.category in rule.applies_to and not self._cooling_down(rule) and rule.condition(ctx)
        ]
        scored = sorted(
            ((rule.priority(ctx), index, rule) for index, rule in enumerate(candidates)),
            key=lambda item: (-item[0], item[1]),
        )

        picked: list[Suggestion] = []
        used: set[str] = set()
        for _, _, rule in scored:
            if len(picked) >= MAX_SUGGESTIONS:
                break
            suggestion = rule.generate(ctx)
            if suggestion.text in used:
                continue
            picked.append(suggestion)
            used.add(suggestion.text)
            if rule.cooldown:
                self.cooldowns[rule.id] = self.turn

        for default in DEFAULT_SUGGESTIONS:
            if len(picked) >= MAX_SUGGESTIONS:
                break
            if default.text not in used:
                picked.append(default.model_copy())
                used.add(default.text)
        return picked

    def stats(self) -> dict[str, int]:
        return {
            "turnCount": self.turn,
            "historyLength": len(self.history),
            "suppliersViewed": len(self.viewed_suppliers),
        }


_engines: OrderedDict[str, SuggestionEngine] = OrderedDict()


def engine_for(session_id: str | None) -> SuggestionEngine:
    """Session engine, evicting the least recently used past ``max_sessions``."""
    key = session_id or "default"
    engine = _engines.get(key)
    if engine is None:
        engine = _engines[key] = SuggestionEngine()
    _engines.move_to_end(key)
    while len(_engines) > max(settings.max_sessions, 1):
        _engines.popitem(last=False)
    return engine


def reset_session(session_id: str | None) -> bool:
    """Reset a session's engine. Returns False when the session had none."""
    engine = _engines.get(session_id or "default")
    if engine is None:
        return False
    engine.reset()
    return True
