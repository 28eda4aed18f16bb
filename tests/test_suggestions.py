from __future__ import annotations

from app.catalog import store
from app.config import settings
from app.models.intents import Intent, IntentCategory
from app.services import suggestions
from app.services.suggestions import DEFAULT_SUGGESTIONS, MAX_SUGGESTIONS, SuggestionEngine

C = IntentCategory


def test_suggestions_are_distinct_and_capped():
    engine = SuggestionEngine()
    picked = engine.generate(Intent(category=C.PORTFOLIO_OVERVIEW), portfolio=store.portfolio_summary())
    assert len(picked) == MAX_SUGGESTIONS
    assert len({s.text for s in picked}) == len(picked)


def test_defaults_fill_without_duplicates():
    picked = SuggestionEngine().generate(Intent(category=C.GENERAL))
    assert [s.text for s in picked] == [
        "Show my risk overview",
        "Which suppliers are high risk?",
        "Any recent risk changes?",
    ]


def test_no_matching_rules_returns_defaults():
    picked = SuggestionEngine(rules=()).generate(Intent(category=C.COMPARISON))
    assert [s.text for s in picked] == [s.text for s in DEFAULT_SUGGESTIONS]


def test_cooldown_suppresses_rule_for_following_turns():
    rules = (
        suggestions._rule("hot", (C.GENERAL,), lambda ctx: "Hot take", "alert", lambda ctx: 90, cooldown=2),
        suggestions._rule("steady", (C.GENERAL,), lambda ctx: "Steady", "chart", lambda ctx: 50),
    )
    engine = SuggestionEngine(rules=rules)
    intent = Intent(category=C.GENERAL)

    assert [s.text for s in engine.generate(intent)][:2] == ["Hot take", "Steady"]
    assert "Hot take" not in [s.text for s in engine.generate(intent)]
    assert [s.text for s in engine.generate(intent)][0] == "Hot take"


def test_history_conditions_use_earlier_turns():
    engine = SuggestionEngine()
    engine.generate(Intent(category=C.PORTFOLIO_OVERVIEW), portfolio=store.portfolio_summary())
    picked = engine.generate(Intent(category=C.GENERAL))
    assert picked[0].text == "Which suppliers are high risk?"
    assert engine.stats()["turnCount"] == 2


def test_sessions_are_isolated_and_resettable():
    first = suggestions.engine_for("a")
    assert suggestions.engine_for("a") is first
    assert suggestions.engine_for("b") is not first

    first.generate(Intent(category=C.GENERAL))
    assert suggestions.reset_session("a")
    assert first.turn == 0
    assert first.history == []
    assert not suggestions.reset_session("missing")


def test_least_recently_used_session_is_evicted(monkeypatch):
    monkeypatch.setattr(settings, "max_sessions", 2)
    first = suggestions.engine_for("a")
    suggestions.engine_for("b")
    assert suggestions.engine_for("a") is first

    suggestions.engine_for("c")

    assert list(suggestions._engines) == ["a", "c"]
    assert not suggestions.reset_session("b")
    assert suggestions.engine_for("a") is first
