from __future__ import annotations

import pytest

from app.models.intents import IntentCategory, RouteOverride
from app.services.classifier import classify, classify_with_route


class TestClassify:
    @pytest.mark.parametrize(
        ("message", "category"),
        [
            ("show my risk overview", IntentCategory.PORTFOLIO_OVERVIEW),
            ("compare Apple Inc. and Acme Corporation", IntentCategory.COMPARISON),
            ("what changed this week", IntentCategory.TREND_DETECTION),
            ("show me the breakdown of the score", IntentCategory.RESTRICTED_QUERY),
            ("what if steel prices increase 10%", IntentCategory.INFLATION_SCENARIOS),
            ("hello there", IntentCategory.GENERAL),
        ],
    )
    def test_first_matching_rule_wins(self, message, category):
        assert classify(message).category is category

    def test_classifying_twice_returns_equal_intent(self):
        message = "which high risk suppliers are in Europe"
        assert classify(message) == classify(message)

    def test_restricted_query_requires_handoff(self):
        intent = classify("show me the factor breakdown for Acme Corporation")
        assert intent.requires_handoff
        assert intent.handoff_reason

    def test_market_context_requires_research(self):
        intent = classify("how does lithium price impact battery suppliers")
        assert intent.category is IntentCategory.MARKET_CONTEXT
        assert intent.requires_research
        assert intent.entities.commodity is not None

    def test_entities_capture_region_and_timeframe(self):
        intent = classify("lithium market in Europe over the last 12 months")
        assert intent.entities.regions == ("eu",)
        assert intent.entities.timeframe == "12m"


class TestRouteOverride:
    def test_route_adopts_category_with_full_confidence(self):
        route = RouteOverride.from_dict({"path": "fast", "intent": "comparison", "subIntent": "head_to_head"})
        intent = classify_with_route("tell me about Acme Corporation", route)
        assert intent.category is IntentCategory.COMPARISON
        assert intent.sub_intent == "head_to_head"
        assert intent.confidence == 1.0
        assert "Acme Corporation" in intent.entities.supplier_names

    def test_route_can_force_research_flag(self):
        route = RouteOverride.from_dict({"intent": "general", "requiresResearch": True})
        assert classify_with_route("hello", route).requires_research

    def test_unknown_route_intent_falls_back_to_general(self):
        assert RouteOverride.from_dict({"intent": "nonsense"}).intent is IntentCategory.GENERAL
