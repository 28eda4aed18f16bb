from __future__ import annotations

import pytest

from app.models.intents import ExtractedEntities, Intent, IntentCategory
from app.models.provider import ProviderReply
from app.models.response import (
    CanonicalResponse,
    Handoff,
    Insight,
    MilestoneEvent,
    ResponseSources,
    ResponseType,
    Source,
    SourceType,
    Suggestion,
    Widget,
)
from app.services.response_builder import (
    MilestoneTracker,
    build_response,
    coerce_artifact,
    coerce_insight,
    escalation_for,
    value_ladder_for,
)
from app.services.response_validator import FALLBACK_CONTENT, validate_payload, validate_response
from app.services.sources import assign_citation_ids, build_response_sources
from app.services.suggestions import SuggestionEngine
from app.services.widgets import Enrichment

C = IntentCategory


class FakeClock:
    def __init__(self, *ticks: float):
        self._ticks = list(ticks)

    def __call__(self) -> float:
        return self._ticks.pop(0) if len(self._ticks) > 1 else self._ticks[0]


def cited_sources() -> ResponseSources:
    return build_response_sources(
        assign_citation_ids(
            [
                Source(name="Portfolio", type=SourceType.INTERNAL, snippet="42 suppliers"),
                Source(name="Trade press", url="https://press.example.com/a", snippet="Steel up"),
            ]
        )
    )


class TestValidator:
    def test_valid_response_is_a_fixpoint(self):
        response = CanonicalResponse(content="All good [B1].", sources=cited_sources())
        once = validate_response(response)
        assert validate_response(once) == once

    def test_handoff_forces_type_and_drops_widget(self):
        response = CanonicalResponse(
            content="See the dashboard.",
            response_type=ResponseType.WIDGET,
            widget=Widget(type="risk_distribution"),
            handoff=Handoff(reason="restricted"),
        )
        fixed = validate_response(response)
        assert fixed.response_type is ResponseType.HANDOFF
        assert fixed.widget is None

    def test_widget_type_without_widget_becomes_summary(self):
        fixed = validate_response(CanonicalResponse(content="x", response_type=ResponseType.TABLE))
        assert fixed.response_type is ResponseType.SUMMARY

    def test_empty_content_uses_insight_headline(self):
        fixed = validate_response(CanonicalResponse(content="  ", insight=Insight(headline="Risk is up")))
        assert fixed.content == "Risk is up"
        assert validate_response(CanonicalResponse()).content == FALLBACK_CONTENT

    def test_unresolved_markers_are_stripped(self):
        fixed = validate_response(CanonicalResponse(content="Up [B1] and down [W7].", sources=cited_sources()))
        assert fixed.content == "Up [B1] and down."

    def test_suggestions_are_deduplicated_and_capped(self):
        suggestions = [Suggestion(id=str(i), text=text) for i, text in enumerate(["a", "a", "b", "c", "d"])]
        fixed = validate_response(CanonicalResponse(content="x", suggestions=suggestions))
        assert [s.text for s in fixed.suggestions] == ["a", "b", "c"]

    def test_source_mix_is_recomputed(self):
        fixed = validate_response(CanonicalResponse(content="x", sources=cited_sources()))
        assert fixed.source_mix.decision_grade == 1
        assert fixed.source_mix.web == 1
        assert fixed.source_mix.total == 2

    def test_input_is_not_mutated(self):
        response = CanonicalResponse(content="", response_type=ResponseType.ALERT)
        validate_response(response)
        assert response.content == ""
        assert response.response_type is ResponseType.ALERT

    def test_invalid_payload_falls_back(self):
        fixed = validate_payload({"content": "x", "responseType": "carousel", "intent": {"category": "general"}})
        assert fixed.content == FALLBACK_CONTENT
        assert fixed.intent == {"category": "general"}
        assert len(fixed.suggestions) == 3

    def test_camel_case_payload_is_accepted(self):
        fixed = validate_payload({"content": "x", "responseType": "summary", "valueLadder": {"tier": "expert"}})
        assert fixed.value_ladder.tier == "expert"


class TestBuilderRules:
    @pytest.mark.parametrize(
        ("category", "count", "expand"),
        [
            (C.SUPPLIER_DEEP_DIVE, 1, True),
            (C.SUPPLIER_DEEP_DIVE, 2, False),
            (C.PORTFOLIO_OVERVIEW, 0, True),
            (C.FILTERED_DISCOVERY, 3, False),
            (C.FILTERED_DISCOVERY, 4, True),
            (C.GENERAL, 10, False),
        ],
    )
    def test_escalation(self, category, count, expand):
        escalation = escalation_for(Intent(category=category), count)
        assert escalation.expand_to_artifact is expand
        assert escalation.result_count == count

    @pytest.mark.parametrize(("count", "summary_only"), [(3, False), (5, False), (6, True)])
    def test_large_discovery_shows_summary_inline(self, count, summary_only):
        escalation = escalation_for(Intent(category=C.FILTERED_DISCOVERY), count)
        assert escalation.summary_only is summary_only
        assert escalation.show_inline is True
        assert escalation.dump()["summaryOnly"] is summary_only

    def test_value_ladder_tiers(self):
        assert value_ladder_for(Intent(category=C.COMPARISON)).tier == "expert"
        ladder = value_ladder_for(Intent(category=C.GENERAL, entities=ExtractedEntities(commodity="Copper")))
        assert ladder.tier == "community"
        assert ladder.context == "Copper"

    def test_coerce_insight(self):
        assert coerce_insight("  ") is None
        assert coerce_insight("Prices up").headline == "Prices up"
        insight = coerce_insight({"title": "Watch list", "sentiment": "bullish", "factors": [{"name": "energy"}, "labor"]})
        assert insight.headline == "Watch list"
        assert insight.sentiment == "neutral"
        assert insight.factors == ["energy", "labor"]

    def test_coerce_insight_flattens_list_summary(self):
        insight = coerce_insight({"headline": "Up", "summary": ["a", "b"]})
        assert insight.summary == "a b"
        assert coerce_insight({"headline": "Up", "summary": {"text": "a"}}).summary is None

    def test_coerce_artifact_drops_invalid_payload(self):
        assert coerce_artifact({"type": "supplier_table", "payload": "all"}) is None
        assert coerce_artifact({"payload": {}}) is None
        artifact = coerce_artifact({"type": "supplier_table", "payload": {"ids": [1]}})
        assert artifact.payload == {"ids": [1]}

    def test_tracker_timestamps(self):
        received = []
        tracker = MilestoneTracker(received.append, clock=FakeClock(10.0, 10.25, 10.5))
        first = tracker.emit(MilestoneEvent.INTENT_CLASSIFIED, "Classified", "general")
        second = tracker.emit(MilestoneEvent.RESPONSE_READY, "Ready")
        assert (first.timestamp, second.timestamp) == (250, 500)
        assert first.id == "ms_1_intent_classified"
        assert received == [first, second]
        assert tracker.has(MilestoneEvent.RESPONSE_READY)

    def test_build_response_for_handoff(self):
        intent = Intent(category=C.RESTRICTED_QUERY, requires_handoff=True, handoff_reason="Factor scores are restricted")
        response = build_response(
            ProviderReply(content="Open the dashboard."),
            intent,
            Enrichment(widget=Widget(type="handoff_card")),
            provider="local",
            suggestions=SuggestionEngine(),
        )
        assert response.response_type is ResponseType.HANDOFF
        assert response.handoff.reason == "Factor scores are restricted"
        assert response.widget is None
        assert response.intent["category"] == "restricted_query"
        assert len(response.suggestions) == 3
