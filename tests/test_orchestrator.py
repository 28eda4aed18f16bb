from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app import llm_client
from app.agents import orchestrator, synthesizer
from app.agents.orchestrator import ChatOrchestrator, downgrade_chain, resolve_intent, select_route
from app.agents.synthesizer import HybridSynthesis
from app.config import settings
from app.errors import ProviderError
from app.models.intents import IntentCategory
from app.models.provider import ProviderReply
from app.models.response import MilestoneEvent, ResponseType, Source, SourceType
from app.services import response_builder
from app.services.citations import extract_citation_ids
from app.services.classifier import classify
from app.services.response_validator import FALLBACK_CONTENT
from app.tools import internal_intel, web_research


def web_results() -> list[Source]:
    return [
        Source(name="Steel Weekly", url="https://steelweekly.example.com/hrc", snippet="HRC prices rose 4% in May"),
        Source(name="Metals Daily", url="https://metalsdaily.example.com/demand", snippet="Auto demand for steel softened"),
    ]


class TestRouting:
    def test_no_providers_routes_local(self):
        intent = classify("show my risk overview")
        assert select_route(intent)[0] == "local"
        assert downgrade_chain("local") == ["local"]

    def test_hybrid_needs_both_providers(self, providers):
        intent = classify("show my risk overview")
        assert select_route(intent, hybrid=True)[0] == "hybrid"
        assert select_route(intent, web_search=True)[0] == "hybrid"
        assert select_route(intent)[0] == "fast"
        assert downgrade_chain("hybrid") == ["hybrid", "research", "fast", "local"]

    def test_web_only_routes_research(self, monkeypatch):
        monkeypatch.setattr(settings, "tavily_api_key", "test-key")
        intent = classify("show my risk overview")
        assert select_route(intent, web_search=True)[0] == "research"
        assert select_route(intent, hybrid=True)[0] == "local"
        assert select_route(intent, mode="reasoning")[0] == "research"
        assert select_route(intent)[0] == "local"
        assert downgrade_chain("research") == ["research", "local"]

    def test_internal_only_skips_web_routes(self, monkeypatch):
        monkeypatch.setattr(settings, "openrouter_api_key", "test-key")
        intent = classify("how does lithium price impact battery suppliers")
        assert select_route(intent, web_search=True)[0] == "fast"
        assert downgrade_chain("fast") == ["fast", "local"]


class TestResolveIntent:
    def test_price_question_uses_internal_data(self):
        message = "how does lithium price impact battery suppliers"
        assert classify(message).requires_research
        intent = resolve_intent(message)
        assert intent.category is IntentCategory.MARKET_CONTEXT
        assert not intent.requires_research

    def test_price_patterns(self):
        assert orchestrator.is_price_data_query("Analyze the copper price movement")
        assert orchestrator.is_price_data_query("commodity cost impact on margins")
        assert not orchestrator.is_price_data_query("who are my riskiest suppliers")

    def test_route_mapping_is_accepted(self):
        intent = resolve_intent("tell me more", {"intent": "comparison"})
        assert intent.category is IntentCategory.COMPARISON


class TestLocalResponses:
    @pytest.mark.asyncio
    async def test_risk_overview_without_providers(self):
        received = []
        response = await ChatOrchestrator("s1").respond("show my risk overview", on_milestone=received.append)

        assert response.provider == "local"
        assert response.response_type is ResponseType.WIDGET
        assert response.widget.type == "risk_distribution"
        assert response.escalation.expand_to_artifact is True
        assert len(response.suggestions) == 3
        assert len({s.text for s in response.suggestions}) == 3
        assert response.content

        events = [m.event for m in response.milestones]
        assert events[0] is MilestoneEvent.INTENT_CLASSIFIED
        assert events[-1] is MilestoneEvent.RESPONSE_READY
        assert MilestoneEvent.PROVIDER_SELECTED in events
        assert MilestoneEvent.WIDGET_SELECTED in events
        assert [m.event for m in received] == events
        timestamps = [m.timestamp for m in response.milestones]
        assert timestamps == sorted(timestamps)

    @pytest.mark.asyncio
    async def test_restricted_query_hands_off(self):
        response = await ChatOrchestrator("s1").respond("show me the factor breakdown for Acme Corporation")
        assert response.response_type is ResponseType.HANDOFF
        assert response.handoff is not None
        assert response.widget is None

    @pytest.mark.asyncio
    async def test_local_citations_resolve(self):
        response = await ChatOrchestrator("s1").respond("show my risk overview")
        assert "B1" in response.sources.citations
        assert response.source_mix.total == len(response.sources.all())


class TestDowngrade:
    @pytest.mark.asyncio
    async def test_failing_fast_route_falls_back_to_local(self, providers):
        failing = AsyncMock(side_effect=ProviderError("openrouter", "bad gateway", status_code=502))
        with patch.object(internal_intel, "ask", failing):
            response = await ChatOrchestrator("s1").respond("show my risk overview")

        failing.assert_awaited_once()
        assert response.provider == "local"
        labels = [m.label for m in response.milestones if m.event is MilestoneEvent.PROVIDER_SELECTED]
        assert labels == ["Using fast provider", "Falling back to local"]

    @pytest.mark.asyncio
    async def test_unexpected_errors_also_downgrade(self, providers):
        with patch.object(internal_intel, "ask", AsyncMock(side_effect=KeyError("content"))):
            response = await ChatOrchestrator("s1").respond("show my risk overview")
        assert response.provider == "local"

    @pytest.mark.asyncio
    async def test_research_route_cites_web_sources(self, monkeypatch):
        monkeypatch.setattr(settings, "tavily_api_key", "test-key")
        with patch.object(web_research, "search_sources", AsyncMock(return_value=web_results())):
            response = await ChatOrchestrator("s1").respond("latest steel news", web_search=True)

        assert response.provider == "research"
        assert extract_citation_ids(response.content) == ["W1", "W2"]
        assert [s.citation_id for s in response.sources.web] == ["W1", "W2"]


class TestHybrid:
    @pytest.mark.asyncio
    async def test_hybrid_partitions_and_resolves_citations(self, providers):
        internal = ProviderReply(
            content="Steel spend is up 4% this quarter.",
            sources=[Source(name="Steel Price Index", type=SourceType.INTERNAL, snippet="HRC index +4%", report_id="steel")],
        )
        merged = HybridSynthesis(
            content="Internal data shows steel up 4% [B1], matching trade press [W1]. Demand is soft [W9].",
            headline="Steel costs are rising",
            sentiment="negative",
            confidence="high",
        )
        with (
            patch.object(internal_intel, "ask", AsyncMock(return_value=internal)),
            patch.object(web_research, "search_sources", AsyncMock(return_value=web_results())),
            patch.object(synthesizer, "synthesize_hybrid", AsyncMock(return_value=merged)),
        ):
            response = await ChatOrchestrator("s1").respond("what is happening with steel prices", hybrid=True)

        assert response.provider == "hybrid"
        assert [s.citation_id for s in response.sources.internal] == ["B1"]
        assert [s.citation_id for s in response.sources.web] == ["W1", "W2"]
        assert "[W9]" not in response.content
        for citation_id in extract_citation_ids(response.content):
            assert citation_id in response.sources.citations
        assert response.insight.headline == "Steel costs are rising"
        assert response.sources.confidence.level == "medium"

    @pytest.mark.asyncio
    async def test_web_failure_degrades_to_internal_only(self, providers):
        internal = ProviderReply(
            content="Steel spend is up 4% this quarter.",
            sources=[Source(name="Steel Price Index", type=SourceType.INTERNAL, snippet="HRC index +4%", report_id="steel")],
        )
        with (
            patch.object(internal_intel, "ask", AsyncMock(return_value=internal)),
            patch.object(web_research, "search_sources", AsyncMock(side_effect=ProviderError("tavily", "down"))),
            patch.object(synthesizer, "synthesize_hybrid", AsyncMock(side_effect=ProviderError("openrouter", "down"))),
        ):
            response = await ChatOrchestrator("s1").respond("what is happening with steel prices", hybrid=True)

        assert response.provider == "hybrid"
        assert response.sources.web == []
        assert "[B1]" in response.content


class TestDeepResearchRequests:
    @pytest.mark.asyncio
    async def test_insufficient_credits_returns_error_payload(self):
        response = await ChatOrchestrator("s1").respond(
            "research the copper market", deep_research_requested=True, credits_available=0
        )
        assert response.provider == "deep_research"
        assert response.deep_research["phase"] == "error"
        assert response.deep_research["error"]["code"] == "INSUFFICIENT_CREDITS"
        assert response.deep_research["error"]["canRetry"] is False

    @pytest.mark.asyncio
    async def test_enough_credits_starts_intake(self):
        response = await ChatOrchestrator("s1").respond(
            "research the copper market",
            deep_research_requested=True,
            study_type="sourcing-study",
            credits_available=1000,
        )
        payload = response.deep_research
        assert payload["phase"] == "intake"
        assert payload["studyType"] == "sourcing-study"
        assert payload["query"] == "copper market"
        assert payload["intake"]["estimatedCredits"] == 750


class TestMalformedModelOutput:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"content": "Steel is up.", "acknowledgement": 42},
            {"content": "Steel is up.", "acknowledgement": {"text": "ok"}},
            {"content": "Steel is up.", "artifact": {"type": "supplier_table", "payload": "all"}},
            {"content": "Steel is up.", "insight": {"headline": "Up", "summary": ["a", "b"]}},
            {"content": ["Steel", "is", "up"], "insight": 7},
        ],
    )
    async def test_odd_fields_are_coerced(self, providers, payload):
        reply = AsyncMock(return_value=SimpleNamespace(content=json.dumps(payload)))
        with patch.object(llm_client, "complete", reply):
            response = await ChatOrchestrator("s1").respond("show my risk overview")

        assert response.provider == "internal"
        assert response.content
        assert response.artifact is None
        assert response.acknowledgement in (None, "42")

    @pytest.mark.asyncio
    async def test_build_failure_falls_back_to_local(self, providers):
        reply = ProviderReply(content="Steel is up.")
        real_build = response_builder.build_response
        calls = []

        def flaky_build(path_reply, *args, **kwargs):
            calls.append(kwargs["provider"])
            if kwargs["provider"] == "internal":
                raise ValueError("bad reply")
            return real_build(path_reply, *args, **kwargs)

        with (
            patch.object(internal_intel, "ask", AsyncMock(return_value=reply)),
            patch.object(orchestrator, "build_response", side_effect=flaky_build),
        ):
            response = await ChatOrchestrator("s1").respond("show my risk overview")

        assert calls == ["internal", "local"]
        assert response.provider == "local"

    @pytest.mark.asyncio
    async def test_local_build_failure_returns_safe_response(self):
        with patch.object(orchestrator, "build_response", side_effect=ValueError("broken")):
            response = await ChatOrchestrator("s1").respond("show my risk overview")

        assert response.content == FALLBACK_CONTENT
        assert response.intent["category"] == "portfolio_overview"


class TestSearchClientFailures:
    @pytest.mark.asyncio
    async def test_tavily_transport_error_keeps_hybrid_route(self, providers):
        internal = ProviderReply(
            content="Steel spend is up 4% this quarter.",
            sources=[Source(name="Steel Price Index", type=SourceType.INTERNAL, snippet="HRC index +4%", report_id="steel")],
        )
        client = MagicMock()
        client.search = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
        with (
            patch("app.tools.tavily_search.AsyncTavilyClient", return_value=client),
            patch.object(internal_intel, "ask", AsyncMock(return_value=internal)),
            patch.object(synthesizer, "synthesize_hybrid", AsyncMock(side_effect=ProviderError("openrouter", "down"))),
        ):
            response = await ChatOrchestrator("s1").respond("what is happening with steel prices", hybrid=True)

        client.search.assert_awaited_once()
        assert response.provider == "hybrid"
        assert response.sources.web == []
        assert "[B1]" in response.content
