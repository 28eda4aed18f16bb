from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app.agents import decomposer, synthesizer
from app.agents.decomposer import AgentPlan
from app.agents.deep_research import DeepResearchController, build_job, check_credits, run_deep_research
from app.config import settings
from app.errors import InsufficientCredits, ProviderError, ProviderNotConfigured
from app.models.deep_research import AgentStatus, JobPhase, Stage, StudyType
from app.models.provider import ProviderReply
from app.models.response import Source, SourceType
from app.services.citations import is_dense, sort_references
from app.services.progress_bus import stage_index
from app.services.report_templates import flatten_sections, get_template
from app.tools import intel_api, web_research

PLANS = [
    AgentPlan("Prices", "copper prices", "pricing"),
    AgentPlan("Mines", "copper mine output", "market"),
    AgentPlan("Tariffs", "copper import tariffs", "regulation"),
]

PLAIN_SECTION = "The market remains balanced with steady demand and moderate price movement overall."


def internal_reply() -> ProviderReply:
    return ProviderReply(
        content="Internal view: copper spend rose 6% year over year.",
        sources=[
            Source(name="Copper Price Index", type=SourceType.INTERNAL, snippet="LME copper averaged 9,100 USD/t", report_id="r1"),
            Source(name="Category Strategy", type=SourceType.INTERNAL, snippet="Two suppliers cover 70% of copper spend", report_id="r2"),
        ],
    )


async def fake_search(query: str, **kwargs) -> list[Source]:
    slug = query.replace(" ", "-")
    return [
        Source(name=f"{query} report {i}", url=f"https://news.example.com/{slug}/{i}", snippet=f"{query} finding {i} with detail")
        for i in range(1, 3)
    ] + [Source(name="Shared outlook", url="https://shared.example.com/copper-outlook", snippet="Copper outlook for the year ahead")]


async def citing_section(template, *, sources, **kwargs) -> str:
    return " ".join(f"Finding {i} is supported [{s.citation_id}]." for i, s in enumerate(sources[:5], start=1))


@pytest.fixture
def pipeline(providers, monkeypatch):
    mocks = SimpleNamespace(
        decompose=AsyncMock(return_value=list(PLANS)),
        fetch=AsyncMock(return_value=internal_reply()),
        search=AsyncMock(side_effect=fake_search),
        section=AsyncMock(side_effect=citing_section),
    )
    monkeypatch.setattr(decomposer, "decompose", mocks.decompose)
    monkeypatch.setattr(intel_api, "fetch", mocks.fetch)
    monkeypatch.setattr(web_research, "search_sources", mocks.search)
    monkeypatch.setattr(synthesizer, "synthesize_section", mocks.section)
    return mocks


def new_job(credits: int = 1000):
    return build_job("copper market", StudyType.MARKET_ANALYSIS, credits_available=credits)


class TestCompletedStudy:
    @pytest.mark.asyncio
    async def test_report_is_complete_and_cited(self, pipeline):
        snapshots = []
        controller = DeepResearchController(new_job(), snapshots.append)
        job = await controller.run()

        assert job.phase is JobPhase.COMPLETE
        assert job.error is None
        report = job.report
        assert report.title == "Market Analysis Report: Copper market"
        assert report.quality_metrics.completeness_score >= 70
        assert report.quality_metrics.total_sections == len(flatten_sections(get_template(StudyType.MARKET_ANALYSIS)))
        assert is_dense(s.citation_id for s in controller.cited)
        assert report.references == sort_references(report.citations)
        assert report.summary == report.sections[0].content
        assert report.metadata["agentCount"] == 3
        assert report.metadata["internalSourceCount"] == 2

        for section in report.sections:
            for citation_id in section.citation_ids:
                assert section.id in report.citations[citation_id].used_in_sections

    @pytest.mark.asyncio
    async def test_internal_references_sort_before_web(self, pipeline):
        job = await run_deep_research(new_job())
        refs = job.report.references
        prefixes = [r[0] for r in refs]
        assert prefixes == sorted(prefixes)
        assert {"B1", "W1"} <= set(refs)

    @pytest.mark.asyncio
    async def test_progress_snapshots_move_forward(self, pipeline):
        snapshots = []
        controller = DeepResearchController(new_job(), snapshots.append)
        job = await controller.run()

        indices = [stage_index(s.stage) for s in snapshots]
        assert indices == sorted(indices)
        assert snapshots[-1].stage is Stage.COMPLETE
        elapsed = [s.elapsed_ms for s in snapshots]
        assert elapsed == sorted(elapsed)
        for snapshot in snapshots:
            assert snapshot.stage not in snapshot.completed_stages
        assert job.progress.total_sources == len(controller.pool)

    @pytest.mark.asyncio
    async def test_shared_sources_are_counted_once(self, pipeline):
        controller = DeepResearchController(new_job())
        job = await controller.run()

        agents = job.progress.agents
        assert all(a.status is AgentStatus.COMPLETE for a in agents)
        assert all(a.unique_sources_found <= a.sources_found for a in agents)
        assert job.progress.total_sources_raw == 2 + 3 * 3
        assert job.progress.total_sources == 2 + 3 * 2 + 1
        assert set(job.progress.tags) == {"pricing", "market", "regulation"}


class TestFailures:
    @pytest.mark.asyncio
    async def test_insufficient_credits_makes_no_calls(self, pipeline):
        job = await run_deep_research(new_job(credits=0))

        assert job.phase is JobPhase.ERROR
        assert job.error.code == "INSUFFICIENT_CREDITS"
        assert job.error.can_retry is False
        assert job.progress is None
        pipeline.decompose.assert_not_called()
        pipeline.fetch.assert_not_called()
        pipeline.search.assert_not_called()

    def test_credit_check_raises_with_amounts(self):
        check_credits(new_job(credits=500))
        with pytest.raises(InsufficientCredits) as excinfo:
            check_credits(new_job(credits=499))
        assert (excinfo.value.required, excinfo.value.available) == (500, 499)
        assert str(excinfo.value) == "This study needs 500 credits; 499 available."

    @pytest.mark.asyncio
    async def test_global_timeout_keeps_progress(self, pipeline, monkeypatch):
        async def stall(template, **kwargs):
            await asyncio.sleep(10)
            return ""

        monkeypatch.setattr(settings, "deep_research_timeout_s", 0.2)
        pipeline.section.side_effect = stall
        snapshots = []

        job = await run_deep_research(new_job(), snapshots.append)
        emitted = len(snapshots)
        await asyncio.sleep(0.05)

        assert job.phase is JobPhase.ERROR
        assert job.error.code == "TIMEOUT"
        assert job.error.can_retry is True
        assert job.progress.stage is Stage.SYNTHESIS
        assert len(snapshots) == emitted

    @pytest.mark.asyncio
    async def test_unexpected_error_is_retryable(self, pipeline):
        pipeline.decompose.side_effect = RuntimeError("boom")
        job = await run_deep_research(new_job())
        assert job.phase is JobPhase.ERROR
        assert job.error.code == "PIPELINE_ERROR"
        assert job.error.can_retry is True

    @pytest.mark.asyncio
    async def test_failed_agent_does_not_fail_the_job(self, pipeline):
        async def flaky(query, **kwargs):
            if "tariffs" in query:
                raise ProviderError("tavily", "rate limited", status_code=429)
            return await fake_search(query)

        pipeline.search.side_effect = flaky
        job = await run_deep_research(new_job())

        assert job.phase is JobPhase.COMPLETE
        failed = [a for a in job.progress.agents if a.status is AgentStatus.ERROR]
        assert [a.name for a in failed] == ["Tariffs"]
        assert "rate limited" in failed[0].error

    @pytest.mark.asyncio
    async def test_missing_internal_intelligence_is_a_warning(self, pipeline):
        pipeline.fetch.side_effect = ProviderNotConfigured("intel_api")
        job = await run_deep_research(new_job())

        assert job.phase is JobPhase.COMPLETE
        assert "Internal intelligence was unavailable for this study." in job.report.quality_metrics.warnings
        assert all(r.startswith("W") for r in job.report.references)


class TestQualityGate:
    @pytest.mark.asyncio
    async def test_regenerations_are_capped(self, pipeline):
        pipeline.section.side_effect = None
        pipeline.section.return_value = PLAIN_SECTION
        job = await run_deep_research(new_job())

        templates = flatten_sections(get_template(StudyType.MARKET_ANALYSIS))
        metrics = job.report.quality_metrics
        assert job.phase is JobPhase.COMPLETE
        assert metrics.regenerated_sections == settings.max_regen_calls == 2
        assert job.report.metadata["regenerationsUsed"] == 2
        assert pipeline.section.await_count == len(templates) + 2
        regenerated = [s.id for s in job.report.sections if s.regenerated]
        assert regenerated == ["executive_summary", "introduction"]
        assert metrics.warnings
        assert metrics.completeness_score == 0

    @pytest.mark.asyncio
    async def test_short_summary_borrows_from_first_long_section(self, pipeline):
        async def terse_summary(template, **kwargs):
            if template.id == "executive_summary":
                return "Too short [B1]."
            return await citing_section(template, **kwargs)

        pipeline.section.side_effect = terse_summary
        job = await run_deep_research(new_job())

        summary = job.report.sections[0]
        donor = job.report.sections[1]
        assert summary.content == donor.content.strip()[:1000]
        assert any("Executive summary was taken from" in w for w in job.report.quality_metrics.warnings)


class TestWithoutProviders:
    @pytest.mark.asyncio
    async def test_zero_agents_still_completes(self, monkeypatch):
        monkeypatch.setattr(decomposer, "decompose", AsyncMock(return_value=[]))
        monkeypatch.setattr(intel_api, "fetch", AsyncMock(return_value=internal_reply()))
        job = await run_deep_research(new_job())

        assert job.phase is JobPhase.COMPLETE
        assert job.report.metadata["agentCount"] == 0
        assert job.report.metadata["webSourceCount"] == 0
        assert set(job.report.references) <= {"B1", "B2"}


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_agent_concurrency_is_bounded(self, pipeline):
        active = 0
        peak = 0

        async def slow_search(query, **kwargs):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1
            return await fake_search(query)

        words = ["alpha", "bravo", "charlie", "delta", "echo", "foxtrot"]
        pipeline.decompose.return_value = [AgentPlan(w.title(), f"{w} angle {i}") for i, w in enumerate(words)]
        pipeline.search.side_effect = slow_search
        job = await run_deep_research(new_job())

        assert job.phase is JobPhase.COMPLETE
        assert peak == settings.research_concurrency == 3

    @pytest.mark.asyncio
    async def test_section_writing_is_bounded(self, pipeline):
        active = 0
        peak = 0
        calls = 0

        async def slow_section(template, *, sources, **kwargs):
            nonlocal active, peak, calls
            active += 1
            calls += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1
            return await citing_section(template, sources=sources)

        pipeline.section.side_effect = slow_section
        job = await run_deep_research(new_job())

        assert job.phase is JobPhase.COMPLETE
        assert calls > settings.section_concurrency
        assert peak == settings.section_concurrency == 2

    @pytest.mark.asyncio
    async def test_heartbeat_reports_stalled_section(self, pipeline, monkeypatch):
        monkeypatch.setattr(settings, "heartbeat_interval_s", 0.01)
        stalled = asyncio.Event()

        async def stalling_section(template, *, sources, **kwargs):
            if not stalled.is_set():
                stalled.set()
                await asyncio.sleep(0.1)
            return await citing_section(template, sources=sources)

        pipeline.section.side_effect = stalling_section
        controller = DeepResearchController(new_job(), lambda snapshot: None)
        job = await controller.run()

        assert job.phase is JobPhase.COMPLETE
        beats = [text for text in controller.progress.insight_stream if text.startswith("Synthesizing")]
        assert beats
