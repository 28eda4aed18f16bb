"""Deep research controller: credit gate, staged pipeline and report assembly."""
from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from app.agents import decomposer, synthesizer
from app.agents.intake import generate_intake, resolve_query
from app.config import settings
from app.errors import InsufficientCredits, OrchestrationError
from app.models.deep_research import (
    CREDIT_COSTS,
    AgentStatus,
    CitationEntry,
    DeepResearchError,
    DeepResearchJob,
    JobPhase,
    QualityMetrics,
    Report,
    ReportSection,
    ResearchAgent,
    Stage,
    StudyType,
    SynthesisProgress,
)
from app.models.response import Source, SourceType
from app.services import progress_bus
from app.services.citations import extract_citation_ids, needs_regeneration, sort_references, strip_unresolved
from app.services.logger import log_research_step, log_soft_failure
from app.services.progress_bus import ProgressBus, ProgressListener
from app.services.report_templates import (
    ReportTemplate,
    SectionTemplate,
    flatten_sections,
    get_template,
    table_of_contents,
)
from app.services.sources import SourceDedupSet, assign_citation_ids
from app.tools import intel_api, web_research

EXEC_SUMMARY_ID = "executive_summary"
MIN_EXEC_SUMMARY_CHARS = 50
MIN_BORROWED_SECTION_CHARS = 100
BORROWED_SUMMARY_CHARS = 1000
MIN_INSIGHT_CHARS = 20
FAILED_SECTION_CONTENT = "_This section could not be generated._"


def build_job(
    raw_query: str,
    study_type: StudyType | str,
    *,
    credits_available: int,
    history: list[dict[str, Any]] | None = None,
    answers: dict[str, Any] | None = None,
) -> DeepResearchJob:
    """New job in the intake phase with its topic resolved against the conversation."""
    study = study_type if isinstance(study_type, StudyType) else StudyType.parse(study_type)
    query = resolve_query(raw_query, history)
    return DeepResearchJob(
        query=query,
        raw_query=raw_query if query != raw_query else None,
        study_type=study,
        credits_required=CREDIT_COSTS[study],
        credits_available=credits_available,
        answers=dict(answers or {}),
    )


def check_credits(job: DeepResearchJob) -> None:
    if job.credits_available < job.credits_required:
        raise InsufficientCredits(job.credits_required, job.credits_available)


async def start_intake(
    job: DeepResearchJob,
    history: list[dict[str, Any]] | None = None,
    *,
    use_llm: bool = True,
) -> DeepResearchJob:
    """Attach intake questions and seed the job's answers with prefilled values."""
    job.intake = await generate_intake(job.query, job.study_type, history, use_llm=use_llm)
    job.answers = {**job.intake.prefilled_answers, **job.answers}
    log_research_step(job.job_id, "intake", "ready", {"canSkip": job.intake.can_skip})
    return job


def _flatten(sections: list[ReportSection]) -> list[ReportSection]:
    flat: list[ReportSection] = []
    for section in sections:
        flat.append(section)
        flat.extend(_flatten(section.children))
    return flat


def _as_internal(source: Source) -> Source:
    if source.type.is_internal:
        return source
    return source.model_copy(update={"type": SourceType.INTERNAL})


class DeepResearchController:
    """Runs one deep-research job from credit check to finished report.

    Progress snapshots are delivered to ``listener`` through a throttled
    ``ProgressBus``. ``run`` never raises; failures end the job in the
    ``error`` phase with a retry hint.
    """

    def __init__(self, job: DeepResearchJob, listener: ProgressListener | None = None):
        self.job = job
        self.template: ReportTemplate = get_template(job.study_type)
        self.progress = progress_bus.new_progress()
        self.bus = ProgressBus(listener)
        self.pool = SourceDedupSet()
        self.cited: list[Source] = []
        self.internal_findings = ""
        self.warnings: list[str] = []
        self.regenerations_left = max(settings.max_regen_calls, 0)
        self.regenerations_used = 0

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> DeepResearchJob:
        job = self.job
        try:
            check_credits(job)
        except InsufficientCredits as e:
            job.phase = JobPhase.ERROR
            job.error = DeepResearchError(code=e.code, message=str(e), can_retry=False)
            log_research_step(job.job_id, "credits", "rejected", job.error.to_dict())
            return job

        job.phase = JobPhase.PROCESSING
        job.progress = self.progress
        log_research_step(job.job_id, "job", "started", {"studyType": job.study_type.value, "query": job.query})
        self.bus.publish(self.progress, force=True)

        task = asyncio.create_task(self._pipeline())
        done, _ = await asyncio.wait({task}, timeout=settings.deep_research_timeout_s)
        if not done:
            self.bus.detach()
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            return self._fail(
                "TIMEOUT",
                f"Research exceeded {int(settings.deep_research_timeout_s)} seconds.",
                flush=False,
            )

        try:
            job.report = task.result()
        except Exception as e:
            logger.exception(f"Deep research {job.job_id} failed: {e}")
            return self._fail("PIPELINE_ERROR", f"Research pipeline failed: {e}")

        job.phase = JobPhase.COMPLETE
        job.progress = self.bus.last_snapshot or self.progress.snapshot()
        log_research_step(job.job_id, "job", "complete", self.job.report.quality_metrics.to_dict())
        return job

    def _fail(self, code: str, message: str, *, flush: bool = True) -> DeepResearchJob:
        if flush:
            self.bus.flush()
        self.progress.elapsed_ms = self.bus.elapsed_ms()
        self.job.phase = JobPhase.ERROR
        self.job.progress = self.progress.snapshot()
        self.job.error = DeepResearchError(code=code, message=message, can_retry=True)
        log_research_step(
            self.job.job_id, "job", "error", {"code": code, "stage": self.progress.stage.value, "message": message}
        )
        return self.job

    async def _pipeline(self) -> Report:
        agents = await self._plan()
        await self._research(agents)
        sections = await self._synthesize()
        return self._deliver(sections)

    # ------------------------------------------------------------------
    # Stage helpers
    # ------------------------------------------------------------------

    def _enter(self, stage: Stage) -> None:
        self.bus.flush()
        if progress_bus.enter_stage(self.progress, stage):
            log_research_step(self.job.job_id, "stage", stage.value)
            self.bus.publish(self.progress, force=True)

    def _phase(self, phase_id: str, *, done: bool = False) -> None:
        if done:
            progress_bus.complete_phase(self.progress, phase_id)
        else:
            progress_bus.start_phase(self.progress, phase_id)
        log_research_step(self.job.job_id, "phase", "complete" if done else "active", {"phase": phase_id})
        self.bus.publish(self.progress, force=True)

    def _insight(self, text: str) -> None:
        progress_bus.push_insight(self.progress, text)
        self.bus.publish(self.progress)

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    async def _plan(self) -> list[ResearchAgent]:
        self._phase("decomposition")
        plans = await decomposer.decompose(self.job.query, self.job.study_type, self.job.answers)
        self._phase("decomposition", done=True)

        self._phase("deduplication")
        kept = decomposer.dedupe_plans(plans)
        if len(kept) < len(plans):
            self._insight(f"Merged {len(plans) - len(kept)} overlapping research angle(s)")
        self._phase("deduplication", done=True)

        self._phase("assignment")
        agents = [
            ResearchAgent(id=f"agent_{idx}", name=plan.name, query=plan.query, category=plan.category)
            for idx, plan in enumerate(kept, start=1)
        ]
        self.progress.agents = agents
        for agent in agents:
            progress_bus.add_tag(self.progress, agent.category)
        self._insight(f"Assigned {len(agents)} research agent(s)")
        self._phase("assignment", done=True)
        return agents

    # ------------------------------------------------------------------
    # Research
    # ------------------------------------------------------------------

    async def _research(self, agents: list[ResearchAgent]) -> None:
        self._enter(Stage.RESEARCH)
        self._phase("internal")
        self._phase("web")
        await asyncio.gather(self._fetch_internal(), self._run_agents(agents))

        self._phase("consolidation")
        self.progress.total_sources = len(self.pool)
        self._insight(
            f"Consolidated {self.progress.total_sources} unique source(s) "
            f"from {self.progress.total_sources_raw} result(s)"
        )
        self._phase("consolidation", done=True)

    def _collect(self, found: list[Source]) -> int:
        unique = 0
        self.progress.total_sources_raw += len(found)
        for source in found:
            if self.pool.add_if_unique(source):
                unique += 1
        self.progress.total_sources = len(self.pool)
        return unique

    async def _fetch_internal(self) -> None:
        try:
            reply = await intel_api.fetch(
                self.job.query,
                study_type=self.job.study_type.value,
                answers=self.job.answers,
            )
        except OrchestrationError as e:
            log_soft_failure("deep_research.internal", "unavailable", str(e))
            self.warnings.append("Internal intelligence was unavailable for this study.")
        else:
            self.internal_findings = reply.content
            self._collect([_as_internal(s) for s in reply.sources])
            if reply.content.strip():
                self._insight(f"Internal intelligence: {reply.content.strip()[:160]}")
        self._phase("internal", done=True)

    async def _run_agents(self, agents: list[ResearchAgent]) -> None:
        semaphore = asyncio.Semaphore(max(settings.research_concurrency, 1))

        async def run_one(agent: ResearchAgent) -> None:
            async with semaphore:
                await self._run_agent(agent)

        await asyncio.gather(*(run_one(agent) for agent in agents))
        self._phase("web", done=True)

    async def _run_agent(self, agent: ResearchAgent) -> None:
        agent.status = AgentStatus.RESEARCHING
        agent.started_at = self.bus.elapsed_ms()
        self.bus.publish(self.progress, force=True)
        try:
            found = await web_research.search_sources(agent.query)
        except Exception as e:
            logger.warning(f"Research agent {agent.id} ({agent.name}) failed: {e}")
            agent.status = AgentStatus.ERROR
            agent.error = str(e)
            agent.completed_at = self.bus.elapsed_ms()
            self.bus.publish(self.progress, force=True)
            return

        agent.sources = found
        agent.sources_found = len(found)
        agent.unique_sources_found = self._collect(found)
        for source in found:
            snippet = (source.snippet or "").strip()
            if len(snippet) > MIN_INSIGHT_CHARS:
                agent.insights.append(snippet[:200])
                progress_bus.push_insight(self.progress, f"{agent.name}: {snippet[:160]}")
        agent.findings = "\n".join(f"- {s.name}: {(s.snippet or '').strip()[:400]}" for s in found)
        agent.status = AgentStatus.COMPLETE
        agent.completed_at = self.bus.elapsed_ms()
        self.bus.publish(self.progress, force=True)

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    async def _synthesize(self) -> list[ReportSection]:
        self._enter(Stage.SYNTHESIS)
        self._phase("template")
        templates = [t for t in flatten_sections(self.template) if not t.is_reference]
        self.progress.synthesis = SynthesisProgress(total_sections=len(templates))
        self.cited = assign_citation_ids(self.pool.sources())
        self._phase("template", done=True)

        self._phase("writing")
        written: dict[str, ReportSection] = {}
        semaphore = asyncio.Semaphore(max(settings.section_concurrency, 1))

        async def write_one(index: int, template: SectionTemplate) -> None:
            async with semaphore:
                self.progress.synthesis.current_section = template.title
                self.bus.publish(self.progress)
                written[template.id] = await self._write_section(template, index=index)
                self.progress.synthesis.sections_complete += 1
                self.bus.publish(self.progress, force=True)

        heartbeat = asyncio.create_task(self._heartbeat())
        try:
            await asyncio.gather(*(write_one(idx, t) for idx, t in enumerate(templates)))
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat
        self.progress.synthesis.current_section = None
        self._phase("writing", done=True)

        self._phase("quality")
        for template in templates:
            await self._validate(template, written[template.id])
        await self._guard_summary(templates, written)
        self._phase("quality", done=True)

        self._phase("visuals")
        for section in written.values():
            section.charts = synthesizer.chart_specs(section.id, section.content)
        self._phase("visuals", done=True)
        return self._assemble_tree(self.template.sections, written)

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(settings.heartbeat_interval_s)
            current = self.progress.synthesis.current_section if self.progress.synthesis else None
            self._insight(f"Synthesizing {current or 'report'}...")

    def _web_findings(self) -> str:
        return "\n".join(a.findings for a in self.progress.agents if a.findings)

    async def _generate(self, template: SectionTemplate, *, index: int, emphasize: bool = False) -> str:
        if not settings.reasoning_configured:
            return synthesizer.fallback_section(template, self.cited, offset=index * 2)
        content = await synthesizer.synthesize_section(
            template,
            study_name=self.template.name,
            study_context=f"Topic: {self.job.query}\nStudy: {self.template.name}",
            answers=self.job.answers,
            sources=self.cited,
            internal_findings=self.internal_findings,
            web_findings=self._web_findings(),
            emphasize=emphasize,
        )
        return strip_unresolved(content, (s.citation_id for s in self.cited if s.citation_id))

    async def _write_section(self, template: SectionTemplate, *, index: int) -> ReportSection:
        section = ReportSection(id=template.id, title=template.title)
        try:
            section.content = await self._generate(template, index=index)
        except OrchestrationError as e:
            logger.warning(f"Section {template.id} failed: {e}")
            section.content = FAILED_SECTION_CONTENT
            section.failed = True
        section.citation_ids = extract_citation_ids(section.content)
        return section

    async def _validate(self, template: SectionTemplate, section: ReportSection) -> None:
        if not needs_regeneration(template.id, template.min_citations, len(section.citation_ids)):
            return
        if self.regenerations_left <= 0:
            self.warnings.append(
                f"{template.title} cites {len(section.citation_ids)} of {template.min_citations} expected sources."
            )
            return
        self.regenerations_left -= 1
        self.regenerations_used += 1
        log_research_step(self.job.job_id, "regeneration", "started", {"section": template.id})
        try:
            content = await self._generate(template, index=0, emphasize=True)
        except OrchestrationError as e:
            log_soft_failure("deep_research.regenerate", "llm_unavailable", str(e))
            self.warnings.append(f"{template.title} could not be regenerated.")
            return
        found = extract_citation_ids(content)
        section.regenerated = True
        if len(found) >= len(section.citation_ids) and content.strip():
            section.content = content
            section.citation_ids = found
            section.failed = False
        if needs_regeneration(template.id, template.min_citations, len(section.citation_ids)):
            self.warnings.append(
                f"{template.title} cites {len(section.citation_ids)} of {template.min_citations} expected sources."
            )

    async def _guard_summary(self, templates: list[SectionTemplate], written: dict[str, ReportSection]) -> None:
        summary = written.get(EXEC_SUMMARY_ID)
        if summary is None or (not summary.failed and len(summary.content.strip()) >= MIN_EXEC_SUMMARY_CHARS):
            return
        template = next(t for t in templates if t.id == EXEC_SUMMARY_ID)
        try:
            content = await self._generate(template, index=0)
        except OrchestrationError as e:
            log_soft_failure("deep_research.summary", "llm_unavailable", str(e))
            content = ""
        if len(content.strip()) >= MIN_EXEC_SUMMARY_CHARS:
            summary.content = content
            summary.failed = False
        else:
            donor = next(
                (
                    written[t.id]
                    for t in templates
                    if t.id != EXEC_SUMMARY_ID
                    and not written[t.id].failed
                    and len(written[t.id].content.strip()) > MIN_BORROWED_SECTION_CHARS
                ),
                None,
            )
            if donor is None:
                self.warnings.append("Executive summary could not be generated.")
                return
            summary.content = donor.content.strip()[:BORROWED_SUMMARY_CHARS]
            summary.failed = False
            self.warnings.append(f"Executive summary was taken from {donor.title}.")
        summary.citation_ids = extract_citation_ids(summary.content)

    def _assemble_tree(
        self, templates: tuple[SectionTemplate, ...], written: dict[str, ReportSection]
    ) -> list[ReportSection]:
        sections: list[ReportSection] = []
        for template in templates:
            if template.is_reference:
                continue
            section = written[template.id]
            section.children = self._assemble_tree(template.children, written)
            sections.append(section)
        return sections

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _deliver(self, sections: list[ReportSection]) -> Report:
        self._enter(Stage.DELIVERY)
        self._phase("assembly")
        flat = _flatten(sections)
        by_id = {s.citation_id: s for s in self.cited if s.citation_id}
        citations: dict[str, CitationEntry] = {}
        for section in flat:
            for citation_id in section.citation_ids:
                if citation_id in by_id:
                    citations.setdefault(citation_id, CitationEntry(source=by_id[citation_id]))
                    citations[citation_id].used_in_sections.append(section.id)
        references = sort_references(citations)
        toc = table_of_contents(self.template)
        self._phase("assembly", done=True)

        self._phase("presentation")
        with_citations = sum(1 for s in flat if s.citation_ids)
        metrics = QualityMetrics(
            total_citations=len(citations),
            sections_with_citations=with_citations,
            total_sections=len(flat),
            completeness_score=round(with_citations / len(flat) * 100) if flat else 0,
            regenerated_sections=sum(1 for s in flat if s.regenerated),
            warnings=list(self.warnings),
        )
        self._phase("presentation", done=True)

        self._phase("export")
        summary = next((s.content for s in flat if s.id == EXEC_SUMMARY_ID), "")
        topic = self.job.query.strip()
        report = Report(
            title=f"{self.template.name}: {topic[:1].upper()}{topic[1:]}",
            summary=summary,
            sections=sections,
            citations=citations,
            references=references,
            table_of_contents=toc,
            quality_metrics=metrics,
            metadata={
                "jobId": self.job.job_id,
                "studyType": self.job.study_type.value,
                "query": self.job.query,
                "generatedAt": datetime.now(timezone.utc).isoformat(),
                "durationMs": self.bus.elapsed_ms(),
                "sourceCount": len(self.cited),
                "internalSourceCount": sum(1 for s in self.cited if s.type.is_internal),
                "webSourceCount": sum(1 for s in self.cited if not s.type.is_internal),
                "agentCount": len(self.progress.agents),
                "regenerationsUsed": self.regenerations_used,
            },
        )
        self._phase("export", done=True)

        self._enter(Stage.COMPLETE)
        self.bus.flush()
        return report


async def run_deep_research(
    job: DeepResearchJob,
    listener: ProgressListener | None = None,
) -> DeepResearchJob:
    return await DeepResearchController(job, listener).run()
