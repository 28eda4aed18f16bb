from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from uuid import uuid4

from app.models.response import Source


class StudyType(StrEnum):
    MARKET_ANALYSIS = "market-analysis"
    SOURCING_STUDY = "sourcing-study"
    COST_MODEL = "cost-model"
    SUPPLIER_ASSESSMENT = "supplier-assessment"
    RISK_ASSESSMENT = "risk-assessment"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, raw: str | None) -> "StudyType":
        value = (raw or "").strip().lower().replace("_", "-")
        try:
            return cls(value)
        except ValueError:
            return cls.CUSTOM


CREDIT_COSTS: dict[StudyType, int] = {
    StudyType.MARKET_ANALYSIS: 500,
    StudyType.COST_MODEL: 600,
    StudyType.SOURCING_STUDY: 750,
    StudyType.SUPPLIER_ASSESSMENT: 400,
    StudyType.RISK_ASSESSMENT: 450,
    StudyType.CUSTOM: 500,
}

ESTIMATED_TIME: dict[StudyType, str] = {
    StudyType.SOURCING_STUDY: "8-12 minutes",
    StudyType.COST_MODEL: "6-10 minutes",
    StudyType.MARKET_ANALYSIS: "5-8 minutes",
    StudyType.SUPPLIER_ASSESSMENT: "4-7 minutes",
    StudyType.RISK_ASSESSMENT: "5-8 minutes",
    StudyType.CUSTOM: "5-10 minutes",
}


class JobPhase(StrEnum):
    INTAKE = "intake"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class AgentStatus(StrEnum):
    QUEUED = "queued"
    RESEARCHING = "researching"
    COMPLETE = "complete"
    ERROR = "error"


class Stage(StrEnum):
    PLAN = "plan"
    RESEARCH = "research"
    SYNTHESIS = "synthesis"
    DELIVERY = "delivery"
    COMPLETE = "complete"


class PhaseStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETE = "complete"


STAGE_ORDER: tuple[Stage, ...] = (
    Stage.PLAN,
    Stage.RESEARCH,
    Stage.SYNTHESIS,
    Stage.DELIVERY,
    Stage.COMPLETE,
)

STAGE_PHASES: dict[Stage, tuple[tuple[str, str], ...]] = {
    Stage.PLAN: (
        ("decomposition", "Decomposing query"),
        ("deduplication", "Removing overlapping angles"),
        ("assignment", "Assigning research agents"),
    ),
    Stage.RESEARCH: (
        ("internal", "Internal intelligence"),
        ("web", "Web research"),
        ("consolidation", "Consolidating sources"),
    ),
    Stage.SYNTHESIS: (
        ("template", "Resolving report template"),
        ("writing", "Writing sections"),
        ("quality", "Validating citations"),
        ("visuals", "Preparing visuals"),
    ),
    Stage.DELIVERY: (
        ("assembly", "Assembling report"),
        ("presentation", "Computing quality metrics"),
        ("export", "Finalizing"),
    ),
    Stage.COMPLETE: (),
}


@dataclass(slots=True)
class StagePhase:
    id: str
    label: str
    status: PhaseStatus = PhaseStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "status": self.status.value}


@dataclass(slots=True)
class ResearchAgent:
    id: str
    name: str
    query: str
    category: str = "general"
    status: AgentStatus = AgentStatus.QUEUED
    sources_found: int = 0
    unique_sources_found: int = 0
    sources: list[Source] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    findings: str = ""
    started_at: int | None = None
    completed_at: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "query": self.query,
            "category": self.category,
            "status": self.status.value,
            "sourcesFound": self.sources_found,
            "uniqueSourcesFound": self.unique_sources_found,
            "sources": [s.dump() for s in self.sources],
            "insights": list(self.insights),
            "findings": self.findings,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "error": self.error,
        }


@dataclass(slots=True)
class SynthesisProgress:
    current_section: str | None = None
    sections_complete: int = 0
    total_sections: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentSection": self.current_section,
            "sectionsComplete": self.sections_complete,
            "totalSections": self.total_sections,
        }


@dataclass(slots=True)
class CommandCenterProgress:
    stage: Stage = Stage.PLAN
    phases: list[StagePhase] = field(default_factory=list)
    completed_stages: list[Stage] = field(default_factory=list)
    agents: list[ResearchAgent] = field(default_factory=list)
    insight_stream: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    total_sources: int = 0
    total_sources_raw: int = 0
    elapsed_ms: int = 0
    synthesis: SynthesisProgress | None = None

    def snapshot(self) -> "CommandCenterProgress":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "phases": [p.to_dict() for p in self.phases],
            "completedStages": [s.value for s in self.completed_stages],
            "agents": [a.to_dict() for a in self.agents],
            "insightStream": list(self.insight_stream),
            "tags": list(self.tags),
            "totalSources": self.total_sources,
            "totalSourcesRaw": self.total_sources_raw,
            "elapsedMs": self.elapsed_ms,
            "synthesis": self.synthesis.to_dict() if self.synthesis else None,
        }


@dataclass(slots=True)
class IntakeOption:
    label: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"label": self.label, "value": self.value}


@dataclass(slots=True)
class IntakeQuestion:
    id: str
    question: str
    type: str  # select | multiselect | category_picker | text
    required: bool
    options: list[IntakeOption] = field(default_factory=list)
    default_value: str | list[str] | None = None
    help_text: str | None = None
    placeholder: str | None = None
    prefilled_from: str | None = None
    prefill_confidence: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "question": self.question,
            "type": self.type,
            "required": self.required,
            "options": [o.to_dict() for o in self.options],
        }
        for key, value in (
            ("defaultValue", self.default_value),
            ("helpText", self.help_text),
            ("placeholder", self.placeholder),
            ("prefilledFrom", self.prefilled_from),
            ("prefillConfidence", self.prefill_confidence),
        ):
            if value is not None:
                data[key] = value
        return data


@dataclass(slots=True)
class IntakeResult:
    study_type: StudyType
    questions: list[IntakeQuestion]
    prefilled_answers: dict[str, str | list[str]]
    can_skip: bool
    skip_reason: str | None = None
    estimated_credits: int = 0
    estimated_time: str = ""
    llm_enhanced: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "studyType": self.study_type.value,
            "questions": [q.to_dict() for q in self.questions],
            "prefilledAnswers": dict(self.prefilled_answers),
            "canSkip": self.can_skip,
            "skipReason": self.skip_reason,
            "estimatedCredits": self.estimated_credits,
            "estimatedTime": self.estimated_time,
            "llmEnhanced": self.llm_enhanced,
        }


@dataclass(slots=True)
class ReportSection:
    id: str
    title: str
    content: str = ""
    citation_ids: list[str] = field(default_factory=list)
    children: list["ReportSection"] = field(default_factory=list)
    regenerated: bool = False
    failed: bool = False
    charts: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "citationIds": list(self.citation_ids),
            "children": [c.to_dict() for c in self.children],
            "regenerated": self.regenerated,
            "charts": list(self.charts),
        }


@dataclass(slots=True)
class CitationEntry:
    source: Source
    used_in_sections: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source.dump(), "usedInSections": list(self.used_in_sections)}


@dataclass(slots=True)
class QualityMetrics:
    total_citations: int = 0
    sections_with_citations: int = 0
    total_sections: int = 0
    completeness_score: int = 0
    regenerated_sections: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCitations": self.total_citations,
            "sectionsWithCitations": self.sections_with_citations,
            "totalSections": self.total_sections,
            "completenessScore": self.completeness_score,
            "regeneratedSections": self.regenerated_sections,
            "warnings": list(self.warnings),
        }


@dataclass(slots=True)
class Report:
    title: str
    summary: str
    sections: list[ReportSection]
    citations: dict[str, CitationEntry]
    references: list[str]
    table_of_contents: list[dict[str, Any]]
    quality_metrics: QualityMetrics
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"report_{uuid4().hex[:12]}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "metadata": dict(self.metadata),
            "tableOfContents": list(self.table_of_contents),
            "sections": [s.to_dict() for s in self.sections],
            "citations": {cid: entry.to_dict() for cid, entry in self.citations.items()},
            "references": list(self.references),
            "qualityMetrics": self.quality_metrics.to_dict(),
        }


@dataclass(slots=True)
class DeepResearchError:
    code: str
    message: str
    can_retry: bool

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "canRetry": self.can_retry}


@dataclass(slots=True)
class DeepResearchJob:
    query: str
    study_type: StudyType
    credits_required: int
    credits_available: int
    phase: JobPhase = JobPhase.INTAKE
    job_id: str = field(default_factory=lambda: f"dr_{uuid4().hex[:12]}")
    raw_query: str | None = None
    intake: IntakeResult | None = None
    answers: dict[str, Any] = field(default_factory=dict)
    progress: CommandCenterProgress | None = None
    report: Report | None = None
    error: DeepResearchError | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "query": self.query,
            "rawQuery": self.raw_query,
            "studyType": self.study_type.value,
            "phase": self.phase.value,
            "creditsRequired": self.credits_required,
            "creditsAvailable": self.credits_available,
            "intake": self.intake.to_dict() if self.intake else None,
            "commandCenterProgress": self.progress.to_dict() if self.progress else None,
            "report": self.report.to_dict() if self.report else None,
            "error": self.error.to_dict() if self.error else None,
        }
