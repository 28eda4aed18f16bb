from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ResponseType(StrEnum):
    WIDGET = "widget"
    TABLE = "table"
    SUMMARY = "summary"
    ALERT = "alert"
    HANDOFF = "handoff"


class SourceType(StrEnum):
    INTERNAL = "internal"
    FINANCIAL_PARTNER = "financial_partner"
    SUSTAINABILITY_PARTNER = "sustainability_partner"
    SUPPLIER_DATA = "supplier_data"
    WEB = "web"
    NEWS = "news"

    @property
    def is_internal(self) -> bool:
        return self not in (SourceType.WEB, SourceType.NEWS)


class MilestoneEvent(StrEnum):
    INTENT_CLASSIFIED = "intent_classified"
    PROVIDER_SELECTED = "provider_selected"
    DATA_RETRIEVED = "data_retrieved"
    SOURCES_FOUND = "sources_found"
    WIDGET_SELECTED = "widget_selected"
    RESPONSE_READY = "response_ready"


Sentiment = Literal["positive", "negative", "neutral"]


class Source(CamelModel):
    name: str
    type: SourceType = SourceType.WEB
    url: str | None = None
    snippet: str | None = None
    citation_id: str | None = None
    domain: str | None = None
    report_id: str | None = None
    category: str | None = None


class SourceConfidence(CamelModel):
    level: Literal["high", "medium", "low", "web_only"] = "low"
    label: str = "Limited Data"
    reason: str = "Limited source data available"
    is_managed_category: bool = False
    category_name: str | None = None
    internal_source_count: int = 0
    web_source_count: int = 0
    show_expand_to_web: bool = True


class ResponseSources(CamelModel):
    internal: list[Source] = Field(default_factory=list)
    web: list[Source] = Field(default_factory=list)
    citations: dict[str, Source] = Field(default_factory=dict)
    total_internal_count: int = 0
    total_web_count: int = 0
    confidence: SourceConfidence | None = None

    def all(self) -> list[Source]:
        return [*self.internal, *self.web]


class Insight(CamelModel):
    headline: str = ""
    summary: str | None = None
    sentiment: Sentiment = "neutral"
    factors: list[str] = Field(default_factory=list)


class Widget(CamelModel):
    type: str
    title: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class Artifact(CamelModel):
    type: str
    title: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class Handoff(CamelModel):
    required: bool = True
    reason: str = ""
    link_text: str = "Open Risk Dashboard"
    url: str = "/dashboard/risk"


class Suggestion(CamelModel):
    id: str
    text: str
    icon: str = "lightbulb"
    rule_id: str | None = None


class Escalation(CamelModel):
    show_inline: bool = True
    expand_to_artifact: bool = False
    result_count: int = 0
    threshold: int = 5
    summary_only: bool = False


class ValueLadder(CamelModel):
    tier: str = "analyst"
    headline: str = ""
    cta: str = ""
    action: str = ""
    context: str | None = None


class SourceMix(CamelModel):
    decision_grade: int = 0
    verified_partner: int = 0
    web: int = 0
    total: int = 0


class Milestone(CamelModel):
    id: str
    event: MilestoneEvent
    label: str
    value: str | int | float | None = None
    timestamp: int = 0


class CanonicalResponse(CamelModel):
    id: str = Field(default_factory=lambda: f"resp_{uuid4().hex[:12]}")
    content: str = ""
    acknowledgement: str | None = None
    response_type: ResponseType = ResponseType.SUMMARY
    insight: Insight | None = None
    widget: Widget | None = None
    artifact: Artifact | None = None
    handoff: Handoff | None = None
    sources: ResponseSources = Field(default_factory=ResponseSources)
    suggestions: list[Suggestion] = Field(default_factory=list)
    escalation: Escalation = Field(default_factory=Escalation)
    value_ladder: ValueLadder | None = None
    source_mix: SourceMix = Field(default_factory=SourceMix)
    milestones: list[Milestone] = Field(default_factory=list)
    provider: str = "local"
    duration_ms: int = 0
    intent: dict[str, Any] | None = None
    deep_research: dict[str, Any] | None = None
