"""Assemble the canonical response from a path's intermediate reply."""
from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from app.catalog import store
from app.models.intents import Intent, IntentCategory
from app.models.provider import ProviderReply
from app.models.response import (
    Artifact,
    CanonicalResponse,
    Escalation,
    Handoff,
    Insight,
    Milestone,
    MilestoneEvent,
    ResponseSources,
    ResponseType,
    ValueLadder,
)
from app.services import sources as source_utils
from app.services.logger import log_soft_failure
from app.services.response_validator import validate_response
from app.services.suggestions import SuggestionEngine
from app.services.widgets import Enrichment

C = IntentCategory
MilestoneListener = Callable[[Milestone], None]

EXPERT_INTENTS = frozenset(
    {
        C.MARKET_CONTEXT,
        C.COMPARISON,
        C.EXPLANATION_WHY,
        C.INFLATION_JUSTIFICATION,
        C.INFLATION_SCENARIOS,
    }
)


class MilestoneTracker:
    """Buffer of timestamped milestones for one request."""

    def __init__(self, listener: MilestoneListener | None = None, clock: Callable[[], float] = time.monotonic):
        self._listener = listener
        self._clock = clock
        self._started = clock()
        self.items: list[Milestone] = []

    def elapsed_ms(self) -> int:
        return int((self._clock() - self._started) * 1000)

    def emit(self, event: MilestoneEvent, label: str, value: Any = None) -> Milestone:
        item = Milestone(
            id=f"ms_{len(self.items) + 1}_{event.value}",
            event=event,
            label=label,
            value=value,
            timestamp=self.elapsed_ms(),
        )
        self.items.append(item)
        if self._listener is not None:
            self._listener(item)
        return item

    def has(self, event: MilestoneEvent) -> bool:
        return any(m.event is event for m in self.items)


def _summary_text(value: Any) -> str | None:
    if isinstance(value, (list, tuple)):
        value = " ".join(str(v).strip() for v in value if v)
    if value is None or isinstance(value, dict):
        return None
    return str(value).strip() or None


def coerce_insight(raw: str | dict[str, Any] | Insight | None) -> Insight | None:
    if raw is None:
        return None
    if isinstance(raw, Insight):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        return Insight(headline=text, sentiment="neutral") if text else None
    if isinstance(raw, dict):
        headline = str(raw.get("headline") or raw.get("title") or "").strip()
        sentiment = raw.get("sentiment")
        if sentiment not in ("positive", "negative", "neutral"):
            sentiment = "neutral"
        factors = raw.get("factors") or []
        return Insight(
            headline=headline,
            summary=_summary_text(raw.get("summary") or raw.get("explanation")),
            sentiment=sentiment,
            factors=[
                str(f.get("title") or f.get("name") or "") if isinstance(f, dict) else str(f)
                for f in factors
                if f
            ],
        )
    return None


def coerce_artifact(raw: dict[str, Any] | None) -> Artifact | None:
    """Model-supplied artifact, or ``None`` when it does not fit the schema."""
    if not isinstance(raw, dict) or not raw.get("type"):
        return None
    try:
        return Artifact.model_validate(raw)
    except ValidationError as e:
        log_soft_failure("response_builder.artifact", "invalid_artifact", str(e))
        return None


def escalation_for(intent: Intent, result_count: int) -> Escalation:
    category = intent.category
    if category is C.SUPPLIER_DEEP_DIVE and result_count == 1:
        return Escalation(show_inline=True, expand_to_artifact=True, result_count=1)
    if category is C.PORTFOLIO_OVERVIEW:
        return Escalation(show_inline=True, expand_to_artifact=True, result_count=result_count)
    if category is C.FILTERED_DISCOVERY:
        escalation = Escalation(show_inline=True, result_count=result_count)
        escalation.expand_to_artifact = result_count > 3
        escalation.summary_only = result_count > escalation.threshold
        return escalation
    return Escalation(show_inline=True, expand_to_artifact=False, result_count=result_count)


def value_ladder_for(intent: Intent) -> ValueLadder:
    """Upsell hint keyed by intent category and the extracted topic."""
    entities = intent.entities
    managed = store.managed_category(entities.category) if entities.category else None
    topic = entities.commodity or entities.supplier_name or (managed.name if managed else None)
    if managed is not None and managed.lead_analyst:
        first_name = managed.lead_analyst.split(" ")[0]
        return ValueLadder(
            tier="analyst",
            headline=f"{managed.lead_analyst} covers {managed.name}",
            cta=f"Ask {first_name} about this",
            action="analyst_connect",
            context=managed.id,
        )
    if intent.category in EXPERT_INTENTS:
        return ValueLadder(
            tier="expert",
            headline=f"Talk to an industry expert about {topic or 'this market'}",
            cta="Request expert intro",
            action="expert_deep_dive",
            context=topic,
        )
    return ValueLadder(
        tier="community",
        headline=f"See how peers approach {topic or 'supplier risk'}",
        cta="Browse community discussions",
        action="community",
        context=topic,
    )


def _response_type(intent: Intent, enrichment: Enrichment) -> ResponseType:
    if intent.requires_handoff:
        return ResponseType.HANDOFF
    if enrichment.widget is None:
        return ResponseType.SUMMARY
    if enrichment.widget.type in ("supplier_table", "comparison_table", "affected_suppliers_table"):
        return ResponseType.TABLE
    if enrichment.widget.type == "alert_card":
        return ResponseType.ALERT
    return ResponseType.WIDGET


def build_response(
    reply: ProviderReply,
    intent: Intent,
    enrichment: Enrichment,
    *,
    provider: str,
    suggestions: SuggestionEngine,
    sources: ResponseSources | None = None,
    tracker: MilestoneTracker | None = None,
    duration_ms: int = 0,
) -> CanonicalResponse:
    """Normalize ``reply`` into a validated :class:`CanonicalResponse`."""
    if sources is None:
        sources = source_utils.build_response_sources(
            reply.sources,
            category=intent.entities.commodity or intent.entities.category,
            managed_categories=[c.name for c in store.managed_categories()],
        )

    restricted = intent.requires_handoff
    handoff = (
        Handoff(required=True, reason=intent.handoff_reason or "This request needs the full dashboard.")
        if restricted
        else None
    )
    widget = None if restricted else enrichment.widget
    artifact = coerce_artifact(reply.artifact)

    response = CanonicalResponse(
        content=reply.content,
        acknowledgement=reply.acknowledgement,
        response_type=_response_type(intent, enrichment),
        insight=coerce_insight(reply.insight),
        widget=widget,
        artifact=artifact,
        handoff=handoff,
        sources=sources,
        suggestions=suggestions.generate(
            intent,
            suppliers=enrichment.suppliers,
            portfolio=enrichment.summary,
            risk_changes=enrichment.risk_changes,
            result_count=enrichment.result_count,
            has_handoff=restricted,
        ),
        escalation=escalation_for(intent, enrichment.result_count),
        value_ladder=value_ladder_for(intent),
        source_mix=source_utils.source_mix(sources),
        provider=provider,
        duration_ms=duration_ms,
        intent=intent.to_dict(),
    )
    if tracker is not None:
        if widget is not None:
            tracker.emit(MilestoneEvent.WIDGET_SELECTED, f"Selected {widget.type}", widget.type)
        tracker.emit(MilestoneEvent.RESPONSE_READY, "Response ready", tracker.elapsed_ms())
        response.milestones = list(tracker.items)
        response.duration_ms = duration_ms or tracker.elapsed_ms()
    return validate_response(response)
