"""Validate and repair canonical responses before they leave the core.

Every repair is a fixpoint: validating an already-valid response returns an
equal response.
"""
from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from app.models.response import CanonicalResponse, Handoff, ResponseType
from app.services import citations
from app.services.logger import log_soft_failure
from app.services.sources import source_mix
from app.services.suggestions import DEFAULT_SUGGESTIONS, MAX_SUGGESTIONS
from app.services.widgets import coerce_widget

FALLBACK_CONTENT = "I couldn't put together a full answer for that. Try rephrasing, or ask about your risk overview."


def safe_fallback(intent: dict[str, Any] | None = None) -> CanonicalResponse:
    """Minimal response that satisfies every invariant."""
    return CanonicalResponse(
        content=FALLBACK_CONTENT,
        response_type=ResponseType.SUMMARY,
        suggestions=[s.model_copy() for s in DEFAULT_SUGGESTIONS],
        intent=intent,
    )


def _repair_suggestions(response: CanonicalResponse) -> list[str]:
    problems: list[str] = []
    seen: set[str] = set()
    kept = []
    for suggestion in response.suggestions:
        text = suggestion.text.strip()
        if not text or text in seen:
            problems.append("duplicate or empty suggestion")
            continue
        seen.add(text)
        kept.append(suggestion)
    if len(kept) > MAX_SUGGESTIONS:
        problems.append("too many suggestions")
        kept = kept[:MAX_SUGGESTIONS]
    if problems:
        response.suggestions = kept
    return problems


def _repair_citations(response: CanonicalResponse) -> list[str]:
    citation_map = response.sources.citations
    listed = response.sources.all()
    problems: list[str] = []
    for key, source in list(citation_map.items()):
        if source not in listed:
            del citation_map[key]
            problems.append("citation source missing from source list")
    if citations.unresolved_ids(response.content, citation_map):
        response.content = citations.strip_unresolved(response.content, citation_map.keys())
        problems.append("unresolved citation markers")
    return problems


def repair(response: CanonicalResponse) -> tuple[CanonicalResponse, list[str]]:
    """Repair ``response`` in place; returns it with the list of repairs made."""
    problems: list[str] = []

    if response.widget is not None:
        coerced = coerce_widget(response.widget)
        if coerced != response.widget:
            problems.append("widget data repaired")
            response.widget = coerced

    if response.handoff is not None and response.response_type is not ResponseType.HANDOFF:
        problems.append("handoff without handoff type")
        response.response_type = ResponseType.HANDOFF
    if response.response_type is ResponseType.HANDOFF:
        if response.handoff is None:
            problems.append("handoff type without handoff block")
            response.handoff = Handoff(reason="This request needs the full dashboard.")
        if response.widget is not None:
            problems.append("widget on handoff")
            response.widget = None
    elif response.widget is None and response.response_type in (
        ResponseType.WIDGET,
        ResponseType.TABLE,
        ResponseType.ALERT,
    ):
        problems.append("widget type without widget")
        response.response_type = ResponseType.SUMMARY

    if not response.content.strip():
        problems.append("empty content")
        if response.insight is not None and response.insight.headline:
            response.content = response.insight.headline
        elif response.widget is not None:
            response.content = f"Here is your {response.widget.title or response.widget.type.replace('_', ' ')}."
        else:
            response.content = FALLBACK_CONTENT

    problems.extend(_repair_citations(response))
    problems.extend(_repair_suggestions(response))

    mix = source_mix(response.sources)
    if mix != response.source_mix:
        problems.append("source mix recomputed")
        response.source_mix = mix

    if response.escalation.result_count < 0:
        problems.append("negative result count")
        response.escalation.result_count = 0

    return response, problems


def validate_response(response: CanonicalResponse) -> CanonicalResponse:
    try:
        repaired, problems = repair(response.model_copy(deep=True))
    except (ValidationError, ValueError, TypeError) as e:
        log_soft_failure("response_validator", "fallback", str(e))
        return safe_fallback(response.intent)
    if problems:
        log_soft_failure("response_validator", "repaired", ", ".join(problems))
    return repaired


def validate_payload(payload: dict[str, Any]) -> CanonicalResponse:
    """Validate a raw (possibly camelCase) mapping into a canonical response."""
    try:
        response = CanonicalResponse.model_validate(payload)
    except ValidationError as e:
        log_soft_failure("response_validator", "fallback", str(e))
        return safe_fallback(payload.get("intent") if isinstance(payload.get("intent"), dict) else None)
    return validate_response(response)
