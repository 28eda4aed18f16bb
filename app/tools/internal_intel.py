"""Internal-intelligence fast provider: one JSON-mode LLM call grounded in the catalog."""
from __future__ import annotations

import json
from typing import Any

from app import llm_client
from app.catalog import store
from app.config import settings
from app.errors import MalformedOutput
from app.models.intents import Intent
from app.models.provider import ProviderReply
from app.models.response import Source, SourceType
from app.services import json_repair
from app.services.logger import log_soft_failure
from app.services.prompt_store import render_prompt, render_route_template
from app.services.sources import source_from_dict


def recent_history(history: list[dict[str, Any]] | None, window: int | None = None) -> list[dict[str, str]]:
    """Last ``window`` user/assistant turns as plain chat messages."""
    turns = [
        {"role": m.get("role", "user"), "content": str(m.get("content", ""))}
        for m in history or []
        if m.get("role") in ("user", "assistant") and m.get("content")
    ]
    return turns[-(window or settings.history_window):]


def catalog_context(intent: Intent) -> str:
    entities = intent.entities
    summary = store.portfolio_summary()
    context: dict[str, Any] = {
        "portfolio": {
            "totalSuppliers": summary.total_suppliers,
            "totalSpend": summary.total_spend_formatted,
            "distribution": summary.distribution,
        },
    }
    if entities.supplier_names:
        context["suppliers"] = [s.to_dict() for s in store.suppliers_by_names(entities.supplier_names)]
    if entities.commodity:
        item = store.commodity(entities.commodity)
        if item is not None:
            context["commodity"] = item.to_dict()
            context["priceDrivers"] = [d.name for d in store.price_drivers(item.id)]
    if intent.category.is_inflation:
        context["inflation"] = store.inflation_summary()
    return json.dumps(context, default=str)


def catalog_sources(intent: Intent) -> list[Source]:
    """Internal datasets the catalog context was drawn from."""
    entities = intent.entities
    found = [
        Source(
            name="Supplier Risk Portfolio",
            type=SourceType.INTERNAL,
            snippet=f"{store.portfolio_summary().total_suppliers} followed suppliers with current risk scores",
            report_id="portfolio",
        )
    ]
    item = store.commodity(entities.commodity) if entities.commodity else None
    if item is not None:
        found.append(
            Source(
                name=f"{item.name} Price Index",
                type=SourceType.INTERNAL,
                snippet=f"{item.name} at {item.price:g} {item.currency}/{item.unit}, {item.change_percent:+g}% month over month",
                report_id=f"price_{item.id}",
                category=item.name,
            )
        )
    if intent.category.is_inflation:
        summary = store.inflation_summary()
        found.append(
            Source(
                name=f"Inflation Watch {summary['period']}",
                type=SourceType.INTERNAL,
                snippet=summary["headline"],
                report_id="inflation_watch",
            )
        )
    return found


def _text(value: Any) -> str | None:
    """Scalar model field as stripped text; anything structured is dropped."""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    return str(value).strip() or None


def reply_from_payload(
    payload: dict[str, Any],
    *,
    default_source_type: SourceType = SourceType.INTERNAL,
    repaired: bool = False,
) -> ProviderReply:
    sources = [
        source
        for raw in payload.get("sources") or []
        if isinstance(raw, dict)
        for source in [source_from_dict(raw, default_type=default_source_type)]
        if source is not None
    ]
    suggestions = [str(s) for s in payload.get("suggestions") or [] if isinstance(s, (str, int, float))]
    widget = payload.get("widget")
    artifact = payload.get("artifact")
    insight = payload.get("insight")
    return ProviderReply(
        content=_text(payload.get("content")) or _text(payload.get("response")) or "",
        acknowledgement=_text(payload.get("acknowledgement")),
        widget=widget if isinstance(widget, dict) else None,
        insight=insight if isinstance(insight, (str, dict)) else None,
        suggestions=suggestions,
        sources=sources,
        artifact=artifact if isinstance(artifact, dict) else None,
        repaired=repaired,
    )


def parse_reply(raw: str, *, caller: str, default_source_type: SourceType = SourceType.INTERNAL) -> ProviderReply:
    parsed = json_repair.parse_object(raw)
    if parsed is None:
        raise MalformedOutput(caller, raw)
    if parsed.repaired:
        log_soft_failure(caller, "json_repaired", raw)
    return reply_from_payload(parsed.value, default_source_type=default_source_type, repaired=parsed.repaired)


async def ask(
    message: str,
    *,
    intent: Intent,
    history: list[dict[str, Any]] | None = None,
    prompt_template: str | None = None,
) -> ProviderReply:
    """Answer a chat turn from internal intelligence."""
    template_hint = ""
    if prompt_template:
        template_hint = render_route_template(
            prompt_template,
            query=message,
            intent=intent.category.value,
            commodity=intent.entities.commodity or "",
            supplier=intent.entities.supplier_name or "",
        )
    system = render_prompt(
        "fast.system",
        intent=intent.category.value,
        sub_intent=intent.sub_intent,
        entities=json.dumps(intent.entities.to_dict()),
        catalog_context=catalog_context(intent),
        template_hint=template_hint,
    )
    response = await llm_client.complete(
        caller="internal_intel.ask",
        role="fast",
        system=system,
        messages=[*recent_history(history), {"role": "user", "content": message}],
        json_mode=True,
        timeout_s=settings.fast_timeout_s,
    )
    reply = parse_reply(response.content, caller="internal_intel.ask")
    reply.sources = [*catalog_sources(intent), *reply.sources]
    return reply


async def brief(query: str, *, study_type: str, answers: dict[str, Any] | None = None) -> ProviderReply:
    """Research briefing for a deep-research job when no intel endpoint is configured."""
    response = await llm_client.complete(
        caller="internal_intel.brief",
        role="fast",
        system=render_prompt(
            "internal.system",
            study_type=study_type,
            query=query,
            answers=json.dumps(answers or {}),
        ),
        messages=[{"role": "user", "content": query}],
        json_mode=True,
        max_tokens=3000,
        timeout_s=settings.fast_timeout_s,
    )
    return parse_reply(response.content, caller="internal_intel.brief")
