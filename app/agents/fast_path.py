"""Single-provider routes: internal intelligence (fast) and web research."""
from __future__ import annotations

from typing import Any

from app.models.intents import Intent
from app.models.provider import PathResult, ProviderReply
from app.services.citations import resolve_legacy_markers, strip_unresolved
from app.services.sources import assign_citation_ids, dedupe
from app.services.widgets import enrich
from app.tools import internal_intel, web_research


def cite(reply: ProviderReply) -> ProviderReply:
    """Number the reply's sources and drop markers that point nowhere.

    Bare ``[n]`` markers are rewritten to the n-th source before unresolved
    markers are stripped.
    """
    cited = assign_citation_ids(dedupe(reply.sources))
    content = resolve_legacy_markers(reply.content, cited)
    reply.content = strip_unresolved(content, (s.citation_id for s in cited if s.citation_id))
    reply.sources = cited
    return reply


async def run_fast(
    message: str,
    intent: Intent,
    *,
    history: list[dict[str, Any]] | None = None,
    prompt_template: str | None = None,
) -> PathResult:
    reply = await internal_intel.ask(message, intent=intent, history=history, prompt_template=prompt_template)
    return PathResult(reply=cite(reply), enrichment=enrich(intent, reply.widget), provider="internal")


async def run_research(
    message: str,
    intent: Intent,
    *,
    history: list[dict[str, Any]] | None = None,
) -> PathResult:
    reply = await web_research.research(message, history=history)
    return PathResult(reply=cite(reply), enrichment=enrich(intent), provider="research")
