"""Hybrid route: internal intelligence and web search merged into one cited answer."""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from app.agents import synthesizer
from app.catalog import store
from app.config import settings
from app.errors import OrchestrationError
from app.models.intents import Intent
from app.models.provider import PathResult, ProviderReply
from app.models.response import Source
from app.services.citations import strip_unresolved
from app.services.logger import log_soft_failure
from app.services.sources import SourceDedupSet, assign_citation_ids, build_response_sources
from app.services.widgets import enrich
from app.tools import internal_intel, web_research


async def _web_sources(message: str) -> list[Source]:
    try:
        return await asyncio.wait_for(web_research.search_sources(message), settings.web_timeout_s)
    except asyncio.TimeoutError:
        log_soft_failure("hybrid.web", "timeout", f"{settings.web_timeout_s:g}s")
    except OrchestrationError as e:
        log_soft_failure("hybrid.web", "unavailable", str(e))
    return []


async def run_hybrid(
    message: str,
    intent: Intent,
    *,
    history: list[dict[str, Any]] | None = None,
    prompt_template: str | None = None,
) -> PathResult:
    """Fan out to both providers, then synthesize with ``[B#]``/``[W#]`` citations.

    A missing web result degrades to an internal-only answer; a failing internal
    call propagates so the caller can downgrade the route.
    """
    internal_reply, web_found = await asyncio.gather(
        internal_intel.ask(message, intent=intent, history=history, prompt_template=prompt_template),
        _web_sources(message),
    )

    pool = SourceDedupSet()
    for source in [*internal_reply.sources, *web_found]:
        pool.add_if_unique(source)
    cited = assign_citation_ids(pool.sources())
    logger.debug(f"Hybrid sources: {len(cited)} unique from {len(internal_reply.sources) + len(web_found)}")

    try:
        result = await synthesizer.synthesize_hybrid(
            message,
            intent,
            internal_findings=internal_reply.content,
            sources=cited,
        )
    except OrchestrationError as e:
        log_soft_failure("hybrid.synthesis", "llm_unavailable", str(e))
        result = synthesizer.fallback_hybrid(internal_reply.content, cited)
    result.content = strip_unresolved(result.content, (s.citation_id for s in cited if s.citation_id))

    sources = build_response_sources(
        cited,
        category=intent.entities.commodity or intent.entities.category,
        managed_categories=[c.name for c in store.managed_categories()],
    )
    sources.confidence = synthesizer.apply_claim_confidence(sources.confidence, result.confidence)

    insight: dict[str, Any] | str | None = internal_reply.insight
    if result.headline:
        insight = {"headline": result.headline, "sentiment": result.sentiment}
    reply = ProviderReply(
        content=result.content,
        acknowledgement=internal_reply.acknowledgement,
        widget=internal_reply.widget,
        insight=insight,
        sources=cited,
        artifact=internal_reply.artifact,
        reasoning=result.reasoning or None,
    )
    return PathResult(
        reply=reply,
        enrichment=enrich(intent, internal_reply.widget),
        provider="hybrid",
        sources=sources,
    )
