"""Research provider: web search plus a cited digest from the research model."""
from __future__ import annotations

from typing import Any

from app import llm_client
from app.config import settings
from app.errors import ProviderNotConfigured
from app.models.provider import ProviderReply
from app.models.response import Source
from app.services import json_repair, sources as source_utils
from app.services.logger import log_event, log_soft_failure
from app.services.prompt_store import render_prompt
from app.tools import search_provider
from app.tools.internal_intel import recent_history


def render_results(found: list[Source]) -> str:
    return "\n\n".join(
        f"[{idx}] {s.name} ({s.url or 'no url'})\n{s.snippet or ''}" for idx, s in enumerate(found, start=1)
    )


def snippet_digest(found: list[Source], limit: int = 4) -> str:
    """Digest used when no research model is configured."""
    if not found:
        return "No relevant web results were found for this question."
    lines = [
        f"- **{s.name}**: {(s.snippet or '').strip()[:280]} [{idx}]"
        for idx, s in enumerate(found[:limit], start=1)
    ]
    return "Here is what current web sources report:\n\n" + "\n".join(lines)


async def search_sources(query: str, *, max_results: int | None = None) -> list[Source]:
    """Deduplicated web sources for ``query``."""
    if not settings.web_configured:
        raise ProviderNotConfigured("web_search")
    response = await search_provider.search(query, max_results=max_results)
    if response.fallback_from:
        log_event(
            "search_fallback",
            f"{response.fallback_from} -> {response.provider}",
            reason=response.fallback_reason,
        )
    return source_utils.dedupe(r.to_source() for r in response.results if r.url or r.title)


async def research(
    query: str,
    *,
    history: list[dict[str, Any]] | None = None,
    max_results: int | None = None,
) -> ProviderReply:
    """Answer ``query`` from the web; the digest cites results as ``[n]`` by position."""
    found = await search_sources(query, max_results=max_results)
    if not settings.openrouter_api_key.strip() or not found:
        return ProviderReply(content=snippet_digest(found), sources=found)

    response = await llm_client.complete(
        caller="web_research.research",
        role="research",
        system=render_prompt("research.system", query=query, results=render_results(found)),
        messages=[*recent_history(history), {"role": "user", "content": query}],
        json_mode=True,
        timeout_s=settings.web_timeout_s * 2,
    )
    parsed = json_repair.parse_object(response.content)
    if parsed is None:
        log_soft_failure("web_research.research", "unparseable_digest", response.content)
        return ProviderReply(content=snippet_digest(found), sources=found, repaired=True)
    if parsed.repaired:
        log_soft_failure("web_research.research", "json_repaired", response.content)
    payload = parsed.value
    return ProviderReply(
        content=str(payload.get("content") or snippet_digest(found)),
        suggestions=[str(s) for s in payload.get("suggestions") or [] if isinstance(s, str)],
        sources=found,
        repaired=parsed.repaired,
    )
