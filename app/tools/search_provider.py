from __future__ import annotations

from dataclasses import dataclass

from app.config import settings
from app.errors import OrchestrationError
from app.services.logger import log_event
from app.tools import brave_search, tavily_search
from app.tools.tavily_search import SearchResult


@dataclass
class SearchResponse:
    results: list[SearchResult]
    provider: str
    fallback_from: str | None = None
    fallback_reason: str | None = None


async def _tavily(query: str, max_results: int, time_range: str | None) -> list[SearchResult]:
    return await tavily_search.search(
        query=query,
        max_results=max_results,
        topic=tavily_search.topic_for(query),
        time_range=time_range,
    )


async def search(
    query: str,
    *,
    max_results: int | None = None,
    time_range: str | None = None,
) -> SearchResponse:
    """Search the web with the configured backend, falling back from Brave to Tavily."""
    provider = settings.search_provider.lower().strip()
    use_fallback = settings.search_fallback_to_tavily and bool(settings.tavily_api_key.strip())
    limit = max_results or settings.search_max_results

    if provider == "tavily":
        results = await _tavily(query, limit, time_range)
        return SearchResponse(results=results, provider="tavily")

    if provider == "brave":
        try:
            results = await brave_search.search(query=query, max_results=limit, time_range=time_range)
        except OrchestrationError as e:
            if not use_fallback:
                raise
            log_event("search_fallback", "brave failed, using tavily", reason=str(e))
            fallback_results = await _tavily(query, limit, time_range)
            return SearchResponse(
                results=fallback_results,
                provider="tavily",
                fallback_from="brave",
                fallback_reason=str(e),
            )
        if results or not use_fallback:
            return SearchResponse(results=results, provider="brave")
        fallback_results = await _tavily(query, limit, time_range)
        return SearchResponse(
            results=fallback_results,
            provider="tavily",
            fallback_from="brave",
            fallback_reason="brave returned zero results",
        )

    raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")
