from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tavily import AsyncTavilyClient

from app.config import settings
from app.errors import ProviderError, ProviderNotConfigured
from app.models.response import Source, SourceType
from app.services.sources import extract_domain

NEWS_HINTS = ("news", "latest", "this week", "announced", "headline")


@dataclass
class SearchResult:
    title: str
    url: str
    content: str
    score: float

    def to_source(self) -> Source:
        return Source(
            name=self.title or extract_domain(self.url).capitalize(),
            type=SourceType.WEB,
            url=self.url or None,
            snippet=self.content[:600] if self.content else None,
            domain=extract_domain(self.url) if self.url else None,
        )


def topic_for(query: str) -> str:
    lowered = query.lower()
    return "news" if any(hint in lowered for hint in NEWS_HINTS) else "general"


async def search(
    query: str,
    *,
    search_depth: str = "advanced",
    max_results: int = 6,
    topic: str = "general",
    time_range: str | None = None,
) -> list[SearchResult]:
    """Execute a Tavily web search and return structured results."""
    if not settings.tavily_api_key.strip():
        raise ProviderNotConfigured("tavily")
    client = AsyncTavilyClient(api_key=settings.tavily_api_key)

    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
        "topic": topic,
    }
    if time_range:
        kwargs["time_range"] = time_range

    try:
        response = await client.search(**kwargs)
    except Exception as e:
        raise ProviderError("tavily", f"{type(e).__name__}: {e}") from e

    return [
        SearchResult(
            title=r.get("title", ""),
            url=r.get("url", ""),
            content=r.get("content", ""),
            score=r.get("score", 0.0),
        )
        for r in response.get("results", [])
    ]
