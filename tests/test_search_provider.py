from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from app.errors import ProviderError
from app.tools import search_provider
from app.tools.tavily_search import SearchResult, topic_for


def _result(url: str = "https://example.com/a") -> SearchResult:
    return SearchResult(title="Example", url=url, content="Lithium carbonate prices fell in Q3.", score=0.9)


@pytest.mark.asyncio
async def test_search_provider_uses_tavily_when_configured():
    with patch("app.tools.search_provider.settings") as mock_settings, patch(
        "app.tools.search_provider.tavily_search.search", new=AsyncMock(return_value=[_result()])
    ):
        mock_settings.search_provider = "tavily"
        mock_settings.search_max_results = 6

        result = await search_provider.search("query", max_results=3)

    assert result.provider == "tavily"
    assert result.fallback_from is None
    assert len(result.results) == 1


@pytest.mark.asyncio
async def test_search_provider_raises_when_provider_unsupported():
    with patch("app.tools.search_provider.settings") as mock_settings:
        mock_settings.search_provider = "unknown-provider"

        with pytest.raises(ValueError):
            await search_provider.search("query")


@pytest.mark.asyncio
async def test_brave_failure_falls_back_to_tavily():
    with patch("app.tools.search_provider.settings") as mock_settings, patch(
        "app.tools.search_provider.brave_search.search",
        new=AsyncMock(side_effect=ProviderError("brave", "boom", status_code=500)),
    ), patch("app.tools.search_provider.tavily_search.search", new=AsyncMock(return_value=[_result()])):
        mock_settings.search_provider = "brave"
        mock_settings.search_fallback_to_tavily = True
        mock_settings.tavily_api_key = "key"
        mock_settings.search_max_results = 6

        result = await search_provider.search("query")

    assert result.provider == "tavily"
    assert result.fallback_from == "brave"
    assert "boom" in (result.fallback_reason or "")


@pytest.mark.asyncio
async def test_brave_failure_propagates_without_fallback():
    with patch("app.tools.search_provider.settings") as mock_settings, patch(
        "app.tools.search_provider.brave_search.search",
        new=AsyncMock(side_effect=ProviderError("brave", "boom")),
    ):
        mock_settings.search_provider = "brave"
        mock_settings.search_fallback_to_tavily = False
        mock_settings.tavily_api_key = ""
        mock_settings.search_max_results = 6

        with pytest.raises(ProviderError):
            await search_provider.search("query")


@pytest.mark.asyncio
async def test_brave_zero_results_falls_back():
    with patch("app.tools.search_provider.settings") as mock_settings, patch(
        "app.tools.search_provider.brave_search.search", new=AsyncMock(return_value=[])
    ), patch("app.tools.search_provider.tavily_search.search", new=AsyncMock(return_value=[_result()])):
        mock_settings.search_provider = "brave"
        mock_settings.search_fallback_to_tavily = True
        mock_settings.tavily_api_key = "key"
        mock_settings.search_max_results = 6

        result = await search_provider.search("query")

    assert result.fallback_reason == "brave returned zero results"


def test_topic_for_detects_news_queries():
    assert topic_for("latest news on cobalt") == "news"
    assert topic_for("cobalt supply chain") == "general"


def test_search_result_converts_to_web_source():
    source = _result("https://www.example.com/report").to_source()
    assert source.type.value == "web"
    assert source.domain == "example.com"
