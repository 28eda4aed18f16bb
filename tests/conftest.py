from __future__ import annotations

import pytest

from app import llm_client
from app.config import settings
from app.services import suggestions


@pytest.fixture(autouse=True)
def no_providers(monkeypatch):
    """Start every test with no provider credentials configured."""
    for name in ("openrouter_api_key", "tavily_api_key", "brave_api_key", "internal_api_url", "internal_api_key"):
        monkeypatch.setattr(settings, name, "")
    monkeypatch.setattr(settings, "search_provider", "tavily")
    monkeypatch.setattr(llm_client, "_client", None)
    suggestions._engines.clear()
    yield
    suggestions._engines.clear()


@pytest.fixture
def providers(monkeypatch):
    """Configure both the internal (OpenRouter) and web (Tavily) providers."""
    monkeypatch.setattr(settings, "openrouter_api_key", "test-key")
    monkeypatch.setattr(settings, "tavily_api_key", "test-key")
