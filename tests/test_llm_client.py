from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app import llm_client
from app.config import settings
from app.errors import ProviderNotConfigured, ProviderTimeout


def fake_openai(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = create
    return client


def completion(content: str) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content, reasoning=None))],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=4),
    )


@pytest.mark.asyncio
async def test_complete_requires_key():
    with pytest.raises(ProviderNotConfigured):
        await llm_client.complete(caller="test", system="s", messages=[])


def test_get_model_falls_back_by_role(monkeypatch):
    monkeypatch.setattr(settings, "default_model", "base/model")
    monkeypatch.setattr(settings, "fast_model", "fast/model")
    monkeypatch.setattr(settings, "decomposition_model", "")
    monkeypatch.setattr(settings, "synthesis_model", "")
    assert llm_client.get_model("fast") == "fast/model"
    assert llm_client.get_model("decomposition") == "fast/model"
    assert llm_client.get_model("synthesis") == "base/model"
    assert llm_client.get_model("unknown") == "base/model"


@pytest.mark.asyncio
async def test_complete_sends_system_prompt_and_json_mode(providers, monkeypatch):
    create = AsyncMock(return_value=completion('{"ok": true}'))
    monkeypatch.setattr(llm_client, "_client", llm_client.OpenRouterClientAdapter(fake_openai(create)))

    result = await llm_client.complete(
        caller="test",
        system="Be brief.",
        messages=[{"role": "tool", "content": "hi"}],
        json_mode=True,
    )

    assert result.content == '{"ok": true}'
    assert result.usage.input_tokens == 12
    kwargs = create.await_args.kwargs
    assert kwargs["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "hi"},
    ]
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["temperature"] == 0.2


@pytest.mark.asyncio
async def test_complete_maps_timeouts(providers, monkeypatch):
    async def slow(**kwargs):
        await asyncio.sleep(1)
        return completion("late")

    monkeypatch.setattr(llm_client, "_client", llm_client.OpenRouterClientAdapter(fake_openai(AsyncMock(side_effect=slow))))

    with pytest.raises(ProviderTimeout) as exc_info:
        await llm_client.complete(caller="test", system="s", messages=[], timeout_s=0.01)
    assert exc_info.value.provider == "openrouter"
