from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from app import llm_client
from app.agents import decomposer
from app.agents.decomposer import AgentPlan
from app.config import settings
from app.errors import ProviderTimeout
from app.models.deep_research import StudyType


def test_jaccard_ignores_order_and_stopwords():
    assert decomposer.jaccard("lithium price trends", "trends of the lithium price") == 1.0
    assert decomposer.jaccard("lithium price", "copper supply") == 0.0


def test_dedupe_plans_keeps_first_of_overlapping_pair():
    plans = [
        AgentPlan("Prices", "lithium price trends"),
        AgentPlan("Prices again", "price trends for lithium"),
        AgentPlan("Supply", "lithium mine supply capacity"),
    ]
    kept = decomposer.dedupe_plans(plans)
    assert [p.name for p in kept] == ["Prices", "Supply"]


@pytest.mark.asyncio
async def test_defaults_without_model(monkeypatch):
    monkeypatch.setattr(settings, "max_research_agents", 3)
    plans = await decomposer.decompose("copper", StudyType.MARKET_ANALYSIS)
    assert len(plans) == 3
    assert plans[0].query == "copper market size growth outlook"


@pytest.mark.asyncio
async def test_model_plans_are_parsed_and_capped(providers, monkeypatch):
    monkeypatch.setattr(settings, "max_research_agents", 2)
    content = (
        '{"agents": [{"name": "Prices", "query": "copper prices", "category": "pricing"},'
        ' {"name": "Mines", "query": "copper mine output"}, {"query": "copper tariffs"}]}'
    )
    with patch.object(llm_client, "complete", AsyncMock(return_value=SimpleNamespace(content=content))):
        plans = await decomposer.decompose("copper", StudyType.MARKET_ANALYSIS)
    assert [p.query for p in plans] == ["copper prices", "copper mine output"]
    assert plans[0].category == "pricing"
    assert plans[1].category == "general"


@pytest.mark.asyncio
async def test_model_failure_falls_back_to_defaults(providers):
    with patch.object(llm_client, "complete", AsyncMock(side_effect=ProviderTimeout("openrouter", 60))):
        plans = await decomposer.decompose("copper", StudyType.RISK_ASSESSMENT)
    assert [p.name for p in plans] == [name for name, _, _ in decomposer.DEFAULT_ANGLES[StudyType.RISK_ASSESSMENT]]


@pytest.mark.asyncio
async def test_unparseable_reply_falls_back_to_defaults(providers):
    with patch.object(llm_client, "complete", AsyncMock(return_value=SimpleNamespace(content="sorry"))):
        plans = await decomposer.decompose("copper", StudyType.COST_MODEL)
    assert plans[0].name == "Raw materials"
