"""Split a research topic into focused agent assignments."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from app import llm_client
from app.config import settings
from app.errors import OrchestrationError
from app.models.deep_research import StudyType
from app.services import json_repair
from app.services.logger import log_soft_failure
from app.services.prompt_store import render_prompt
from app.services.report_templates import get_template

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_STOPWORDS = {"the", "a", "an", "of", "for", "in", "on", "and", "or", "to", "with", "by", "about"}


@dataclass(slots=True, frozen=True)
class AgentPlan:
    name: str
    query: str
    category: str = "general"


DEFAULT_ANGLES: dict[StudyType, tuple[tuple[str, str, str], ...]] = {
    StudyType.MARKET_ANALYSIS: (
        ("Market size & growth", "{topic} market size growth outlook", "market"),
        ("Price trends", "{topic} price trends forecast", "pricing"),
        ("Supply and demand", "{topic} supply demand balance capacity", "market"),
        ("Key players", "{topic} leading producers market share", "suppliers"),
        ("Regulation", "{topic} regulation policy trade tariffs", "regulation"),
    ),
    StudyType.SOURCING_STUDY: (
        ("Supplier landscape", "{topic} top suppliers capabilities", "suppliers"),
        ("Cost benchmarks", "{topic} cost benchmark pricing", "pricing"),
        ("Low-cost regions", "{topic} low cost country sourcing", "strategy"),
        ("Supply risks", "{topic} supply chain disruption risk", "risk"),
    ),
    StudyType.COST_MODEL: (
        ("Raw materials", "{topic} raw material cost breakdown", "pricing"),
        ("Energy and labor", "{topic} energy labor cost share", "pricing"),
        ("Logistics", "{topic} freight logistics cost", "logistics"),
        ("Price indices", "{topic} price index trend", "pricing"),
    ),
    StudyType.SUPPLIER_ASSESSMENT: (
        ("Financial health", "{topic} financial results credit rating", "risk"),
        ("Operations", "{topic} production capacity quality certifications", "suppliers"),
        ("ESG", "{topic} sustainability ESG controversies", "risk"),
        ("Recent news", "{topic} latest news", "market"),
    ),
    StudyType.RISK_ASSESSMENT: (
        ("Supply disruption", "{topic} supply disruption outages", "risk"),
        ("Geopolitics", "{topic} geopolitical trade restrictions", "risk"),
        ("Price volatility", "{topic} price volatility", "pricing"),
        ("Regulation", "{topic} regulatory compliance changes", "regulation"),
    ),
}


def tokens(text: str) -> set[str]:
    return {t for t in _TOKEN_RE.findall(text.lower()) if t not in _STOPWORDS}


def jaccard(a: str, b: str) -> float:
    left, right = tokens(a), tokens(b)
    if not left and not right:
        return 1.0
    return len(left & right) / len(left | right)


def dedupe_plans(plans: list[AgentPlan], threshold: float | None = None) -> list[AgentPlan]:
    """Drop plans whose query overlaps an already-kept one above ``threshold``."""
    limit = settings.agent_dedup_threshold if threshold is None else threshold
    kept: list[AgentPlan] = []
    for plan in plans:
        if any(jaccard(plan.query, other.query) > limit for other in kept):
            continue
        kept.append(plan)
    return kept


def default_plans(topic: str, study_type: StudyType) -> list[AgentPlan]:
    angles = DEFAULT_ANGLES.get(study_type, DEFAULT_ANGLES[StudyType.MARKET_ANALYSIS])
    return [AgentPlan(name, query.format(topic=topic), category) for name, query, category in angles]


def plans_from_payload(items: list[Any]) -> list[AgentPlan]:
    plans: list[AgentPlan] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        query = str(item.get("query") or "").strip()
        if not query:
            continue
        name = str(item.get("name") or query[:40]).strip()
        plans.append(AgentPlan(name=name, query=query, category=str(item.get("category") or "general")))
    return plans


async def decompose(
    query: str,
    study_type: StudyType,
    answers: dict[str, Any] | None = None,
) -> list[AgentPlan]:
    """Research angles for ``query``, before deduplication.

    Falls back to the study type's default angles when no model is configured
    or its reply is unusable.
    """
    max_agents = settings.max_research_agents
    if not settings.openrouter_api_key.strip():
        return default_plans(query, study_type)[:max_agents]

    try:
        response = await llm_client.complete(
            caller="decomposer.decompose",
            role="decomposition",
            system=render_prompt(
                "decompose.system",
                study_name=get_template(study_type).name,
                query=query,
                answers=json.dumps(answers or {}),
                max_agents=max_agents,
            ),
            messages=[{"role": "user", "content": query}],
            json_mode=True,
            max_tokens=1200,
            timeout_s=settings.fast_timeout_s,
        )
    except OrchestrationError as e:
        log_soft_failure("decomposer.decompose", "llm_unavailable", str(e))
        return default_plans(query, study_type)[:max_agents]

    parsed = json_repair.parse_array(response.content, keys=("agents", "items", "angles"))
    plans = plans_from_payload(parsed.value) if parsed else []
    if not plans:
        log_soft_failure("decomposer.decompose", "unparseable", response.content)
        return default_plans(query, study_type)[:max_agents]
    if parsed.repaired:
        log_soft_failure("decomposer.decompose", "json_repaired", response.content)
    return plans[:max_agents]
