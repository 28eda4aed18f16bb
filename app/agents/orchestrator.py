"""Chat-turn orchestration: classify, route, downgrade on failure, build the canonical response."""
from __future__ import annotations

import re
from typing import Any

from loguru import logger

from app.agents import deep_research, fast_path, hybrid_path, local_fallback
from app.config import settings
from app.errors import OrchestrationError
from app.models.deep_research import DeepResearchJob, JobPhase, StudyType
from app.models.intents import Intent, RouteOverride
from app.models.provider import PathResult
from app.models.response import CanonicalResponse, MilestoneEvent, ResponseType
from app.services import classifier
from app.services.logger import log_route_decision
from app.services.response_builder import MilestoneListener, MilestoneTracker, build_response
from app.services.response_validator import safe_fallback, validate_response
from app.services.suggestions import engine_for

ROUTE_ORDER = ("hybrid", "research", "fast", "local")

PRICE_DATA_PATTERNS = tuple(
    re.compile(p, re.I)
    for p in (
        r"price\s*(movement|impact|trend|change|forecast|outlook)",
        r"(lithium|rare\s*earth|cobalt|nickel|battery|steel|aluminum|copper)\s*(price|cost|movement|impact)",
        r"how\s*(does|do|will|would).*price.*impact",
        r"analyze.*price.*movement",
        r"commodity\s*(price|cost).*impact",
    )
)


def is_price_data_query(message: str) -> bool:
    return any(p.search(message or "") for p in PRICE_DATA_PATTERNS)


def resolve_intent(message: str, route: RouteOverride | dict[str, Any] | None = None) -> Intent:
    """Classify ``message``; internal price data wins over web research for price questions."""
    if isinstance(route, dict):
        route = RouteOverride.from_dict(route)
    intent = classifier.classify_with_route(message, route) if route else classifier.classify(message)
    if intent.requires_research and is_price_data_query(message):
        logger.debug("Price-data query: internal data is authoritative, skipping web research")
        intent = intent.with_overrides(requires_research=False)
    return intent


def select_route(intent: Intent, *, mode: str = "fast", web_search: bool = False, hybrid: bool = False) -> tuple[str, str]:
    """First-choice route and the reason it was picked."""
    internal, web = settings.internal_configured, settings.web_configured
    if (hybrid or web_search) and internal and web:
        return "hybrid", "hybrid requested and both providers configured"
    if (mode == "reasoning" or web_search or intent.requires_research) and web:
        return "research", "web research requested or required"
    if internal:
        return "fast", "internal intelligence configured"
    return "local", "no providers configured"


def downgrade_chain(first: str) -> list[str]:
    """Routes to try in order, skipping any whose provider is not configured."""
    available = {
        "hybrid": settings.internal_configured and settings.web_configured,
        "research": settings.web_configured,
        "fast": settings.internal_configured,
        "local": True,
    }
    return [r for r in ROUTE_ORDER[ROUTE_ORDER.index(first):] if r == first or available[r]]


class ChatOrchestrator:
    """Single entry point for a chat turn.

    Provider failures never reach the caller: each failing route downgrades to
    the next one down to the local catalog answer.
    """

    def __init__(self, session_id: str | None = None):
        self.session_id = session_id
        self.suggestions = engine_for(session_id)

    async def respond(
        self,
        message: str,
        *,
        mode: str = "fast",
        web_search: bool = False,
        history: list[dict[str, Any]] | None = None,
        route: RouteOverride | dict[str, Any] | None = None,
        on_milestone: MilestoneListener | None = None,
        hybrid: bool = False,
        deep_research_requested: bool = False,
        study_type: str | None = None,
        credits_available: int = 0,
    ) -> CanonicalResponse:
        if deep_research_requested:
            return await self._start_deep_research(message, study_type, history, credits_available)

        tracker = MilestoneTracker(on_milestone)
        intent = resolve_intent(message, route)
        tracker.emit(MilestoneEvent.INTENT_CLASSIFIED, f"Classified as {intent.category.value}", intent.category.value)

        first, reason = select_route(intent, mode=mode, web_search=web_search, hybrid=hybrid)
        log_route_decision(first, intent.category.value, reason)
        prompt_template = route.prompt_template if isinstance(route, RouteOverride) else None
        if isinstance(route, dict):
            prompt_template = route.get("promptTemplate")

        result: PathResult | None = None
        for name in downgrade_chain(first):
            label = f"Using {name} provider" if name == first else f"Falling back to {name}"
            tracker.emit(MilestoneEvent.PROVIDER_SELECTED, label, name)
            try:
                result = await self._run_route(name, message, intent, history, prompt_template)
                break
            except Exception as e:
                if isinstance(e, OrchestrationError):
                    logger.warning(f"Route {name} failed: {e}")
                else:
                    logger.exception(f"Route {name} failed with unexpected error: {e}")
                log_route_decision(name, intent.category.value, f"failed: {e}")

        if result is None:
            result = local_fallback.respond(message, intent)

        tracker.emit(MilestoneEvent.DATA_RETRIEVED, "Data retrieved", result.enrichment.result_count)
        source_count = len(result.reply.sources)
        if source_count:
            tracker.emit(MilestoneEvent.SOURCES_FOUND, f"Found {source_count} sources", source_count)
        try:
            return self._build(result, intent, tracker)
        except Exception as e:
            logger.exception(f"Building the {result.provider} response failed: {e}")
        if result.provider != "local":
            try:
                return self._build(local_fallback.respond(message, intent), intent, tracker)
            except Exception as e:
                logger.exception(f"Building the local response failed: {e}")
        return safe_fallback(intent.to_dict())

    def _build(self, result: PathResult, intent: Intent, tracker: MilestoneTracker) -> CanonicalResponse:
        return build_response(
            result.reply,
            intent,
            result.enrichment,
            provider=result.provider,
            suggestions=self.suggestions,
            sources=result.sources,
            tracker=tracker,
        )

    async def _run_route(
        self,
        name: str,
        message: str,
        intent: Intent,
        history: list[dict[str, Any]] | None,
        prompt_template: str | None,
    ) -> PathResult:
        if name == "hybrid":
            return await hybrid_path.run_hybrid(message, intent, history=history, prompt_template=prompt_template)
        if name == "research":
            return await fast_path.run_research(message, intent, history=history)
        if name == "fast":
            return await fast_path.run_fast(message, intent, history=history, prompt_template=prompt_template)
        return local_fallback.respond(message, intent)

    async def _start_deep_research(
        self,
        message: str,
        study_type: str | None,
        history: list[dict[str, Any]] | None,
        credits_available: int,
    ) -> CanonicalResponse:
        study = StudyType.parse(study_type) if study_type else StudyType.MARKET_ANALYSIS
        job = deep_research.build_job(message, study, credits_available=credits_available, history=history)
        if job.credits_available < job.credits_required:
            job = await deep_research.run_deep_research(job)
        else:
            job = await deep_research.start_intake(job, history)
        return validate_response(deep_research_stub(job))


def deep_research_stub(job: DeepResearchJob) -> CanonicalResponse:
    """Chat response that carries a deep-research job payload."""
    if job.phase is JobPhase.ERROR and job.error is not None:
        content = job.error.message
    elif job.phase is JobPhase.COMPLETE and job.report is not None:
        content = job.report.summary or job.report.title
    else:
        content = f"Let's set up a {job.study_type.value.replace('-', ' ')} on **{job.query}**."
    return CanonicalResponse(
        content=content,
        response_type=ResponseType.SUMMARY,
        provider="deep_research",
        deep_research=job.to_dict(),
    )
