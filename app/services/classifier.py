"""Rule-based intent classification for a single user message."""
from __future__ import annotations

import re

from app.models.intents import IntentCategory, Intent, RouteOverride
from app.services.entities import extract_entities

C = IntentCategory

# Evaluated in order; the first category with a matching pattern wins.
INTENT_RULES: tuple[tuple[IntentCategory, tuple[str, ...]], ...] = (
    (C.RESTRICTED_QUERY, (
        r"breakdown.*score",
        r"factor.*(score|detail|breakdown)",
        r"show.*individual.*factor",
        r"specific.*(score|rating)",
        r"contract (terms|clauses?|negotiation)",
        r"legal (advice|review)",
    )),
    (C.INFLATION_JUSTIFICATION, (
        r"is.*(this|the).*(price|increase).*(justified|fair|reasonable)",
        r"validate.*(price|increase|cost)",
        r"should.*(accept|agree|pay).*(price|increase)",
        r"supplier.*(asking|requesting|claiming).*(increase|more)",
        r"fair.*(price|increase|market)",
        r"negotiate.*(price|increase)",
    )),
    (C.INFLATION_SCENARIOS, (
        r"what if.*(price|cost|inflation).*(increase|go up|rise)",
        r"scenario.*(price|cost|inflation)",
        r"model.*(price|cost).*(change|increase)",
        r"if.*(price|cost).*(rise|increase|go up).*(%|percent)",
    )),
    (C.INFLATION_DRIVERS, (
        r"why.*(price|cost|inflation).*(up|down|increase|decrease|change|rise|rising|fall)",
        r"what('?s| is).*(driving|causing|behind).*(price|cost|inflation)",
        r"explain.*(price|cost).*(increase|decrease|change)",
        r"root cause.*(price|inflation)",
        r"factors?.*(affecting|impacting|driving).*(price|cost)",
    )),
    (C.INFLATION_IMPACT, (
        r"how.*(affect|impact).*(my|our).*(spend|budget|portfolio|cost)",
        r"what('?s| is).*(my|our).*(exposure|impact)",
        r"inflation.*(impact|exposure|effect)",
        r"(spend|cost|budget).*(at risk|exposed|impacted)",
        r"how much.*(cost|spend).*(increase|go up|affected)",
    )),
    (C.INFLATION_SUMMARY, (
        r"what('?s| is| has).*(changed|happening).*(price|inflation|cost)",
        r"price.*(change|movement|update)",
        r"inflation.*(summary|overview|update)",
        r"commodity.*(price|cost).*(this|last).*month",
        r"monthly.*(inflation|price).*report",
    )),
    (C.COMPARISON, (
        r"\bcompare\b",
        r"\bversus\b|\bvs\.?\s",
        r"which.*(safer|better|riskier)",
        r"side by side",
        r"rank.*(supplier|by)",
    )),
    (C.EXPLANATION_WHY, (
        r"why.*(high|low|medium|risk|score)",
        r"what('?s| is) (driving|causing)",
        r"explain.*(score|risk)",
        r"how.*(calculated|computed)",
        r"what.*factors",
    )),
    (C.ACTION_TRIGGER, (
        r"find alternative",
        r"what.*(should|can) i do",
        r"help me.*(mitigate|reduce)",
        r"create.*(plan|workflow)",
        r"mitigation (plan|strategy)",
    )),
    (C.PORTFOLIO_OVERVIEW, (
        r"risk (exposure|overview|summary|posture)",
        r"portfolio (overview|summary|risk)",
        r"show.*(my|me).*(risk|portfolio)",
        r"what('?s| is) my.*risk",
        r"how many.*(supplier|high risk)",
        r"how.*(is|are) my.*(risk|portfolio|suppliers)",
    )),
    (C.SUPPLIER_DEEP_DIVE, (
        r"tell me about",
        r"what('?s| is) the.*(score|risk).*(for|of)",
        r"show me.*detail",
        r"(view|see|look at).*supplier",
        r"profile (for|of)",
    )),
    (C.TREND_DETECTION, (
        r"what.*changed",
        r"recent.*change",
        r"change.*recent",
        r"moved.*(to|from)",
        r"\btrend",
        r"worsening|improving",
        r"this (week|month)",
        r"any.*alert",
    )),
    (C.FILTERED_DISCOVERY, (
        r"show.*(supplier|high|medium|low)",
        r"which supplier",
        r"list.*(supplier|high|risk)",
        r"filter.*by",
        r"supplier.*\b(in|with|from)\b",
        r"(high|medium|low).risk.supplier",
        r"find.*(supplier|vendor)",
    )),
    (C.MARKET_CONTEXT, (
        r"what('?s| is) happening.*(market|industry|sector)",
        r"any news",
        r"market.*(event|condition|trend|outlook)",
        r"industry.*(trend|outlook|risk)",
        r"is this normal",
        r"how.*(compare|benchmark)",
        r"geopolitical",
        r"supply chain.*(disruption|issue)",
        r"(price|cost).*(impact|effect).*(supplier|market|industry)",
    )),
    (C.SETUP_CONFIG, (
        r"set.?up.*alert",
        r"add.*supplier",
        r"configure",
        r"\bunfollow\b|\bfollow\b",
    )),
    (C.REPORTING_EXPORT, (
        r"\bexport\b",
        r"\bdownload\b",
        r"generate.*(report|summary)",
        r"create.*presentation",
        r"summarize.*for",
        r"help.*(explain|present|communicate).*(price|cost|inflation)",
    )),
)

RESEARCH_TRIGGERS: tuple[str, ...] = (
    r"what('?s| is) happening",
    r"any news",
    r"in the news",
    r"market.*(event|condition|trend|outlook)",
    r"industry.*(trend|outlook|risk|average|normal)",
    r"is this normal",
    r"how.*(compare|benchmark).*peer",
    r"geopolitical",
    r"supply chain.*(disruption|issue)",
    r"what.*(might|could|will).*change",
    r"forecast|predict|projection",
    r"regulatory|compliance.*news",
    r"what.*(others|peers|companies) do",
    r"best practice",
)

RESEARCH_SUB_INTENTS = {"benchmark", "news_events", "industry_context", "projections", "strategic_advice"}

HANDOFF_REASON = "Detailed factor scores require dashboard access due to partner data restrictions."

_COMPILED_RULES = tuple(
    (category, tuple(re.compile(p, re.I) for p in patterns)) for category, patterns in INTENT_RULES
)
_COMPILED_TRIGGERS = tuple(re.compile(p, re.I) for p in RESEARCH_TRIGGERS)


def _sub_intent(query: str, category: IntentCategory) -> str:
    q = query.lower()

    def has(pattern: str) -> bool:
        return re.search(pattern, q) is not None

    if category is C.PORTFOLIO_OVERVIEW:
        if has(r"spend|dollar|exposure"):
            return "spend_weighted"
        if has(r"by.*(category|region|location)"):
            return "by_dimension"
        if has(r"compare.*peer|benchmark|normal"):
            return "benchmark"
        return "overall_summary"
    if category is C.FILTERED_DISCOVERY:
        if has(r"(high|medium|low).?risk") and has(r"\bin\b|from|region|europe|asia|america"):
            return "compound_filter"
        if has(r"(high|medium|low).?risk"):
            return "by_risk_level"
        if has(r"financial|cyber|esg|delivery|quality"):
            return "by_risk_factor"
        return "by_attribute"
    if category is C.SUPPLIER_DEEP_DIVE:
        if has(r"news|event|happening"):
            return "news_events"
        if has(r"industry|market|sector"):
            return "industry_context"
        if has(r"history|historical|over time"):
            return "historical"
        if has(r"score"):
            return "score_inquiry"
        return "supplier_overview"
    if category is C.TREND_DETECTION:
        if has(r"why.*change"):
            return "why_changed"
        if has(r"might|could|will|predict|forecast"):
            return "projections"
        if has(r"worsen|improv"):
            return "change_direction"
        return "recent_changes"
    if category is C.ACTION_TRIGGER:
        if has(r"alternative"):
            return "find_alternatives"
        if has(r"plan|strategy"):
            return "mitigation_plan"
        if has(r"explain|present|stakeholder"):
            return "communication_help"
        return "strategic_advice" if has(r"should|advice|recommend") else "none"
    if category is C.MARKET_CONTEXT:
        if has(r"news|event"):
            return "news_events"
        if has(r"benchmark|compare|normal|peer"):
            return "benchmark"
        return "industry_context"
    if category is C.INFLATION_SUMMARY:
        if has(r"category|categories"):
            return "category_changes"
        if has(r"region|geographic|country"):
            return "region_changes"
        if has(r"top|biggest|most"):
            return "top_movers"
        return "monthly_changes"
    if category is C.INFLATION_DRIVERS:
        if has(r"supplier"):
            return "supplier_drivers"
        if has(r"market|macro|economy"):
            return "market_drivers"
        if has(r"history|historical|past"):
            return "historical_drivers"
        return "commodity_drivers"
    if category is C.INFLATION_IMPACT:
        if has(r"supplier"):
            return "supplier_exposure"
        if has(r"category|categories"):
            return "category_exposure"
        return "spend_impact"
    if category is C.INFLATION_JUSTIFICATION:
        if has(r"negotiat"):
            return "negotiate_support"
        if has(r"market|fair"):
            return "market_fairness"
        return "validate_increase"
    if category is C.INFLATION_SCENARIOS:
        if has(r"supplier|switch|alternative"):
            return "what_if_supplier"
        if has(r"budget"):
            return "budget_impact"
        return "what_if_increase"
    return "none"


def _research_triggered(query: str) -> bool:
    return any(p.search(query) for p in _COMPILED_TRIGGERS)


def _match_category(query: str) -> IntentCategory | None:
    for category, patterns in _COMPILED_RULES:
        if any(p.search(query) for p in patterns):
            return category
    return None


def _build_intent(query: str, category: IntentCategory, sub_intent: str, confidence: float) -> Intent:
    research = (
        _research_triggered(query)
        or sub_intent in RESEARCH_SUB_INTENTS
        or category is C.MARKET_CONTEXT
    )
    discovery = sub_intent == "find_alternatives" or re.search(
        r"find.*(supplier|alternative|option)", query, re.I
    ) is not None
    restricted = category is C.RESTRICTED_QUERY
    return Intent(
        category=category,
        sub_intent=sub_intent,
        confidence=confidence,
        entities=extract_entities(query),
        requires_research=research,
        requires_discovery=discovery,
        requires_handoff=restricted,
        handoff_reason=HANDOFF_REASON if restricted else None,
    )


def classify(message: str) -> Intent:
    """Classify ``message`` into an intent with extracted entities."""
    query = " ".join((message or "").split())
    category = _match_category(query)
    if category is None:
        return _build_intent(query, C.GENERAL, "none", 0.5)
    return _build_intent(query, category, _sub_intent(query, category), 0.85)


def classify_with_route(message: str, route: RouteOverride) -> Intent:
    """Adopt a deterministic route while still extracting entities from the message."""
    query = " ".join((message or "").split())
    intent = _build_intent(query, route.intent, route.sub_intent or "none", 1.0)
    if route.requires_research is not None:
        intent = intent.with_overrides(requires_research=route.requires_research)
    return intent
