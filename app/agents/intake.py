"""Dynamic intake for deep-research jobs.

Two layers: deterministic slot filling from the query and recent chat turns,
then an optional LLM pass that rewrites question wording, help text and option
order. The LLM layer never adds, removes or renames questions.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from loguru import logger

from app import llm_client
from app.catalog import store
from app.config import settings
from app.errors import OrchestrationError
from app.models.deep_research import (
    CREDIT_COSTS,
    ESTIMATED_TIME,
    IntakeOption,
    IntakeQuestion,
    IntakeResult,
    StudyType,
)
from app.models.intents import ExtractedEntities
from app.services import json_repair
from app.services.entities import extract_entities
from app.services.logger import log_soft_failure
from app.services.prompt_store import render_prompt

RECENT_USER_TURNS = 5
MAX_OPTIONAL_QUESTIONS = 2
MIN_SUBSTANTIVE_CHARS = 11

META_PATTERNS = tuple(
    re.compile(p, re.I)
    for p in (
        r"^\s*(?:please\s+)?(?:do\s+|run\s+|start\s+)?(?:a\s+)?(?:deep\s+)?research(?:\s+(?:on|about|into))?\s+(?:this|that|it)\b",
        r"\b(?:analy[sz]e|investigate|study|dig\s+into|look\s+into|research)\s+(?:this|that|it)(?:\s+(?:topic|further|more|market|category))?\s*[.?!]*\s*$",
        r"\b(?:this|that)\s+topic\b",
        r"^\s*(?:go\s+)?deeper\b",
        r"^\s*(?:run|start|do)\s+(?:a\s+)?deep\s+research\s*[.?!]*\s*$",
        r"^\s*(?:tell\s+me\s+)?more\s+(?:about\s+)?(?:this|that|it)\s*[.?!]*\s*$",
    )
)
TOPIC_TAIL_RE = re.compile(
    r"\b(?:research|analy[sz]e|investigate|study|assess|evaluate|explore)\s+"
    r"(?:(?:on|about|into|of)\s+)?(?:the\s+)?(?P<topic>.+)$",
    re.I,
)
PRONOUN_TOPICS = {"this", "that", "it", "this topic", "that topic", "them", "these"}


def is_meta_query(text: str) -> bool:
    return any(p.search(text or "") for p in META_PATTERNS)


def _user_messages(history: list[dict[str, Any]] | None) -> list[str]:
    return [
        str(m.get("content") or "").strip()
        for m in history or []
        if m.get("role") == "user" and str(m.get("content") or "").strip()
    ]


def resolve_query(raw_query: str, history: list[dict[str, Any]] | None = None) -> str:
    """Topic a deep-research request is actually about."""
    raw = (raw_query or "").strip()
    if is_meta_query(raw):
        for message in reversed(_user_messages(history)):
            if len(message) < MIN_SUBSTANTIVE_CHARS or is_meta_query(message):
                continue
            return message

    match = TOPIC_TAIL_RE.search(raw)
    if match:
        topic = match.group("topic").strip(" \t?.!")
        if topic and topic.lower() not in PRONOUN_TOPICS and not is_meta_query(topic):
            return topic
    return raw


@dataclass(slots=True)
class IntakeContext:
    query: str
    study_type: StudyType
    recent_user_messages: list[str]
    entities: ExtractedEntities
    query_entities: ExtractedEntities
    portfolio: dict[str, Any] = field(default_factory=dict)

    @property
    def chat_summary(self) -> str:
        return " | ".join(self.recent_user_messages)


def build_context(query: str, study_type: StudyType, history: list[dict[str, Any]] | None = None) -> IntakeContext:
    recent = _user_messages(history)[-RECENT_USER_TURNS:]
    return IntakeContext(
        query=query,
        study_type=study_type,
        recent_user_messages=recent,
        entities=extract_entities(" ".join([query, *recent])),
        query_entities=extract_entities(query),
        portfolio=store.portfolio_snapshot(),
    )


SlotValue = str | list[str] | None


def _category(e: ExtractedEntities) -> SlotValue:
    return e.category or e.commodity


def _regions(e: ExtractedEntities) -> SlotValue:
    return list(e.regions) or None


def _timeframe(e: ExtractedEntities) -> SlotValue:
    return e.timeframe


def _suppliers(e: ExtractedEntities) -> SlotValue:
    return list(e.supplier_names) or None


def _never(e: ExtractedEntities) -> SlotValue:
    return None


@dataclass(slots=True, frozen=True)
class SlotDefinition:
    id: str
    required: bool
    label: str
    filled_by: Callable[[ExtractedEntities], SlotValue] = _never


STUDY_SLOTS: dict[StudyType, tuple[SlotDefinition, ...]] = {
    StudyType.MARKET_ANALYSIS: (
        SlotDefinition("category", True, "Category/Commodity", _category),
        SlotDefinition("region", True, "Region", _regions),
        SlotDefinition("timeframe", True, "Timeframe", _timeframe),
        SlotDefinition("focus_areas", False, "Focus Areas"),
        SlotDefinition("analysis_depth", False, "Analysis Depth"),
        SlotDefinition("competitor_scope", False, "Competitor Scope"),
    ),
    StudyType.SOURCING_STUDY: (
        SlotDefinition("category", True, "Category/Commodity", _category),
        SlotDefinition("region", True, "Region", _regions),
        SlotDefinition("timeframe", True, "Timeframe", _timeframe),
        SlotDefinition("supplier_scope", False, "Supplier Scope", _suppliers),
        SlotDefinition("budget", False, "Annual Spend"),
        SlotDefinition("focus_areas", False, "Sourcing Priorities"),
    ),
    StudyType.COST_MODEL: (
        SlotDefinition("category", True, "Category/Commodity", _category),
        SlotDefinition("region", True, "Region", _regions),
        SlotDefinition("timeframe", True, "Timeframe", _timeframe),
        SlotDefinition("cost_drivers", True, "Cost Drivers"),
        SlotDefinition("analysis_depth", False, "Analysis Depth"),
    ),
    StudyType.SUPPLIER_ASSESSMENT: (
        SlotDefinition("suppliers", True, "Supplier(s)", _suppliers),
        SlotDefinition("region", True, "Region", _regions),
        SlotDefinition("timeframe", False, "Timeframe", _timeframe),
        SlotDefinition("assessment_criteria", True, "Assessment Criteria"),
        SlotDefinition("sustainability_focus", False, "Sustainability Focus"),
    ),
    StudyType.RISK_ASSESSMENT: (
        SlotDefinition("category", True, "Category/Commodity", _category),
        SlotDefinition("region", True, "Region", _regions),
        SlotDefinition("timeframe", True, "Timeframe", _timeframe),
        SlotDefinition("risk_focus", True, "Risk Focus"),
        SlotDefinition("sustainability_focus", False, "ESG & Sustainability"),
    ),
    StudyType.CUSTOM: (
        SlotDefinition("category", False, "Category/Commodity", _category),
        SlotDefinition("region", True, "Region", _regions),
        SlotDefinition("timeframe", True, "Timeframe", _timeframe),
        SlotDefinition("focus_areas", False, "Focus Areas"),
    ),
}

OPTIONAL_SLOT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "focus_areas": ("focus", "priority", "priorities", "drivers", "trend", "forecast", "pricing", "supply", "demand", "innovation", "regulatory"),
    "analysis_depth": ("deep", "detailed", "comprehensive", "in-depth", "full", "dive"),
    "competitor_scope": ("competitor", "competitive", "market share", "players", "rivals"),
    "supplier_scope": ("supplier", "suppliers", "vendor", "vendors", "manufacturer"),
    "sustainability_focus": ("sustainability", "esg", "carbon", "emissions", "ethical", "green"),
    "budget": ("budget", "spend", "annual spend", "cost target"),
    "timeframe": ("history", "historical", "trend", "since", "months", "years"),
    "category": ("category", "commodity", "material"),
}

STUDY_SLOT_WEIGHTS: dict[StudyType, dict[str, int]] = {
    StudyType.MARKET_ANALYSIS: {"focus_areas": 2, "competitor_scope": 1, "analysis_depth": 1},
    StudyType.SOURCING_STUDY: {"supplier_scope": 2, "focus_areas": 1},
    StudyType.COST_MODEL: {"analysis_depth": 1},
    StudyType.SUPPLIER_ASSESSMENT: {"sustainability_focus": 1},
    StudyType.RISK_ASSESSMENT: {"sustainability_focus": 1},
}


@dataclass(slots=True)
class SlotResult:
    slot: SlotDefinition
    value: SlotValue
    confidence: str  # high | medium | low

    @property
    def filled(self) -> bool:
        return self.value is not None


def _has_value(value: SlotValue) -> bool:
    if value is None:
        return False
    if isinstance(value, list):
        return len(value) > 0
    return bool(str(value).strip())


def compute_slots(context: IntakeContext) -> list[SlotResult]:
    results: list[SlotResult] = []
    for slot in STUDY_SLOTS.get(context.study_type, STUDY_SLOTS[StudyType.CUSTOM]):
        value = slot.filled_by(context.entities)
        if not _has_value(value):
            results.append(SlotResult(slot, None, "low"))
            continue
        # filled from the query alone means the user said it in this request
        confidence = "high" if _has_value(slot.filled_by(context.query_entities)) else "medium"
        results.append(SlotResult(slot, value, confidence))
    return results


def relevance_score(slot_id: str, context: IntakeContext) -> int:
    text = f"{context.query} {context.chat_summary}".lower()
    hits = sum(1 for keyword in OPTIONAL_SLOT_KEYWORDS.get(slot_id, ()) if keyword in text)
    return hits + STUDY_SLOT_WEIGHTS.get(context.study_type, {}).get(slot_id, 0)


def _options(pairs: tuple[tuple[str, str], ...]) -> list[IntakeOption]:
    return [IntakeOption(label=label, value=value) for label, value in pairs]


def prioritize(options: list[IntakeOption], preferred: list[str] | None) -> list[IntakeOption]:
    if not preferred:
        return options
    wanted = set(preferred)
    return sorted(options, key=lambda o: 0 if o.value in wanted else 1)


REGION_OPTIONS = (
    ("Global", "global"),
    ("North America", "na"),
    ("Europe", "eu"),
    ("Asia Pacific", "apac"),
    ("Latin America", "latam"),
    ("Middle East & Africa", "mea"),
)
TIMEFRAME_OPTIONS = (
    ("Last 6 months", "6m"),
    ("Last 12 months", "12m"),
    ("Last 2 years", "2y"),
    ("Last 5 years", "5y"),
)
FOCUS_OPTIONS: dict[StudyType, tuple[tuple[str, str], ...]] = {
    StudyType.MARKET_ANALYSIS: (
        ("Market size & growth", "market_size"),
        ("Key players & market share", "key_players"),
        ("Price trends & forecasts", "price_trends"),
        ("Supply-demand dynamics", "supply_demand"),
        ("Innovation & technology", "innovation"),
        ("Regulatory landscape", "regulatory"),
    ),
    StudyType.SOURCING_STUDY: (
        ("Cost optimization", "cost_optimization"),
        ("Supplier diversification", "diversification"),
        ("Supply security", "supply_security"),
        ("Quality improvement", "quality"),
        ("Sustainability goals", "sustainability"),
        ("Lead time reduction", "lead_time"),
    ),
}
DEFAULT_FOCUS_OPTIONS = (
    ("Cost & pricing", "cost"),
    ("Market trends", "trends"),
    ("Competitive landscape", "competitive"),
    ("Risk factors", "risks"),
    ("Innovation", "innovation"),
)


def _category_question(context: IntakeContext) -> IntakeQuestion:
    categories = store.managed_categories()
    popular = [c for c in categories if c.popular][:8]
    other = [c for c in categories if not c.popular][:12]
    return IntakeQuestion(
        id="category",
        question="What category or commodity should we research?",
        type="category_picker",
        required=True,
        options=[IntakeOption(label=c.name, value=c.id) for c in (*popular, *other)],
        placeholder="Search categories...",
        help_text=(
            "We couldn't detect a specific category from your conversation."
            if context.recent_user_messages
            else "Select the procurement category to analyze."
        ),
    )


def _region_question(context: IntakeContext) -> IntakeQuestion:
    return IntakeQuestion(
        id="region",
        question="Which regions should we focus on?",
        type="multiselect",
        required=True,
        options=prioritize(_options(REGION_OPTIONS), list(context.entities.regions)),
        default_value=["global"],
        help_text="Select one or more regions for the analysis.",
    )


def _timeframe_question(context: IntakeContext) -> IntakeQuestion:
    commodity = context.entities.commodity
    timeframe = context.entities.timeframe
    return IntakeQuestion(
        id="timeframe",
        question=(
            f"What timeframe would be most relevant for analyzing {commodity}?"
            if commodity
            else "What timeframe should the analysis cover?"
        ),
        type="select",
        required=True,
        options=prioritize(_options(TIMEFRAME_OPTIONS), [timeframe] if timeframe else None),
        default_value=timeframe or "12m",
        help_text=(
            f"This helps us capture relevant historical data for {commodity}."
            if commodity
            else "Select the time period for the analysis."
        ),
    )


def _suppliers_question(context: IntakeContext) -> IntakeQuestion:
    options = [
        IntakeOption(label=f"{s['name']} ({s['region']})", value=s["name"])
        for s in context.portfolio.get("suppliers", [])[:10]
    ]
    return IntakeQuestion(
        id="suppliers",
        question="Which supplier(s) should we assess?",
        type="multiselect",
        required=True,
        options=options or [IntakeOption(label="Enter supplier name", value="custom")],
        help_text="Select from your portfolio or type a supplier name.",
    )


def _focus_question(context: IntakeContext) -> IntakeQuestion:
    return IntakeQuestion(
        id="focus_areas",
        question=f"What aspects of {context.entities.commodity or 'this category'} matter most for your research?",
        type="multiselect",
        required=False,
        options=_options(FOCUS_OPTIONS.get(context.study_type, DEFAULT_FOCUS_OPTIONS)),
        default_value=[],
        help_text="Select all that apply. This helps us prioritize the most relevant analysis.",
    )


def _static(
    slot_id: str,
    question: str,
    qtype: str,
    required: bool,
    pairs: tuple[tuple[str, str], ...],
    default: str | list[str] | None = None,
    help_text: str | None = None,
) -> Callable[[IntakeContext], IntakeQuestion]:
    def build(context: IntakeContext) -> IntakeQuestion:
        return IntakeQuestion(
            id=slot_id,
            question=question,
            type=qtype,
            required=required,
            options=_options(pairs),
            default_value=list(default) if isinstance(default, list) else default,
            help_text=help_text,
        )

    return build


QUESTION_BUILDERS: dict[str, Callable[[IntakeContext], IntakeQuestion]] = {
    "category": _category_question,
    "region": _region_question,
    "timeframe": _timeframe_question,
    "suppliers": _suppliers_question,
    "focus_areas": _focus_question,
    "risk_focus": _static(
        "risk_focus",
        "Which risk categories should we prioritize?",
        "multiselect",
        True,
        (
            ("Supply chain disruption", "supply_chain"),
            ("Price volatility", "price"),
            ("Geopolitical risk", "geopolitical"),
            ("Regulatory/compliance", "regulatory"),
            ("ESG/sustainability", "esg"),
            ("Financial stability", "financial"),
        ),
        ["supply_chain", "price"],
    ),
    "cost_drivers": _static(
        "cost_drivers",
        "Which cost drivers are most important to analyze?",
        "multiselect",
        True,
        (
            ("Raw materials", "raw_materials"),
            ("Labor costs", "labor"),
            ("Energy costs", "energy"),
            ("Logistics", "logistics"),
            ("Packaging", "packaging"),
            ("Overhead", "overhead"),
        ),
        ["raw_materials", "labor"],
    ),
    "assessment_criteria": _static(
        "assessment_criteria",
        "What criteria matter most for supplier evaluation?",
        "multiselect",
        True,
        (
            ("Financial stability", "financial"),
            ("Quality certifications", "quality"),
            ("Sustainability / ESG", "sustainability"),
            ("Geographic coverage", "geography"),
            ("Innovation capability", "innovation"),
            ("Cost competitiveness", "cost"),
        ),
        ["financial", "quality"],
    ),
    "budget": _static(
        "budget",
        "What is your approximate annual spend in this category?",
        "select",
        False,
        (("Under $1M", "under_1m"), ("$1M - $10M", "1m_10m"), ("$10M - $50M", "10m_50m"), ("Over $50M", "over_50m")),
        help_text="This helps calibrate our analysis scope.",
    ),
    "supplier_scope": _static(
        "supplier_scope",
        "How many suppliers should we evaluate?",
        "select",
        False,
        (("Top 5 suppliers", "top_5"), ("Top 10 suppliers", "top_10"), ("All available suppliers", "all"), ("Specific suppliers only", "specific")),
        "top_5",
    ),
    "analysis_depth": _static(
        "analysis_depth",
        "How deep should the analysis go?",
        "select",
        False,
        (
            ("Executive overview (key highlights)", "overview"),
            ("Standard analysis (balanced depth)", "standard"),
            ("Deep dive (comprehensive detail)", "deep_dive"),
        ),
        "standard",
        "Deeper analysis uses more sources and takes longer.",
    ),
    "competitor_scope": _static(
        "competitor_scope",
        "How broad should the competitive landscape analysis be?",
        "select",
        False,
        (("Top 5 players only", "top_5"), ("Top 10 players", "top_10"), ("Full market landscape", "full"), ("Skip competitive analysis", "skip")),
        "top_10",
        "We'll identify and analyze key competitors in this space.",
    ),
    "sustainability_focus": _static(
        "sustainability_focus",
        "Should the research include ESG & sustainability analysis?",
        "select",
        False,
        (("Yes, include detailed ESG analysis", "detailed"), ("Brief sustainability overview", "brief"), ("Not needed", "skip")),
        "brief",
        "Covers carbon footprint, ethical sourcing, and regulatory compliance.",
    ),
}


def build_question(slot: SlotDefinition, context: IntakeContext) -> IntakeQuestion:
    question = QUESTION_BUILDERS[slot.id](context)
    # slot tables decide whether a question is required, not the builder
    return replace(question, required=slot.required)


def generate_questions(context: IntakeContext) -> IntakeResult:
    """Deterministic layer: questions for missing or uncertain slots only."""
    slots = compute_slots(context)
    required_questions: list[IntakeQuestion] = []
    optional: list[tuple[int, int, IntakeQuestion]] = []
    prefilled: dict[str, str | list[str]] = {}

    for index, result in enumerate(slots):
        if result.filled:
            prefilled[result.slot.id] = result.value
        if result.filled and result.confidence == "high":
            continue

        question = build_question(result.slot, context)
        if result.filled and result.confidence == "medium":
            question.prefilled_from = "chat history"
            question.prefill_confidence = "medium"
            question.default_value = result.value
            question.help_text = question.help_text or "Detected from your conversation. Please confirm."

        if result.slot.required:
            required_questions.append(question)
            continue
        score = relevance_score(result.slot.id, context)
        if score > 0:
            optional.append((-score, index, question))

    optional_questions = [q for _, _, q in sorted(optional, key=lambda item: item[:2])][:MAX_OPTIONAL_QUESTIONS]

    required_slots = [r for r in slots if r.slot.required]
    missing_required = [r for r in required_slots if not r.filled]
    filled_required = [r for r in required_slots if r.filled]
    all_required_filled = not missing_required
    all_required_high = all(r.filled and r.confidence == "high" for r in required_slots)

    questions = [] if all_required_high and not optional_questions else [*required_questions, *optional_questions]
    can_skip = all_required_filled or (len(missing_required) <= 1 and len(filled_required) >= 2)

    if all_required_filled:
        origin = "conversation" if context.recent_user_messages else "query"
        skip_reason = f"All required information detected from your {origin}."
    elif can_skip:
        skip_reason = "Most required information was detected. You can skip to start with defaults."
    else:
        skip_reason = None

    return IntakeResult(
        study_type=context.study_type,
        questions=questions,
        prefilled_answers=prefilled,
        can_skip=can_skip,
        skip_reason=skip_reason,
        estimated_credits=CREDIT_COSTS[context.study_type],
        estimated_time=ESTIMATED_TIME[context.study_type],
    )


def _apply_refinements(questions: list[IntakeQuestion], refinements: list[Any]) -> list[IntakeQuestion]:
    by_id = {str(r.get("id")): r for r in refinements if isinstance(r, dict) and r.get("id")}
    refined: list[IntakeQuestion] = []
    for question in questions:
        change = by_id.get(question.id)
        if change is None:
            refined.append(question)
            continue
        updated = replace(question, options=list(question.options))
        text = change.get("question")
        if isinstance(text, str) and len(text.strip()) > 10:
            updated.question = text.strip()
        help_text = change.get("helpText")
        if isinstance(help_text, str) and help_text.strip():
            updated.help_text = help_text.strip()
        top = [str(v) for v in change.get("topOptions") or []]
        if top and updated.options:
            rank = {value: idx for idx, value in enumerate(top)}
            updated.options = sorted(updated.options, key=lambda o: rank.get(o.value, len(rank)))
        refined.append(updated)
    return refined


async def refine_questions(context: IntakeContext, questions: list[IntakeQuestion]) -> tuple[list[IntakeQuestion], bool]:
    """LLM layer. Returns the input unchanged on any failure."""
    draft = [
        {"id": q.id, "question": q.question, "type": q.type, "options": [o.value for o in q.options]}
        for q in questions
    ]
    try:
        response = await llm_client.complete(
            caller="intake.refine",
            role="fast",
            system=render_prompt(
                "intake.refine",
                study_type=context.study_type.value,
                query=context.query,
                questions=json.dumps(draft),
            ),
            messages=[{"role": "user", "content": context.chat_summary or context.query}],
            max_tokens=1536,
            timeout_s=settings.intake_llm_timeout_s,
        )
    except OrchestrationError as e:
        log_soft_failure("intake.refine", "llm_unavailable", str(e))
        return questions, False

    parsed = json_repair.parse_array(response.content, keys=("questions", "enhancements", "items"))
    if parsed is None or not parsed.value:
        log_soft_failure("intake.refine", "unparseable", response.content)
        return questions, False
    if parsed.repaired:
        log_soft_failure("intake.refine", "json_repaired", response.content)
    return _apply_refinements(questions, parsed.value), True


async def generate_intake(
    query: str,
    study_type: StudyType,
    history: list[dict[str, Any]] | None = None,
    *,
    use_llm: bool = True,
) -> IntakeResult:
    context = build_context(query, study_type, history)
    result = generate_questions(context)

    unfilled_required = [q for q in result.questions if q.required and q.id not in result.prefilled_answers]
    if use_llm and settings.openrouter_api_key.strip() and len(unfilled_required) >= 2:
        result.questions, result.llm_enhanced = await refine_questions(context, result.questions)
    elif unfilled_required:
        logger.debug(f"Skipping intake refinement: {len(unfilled_required)} unfilled required slot(s)")
    return result
