"""Cited synthesis for hybrid answers and deep-research report sections."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from app.models.intents import Intent
from app.models.response import Source, SourceConfidence
from app.services import citations, json_repair
from app.services.logger import log_soft_failure
from app.services.prompt_store import render_prompt
from app.services.report_templates import SectionTemplate
from app.services.sources import CONFIDENCE_LABELS
from app.tools import reasoning

CONFIDENCE_RANK = {"low": 0, "web_only": 1, "medium": 2, "high": 3}
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


@dataclass(slots=True)
class HybridSynthesis:
    content: str
    headline: str
    sentiment: str
    confidence: str
    reasoning: str = ""


def render_citation_list(sources: list[Source], snippet_chars: int = 300) -> str:
    lines = []
    for source in sources:
        if not source.citation_id:
            continue
        detail = (source.snippet or "").strip().replace("\n", " ")[:snippet_chars]
        where = f" ({source.url})" if source.url else ""
        lines.append(f"[{source.citation_id}] {source.name}{where}: {detail}")
    return "\n".join(lines) or "(no sources)"


def render_findings(sources: list[Source], *, internal: bool) -> str:
    picked = [s for s in sources if s.type.is_internal == internal and s.snippet]
    return "\n".join(f"- [{s.citation_id}] {s.snippet.strip()[:400]}" for s in picked) or "(none)"


def claim_confidence(content: str) -> str:
    """Confidence from which side the cited claims lean on."""
    internal = web = 0
    for citation_id in citations.CITATION_RE.findall(content or ""):
        if citation_id.startswith("B"):
            internal += 1
        elif citation_id.startswith("W"):
            web += 1
    if internal and web:
        return "high"
    if internal:
        return "medium"
    if web:
        return "web_only"
    return "low"


def apply_claim_confidence(confidence: SourceConfidence | None, level: str) -> SourceConfidence | None:
    """Downgrade ``confidence`` when the written answer cites weaker evidence than was available."""
    if confidence is None or CONFIDENCE_RANK[level] >= CONFIDENCE_RANK[confidence.level]:
        return confidence
    return confidence.model_copy(
        update={
            "level": level,
            "label": CONFIDENCE_LABELS[level],
            "reason": "Answer relies mainly on web sources" if level == "web_only" else "Few claims are backed by sources",
        }
    )


def fallback_hybrid(internal_findings: str, sources: list[Source]) -> HybridSynthesis:
    """Deterministic merge used when the synthesis model is unavailable."""
    internal = [s for s in sources if s.type.is_internal and s.citation_id]
    web = [s for s in sources if not s.type.is_internal and s.citation_id]
    parts: list[str] = []
    body = internal_findings.strip()
    if body:
        marker = f" [{internal[0].citation_id}]" if internal else ""
        parts.append(f"{body}{marker}")
    if web:
        lines = [
            f"- **{s.name}**: {(s.snippet or '').strip()[:240]} [{s.citation_id}]" for s in web[:4]
        ]
        parts.append("**Current web coverage**\n\n" + "\n".join(lines))
    content = "\n\n".join(parts)
    headline = _SENTENCE_RE.split(body, maxsplit=1)[0][:160] if body else ""
    return HybridSynthesis(
        content=content,
        headline=headline,
        sentiment="neutral",
        confidence=claim_confidence(content),
    )


async def synthesize_hybrid(
    query: str,
    intent: Intent,
    *,
    internal_findings: str,
    sources: list[Source],
) -> HybridSynthesis:
    """Merge internal and web findings into one cited answer.

    Markers that do not resolve against ``sources`` are stripped.
    """
    system = render_prompt(
        "hybrid.system",
        query=query,
        intent=intent.category.value,
        internal_findings=internal_findings.strip() or "(none)",
        web_findings=render_findings(sources, internal=False),
        citation_list=render_citation_list(sources),
    )
    response = await reasoning.reason(
        [{"role": "system", "content": system}, {"role": "user", "content": query}],
        caller="synthesizer.hybrid",
        json_mode=True,
        max_tokens=3000,
    )
    parsed = json_repair.parse_object(response.content)
    if parsed is None:
        log_soft_failure("synthesizer.hybrid", "unparseable", response.content)
        return fallback_hybrid(internal_findings, sources)
    if parsed.repaired:
        log_soft_failure("synthesizer.hybrid", "json_repaired", response.content)

    payload: dict[str, Any] = parsed.value
    valid_ids = [s.citation_id for s in sources if s.citation_id]
    content = citations.strip_unresolved(str(payload.get("content") or ""), valid_ids)
    if not content.strip():
        return fallback_hybrid(internal_findings, sources)
    sentiment = payload.get("sentiment")
    return HybridSynthesis(
        content=content,
        headline=str(payload.get("headline") or ""),
        sentiment=sentiment if sentiment in ("positive", "negative", "neutral") else "neutral",
        confidence=claim_confidence(content),
        reasoning=response.reasoning,
    )


def _render_answers(answers: dict[str, Any]) -> str:
    if not answers:
        return "(none provided)"
    return "\n".join(
        f"- {key}: {', '.join(map(str, value)) if isinstance(value, list) else value}"
        for key, value in answers.items()
    )


def section_messages(
    section: SectionTemplate,
    *,
    study_name: str,
    study_context: str,
    answers: dict[str, Any],
    sources: list[Source],
    internal_findings: str,
    web_findings: str,
    emphasize: bool = False,
) -> list[dict[str, str]]:
    emphasis = render_prompt("section.regen_emphasis", min_citations=section.min_citations) if emphasize else ""
    user = render_prompt(
        "section.user",
        study_context=study_context,
        answers=_render_answers(answers),
        section_title=section.title,
        section_description=section.description,
        prompt_hints="\n".join(f"- {hint}" for hint in section.prompt_hints) or "- (none)",
        min_citations=section.min_citations,
        emphasis=emphasis,
        sources=render_citation_list(sources),
        internal_findings=internal_findings.strip() or "(none)",
        web_findings=web_findings.strip() or "(none)",
    )
    return [
        {"role": "system", "content": render_prompt("section.system", study_name=study_name)},
        {"role": "user", "content": user},
    ]


async def synthesize_section(
    section: SectionTemplate,
    *,
    study_name: str,
    study_context: str,
    answers: dict[str, Any],
    sources: list[Source],
    internal_findings: str,
    web_findings: str,
    emphasize: bool = False,
) -> str:
    """Markdown body for one report section, with legacy ``[n]`` markers rewritten."""
    response = await reasoning.reason(
        section_messages(
            section,
            study_name=study_name,
            study_context=study_context,
            answers=answers,
            sources=sources,
            internal_findings=internal_findings,
            web_findings=web_findings,
            emphasize=emphasize,
        ),
        caller=f"synthesizer.section.{section.id}",
        max_tokens=3000,
    )
    content = json_repair.strip_fences(response.content) if response.content.lstrip().startswith("```") else response.content
    return citations.resolve_legacy_markers(content.strip(), sources)


def chart_specs(section_id: str, content: str) -> list[dict[str, Any]]:
    """Chart directives for markdown tables found in a section."""
    charts: list[dict[str, Any]] = []
    lines = content.splitlines()
    for idx, line in enumerate(lines[:-1]):
        if line.strip().startswith("|") and re.match(r"^\s*\|?\s*:?-{3,}", lines[idx + 1]):
            headers = [cell.strip() for cell in line.strip().strip("|").split("|")]
            charts.append({"id": f"{section_id}_table_{len(charts) + 1}", "type": "table", "columns": headers})
    return charts


def fallback_section(section: SectionTemplate, sources: list[Source], *, offset: int = 0, limit: int = 4) -> str:
    """Source digest written when no synthesis model is configured."""
    cited = [s for s in sources if s.citation_id and s.snippet]
    if not cited:
        return f"No sourced findings were available for {section.title.lower()}."
    start = offset % len(cited)
    picked = (cited[start:] + cited[:start])[: max(limit, section.min_citations)]
    lines = [f"- **{s.name}**: {s.snippet.strip()[:280]} [{s.citation_id}]" for s in picked]
    return f"{section.description}.\n\n" + "\n".join(lines)
