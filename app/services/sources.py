"""Source identity, deduplication, citation ids and confidence classification."""
from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import urlparse

from app.models.response import (
    ResponseSources,
    Source,
    SourceConfidence,
    SourceMix,
    SourceType,
)

SNIPPET_KEY_CHARS = 80

_INTERNAL_TYPE_ALIASES = {
    "beroe": SourceType.INTERNAL,
    "internal": SourceType.INTERNAL,
    "internal_data": SourceType.INTERNAL,
    "report": SourceType.INTERNAL,
    "analysis": SourceType.INTERNAL,
    "data": SourceType.INTERNAL,
    "dnd": SourceType.FINANCIAL_PARTNER,
    "dun_bradstreet": SourceType.FINANCIAL_PARTNER,
    "financial_partner": SourceType.FINANCIAL_PARTNER,
    "ecovadis": SourceType.SUSTAINABILITY_PARTNER,
    "sustainability_partner": SourceType.SUSTAINABILITY_PARTNER,
    "supplier_data": SourceType.SUPPLIER_DATA,
    "news": SourceType.NEWS,
    "web": SourceType.WEB,
}

CONFIDENCE_LABELS = {
    "high": "Decision Grade",
    "medium": "Partial Coverage",
    "low": "Limited Data",
    "web_only": "Web Research",
}


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_url(url: str) -> str:
    trimmed = (url or "").strip()
    if not trimmed or not is_valid_url(trimmed):
        return trimmed
    parsed = urlparse(trimmed)
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}{query}"


def extract_domain(url: str) -> str:
    if not url or not is_valid_url(url.strip()):
        return "source"
    return re.sub(r"^www\.", "", urlparse(url.strip()).netloc.lower())


def source_key(source: Source) -> str:
    """Identity key: normalized URL, else lowercased name plus the snippet head."""
    if source.url and source.url.strip():
        return f"url:{normalize_url(source.url)}"
    snippet = (source.snippet or "")[:SNIPPET_KEY_CHARS]
    return f"name:{source.name.strip().lower()}|{snippet.strip().lower()}"


def coerce_source_type(raw: str | None, *, default: SourceType = SourceType.WEB) -> SourceType:
    if not raw:
        return default
    return _INTERNAL_TYPE_ALIASES.get(str(raw).strip().lower(), default)


def source_from_dict(payload: dict, *, default_type: SourceType = SourceType.WEB) -> Source | None:
    name = str(payload.get("name") or payload.get("title") or "").strip()
    url = payload.get("url") or None
    if not name and url:
        name = extract_domain(url).capitalize()
    if not name:
        return None
    snippet = payload.get("snippet") or payload.get("summary") or payload.get("content")
    return Source(
        name=name,
        type=coerce_source_type(payload.get("type"), default=default_type),
        url=url,
        snippet=str(snippet)[:600] if snippet else None,
        domain=extract_domain(url) if url else None,
        report_id=payload.get("reportId"),
        category=payload.get("category"),
    )


class SourceDedupSet:
    """Job- or turn-scoped pool of sources unique under ``source_key``."""

    def __init__(self, sources: Iterable[Source] = ()):
        self._by_key: dict[str, Source] = {}
        for source in sources:
            self.add_if_unique(source)

    def add_if_unique(self, source: Source) -> bool:
        key = source_key(source)
        if key in self._by_key:
            return False
        self._by_key[key] = source
        return True

    def keys(self) -> set[str]:
        return set(self._by_key)

    def sources(self) -> list[Source]:
        return list(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, source: Source) -> bool:
        return source_key(source) in self._by_key


def dedupe(sources: Iterable[Source]) -> list[Source]:
    return SourceDedupSet(sources).sources()


def assign_citation_ids(sources: Iterable[Source]) -> list[Source]:
    """Give internal types ``B1..Bn`` and web types ``W1..Wn`` in arrival order."""
    internal_index = 0
    web_index = 0
    assigned: list[Source] = []
    for source in sources:
        if source.type.is_internal:
            internal_index += 1
            citation_id = f"B{internal_index}"
        else:
            web_index += 1
            citation_id = f"W{web_index}"
        assigned.append(source.model_copy(update={"citation_id": citation_id}))
    return assigned


def citation_map(sources: Iterable[Source], *, legacy_numeric: bool = True) -> dict[str, Source]:
    """Map citation ids to sources; numeric keys resolve by 1-based position, web first."""
    ordered = list(sources)
    mapping: dict[str, Source] = {s.citation_id: s for s in ordered if s.citation_id}
    if legacy_numeric:
        web = [s for s in ordered if not s.type.is_internal]
        internal = [s for s in ordered if s.type.is_internal]
        for position, source in enumerate([*web, *internal], start=1):
            mapping.setdefault(str(position), source)
    return mapping


def _matches_category(detected: str, managed: list[str]) -> bool:
    detected = detected.lower().strip()
    for name in managed:
        name = name.lower().strip()
        base = name.split("(")[0].strip()
        if detected == name or detected == base:
            return True
        if len(base) >= 3 and re.search(rf"\b{re.escape(base)}\b", detected):
            return True
    return False


def calculate_confidence(
    internal: list[Source],
    web: list[Source],
    *,
    category: str | None = None,
    managed_categories: list[str] | None = None,
) -> SourceConfidence:
    internal_count = sum(1 for s in internal if s.type is SourceType.INTERNAL)
    web_count = len(web)
    managed = bool(category) and _matches_category(category or "", managed_categories or [])

    if managed and internal_count >= 2:
        level, reason, expand = "high", "Comprehensive internal coverage for this category", False
    elif internal_count >= 3:
        level, reason, expand = "high", "Strong internal data coverage", False
    elif internal_count >= 1:
        level, reason, expand = "medium", "Partial internal data available", True
    elif web_count > 0:
        level, reason, expand, managed = "web_only", "Response based on web research", False, False
    else:
        level, reason, expand, managed = "low", "Limited source data available", True, False

    return SourceConfidence(
        level=level,
        label=CONFIDENCE_LABELS[level],
        reason=reason,
        is_managed_category=managed,
        category_name=category,
        internal_source_count=internal_count,
        web_source_count=web_count,
        show_expand_to_web=expand,
    )


def build_response_sources(
    sources: Iterable[Source],
    *,
    category: str | None = None,
    managed_categories: list[str] | None = None,
) -> ResponseSources:
    unique = dedupe(sources)
    internal = [s for s in unique if s.type.is_internal]
    web = [s for s in unique if not s.type.is_internal]
    return ResponseSources(
        internal=internal,
        web=web,
        citations=citation_map(unique),
        total_internal_count=len(internal),
        total_web_count=len(web),
        confidence=calculate_confidence(
            internal, web, category=category, managed_categories=managed_categories
        ),
    )


def source_mix(sources: ResponseSources) -> SourceMix:
    decision_grade = sum(1 for s in sources.internal if s.type is SourceType.INTERNAL)
    partner = sum(1 for s in sources.internal if s.type is not SourceType.INTERNAL)
    web = len(sources.web)
    return SourceMix(
        decision_grade=decision_grade,
        verified_partner=partner,
        web=web,
        total=decision_grade + partner + web,
    )
