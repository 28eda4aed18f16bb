"""Citation marker parsing, resolution and report-level citation bookkeeping."""
from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from app.models.response import Source

CITATION_RE = re.compile(r"\[([BW]?\d+)\]")


def extract_citation_ids(content: str) -> list[str]:
    """Unique citation ids in order of first appearance."""
    seen: dict[str, None] = {}
    for match in CITATION_RE.finditer(content or ""):
        seen.setdefault(match.group(1), None)
    return list(seen)


def resolve_legacy_markers(content: str, ordered_sources: list[Source]) -> str:
    """Rewrite bare ``[n]`` markers to the id of the n-th source (1-based)."""

    def repl(match: re.Match[str]) -> str:
        token = match.group(1)
        if not token.isdigit():
            return match.group(0)
        position = int(token)
        if 1 <= position <= len(ordered_sources) and ordered_sources[position - 1].citation_id:
            return f"[{ordered_sources[position - 1].citation_id}]"
        return match.group(0)

    return CITATION_RE.sub(repl, content or "")


def strip_unresolved(content: str, valid_ids: Iterable[str]) -> str:
    """Drop markers whose id does not resolve."""
    valid = set(valid_ids)

    def repl(match: re.Match[str]) -> str:
        return match.group(0) if match.group(1) in valid else ""

    cleaned = CITATION_RE.sub(repl, content or "")
    return re.sub(r"[ \t]+([.,;:])", r"\1", cleaned)


def citation_sort_key(citation_id: str) -> tuple[int, int]:
    prefix = citation_id[:1]
    digits = citation_id[1:] if prefix in ("B", "W") else citation_id
    group = {"B": 0, "W": 1}.get(prefix, 2)
    return group, int(digits) if digits.isdigit() else 0


def sort_references(citation_ids: Iterable[str]) -> list[str]:
    """All ``B#`` before all ``W#``, numeric order within each group."""
    return sorted(set(citation_ids), key=citation_sort_key)


def needs_regeneration(section_id: str, min_citations: int, found: int) -> bool:
    if section_id == "executive_summary" and found == 0:
        return True
    return min_citations > 0 and found < min_citations * 0.5


def is_dense(citation_ids: Iterable[str]) -> bool:
    """True when each of the B and W partitions numbers 1..n without gaps."""
    groups: dict[str, set[int]] = {"B": set(), "W": set()}
    for citation_id in citation_ids:
        prefix = citation_id[:1]
        if prefix not in groups or not citation_id[1:].isdigit():
            return False
        groups[prefix].add(int(citation_id[1:]))
    return all(nums == set(range(1, len(nums) + 1)) for nums in groups.values())


def unresolved_ids(content: str, citations: Mapping[str, object]) -> list[str]:
    return [cid for cid in extract_citation_ids(content) if cid not in citations]
