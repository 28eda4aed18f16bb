from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from app.models.response import ResponseSources, Source

if TYPE_CHECKING:
    from app.services.widgets import Enrichment


@dataclass(slots=True)
class ProviderReply:
    """Structured reply from any provider before canonical normalization.

    ``insight`` may be a bare string or a mapping; ``widget`` and ``artifact``
    are raw mappings as returned by the model.
    """

    content: str = ""
    acknowledgement: str | None = None
    widget: dict[str, Any] | None = None
    insight: str | dict[str, Any] | None = None
    suggestions: list[str] = field(default_factory=list)
    sources: list[Source] = field(default_factory=list)
    artifact: dict[str, Any] | None = None
    reasoning: str | None = None
    repaired: bool = False


@dataclass(slots=True)
class PathResult:
    """What a route hands to the response builder."""

    reply: ProviderReply
    enrichment: Enrichment
    provider: str
    sources: ResponseSources | None = None
