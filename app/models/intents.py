from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any


class IntentCategory(StrEnum):
    PORTFOLIO_OVERVIEW = "portfolio_overview"
    FILTERED_DISCOVERY = "filtered_discovery"
    SUPPLIER_DEEP_DIVE = "supplier_deep_dive"
    TREND_DETECTION = "trend_detection"
    COMPARISON = "comparison"
    MARKET_CONTEXT = "market_context"
    INFLATION_SUMMARY = "inflation_summary"
    INFLATION_DRIVERS = "inflation_drivers"
    INFLATION_IMPACT = "inflation_impact"
    INFLATION_JUSTIFICATION = "inflation_justification"
    INFLATION_SCENARIOS = "inflation_scenarios"
    EXPLANATION_WHY = "explanation_why"
    ACTION_TRIGGER = "action_trigger"
    SETUP_CONFIG = "setup_config"
    REPORTING_EXPORT = "reporting_export"
    RESTRICTED_QUERY = "restricted_query"
    GENERAL = "general"

    @property
    def is_inflation(self) -> bool:
        return self.value.startswith("inflation_")


@dataclass(slots=True, frozen=True)
class ExtractedEntities:
    commodity: str | None = None
    supplier_name: str | None = None
    supplier_names: tuple[str, ...] = ()
    category: str | None = None  # managed category id when one matched
    regions: tuple[str, ...] = ()
    timeframe: str | None = None
    risk_level: str | None = None
    action: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.commodity:
            data["commodity"] = self.commodity
        if self.supplier_name:
            data["supplierName"] = self.supplier_name
        if self.supplier_names:
            data["supplierNames"] = list(self.supplier_names)
        if self.category:
            data["category"] = self.category
        if self.regions:
            data["region"] = list(self.regions)
        if self.timeframe:
            data["timeframe"] = self.timeframe
        if self.risk_level:
            data["riskLevel"] = self.risk_level
        if self.action:
            data["action"] = self.action
        return data


@dataclass(slots=True, frozen=True)
class Intent:
    category: IntentCategory
    sub_intent: str = "none"
    confidence: float = 0.5
    entities: ExtractedEntities = field(default_factory=ExtractedEntities)
    requires_research: bool = False
    requires_discovery: bool = False
    requires_handoff: bool = False
    handoff_reason: str | None = None

    def with_overrides(self, **changes: Any) -> "Intent":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "subIntent": self.sub_intent,
            "confidence": self.confidence,
            "extractedEntities": self.entities.to_dict(),
            "requiresResearch": self.requires_research,
            "requiresDiscovery": self.requires_discovery,
            "requiresHandoff": self.requires_handoff,
            "handoffReason": self.handoff_reason,
        }


@dataclass(slots=True, frozen=True)
class RouteOverride:
    """Caller-supplied deterministic route ("builder meta")."""

    path: str
    intent: IntentCategory
    sub_intent: str = "none"
    widgets: tuple[str, ...] = ()
    requires_research: bool | None = None
    prompt_template: str | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "RouteOverride":
        raw_intent = str(payload.get("intent") or "general")
        try:
            intent = IntentCategory(raw_intent)
        except ValueError:
            intent = IntentCategory.GENERAL
        return cls(
            path=str(payload.get("path") or ""),
            intent=intent,
            sub_intent=str(payload.get("subIntent") or "none"),
            widgets=tuple(str(w) for w in payload.get("widgets") or ()),
            requires_research=payload.get("requiresResearch"),
            prompt_template=payload.get("promptTemplate"),
        )
