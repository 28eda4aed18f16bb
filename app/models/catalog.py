from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class RiskLevel(StrEnum):
    HIGH = "high"
    MEDIUM_HIGH = "medium-high"
    MEDIUM = "medium"
    LOW = "low"
    UNRATED = "unrated"


class RiskTrend(StrEnum):
    IMPROVING = "improving"
    WORSENING = "worsening"
    STABLE = "stable"


REGION_NAMES: dict[str, str] = {
    "na": "North America",
    "eu": "Europe",
    "apac": "Asia Pacific",
    "latam": "Latin America",
    "mea": "Middle East & Africa",
    "global": "Global",
}


@dataclass(slots=True)
class Supplier:
    id: str
    name: str
    category: str
    industry: str
    country: str
    region: str  # short code, see REGION_NAMES
    spend: int
    criticality: str
    score: int
    previous_score: int
    level: RiskLevel
    trend: RiskTrend
    last_updated: str
    followed: bool = True

    @property
    def region_name(self) -> str:
        return REGION_NAMES.get(self.region, self.region)

    @property
    def spend_formatted(self) -> str:
        return format_spend(self.spend)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "industry": self.industry,
            "country": self.country,
            "region": self.region_name,
            "spend": self.spend,
            "spendFormatted": self.spend_formatted,
            "criticality": self.criticality,
            "riskScore": self.score,
            "previousScore": self.previous_score,
            "riskLevel": self.level.value,
            "trend": self.trend.value,
            "lastUpdated": self.last_updated,
        }


@dataclass(slots=True)
class RiskChange:
    supplier_id: str
    supplier_name: str
    previous_score: int
    previous_level: RiskLevel
    current_score: int
    current_level: RiskLevel
    change_date: str
    direction: str  # worsened | improved

    def to_dict(self) -> dict[str, Any]:
        return {
            "supplierId": self.supplier_id,
            "supplierName": self.supplier_name,
            "previousScore": self.previous_score,
            "previousLevel": self.previous_level.value,
            "currentScore": self.current_score,
            "currentLevel": self.current_level.value,
            "changeDate": self.change_date,
            "direction": self.direction,
        }


@dataclass(slots=True)
class Commodity:
    id: str
    name: str
    group: str
    region: str
    price: float
    unit: str
    currency: str
    change_percent: float

    @property
    def direction(self) -> str:
        if self.change_percent > 0:
            return "up"
        if self.change_percent < 0:
            return "down"
        return "flat"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.group,
            "region": self.region,
            "currentPrice": self.price,
            "unit": self.unit,
            "currency": self.currency,
            "priceChange": {"percent": self.change_percent, "direction": self.direction},
        }


@dataclass(slots=True)
class ManagedCategory:
    id: str
    name: str
    domain: str
    keywords: tuple[str, ...] = ()
    popular: bool = False
    lead_analyst: str = ""


@dataclass(slots=True)
class PriceDriver:
    name: str
    kind: str  # supply | demand | logistics | regulatory
    contribution: int
    direction: str
    description: str


@dataclass(slots=True)
class PortfolioSummary:
    total_suppliers: int
    total_spend: int
    distribution: dict[str, int]
    recent_changes: list[RiskChange] = field(default_factory=list)

    @property
    def total_spend_formatted(self) -> str:
        return format_spend(self.total_spend)

    @property
    def high_risk_count(self) -> int:
        return self.distribution.get("high", 0) + self.distribution.get("mediumHigh", 0)


def format_spend(amount: float) -> str:
    if amount >= 1_000_000_000:
        return f"${amount / 1_000_000_000:.1f}B"
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.1f}M"
    if amount >= 1_000:
        return f"${amount / 1_000:.0f}K"
    return f"${amount:.0f}"
