"""Read-only access to the local procurement catalog."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from app.catalog import data
from app.models.catalog import (
    REGION_NAMES,
    Commodity,
    ManagedCategory,
    PortfolioSummary,
    PriceDriver,
    RiskChange,
    RiskLevel,
    Supplier,
)

_LEVEL_KEYS = {
    RiskLevel.HIGH: "high",
    RiskLevel.MEDIUM_HIGH: "mediumHigh",
    RiskLevel.MEDIUM: "medium",
    RiskLevel.LOW: "low",
    RiskLevel.UNRATED: "unrated",
}


@dataclass(slots=True)
class SupplierFilters:
    risk_levels: tuple[RiskLevel, ...] = ()
    regions: tuple[str, ...] = ()
    category: str | None = None
    min_spend: int | None = None
    max_spend: int | None = None
    search: str | None = None


def suppliers(*, followed_only: bool = True) -> list[Supplier]:
    return [s for s in data.SUPPLIERS if s.followed or not followed_only]


def portfolio_summary() -> PortfolioSummary:
    followed = suppliers()
    distribution = {key: 0 for key in _LEVEL_KEYS.values()}
    for supplier in followed:
        distribution[_LEVEL_KEYS[supplier.level]] += 1
    return PortfolioSummary(
        total_suppliers=len(followed),
        total_spend=sum(s.spend for s in followed),
        distribution=distribution,
        recent_changes=list(data.RISK_CHANGES),
    )


def risk_changes(*, direction: str | None = None) -> list[RiskChange]:
    changes = sorted(data.RISK_CHANGES, key=lambda c: c.change_date, reverse=True)
    if direction:
        changes = [c for c in changes if c.direction == direction]
    return changes


def filter_suppliers(filters: SupplierFilters) -> list[Supplier]:
    matched: list[Supplier] = []
    category = (filters.category or "").lower().strip()
    search = (filters.search or "").lower().strip()
    for supplier in suppliers():
        if filters.risk_levels and supplier.level not in filters.risk_levels:
            continue
        if filters.regions and "global" not in filters.regions and supplier.region not in filters.regions:
            continue
        if category and category not in supplier.category.lower() and supplier.category.lower() not in category:
            continue
        if filters.min_spend is not None and supplier.spend < filters.min_spend:
            continue
        if filters.max_spend is not None and supplier.spend > filters.max_spend:
            continue
        if search:
            haystack = f"{supplier.name} {supplier.category} {supplier.country}".lower()
            if search not in haystack:
                continue
        matched.append(supplier)
    return sorted(matched, key=lambda s: s.score, reverse=True)


def find_supplier(name: str) -> Supplier | None:
    """Case-insensitive substring match in either direction."""
    needle = name.lower().strip()
    if not needle:
        return None
    for supplier in data.SUPPLIERS:
        if supplier.name.lower() == needle:
            return supplier
    for supplier in data.SUPPLIERS:
        hay = supplier.name.lower()
        if needle in hay or hay in needle:
            return supplier
    # first word of the name, e.g. "mexisteel" for "MexiSteel SA"
    for supplier in data.SUPPLIERS:
        base = supplier.name.lower().split()[0].rstrip(".,")
        if len(base) > 3 and base in needle:
            return supplier
    return None


def suppliers_by_names(names: Iterable[str]) -> list[Supplier]:
    found: list[Supplier] = []
    for name in names:
        supplier = find_supplier(name)
        if supplier is not None and supplier not in found:
            found.append(supplier)
    return found


def commodity(id_or_name: str) -> Commodity | None:
    lowered = id_or_name.lower().strip()
    if not lowered:
        return None
    for item in data.COMMODITIES:
        if item.id == lowered or item.name.lower() == lowered:
            return item
    for item in data.COMMODITIES:
        name = item.name.lower()
        if name in lowered or lowered in name:
            return item
    return None


def commodities() -> list[Commodity]:
    return list(data.COMMODITIES)


def price_drivers(commodity_id: str) -> list[PriceDriver]:
    return list(data.PRICE_DRIVERS.get(commodity_id, data.PRICE_DRIVERS["steel"]))


def managed_categories() -> list[ManagedCategory]:
    return list(data.MANAGED_CATEGORIES)


def managed_category(id_or_name: str) -> ManagedCategory | None:
    lowered = id_or_name.lower().strip()
    for cat in data.MANAGED_CATEGORIES:
        if cat.id == lowered or cat.name.lower() == lowered:
            return cat
    return None


def inflation_summary() -> dict:
    return dict(data.INFLATION_SUMMARY)


def spend_impact() -> dict:
    return dict(data.SPEND_IMPACT)


def justification() -> dict:
    return dict(data.JUSTIFICATION)


def scenarios() -> dict:
    return dict(data.SCENARIOS)


def portfolio_snapshot() -> dict:
    """Categories, suppliers and regions used to seed deep-research intake."""
    return {
        "categories": [c.name for c in data.MANAGED_CATEGORIES[:20]],
        "suppliers": [
            {"name": s.name, "region": s.region_name} for s in data.SUPPLIERS[:20]
        ],
        "regions": sorted({REGION_NAMES[s.region] for s in data.SUPPLIERS}),
    }
