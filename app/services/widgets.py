"""Widget types, their data schemas, and catalog-backed widget builders.

Builders are plain functions of ``(intent, reply widget)`` over the read-only
catalog; ``enrich`` dispatches on the intent category through a handler table.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import ConfigDict, Field, ValidationError

from app.catalog import store
from app.models.catalog import Commodity, PortfolioSummary, RiskChange, RiskLevel, RiskTrend, Supplier
from app.models.intents import Intent, IntentCategory
from app.models.response import CamelModel, Widget


class WidgetType(StrEnum):
    RISK_DISTRIBUTION = "risk_distribution"
    PORTFOLIO_SUMMARY = "portfolio_summary"
    METRIC_ROW = "metric_row"
    SUPPLIER_RISK_CARD = "supplier_risk_card"
    SUPPLIER_TABLE = "supplier_table"
    SUPPLIER_MINI = "supplier_mini"
    COMPARISON_TABLE = "comparison_table"
    TREND_CHART = "trend_chart"
    TREND_INDICATOR = "trend_indicator"
    ALERT_CARD = "alert_card"
    EVENT_TIMELINE = "event_timeline"
    PRICE_GAUGE = "price_gauge"
    MARKET_CARD = "market_card"
    BENCHMARK_CARD = "benchmark_card"
    NEWS_ITEM = "news_item"
    CATEGORY_BREAKDOWN = "category_breakdown"
    CATEGORY_BADGE = "category_badge"
    REGION_MAP = "region_map"
    REGION_LIST = "region_list"
    ACTION_CARD = "action_card"
    HANDOFF_CARD = "handoff_card"
    STATUS_BADGE = "status_badge"
    SCORE_BREAKDOWN = "score_breakdown"
    INFLATION_SUMMARY_CARD = "inflation_summary_card"
    PRICE_MOVEMENT_TABLE = "price_movement_table"
    COMMODITY_GAUGE = "commodity_gauge"
    TOP_MOVERS_LIST = "top_movers_list"
    DRIVER_BREAKDOWN_CARD = "driver_breakdown_card"
    FACTOR_CONTRIBUTION_CHART = "factor_contribution_chart"
    MARKET_CONTEXT_CARD = "market_context_card"
    SPEND_IMPACT_CARD = "spend_impact_card"
    EXPOSURE_HEATMAP = "exposure_heatmap"
    AFFECTED_SUPPLIERS_TABLE = "affected_suppliers_table"
    JUSTIFICATION_CARD = "justification_card"
    NEGOTIATION_AMMO_CARD = "negotiation_ammo_card"
    SCENARIO_CARD = "scenario_card"
    FORECAST_CHART = "forecast_chart"
    SENSITIVITY_TABLE = "sensitivity_table"
    EXECUTIVE_BRIEF_CARD = "executive_brief_card"
    TALKING_POINTS_CARD = "talking_points_card"
    NONE = "none"


# ---- data schemas ---------------------------------------------------------


class RiskDistributionData(CamelModel):
    total_suppliers: int = 0
    total_spend: int = 0
    total_spend_formatted: str = "$0"
    distribution: dict[str, int] = Field(
        default_factory=lambda: {"high": 0, "mediumHigh": 0, "medium": 0, "low": 0, "unrated": 0}
    )
    high_risk_count: int = 0


class PortfolioSummaryData(CamelModel):
    total_suppliers: int = 0
    total_spend: int = 0
    spend_formatted: str = "$0"
    avg_risk_score: float = 0
    risk_trend: str = "stable"
    high_risk_count: int = 0


class MetricRowData(CamelModel):
    metrics: list[dict[str, Any]] = Field(default_factory=list)


class SupplierRiskCardData(CamelModel):
    supplier_id: str = ""
    supplier_name: str = ""
    risk_score: int = 0
    risk_level: str = "unrated"
    trend: str = "stable"
    category: str = ""
    location: dict[str, str] = Field(default_factory=dict)
    spend: int = 0
    spend_formatted: str = "$0"
    last_updated: str = ""
    key_factors: list[dict[str, str]] = Field(default_factory=list)


class SupplierTableData(CamelModel):
    suppliers: list[dict[str, Any]] = Field(default_factory=list)
    total_count: int = 0
    filters: dict[str, str] = Field(default_factory=dict)
    sort_by: str = "riskScore"


class ComparisonTableData(CamelModel):
    suppliers: list[dict[str, Any]] = Field(default_factory=list)
    comparison_dimensions: list[str] = Field(default_factory=list)
    recommendation: str | None = None


class AlertCardData(CamelModel):
    alert_type: str = "new_event"
    severity: str = "info"
    title: str = ""
    affected_suppliers: list[dict[str, Any]] = Field(default_factory=list)
    timestamp: str = ""
    action_required: bool = False
    suggested_action: str | None = None


class TrendChartData(CamelModel):
    title: str = ""
    data_points: list[dict[str, Any]] = Field(default_factory=list)
    change_direction: str = "stable"
    change_summary: str = ""
    unit: str | None = None


class PriceGaugeData(CamelModel):
    commodity: str = ""
    current_price: float = 0
    unit: str = ""
    currency: str = "USD"
    change_percent: float = 0
    direction: str = "flat"
    gauge_position: int = 50
    market: str = ""
    tags: list[str] = Field(default_factory=list)


class MarketCardData(CamelModel):
    title: str = ""
    summary: str = ""
    source: str = ""
    source_url: str | None = None
    category: str = ""
    sentiment: str = "neutral"
    related_commodities: list[str] = Field(default_factory=list)


class HandoffCardData(CamelModel):
    destination: str = "Risk Dashboard"
    destination_url: str | None = None
    reason: str = ""
    supplier_ids: list[str] = Field(default_factory=list)


class ActionCardData(CamelModel):
    status: str = "info"
    title: str = ""
    description: str = ""
    next_steps: list[str] = Field(default_factory=list)


class InflationSummaryData(CamelModel):
    period: str = ""
    headline: str = ""
    overall_change: dict[str, Any] = Field(default_factory=dict)
    top_increases: list[dict[str, Any]] = Field(default_factory=list)
    top_decreases: list[dict[str, Any]] = Field(default_factory=list)
    portfolio_impact: dict[str, Any] = Field(default_factory=dict)
    key_drivers: list[str] = Field(default_factory=list)


class DriverBreakdownData(CamelModel):
    commodity: str = ""
    price_change: dict[str, Any] = Field(default_factory=dict)
    drivers: list[dict[str, Any]] = Field(default_factory=list)


class SpendImpactData(CamelModel):
    total_impact: str = "$0"
    total_impact_direction: str = "increase"
    impact_percent: float = 0
    timeframe: str = ""
    breakdown: list[dict[str, Any]] = Field(default_factory=list)
    most_affected: dict[str, Any] = Field(default_factory=dict)
    recommendation: str | None = None


class JustificationData(CamelModel):
    supplier_name: str = ""
    commodity: str = ""
    requested_increase: float = 0
    market_benchmark: float = 0
    verdict: str = "insufficient_data"
    verdict_label: str = ""
    key_points: list[dict[str, Any]] = Field(default_factory=list)
    recommendation: str | None = None


class ScenarioData(CamelModel):
    title: str = ""
    baseline: dict[str, Any] = Field(default_factory=dict)
    scenarios: list[dict[str, Any]] = Field(default_factory=list)
    mitigations: list[str] = Field(default_factory=list)


class FreeformData(CamelModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


WIDGET_SCHEMAS: dict[WidgetType, type[CamelModel]] = {
    WidgetType.RISK_DISTRIBUTION: RiskDistributionData,
    WidgetType.PORTFOLIO_SUMMARY: PortfolioSummaryData,
    WidgetType.METRIC_ROW: MetricRowData,
    WidgetType.SUPPLIER_RISK_CARD: SupplierRiskCardData,
    WidgetType.SUPPLIER_TABLE: SupplierTableData,
    WidgetType.AFFECTED_SUPPLIERS_TABLE: SupplierTableData,
    WidgetType.COMPARISON_TABLE: ComparisonTableData,
    WidgetType.ALERT_CARD: AlertCardData,
    WidgetType.TREND_CHART: TrendChartData,
    WidgetType.FORECAST_CHART: TrendChartData,
    WidgetType.PRICE_GAUGE: PriceGaugeData,
    WidgetType.COMMODITY_GAUGE: PriceGaugeData,
    WidgetType.MARKET_CARD: MarketCardData,
    WidgetType.MARKET_CONTEXT_CARD: MarketCardData,
    WidgetType.HANDOFF_CARD: HandoffCardData,
    WidgetType.ACTION_CARD: ActionCardData,
    WidgetType.INFLATION_SUMMARY_CARD: InflationSummaryData,
    WidgetType.DRIVER_BREAKDOWN_CARD: DriverBreakdownData,
    WidgetType.FACTOR_CONTRIBUTION_CHART: DriverBreakdownData,
    WidgetType.SPEND_IMPACT_CARD: SpendImpactData,
    WidgetType.JUSTIFICATION_CARD: JustificationData,
    WidgetType.NEGOTIATION_AMMO_CARD: JustificationData,
    WidgetType.SCENARIO_CARD: ScenarioData,
    WidgetType.SENSITIVITY_TABLE: ScenarioData,
}


def coerce_widget(raw: Widget | dict[str, Any] | None) -> Widget | None:
    """Validate a widget against its type's schema, filling typed defaults.

    Unknown types and ``none`` yield ``None``. Idempotent on its own output.
    """
    if raw is None:
        return None
    if isinstance(raw, Widget):
        raw_type, title, data = raw.type, raw.title, raw.data
    elif isinstance(raw, dict):
        raw_type, title, data = raw.get("type"), raw.get("title"), raw.get("data")
    else:
        return None
    try:
        widget_type = WidgetType(str(raw_type))
    except ValueError:
        return None
    if widget_type is WidgetType.NONE:
        return None
    schema = WIDGET_SCHEMAS.get(widget_type, FreeformData)
    try:
        model = schema.model_validate(data if isinstance(data, dict) else {})
    except ValidationError:
        model = schema()
    return Widget(
        type=widget_type.value,
        title=str(title) if title else None,
        data=model.model_dump(by_alias=True, mode="json"),
    )


# ---- builders -------------------------------------------------------------


def risk_distribution(summary: PortfolioSummary) -> Widget:
    data = RiskDistributionData(
        total_suppliers=summary.total_suppliers,
        total_spend=summary.total_spend,
        total_spend_formatted=summary.total_spend_formatted,
        distribution=dict(summary.distribution),
        high_risk_count=summary.high_risk_count,
    )
    return Widget(type=WidgetType.RISK_DISTRIBUTION.value, title="Portfolio Risk Distribution", data=data.dump())


def _table_row(supplier: Supplier) -> dict[str, Any]:
    return {
        "id": supplier.id,
        "name": supplier.name,
        "riskScore": supplier.score,
        "riskLevel": supplier.level.value,
        "trend": supplier.trend.value,
        "category": supplier.category,
        "country": supplier.country,
        "spend": supplier.spend_formatted,
    }


def supplier_table(suppliers: list[Supplier], filters: dict[str, str] | None = None) -> Widget:
    data = SupplierTableData(
        suppliers=[_table_row(s) for s in suppliers],
        total_count=len(suppliers),
        filters=filters or {},
    )
    title = f"{len(suppliers)} Supplier{'s' if len(suppliers) != 1 else ''}"
    return Widget(type=WidgetType.SUPPLIER_TABLE.value, title=title, data=data.dump())


def _key_factors(supplier: Supplier) -> list[dict[str, str]]:
    factors: list[dict[str, str]] = []
    if supplier.trend is RiskTrend.WORSENING:
        factors.append({"name": f"Score up {supplier.score - supplier.previous_score} points", "impact": "negative"})
    elif supplier.trend is RiskTrend.IMPROVING:
        factors.append({"name": f"Score down {supplier.previous_score - supplier.score} points", "impact": "positive"})
    if supplier.criticality == "high":
        factors.append({"name": "High business criticality", "impact": "negative"})
    return factors


def supplier_risk_card(supplier: Supplier) -> Widget:
    data = SupplierRiskCardData(
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        risk_score=supplier.score,
        risk_level=supplier.level.value,
        trend=supplier.trend.value,
        category=supplier.category,
        location={"country": supplier.country, "region": supplier.region_name},
        spend=supplier.spend,
        spend_formatted=supplier.spend_formatted,
        last_updated=supplier.last_updated,
        key_factors=_key_factors(supplier),
    )
    return Widget(type=WidgetType.SUPPLIER_RISK_CARD.value, title=supplier.name, data=data.dump())


def alert_card(changes: list[RiskChange]) -> Widget:
    worsened = [c for c in changes if c.direction == "worsened"]
    severity = "critical" if any(c.current_level is RiskLevel.HIGH for c in worsened) else "warning" if worsened else "info"
    data = AlertCardData(
        alert_type="risk_increase" if worsened else "risk_decrease",
        severity=severity,
        title=f"{len(changes)} suppliers changed risk level",
        affected_suppliers=[
            {
                "id": c.supplier_id,
                "name": c.supplier_name,
                "previousScore": c.previous_score,
                "currentScore": c.current_score,
                "change": c.direction,
            }
            for c in changes
        ],
        timestamp=changes[0].change_date if changes else "",
        action_required=bool(worsened),
        suggested_action="Review worsened suppliers and confirm mitigation owners" if worsened else None,
    )
    return Widget(type=WidgetType.ALERT_CARD.value, title="Recent Risk Changes", data=data.dump())


def _strengths_weaknesses(supplier: Supplier) -> tuple[list[str], list[str]]:
    strengths: list[str] = []
    weaknesses: list[str] = []
    if supplier.level in (RiskLevel.LOW, RiskLevel.MEDIUM):
        strengths.append(f"{supplier.level.value.title()} risk profile")
    elif supplier.level in (RiskLevel.HIGH, RiskLevel.MEDIUM_HIGH):
        weaknesses.append(f"{supplier.level.value.replace('-', ' ').title()} risk profile")
    else:
        weaknesses.append("No current risk rating")
    if supplier.trend is RiskTrend.IMPROVING:
        strengths.append("Risk trend improving")
    elif supplier.trend is RiskTrend.WORSENING:
        weaknesses.append("Risk trend worsening")
    else:
        strengths.append("Stable risk trend")
    return strengths, weaknesses


def comparison_table(suppliers: list[Supplier]) -> Widget:
    picked = suppliers[:3]
    rows = []
    for supplier in picked:
        strengths, weaknesses = _strengths_weaknesses(supplier)
        rows.append({**_table_row(supplier), "strengths": strengths, "weaknesses": weaknesses})
    rated = [s for s in picked if s.level is not RiskLevel.UNRATED]
    safest = min(rated, key=lambda s: s.score) if rated else None
    data = ComparisonTableData(
        suppliers=rows,
        comparison_dimensions=["riskScore", "trend", "spend", "category"],
        recommendation=f"{safest.name} carries the lowest risk score ({safest.score})." if safest else None,
    )
    return Widget(type=WidgetType.COMPARISON_TABLE.value, title="Supplier Comparison", data=data.dump())


def price_gauge(item: Commodity) -> Widget:
    position = max(0, min(100, int(50 + item.change_percent * 2)))
    data = PriceGaugeData(
        commodity=item.name,
        current_price=item.price,
        unit=item.unit,
        currency=item.currency,
        change_percent=item.change_percent,
        direction=item.direction,
        gauge_position=position,
        market=item.region.title(),
    )
    return Widget(type=WidgetType.PRICE_GAUGE.value, title=f"{item.name} Price", data=data.dump())


def inflation_summary_card() -> Widget:
    data = InflationSummaryData.model_validate(store.inflation_summary())
    return Widget(type=WidgetType.INFLATION_SUMMARY_CARD.value, title="Inflation Summary", data=data.dump())


def driver_breakdown(commodity_name: str | None) -> Widget:
    item = store.commodity(commodity_name or "") or store.commodity("steel")
    drivers = store.price_drivers(item.id)
    data = DriverBreakdownData(
        commodity=item.name,
        price_change={"percent": item.change_percent, "direction": item.direction},
        drivers=[
            {
                "name": d.name,
                "category": d.kind,
                "contribution": d.contribution,
                "direction": d.direction,
                "description": d.description,
            }
            for d in drivers
        ],
    )
    return Widget(type=WidgetType.DRIVER_BREAKDOWN_CARD.value, title=f"What's driving {item.name}", data=data.dump())


def spend_impact_card() -> Widget:
    data = SpendImpactData.model_validate(store.spend_impact())
    return Widget(type=WidgetType.SPEND_IMPACT_CARD.value, title="Spend Impact", data=data.dump())


def justification_card() -> Widget:
    data = JustificationData.model_validate(store.justification())
    return Widget(type=WidgetType.JUSTIFICATION_CARD.value, title="Price Increase Check", data=data.dump())


def scenario_card() -> Widget:
    data = ScenarioData.model_validate(store.scenarios())
    return Widget(type=WidgetType.SCENARIO_CARD.value, title=data.title, data=data.dump())


# ---- intent dispatch ------------------------------------------------------


@dataclass(slots=True)
class Enrichment:
    """Catalog context gathered for one turn."""

    widget: Widget | None = None
    result_count: int = 0
    suppliers: list[Supplier] = field(default_factory=list)
    summary: PortfolioSummary | None = None
    risk_changes: list[RiskChange] = field(default_factory=list)
    commodity: Commodity | None = None
    filters: dict[str, str] = field(default_factory=dict)


def supplier_filters(intent: Intent) -> tuple[store.SupplierFilters, dict[str, str]]:
    entities = intent.entities
    levels: tuple[RiskLevel, ...] = ()
    applied: dict[str, str] = {}
    if entities.risk_level:
        level = RiskLevel(entities.risk_level)
        # "high risk" also covers medium-high
        levels = (RiskLevel.HIGH, RiskLevel.MEDIUM_HIGH) if level is RiskLevel.HIGH else (level,)
        applied["riskLevel"] = entities.risk_level
    category = None
    if entities.category:
        managed = store.managed_category(entities.category)
        category = managed.name if managed else entities.category
        applied["category"] = category
    if entities.regions:
        applied["region"] = ",".join(entities.regions)
    return store.SupplierFilters(risk_levels=levels, regions=entities.regions, category=category), applied


def _portfolio(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    summary = store.portfolio_summary()
    return Enrichment(
        widget=reply_widget or risk_distribution(summary),
        result_count=summary.total_suppliers,
        suppliers=store.suppliers(),
        summary=summary,
    )


def _discovery(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    filters, applied = supplier_filters(intent)
    matched = store.filter_suppliers(filters)
    return Enrichment(
        widget=supplier_table(matched, applied),
        result_count=len(matched),
        suppliers=matched,
        filters=applied,
    )


def _deep_dive(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    name = intent.entities.supplier_name
    supplier = store.find_supplier(name) if name else None
    if supplier is None:
        return Enrichment(widget=reply_widget)
    return Enrichment(widget=supplier_risk_card(supplier), result_count=1, suppliers=[supplier])


def _trend(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    changes = store.risk_changes()
    suppliers = store.suppliers_by_names(c.supplier_name for c in changes)
    return Enrichment(
        widget=alert_card(changes),
        result_count=len(changes),
        suppliers=suppliers,
        risk_changes=changes,
    )


def _comparison(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    suppliers = store.suppliers_by_names(intent.entities.supplier_names)
    if len(suppliers) < 2:
        filters, _ = supplier_filters(intent)
        suppliers = store.filter_suppliers(filters)
    picked = suppliers[:3]
    return Enrichment(widget=comparison_table(picked), result_count=len(picked), suppliers=picked)


def _market(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    item = store.commodity(intent.entities.commodity or "")
    if item is None:
        return Enrichment(widget=reply_widget)
    return Enrichment(widget=price_gauge(item), result_count=1, commodity=item)


def _inflation_summary(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    return Enrichment(widget=inflation_summary_card(), result_count=len(store.commodities()))


def _inflation_drivers(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    item = store.commodity(intent.entities.commodity or "") or store.commodity("steel")
    return Enrichment(widget=driver_breakdown(item.name), result_count=1, commodity=item)


def _inflation_impact(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    return Enrichment(widget=spend_impact_card(), result_count=len(store.spend_impact()["breakdown"]))


def _inflation_justification(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    return Enrichment(widget=justification_card(), result_count=1)


def _inflation_scenarios(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    return Enrichment(widget=scenario_card(), result_count=len(store.scenarios()["scenarios"]))


def _restricted(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    return Enrichment()


def _passthrough(intent: Intent, reply_widget: Widget | None) -> Enrichment:
    return Enrichment(widget=reply_widget)


WIDGET_BUILDERS: dict[IntentCategory, Callable[[Intent, Widget | None], Enrichment]] = {
    IntentCategory.PORTFOLIO_OVERVIEW: _portfolio,
    IntentCategory.FILTERED_DISCOVERY: _discovery,
    IntentCategory.SUPPLIER_DEEP_DIVE: _deep_dive,
    IntentCategory.EXPLANATION_WHY: _deep_dive,
    IntentCategory.TREND_DETECTION: _trend,
    IntentCategory.COMPARISON: _comparison,
    IntentCategory.MARKET_CONTEXT: _market,
    IntentCategory.INFLATION_SUMMARY: _inflation_summary,
    IntentCategory.INFLATION_DRIVERS: _inflation_drivers,
    IntentCategory.INFLATION_IMPACT: _inflation_impact,
    IntentCategory.INFLATION_JUSTIFICATION: _inflation_justification,
    IntentCategory.INFLATION_SCENARIOS: _inflation_scenarios,
    IntentCategory.RESTRICTED_QUERY: _restricted,
}


def enrich(intent: Intent, reply_widget: Widget | dict[str, Any] | None = None) -> Enrichment:
    """Gather catalog context and the canonical widget for ``intent``."""
    handler = WIDGET_BUILDERS.get(intent.category, _passthrough)
    enrichment = handler(intent, coerce_widget(reply_widget))
    enrichment.widget = coerce_widget(enrichment.widget)
    return enrichment
