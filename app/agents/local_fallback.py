"""Catalog-only answers for every intent, used when no provider can serve the turn."""
from __future__ import annotations

from collections.abc import Callable
from typing import Any

from app.catalog import store
from app.models.catalog import REGION_NAMES, format_spend
from app.models.intents import Intent, IntentCategory
from app.models.provider import PathResult, ProviderReply
from app.services.sources import assign_citation_ids
from app.services.widgets import Enrichment, enrich
from app.tools.internal_intel import catalog_sources

C = IntentCategory
Answer = tuple[str, dict[str, Any] | None]


def _names(suppliers, limit: int = 3) -> str:
    names = [s.name for s in suppliers[:limit]]
    if len(names) <= 1:
        return "".join(names)
    return ", ".join(names[:-1]) + f" and {names[-1]}"


def _portfolio(intent: Intent, e: Enrichment) -> Answer:
    summary = e.summary or store.portfolio_summary()
    high = summary.high_risk_count
    worsened = [c for c in summary.recent_changes if c.direction == "worsened"]
    content = (
        f"You are following **{summary.total_suppliers} suppliers** with "
        f"**{summary.total_spend_formatted}** in annual spend. "
        f"{high} of them are rated high or medium-high risk"
    )
    content += f", and {len(worsened)} worsened recently." if worsened else "."
    return content, {
        "headline": f"{high} of {summary.total_suppliers} suppliers need attention",
        "summary": f"{summary.distribution.get('unrated', 0)} suppliers are still unrated.",
        "sentiment": "negative" if worsened else "neutral",
    }


def _discovery(intent: Intent, e: Enrichment) -> Answer:
    filters = ", ".join(f"{k}: {v}" for k, v in e.filters.items()) or "no filters"
    if not e.suppliers:
        return f"No followed suppliers match ({filters}).", None
    spend = sum(s.spend for s in e.suppliers)
    content = (
        f"Found **{e.result_count} suppliers** matching {filters}, covering {format_spend(spend)} in spend. "
        f"Top matches: {_names(e.suppliers)}."
    )
    return content, {"headline": f"{e.result_count} suppliers match", "sentiment": "neutral"}


def _deep_dive(intent: Intent, e: Enrichment) -> Answer:
    if not e.suppliers:
        name = intent.entities.supplier_name or "that supplier"
        return f"I couldn't find {name} among your followed suppliers.", None
    s = e.suppliers[0]
    delta = s.score - s.previous_score
    content = (
        f"**{s.name}** ({s.category}, {s.region_name}) has a risk score of **{s.score}** "
        f"({s.level.value}), {delta:+d} since the last review. The trend is {s.trend.value}. "
        f"Annual spend is {s.spend_formatted}."
    )
    sentiment = "negative" if s.trend.value == "worsening" else "positive" if s.trend.value == "improving" else "neutral"
    return content, {"headline": f"{s.name} is {s.level.value} risk", "sentiment": sentiment}


def _trend(intent: Intent, e: Enrichment) -> Answer:
    if not e.risk_changes:
        return "No supplier risk scores changed recently.", None
    worsened = [c for c in e.risk_changes if c.direction == "worsened"]
    lines = [
        f"- **{c.supplier_name}**: {c.previous_score} → {c.current_score} ({c.current_level.value})"
        for c in e.risk_changes[:5]
    ]
    content = f"{len(e.risk_changes)} suppliers changed risk level recently:\n\n" + "\n".join(lines)
    return content, {
        "headline": f"{len(worsened)} suppliers worsened",
        "sentiment": "negative" if worsened else "positive",
    }


def _comparison(intent: Intent, e: Enrichment) -> Answer:
    if len(e.suppliers) < 2:
        return "Name at least two suppliers to compare.", None
    ranked = sorted(e.suppliers, key=lambda s: s.score)
    lines = [f"- **{s.name}**: score {s.score} ({s.level.value}, {s.trend.value})" for s in ranked]
    content = f"Comparing {_names(e.suppliers)}:\n\n" + "\n".join(lines)
    return content, {"headline": f"{ranked[0].name} carries the lowest risk", "sentiment": "neutral"}


def _market(intent: Intent, e: Enrichment) -> Answer:
    item = e.commodity
    if item is None:
        return "I don't have internal price data for that market yet.", None
    drivers = store.price_drivers(item.id)
    content = (
        f"**{item.name}** trades at {item.price:g} {item.currency}/{item.unit} in {REGION_NAMES.get(item.region, item.region)}, "
        f"{item.change_percent:+g}% month over month."
    )
    if drivers:
        content += " Main drivers: " + ", ".join(d.name for d in drivers[:3]) + "."
    sentiment = "negative" if item.change_percent > 0 else "positive" if item.change_percent < 0 else "neutral"
    return content, {"headline": f"{item.name} {item.direction} {abs(item.change_percent):g}%", "sentiment": sentiment}


def _inflation_summary(intent: Intent, e: Enrichment) -> Answer:
    summary = store.inflation_summary()
    increases = ", ".join(f"{i['commodity']} +{i['change']}%" for i in summary["topIncreases"])
    impact = summary["portfolioImpact"]
    content = (
        f"**{summary['period']}**: {summary['headline']}. Largest increases: {increases}. "
        f"Estimated portfolio impact is {impact['amount']} ({impact['percent']}% {impact['direction']})."
    )
    return content, {"headline": summary["headline"], "sentiment": "negative"}


def _inflation_drivers(intent: Intent, e: Enrichment) -> Answer:
    item = e.commodity
    drivers = store.price_drivers(item.id) if item else []
    if not drivers:
        return "No driver breakdown is available for that commodity.", None
    lines = [f"- **{d.name}** ({d.kind}, {d.contribution}%): {d.description}" for d in drivers]
    content = f"What is moving **{item.name}** prices:\n\n" + "\n".join(lines)
    return content, {"headline": f"{drivers[0].name} leads {item.name} pricing", "sentiment": "neutral"}


def _inflation_impact(intent: Intent, e: Enrichment) -> Answer:
    impact = store.spend_impact()
    most = impact["mostAffected"]
    content = (
        f"Inflation adds **{impact['totalImpact']}** ({impact['impactPercent']}%) to spend {impact['timeframe']}. "
        f"Most affected: {most['name']} at {most['impact']}. {impact['recommendation']}"
    )
    return content, {"headline": f"{impact['totalImpact']} spend impact", "sentiment": "negative"}


def _inflation_justification(intent: Intent, e: Enrichment) -> Answer:
    j = store.justification()
    content = (
        f"{j['supplierName']} requested **+{j['requestedIncrease']:g}%** on {j['commodity']} against a market "
        f"benchmark of {j['marketBenchmark']:g}%. Verdict: **{j['verdictLabel']}**. {j['recommendation']}"
    )
    return content, {"headline": j["verdictLabel"], "sentiment": "neutral"}


def _inflation_scenarios(intent: Intent, e: Enrichment) -> Answer:
    s = store.scenarios()
    lines = [
        f"- **{row['name']}** ({row['priceChange']:+d}%): {format_spend(row['spendDelta'])} added spend"
        for row in s["scenarios"]
    ]
    content = (
        f"**{s['title']}** on a baseline of {format_spend(s['baseline']['spend'])}:\n\n"
        + "\n".join(lines)
        + "\n\nMitigations: "
        + ", ".join(s["mitigations"])
        + "."
    )
    return content, {"headline": s["title"], "sentiment": "negative"}


def _restricted(intent: Intent, e: Enrichment) -> Answer:
    return "Detailed factor scores are available in the risk dashboard.", None


def _general(intent: Intent, e: Enrichment) -> Answer:
    summary = store.portfolio_summary()
    content = (
        f"I can help with your {summary.total_suppliers} followed suppliers: risk overviews, supplier "
        "deep dives, comparisons, market prices and inflation impact."
    )
    return content, None


HANDLERS: dict[IntentCategory, Callable[[Intent, Enrichment], Answer]] = {
    C.PORTFOLIO_OVERVIEW: _portfolio,
    C.FILTERED_DISCOVERY: _discovery,
    C.SUPPLIER_DEEP_DIVE: _deep_dive,
    C.EXPLANATION_WHY: _deep_dive,
    C.TREND_DETECTION: _trend,
    C.COMPARISON: _comparison,
    C.MARKET_CONTEXT: _market,
    C.INFLATION_SUMMARY: _inflation_summary,
    C.INFLATION_DRIVERS: _inflation_drivers,
    C.INFLATION_IMPACT: _inflation_impact,
    C.INFLATION_JUSTIFICATION: _inflation_justification,
    C.INFLATION_SCENARIOS: _inflation_scenarios,
    C.RESTRICTED_QUERY: _restricted,
}


def respond(message: str, intent: Intent) -> PathResult:
    """Answer ``intent`` from the local data catalog. Never raises for a known intent."""
    enrichment = enrich(intent)
    content, insight = HANDLERS.get(intent.category, _general)(intent, enrichment)
    reply = ProviderReply(
        content=content,
        insight=insight,
        sources=assign_citation_ids(catalog_sources(intent)),
    )
    return PathResult(reply=reply, enrichment=enrichment, provider="local")
