"""Report blueprints per study type: ordered sections with citation minimums."""
from __future__ import annotations

from dataclasses import dataclass, field

from app.models.deep_research import StudyType


@dataclass(frozen=True, slots=True)
class SectionTemplate:
    id: str
    title: str
    min_citations: int
    description: str
    prompt_hints: tuple[str, ...] = ()
    children: tuple["SectionTemplate", ...] = ()
    is_reference: bool = False


@dataclass(frozen=True, slots=True)
class ReportTemplate:
    id: str
    name: str
    description: str
    sections: tuple[SectionTemplate, ...] = field(default_factory=tuple)
    min_total_citations: int = 0


def _exec_summary(description: str, *hints: str) -> SectionTemplate:
    return SectionTemplate("executive_summary", "Executive Summary", 2, description, hints)


MARKET_ANALYSIS = ReportTemplate(
    id="market_analysis",
    name="Market Analysis Report",
    description="Market dynamics, supplier landscape and strategic recommendations",
    min_total_citations=15,
    sections=(
        _exec_summary(
            "High-level overview of key findings, market conditions, and recommendations",
            "Start with market size and growth trajectory",
            "Highlight key supply-demand dynamics",
            "Include 3-5 actionable recommendations for procurement leaders",
            "Keep to 2-3 paragraphs",
        ),
        SectionTemplate(
            "introduction", "Introduction", 1, "Context setting and report scope",
            ("Explain why the category matters", "Define regions and timeframe in scope"),
        ),
        SectionTemplate(
            "market_overview", "Market Overview and Outlook", 4,
            "Market size, trends, supply-demand balance, costs and forecasts",
            (
                "Quantify market size and growth rates",
                "Cover supply and demand drivers",
                "Include price history and forecast ranges",
                "Use a table where numbers are compared",
            ),
        ),
        SectionTemplate(
            "supplier_landscape", "Supplier Landscape and Risk Profiles", 3,
            "Major suppliers, their capabilities, financial health and risk profiles",
            ("Name the leading suppliers and their share", "Note concentration and single points of failure"),
        ),
        SectionTemplate(
            "contracting_strategies", "Contracting and Pricing Strategies", 2,
            "Contracting models, optimal strategies and risk allocation",
            ("Compare fixed, indexed and spot pricing", "Recommend contract terms that share risk"),
        ),
        SectionTemplate(
            "emerging_risks", "Emerging Risks and Mitigation Strategies", 3,
            "Regulatory, environmental and economic risks with mitigations",
            ("Rank risks by likelihood and impact", "Pair every risk with a mitigation"),
        ),
        SectionTemplate(
            "recommendations", "Strategic Recommendations", 1,
            "Actionable recommendations for procurement teams",
            ("Prioritize by impact and effort", "Give owners and timelines"),
        ),
        SectionTemplate(
            "conclusion", "Conclusion", 0, "Summary and call to action",
            ("Restate the most important finding", "Close with next steps"),
        ),
    ),
)

SOURCING_STUDY = ReportTemplate(
    id="sourcing_study",
    name="Sourcing Study",
    description="Supplier evaluation, cost analysis and sourcing recommendations",
    min_total_citations=12,
    sections=(
        _exec_summary(
            "Overview of the sourcing landscape and key recommendations",
            "Summarize the recommended strategy",
            "State expected savings or risk reduction",
        ),
        SectionTemplate(
            "introduction", "Introduction and Scope", 1,
            "Define the sourcing need and study parameters",
            ("Describe the requirement and volumes", "List evaluation criteria"),
        ),
        SectionTemplate(
            "market_landscape", "Market Landscape", 3,
            "Supply market structure, pricing and trends",
            ("Describe market structure and capacity", "Cover price trends"),
        ),
        SectionTemplate(
            "supplier_analysis", "Supplier Analysis", 3,
            "Evaluation and comparison of potential suppliers",
            ("Compare shortlisted suppliers side by side", "Note capability and capacity gaps"),
        ),
        SectionTemplate(
            "risk_assessment", "Risk Assessment", 2,
            "Sourcing risks and mitigation strategies",
            ("Cover supply continuity and geographic risk",),
        ),
        SectionTemplate(
            "sourcing_strategy", "Recommended Sourcing Strategy", 1,
            "Sourcing recommendations and implementation roadmap",
            ("Recommend single, dual or multi-sourcing", "Outline an implementation roadmap"),
        ),
        SectionTemplate("conclusion", "Conclusion", 0, "Summary and next steps"),
    ),
)

RISK_ASSESSMENT = ReportTemplate(
    id="risk_assessment",
    name="Risk Assessment Report",
    description="Supply chain, supplier and market risk analysis",
    min_total_citations=10,
    sections=(
        _exec_summary(
            "Overview of key risks and mitigation priorities",
            "Lead with the highest-severity risks",
        ),
        SectionTemplate(
            "introduction", "Introduction", 1, "Scope and methodology of the risk assessment",
        ),
        SectionTemplate(
            "risk_landscape", "Risk Landscape Overview", 2,
            "Risk environment across supply chain, supplier and market dimensions",
            ("Summarize the current risk environment",),
        ),
        SectionTemplate(
            "detailed_risk_analysis", "Detailed Risk Analysis", 3,
            "In-depth analysis of key risk categories",
            ("Cover financial, operational, geopolitical and ESG risk", "Quantify exposure where possible"),
        ),
        SectionTemplate(
            "risk_matrix", "Risk Matrix and Prioritization", 0,
            "Risk ranking and prioritization framework",
            ("Present a likelihood by impact table",),
        ),
        SectionTemplate(
            "mitigation_strategies", "Mitigation Strategies", 2,
            "Recommended risk mitigation actions",
            ("Give one concrete action per priority risk",),
        ),
        SectionTemplate(
            "conclusion", "Conclusion and Monitoring Plan", 0,
            "Summary and ongoing monitoring recommendations",
            ("List the indicators to monitor",),
        ),
    ),
)

SUPPLIER_ASSESSMENT = ReportTemplate(
    id="supplier_assessment",
    name="Supplier Assessment",
    description="In-depth analysis of a specific supplier or group of suppliers",
    min_total_citations=8,
    sections=(
        _exec_summary(
            "Overview of assessment findings and the recommendation",
            "State the overall rating up front",
        ),
        SectionTemplate(
            "introduction", "Introduction", 1, "Assessment scope, criteria and methodology",
        ),
        SectionTemplate(
            "company_overview", "Company Overview", 2,
            "Background including history, scope and footprint",
            ("Cover ownership, footprint and key customers",),
        ),
        SectionTemplate(
            "capabilities_capacity", "Capabilities and Capacity", 2,
            "Technical capabilities, capacity and certifications",
            ("Production capacity", "Quality certifications", "Track record and references"),
        ),
        SectionTemplate(
            "financial_analysis", "Financial Analysis", 1,
            "Financial health including revenue, profitability and stability",
            ("Revenue and profitability trends", "Credit ratings if available"),
        ),
        SectionTemplate(
            "risk_profile", "Risk Profile", 1,
            "Supplier-specific operational, financial and compliance risks",
            ("Operational risks", "Compliance and regulatory risks"),
        ),
        SectionTemplate(
            "recommendation", "Assessment Conclusion and Recommendation", 0,
            "Final assessment rating and recommendation",
            ("Make a clear approve, conditional or reject call", "Note conditions or caveats"),
        ),
    ),
)

COST_MODEL = ReportTemplate(
    id="cost_model",
    name="Cost Model Analysis",
    description="Cost breakdown and modeling for procurement planning",
    min_total_citations=10,
    sections=(
        _exec_summary(
            "Cost structure, key drivers and optimization opportunities",
            "Summarize total cost of ownership",
            "Note cost reduction opportunities",
        ),
        SectionTemplate(
            "introduction", "Introduction and Scope", 1,
            "Cost model scope, assumptions and methodology",
            ("Specify key assumptions",),
        ),
        SectionTemplate(
            "cost_structure", "Cost Structure Analysis", 3,
            "Breakdown of direct and indirect cost components",
            ("Break down materials, labor and energy", "Show percentage breakdown in a table"),
        ),
        SectionTemplate(
            "cost_drivers", "Key Cost Drivers", 2,
            "Primary factors driving costs and their volatility",
            ("Rank drivers and quantify their impact",),
        ),
        SectionTemplate(
            "benchmarking", "Cost Benchmarking", 2,
            "Comparison to market benchmarks and competitors",
            ("Compare to industry benchmarks", "Include a should-cost view"),
        ),
        SectionTemplate(
            "projections_optimization", "Cost Projections and Optimization", 1,
            "Forward-looking cost forecasts and optimization recommendations",
            ("Project costs over 2-3 years with base, optimistic and pessimistic cases",),
        ),
        SectionTemplate(
            "conclusion", "Conclusion", 0,
            "Should-cost summary and negotiation leverage points",
        ),
    ),
)

REPORT_TEMPLATES: dict[StudyType, ReportTemplate] = {
    StudyType.MARKET_ANALYSIS: MARKET_ANALYSIS,
    StudyType.SOURCING_STUDY: SOURCING_STUDY,
    StudyType.RISK_ASSESSMENT: RISK_ASSESSMENT,
    StudyType.SUPPLIER_ASSESSMENT: SUPPLIER_ASSESSMENT,
    StudyType.COST_MODEL: COST_MODEL,
    StudyType.CUSTOM: MARKET_ANALYSIS,
}


def get_template(study_type: StudyType | str) -> ReportTemplate:
    return REPORT_TEMPLATES.get(StudyType.parse(str(study_type)), MARKET_ANALYSIS)


def flatten_sections(template: ReportTemplate) -> list[SectionTemplate]:
    flat: list[SectionTemplate] = []

    def walk(sections: tuple[SectionTemplate, ...]) -> None:
        for section in sections:
            flat.append(section)
            walk(section.children)

    walk(template.sections)
    return flat


def table_of_contents(template: ReportTemplate) -> list[dict[str, object]]:
    toc: list[dict[str, object]] = []

    def walk(sections: tuple[SectionTemplate, ...], level: int) -> None:
        for section in sections:
            toc.append({"id": section.id, "title": section.title, "level": level})
            walk(section.children, level + 1)

    walk(template.sections, 0)
    return toc
