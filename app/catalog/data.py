"""Static procurement datasets backing the local catalog."""
from __future__ import annotations

from app.models.catalog import (
    Commodity,
    ManagedCategory,
    PriceDriver,
    RiskChange,
    RiskLevel,
    RiskTrend,
    Supplier,
)

H, MH, M, L, U = (
    RiskLevel.HIGH,
    RiskLevel.MEDIUM_HIGH,
    RiskLevel.MEDIUM,
    RiskLevel.LOW,
    RiskLevel.UNRATED,
)
UP, DOWN, FLAT = RiskTrend.WORSENING, RiskTrend.IMPROVING, RiskTrend.STABLE

SUPPLIERS: list[Supplier] = [
    Supplier("sup_001", "Apple Inc.", "Silicon Metal", "Technology", "USA", "na", 10_000_000, "high", 85, 72, H, UP, "2024-05-03"),
    Supplier("sup_002", "Flash Cleaning", "Cleaning Services", "Services", "Belgium", "eu", 2_100_000, "medium", 68, 65, MH, FLAT, "2023-07-23"),
    Supplier("sup_003", "Queen Cleaners", "Cleaning Services", "Services", "USA", "na", 900_000, "medium", 41, 58, M, DOWN, "2024-05-05"),
    Supplier("sup_004", "Coca Cola Corp", "Packaging", "Beverages", "USA", "na", 8_400_000, "high", 32, 30, L, FLAT, "2024-04-18"),
    Supplier("sup_005", "Acme Corporation", "Steel", "Manufacturing", "USA", "na", 6_500_000, "high", 74, 61, H, UP, "2024-04-29"),
    Supplier("sup_006", "Global Pack Solutions", "Corrugated Boxes", "Packaging", "Germany", "eu", 3_200_000, "medium", 55, 57, M, FLAT, "2024-03-30"),
    Supplier("sup_007", "AsiaFlex Packaging", "Flexible Packaging", "Packaging", "China", "apac", 4_100_000, "high", 71, 63, MH, UP, "2024-04-11"),
    Supplier("sup_008", "EcoPack Industries", "Corrugated Boxes", "Packaging", "Canada", "na", 1_700_000, "low", 24, 29, L, DOWN, "2024-02-20"),
    Supplier("sup_009", "Nordic Chemicals AB", "Resins", "Chemicals", "Sweden", "eu", 2_900_000, "medium", 47, 47, M, FLAT, "2024-03-08"),
    Supplier("sup_010", "MexiSteel SA", "Steel", "Manufacturing", "Mexico", "latam", 5_300_000, "high", 78, 66, H, UP, "2024-05-01"),
    Supplier("sup_011", "Deutsche Logistics GmbH", "Contract Logistics", "Logistics", "Germany", "eu", 3_800_000, "medium", 38, 44, L, DOWN, "2024-04-02"),
    Supplier("sup_012", "India Pharma Ltd", "Active Ingredients", "Pharmaceuticals", "India", "apac", 2_400_000, "high", 66, 60, MH, UP, "2024-04-21"),
    Supplier("sup_013", "BrazilAgro SA", "Agricultural Inputs", "Agriculture", "Brazil", "latam", 1_200_000, "low", 52, 52, M, FLAT, "2024-01-15"),
    Supplier("sup_014", "UK Components Ltd", "Aluminum", "Manufacturing", "United Kingdom", "eu", 2_600_000, "medium", 0, 0, U, FLAT, "2024-03-12"),
    Supplier("sup_015", "Gulf Petrochem FZE", "Resins", "Chemicals", "UAE", "mea", 3_500_000, "high", 62, 70, MH, DOWN, "2024-04-26"),
]

RISK_CHANGES: list[RiskChange] = [
    RiskChange("sup_001", "Apple Inc.", 72, MH, 85, H, "2024-05-03", "worsened"),
    RiskChange("sup_003", "Queen Cleaners", 58, M, 41, M, "2024-05-05", "improved"),
    RiskChange("sup_005", "Acme Corporation", 61, MH, 74, H, "2024-04-29", "worsened"),
    RiskChange("sup_010", "MexiSteel SA", 66, MH, 78, H, "2024-05-01", "worsened"),
    RiskChange("sup_015", "Gulf Petrochem FZE", 70, H, 62, MH, "2024-04-26", "improved"),
]

COMMODITIES: list[Commodity] = [
    Commodity("steel", "Steel", "metals", "global", 680, "mt", "USD", 8.5),
    Commodity("aluminum", "Aluminum", "metals", "global", 2380, "mt", "USD", 6.2),
    Commodity("copper", "Copper", "metals", "global", 8245, "mt", "USD", 4.1),
    Commodity("cold-rolled-steel", "Cold Rolled Steel", "metals", "global", 920, "mt", "USD", 12.0),
    Commodity("nickel", "Nickel", "metals", "global", 16850, "mt", "USD", -7.4),
    Commodity("cobalt", "Cobalt", "metals", "global", 27500, "mt", "USD", -3.1),
    Commodity("corrugated-boxes", "Corrugated Boxes", "packaging", "europe", 850, "mt", "EUR", 5.8),
    Commodity("plastics", "Plastics", "packaging", "global", 1450, "mt", "USD", -2.3),
    Commodity("paper-pulp", "Paper & Pulp", "packaging", "europe", 720, "mt", "EUR", 3.2),
    Commodity("flexible-packaging", "Flexible Packaging", "packaging", "global", 2100, "mt", "USD", 2.1),
    Commodity("resins", "Resins", "chemicals", "global", 1680, "mt", "USD", -1.5),
    Commodity("rubber", "Rubber", "chemicals", "asia", 1850, "mt", "USD", -1.8),
    Commodity("silicones", "Silicones", "chemicals", "global", 3200, "mt", "USD", 1.2),
    Commodity("lithium-carbonate", "Lithium Carbonate", "chemicals", "global", 126005, "mt", "CNY", 56.0),
    Commodity("rare-earth-elements", "Rare Earth Elements", "chemicals", "asia", 50000, "mt", "CNY", 14.0),
    Commodity("natural-gas", "Natural Gas", "energy", "europe", 32.5, "MMBtu", "EUR", 15.3),
    Commodity("electricity", "Electricity", "energy", "europe", 85, "MWh", "EUR", 8.7),
    Commodity("ocean-freight", "Ocean Freight", "logistics", "global", 2850, "TEU", "USD", -5.2),
    Commodity("air-freight", "Air Freight", "logistics", "global", 4.25, "kg", "USD", 2.8),
]

MANAGED_CATEGORIES: list[ManagedCategory] = [
    ManagedCategory("cat_steel", "Steel", "Metals", ("carbon steel", "stainless", "hot rolled", "cold rolled"), True, "Sarah Chen"),
    ManagedCategory("cat_aluminum", "Aluminum", "Metals", ("aluminium", "extrusions", "sheet"), True, "James Park"),
    ManagedCategory("cat_copper", "Copper", "Metals", ("cathode", "wire rod"), True, "James Park"),
    ManagedCategory("cat_lithium", "Lithium Carbonate", "Chemicals", ("lithium", "battery materials"), True, "Thomas Schmidt"),
    ManagedCategory("cat_corrugated", "Corrugated Boxes", "Packaging", ("corrugated", "cartons", "boxes"), True, "Emily Watson"),
    ManagedCategory("cat_flexpack", "Flexible Packaging", "Packaging", ("films", "pouches"), False, "Emily Watson"),
    ManagedCategory("cat_contract_logistics", "Contract Logistics", "Logistics", ("3pl", "warehousing"), False, "Robert Chang"),
    ManagedCategory("cat_ocean_freight", "Ocean Freight", "Logistics", ("container", "shipping"), True, "Robert Chang"),
    ManagedCategory("cat_it_staffing", "IT Staffing", "IT Services", ("contractors", "staff augmentation"), False, "Lisa Chen"),
    ManagedCategory("cat_cloud", "Cloud Services", "IT Services", ("iaas", "saas", "hosting"), True, "Lisa Chen"),
    ManagedCategory("cat_resins", "Resins", "Chemicals", ("polyethylene", "polypropylene", "pvc"), False, "Patricia Morgan"),
    ManagedCategory("cat_natural_gas", "Natural Gas", "Energy", ("lng", "gas"), False, "Michael Torres"),
    ManagedCategory("cat_facilities", "Facilities Management", "Facilities", ("cleaning", "maintenance"), False, "Emma Williams"),
]

INFLATION_SUMMARY: dict = {
    "period": "January 2026",
    "headline": "Steel and aluminum prices surge amid supply constraints and EV demand",
    "overallChange": {"absolute": 125_000_000, "percent": 4.2, "direction": "up"},
    "topIncreases": [
        {"commodity": "Steel", "change": 8.5, "impact": "$2.5M impact"},
        {"commodity": "Aluminum", "change": 6.2, "impact": "$1.8M impact"},
        {"commodity": "Copper", "change": 4.1, "impact": "$950K impact"},
    ],
    "topDecreases": [
        {"commodity": "Plastics", "change": -2.3, "benefit": "$500K savings"},
        {"commodity": "Rubber", "change": -1.8, "benefit": "$320K savings"},
    ],
    "portfolioImpact": {"amount": "$5.2M", "percent": 4.2, "direction": "increase"},
    "keyDrivers": ["China production cuts", "EV demand surge", "Energy costs"],
}

PRICE_DRIVERS: dict[str, list[PriceDriver]] = {
    "steel": [
        PriceDriver("China production cuts", "supply", 45, "up", "Reduced output by 12% due to environmental policies"),
        PriceDriver("EV manufacturing demand", "demand", 30, "up", "Battery and chassis steel demand up 25% YoY"),
        PriceDriver("Energy costs", "supply", 15, "up", "Natural gas prices remain elevated"),
        PriceDriver("Shipping disruptions", "logistics", 10, "down", "Red Sea disruptions easing"),
    ],
    "corrugated-boxes": [
        PriceDriver("Pulp prices surge", "supply", 40, "up", "European pulp mills facing energy cost increases"),
        PriceDriver("E-commerce packaging demand", "demand", 30, "up", "Online retail growth driving 15% higher box consumption"),
        PriceDriver("Recycled content regulations", "regulatory", 20, "up", "EU mandates pushing up recycled fiber costs"),
        PriceDriver("Energy costs in mills", "supply", 10, "up", "Natural gas prices affecting production costs"),
    ],
    "aluminum": [
        PriceDriver("China smelter curtailments", "supply", 35, "up", "Power rationing reducing output by 8%"),
        PriceDriver("EV and renewable demand", "demand", 30, "up", "Lightweighting trends accelerating adoption"),
        PriceDriver("Bauxite supply constraints", "supply", 20, "up", "Guinea export restrictions limiting raw material"),
        PriceDriver("Energy transition investments", "demand", 15, "up", "Solar and grid infrastructure projects"),
    ],
    "lithium-carbonate": [
        PriceDriver("Battery cell demand", "demand", 50, "up", "EV battery production capacity expanding in Europe and China"),
        PriceDriver("Mine restarts delayed", "supply", 30, "up", "Australian and Chilean expansions pushed back"),
        PriceDriver("Inventory restocking", "demand", 20, "up", "Cathode makers rebuilding depleted stocks"),
    ],
}

SPEND_IMPACT: dict = {
    "totalImpact": "$5.2M",
    "totalImpactDirection": "increase",
    "impactPercent": 4.2,
    "timeframe": "vs. last quarter",
    "breakdown": [
        {"category": "Raw Materials", "amount": "+$2.8M", "percent": 6.2, "direction": "up"},
        {"category": "Components", "amount": "+$1.5M", "percent": 4.7, "direction": "up"},
        {"category": "Packaging", "amount": "+$650K", "percent": 3.6, "direction": "up"},
        {"category": "Logistics", "amount": "+$250K", "percent": 2.1, "direction": "up"},
    ],
    "mostAffected": {"type": "category", "name": "Raw Materials", "impact": "+$2.8M (6.2%)"},
    "recommendation": "Negotiate volume discounts or qualify alternative suppliers for raw materials.",
}

JUSTIFICATION: dict = {
    "supplierName": "Acme Corporation",
    "commodity": "Steel",
    "requestedIncrease": 12.0,
    "marketBenchmark": 8.5,
    "verdict": "partially_justified",
    "verdictLabel": "Partially justified",
    "keyPoints": [
        {"point": "Steel index rose 8.5% over the period", "supports": True},
        {"point": "Energy surcharge overlaps with index movement", "supports": False},
        {"point": "Labor cost increase is in line with regional wage growth", "supports": True},
    ],
    "recommendation": "Counter at 8-9% tied to the published steel index with a quarterly review clause.",
}

SCENARIOS: dict = {
    "title": "Steel +10% price shock",
    "baseline": {"spend": 11_800_000, "label": "Current annual steel spend"},
    "scenarios": [
        {"name": "Mild", "priceChange": 5, "spendDelta": 590_000},
        {"name": "Expected", "priceChange": 10, "spendDelta": 1_180_000},
        {"name": "Severe", "priceChange": 20, "spendDelta": 2_360_000},
    ],
    "mitigations": ["Index-linked contracts", "Forward buying for Q3", "Dual-source from MexiSteel SA"],
}
