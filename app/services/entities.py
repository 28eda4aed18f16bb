"""Entity dictionaries and phrase-boundary matching shared by the classifier and intake."""
from __future__ import annotations

import re
from functools import lru_cache

from app.catalog import store
from app.models.intents import ExtractedEntities

KNOWN_COMMODITIES: tuple[str, ...] = (
    "lithium carbonate", "lithium", "corrugated boxes", "corrugated", "stainless steel",
    "cold rolled steel", "hot rolled coil", "steel", "aluminum", "aluminium", "copper",
    "plastics", "rubber", "paper", "pulp", "resins", "silicones", "natural gas",
    "crude oil", "oil", "packaging", "flexible packaging", "ocean freight", "air freight",
    "freight", "zinc", "nickel", "cobalt", "rare earth", "polyethylene", "polypropylene",
    "pvc", "titanium", "tin", "lead", "palladium", "platinum", "gold", "silver",
    "iron ore", "coal", "lumber", "cotton", "gasoline", "diesel", "ethanol", "hdpe",
    "ldpe", "pet", "nylon", "abs", "electricity", "silicon metal", "graphite",
    "manganese", "wheat", "corn", "soybeans", "sugar", "cocoa", "coffee", "glass",
)

REGION_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("na", re.compile(r"\b(north\s+america|usa|united\s+states|canada|mexico|us\s+market)\b", re.I)),
    ("eu", re.compile(r"\b(europe|european|eu|uk|germany|france|belgium|western\s+europe)\b", re.I)),
    ("apac", re.compile(r"\b(asia|apac|china|japan|india|singapore|asia\s+pacific|vietnam|thailand)\b", re.I)),
    ("latam", re.compile(r"\b(latin\s+america|south\s+america|brazil|chile|latam)\b", re.I)),
    ("mea", re.compile(r"\b(middle\s+east|africa|mea|gulf|saudi|uae)\b", re.I)),
    ("global", re.compile(r"\b(global|worldwide|international)\b", re.I)),
)

TIMEFRAME_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b(this quarter|current quarter|q[1-4]\s*20\d{2})\b", re.I), "6m"),
    (re.compile(r"\b((?:last|past)\s+(?:6|six)\s+months)\b", re.I), "6m"),
    (re.compile(r"\b(this year|last year|past year|(?:last|past)\s+(?:12|twelve)\s+months|annual)\b", re.I), "12m"),
    (re.compile(r"\b((?:last|past)\s+(?:2|two)\s+years)\b", re.I), "2y"),
    (re.compile(r"\b((?:last|past)\s+(?:5|five)\s+years|long.?term)\b", re.I), "5y"),
    (re.compile(r"\b(recent|latest|current|now)\b", re.I), "12m"),
)

RISK_LEVEL_RE = re.compile(r"\b(high|medium-high|medium|low)[\s-]*risk\b", re.I)
ACTION_RE = re.compile(r"\b(find|create|export|download|compare|follow|unfollow|set.?up|mitigate|negotiate)\b", re.I)

_CORPORATE_SUFFIXES = {"inc", "inc.", "corp", "corp.", "corporation", "sa", "ltd", "ltd.", "gmbh", "ab", "fze", "llc", "plc"}


def normalize_phrase(phrase: str) -> str:
    lowered = re.sub(r"\([^)]*\)", "", phrase.lower())
    lowered = re.sub(r"[^a-z0-9\s-]", " ", lowered)
    return re.sub(r"\s+", " ", lowered).strip()


@lru_cache(maxsize=512)
def _phrase_regex(normalized: str) -> re.Pattern[str]:
    escaped = re.escape(normalized)
    spaced = re.sub(r"(\\\s|\\-|\s)+", r"[\\s-]+", escaped)
    return re.compile(rf"\b{spaced}\b", re.I)


def matches_phrase(text: str, phrase: str) -> bool:
    """Whole-phrase match tolerant of case, punctuation and hyphen/space variants."""
    normalized = normalize_phrase(phrase)
    if not normalized:
        return False
    return _phrase_regex(normalized).search(text) is not None


def title_case(phrase: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in phrase.split())


def supplier_aliases(name: str) -> list[str]:
    aliases = [name.lower()]
    tokens = name.lower().split()
    while tokens and tokens[-1] in _CORPORATE_SUFFIXES:
        tokens = tokens[:-1]
    short = " ".join(tokens)
    if short and short != aliases[0] and len(short) >= 4:
        aliases.append(short)
    return aliases


def extract_commodity(text: str) -> tuple[str | None, str | None]:
    """Return ``(commodity display name, category id or name)``.

    Managed category names are checked first since they are more specific
    than the generic commodity dictionary.
    """
    for cat in store.managed_categories():
        if matches_phrase(text, cat.name):
            return cat.name, cat.id

    for commodity in KNOWN_COMMODITIES:
        if not matches_phrase(text, commodity):
            continue
        display = title_case(commodity)
        for cat in store.managed_categories():
            cat_name = cat.name.lower()
            if commodity in cat_name or cat_name in commodity:
                return display, cat.id
        return display, display
    return None, None


def extract_regions(text: str) -> tuple[str, ...]:
    return tuple(code for code, pattern in REGION_PATTERNS if pattern.search(text))


def extract_timeframe(text: str) -> str | None:
    for pattern, bucket in TIMEFRAME_PATTERNS:
        if pattern.search(text):
            return bucket
    return None


def extract_suppliers(text: str) -> tuple[str, ...]:
    lowered = text.lower()
    found: list[str] = []
    for supplier in store.suppliers(followed_only=False):
        for alias in supplier_aliases(supplier.name):
            if alias in lowered and (alias == supplier.name.lower() or matches_phrase(text, alias)):
                found.append(supplier.name)
                break
    return tuple(found)


def extract_entities(text: str) -> ExtractedEntities:
    commodity, category = extract_commodity(text)
    suppliers = extract_suppliers(text)
    risk_match = RISK_LEVEL_RE.search(text)
    action_match = ACTION_RE.search(text)
    return ExtractedEntities(
        commodity=commodity,
        supplier_name=suppliers[0] if suppliers else None,
        supplier_names=suppliers,
        category=category,
        regions=extract_regions(text),
        timeframe=extract_timeframe(text),
        risk_level=risk_match.group(1).lower() if risk_match else None,
        action=action_match.group(1).lower().replace(" ", "") if action_match else None,
    )
