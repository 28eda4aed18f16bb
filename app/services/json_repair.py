"""Lenient JSON parsing for near-JSON model output."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_FENCE_RE = re.compile(r"```[A-Za-z]*\s*")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


@dataclass(slots=True)
class LenientParse:
    value: Any
    repaired: bool = False


def strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).replace("```", "").strip()


def extract_balanced(text: str) -> str | None:
    """Return the first balanced JSON object or array in ``text``."""
    obj_start = text.find("{")
    arr_start = text.find("[")
    starts = [i for i in (obj_start, arr_start) if i >= 0]
    if not starts:
        return None
    start = min(starts)
    open_char = text[start]
    close_char = "}" if open_char == "{" else "]"

    depth = 0
    in_string = False
    escape = False
    for idx in range(start, len(text)):
        char = text[idx]
        if escape:
            escape = False
            continue
        if char == "\\":
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    # Unterminated: hand back the tail and let the repair passes try.
    return text[start:]


def parse_lenient(raw_text: str) -> LenientParse | None:
    """Parse model output, repairing fences, trailing commas and single quotes.

    Returns ``None`` when nothing parseable can be recovered. ``repaired`` is
    True whenever the strict parse of the raw text failed.
    """
    if not isinstance(raw_text, str) or not raw_text.strip():
        return None

    try:
        return LenientParse(value=json.loads(raw_text))
    except json.JSONDecodeError:
        pass

    cleaned = strip_fences(raw_text)
    candidate = extract_balanced(cleaned)
    if candidate is None:
        return None

    attempts = [
        candidate,
        _TRAILING_COMMA_RE.sub(r"\1", candidate),
    ]
    attempts.append(attempts[-1].replace("'", '"'))

    for attempt in attempts:
        try:
            return LenientParse(value=json.loads(attempt), repaired=True)
        except json.JSONDecodeError:
            continue
    return None


def parse_object(raw_text: str) -> LenientParse | None:
    parsed = parse_lenient(raw_text)
    if parsed is None or not isinstance(parsed.value, dict):
        return None
    return parsed


def parse_array(raw_text: str, *, keys: tuple[str, ...] = ("items",)) -> LenientParse | None:
    """Parse a JSON array, also accepting an object that wraps one under ``keys``."""
    parsed = parse_lenient(raw_text)
    if parsed is None:
        return None
    if isinstance(parsed.value, list):
        return parsed
    if isinstance(parsed.value, dict):
        for key in keys:
            inner = parsed.value.get(key)
            if isinstance(inner, list):
                return LenientParse(value=inner, repaired=parsed.repaired)
    return None
