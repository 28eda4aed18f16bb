"""Prompt catalog for the orchestration core, read from ``app/prompts/prompts.json``.

Keys are dotted paths (``"section.system"``). Values are ``string.Template``
texts; a list value is joined into one multi-line prompt.
"""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"

# (path, mtime_ns) -> parsed catalog; edits on disk invalidate it
_cached: tuple[Path, int, dict[str, Any]] | None = None


def _catalog() -> dict[str, Any]:
    global _cached
    path = PROMPTS_PATH
    mtime_ns = path.stat().st_mtime_ns
    if _cached is not None and _cached[:2] == (path, mtime_ns):
        return _cached[2]
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Prompt catalog {path.name} must be a JSON object.")
    _cached = (path, mtime_ns, payload)
    return payload


def get_prompt(key: str) -> str | None:
    """Prompt text at ``key``, or ``None`` when the key is missing or not a prompt."""
    node: Any = _catalog()
    for part in key.split("."):
        node = node.get(part) if isinstance(node, dict) else None
    if isinstance(node, list) and all(isinstance(line, str) for line in node):
        return "\n".join(node)
    return node if isinstance(node, str) else None


def has_prompt(key: str) -> bool:
    return get_prompt(key) is not None


def render_prompt(key: str, **values: Any) -> str:
    """Render a catalog prompt; every ``$placeholder`` must be supplied."""
    text = get_prompt(key)
    if text is None:
        raise KeyError(f"Prompt key not found: {key}")
    try:
        return Template(text).substitute(**values)
    except KeyError as exc:
        raise KeyError(f"Missing template value '{exc.args[0]}' for prompt '{key}'") from exc


def render_route_template(template: str, **values: Any) -> str:
    """Render a caller-supplied prompt template, leaving unknown placeholders as-is."""
    return Template(template).safe_substitute(**values)


def clear_prompt_cache() -> None:
    global _cached
    _cached = None
