from __future__ import annotations

import pytest

from app.services.prompt_store import get_prompt, has_prompt, render_prompt, render_route_template


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt(
        "research.system",
        query="lithium price outlook",
        results="[1] Example result",
    )
    assert "lithium price outlook" in prompt
    assert "[1] Example result" in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_raises_for_missing_value():
    with pytest.raises(KeyError, match="query"):
        render_prompt("research.system", results="none")


def test_section_prompts_exist_for_report_synthesis():
    assert has_prompt("section.system")
    assert has_prompt("section.user")
    assert not has_prompt("section")


def test_route_template_leaves_unknown_placeholders():
    rendered = render_route_template("Focus on $commodity for $audience", commodity="steel")
    assert rendered == "Focus on steel for $audience"


def test_catalog_reloads_from_configured_path(tmp_path, monkeypatch):
    from app.services import prompt_store

    catalog = tmp_path / "prompts.json"
    catalog.write_text('{"greeting": {"system": "Hello $name"}}', encoding="utf-8")
    monkeypatch.setattr(prompt_store, "PROMPTS_PATH", catalog)
    prompt_store.clear_prompt_cache()
    try:
        assert render_prompt("greeting.system", name="buyer") == "Hello buyer"
        assert not has_prompt("research.system")
    finally:
        prompt_store.clear_prompt_cache()


def test_list_prompts_are_joined_and_branches_are_not_prompts(tmp_path, monkeypatch):
    from app.services import prompt_store

    catalog = tmp_path / "prompts.json"
    catalog.write_text('{"brief": {"system": ["Line one", "Topic: $topic"], "limits": {"max": 3}}}', encoding="utf-8")
    monkeypatch.setattr(prompt_store, "PROMPTS_PATH", catalog)
    prompt_store.clear_prompt_cache()
    try:
        assert get_prompt("brief.system") == "Line one\nTopic: $topic"
        assert render_prompt("brief.system", topic="nickel") == "Line one\nTopic: nickel"
        assert get_prompt("brief.limits") is None
        assert get_prompt("brief.system.extra") is None
    finally:
        prompt_store.clear_prompt_cache()
