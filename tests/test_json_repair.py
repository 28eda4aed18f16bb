from __future__ import annotations

from app.services.json_repair import extract_balanced, parse_array, parse_lenient, parse_object


def test_strict_json_is_not_marked_repaired():
    parsed = parse_lenient('{"content": "ok"}')
    assert parsed.value == {"content": "ok"}
    assert not parsed.repaired


def test_fenced_json_with_trailing_comma_is_repaired():
    raw = 'Here you go:\n```json\n{"content": "ok", "items": [1, 2,],}\n```'
    parsed = parse_object(raw)
    assert parsed.value == {"content": "ok", "items": [1, 2]}
    assert parsed.repaired


def test_single_quotes_are_repaired():
    parsed = parse_object("{'headline': 'Steel up'}")
    assert parsed.value == {"headline": "Steel up"}


def test_balanced_scan_ignores_braces_in_strings():
    assert extract_balanced('noise {"a": "}"} tail') == '{"a": "}"}'


def test_unrecoverable_text_returns_none():
    assert parse_lenient("no json here") is None
    assert parse_lenient("") is None


def test_parse_array_unwraps_known_keys():
    parsed = parse_array('{"agents": [{"query": "a"}]}', keys=("agents",))
    assert parsed.value == [{"query": "a"}]
    assert parse_array('{"other": []}', keys=("agents",)) is None
