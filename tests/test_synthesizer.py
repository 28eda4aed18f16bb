from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from app.agents import synthesizer
from app.models.intents import Intent, IntentCategory
from app.models.response import Source, SourceConfidence, SourceType
from app.services.report_templates import SectionTemplate
from app.services.sources import assign_citation_ids
from app.tools import reasoning

SECTION = SectionTemplate("market_overview", "Market Overview", 3, "Market size and direction")


def pooled() -> list[Source]:
    return assign_citation_ids(
        [
            Source(name="Copper Index", type=SourceType.INTERNAL, snippet="Copper spend up 6%"),
            Source(name="Mining Weekly", url="https://mining.example.com/a", snippet="Chilean output fell 3%"),
            Source(name="Metals Daily", url="https://metals.example.com/b", snippet="Smelter fees hit record lows"),
        ]
    )


class TestClaimConfidence:
    @pytest.mark.parametrize(
        ("content", "level"),
        [
            ("Up [B1] and confirmed [W2].", "high"),
            ("Up [B1].", "medium"),
            ("Up [W2].", "web_only"),
            ("No markers.", "low"),
        ],
    )
    def test_levels(self, content, level):
        assert synthesizer.claim_confidence(content) == level

    def test_only_downgrades(self):
        high = SourceConfidence(level="high", label="High Confidence")
        lowered = synthesizer.apply_claim_confidence(high, "web_only")
        assert lowered.level == "web_only"
        assert high.level == "high"

        medium = SourceConfidence(level="medium")
        assert synthesizer.apply_claim_confidence(medium, "high") is medium
        assert synthesizer.apply_claim_confidence(None, "low") is None


class TestFallbacks:
    def test_fallback_hybrid_cites_both_sides(self):
        result = synthesizer.fallback_hybrid("Copper spend is rising. Watch Chile.", pooled())
        assert result.content.startswith("Copper spend is rising. Watch Chile. [B1]")
        assert "[W1]" in result.content and "[W2]" in result.content
        assert result.headline == "Copper spend is rising."
        assert result.confidence == "high"

    def test_fallback_section_without_sources(self):
        assert synthesizer.fallback_section(SECTION, []) == "No sourced findings were available for market overview."

    def test_fallback_section_rotates_sources(self):
        content = synthesizer.fallback_section(SECTION, pooled(), offset=1, limit=2)
        lines = [line for line in content.splitlines() if line.startswith("- ")]
        assert lines[0].endswith("[W1]")
        assert len(lines) == 3

    def test_chart_specs_from_markdown_tables(self):
        content = "Intro\n\n| Region | Share |\n| --- | --- |\n| Chile | 27% |\n"
        assert synthesizer.chart_specs("market_overview", content) == [
            {"id": "market_overview_table_1", "type": "table", "columns": ["Region", "Share"]}
        ]
        assert synthesizer.chart_specs("x", "no tables here") == []


class TestModelCalls:
    @pytest.mark.asyncio
    async def test_hybrid_strips_unknown_markers(self):
        payload = {"content": "Spend is up [B1] as output falls [W1] [W8].", "headline": "Copper tightening", "sentiment": "bullish"}
        reply = SimpleNamespace(content=json.dumps(payload), reasoning="")
        with patch.object(reasoning, "reason", AsyncMock(return_value=reply)):
            result = await synthesizer.synthesize_hybrid(
                "copper outlook", Intent(category=IntentCategory.MARKET_CONTEXT), internal_findings="Spend up", sources=pooled()
            )
        assert result.content == "Spend is up [B1] as output falls [W1]."
        assert result.sentiment == "neutral"
        assert result.confidence == "high"

    @pytest.mark.asyncio
    async def test_hybrid_unparseable_reply_uses_fallback(self):
        reply = SimpleNamespace(content="I cannot answer that", reasoning="")
        with patch.object(reasoning, "reason", AsyncMock(return_value=reply)):
            result = await synthesizer.synthesize_hybrid(
                "copper outlook", Intent(category=IntentCategory.MARKET_CONTEXT), internal_findings="Spend up.", sources=pooled()
            )
        assert result.content.startswith("Spend up. [B1]")

    @pytest.mark.asyncio
    async def test_section_rewrites_positional_markers(self):
        reply = SimpleNamespace(content="```markdown\nOutput fell [2] while spend rose [1].\n```", reasoning="")
        mock = AsyncMock(return_value=reply)
        with patch.object(reasoning, "reason", mock):
            content = await synthesizer.synthesize_section(
                SECTION,
                study_name="Market Analysis Report",
                study_context="Topic: copper",
                answers={"region": ["eu", "na"]},
                sources=pooled(),
                internal_findings="",
                web_findings="",
                emphasize=True,
            )
        assert content == "Output fell [W1] while spend rose [B1]."
        messages = mock.await_args.args[0]
        assert messages[0]["role"] == "system"
        assert "region: eu, na" in messages[1]["content"]
