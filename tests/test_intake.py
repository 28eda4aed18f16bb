from __future__ import annotations

import pytest

from app.agents import intake
from app.agents.deep_research import build_job, start_intake
from app.models.deep_research import IntakeOption, IntakeQuestion, StudyType


class TestResolveQuery:
    def test_meta_query_walks_back_to_substantive_turn(self):
        history = [
            {"role": "user", "content": "What is happening with copper prices in Chile?"},
            {"role": "assistant", "content": "Copper rose 4% last month."},
            {"role": "user", "content": "ok"},
        ]
        assert intake.resolve_query("do deep research on this", history) == (
            "What is happening with copper prices in Chile?"
        )

    def test_meta_query_without_history_keeps_raw_text(self):
        assert intake.resolve_query("research this", []) == "research this"

    def test_topic_tail_is_extracted(self):
        assert intake.resolve_query("Please research the aluminum supply chain in Asia") == (
            "aluminum supply chain in Asia"
        )

    def test_assistant_turns_are_ignored(self):
        history = [{"role": "assistant", "content": "Here is a long assistant answer about steel."}]
        assert intake.resolve_query("go deeper", history) == "go deeper"

    @pytest.mark.parametrize("text", ["analyze this", "go deeper", "tell me more about that", "run deep research"])
    def test_meta_detection(self, text):
        assert intake.is_meta_query(text)

    def test_substantive_text_is_not_meta(self):
        assert not intake.is_meta_query("lithium carbonate prices in Europe")


class TestGenerateIntake:
    @pytest.mark.asyncio
    async def test_fully_specified_query_can_skip(self):
        result = await intake.generate_intake(
            "research lithium market in Europe last 12 months",
            StudyType.MARKET_ANALYSIS,
            use_llm=False,
        )
        assert result.can_skip
        assert "query" in result.skip_reason
        assert not any(q.required for q in result.questions)
        assert result.prefilled_answers["region"] == ["eu"]
        assert result.prefilled_answers["timeframe"] == "12m"
        assert "category" in result.prefilled_answers
        assert len(result.questions) <= intake.MAX_OPTIONAL_QUESTIONS
        assert not result.llm_enhanced

    @pytest.mark.asyncio
    async def test_missing_slots_produce_required_questions(self):
        result = await intake.generate_intake("steel", StudyType.MARKET_ANALYSIS, use_llm=False)
        required = {q.id for q in result.questions if q.required}
        assert {"region", "timeframe"} <= required
        assert "category" not in required
        assert not result.can_skip

    @pytest.mark.asyncio
    async def test_history_prefill_is_medium_confidence(self):
        history = [{"role": "user", "content": "We buy most of our copper in Europe"}]
        result = await intake.generate_intake("copper outlook", StudyType.MARKET_ANALYSIS, history, use_llm=False)
        region = next(q for q in result.questions if q.id == "region")
        assert region.prefilled_from == "chat history"
        assert region.prefill_confidence == "medium"
        assert region.default_value == ["eu"]

    @pytest.mark.asyncio
    async def test_estimates_follow_study_type(self):
        result = await intake.generate_intake("steel", StudyType.SOURCING_STUDY, use_llm=False)
        assert result.estimated_credits == 750
        assert result.estimated_time == "8-12 minutes"

    @pytest.mark.asyncio
    async def test_optional_slot_named_in_query_is_not_asked(self):
        open_scope = await intake.generate_intake("steel", StudyType.SOURCING_STUDY, use_llm=False)
        assert "supplier_scope" in {q.id for q in open_scope.questions}

        named = await intake.generate_intake(
            "alternatives to Acme Corporation for steel", StudyType.SOURCING_STUDY, use_llm=False
        )
        assert "supplier_scope" not in {q.id for q in named.questions}
        assert named.prefilled_answers["supplier_scope"] == ["Acme Corporation"]


def test_refinements_reword_and_reorder_without_adding_questions():
    questions = [
        IntakeQuestion(
            id="timeframe",
            question="What timeframe?",
            type="select",
            required=True,
            options=[IntakeOption("6 months", "6m"), IntakeOption("12 months", "12m")],
        )
    ]
    refined = intake._apply_refinements(
        questions,
        [
            {"id": "timeframe", "question": "Which period matters for copper?", "topOptions": ["12m"]},
            {"id": "invented", "question": "A question nobody asked for?"},
        ],
    )
    assert [q.id for q in refined] == ["timeframe"]
    assert refined[0].question == "Which period matters for copper?"
    assert [o.value for o in refined[0].options] == ["12m", "6m"]
    assert questions[0].question == "What timeframe?"


def test_build_job_keeps_raw_query_only_when_rewritten():
    job = build_job("research the copper market", "market-analysis", credits_available=1000)
    assert job.query == "copper market"
    assert job.raw_query == "research the copper market"
    assert job.credits_required == 500

    plain = build_job("copper market", StudyType.COST_MODEL, credits_available=0)
    assert plain.raw_query is None
    assert plain.credits_required == 600


@pytest.mark.asyncio
async def test_start_intake_merges_prefilled_answers():
    job = build_job(
        "research lithium market in Europe last 12 months",
        StudyType.MARKET_ANALYSIS,
        credits_available=1000,
        answers={"timeframe": "2y"},
    )
    await start_intake(job, use_llm=False)
    assert job.intake is not None
    assert job.answers["region"] == ["eu"]
    assert job.answers["timeframe"] == "2y"
