from __future__ import annotations

import asyncio

import pytest

from app.models.deep_research import PhaseStatus, Stage
from app.services import progress_bus
from app.services.progress_bus import ProgressBus


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestStageMachine:
    def test_stages_only_move_forward(self):
        progress = progress_bus.new_progress()
        assert progress_bus.enter_stage(progress, Stage.RESEARCH)
        assert not progress_bus.enter_stage(progress, Stage.PLAN)
        assert not progress_bus.enter_stage(progress, Stage.RESEARCH)
        assert progress.stage is Stage.RESEARCH
        assert progress.completed_stages == [Stage.PLAN]

    def test_completed_stages_never_include_current(self):
        progress = progress_bus.new_progress()
        for stage in (Stage.RESEARCH, Stage.SYNTHESIS, Stage.DELIVERY, Stage.COMPLETE):
            progress_bus.enter_stage(progress, stage)
            assert progress.stage not in progress.completed_stages
            assert len(set(progress.completed_stages)) == len(progress.completed_stages)

    def test_entering_stage_resets_phases(self):
        progress = progress_bus.new_progress()
        assert [p.id for p in progress.phases] == ["decomposition", "deduplication", "assignment"]
        progress_bus.enter_stage(progress, Stage.SYNTHESIS)
        assert [p.id for p in progress.phases] == ["template", "writing", "quality", "visuals"]
        assert all(p.status is PhaseStatus.PENDING for p in progress.phases)

    def test_phase_transitions(self):
        progress = progress_bus.new_progress()
        progress_bus.start_phase(progress, "decomposition")
        assert progress.phases[0].status is PhaseStatus.ACTIVE
        progress_bus.complete_phase(progress, "decomposition")
        assert progress.phases[0].status is PhaseStatus.COMPLETE
        assert not progress_bus.start_phase(progress, "unknown")

    def test_insight_stream_evicts_oldest(self):
        progress = progress_bus.new_progress()
        for i in range(60):
            progress_bus.push_insight(progress, f"insight {i}", limit=50)
        assert len(progress.insight_stream) == 50
        assert progress.insight_stream[0] == "insight 10"

    def test_tags_are_unique(self):
        progress = progress_bus.new_progress()
        progress_bus.add_tag(progress, "pricing")
        progress_bus.add_tag(progress, "pricing")
        assert progress.tags == ["pricing"]


class TestProgressBus:
    @pytest.mark.asyncio
    async def test_throttle_coalesces_to_trailing_emit(self):
        received = []
        clock = FakeClock()
        bus = ProgressBus(received.append, throttle_ms=50, clock=clock)
        progress = progress_bus.new_progress()

        bus.publish(progress)
        progress_bus.push_insight(progress, "one")
        bus.publish(progress)
        progress_bus.push_insight(progress, "two")
        bus.publish(progress)
        assert len(received) == 1

        clock.now = 0.1
        await asyncio.sleep(0.1)
        assert len(received) == 2
        assert received[-1].insight_stream == ["one", "two"]

    def test_force_emits_immediately(self):
        received = []
        bus = ProgressBus(received.append, throttle_ms=10_000, clock=FakeClock())
        progress = progress_bus.new_progress()
        bus.publish(progress)
        bus.publish(progress, force=True)
        assert len(received) == 2

    def test_snapshots_are_isolated_copies(self):
        received = []
        bus = ProgressBus(received.append, throttle_ms=0, clock=FakeClock())
        progress = progress_bus.new_progress()
        bus.publish(progress)
        progress_bus.push_insight(progress, "later")
        assert received[0].insight_stream == []

    def test_elapsed_is_monotonic(self):
        received = []
        clock = FakeClock()
        bus = ProgressBus(received.append, throttle_ms=0, clock=clock)
        progress = progress_bus.new_progress()
        clock.now = 1.0
        bus.publish(progress)
        clock.now = 2.5
        bus.publish(progress)
        assert [p.elapsed_ms for p in received] == [1000, 2500]

    @pytest.mark.asyncio
    async def test_flush_emits_pending_update(self):
        received = []
        bus = ProgressBus(received.append, throttle_ms=10_000, clock=FakeClock())
        progress = progress_bus.new_progress()
        bus.publish(progress)
        bus.publish(progress)
        assert len(received) == 1
        bus.flush()
        assert len(received) == 2

    @pytest.mark.asyncio
    async def test_detach_drops_pending_and_later_updates(self):
        received = []
        bus = ProgressBus(received.append, throttle_ms=10_000, clock=FakeClock())
        progress = progress_bus.new_progress()
        bus.publish(progress)
        bus.publish(progress)
        bus.detach()
        bus.flush()
        bus.publish(progress, force=True)
        assert len(received) == 1
