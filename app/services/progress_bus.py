"""Command-center progress: stage machine transitions and a throttled emitter.

Progress is plain data (``CommandCenterProgress``); the functions here move it
through the ordered stages and phases, and ``ProgressBus`` coalesces emissions
with a trailing-edge throttle. Stage transitions and agent state changes use
``force=True`` so they are never hidden by the throttle.
"""
from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from app.config import settings
from app.models.deep_research import (
    STAGE_ORDER,
    STAGE_PHASES,
    CommandCenterProgress,
    PhaseStatus,
    Stage,
    StagePhase,
)

ProgressListener = Callable[[CommandCenterProgress], None]


def new_progress() -> CommandCenterProgress:
    progress = CommandCenterProgress()
    progress.phases = _phases_for(Stage.PLAN)
    return progress


def _phases_for(stage: Stage) -> list[StagePhase]:
    return [StagePhase(id=phase_id, label=label) for phase_id, label in STAGE_PHASES[stage]]


def stage_index(stage: Stage) -> int:
    return STAGE_ORDER.index(stage)


def enter_stage(progress: CommandCenterProgress, stage: Stage) -> bool:
    """Advance to ``stage``. Returns False (and changes nothing) for a non-forward move."""
    if stage_index(stage) <= stage_index(progress.stage):
        return False
    for phase in progress.phases:
        if phase.status is PhaseStatus.ACTIVE:
            phase.status = PhaseStatus.COMPLETE
    if progress.stage not in progress.completed_stages:
        progress.completed_stages.append(progress.stage)
    progress.stage = stage
    progress.phases = _phases_for(stage)
    return True


def set_phase(progress: CommandCenterProgress, phase_id: str, status: PhaseStatus) -> bool:
    for phase in progress.phases:
        if phase.id == phase_id:
            phase.status = status
            return True
    return False


def start_phase(progress: CommandCenterProgress, phase_id: str) -> bool:
    return set_phase(progress, phase_id, PhaseStatus.ACTIVE)


def complete_phase(progress: CommandCenterProgress, phase_id: str) -> bool:
    return set_phase(progress, phase_id, PhaseStatus.COMPLETE)


def push_insight(progress: CommandCenterProgress, text: str, limit: int | None = None) -> None:
    """Append to the insight stream, evicting the oldest items past ``limit``."""
    cap = limit if limit is not None else settings.insight_stream_limit
    progress.insight_stream.append(text)
    overflow = len(progress.insight_stream) - cap
    if overflow > 0:
        del progress.insight_stream[:overflow]


def add_tag(progress: CommandCenterProgress, tag: str) -> None:
    if tag and tag not in progress.tags:
        progress.tags.append(tag)


class ProgressBus:
    """Trailing-edge throttled publisher of progress snapshots.

    ``publish`` stores the live progress object; at emission time a deep copy is
    handed to the listener, stamped with a monotonically non-decreasing
    ``elapsed_ms``.
    """

    def __init__(
        self,
        listener: ProgressListener | None,
        *,
        throttle_ms: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._listener = listener
        self._interval = (throttle_ms if throttle_ms is not None else settings.progress_throttle_ms) / 1000
        self._clock = clock
        self._started = clock()
        self._last_emit: float | None = None
        self._last_elapsed = 0
        self._pending: CommandCenterProgress | None = None
        self._timer: asyncio.TimerHandle | None = None
        self.emitted = 0
        self.last_snapshot: CommandCenterProgress | None = None

    def elapsed_ms(self) -> int:
        return int((self._clock() - self._started) * 1000)

    def publish(self, progress: CommandCenterProgress, *, force: bool = False) -> None:
        now = self._clock()
        if force or self._last_emit is None or now - self._last_emit >= self._interval:
            self._cancel_timer()
            self._pending = None
            self._emit(progress)
            return
        self._pending = progress
        if self._timer is None:
            delay = self._interval - (now - self._last_emit)
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                # no running loop to schedule the trailing emit on
                self._pending = None
                self._emit(progress)
                return
            self._timer = loop.call_later(max(delay, 0.0), self._fire)

    def flush(self) -> None:
        """Emit any pending throttled update immediately."""
        self._cancel_timer()
        if self._pending is not None:
            pending, self._pending = self._pending, None
            self._emit(pending)

    def close(self) -> None:
        self.flush()

    def detach(self) -> None:
        """Drop pending updates and stop notifying the listener."""
        self._cancel_timer()
        self._pending = None
        self._listener = None

    def _fire(self) -> None:
        self._timer = None
        if self._pending is not None:
            pending, self._pending = self._pending, None
            self._emit(pending)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit(self, progress: CommandCenterProgress) -> None:
        elapsed = max(self.elapsed_ms(), self._last_elapsed)
        self._last_elapsed = elapsed
        progress.elapsed_ms = elapsed
        self._last_emit = self._clock()
        snapshot = progress.snapshot()
        self.last_snapshot = snapshot
        self.emitted += 1
        if self._listener is not None:
            self._listener(snapshot)
