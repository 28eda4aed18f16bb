from __future__ import annotations

from typing import Any

from app.models.deep_research import CommandCenterProgress, DeepResearchJob
from app.models.events import EventType, SSEEvent
from app.models.response import CanonicalResponse, Milestone


def milestone(item: Milestone) -> SSEEvent:
    return SSEEvent(event=EventType.MILESTONE, data=item.dump())


def response(canonical: CanonicalResponse) -> SSEEvent:
    return SSEEvent(event=EventType.RESPONSE, data=canonical.dump())


def progress(job_id: str, snapshot: CommandCenterProgress) -> SSEEvent:
    """Emit a command-center snapshot for a running job."""
    return SSEEvent(
        event=EventType.PROGRESS,
        data={"jobId": job_id, "commandCenterProgress": snapshot.to_dict()},
    )


def complete(job: DeepResearchJob) -> SSEEvent:
    return SSEEvent(event=EventType.COMPLETE, data=job.to_dict())


def job_error(job: DeepResearchJob) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data=job.to_dict())


def error(message: str, code: str | None = None, **kwargs: Any) -> SSEEvent:
    data: dict[str, Any] = {"message": message}
    if code:
        data["code"] = code
    data.update(kwargs)
    return SSEEvent(event=EventType.ERROR, data=data)
