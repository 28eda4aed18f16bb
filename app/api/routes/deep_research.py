from __future__ import annotations

import asyncio

from fastapi import APIRouter
from sse_starlette.sse import EventSourceResponse

from app.agents import deep_research
from app.models.deep_research import JobPhase
from app.models.events import SSEEvent
from app.models.schemas import DeepResearchRequest
from app.services import logger as log_service
from app.services import streaming

router = APIRouter(prefix="/api/deep-research", tags=["deep-research"])


def _job(request: DeepResearchRequest):
    return deep_research.build_job(
        request.query,
        request.study_type,
        credits_available=request.credits_available,
        history=request.history_dicts(),
        answers=request.answers,
    )


@router.post("/intake")
async def intake(request: DeepResearchRequest):
    """Clarifying questions and prefilled answers for a study, after the credit check."""
    job = _job(request)
    if job.credits_available < job.credits_required:
        job = await deep_research.run_deep_research(job)
    else:
        job = await deep_research.start_intake(job, request.history_dicts(), use_llm=request.use_llm)
    return job.to_dict()


@router.post("/run")
async def run(request: DeepResearchRequest):
    """SSE endpoint: progress snapshots, then ``complete`` or ``error`` with the job."""
    job = _job(request)
    queue: asyncio.Queue[SSEEvent] = asyncio.Queue()

    async def event_generator():
        log_service.log_event(
            event_type="deep_research_started",
            message="Deep research started",
            job_id=job.job_id,
            study_type=job.study_type.value,
            query=job.query[:100],
        )
        task = asyncio.create_task(
            deep_research.run_deep_research(job, lambda snap: queue.put_nowait(streaming.progress(job.job_id, snap)))
        )
        try:
            while not (task.done() and queue.empty()):
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=0.25)
                except asyncio.TimeoutError:
                    continue
                yield event.as_message()
            finished = task.result()
            final = streaming.complete(finished) if finished.phase is JobPhase.COMPLETE else streaming.job_error(finished)
            yield final.as_message()
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in deep research stream",
                error=str(e),
                job_id=job.job_id,
            )
            yield streaming.error("Deep research stream failed unexpectedly.").as_message()
        finally:
            if not task.done():
                task.cancel()

    return EventSourceResponse(event_generator())
