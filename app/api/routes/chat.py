from __future__ import annotations

import asyncio

from fastapi import APIRouter
from sse_starlette.sse import EventSourceResponse

from app.agents.orchestrator import ChatOrchestrator
from app.models.events import SSEEvent
from app.models.schemas import ChatRequest
from app.services import logger as log_service
from app.services import streaming

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _respond(request: ChatRequest, on_milestone=None):
    orchestrator = ChatOrchestrator(session_id=request.session_id)
    return orchestrator.respond(
        request.message,
        mode=request.mode,
        web_search=request.web_search,
        history=request.history_dicts(),
        route=request.route,
        on_milestone=on_milestone,
        hybrid=request.hybrid,
        deep_research_requested=request.deep_research,
        study_type=request.study_type,
        credits_available=request.credits_available,
    )


@router.post("")
async def chat(request: ChatRequest):
    """Answer one chat turn with a canonical response."""
    response = await _respond(request)
    return response.dump()


@router.post("/stream")
async def chat_stream(request: ChatRequest):
    """SSE endpoint: milestones as they happen, then the canonical response."""
    queue: asyncio.Queue[SSEEvent] = asyncio.Queue()

    async def event_generator():
        task = asyncio.create_task(_respond(request, lambda m: queue.put_nowait(streaming.milestone(m))))
        try:
            while not (task.done() and queue.empty()):
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=0.1)
                except asyncio.TimeoutError:
                    continue
                yield event.as_message()
            yield streaming.response(task.result()).as_message()
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in chat stream",
                error=str(e),
            )
            yield streaming.error("Chat stream failed unexpectedly.").as_message()
        finally:
            if not task.done():
                task.cancel()

    return EventSourceResponse(event_generator())
