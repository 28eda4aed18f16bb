from __future__ import annotations

from fastapi import APIRouter

from app.models.schemas import SessionResetResponse
from app.services.suggestions import reset_session

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.post("/{session_id}/reset", response_model=SessionResetResponse)
async def reset(session_id: str):
    """Clear the session's suggestion history and cooldowns."""
    return SessionResetResponse(session_id=session_id, reset=reset_session(session_id))
