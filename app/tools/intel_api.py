"""Client for the internal-intelligence research endpoint."""
from __future__ import annotations

import time
from typing import Any

import httpx

from app.config import settings
from app.errors import ProviderError, ProviderNotConfigured
from app.models.provider import ProviderReply
from app.models.response import SourceType
from app.services import logger as log_service
from app.services.sources import source_from_dict
from app.tools import internal_intel


async def _post(query: str, study_type: str, answers: dict[str, Any]) -> dict[str, Any]:
    headers = {"Accept": "application/json"}
    if settings.internal_api_key.strip():
        headers["Authorization"] = f"Bearer {settings.internal_api_key}"
    started = time.monotonic()
    async with httpx.AsyncClient(timeout=settings.web_timeout_s) as client:
        try:
            response = await client.post(
                settings.internal_api_url,
                json={"query": query, "studyType": study_type, "answerContext": answers},
                headers=headers,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            log_service.log_llm_call(
                model="intel_api",
                caller="intel_api.fetch",
                duration_ms=int((time.monotonic() - started) * 1000),
                status="timeout",
                error=str(e),
            )
            raise ProviderError("intel_api", f"timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            log_service.log_llm_call(
                model="intel_api",
                caller="intel_api.fetch",
                duration_ms=int((time.monotonic() - started) * 1000),
                status="error",
                error=str(e),
            )
            raise ProviderError("intel_api", str(e), status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise ProviderError("intel_api", str(e)) from e
    log_service.log_llm_call(
        model="intel_api",
        caller="intel_api.fetch",
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    payload = response.json()
    if not isinstance(payload, dict):
        raise ProviderError("intel_api", "response body is not an object")
    return payload


async def fetch(query: str, *, study_type: str, answers: dict[str, Any] | None = None) -> ProviderReply:
    """Internal findings for a research topic.

    Uses the configured endpoint; otherwise asks the fast provider for a briefing.
    """
    answers = answers or {}
    if settings.intel_api_configured:
        payload = await _post(query, study_type, answers)
        sources = [
            source
            for raw in payload.get("sources") or []
            if isinstance(raw, dict)
            for source in [source_from_dict(raw, default_type=SourceType.INTERNAL)]
            if source is not None
        ]
        return ProviderReply(content=str(payload.get("content") or ""), sources=sources)
    if settings.internal_configured:
        return await internal_intel.brief(query, study_type=study_type, answers=answers)
    raise ProviderNotConfigured("intel_api")
