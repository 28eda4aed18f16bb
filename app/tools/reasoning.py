from __future__ import annotations

from typing import Any

from app import llm_client
from app.config import settings
from app.llm_client import MessageResponse


async def reason(
    messages: list[dict[str, Any]],
    *,
    caller: str = "reasoning",
    stream: bool = False,
    max_tokens: int = 4096,
    json_mode: bool = False,
    timeout_s: float | None = None,
) -> MessageResponse:
    """Chat-style call to the synthesis model.

    ``system`` entries in ``messages`` are folded into one system prompt.
    """
    system = "\n\n".join(str(m.get("content", "")) for m in messages if m.get("role") == "system")
    chat = [m for m in messages if m.get("role") != "system"]
    return await llm_client.complete(
        caller=caller,
        role="synthesis",
        system=system,
        messages=chat,
        max_tokens=max_tokens,
        json_mode=json_mode and not stream,
        stream=stream,
        timeout_s=timeout_s or settings.synthesis_timeout_s,
    )
