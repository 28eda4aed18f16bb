from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from app.models.response import CamelModel


# --- Requests ---


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(CamelModel):
    message: str = Field(min_length=1)
    mode: Literal["fast", "reasoning"] = "fast"
    web_search: bool = False
    hybrid: bool = False
    history: list[HistoryMessage] = Field(default_factory=list)
    route: dict[str, Any] | None = None
    session_id: str | None = None
    deep_research: bool = False
    study_type: str | None = None
    credits_available: int = 0

    def history_dicts(self) -> list[dict[str, str]]:
        return [m.model_dump() for m in self.history]


class DeepResearchRequest(CamelModel):
    query: str = Field(min_length=1)
    study_type: str = "market-analysis"
    credits_available: int = 0
    history: list[HistoryMessage] = Field(default_factory=list)
    answers: dict[str, Any] = Field(default_factory=dict)
    use_llm: bool = True

    def history_dicts(self) -> list[dict[str, str]]:
        return [m.model_dump() for m in self.history]


# --- Responses ---


class SessionResetResponse(CamelModel):
    session_id: str
    reset: bool
