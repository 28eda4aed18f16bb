"""OpenRouter LLM client via the OpenAI-compatible SDK, with a messages-style adapter."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator

import openai

from app.config import settings
from app.errors import ProviderError, ProviderNotConfigured, ProviderTimeout
from app.services import logger as log_service


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class MessageResponse:
    content: str
    usage: Usage
    reasoning: str = ""


def _usage_from(raw: Any) -> Usage:
    return Usage(
        input_tokens=getattr(raw, "prompt_tokens", 0) or 0,
        output_tokens=getattr(raw, "completion_tokens", 0) or 0,
    )


class OpenRouterStream:
    """Async context manager over a streamed completion.

    ``text_stream`` yields content deltas; reasoning deltas (OpenRouter's
    ``reasoning`` field) are collected on the side.
    """

    def __init__(self, stream_coro: Any):
        self._stream_coro = stream_coro
        self._stream: Any | None = None
        self._usage = Usage()
        self._text: list[str] = []
        self._reasoning: list[str] = []
        self._finished = False

    async def __aenter__(self) -> "OpenRouterStream":
        self._stream = await self._stream_coro
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stream is not None:
            await self._stream.close()

    async def _iter_text(self) -> AsyncIterator[str]:
        if self._stream is None:
            return
        async for chunk in self._stream:
            usage = getattr(chunk, "usage", None)
            if usage:
                self._usage = _usage_from(usage)
            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            delta = getattr(choices[0], "delta", None)
            if not delta:
                continue
            reasoning = getattr(delta, "reasoning", None)
            if reasoning:
                self._reasoning.append(reasoning)
            text = getattr(delta, "content", None)
            if text:
                self._text.append(text)
                yield text
        self._finished = True

    @property
    def text_stream(self) -> AsyncIterator[str]:
        return self._iter_text()

    async def get_final_message(self) -> MessageResponse:
        if not self._finished:
            async for _ in self.text_stream:
                pass
        return MessageResponse(
            content="".join(self._text),
            usage=self._usage,
            reasoning="".join(self._reasoning),
        )


class OpenRouterMessagesAdapter:
    def __init__(self, openai_client: Any):
        self._client = openai_client

    @staticmethod
    def _temperature_for_model(model: str) -> float:
        # GPT-5 class models on some gateways reject temperature=0.
        if "gpt-5" in (model or "").lower():
            return 1
        return 0.2

    @staticmethod
    def _to_openai_messages(system: str, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        openai_messages: list[dict[str, Any]] = []
        if system:
            openai_messages.append({"role": "system", "content": system})
        for message in messages:
            role = message.get("role", "user")
            if role not in ("user", "assistant", "system"):
                role = "user"
            openai_messages.append({"role": role, "content": str(message.get("content", ""))})
        return openai_messages

    def _completion_kwargs(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list[dict[str, Any]],
        json_mode: bool,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": self._to_openai_messages(system, messages),
            "max_tokens": max_tokens,
            "temperature": self._temperature_for_model(model),
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def create(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list[dict[str, Any]],
        json_mode: bool = False,
    ) -> MessageResponse:
        response = await self._client.chat.completions.create(
            **self._completion_kwargs(
                model=model, max_tokens=max_tokens, system=system, messages=messages, json_mode=json_mode
            )
        )
        choice = response.choices[0].message
        return MessageResponse(
            content=getattr(choice, "content", None) or "",
            usage=_usage_from(getattr(response, "usage", None)),
            reasoning=getattr(choice, "reasoning", None) or "",
        )

    def stream(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list[dict[str, Any]],
    ) -> OpenRouterStream:
        stream = self._client.chat.completions.create(
            **self._completion_kwargs(
                model=model, max_tokens=max_tokens, system=system, messages=messages, json_mode=False
            ),
            stream=True,
            stream_options={"include_usage": True},
        )
        return OpenRouterStream(stream)


class OpenRouterClientAdapter:
    def __init__(self, openai_client: Any):
        self.messages = OpenRouterMessagesAdapter(openai_client)


def get_client() -> OpenRouterClientAdapter:
    """Get OpenRouter client via OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    openai_client = AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
    )
    return OpenRouterClientAdapter(openai_client)


def get_model(role: str = "default") -> str:
    """Model id for a provider role, falling back to ``default_model``."""
    by_role = {
        "fast": settings.fast_model,
        "research": settings.research_model,
        "synthesis": settings.synthesis_model,
        "decomposition": settings.decomposition_model or settings.fast_model,
    }
    return by_role.get(role) or settings.default_model


_client: OpenRouterClientAdapter | None = None


def client() -> OpenRouterClientAdapter:
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client


async def complete(
    *,
    caller: str,
    system: str,
    messages: list[dict[str, Any]],
    role: str = "default",
    max_tokens: int = 2048,
    timeout_s: float | None = None,
    json_mode: bool = False,
    stream: bool = False,
) -> MessageResponse:
    """One logged LLM call with a hard timeout and provider error mapping."""
    if not settings.openrouter_api_key.strip():
        raise ProviderNotConfigured("openrouter")

    model = get_model(role)
    started = time.monotonic()

    async def _call() -> MessageResponse:
        llm = client()
        if stream:
            async with llm.messages.stream(
                model=model, max_tokens=max_tokens, system=system, messages=messages
            ) as streamed:
                return await streamed.get_final_message()
        return await llm.messages.create(
            model=model, max_tokens=max_tokens, system=system, messages=messages, json_mode=json_mode
        )

    try:
        if timeout_s:
            result = await asyncio.wait_for(_call(), timeout=timeout_s)
        else:
            result = await _call()
    except (asyncio.TimeoutError, openai.APITimeoutError) as e:
        log_service.log_llm_call(
            model=model,
            caller=caller,
            duration_ms=int((time.monotonic() - started) * 1000),
            status="timeout",
            error=f"timed out after {timeout_s}s",
        )
        raise ProviderTimeout("openrouter", timeout_s or 0) from e
    except openai.APIStatusError as e:
        log_service.log_llm_call(
            model=model,
            caller=caller,
            duration_ms=int((time.monotonic() - started) * 1000),
            status="error",
            error=str(e),
        )
        raise ProviderError("openrouter", str(e), status_code=e.status_code) from e
    except openai.APIError as e:
        log_service.log_llm_call(
            model=model,
            caller=caller,
            duration_ms=int((time.monotonic() - started) * 1000),
            status="error",
            error=str(e),
        )
        raise ProviderError("openrouter", str(e)) from e

    log_service.log_llm_call(
        model=model,
        caller=caller,
        input_tokens=result.usage.input_tokens,
        output_tokens=result.usage.output_tokens,
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    return result
