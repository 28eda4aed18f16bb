"""Exception types raised by provider clients and the research pipeline."""
from __future__ import annotations


class OrchestrationError(Exception):
    """Base class for every error the orchestration core raises internally."""


class ProviderNotConfigured(OrchestrationError):
    def __init__(self, provider: str):
        super().__init__(f"{provider} provider is not configured")
        self.provider = provider


class ProviderError(OrchestrationError):
    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderTimeout(ProviderError):
    def __init__(self, provider: str, timeout_s: float):
        super().__init__(provider, f"timed out after {timeout_s:g}s")
        self.timeout_s = timeout_s


class MalformedOutput(OrchestrationError):
    """LLM output could not be parsed even after lenient repair."""

    def __init__(self, caller: str, raw: str):
        super().__init__(f"{caller}: unparseable model output")
        self.caller = caller
        self.raw = raw[:500]


class InsufficientCredits(OrchestrationError):
    code = "INSUFFICIENT_CREDITS"

    def __init__(self, required: int, available: int):
        super().__init__(f"This study needs {required} credits; {available} available.")
        self.required = required
        self.available = available
