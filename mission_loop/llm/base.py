"""LLM port: the single "complete a prompt" capability the turn loop needs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass


@dataclass
class CompletionOptions:
    """Per-call sampling options. None means provider default."""

    temperature: float | None = None
    max_tokens: int | None = None
    stop: str | list[str] | None = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class UsageInfo:
    """Token usage reported by a provider for one call."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None

    def to_dict(self) -> dict:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


class LLMAdapter(ABC):
    """
    Abstract completion adapter.

    Implementations return "" for an empty completion and raise LLMError
    for transport failures.
    """

    name: str = "LLMAdapter"
    model: str | None = None
    last_usage: UsageInfo | None = None

    @abstractmethod
    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        """Complete a prompt and return the raw text."""
        pass


__all__ = ["CompletionOptions", "LLMAdapter", "UsageInfo"]
