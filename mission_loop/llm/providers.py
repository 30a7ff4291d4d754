"""
Concrete LLM adapters.

Supports:
- OpenAI chat completions (default for both roles)
- Anthropic messages, including Anthropic-compatible custom endpoints
- Ollama's local /api/generate endpoint
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import anthropic
import httpx
import openai
from dotenv import load_dotenv

from ..errors import LLMError
from .base import CompletionOptions, LLMAdapter, UsageInfo

# Auto-load .env from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


class Provider(Enum):
    """LLM provider."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"


def _uses_completion_tokens(model: str) -> bool:
    # Newer OpenAI models reject max_tokens in favour of max_completion_tokens
    return model.startswith(("gpt-4.1", "gpt-5", "o1", "o3", "o4"))


class OpenAIAdapter(LLMAdapter):
    """OpenAI chat completions adapter."""

    name = "OpenAIAdapter"

    def __init__(
        self,
        model: str = "gpt-4.1-mini",
        api_key: str | None = None,
        base_url: str | None = None,
    ):
        self.model = model
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            raise LLMError("OpenAI API key required. Set OPENAI_API_KEY environment variable.")
        client_kwargs: dict[str, Any] = {"api_key": self.api_key}
        if base_url:
            client_kwargs["base_url"] = base_url
        self.client = openai.AsyncOpenAI(**client_kwargs)
        self.last_usage = None

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        options = options or CompletionOptions()

        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.temperature is not None:
            request_params["temperature"] = options.temperature
        if options.max_tokens is not None:
            key = "max_completion_tokens" if _uses_completion_tokens(self.model) else "max_tokens"
            request_params[key] = options.max_tokens
        if options.stop is not None:
            request_params["stop"] = options.stop

        try:
            response = await self.client.chat.completions.create(**request_params)
        except openai.OpenAIError as e:
            raise LLMError(f"OpenAI API error: {e}") from e

        if response.usage:
            self.last_usage = UsageInfo(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        if not response.choices:
            return ""
        return _content_to_text(response.choices[0].message.content)


def _content_to_text(content: Any) -> str:
    """Flatten a chat message content (string or list of parts) to text."""
    if not content:
        return ""
    if isinstance(content, str):
        return content

    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(getattr(part, "text", None), str):
            parts.append(part.text)
        elif isinstance(part, dict):
            text = part.get("text", part.get("content"))
            if isinstance(text, str):
                parts.append(text)
    return "".join(parts)


class AnthropicAdapter(LLMAdapter):
    """Anthropic messages adapter."""

    name = "AnthropicAdapter"

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        api_key: str | None = None,
        base_url: str | None = None,
        default_max_tokens: int = 1024,
    ):
        self.model = model
        # Support both ANTHROPIC_API_KEY and ANTHROPIC_AUTH_TOKEN
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("ANTHROPIC_AUTH_TOKEN")
        if not self.api_key:
            raise LLMError(
                "Anthropic API key required. Set ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN environment variable."
            )
        # Support custom base URL for Anthropic-compatible endpoints
        self.base_url = base_url or os.environ.get("ANTHROPIC_BASE_URL")
        client_kwargs: dict[str, Any] = {"api_key": self.api_key}
        if self.base_url:
            client_kwargs["base_url"] = self.base_url
        self.client = anthropic.AsyncAnthropic(**client_kwargs)
        self.default_max_tokens = default_max_tokens
        self.last_usage = None

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        options = options or CompletionOptions()

        request_params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": options.max_tokens or self.default_max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.temperature is not None:
            request_params["temperature"] = options.temperature
        if options.stop is not None:
            stop = [options.stop] if isinstance(options.stop, str) else options.stop
            request_params["stop_sequences"] = stop

        try:
            response = await self.client.messages.create(**request_params)
        except anthropic.APIError as e:
            raise LLMError(f"Anthropic API error: {e}") from e

        self.last_usage = UsageInfo(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )

        # Extract text from response blocks
        content = ""
        for block in response.content:
            if block.type == "text":
                content += block.text
        return content


class OllamaAdapter(LLMAdapter):
    """Local Ollama adapter using the non-streaming generate endpoint."""

    name = "OllamaAdapter"

    def __init__(
        self,
        model: str = "qwen3:0.6b",
        host: str | None = None,
        timeout: float = 120.0,
    ):
        self.model = model
        self.host = (host or os.environ.get("OLLAMA_HOST") or "http://localhost:11434").rstrip("/")
        self.timeout = timeout
        self.last_usage = None

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        options = options or CompletionOptions()

        ollama_options: dict[str, Any] = {}
        if options.temperature is not None:
            ollama_options["temperature"] = options.temperature
        if options.max_tokens is not None:
            ollama_options["num_predict"] = options.max_tokens
        if options.stop is not None:
            ollama_options["stop"] = [options.stop] if isinstance(options.stop, str) else options.stop

        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": ollama_options,
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.host}/api/generate",
                    json=payload,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LLMError(f"Ollama request failed: {e}") from e

        prompt_tokens = data.get("prompt_eval_count")
        completion_tokens = data.get("eval_count")
        self.last_usage = UsageInfo(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=(prompt_tokens or 0) + (completion_tokens or 0),
        )
        return data.get("response") or ""


def create_adapter(provider: Provider | str, model: str, **kwargs: Any) -> LLMAdapter:
    """
    Build an adapter for a provider.

    Args:
        provider: Provider enum or its string value
        model: Model identifier for that provider
        **kwargs: Passed through to the adapter constructor

    Raises:
        ValueError: If the provider is unknown
        LLMError: If credentials are missing
    """
    provider = Provider(provider)
    if provider is Provider.OPENAI:
        return OpenAIAdapter(model=model, **kwargs)
    if provider is Provider.ANTHROPIC:
        return AnthropicAdapter(model=model, **kwargs)
    return OllamaAdapter(model=model, **kwargs)


__all__ = [
    "AnthropicAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "Provider",
    "create_adapter",
]
