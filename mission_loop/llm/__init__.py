"""LLM adapters for the Actor and Historian roles."""

from .base import CompletionOptions, LLMAdapter, UsageInfo
from .logging_adapter import LoggingLLMAdapter, log_llm_interaction, read_log_records
from .providers import AnthropicAdapter, OllamaAdapter, OpenAIAdapter, Provider, create_adapter

__all__ = [
    "AnthropicAdapter",
    "CompletionOptions",
    "LLMAdapter",
    "LoggingLLMAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "Provider",
    "UsageInfo",
    "create_adapter",
    "log_llm_interaction",
    "read_log_records",
]
