"""Exception types for mission-loop."""

from __future__ import annotations


class MissionLoopError(Exception):
    """Base class for all mission-loop errors."""
    pass


class ConfigError(MissionLoopError):
    """Configuration file could not be read or parsed."""
    pass


class LLMError(MissionLoopError):
    """LLM call failed at the transport level."""
    pass


class LLMTimeoutError(LLMError):
    """LLM call did not complete within the configured timeout."""
    pass


class OutputParseError(MissionLoopError, ValueError):
    """Raw LLM text could not be parsed into the expected structure."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class SessionNotFoundError(MissionLoopError, KeyError):
    """No session with the requested id."""

    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class TurnAbortedError(MissionLoopError):
    """A turn was abandoned before commit; the session is unchanged."""
    pass


class HistorianOutputError(TurnAbortedError):
    """Historian never produced a usable history summary."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


__all__ = [
    "ConfigError",
    "HistorianOutputError",
    "LLMError",
    "LLMTimeoutError",
    "MissionLoopError",
    "OutputParseError",
    "SessionNotFoundError",
    "TurnAbortedError",
]
