"""
Shared fixtures for mission-loop tests.

Provides a scripted LLM adapter, a temporary project root and a session
store bound to it.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mission_loop.config import MissionConfig
from mission_loop.llm.base import CompletionOptions, LLMAdapter
from mission_loop.session_store import SessionStore


class ScriptedLLM(LLMAdapter):
    """
    Adapter that replays canned completions.

    Each entry is returned once, in order; an Exception entry is raised
    instead. The last entry repeats once the script runs out.
    """

    name = "scripted"

    def __init__(self, responses, model: str = "scripted-model"):
        self.responses = list(responses)
        self.model = model
        self.prompts: list[str] = []
        self.options: list[CompletionOptions | None] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        self.prompts.append(prompt)
        self.options.append(options)
        if len(self.responses) > 1:
            response = self.responses.pop(0)
        else:
            response = self.responses[0]
        if isinstance(response, BaseException):
            raise response
        if not isinstance(response, str):
            response = json.dumps(response)
        return response


@pytest.fixture
def scripted_llm():
    """Factory for ScriptedLLM adapters."""
    return ScriptedLLM


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Temporary project with a single TypeScript file."""
    (tmp_path / "app.ts").write_text("console.log('Old');")
    return tmp_path


@pytest.fixture
def config(project_root: Path) -> MissionConfig:
    """Default config rooted at the temporary project."""
    cfg = MissionConfig()
    cfg.execution.project_root = str(project_root)
    cfg.logging.llm_log_enabled = False
    return cfg


@pytest.fixture
def store(project_root: Path) -> SessionStore:
    return SessionStore(project_root=project_root)
