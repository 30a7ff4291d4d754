"""
In-memory session store.

Holds ChatSession objects keyed by id and hands out one asyncio.Lock per
session so turns for the same session never interleave. Sessions are
changed only through commit() (one whole turn at a time) and the
active-file toggle; there is no partial field update API.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from .domain import ActionResult, ChatSession, ChatTurn, FileSnapshot, guess_language
from .errors import SessionNotFoundError

logger = logging.getLogger(__name__)

INITIAL_HISTORY_SUMMARY = "Session started. No actions have been taken yet."


def load_initial_files(paths: Iterable[str], project_root: Path) -> list[FileSnapshot]:
    """
    Load snapshots for the requested paths.

    Missing or unreadable paths are skipped, not errors. Duplicate paths
    are loaded once.
    """
    snapshots: list[FileSnapshot] = []
    seen: set[str] = set()
    for path in paths:
        if path in seen:
            continue
        candidate = Path(path).expanduser()
        abs_path = candidate if candidate.is_absolute() else project_root / candidate
        if not abs_path.is_file():
            logger.debug(f"Skipping missing initial file: {path}")
            continue
        try:
            content = abs_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Skipping unreadable initial file {path}: {e}")
            continue
        seen.add(path)
        snapshots.append(FileSnapshot(path=path, content=content, language=guess_language(path)))
    return snapshots


class SessionStore:
    """
    Repository of live sessions.

    Passed explicitly to the orchestrator; independent stores never share
    state, so tests can run several side by side.
    """

    def __init__(
        self,
        project_root: Path | str = ".",
        initial_summary: str = INITIAL_HISTORY_SUMMARY,
    ):
        self.project_root = Path(project_root).expanduser().resolve()
        self.initial_summary = initial_summary
        self._sessions: dict[str, ChatSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(
        self,
        goal: str,
        initial_paths: Sequence[str] = (),
        dry_run: bool = True,
    ) -> ChatSession:
        """
        Create a session.

        Args:
            goal: Overall objective for the session
            initial_paths: Files to load into scope (missing ones are skipped)
            dry_run: Suppress real writes and command execution

        Returns:
            The new session

        Raises:
            ValueError: If goal is empty
        """
        if not isinstance(goal, str) or not goal.strip():
            raise ValueError("goal (non-empty string) is required")

        session_id = uuid.uuid4().hex
        session = ChatSession(
            id=session_id,
            goal=goal,
            history_summary=self.initial_summary,
            files_in_scope=load_initial_files(initial_paths, self.project_root),
            dry_run=dry_run,
        )
        self._sessions[session_id] = session
        self._locks[session_id] = asyncio.Lock()

        logger.info(
            f"Created session {session_id} with {len(session.files_in_scope)} file(s), dry_run={dry_run}"
        )
        return session

    def get(self, session_id: str) -> ChatSession:
        """
        Get a session.

        Raises:
            SessionNotFoundError: If no session has this id
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def find(self, session_id: str) -> ChatSession | None:
        """Get a session, or None if it does not exist."""
        return self._sessions.get(session_id)

    def list_ids(self) -> list[str]:
        return list(self._sessions)

    def lock(self, session_id: str) -> asyncio.Lock:
        """Per-session lock serializing turns."""
        self.get(session_id)
        return self._locks[session_id]

    def snapshot(self, session_id: str) -> dict[str, Any]:
        """camelCase dict of the session for the HTTP layer."""
        return self.get(session_id).to_wire()

    def set_active_files(self, session_id: str, paths: Sequence[str] | None) -> ChatSession:
        """
        Restrict which files the Actor sees.

        Only the planner's view changes; scope content is untouched and the
        executor still works on the full scope. None clears the filter.
        """
        session = self.get(session_id)
        session.active_paths = list(paths) if paths is not None else None
        return session

    def commit(
        self,
        session_id: str,
        files_in_scope: Sequence[FileSnapshot],
        history_summary: str,
        tool_results: Sequence[ActionResult],
        turn: ChatTurn,
    ) -> ChatSession:
        """
        Apply one finished turn.

        All fields are replaced together, with no await in between, so no
        partial turn is ever observable.

        Raises:
            SessionNotFoundError: If no session has this id
            ValueError: If turn.id is not the next turn index
        """
        session = self.get(session_id)
        if turn.id != len(session.turns):
            raise ValueError(f"Turn id {turn.id} does not follow {len(session.turns)} committed turn(s)")

        session.files_in_scope = list(files_in_scope)
        session.history_summary = history_summary
        session.last_tool_results = list(tool_results)
        session.turns.append(turn)

        logger.info(f"Committed turn {turn.id} for session {session_id} ({len(tool_results)} tool result(s))")
        return session


__all__ = [
    "INITIAL_HISTORY_SUMMARY",
    "SessionStore",
    "load_initial_files",
]
