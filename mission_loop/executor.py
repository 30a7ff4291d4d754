"""
Action executors.

Two interchangeable backends apply an Actor's actions to a file scope:

- InMemoryExecutor: touches only a copy of the scope; commands go to a
  caller-supplied runner. Used by tests and demos.
- DiskExecutor: resolves paths under a project root, writes files and
  spawns real subprocesses unless dry_run is set.

Actions run strictly in the listed order against one evolving copy of the
scope, so later actions see earlier edits. There is no rollback: an action
that fails leaves the effects of earlier actions in place.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .domain import (
    EDIT_MODES,
    ActionResult,
    AddFileToScopeAction,
    AgentAction,
    CommandAction,
    CommandResult,
    FileAddedToScopeResult,
    FileEditAction,
    FileEditResult,
    FileSnapshot,
    MessageToUserAction,
    find_snapshot,
    guess_language,
    upsert_snapshot,
)

if TYPE_CHECKING:
    from .config import MissionConfig
    from .domain import ChatSession

logger = logging.getLogger(__name__)

CommandRunner = Callable[[str, str | None], Awaitable[CommandResult]]

DRY_RUN_STDOUT = "[dry-run] command not executed"
ALREADY_IN_SCOPE_REASON = "already in scope; reusing existing snapshot"


@dataclass
class ExecutionOutcome:
    """Scope after all actions ran, and one result per non-message action."""

    files: list[FileSnapshot]
    results: list[ActionResult] = field(default_factory=list)


def apply_edit_to_content(content: str, edit: FileEditAction) -> tuple[str, FileEditResult]:
    """
    Apply a file edit to a string.

    Args:
        content: Current file content
        edit: The edit to apply

    Returns:
        Tuple of (new_content, result). On rejection new_content is the
        unchanged input and result.applied is False.
    """
    if edit.mode not in EDIT_MODES:
        return content, FileEditResult(
            path=edit.path,
            applied=False,
            error=f"Unsupported edit mode: {edit.mode}",
        )

    if edit.mode == "replace_file":
        if edit.new_content is None:
            return content, FileEditResult(
                path=edit.path,
                applied=False,
                error="replace_file mode requires a 'newContent' field",
            )
        return edit.new_content, FileEditResult(path=edit.path, applied=True)

    if edit.range is None:
        return content, FileEditResult(
            path=edit.path,
            applied=False,
            error="replace_range mode requires a 'range' field",
        )

    # Offsets are clamped, never rejected
    start = max(0, min(len(content), edit.range.start_offset))
    end = max(start, min(len(content), edit.range.end_offset))
    replacement = edit.range_new_text or ""

    return content[:start] + replacement + content[end:], FileEditResult(path=edit.path, applied=True)


def _reject_blank_target(action: AgentAction) -> ActionResult | None:
    """Failed result for an action with a blank path or command, else None."""
    if isinstance(action, FileEditAction) and not action.path.strip():
        return FileEditResult(
            path=action.path,
            applied=False,
            error="file_edit requires a non-empty 'path' field",
        )
    if isinstance(action, AddFileToScopeAction) and not action.path.strip():
        return FileAddedToScopeResult(
            path=action.path,
            added=False,
            source=action.source,
            reason="add_file_to_scope requires a non-empty 'path' field",
        )
    if isinstance(action, CommandAction) and not action.command.strip():
        return CommandResult(
            command=action.command,
            exit_code=None,
            stdout="",
            stderr="command requires a non-empty 'command' field",
        )
    return None


class ActionExecutor(ABC):
    """Applies a step's actions to a file scope."""

    async def execute(
        self,
        files: Sequence[FileSnapshot],
        actions: Sequence[AgentAction],
    ) -> ExecutionOutcome:
        """
        Run actions in order against a copy of files.

        The caller's sequence is never mutated; FileSnapshots are frozen, so
        a shallow copy of the list is enough to isolate it.
        """
        scope = list(files)
        results: list[ActionResult] = []

        for index, action in enumerate(actions):
            logger.debug(f"Executing action {index} ({action.kind})")
            rejected = _reject_blank_target(action)
            if rejected is not None:
                logger.info(f"Skipping action {index} ({action.kind}): missing path or command")
                results.append(rejected)
            elif isinstance(action, FileEditAction):
                results.append(await self._file_edit(scope, action))
            elif isinstance(action, CommandAction):
                results.append(await self._command(action))
            elif isinstance(action, AddFileToScopeAction):
                results.append(await self._add_file_to_scope(scope, action))
            elif isinstance(action, MessageToUserAction):
                # User-facing side channel, not tool feedback
                continue
            else:
                raise TypeError(f"Unsupported action: {type(action).__name__}")

        return ExecutionOutcome(files=scope, results=results)

    @abstractmethod
    async def _file_edit(self, scope: list[FileSnapshot], action: FileEditAction) -> FileEditResult:
        pass

    @abstractmethod
    async def _command(self, action: CommandAction) -> CommandResult:
        pass

    @abstractmethod
    async def _add_file_to_scope(
        self, scope: list[FileSnapshot], action: AddFileToScopeAction
    ) -> FileAddedToScopeResult:
        pass


def _updated_snapshot(existing: FileSnapshot | None, path: str, content: str) -> FileSnapshot:
    if existing is not None:
        return existing.model_copy(update={"content": content})
    return FileSnapshot(path=path, content=content, language=guess_language(path))


def _already_in_scope(action: AddFileToScopeAction) -> FileAddedToScopeResult:
    return FileAddedToScopeResult(
        path=action.path,
        added=True,
        source=action.source,
        reason=ALREADY_IN_SCOPE_REASON,
    )


class InMemoryExecutor(ActionExecutor):
    """
    Executor that never touches disk or spawns processes.

    File edits apply to the scope copy only. Commands are delegated to
    command_runner; add_file_to_scope cannot resolve content and only
    succeeds for files that are already in scope.
    """

    def __init__(self, command_runner: CommandRunner | None = None):
        self.command_runner = command_runner

    async def _file_edit(self, scope: list[FileSnapshot], action: FileEditAction) -> FileEditResult:
        existing = find_snapshot(scope, action.path)
        base_content = existing.content if existing is not None else ""
        new_content, result = apply_edit_to_content(base_content, action)
        if result.applied:
            upsert_snapshot(scope, _updated_snapshot(existing, action.path, new_content))
        return result

    async def _command(self, action: CommandAction) -> CommandResult:
        if self.command_runner is None:
            return CommandResult(
                command=action.command,
                exit_code=None,
                stdout="",
                stderr="no command runner configured",
            )
        try:
            return await self.command_runner(action.command, action.cwd)
        except Exception as e:
            logger.info(f"Command runner failed for {action.command!r}: {e}")
            return CommandResult(command=action.command, exit_code=None, stdout="", stderr=str(e))

    async def _add_file_to_scope(
        self, scope: list[FileSnapshot], action: AddFileToScopeAction
    ) -> FileAddedToScopeResult:
        if find_snapshot(scope, action.path) is not None:
            return _already_in_scope(action)
        return FileAddedToScopeResult(
            path=action.path,
            added=False,
            source=action.source,
            reason="add_file_to_scope is not wired to a backing store in the in-memory executor",
        )


class DiskExecutor(ActionExecutor):
    """
    Executor that applies actions to a real project directory.

    With dry_run set, nothing is written and no process is spawned: edits
    update the scope only and commands return a synthetic result.
    """

    def __init__(
        self,
        project_root: Path | str = ".",
        dry_run: bool = True,
        command_timeout: float | None = 300.0,
    ):
        self.project_root = Path(project_root).expanduser().resolve()
        self.dry_run = dry_run
        self.command_timeout = command_timeout

    def resolve_path(self, path: str) -> Path:
        """Resolve a scope path against the project root."""
        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            return candidate
        return self.project_root / candidate

    async def _file_edit(self, scope: list[FileSnapshot], action: FileEditAction) -> FileEditResult:
        abs_path = self.resolve_path(action.path)
        existing = find_snapshot(scope, action.path)

        if existing is not None:
            base_content = existing.content
        elif abs_path.is_file():
            try:
                base_content = abs_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                return FileEditResult(path=action.path, applied=False, error=f"Could not read file: {e}")
        else:
            base_content = ""

        new_content, result = apply_edit_to_content(base_content, action)
        if not result.applied:
            return result

        if not self.dry_run:
            try:
                abs_path.parent.mkdir(parents=True, exist_ok=True)
                abs_path.write_text(new_content, encoding="utf-8")
            except OSError as e:
                logger.info(f"Write failed for {abs_path}: {e}")
                return FileEditResult(path=action.path, applied=False, error=f"Could not write file: {e}")

        upsert_snapshot(scope, _updated_snapshot(existing, action.path, new_content))
        return result

    async def _command(self, action: CommandAction) -> CommandResult:
        if self.dry_run:
            return CommandResult(command=action.command, exit_code=0, stdout=DRY_RUN_STDOUT, stderr="")

        cwd = self.resolve_path(action.cwd) if action.cwd else self.project_root
        return await run_shell_command(action.command, cwd, self.command_timeout)

    async def _add_file_to_scope(
        self, scope: list[FileSnapshot], action: AddFileToScopeAction
    ) -> FileAddedToScopeResult:
        if find_snapshot(scope, action.path) is not None:
            return _already_in_scope(action)

        def not_added(reason: str) -> FileAddedToScopeResult:
            return FileAddedToScopeResult(path=action.path, added=False, source=action.source, reason=reason)

        if self.dry_run:
            return not_added("dryRun: file not actually loaded from disk")

        abs_path = self.resolve_path(action.path)
        if not abs_path.exists():
            return not_added("File does not exist on disk")

        try:
            content = abs_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return not_added(f"Could not read file: {e}")

        upsert_snapshot(
            scope,
            FileSnapshot(path=action.path, content=content, language=guess_language(action.path)),
        )
        return FileAddedToScopeResult(
            path=action.path,
            added=True,
            source=action.source,
            reason=action.description,
        )


async def run_shell_command(command: str, cwd: Path, timeout: float | None = None) -> CommandResult:
    """
    Run a shell command and capture its outcome.

    Never raises for command failures: a non-zero exit, a spawn error or a
    timeout all come back as a CommandResult. Cancellation kills the
    process and propagates.

    Args:
        command: Shell command line
        cwd: Working directory
        timeout: Seconds before the process is killed (None = no limit)

    Returns:
        CommandResult with exit_code None when no exit status is known
    """
    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.info(f"Could not start {command!r}: {e}")
        return CommandResult(command=command, exit_code=None, stdout="", stderr=str(e))

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        logger.info(f"Command timed out after {timeout}s: {command!r}")
        return CommandResult(
            command=command,
            exit_code=None,
            stdout="",
            stderr=f"Command timed out after {timeout} seconds",
        )
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    if proc.returncode != 0:
        logger.info(f"Command exited with {proc.returncode}: {command!r}")

    return CommandResult(
        command=command,
        exit_code=proc.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()


def make_executor(
    session: "ChatSession",
    config: "MissionConfig",
) -> ActionExecutor:
    """Default executor for a session: disk-backed, honouring its dry_run flag."""
    return DiskExecutor(
        project_root=config.execution.root_path,
        dry_run=session.dry_run,
        command_timeout=config.execution.command_timeout_seconds,
    )


__all__ = [
    "ALREADY_IN_SCOPE_REASON",
    "ActionExecutor",
    "CommandRunner",
    "DRY_RUN_STDOUT",
    "DiskExecutor",
    "ExecutionOutcome",
    "InMemoryExecutor",
    "apply_edit_to_content",
    "make_executor",
    "run_shell_command",
]
