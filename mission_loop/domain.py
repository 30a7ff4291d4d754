"""
Domain model for the Actor / Executor / Historian turn loop.

Pydantic models for actions, action results, role inputs/outputs and the
session aggregate. Attributes are snake_case in Python; the wire form
(what the LLM reads and writes, and what the HTTP layer returns) uses the
camelCase names via aliases.
"""

from __future__ import annotations

import time
from pathlib import PurePath
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    model_serializer,
)
from pydantic.alias_generators import to_camel

NextExpected = Literal["user", "tool_results", "done"]
EDIT_MODES: tuple[str, ...] = ("replace_file", "replace_range")
ValidationTarget = Literal["actor", "historian"]

ACTION_KINDS: tuple[str, ...] = ("message_to_user", "file_edit", "command", "add_file_to_scope")
NEXT_EXPECTED_VALUES: tuple[str, ...] = ("user", "tool_results", "done")


class WireModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to the camelCase JSON-compatible form, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# -----------------------------------------------------------------------------
# Files in scope
# -----------------------------------------------------------------------------


class FileSnapshot(WireModel):
    """One file in the Actor's working set."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    path: str
    content: str
    language: str | None = None
    is_primary: bool | None = None


class TextRange(WireModel):
    """Character offsets into a file's content."""

    start_offset: int
    end_offset: int


_LANGUAGE_BY_SUFFIX = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".json": "json",
    ".md": "markdown",
    ".rs": "rust",
    ".go": "go",
    ".java": "java",
    ".rb": "ruby",
    ".sh": "shell",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".toml": "toml",
    ".html": "html",
    ".css": "css",
}


def guess_language(path: str) -> str | None:
    """Guess a language hint from a file extension."""
    return _LANGUAGE_BY_SUFFIX.get(PurePath(path).suffix.lower())


def find_snapshot(files: list[FileSnapshot], path: str) -> FileSnapshot | None:
    """Return the snapshot for path, if it is in scope."""
    for snap in files:
        if snap.path == path:
            return snap
    return None


def upsert_snapshot(files: list[FileSnapshot], snap: FileSnapshot) -> None:
    """Replace the snapshot with the same path in place, else append it."""
    for i, existing in enumerate(files):
        if existing.path == snap.path:
            files[i] = snap
            return
    files.append(snap)


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------


class MessageToUserAction(WireModel):
    """Talk to the human. Produces no ActionResult."""

    kind: Literal["message_to_user"] = "message_to_user"
    message: str = ""
    message_type: str | None = None  # info, question, warning, error


class FileEditAction(WireModel):
    """Modify one file, either wholesale or by character range."""

    kind: Literal["file_edit"] = "file_edit"
    path: str = ""
    mode: str = "replace_file"
    new_content: str | None = None
    range: TextRange | None = None
    range_new_text: str | None = None
    explanation: str | None = None


class CommandAction(WireModel):
    """Run a shell/build/test command."""

    kind: Literal["command"] = "command"
    command: str = ""
    cwd: str | None = None
    purpose: str | None = None  # run_tests, run_build, diagnostic, other


class AddFileToScopeAction(WireModel):
    """Promote an external file into the working set for later steps."""

    kind: Literal["add_file_to_scope"] = "add_file_to_scope"
    path: str = ""
    source: str | None = None  # fs, search, tool_output, other
    description: str | None = None


AgentAction = Annotated[
    Union[MessageToUserAction, FileEditAction, CommandAction, AddFileToScopeAction],
    Field(discriminator="kind"),
]


# -----------------------------------------------------------------------------
# Action results
# -----------------------------------------------------------------------------


class FileEditResult(WireModel):
    kind: Literal["file_edit_result"] = "file_edit_result"
    path: str
    applied: bool
    error: str | None = None


class CommandResult(WireModel):
    # exit_code is None when no exit status is known; it is always present on the wire
    kind: Literal["command_result"] = "command_result"
    command: str
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""

    @model_serializer(mode="wrap")
    def _keep_exit_code(self, handler: SerializerFunctionWrapHandler, info: SerializationInfo) -> dict[str, Any]:
        data = handler(self)
        data.setdefault("exitCode" if info.by_alias else "exit_code", self.exit_code)
        return data


class ValidationResult(WireModel):
    """Outcome of checking an LLM output against the expected schema."""

    kind: Literal["validation_result"] = "validation_result"
    target: ValidationTarget
    success: bool
    errors: list[str] | None = None
    raw_output_snippet: str | None = None


class FileAddedToScopeResult(WireModel):
    kind: Literal["file_added_to_scope_result"] = "file_added_to_scope_result"
    path: str
    added: bool
    source: str | None = None
    reason: str | None = None


ActionResult = Annotated[
    Union[FileEditResult, CommandResult, ValidationResult, FileAddedToScopeResult],
    Field(discriminator="kind"),
]


# -----------------------------------------------------------------------------
# Role inputs and outputs
# -----------------------------------------------------------------------------


class ActorInput(WireModel):
    goal: str
    user_request: str
    history_summary: str
    files_in_scope: list[FileSnapshot] = Field(default_factory=list)
    last_tool_results: list[ActionResult] | None = None


class ActorOutput(WireModel):
    step_summary: str | None = None
    actions: list[AgentAction] = Field(default_factory=list)
    next_expected: NextExpected


class UserTurnDelta(WireModel):
    message: str


class ActorTurnDelta(WireModel):
    step_summary: str | None = None
    actions: list[AgentAction] = Field(default_factory=list)
    next_expected: NextExpected

    @classmethod
    def from_output(cls, output: ActorOutput) -> "ActorTurnDelta":
        return cls(
            step_summary=output.step_summary,
            actions=list(output.actions),
            next_expected=output.next_expected,
        )


class ToolResultsDelta(WireModel):
    results: list[ActionResult] = Field(default_factory=list)


class HistorianInput(WireModel):
    goal: str
    previous_history_summary: str
    user_turn: UserTurnDelta | None = None
    actor_turn: ActorTurnDelta | None = None
    tool_results: ToolResultsDelta | None = None


class HistorianOutput(WireModel):
    history_summary: str


# -----------------------------------------------------------------------------
# Session aggregate
# -----------------------------------------------------------------------------


class ChatTurn(WireModel):
    """
    One committed turn. Immutable once created.

    actor_output is None when the Actor never produced a valid output
    within the allowed attempts and no actions ran.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: int
    user_message: str
    actor_input: ActorInput
    actor_output: ActorOutput | None = None
    tool_results: list[ActionResult] = Field(default_factory=list)
    historian_input: HistorianInput
    historian_output: HistorianOutput


class ChatSession(WireModel):
    """
    Mutable session aggregate owned by the SessionStore.

    Only SessionStore.commit() replaces files_in_scope, history_summary and
    last_tool_results, and only together with appending a ChatTurn.
    """

    id: str
    goal: str
    history_summary: str
    files_in_scope: list[FileSnapshot] = Field(default_factory=list)
    last_tool_results: list[ActionResult] | None = None
    turns: list[ChatTurn] = Field(default_factory=list)
    dry_run: bool = True
    active_paths: list[str] | None = None
    created_at: float = Field(default_factory=time.time)

    def visible_files(self) -> list[FileSnapshot]:
        """Files sent to the Actor: the active subset when one is set."""
        if self.active_paths is None:
            return list(self.files_in_scope)
        active = set(self.active_paths)
        return [f for f in self.files_in_scope if f.path in active]


__all__ = [
    "ACTION_KINDS",
    "EDIT_MODES",
    "ActionResult",
    "ActorInput",
    "ActorOutput",
    "ActorTurnDelta",
    "AddFileToScopeAction",
    "AgentAction",
    "ChatSession",
    "ChatTurn",
    "CommandAction",
    "CommandResult",
    "FileAddedToScopeResult",
    "FileEditAction",
    "FileEditResult",
    "FileSnapshot",
    "HistorianInput",
    "HistorianOutput",
    "MessageToUserAction",
    "NEXT_EXPECTED_VALUES",
    "NextExpected",
    "TextRange",
    "ToolResultsDelta",
    "UserTurnDelta",
    "ValidationResult",
    "WireModel",
    "find_snapshot",
    "guess_language",
    "upsert_snapshot",
]
