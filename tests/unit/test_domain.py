"""Tests for the domain model: wire form, discriminated unions, scope helpers."""

import pytest
from pydantic import TypeAdapter, ValidationError

from mission_loop.domain import (
    ActionResult,
    ActorOutput,
    AgentAction,
    ChatSession,
    ChatTurn,
    CommandAction,
    CommandResult,
    FileEditAction,
    FileSnapshot,
    HistorianInput,
    HistorianOutput,
    ActorInput,
    TextRange,
    ValidationResult,
    find_snapshot,
    guess_language,
    upsert_snapshot,
)


class TestWireForm:
    """camelCase on the wire, snake_case in Python."""

    def test_actor_input_dumps_camel_case(self):
        """ActorInput uses the camelCase field names the LLM sees."""
        actor_input = ActorInput(
            goal="g",
            user_request="u",
            history_summary="h",
            files_in_scope=[FileSnapshot(path="a.py", content="x")],
        )
        wire = actor_input.to_wire()
        assert set(wire) == {"goal", "userRequest", "historySummary", "filesInScope"}
        assert wire["filesInScope"] == [{"path": "a.py", "content": "x"}]

    def test_none_fields_omitted(self):
        """Unset optionals do not appear on the wire."""
        wire = FileEditAction(path="a.py", new_content="x").to_wire()
        assert wire == {"kind": "file_edit", "path": "a.py", "mode": "replace_file", "newContent": "x"}

    def test_command_result_keeps_null_exit_code(self):
        """exitCode is present even when no exit status is known."""
        wire = CommandResult(command="ls", exit_code=None, stderr="boom").to_wire()
        assert "exitCode" in wire
        assert wire["exitCode"] is None

    def test_parse_from_camel_case(self):
        """Models accept the camelCase keys produced by the LLM."""
        output = ActorOutput.model_validate({
            "stepSummary": "s",
            "actions": [{"kind": "file_edit", "path": "a", "mode": "replace_range",
                         "range": {"startOffset": 1, "endOffset": 3}, "rangeNewText": "Z"}],
            "nextExpected": "tool_results",
        })
        edit = output.actions[0]
        assert isinstance(edit, FileEditAction)
        assert edit.range == TextRange(start_offset=1, end_offset=3)
        assert edit.range_new_text == "Z"


class TestDiscriminatedUnions:
    """AgentAction and ActionResult dispatch on kind."""

    def test_action_union_selects_variant(self):
        adapter = TypeAdapter(AgentAction)
        action = adapter.validate_python({"kind": "command", "command": "npm test", "purpose": "run_tests"})
        assert isinstance(action, CommandAction)
        assert action.purpose == "run_tests"

    def test_unknown_action_kind_rejected(self):
        with pytest.raises(ValidationError):
            TypeAdapter(AgentAction).validate_python({"kind": "delete_everything"})

    def test_result_union_selects_variant(self):
        result = TypeAdapter(ActionResult).validate_python(
            {"kind": "validation_result", "target": "actor", "success": False, "errors": ["x"]}
        )
        assert isinstance(result, ValidationResult)
        assert result.errors == ["x"]

    def test_action_fields_default(self):
        """Every action field defaults, so a bare kind is a valid action."""
        action = TypeAdapter(AgentAction).validate_python({"kind": "file_edit"})
        assert action.path == ""
        assert action.mode == "replace_file"
        assert action.new_content is None


class TestScopeHelpers:
    """find_snapshot / upsert_snapshot / guess_language."""

    def test_find_snapshot(self):
        files = [FileSnapshot(path="a", content="1"), FileSnapshot(path="b", content="2")]
        assert find_snapshot(files, "b").content == "2"
        assert find_snapshot(files, "c") is None

    def test_upsert_replaces_in_place(self):
        """Replacing keeps the position of the existing entry."""
        files = [FileSnapshot(path="a", content="1"), FileSnapshot(path="b", content="2")]
        upsert_snapshot(files, FileSnapshot(path="a", content="new"))
        assert [f.path for f in files] == ["a", "b"]
        assert files[0].content == "new"

    def test_upsert_appends_new_path(self):
        files = [FileSnapshot(path="a", content="1")]
        upsert_snapshot(files, FileSnapshot(path="c", content="3"))
        assert [f.path for f in files] == ["a", "c"]

    def test_snapshots_are_frozen(self):
        snap = FileSnapshot(path="a", content="1")
        with pytest.raises(ValidationError):
            snap.content = "2"

    @pytest.mark.parametrize(
        "path,expected",
        [("src/app.ts", "typescript"), ("main.PY", "python"), ("README", None), ("conf.yaml", "yaml")],
    )
    def test_guess_language(self, path, expected):
        assert guess_language(path) == expected


class TestChatSession:
    """Session aggregate and turn records."""

    def test_visible_files_without_filter(self):
        session = ChatSession(
            id="s",
            goal="g",
            history_summary="h",
            files_in_scope=[FileSnapshot(path="a", content=""), FileSnapshot(path="b", content="")],
        )
        assert [f.path for f in session.visible_files()] == ["a", "b"]

    def test_visible_files_with_active_paths(self):
        """active_paths narrows the planner's view, not the scope."""
        session = ChatSession(
            id="s",
            goal="g",
            history_summary="h",
            files_in_scope=[FileSnapshot(path="a", content=""), FileSnapshot(path="b", content="")],
            active_paths=["b", "missing"],
        )
        assert [f.path for f in session.visible_files()] == ["b"]
        assert len(session.files_in_scope) == 2

    def test_new_session_defaults(self):
        session = ChatSession(id="s", goal="g", history_summary="h")
        assert session.dry_run is True
        assert session.last_tool_results is None
        assert session.turns == []
        assert "lastToolResults" not in session.to_wire()

    def test_chat_turn_is_frozen(self):
        turn = ChatTurn(
            id=0,
            user_message="m",
            actor_input=ActorInput(goal="g", user_request="m", history_summary="h"),
            actor_output=None,
            historian_input=HistorianInput(goal="g", previous_history_summary="h"),
            historian_output=HistorianOutput(history_summary="h2"),
        )
        with pytest.raises(ValidationError):
            turn.id = 1
        assert "actorOutput" not in turn.to_wire()
