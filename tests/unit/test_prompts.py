"""Tests for few-shot prompt building, output parsing, shape hints and role prompts."""

import json

import pytest

from mission_loop.domain import ActorOutput, CommandAction, FileEditAction
from mission_loop.errors import OutputParseError
from mission_loop.prompts.few_shot import (
    FewShotConfig,
    FewShotExample,
    build_few_shot_prompt,
    json_few_shot_config,
    parse_json_output,
    run_few_shot,
    strip_code_fences,
    to_json_text,
)
from mission_loop.prompts.roles import (
    ACTOR_BASE_PROMPT,
    HISTORIAN_BASE_PROMPT,
    actor_examples,
    actor_role,
    historian_role,
)
from mission_loop.prompts.schema_hint import describe_shape_from_examples
from mission_loop.validation import validate_actor_output, validate_historian_output


class TestBuildFewShotPrompt:
    """Prompt layout."""

    @pytest.fixture
    def text_config(self):
        return FewShotConfig(serialize_input=str, serialize_output=str, parse_output=str)

    def test_layout(self, text_config):
        prompt = build_few_shot_prompt(
            "Base instructions.",
            [FewShotExample(input="in1", output="out1"), FewShotExample(input="in2", output="out2")],
            "new",
            text_config,
        )
        assert prompt.startswith("Base instructions.\n\nHere are some examples")
        assert "Example 1:\nInput:\nin1\n\nOutput:\nout1" in prompt
        assert "Example 2:\nInput:\nin2\n\nOutput:\nout2" in prompt
        assert prompt.endswith("Now respond to the following case using the same format.\nInput:\nnew\n\nOutput: ")

    def test_no_examples(self, text_config):
        prompt = build_few_shot_prompt("Base.", [], "new", text_config)
        assert "Here are some examples" not in prompt
        assert prompt == "Base.\n\nNow respond to the following case using the same format.\nInput:\nnew\n\nOutput: "

    def test_custom_labels_without_index(self):
        config = FewShotConfig(
            serialize_input=str,
            serialize_output=str,
            parse_output=str,
            input_label="Q",
            output_label="A",
            example_header="Case",
            include_example_index=False,
            separator="\n---\n",
        )
        prompt = build_few_shot_prompt("B", [FewShotExample(input="1", output="2")], "3", config)
        assert "Case:\nQ:\n1\n\nA:\n2" in prompt
        assert "\n---\n" in prompt
        assert prompt.endswith("A: ")

    def test_json_serializes_models_camel_case(self):
        output = ActorOutput(actions=[CommandAction(command="ls")], next_expected="user")
        text = to_json_text(output)
        assert json.loads(text) == {"actions": [{"kind": "command", "command": "ls"}], "nextExpected": "user"}
        assert "\n  " in text


class TestParseJsonOutput:
    """Completion parsing."""

    def test_plain_json(self):
        assert parse_json_output('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        raw = '```json\n{"historySummary": "ok"}\n```'
        assert parse_json_output(raw) == {"historySummary": "ok"}
        assert strip_code_fences("```\n[1]\n```") == "[1]"

    def test_invalid_json_raises(self):
        with pytest.raises(OutputParseError) as exc_info:
            parse_json_output("I will now edit the file.")
        assert exc_info.value.raw == "I will now edit the file."
        assert isinstance(exc_info.value, ValueError)


class TestRunFewShot:
    """Prompt, complete, parse."""

    @pytest.mark.asyncio
    async def test_returns_raw_and_parsed(self, scripted_llm):
        llm = scripted_llm(['  {"historySummary": "done"}  '])
        raw, parsed = await run_few_shot("Base", llm, [], {"x": 1}, json_few_shot_config())

        assert raw == '{"historySummary": "done"}'
        assert parsed == {"historySummary": "done"}
        assert llm.prompts[0].startswith("Base")
        assert '"x": 1' in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_parse_failure_propagates(self, scripted_llm):
        llm = scripted_llm(["not json"])
        with pytest.raises(OutputParseError):
            await run_few_shot("Base", llm, [], {}, json_few_shot_config())


class TestDescribeShape:
    """Shape hints derived from examples."""

    def test_merges_examples(self):
        hint = describe_shape_from_examples(
            [{"a": 1, "tags": ["x"]}, {"a": "one", "b": None, "tags": []}],
            "Thing",
        )
        assert hint.startswith("The Thing value must be JSON with the following approximate shape:\n")
        assert "a: number | string;" in hint
        assert "b: null;" in hint
        assert "tags: array<string>;" in hint

    def test_accepts_models(self):
        hint = describe_shape_from_examples(
            [ActorOutput(actions=[FileEditAction(path="a", new_content="x")], next_expected="done")],
            "ActorOutput",
        )
        assert "actions: array<{" in hint
        assert "newContent: string;" in hint
        assert "nextExpected: string;" in hint


class TestRoles:
    """Built-in Actor and Historian prompts."""

    def test_actor_role_appends_shape_hint(self):
        role = actor_role(temperature=0.2, max_tokens=100)
        assert role.base_prompt.startswith(ACTOR_BASE_PROMPT)
        assert "The ActorOutput value must be JSON" in role.base_prompt
        assert role.options.temperature == 0.2
        assert role.options.max_tokens == 100

    def test_historian_role(self):
        role = historian_role()
        assert role.base_prompt == HISTORIAN_BASE_PROMPT
        assert role.options.max_tokens == 512

    def test_examples_pass_validation(self):
        """Every shipped example output is itself valid."""
        for example in actor_examples():
            assert validate_actor_output(example.output.to_wire()).ok
        for example in historian_role().examples:
            assert validate_historian_output(example.output.to_wire()).ok

    def test_actor_examples_cover_edit_and_add_file(self):
        kinds = {action.kind for ex in actor_examples() for action in ex.output.actions}
        assert {"file_edit", "command", "add_file_to_scope"} <= kinds
