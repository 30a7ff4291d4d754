"""
Actor and Historian role prompts.

Each role is a base instruction plus worked examples, rendered through the
JSON few-shot formatter. The Actor's instructions end with a shape hint
derived from its own example outputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..domain import (
    ActorInput,
    ActorOutput,
    ActorTurnDelta,
    AddFileToScopeAction,
    CommandAction,
    CommandResult,
    FileEditAction,
    FileEditResult,
    FileSnapshot,
    HistorianInput,
    HistorianOutput,
    ToolResultsDelta,
    UserTurnDelta,
)
from ..llm.base import CompletionOptions
from .few_shot import FewShotConfig, FewShotExample, json_few_shot_config
from .schema_hint import describe_shape_from_examples

ACTOR_BASE_PROMPT = """
You are the **Actor** in a coding loop for editing code and running tests.

You receive an ActorInput JSON and must respond with an ActorOutput JSON.

ActorInput fields:
- goal: overall objective for this session.
- userRequest: most recent high-level request from the user.
- historySummary: short narrative of what has happened so far.
- filesInScope: current working set of files you are allowed to edit.
- lastToolResults: (optional) results from the previous step
  (validation failures, file edit results, command results,
   file_added_to_scope_result, ...).

ActorOutput fields (as seen in the examples):
- stepSummary: short description of what you will do this step.
- actions: an array of actions to take in this step:
  - file_edit (mode "replace_file" with newContent, or "replace_range"
    with range {startOffset, endOffset} and rangeNewText)
  - command
  - message_to_user
  - add_file_to_scope
- nextExpected: "user" | "tool_results" | "done"

There is a schema validator sitting between you and the tools.
If you produce an invalid ActorOutput (wrong field names, wrong types,
missing required keys like nextExpected), the validator will emit a
validation_result in lastToolResults, and your actions will NOT be executed.

Your job on each step:
1. Read goal, userRequest, historySummary, filesInScope, and lastToolResults.
   - If lastToolResults contains a failed validation_result, fix your
     output structure so that validation passes this time.
   - If lastToolResults contains a file_added_to_scope_result, note whether
     the file was added and plan the next step accordingly.
2. Propose a small, coherent set of actions to move the goal forward.
3. Use actions:
   - file_edit for concrete code edits in filesInScope.
   - command for running tests or other shell commands.
   - add_file_to_scope when you need a file that is not yet in filesInScope
     (it will be loaded from disk if it exists).
   - message_to_user when you need to ask the user something directly.
4. Set nextExpected:
   - "tool_results" if you want to see the outcome of your actions.
   - "user" if you expect the next step to be a user message.
   - "done" only if the goal is fully satisfied.

IMPORTANT:
- Output ONLY JSON for ActorOutput, no extra commentary.
- Match the structure of the ActorOutput examples exactly.
""".strip()

HISTORIAN_BASE_PROMPT = """
You are the **Historian** in a coding loop.

You receive a HistorianInput JSON and must respond with a HistorianOutput JSON.

HistorianInput fields:
- goal
- previousHistorySummary
- userTurn
- actorTurn (absent when the Actor never produced a valid output)
- toolResults: results for the current step, which may include
  file_edit_result, command_result, validation_result and
  file_added_to_scope_result.

Your job:
- Rewrite historySummary from scratch as a short mission log (<= ~200 words),
  including the goal, the latest user request, what the Actor attempted this
  step, and what worked and what failed.
- When you see validation_result entries, state whether the Actor's output
  passed or failed validation and whether any actions were executed.
- When you see a file_added_to_scope_result, note whether the file was added
  to the working set.

You MUST respond with JSON of the shape:

{
  "historySummary": string
}

Output only JSON, no extra commentary.
""".strip()


@dataclass
class RolePrompt:
    """Everything needed to render one role's prompt."""

    base_prompt: str
    examples: list[FewShotExample[Any, Any]] = field(default_factory=list)
    config: FewShotConfig[Any, Any] = field(default_factory=json_few_shot_config)
    options: CompletionOptions = field(default_factory=CompletionOptions)


def actor_examples() -> list[FewShotExample[ActorInput, ActorOutput]]:
    """Worked Actor examples: edit-and-test, and pulling a file into scope."""
    return [
        FewShotExample(
            input=ActorInput(
                goal="Improve a log message.",
                user_request="Update the log and run tests.",
                history_summary="User wants a better log message; tests should still pass.",
                files_in_scope=[FileSnapshot(path="app.ts", content="console.log('Old');")],
                last_tool_results=[],
            ),
            output=ActorOutput(
                step_summary="Change the log message and run tests.",
                actions=[
                    FileEditAction(
                        path="app.ts",
                        mode="replace_file",
                        new_content="console.log('Improved');",
                    ),
                    CommandAction(command="npm test", purpose="run_tests"),
                ],
                next_expected="tool_results",
            ),
        ),
        FewShotExample(
            input=ActorInput(
                goal="Inspect a config file and summarize its contents.",
                user_request="Figure out what's in config/app.json.",
                history_summary="User wants a summary of config/app.json but it is not yet in scope.",
                files_in_scope=[],
                last_tool_results=[],
            ),
            output=ActorOutput(
                step_summary="Add config/app.json to scope so I can read and summarize it next.",
                actions=[AddFileToScopeAction(path="config/app.json")],
                next_expected="tool_results",
            ),
        ),
    ]


def historian_examples() -> list[FewShotExample[HistorianInput, HistorianOutput]]:
    edit = FileEditAction(path="app.ts", mode="replace_file", new_content="console.log('Improved');")
    test = CommandAction(command="npm test", purpose="run_tests")
    return [
        FewShotExample(
            input=HistorianInput(
                goal="Improve a log message.",
                previous_history_summary="Initial request: improve logging.",
                user_turn=UserTurnDelta(message="Update the log and run tests."),
                actor_turn=ActorTurnDelta(
                    step_summary="We will change the log and run tests.",
                    actions=[edit, test],
                    next_expected="tool_results",
                ),
                tool_results=ToolResultsDelta(
                    results=[
                        FileEditResult(path="app.ts", applied=True),
                        CommandResult(command="npm test", exit_code=0, stdout="All tests passed", stderr=""),
                    ]
                ),
            ),
            output=HistorianOutput(
                history_summary="We updated the log message and successfully ran tests.",
            ),
        ),
    ]


def actor_role(temperature: float = 0.0, max_tokens: int = 768) -> RolePrompt:
    examples = actor_examples()
    hint = describe_shape_from_examples([ex.output for ex in examples], "ActorOutput")
    return RolePrompt(
        base_prompt=f"{ACTOR_BASE_PROMPT}\n\n{hint}",
        examples=examples,
        options=CompletionOptions(temperature=temperature, max_tokens=max_tokens),
    )


def historian_role(temperature: float = 0.0, max_tokens: int = 512) -> RolePrompt:
    return RolePrompt(
        base_prompt=HISTORIAN_BASE_PROMPT,
        examples=historian_examples(),
        options=CompletionOptions(temperature=temperature, max_tokens=max_tokens),
    )


__all__ = [
    "ACTOR_BASE_PROMPT",
    "HISTORIAN_BASE_PROMPT",
    "RolePrompt",
    "actor_examples",
    "actor_role",
    "historian_examples",
    "historian_role",
]
