"""
Few-shot prompt formatting.

Builds a prompt from a base instruction, worked input/output examples and
the new input, and parses the completion back into the output type.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from ..errors import OutputParseError
from ..llm.base import CompletionOptions, LLMAdapter

I = TypeVar("I")
O = TypeVar("O")

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


@dataclass
class FewShotExample(Generic[I, O]):
    input: I
    output: O


@dataclass
class FewShotConfig(Generic[I, O]):
    """How examples are rendered and completions parsed."""

    serialize_input: Callable[[I], str]
    serialize_output: Callable[[O], str]
    parse_output: Callable[[str], O]
    input_label: str = "Input"
    output_label: str = "Output"
    example_header: str = "Example"
    include_example_index: bool = True
    separator: str = "\n\n"


def to_json_text(value: Any) -> str:
    """Serialize a model (camelCase, optionals dropped) or plain value as indented JSON."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(value, indent=2)


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if any."""
    text = raw.strip()
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def parse_json_output(raw: str) -> Any:
    """
    Parse a JSON completion.

    Raises:
        OutputParseError: If the text is not valid JSON
    """
    text = strip_code_fences(raw)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise OutputParseError(f"Output is not valid JSON: {e}", raw=raw) from e


def json_few_shot_config() -> FewShotConfig[Any, Any]:
    """JSON in, JSON out. Parsed output is the raw decoded value, validated later."""
    return FewShotConfig(
        serialize_input=to_json_text,
        serialize_output=to_json_text,
        parse_output=parse_json_output,
    )


def build_few_shot_prompt(
    base_prompt: str,
    examples: Sequence[FewShotExample[I, O]],
    new_input: I,
    config: FewShotConfig[I, O],
) -> str:
    """
    Build a few-shot prompt.

    Args:
        base_prompt: Role instructions
        examples: Worked examples shown before the new case
        new_input: Input the model should respond to
        config: Serializers and labels

    Returns:
        Prompt text ending with the output label, ready for completion
    """
    sections = [base_prompt.strip()]

    if examples:
        sections.append("Here are some examples of the desired behavior. Follow the same pattern.")
        for idx, example in enumerate(examples, start=1):
            index_suffix = f" {idx}" if config.include_example_index else ""
            sections.append(
                f"{config.example_header}{index_suffix}:\n"
                f"{config.input_label}:\n{config.serialize_input(example.input)}\n\n"
                f"{config.output_label}:\n{config.serialize_output(example.output)}"
            )

    sections.append(
        "Now respond to the following case using the same format.\n"
        f"{config.input_label}:\n{config.serialize_input(new_input)}\n\n"
        f"{config.output_label}:"
    )

    return config.separator.join(sections) + " "


async def run_few_shot(
    base_prompt: str,
    llm: LLMAdapter,
    examples: Sequence[FewShotExample[I, O]],
    new_input: I,
    config: FewShotConfig[I, O],
    options: CompletionOptions | None = None,
) -> tuple[str, O]:
    """
    Build the prompt, call the LLM and parse its answer.

    Returns:
        Tuple of (raw completion, parsed output)

    Raises:
        LLMError: On transport failure
        OutputParseError: If the completion cannot be parsed
    """
    prompt = build_few_shot_prompt(base_prompt, examples, new_input, config)
    raw = (await llm.complete(prompt, options)).strip()
    return raw, config.parse_output(raw)


__all__ = [
    "FewShotConfig",
    "FewShotExample",
    "build_few_shot_prompt",
    "json_few_shot_config",
    "parse_json_output",
    "run_few_shot",
    "strip_code_fences",
    "to_json_text",
]
