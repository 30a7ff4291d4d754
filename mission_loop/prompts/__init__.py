"""Prompt construction for the Actor and Historian roles."""

from .few_shot import (
    FewShotConfig,
    FewShotExample,
    build_few_shot_prompt,
    json_few_shot_config,
    parse_json_output,
    run_few_shot,
)
from .roles import RolePrompt, actor_role, historian_role
from .schema_hint import describe_shape_from_examples

__all__ = [
    "FewShotConfig",
    "FewShotExample",
    "RolePrompt",
    "actor_role",
    "build_few_shot_prompt",
    "describe_shape_from_examples",
    "historian_role",
    "json_few_shot_config",
    "parse_json_output",
    "run_few_shot",
]
