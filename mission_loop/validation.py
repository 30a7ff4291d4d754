"""
Validation gate for Actor and Historian outputs.

Lightweight runtime checks on the raw JSON the LLM returns, plus the
retry policy that bounds how often the Actor may try again within a turn.
Validation never raises: every problem becomes an entry in
ValidationOutcome.errors.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel, to_snake

from .domain import (
    ACTION_KINDS,
    NEXT_EXPECTED_VALUES,
    ActorOutput,
    HistorianOutput,
    ValidationResult,
    ValidationTarget,
)

logger = logging.getLogger(__name__)

SNIPPET_LIMIT = 400


@dataclass
class ValidationOutcome:
    """Result of a structural check."""

    ok: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class ActorValidation:
    """ValidationOutcome plus the typed ActorOutput when it passed."""

    outcome: ValidationOutcome
    output: ActorOutput | None = None

    @property
    def ok(self) -> bool:
        return self.outcome.ok


def _format_pydantic_errors(exc: ValidationError) -> list[str]:
    errors = []
    for err in exc.errors():
        loc = ""
        for part in err["loc"]:
            if isinstance(part, int):
                loc += f"[{part}]"
            else:
                loc += f".{part}" if loc else str(part)
        errors.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return errors


def check_actor_output(value: Any) -> ValidationOutcome:
    """
    Structural check of a raw ActorOutput.

    Catches the mistakes LLMs actually make: missing nextExpected,
    unknown action kinds, non-list actions. An unknown kind is reported
    per element and never raises.

    Args:
        value: Parsed JSON from the Actor

    Returns:
        ValidationOutcome with one error string per problem found
    """
    if not isinstance(value, dict):
        return ValidationOutcome(ok=False, errors=["ActorOutput must be an object"])

    errors: list[str] = []

    if "stepSummary" in value and not isinstance(value["stepSummary"], str):
        errors.append("stepSummary must be a string if present")

    if "actions" not in value:
        errors.append("Missing 'actions' field")
    elif not isinstance(value["actions"], list):
        errors.append("'actions' must be an array")
    else:
        for i, action in enumerate(value["actions"]):
            if not isinstance(action, dict):
                errors.append(f"actions[{i}] must be an object")
                continue
            if action.get("kind") not in ACTION_KINDS:
                errors.append(f"actions[{i}].kind is invalid: {action.get('kind')}")

    if "nextExpected" not in value:
        errors.append("Missing 'nextExpected' field")
    elif value["nextExpected"] not in NEXT_EXPECTED_VALUES:
        errors.append(
            f'nextExpected must be "user" | "tool_results" | "done", got {value["nextExpected"]}'
        )

    return ValidationOutcome(ok=not errors, errors=errors)


def _drop_invalid_fields(value: dict[str, Any], exc: ValidationError) -> dict[str, Any] | None:
    """
    Copy of value without the action fields the typed model rejected.

    Returns None if an error does not point at a field of an action.
    """
    actions = [dict(action) for action in value["actions"]]
    for err in exc.errors():
        # ("actions", index, kind, field, ...)
        loc = err["loc"]
        if len(loc) < 4 or loc[0] != "actions" or not isinstance(loc[1], int) or not isinstance(loc[3], str):
            return None
        action = actions[loc[1]]
        for key in {loc[3], to_camel(loc[3]), to_snake(loc[3])}:
            action.pop(key, None)
    return {**value, "actions": actions}


def validate_actor_output(value: Any) -> ActorValidation:
    """
    Validate a raw ActorOutput and coerce it to the typed model.

    Only the structural check can fail the gate. A field with the wrong
    type inside a known-kind action is dropped and falls back to its
    default; the executor then reports what it cannot apply.
    """
    outcome = check_actor_output(value)
    if not outcome.ok:
        return ActorValidation(outcome=outcome)

    try:
        output = ActorOutput.model_validate(value)
    except ValidationError as e:
        errors = _format_pydantic_errors(e)
        pruned = _drop_invalid_fields(value, e)
        if pruned is None:
            return ActorValidation(outcome=ValidationOutcome(ok=False, errors=errors))
        logger.info(f"Ignoring malformed action fields: {errors}")
        try:
            output = ActorOutput.model_validate(pruned)
        except ValidationError as retry_error:
            return ActorValidation(
                outcome=ValidationOutcome(ok=False, errors=_format_pydantic_errors(retry_error)),
            )
    return ActorValidation(outcome=outcome, output=output)


def validate_historian_output(value: Any) -> ValidationOutcome:
    """Check that a raw HistorianOutput has a non-empty historySummary string."""
    if not isinstance(value, dict):
        return ValidationOutcome(ok=False, errors=["HistorianOutput must be an object"])

    summary = value.get("historySummary")
    if not isinstance(summary, str):
        return ValidationOutcome(ok=False, errors=["historySummary must be a string"])
    if not summary.strip():
        return ValidationOutcome(ok=False, errors=["historySummary must not be empty"])
    return ValidationOutcome(ok=True)


def parse_historian_output(value: Any) -> HistorianOutput | None:
    """Typed HistorianOutput, or None if the raw value does not validate."""
    if not validate_historian_output(value).ok:
        return None
    return HistorianOutput.model_validate(value)


def make_snippet(raw: Any, limit: int = SNIPPET_LIMIT) -> str:
    """Render raw output compactly and truncate it to limit characters."""
    if isinstance(raw, str):
        text = raw
    else:
        try:
            text = json.dumps(raw, default=str)
        except (TypeError, ValueError):
            text = repr(raw)
    return text[:limit]


def make_validation_result(
    target: ValidationTarget,
    outcome: ValidationOutcome,
    raw_output_snippet: str | None = None,
    limit: int = SNIPPET_LIMIT,
) -> ValidationResult:
    """Turn a ValidationOutcome into a validation_result ActionResult."""
    snippet = raw_output_snippet[:limit] if raw_output_snippet is not None else None
    return ValidationResult(
        target=target,
        success=outcome.ok,
        errors=None if outcome.ok else list(outcome.errors),
        raw_output_snippet=snippet,
    )


# -----------------------------------------------------------------------------
# Retry policy
# -----------------------------------------------------------------------------


class RetryDecision(Enum):
    """What to do after an attempt has been validated."""

    ACCEPT = "accept"  # valid output, proceed
    RETRY = "retry"  # invalid, attempts remain
    GIVE_UP = "give_up"  # invalid, attempts exhausted


@dataclass
class RetryPolicy:
    """
    Bounded retry counter, independent of any I/O.

    Usage:
        policy = RetryPolicy(max_attempts=3)
        while True:
            ok = attempt()
            decision = policy.record(ok)
            if decision is not RetryDecision.RETRY:
                break
    """

    max_attempts: int = 3
    attempts: int = 0
    decision: RetryDecision | None = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    @property
    def finished(self) -> bool:
        return self.decision in (RetryDecision.ACCEPT, RetryDecision.GIVE_UP)

    def record(self, ok: bool) -> RetryDecision:
        """
        Record one validated attempt.

        Raises:
            RuntimeError: If the policy already reached a terminal decision
        """
        if self.finished:
            raise RuntimeError(f"Retry policy already finished with {self.decision.value}")

        self.attempts += 1
        if ok:
            self.decision = RetryDecision.ACCEPT
        elif self.exhausted:
            self.decision = RetryDecision.GIVE_UP
        else:
            self.decision = RetryDecision.RETRY

        logger.debug(f"Attempt {self.attempts}/{self.max_attempts}: {self.decision.value}")
        return self.decision


__all__ = [
    "ActorValidation",
    "RetryDecision",
    "RetryPolicy",
    "SNIPPET_LIMIT",
    "ValidationOutcome",
    "check_actor_output",
    "make_snippet",
    "make_validation_result",
    "parse_historian_output",
    "validate_actor_output",
    "validate_historian_output",
]
