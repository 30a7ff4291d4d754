"""
Turn orchestration loop.

One turn:
  AWAITING_ACTOR_OUTPUT -> VALIDATING -> (retry) -> EXECUTING
  -> SUMMARIZING -> COMMITTED

The Actor gets a bounded number of attempts to produce a valid output;
each attempt's validation_result is kept. If every attempt fails, no action
runs but the Historian still summarizes the failure. The session is
written once, at commit; any exception before that leaves it untouched.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from .config import MissionConfig, default_config
from .domain import (
    ActionResult,
    ActorInput,
    ActorOutput,
    ActorTurnDelta,
    ChatSession,
    ChatTurn,
    FileSnapshot,
    HistorianInput,
    HistorianOutput,
    ToolResultsDelta,
    UserTurnDelta,
)
from .errors import HistorianOutputError, LLMTimeoutError, OutputParseError
from .executor import ActionExecutor, make_executor
from .llm.base import LLMAdapter
from .prompts.few_shot import run_few_shot
from .prompts.roles import RolePrompt, actor_role, historian_role
from .session_store import SessionStore
from .validation import (
    RetryDecision,
    RetryPolicy,
    ValidationOutcome,
    make_snippet,
    make_validation_result,
    parse_historian_output,
    validate_actor_output,
    validate_historian_output,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ExecutorFactory = Callable[[ChatSession], ActionExecutor]


class TurnState(Enum):
    """Where the orchestrator is within a turn."""

    IDLE = "idle"
    AWAITING_ACTOR_OUTPUT = "awaiting_actor_output"
    VALIDATING = "validating"
    EXECUTING = "executing"
    SUMMARIZING = "summarizing"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass
class ActorStepResult:
    """Outcome of the Actor's validate-and-retry loop."""

    actor_input: ActorInput
    actor_output: ActorOutput | None
    validation_results: list[ActionResult] = field(default_factory=list)
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.actor_output is not None


async def _with_timeout(call: Awaitable[T], timeout: float | None, role: str) -> T:
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise LLMTimeoutError(f"{role} call timed out after {timeout} seconds") from e


async def run_actor_step(
    llm: LLMAdapter,
    role: RolePrompt,
    actor_input: ActorInput,
    timeout: float | None = None,
) -> tuple[str, Any]:
    """
    Ask the Actor for one ActorOutput.

    Returns:
        Tuple of (raw completion, parsed JSON value). The parsed value is
        not yet validated.

    Raises:
        LLMError: On transport failure or timeout
        OutputParseError: If the completion is not JSON
    """
    return await _with_timeout(
        run_few_shot(role.base_prompt, llm, role.examples, actor_input, role.config, role.options),
        timeout,
        "Actor",
    )


async def run_historian_update(
    llm: LLMAdapter,
    role: RolePrompt,
    historian_input: HistorianInput,
    timeout: float | None = None,
) -> tuple[str, Any]:
    """Ask the Historian for a rewritten history summary (raw, parsed JSON)."""
    return await _with_timeout(
        run_few_shot(role.base_prompt, llm, role.examples, historian_input, role.config, role.options),
        timeout,
        "Historian",
    )


class TurnOrchestrator:
    """
    Runs user turns against sessions held in a SessionStore.

    Usage:
        store = SessionStore(project_root=".")
        orchestrator = TurnOrchestrator(store, actor_llm, historian_llm)
        session = store.create("fix log message", ["app.ts"], dry_run=True)
        session = await orchestrator.run_turn(session.id, "Update the log and run tests")
    """

    def __init__(
        self,
        store: SessionStore,
        actor_llm: LLMAdapter,
        historian_llm: LLMAdapter | None = None,
        config: MissionConfig | None = None,
        executor_factory: ExecutorFactory | None = None,
        actor_prompt: RolePrompt | None = None,
        historian_prompt: RolePrompt | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            store: Session repository
            actor_llm: Adapter for the planner role
            historian_llm: Adapter for the summarizer role (default: actor_llm)
            config: Mission configuration (uses default if None)
            executor_factory: Builds the executor for a session
                (default: disk-backed, honouring the session's dry_run)
            actor_prompt: Actor role prompt (default: built-in examples)
            historian_prompt: Historian role prompt (default: built-in examples)
        """
        self.store = store
        self.config = config or default_config
        self.actor_llm = actor_llm
        self.historian_llm = historian_llm or actor_llm
        self.executor_factory = executor_factory or (lambda session: make_executor(session, self.config))
        models = self.config.models
        self.actor_prompt = actor_prompt or actor_role(models.temperature, models.actor_max_tokens)
        self.historian_prompt = historian_prompt or historian_role(models.temperature, models.historian_max_tokens)
        self.states: dict[str, TurnState] = {}
        # Most recent transition across all sessions; see state_for
        self.state = TurnState.IDLE

    def state_for(self, session_id: str) -> TurnState:
        """Turn state of one session (IDLE if it never ran a turn here)."""
        return self.states.get(session_id, TurnState.IDLE)

    def _transition(self, state: TurnState, session_id: str) -> None:
        logger.debug(f"[{session_id}] {self.state_for(session_id).value} -> {state.value}")
        self.states[session_id] = state
        self.state = state

    async def run_turn(self, session_id: str, message: str) -> ChatSession:
        """
        Process one user message end to end and commit the turn.

        Args:
            session_id: Target session
            message: The user's request for this turn

        Returns:
            The updated session

        Raises:
            SessionNotFoundError: If the session does not exist
            ValueError: If message is empty
            LLMError: If the planner or summarizer call fails; nothing is committed
            HistorianOutputError: If the Historian never returns a usable summary
        """
        if not isinstance(message, str) or not message.strip():
            raise ValueError("message (non-empty string) is required")

        async with self.store.lock(session_id):
            session = self.store.get(session_id)
            try:
                return await self._run_locked(session, message)
            except BaseException as e:
                self._transition(TurnState.ABORTED, session_id)
                logger.warning(f"[{session_id}] Turn aborted before commit: {type(e).__name__}: {e}")
                raise

    async def _run_locked(self, session: ChatSession, message: str) -> ChatSession:
        actor_input = ActorInput(
            goal=session.goal,
            user_request=message,
            history_summary=session.history_summary,
            files_in_scope=session.visible_files(),
            last_tool_results=list(session.last_tool_results) if session.last_tool_results is not None else None,
        )

        step = await self._actor_with_retries(session.id, actor_input)
        tool_results: list[ActionResult] = list(step.validation_results)
        files_in_scope: list[FileSnapshot] = list(session.files_in_scope)

        if step.ok:
            self._transition(TurnState.EXECUTING, session.id)
            executor = self.executor_factory(session)
            outcome = await executor.execute(files_in_scope, step.actor_output.actions)
            files_in_scope = outcome.files
            tool_results.extend(outcome.results)
        else:
            logger.warning(
                f"[{session.id}] Actor output failed validation {step.attempts} time(s); no actions executed"
            )

        self._transition(TurnState.SUMMARIZING, session.id)
        historian_input = HistorianInput(
            goal=session.goal,
            previous_history_summary=session.history_summary,
            user_turn=UserTurnDelta(message=message),
            actor_turn=ActorTurnDelta.from_output(step.actor_output) if step.ok else None,
            tool_results=ToolResultsDelta(results=tool_results),
        )
        historian_output = await self._historian_with_retries(session.id, historian_input)

        turn = ChatTurn(
            id=len(session.turns),
            user_message=message,
            actor_input=step.actor_input,
            actor_output=step.actor_output,
            tool_results=tool_results,
            historian_input=historian_input,
            historian_output=historian_output,
        )
        committed = self.store.commit(
            session.id,
            files_in_scope=files_in_scope,
            history_summary=historian_output.history_summary,
            tool_results=tool_results,
            turn=turn,
        )
        self._transition(TurnState.COMMITTED, session.id)
        return committed

    async def _actor_with_retries(self, session_id: str, actor_input: ActorInput) -> ActorStepResult:
        turn_config = self.config.turn
        policy = RetryPolicy(max_attempts=turn_config.max_validation_attempts)
        step = ActorStepResult(actor_input=actor_input, actor_output=None)

        while True:
            self._transition(TurnState.AWAITING_ACTOR_OUTPUT, session_id)
            try:
                raw, parsed = await run_actor_step(
                    self.actor_llm,
                    self.actor_prompt,
                    step.actor_input,
                    timeout=turn_config.llm_timeout_seconds,
                )
            except OutputParseError as e:
                parsed = None
                outcome = ValidationOutcome(ok=False, errors=[str(e)])
                snippet = make_snippet(e.raw, turn_config.snippet_limit)
                output = None
            else:
                self._transition(TurnState.VALIDATING, session_id)
                validation = validate_actor_output(parsed)
                outcome = validation.outcome
                output = validation.output
                snippet = make_snippet(parsed if parsed is not None else raw, turn_config.snippet_limit)

            validation_result = make_validation_result("actor", outcome, snippet, turn_config.snippet_limit)
            step.validation_results.append(validation_result)
            decision = policy.record(outcome.ok)
            step.attempts = policy.attempts

            if decision is RetryDecision.ACCEPT:
                step.actor_output = output
                return step
            if decision is RetryDecision.GIVE_UP:
                return step

            logger.warning(
                f"[{session_id}] Actor attempt {policy.attempts}/{policy.max_attempts} invalid: "
                f"{'; '.join(outcome.errors)}"
            )
            # The Actor sees only the latest failure on its retry
            step.actor_input = step.actor_input.model_copy(update={"last_tool_results": [validation_result]})

    async def _historian_with_retries(self, session_id: str, historian_input: HistorianInput) -> HistorianOutput:
        turn_config = self.config.turn
        policy = RetryPolicy(max_attempts=turn_config.historian_max_attempts)
        errors: list[str] = []

        while True:
            try:
                _, parsed = await run_historian_update(
                    self.historian_llm,
                    self.historian_prompt,
                    historian_input,
                    timeout=turn_config.llm_timeout_seconds,
                )
            except OutputParseError as e:
                errors = [str(e)]
                output = None
            else:
                outcome = validate_historian_output(parsed)
                errors = outcome.errors
                output = parse_historian_output(parsed)

            decision = policy.record(output is not None)
            if decision is RetryDecision.ACCEPT:
                return output
            if decision is RetryDecision.GIVE_UP:
                raise HistorianOutputError(
                    f"Historian output invalid after {policy.attempts} attempt(s): {'; '.join(errors)}",
                    errors=errors,
                )
            logger.warning(f"[{session_id}] Historian attempt {policy.attempts} invalid: {'; '.join(errors)}")


__all__ = [
    "ActorStepResult",
    "ExecutorFactory",
    "TurnOrchestrator",
    "TurnState",
    "run_actor_step",
    "run_historian_update",
]
