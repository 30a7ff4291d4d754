"""mission-loop: Actor / Executor / Historian coding turn loop.

A human states a goal; each turn the Actor plans a small set of actions,
a validation gate checks its output (bounded retries), the Executor applies
the actions to a file working set (optionally the real disk and shell), and
the Historian rewrites the running history summary. The session is updated
atomically once per turn.

Layers:
- Domain: pydantic models for actions, results, role inputs and sessions
- Gate: structural validation and the retry policy
- Execution: in-memory and disk-backed executors
- Orchestration: turn state machine and session store
"""

__version__ = "0.1.0"

# Domain
from .domain import (
    ActionResult,
    ActorInput,
    ActorOutput,
    AgentAction,
    ChatSession,
    ChatTurn,
    FileSnapshot,
    HistorianInput,
    HistorianOutput,
)

# Gate
from .validation import RetryDecision, RetryPolicy, validate_actor_output, validate_historian_output

# Execution
from .executor import ActionExecutor, DiskExecutor, ExecutionOutcome, InMemoryExecutor

# Orchestration
from .orchestrator import TurnOrchestrator, TurnState
from .session_store import SessionStore

# LLM & prompts
from .llm import CompletionOptions, LLMAdapter, LoggingLLMAdapter, create_adapter

# Config & errors
from .config import MissionConfig, default_config
from .errors import (
    HistorianOutputError,
    LLMError,
    LLMTimeoutError,
    MissionLoopError,
    OutputParseError,
    SessionNotFoundError,
)

__all__ = [
    # Domain
    "ActionResult",
    "ActorInput",
    "ActorOutput",
    "AgentAction",
    "ChatSession",
    "ChatTurn",
    "FileSnapshot",
    "HistorianInput",
    "HistorianOutput",
    # Gate
    "RetryDecision",
    "RetryPolicy",
    "validate_actor_output",
    "validate_historian_output",
    # Execution
    "ActionExecutor",
    "DiskExecutor",
    "ExecutionOutcome",
    "InMemoryExecutor",
    # Orchestration
    "SessionStore",
    "TurnOrchestrator",
    "TurnState",
    # LLM
    "CompletionOptions",
    "LLMAdapter",
    "LoggingLLMAdapter",
    "create_adapter",
    # Config & errors
    "MissionConfig",
    "default_config",
    "HistorianOutputError",
    "LLMError",
    "LLMTimeoutError",
    "MissionLoopError",
    "OutputParseError",
    "SessionNotFoundError",
]
