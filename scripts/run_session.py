#!/usr/bin/env python3
"""
Run a mission-loop session from the command line.

Creates one session, then runs one turn per --message and prints each
committed turn as JSON.

Usage:
    # Dry run (default): edits stay in memory, commands are not executed
    python scripts/run_session.py --goal "Improve a log message" \
        --file app.ts --message "Update the log and run tests"

    # Apply edits to disk and run commands for real
    python scripts/run_session.py --goal "..." --file app.ts --message "..." --apply

    # Pick provider/model explicitly
    python scripts/run_session.py --provider anthropic --model claude-sonnet-4-5 ...

Provider credentials come from the environment or a project .env file
(OPENAI_API_KEY, ANTHROPIC_API_KEY, OLLAMA_HOST).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from mission_loop.config import MissionConfig, configure_logging
from mission_loop.errors import MissionLoopError
from mission_loop.llm import LLMAdapter, LoggingLLMAdapter, create_adapter
from mission_loop.orchestrator import TurnOrchestrator
from mission_loop.session_store import SessionStore

logger = logging.getLogger("mission_loop.cli")


def build_adapter(config: MissionConfig, model: str) -> LLMAdapter:
    """Create the provider adapter, wrapped for JSONL logging when enabled."""
    adapter = create_adapter(config.models.provider, model)
    if config.logging.llm_log_enabled:
        log_dir = Path(config.logging.llm_log_dir)
        if not log_dir.is_absolute():
            log_dir = config.execution.root_path / log_dir
        adapter = LoggingLLMAdapter(adapter, model=model, log_dir=log_dir)
    return adapter


def non_empty_text(value: str) -> str:
    """argparse type: reject empty or whitespace-only strings."""
    if not value.strip():
        raise argparse.ArgumentTypeError("must not be empty")
    return value


def turn_report(session, turn) -> dict[str, Any]:
    """JSON-friendly summary of one committed turn."""
    return {
        "sessionId": session.id,
        "turn": turn.id,
        "userMessage": turn.user_message,
        "stepSummary": turn.actor_output.step_summary if turn.actor_output else None,
        "nextExpected": turn.actor_output.next_expected if turn.actor_output else None,
        "toolResults": [r.to_wire() for r in turn.tool_results],
        "historySummary": turn.historian_output.history_summary,
    }


async def run_session(
    config: MissionConfig,
    goal: str,
    files: list[str],
    messages: list[str],
    dry_run: bool,
) -> list[dict[str, Any]]:
    store = SessionStore(project_root=config.execution.root_path)
    orchestrator = TurnOrchestrator(
        store,
        actor_llm=build_adapter(config, config.models.actor_model),
        historian_llm=build_adapter(config, config.models.historian_model),
        config=config,
    )

    session = store.create(goal, files, dry_run=dry_run)
    reports = []
    for message in messages:
        session = await orchestrator.run_turn(session.id, message)
        reports.append(turn_report(session, session.turns[-1]))
    return reports


def main():
    parser = argparse.ArgumentParser(
        description="Run Actor/Executor/Historian turns for one goal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--goal", "-g", required=True, type=non_empty_text, help="Overall objective for the session")
    parser.add_argument("--file", "-f", action="append", default=[], help="File to load into scope (repeatable)")
    parser.add_argument(
        "--message", "-m", action="append", default=[], type=non_empty_text, help="User message, one turn each (repeatable)"
    )
    parser.add_argument("--apply", action="store_true", help="Write edits to disk and execute commands")
    parser.add_argument("--provider", choices=["openai", "anthropic", "ollama"], help="LLM provider")
    parser.add_argument("--model", help="Model for both Actor and Historian")
    parser.add_argument("--config", type=Path, help="Config file (default: ~/.mission-loop/config.json)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()
    if not args.message:
        parser.error("At least one --message is required")

    try:
        config = MissionConfig.load(args.config)
    except MissionLoopError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.provider:
        config.models.provider = args.provider
    if args.model:
        config.models.actor_model = args.model
        config.models.historian_model = args.model

    configure_logging("DEBUG" if args.verbose else config.logging.level)
    dry_run = False if args.apply else config.execution.default_dry_run

    try:
        reports = asyncio.run(run_session(config, args.goal, args.file, args.message, dry_run))
    except KeyboardInterrupt:
        print("\n[interrupted]")
        sys.exit(1)
    except (MissionLoopError, ValueError) as e:
        logger.debug("Session failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(reports, indent=2))


if __name__ == "__main__":
    main()
