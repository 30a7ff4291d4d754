"""
Per-call LLM interaction log.

Each completion is appended as one JSON line to logs/llm-YYYYMMDD.jsonl.
Logging is best-effort: a failed write is reported through the logging
module and never affects the call itself.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .base import CompletionOptions, LLMAdapter

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path("logs")


def log_file_for(timestamp: str, log_dir: Path = DEFAULT_LOG_DIR) -> Path:
    """Daily log file for an ISO-8601 timestamp."""
    date = timestamp[:10].replace("-", "")
    return log_dir / f"llm-{date}.jsonl"


def log_llm_interaction(record: dict[str, Any], log_dir: Path = DEFAULT_LOG_DIR) -> None:
    """Append a single JSON line to the daily LLM log file."""
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        path = log_file_for(record["timestamp"], log_dir)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")
    except OSError as e:
        logger.warning(f"Could not write LLM log record: {e}")


def read_log_records(path: Path) -> list[dict[str, Any]]:
    """Read every record from a JSONL log file."""
    records = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                records.append(json.loads(line))
    return records


class LoggingLLMAdapter(LLMAdapter):
    """
    Wrap any adapter and record each call.

    Usage is taken from the inner adapter's last_usage when it reports one.
    """

    def __init__(
        self,
        inner: LLMAdapter,
        adapter_name: str | None = None,
        model: str | None = None,
        log_dir: Path | str = DEFAULT_LOG_DIR,
    ):
        self.inner = inner
        self.name = adapter_name or inner.name
        self.model = model or inner.model
        self.log_dir = Path(log_dir)

    @property
    def last_usage(self):
        return self.inner.last_usage

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        run_id = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
        start = time.perf_counter()
        completion = ""
        error_message: str | None = None

        try:
            completion = await self.inner.complete(prompt, options)
            return completion
        except Exception as e:
            error_message = str(e) or type(e).__name__
            raise
        finally:
            record: dict[str, Any] = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "adapterName": self.name,
                "model": self.model,
                "runId": run_id,
                "prompt": prompt,
                "completion": completion,
                "options": options.to_dict() if options else None,
                "durationMs": round((time.perf_counter() - start) * 1000, 1),
            }
            usage = self.inner.last_usage
            if usage is not None and error_message is None:
                record["usage"] = usage.to_dict()
            if error_message is not None:
                record["errorMessage"] = error_message
            log_llm_interaction(record, self.log_dir)


__all__ = [
    "DEFAULT_LOG_DIR",
    "LoggingLLMAdapter",
    "log_file_for",
    "log_llm_interaction",
    "read_log_records",
]
