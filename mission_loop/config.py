"""
Configuration management for mission-loop.

Settings live in ~/.mission-loop/config.json (or the file named by
MISSION_LOOP_CONFIG). Missing files fall back to dataclass defaults and
unknown keys are ignored.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

from .errors import ConfigError

CONFIG_ENV_VAR = "MISSION_LOOP_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".mission-loop" / "config.json"


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


def default_config_path() -> Path:
    """Resolve the config path, honouring MISSION_LOOP_CONFIG."""
    env_value = os.getenv(CONFIG_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()
    return DEFAULT_CONFIG_PATH


@dataclass
class ModelConfig:
    """Model selection for the two LLM roles."""

    provider: Literal["openai", "anthropic", "ollama"] = "openai"
    actor_model: str = "gpt-4.1-mini"
    historian_model: str = "gpt-4.1-mini"
    # Both roles emit strict JSON
    temperature: float = 0.0
    actor_max_tokens: int = 768
    historian_max_tokens: int = 512


@dataclass
class TurnConfig:
    """Bounds for a single turn."""

    max_validation_attempts: int = 3
    historian_max_attempts: int = 2
    llm_timeout_seconds: float = 120.0
    snippet_limit: int = 400


@dataclass
class ExecutionConfig:
    """Where and how actions are applied."""

    project_root: str = "."
    default_dry_run: bool = True
    command_timeout_seconds: float = 300.0

    @property
    def root_path(self) -> Path:
        return Path(self.project_root).expanduser().resolve()


@dataclass
class LoggingConfig:
    """Process logging and the per-call LLM log."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    llm_log_dir: str = "logs"
    llm_log_enabled: bool = True


@dataclass
class MissionConfig:
    """Complete mission-loop configuration."""

    models: ModelConfig = field(default_factory=ModelConfig)
    turn: TurnConfig = field(default_factory=TurnConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "MissionConfig":
        """
        Load configuration from file.

        Args:
            path: Config file path (default: MISSION_LOOP_CONFIG or
                ~/.mission-loop/config.json)

        Returns:
            MissionConfig with file values merged over defaults and
            environment overrides applied

        Raises:
            ConfigError: If the file exists but is not valid JSON
        """
        if path is None:
            path = default_config_path()

        data: dict[str, Any] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text())
            except (json.JSONDecodeError, OSError) as e:
                raise ConfigError(f"Could not read config {path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"Config {path} must contain a JSON object")

        config = cls(
            models=ModelConfig(**_filter_dataclass_fields(data.get("models", {}), ModelConfig)),
            turn=TurnConfig(**_filter_dataclass_fields(data.get("turn", {}), TurnConfig)),
            execution=ExecutionConfig(**_filter_dataclass_fields(data.get("execution", {}), ExecutionConfig)),
            logging=LoggingConfig(**_filter_dataclass_fields(data.get("logging", {}), LoggingConfig)),
        )
        config.apply_env_overrides()
        return config

    def apply_env_overrides(self) -> None:
        """Apply MISSION_LOOP_PROVIDER / MISSION_LOOP_MODEL if set."""
        provider = os.getenv("MISSION_LOOP_PROVIDER")
        if provider:
            self.models.provider = provider  # type: ignore[assignment]
        model = os.getenv("MISSION_LOOP_MODEL")
        if model:
            self.models.actor_model = model
            self.models.historian_model = model

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = default_config_path()

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Default configuration instance
default_config = MissionConfig()


__all__ = [
    "CONFIG_ENV_VAR",
    "ExecutionConfig",
    "LoggingConfig",
    "MissionConfig",
    "ModelConfig",
    "TurnConfig",
    "configure_logging",
    "default_config",
    "default_config_path",
]
