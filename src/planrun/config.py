"""Configuration management for planrun.

Settings come from ``config.toml`` in the planrun root and are validated by
pydantic. Command-line flags override individual fields for one run.
"""

import json
import logging
import os
import shutil
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

_LEVEL_NAMES = ("critical", "error", "warning", "info", "debug")
# Attributes every LogRecord has; anything else arrived through ``extra=``
_STANDARD_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

DEFAULT_AGENT_CLI = "claude"
TEAMS_ENV_KEY = "CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS"


def find_agent_cli(name: str = DEFAULT_AGENT_CLI) -> str | None:
    """Auto-detect the agent CLI path across platforms.

    Searches in order:
    1. PLANRUN_AGENT_CLI environment variable
    2. shutil.which(name) - system PATH
    3. Common installation paths
    """
    env_override = os.environ.get("PLANRUN_AGENT_CLI")
    if env_override:
        return env_override

    found = shutil.which(name)
    if found:
        return found

    home = Path.home()
    if sys.platform == "win32":
        candidates = [
            Path(os.environ.get("APPDATA", "")) / "npm" / f"{name}.cmd",
            home / "AppData" / "Roaming" / "npm" / f"{name}.cmd",
        ]
    else:
        candidates = [
            home / ".claude" / "local" / name,
            home / ".npm-global" / "bin" / name,
            home / ".local" / "bin" / name,
            Path("/usr/local/bin") / name,
            Path("/opt/homebrew/bin") / name,
        ]
    return next((str(c) for c in candidates if c.is_file()), None)


def _parse_log_level(level: str) -> int:
    name = level.strip().lower()
    if name == "warn":
        name = "warning"
    if name not in _LEVEL_NAMES:
        raise ValueError(f"Invalid log level: {level}. Valid: {', '.join(sorted(_LEVEL_NAMES))}")
    return logging.getLevelNamesMapping()[name.upper()]


class _JsonLineFormatter(logging.Formatter):
    """One JSON object per record; ``extra=`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key in _STANDARD_RECORD_ATTRS:
                continue
            plain = value is None or isinstance(value, (str, int, float, bool))
            entry[key] = value if plain else str(value)
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = record.stack_info
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(config: "PlanrunConfig") -> None:
    """Route all logging through a single JSON-lines handler.

    The root level is the most verbose of ``log_level`` and the per-component
    ``log_levels``, so a component can be turned up on its own.
    """
    handler: logging.Handler = (
        logging.FileHandler(config.log_file, encoding="utf-8")
        if config.log_file
        else logging.StreamHandler()
    )
    handler.setFormatter(_JsonLineFormatter())

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)

    component_levels = {name: _parse_log_level(lvl) for name, lvl in config.log_levels.items()}
    root.setLevel(min([_parse_log_level(config.log_level), *component_levels.values()]))
    for name, level in component_levels.items():
        logging.getLogger(name).setLevel(level)


class FailureMode(str, Enum):
    """What happens when a phase attempt fails."""

    ABORT = "abort"  # stop the run on the first failure
    RETRY_THEN_ASK = "retry_then_ask"


class FallbackAction(str, Enum):
    """Decision taken when a failed phase needs a human and none is available."""

    ABORT = "abort"
    SKIP = "skip"


class GateMode(str, Enum):
    ADVISORY = "advisory"
    BLOCKING = "blocking"


class ExecutionOrder(str, Enum):
    DECLARED = "declared"
    TOPOLOGICAL = "topological"


class PlanrunConfig(BaseModel):
    """Main configuration for planrun."""

    # Agent invocation
    agent_cli: str | None = Field(default=None, description="Path to the agent CLI executable")
    agent_args: list[str] = Field(
        default_factory=lambda: ["--dangerously-skip-permissions", "--"],
        description="Arguments placed before the prompt",
    )
    agent_prefix: str = Field(
        default="planrun", description="Prefix of installed agent names referenced in prompts"
    )
    profile: str = Field(default="balanced", description="Default model/execution profile")

    # Failure policy
    failure_mode: FailureMode = Field(
        default=FailureMode.RETRY_THEN_ASK, description="abort or retry_then_ask"
    )
    auto_retries: int = Field(
        default=1, ge=0, le=10, description="Automatic retries before escalating"
    )
    max_interactive_retries: int | None = Field(
        default=5,
        ge=0,
        description="Cap on user-chosen retries per phase (None = unbounded)",
    )
    non_interactive_action: FallbackAction = Field(
        default=FallbackAction.ABORT,
        description="Decision used when nobody can be asked",
    )

    # Ordering and dependencies
    execution_order: ExecutionOrder = Field(default=ExecutionOrder.DECLARED)
    strict_dependencies: bool = Field(
        default=False, description="Reject plans whose depends_on names unknown phases"
    )

    # Quality gates
    gate_mode: GateMode = Field(default=GateMode.ADVISORY)
    gate_commands: list[str] = Field(
        default_factory=list, description="Shell checks run after each successful phase"
    )

    # Preflight
    ensure_teams_env: bool = Field(
        default=True, description="Enable the agent-teams env var in settings.json"
    )
    teams_env_key: str = Field(default=TEAMS_ENV_KEY)

    track_usage: bool = Field(default=True, description="Record agent usage events")

    log_level: str = Field(default="warning", description="Log level")
    log_levels: dict[str, str] = Field(
        default_factory=dict,
        description="Per-component log levels (e.g., {'planrun.runner': 'debug'})",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path (structured JSON)",
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        _parse_log_level(value)
        return value.strip().lower()

    @field_validator("log_levels")
    @classmethod
    def _validate_log_levels(cls, value: dict[str, str]) -> dict[str, str]:
        for level in value.values():
            _parse_log_level(level)
        return {name: level.strip().lower() for name, level in value.items()}

    @field_validator("gate_commands")
    @classmethod
    def _validate_gate_commands(cls, value: list[str]) -> list[str]:
        return [cmd.strip() for cmd in value if cmd.strip()]

    @classmethod
    def from_file(cls, path: str | Path) -> "PlanrunConfig":
        """Load configuration from TOML file."""
        import tomllib

        path = Path(path)
        if not path.exists():
            return cls()

        with open(path, "rb") as f:
            data = tomllib.load(f)

        # TOML has no null; an explicit negative bound means "unbounded"
        if isinstance(data.get("max_interactive_retries"), int) and data["max_interactive_retries"] < 0:
            data["max_interactive_retries"] = None

        return cls(**data)

    def resolve_agent_cli(self) -> str | None:
        return self.agent_cli or find_agent_cli()

    def failure_policy(self):
        """The EscalationPolicy described by this config."""
        from planrun.escalation import EscalationPolicy

        return EscalationPolicy.from_config(self)


def default_config_dict() -> dict[str, Any]:
    """Settings written by ``planrun init``."""
    defaults = PlanrunConfig()
    return {
        "profile": defaults.profile,
        "failure_mode": defaults.failure_mode.value,
        "auto_retries": defaults.auto_retries,
        "max_interactive_retries": defaults.max_interactive_retries,
        "non_interactive_action": defaults.non_interactive_action.value,
        "execution_order": defaults.execution_order.value,
        "strict_dependencies": defaults.strict_dependencies,
        "gate_mode": defaults.gate_mode.value,
        "gate_commands": list(defaults.gate_commands),
        "log_level": defaults.log_level,
    }


def write_default_config(path: Path) -> bool:
    """Write the default config unless one already exists. Returns True if written."""
    import tomli_w

    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        tomli_w.dump(default_config_dict(), f)
    return True


def config_summary(config: PlanrunConfig) -> dict[str, Any]:
    """Flat view of the settings that shape a run, for display."""
    return {
        "agent_cli": config.resolve_agent_cli() or "(not found)",
        "failure_mode": config.failure_mode.value,
        "auto_retries": config.auto_retries,
        "max_interactive_retries": (
            "unbounded" if config.max_interactive_retries is None else config.max_interactive_retries
        ),
        "non_interactive_action": config.non_interactive_action.value,
        "execution_order": config.execution_order.value,
        "gate_mode": config.gate_mode.value,
        "gate_commands": ", ".join(config.gate_commands) or "(none)",
    }
