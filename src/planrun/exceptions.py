"""
Planrun Exception Hierarchy.

All custom exceptions inherit from PlanrunError for unified error handling.
Each error carries a short ``hint`` the CLI prints below the message.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


class PlanrunError(Exception):
    """Base exception for planrun errors.

    Attributes:
        message: Human-readable error description
        context: Additional context for debugging
    """

    hint: str = ""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self._log_error()

    def _log_error(self) -> None:
        """Log the error creation at debug level.

        Callers should log at the appropriate level when handling the exception.
        """
        logger.debug(
            f"{self.__class__.__name__}: {self.message}",
            extra={"error_context": self.context},
        )

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} [{ctx}]"
        return self.message


class ConfigError(PlanrunError):
    """Raised for configuration errors.

    Examples:
        - Malformed config.toml
        - Invalid failure mode or gate mode
    """

    hint = "Check config.toml (run `planrun init` to write a default one)"


class NotInitializedError(PlanrunError):
    """Raised when the planrun root directory does not exist."""

    hint = "Run: planrun init"


class PersistenceError(PlanrunError):
    """Raised when reading or writing a plan, checkpoint or workspace file fails.

    Attributes:
        path: The file that could not be read or written
    """

    hint = "Check file permissions and disk space"

    def __init__(
        self,
        message: str,
        path: Any = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        if path is not None:
            ctx["path"] = str(path)
        super().__init__(message, ctx)
        self.path = path


class CorruptCheckpointError(PersistenceError):
    """Raised when a checkpoint file exists but cannot be decoded."""

    hint = "Inspect or delete the checkpoint file, then re-run without --resume"


class CheckpointMismatchError(PlanrunError):
    """Raised when a loaded checkpoint does not mirror the plan's phases."""

    hint = "The plan changed since the checkpoint was written; re-run without --resume"


class PlanNotFoundError(PlanrunError):
    """Raised when a plan id (or spec link) does not resolve to a plan file."""

    hint = "List plans with: planrun plans"

    def __init__(self, plan_id: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(f"Plan not found: {plan_id}", context)
        self.plan_id = plan_id


class NoPlansFoundError(PlanrunError):
    """Raised when there is no pending plan to execute."""

    hint = "Create a plan first, then run: planrun execute"


class PlanValidationError(PlanrunError):
    """Raised when a plan's phase graph cannot be executed.

    Examples:
        - depends_on names a phase that does not exist (strict mode)
        - dependency cycle under topological ordering
    """

    hint = "Fix the phases' depends_on lists in the plan file"


class InvokerUnavailableError(PlanrunError):
    """Raised when the external agent executable cannot be located or started."""

    hint = "Install the agent CLI or set agent_cli in config.toml"


class SettingsError(PlanrunError):
    """Raised when the agent's settings.json cannot be parsed or updated."""

    hint = "Check ~/.claude/settings.json for syntax errors"


class PhaseExecutionError(PlanrunError):
    """Raised when a phase fails and the failure policy stops the run.

    Attributes:
        phase_index: The phase that failed (0-indexed)
        phase_name: Name of the failed phase
        exit_code: Exit code of the last attempt, if any
    """

    hint = "Fix the problem, then continue with: planrun execute <plan-id> --resume"

    def __init__(
        self,
        message: str,
        phase_index: int | None = None,
        phase_name: str | None = None,
        exit_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        if phase_index is not None:
            ctx["phase_index"] = phase_index
        if phase_name:
            ctx["phase_name"] = phase_name
        if exit_code is not None:
            ctx["exit_code"] = exit_code
        super().__init__(message, ctx)
        self.phase_index = phase_index
        self.phase_name = phase_name
        self.exit_code = exit_code


class ExecutionAborted(PhaseExecutionError):
    """Raised when an Abort decision terminates the whole run."""
