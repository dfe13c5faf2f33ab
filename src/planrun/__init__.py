"""planrun - phased plan execution for long-running coding agents."""

__version__ = "0.4.0"

# Re-export core components for convenience
from .checkpoint import CheckpointStore
from .config import PlanrunConfig, configure_logging, find_agent_cli
from .escalation import ConsoleDecider, Decision, EscalationPolicy, NonInteractiveDecider
from .exceptions import (
    CheckpointMismatchError,
    ConfigError,
    CorruptCheckpointError,
    ExecutionAborted,
    InvokerUnavailableError,
    NoPlansFoundError,
    NotInitializedError,
    PersistenceError,
    PhaseExecutionError,
    PlanNotFoundError,
    PlanrunError,
    PlanValidationError,
    SettingsError,
)
from .executor import ExecutionResult, PlanExecutor, PlanFinalizer
from .gates import GateReport, GateResult, QualityGateRunner
from .invoker import AgentInvoker, ClaudeInvoker, InvocationResult
from .models import (
    Checkpoint,
    PhaseCheckpoint,
    PhaseStatus,
    Plan,
    PlanAgent,
    PlanPhase,
    PlanStack,
    PlanStatus,
)
from .paths import PlanrunPaths
from .plan_store import PlanStore
from .runner import PhaseRunner, RunOutcome
from .workspace import Workspace

__all__ = [
    # Core
    "PlanExecutor",
    "PlanFinalizer",
    "ExecutionResult",
    "PhaseRunner",
    "RunOutcome",
    # Model
    "Plan",
    "PlanAgent",
    "PlanPhase",
    "PlanStack",
    "PlanStatus",
    "Checkpoint",
    "PhaseCheckpoint",
    "PhaseStatus",
    # Storage
    "CheckpointStore",
    "PlanStore",
    "PlanrunPaths",
    "Workspace",
    # Agent
    "AgentInvoker",
    "ClaudeInvoker",
    "InvocationResult",
    # Policy
    "Decision",
    "EscalationPolicy",
    "ConsoleDecider",
    "NonInteractiveDecider",
    # Gates
    "QualityGateRunner",
    "GateReport",
    "GateResult",
    # Config
    "PlanrunConfig",
    "configure_logging",
    "find_agent_cli",
    # Exceptions
    "PlanrunError",
    "ConfigError",
    "NotInitializedError",
    "PersistenceError",
    "CorruptCheckpointError",
    "CheckpointMismatchError",
    "PlanNotFoundError",
    "NoPlansFoundError",
    "PlanValidationError",
    "InvokerUnavailableError",
    "SettingsError",
    "PhaseExecutionError",
    "ExecutionAborted",
]
