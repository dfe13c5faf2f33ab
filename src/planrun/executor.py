"""
Plan execution entry point.

Ties the stores, the agent invoker and the phase runner together:

1. Apply the profile override and record agent usage
2. Run preflight checks (nothing is mutated before they pass)
3. Run the plan, phased with checkpoints or as one monolithic invocation
4. Finalize: the plan becomes Executed only when every phase Completed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from planrun.checkpoint import CheckpointStore
from planrun.config import PlanrunConfig
from planrun.escalation import Decider, NonInteractiveDecider
from planrun.exceptions import CheckpointMismatchError, PhaseExecutionError
from planrun.gates import QualityGateRunner
from planrun.invoker import AgentInvoker, ClaudeInvoker
from planrun.models import Checkpoint, Plan, PlanStatus
from planrun.paths import PlanrunPaths
from planrun.plan_store import PlanStore
from planrun.preflight import run_preflight
from planrun.prompts import build_execution_prompt
from planrun.runner import PhaseRunner, validate_dependencies
from planrun.stats import UsageTracker
from planrun.ui import Reporter
from planrun.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Summary of one ``execute`` call."""

    plan_id: str
    mode: str  # "phased" or "monolithic"
    all_completed: bool
    executed: bool  # plan status flipped to Executed
    checkpoint: Checkpoint | None = None


class PlanFinalizer:
    """Flips a plan to Executed once its work is done."""

    def __init__(self, plan_store: PlanStore, reporter: Reporter | None = None) -> None:
        self.plan_store = plan_store
        self.reporter = reporter or Reporter()

    def mark_executed(self, plan: Plan) -> None:
        plan.status = PlanStatus.EXECUTED
        self.plan_store.save(plan)
        logger.info("Plan %s marked as executed", plan.id)
        self.reporter.plan_executed(plan)

    def finalize(self, plan: Plan, checkpoint: Checkpoint) -> bool:
        """Mark executed iff every phase Completed. Returns whether it did."""
        if not checkpoint.all_completed:
            return False
        self.mark_executed(plan)
        return True


class PlanExecutor:
    """Executes plans from one planrun root.

    Usage:
        executor = PlanExecutor(config, paths, reporter=ConsoleReporter())
        result = executor.execute(plan, resume=True)
    """

    def __init__(
        self,
        config: PlanrunConfig,
        paths: PlanrunPaths,
        invoker: AgentInvoker | None = None,
        reporter: Reporter | None = None,
        decider: Decider | None = None,
        tracker: UsageTracker | None = None,
        claude_dir: Path | None = None,
    ) -> None:
        self.config = config
        self.paths = paths
        self.invoker = invoker or ClaudeInvoker(config)
        self.reporter = reporter or Reporter()
        self.decider = decider or NonInteractiveDecider()
        self.tracker = tracker if tracker is not None else UsageTracker(paths.analytics)
        self.claude_dir = claude_dir or paths.claude_dir
        self.plan_store = PlanStore(paths.plans)
        self.checkpoints = CheckpointStore(paths.plans)
        self.finalizer = PlanFinalizer(self.plan_store, self.reporter)

    def execute(
        self,
        plan: Plan,
        resume: bool = False,
        profile: str | None = None,
        command: str = "execute",
    ) -> ExecutionResult:
        """Execute ``plan``.

        Args:
            plan: The plan to run
            resume: Continue from an existing checkpoint instead of starting over
            profile: Overrides the plan's profile for this run
            command: Usage-tracking label (``execute`` or ``spec-execute``)

        Raises:
            InvokerUnavailableError: The agent CLI cannot be used
            SettingsError: The agent settings file is not valid JSON
            CheckpointMismatchError: ``resume`` with a checkpoint for other phases
            PlanValidationError: Unknown dependencies (strict) or a cycle (topological)
            PhaseExecutionError: A phase failed and the policy stopped the run
            PersistenceError: Plan, checkpoint or workspace I/O failed
        """
        if profile:
            plan.profile = profile

        if self.config.track_usage:
            self.tracker.track_many([a.skill_id for a in plan.agents], command)

        if run_preflight(self.invoker, self.config, self.claude_dir):
            self.reporter.note("Agent teams env var enabled in settings.json")

        plan_md = self.plan_store.read_document(plan)

        if not plan.is_phased:
            return self._execute_monolithic(plan, plan_md)
        return self._execute_phased(plan, plan_md, resume)

    def _execute_monolithic(self, plan: Plan, plan_md: str) -> ExecutionResult:
        """Legacy plans without phases: one invocation, no checkpoint."""
        self.reporter.monolithic_started(plan)
        prompt = build_execution_prompt(plan, plan_md, self.config.agent_prefix)
        result = self.invoker.invoke(prompt, self.paths.workdir)
        if not result.success:
            raise PhaseExecutionError(
                f"Agent exited with code {result.exit_code}",
                exit_code=result.exit_code,
                context={"plan_id": plan.id},
            )
        self.finalizer.mark_executed(plan)
        return ExecutionResult(plan_id=plan.id, mode="monolithic", all_completed=True, executed=True)

    def load_or_initialize(self, plan: Plan, resume: bool) -> Checkpoint:
        """The checkpoint a phased run starts from.

        Raises:
            CheckpointMismatchError: If resuming from a checkpoint that does not
                mirror the plan's phases
        """
        if resume:
            checkpoint = self.checkpoints.load(plan.id)
            if checkpoint is not None:
                if not checkpoint.mirrors(plan):
                    raise CheckpointMismatchError(
                        "Checkpoint does not match the plan's phases",
                        context={
                            "plan_id": plan.id,
                            "checkpoint_phases": [p.phase_name for p in checkpoint.phases],
                            "plan_phases": plan.phase_names,
                        },
                    )
                self.reporter.resuming(plan, checkpoint)
                return checkpoint
            self.reporter.note("No checkpoint found; starting from the first phase")
        return self.checkpoints.initialize(plan)

    def _execute_phased(self, plan: Plan, plan_md: str, resume: bool) -> ExecutionResult:
        validate_dependencies(plan, strict=self.config.strict_dependencies)
        checkpoint = self.load_or_initialize(plan, resume)
        workspace = Workspace(self.paths.plans, plan.id)
        gates = QualityGateRunner(
            [*self.config.gate_commands, *plan.gate_commands], cwd=self.paths.workdir
        )
        runner = PhaseRunner(
            plan,
            checkpoint,
            self.checkpoints,
            self.invoker,
            workspace,
            plan_md,
            cwd=self.paths.workdir,
            policy=self.config.failure_policy(),
            decider=self.decider,
            reporter=self.reporter,
            gates=gates,
            gate_mode=self.config.gate_mode,
            order=self.config.execution_order,
        )

        workspace.ensure()
        self.checkpoints.save(checkpoint)
        self.reporter.run_started(plan, checkpoint)

        outcome = runner.run()
        self.reporter.run_finished(plan, checkpoint, outcome.all_completed)
        executed = self.finalizer.finalize(plan, checkpoint)
        return ExecutionResult(
            plan_id=plan.id,
            mode="phased",
            all_completed=outcome.all_completed,
            executed=executed,
            checkpoint=checkpoint,
        )
