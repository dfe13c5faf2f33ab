"""
Phase Runner - the execution state machine.

Per phase: ``Pending -> InProgress -> Completed | Failed``; a Pending or
Failed phase becomes Skipped when one of its dependencies is Failed or
Skipped, or when the escalation policy decides to skip it. A Failed phase may
go back to InProgress on retry. Completed phases are never re-run, which is
what makes a run resumable.

The checkpoint is saved after every transition and always before the agent
is invoked, so a crash mid-phase leaves that phase InProgress. An InProgress
phase found on resume is treated like a Pending one.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path

from planrun.checkpoint import CheckpointStore
from planrun.config import ExecutionOrder, GateMode
from planrun.escalation import (
    Decider,
    Decision,
    EscalationPolicy,
    NonInteractiveDecider,
    PhaseFailure,
)
from planrun.exceptions import ExecutionAborted, PhaseExecutionError, PlanValidationError
from planrun.gates import QualityGateRunner
from planrun.invoker import AgentInvoker
from planrun.models import Checkpoint, Plan, PhaseStatus, utc_now
from planrun.prompts import build_phase_prompt
from planrun.ui import Reporter
from planrun.workspace import Workspace

logger = logging.getLogger(__name__)


def unknown_dependencies(plan: Plan) -> dict[str, list[str]]:
    """Map of phase name to the ``depends_on`` entries naming no phase."""
    names = set(plan.phase_names)
    unknown: dict[str, list[str]] = {}
    for phase in plan.phases:
        missing = [dep for dep in phase.depends_on if dep not in names]
        if missing:
            unknown[phase.name] = missing
    return unknown


def validate_dependencies(plan: Plan, strict: bool = False) -> None:
    """Warn about (or, when ``strict``, reject) dependencies on unknown phases.

    Raises:
        PlanValidationError: In strict mode, if any dependency is unknown
    """
    unknown = unknown_dependencies(plan)
    if not unknown:
        return
    if strict:
        raise PlanValidationError(
            "Plan has dependencies on unknown phases",
            context={"plan_id": plan.id, "unknown": unknown},
        )
    for name, missing in unknown.items():
        logger.warning("Phase %s depends on unknown phase(s) %s; ignored", name, ", ".join(missing))


def topological_order(plan: Plan) -> list[int]:
    """Stable Kahn ordering of phase positions.

    Among phases whose dependencies are satisfied, the one declared first runs
    first. Unknown dependency names are ignored.

    Raises:
        PlanValidationError: If the dependencies form a cycle
    """
    count = len(plan.phases)
    indegree = [0] * count
    dependents: list[list[int]] = [[] for _ in range(count)]
    for i, phase in enumerate(plan.phases):
        for dep in set(phase.depends_on):
            dep_index = plan.phase_index(dep)
            if dep_index is None:
                continue
            indegree[i] += 1
            dependents[dep_index].append(i)

    ready = deque(i for i in range(count) if indegree[i] == 0)
    order: list[int] = []
    while ready:
        # Lowest position first keeps ties in declared order
        current = min(ready)
        ready.remove(current)
        order.append(current)
        for nxt in dependents[current]:
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                ready.append(nxt)

    if len(order) != count:
        cyclic = [plan.phases[i].name for i in range(count) if indegree[i] > 0]
        raise PlanValidationError(
            "Phase dependencies form a cycle",
            context={"plan_id": plan.id, "phases": cyclic},
        )
    return order


def failed_dependencies(plan: Plan, checkpoint: Checkpoint, index: int) -> list[str]:
    """Dependencies of phase ``index`` that are currently Failed or Skipped.

    Names are looked up by their current position in the plan. Unknown names,
    and dependencies that simply have not run yet, never block.
    """
    blocked: list[str] = []
    for dep in plan.phases[index].depends_on:
        dep_index = plan.phase_index(dep)
        if dep_index is None:
            continue
        if checkpoint.phases[dep_index].status.is_terminal_failure:
            blocked.append(dep)
    return blocked


def has_failed_dependency(plan: Plan, checkpoint: Checkpoint, index: int) -> bool:
    return bool(failed_dependencies(plan, checkpoint, index))


@dataclass
class RunOutcome:
    """What a phased run did. ``all_completed`` gates plan finalization."""

    checkpoint: Checkpoint
    all_completed: bool
    executed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)


class PhaseRunner:
    """Drives one plan's phases through the agent, one at a time.

    Usage:
        runner = PhaseRunner(plan, checkpoint, store, invoker, workspace, plan_md, cwd)
        outcome = runner.run()
    """

    def __init__(
        self,
        plan: Plan,
        checkpoint: Checkpoint,
        store: CheckpointStore,
        invoker: AgentInvoker,
        workspace: Workspace,
        plan_md: str,
        cwd: Path,
        policy: EscalationPolicy | None = None,
        decider: Decider | None = None,
        reporter: Reporter | None = None,
        gates: QualityGateRunner | None = None,
        gate_mode: GateMode = GateMode.ADVISORY,
        order: ExecutionOrder = ExecutionOrder.DECLARED,
    ) -> None:
        self.plan = plan
        self.checkpoint = checkpoint
        self.store = store
        self.invoker = invoker
        self.workspace = workspace
        self.plan_md = plan_md
        self.cwd = Path(cwd)
        self.policy = policy or EscalationPolicy()
        self.decider = decider or NonInteractiveDecider()
        self.reporter = reporter or Reporter()
        self.gates = gates
        self.gate_mode = gate_mode
        self.order = self._resolve_order(order)

    def _resolve_order(self, order: ExecutionOrder) -> list[int]:
        if order == ExecutionOrder.TOPOLOGICAL:
            return topological_order(self.plan)
        return list(range(len(self.plan.phases)))

    @property
    def total(self) -> int:
        return len(self.plan.phases)

    def run(self) -> RunOutcome:
        """Run every phase that is not yet Completed.

        Raises:
            PhaseExecutionError: Failure under the fail-fast policy
            ExecutionAborted: An Abort decision
            PersistenceError: Checkpoint or workspace I/O failure
        """
        outcome = RunOutcome(checkpoint=self.checkpoint, all_completed=False)
        for index in self.order:
            phase = self.plan.phases[index]
            entry = self.checkpoint.phases[index]

            if entry.status == PhaseStatus.COMPLETED:
                self.reporter.phase_already_completed(index, self.total, phase)
                continue

            blocked_by = failed_dependencies(self.plan, self.checkpoint, index)
            if blocked_by:
                entry.status = PhaseStatus.SKIPPED
                self.store.save(self.checkpoint)
                logger.info("Phase %s skipped: dependency %s", phase.name, ", ".join(blocked_by))
                self.reporter.phase_dependency_skipped(index, self.total, phase, blocked_by)
                outcome.skipped.append(index)
                continue

            outcome.executed.append(index)
            if self._run_phase(index) == PhaseStatus.SKIPPED:
                outcome.skipped.append(index)

        outcome.all_completed = self.checkpoint.all_completed
        return outcome

    def _run_phase(self, index: int) -> PhaseStatus:
        """Attempt a phase until it completes, is skipped or the run aborts."""
        phase = self.plan.phases[index]
        entry = self.checkpoint.phases[index]
        attempts = 0
        interactive_retries = 0

        while True:
            attempts += 1
            if self._attempt(index, attempts):
                return PhaseStatus.COMPLETED

            self.reporter.phase_attempt_failed(index, self.total, phase, entry.exit_code, attempts)
            failure = PhaseFailure(
                phase_index=index,
                phase_name=phase.name,
                total_phases=self.total,
                exit_code=entry.exit_code,
                attempts=attempts,
                error_message=entry.error_message,
                interactive_retries=interactive_retries,
            )
            step = self.policy.next_step(failure, self.decider)

            if step.decision == Decision.RETRY:
                if not step.automatic:
                    interactive_retries += 1
                self.reporter.phase_retrying(index, self.total, phase, step.automatic)
                continue

            if step.decision == Decision.SKIP:
                entry.status = PhaseStatus.SKIPPED
                self.store.save(self.checkpoint)
                self.reporter.phase_skipped(index, self.total, phase)
                return PhaseStatus.SKIPPED

            if attempts > 1:
                entry.error_message = f"Failed after {attempts} attempts (exit code {entry.exit_code})"
                self.store.save(self.checkpoint)
            self.reporter.phase_failed(index, self.total, phase, entry.exit_code)
            if self.policy.fail_fast:
                raise PhaseExecutionError(
                    f"Phase '{phase.name}' failed with exit code {entry.exit_code}",
                    phase_index=index,
                    phase_name=phase.name,
                    exit_code=entry.exit_code,
                )
            raise ExecutionAborted(
                f"Execution aborted at phase '{phase.name}'",
                phase_index=index,
                phase_name=phase.name,
                exit_code=entry.exit_code,
            )

    def _attempt(self, index: int, attempt: int) -> bool:
        """One execution attempt. Returns True when the phase Completed."""
        phase = self.plan.phases[index]
        entry = self.checkpoint.phases[index]

        entry.status = PhaseStatus.IN_PROGRESS
        entry.started_at = utc_now()
        entry.completed_at = None
        entry.exit_code = None
        entry.error_message = None
        entry.attempts += 1
        self.checkpoint.current_phase = index
        self.store.save(self.checkpoint)

        self.reporter.phase_started(index, self.total, phase, attempt)
        prompt = build_phase_prompt(self.plan, index, self.plan_md, self.workspace, self.checkpoint)
        result = self.invoker.invoke(prompt, self.cwd)

        entry.exit_code = result.exit_code
        entry.completed_at = utc_now()
        if not result.success:
            entry.status = PhaseStatus.FAILED
            entry.error_message = f"Process exited with code {result.exit_code}"
            self.store.save(self.checkpoint)
            return False

        if self.gates:
            report = self.gates.run(index, phase.name)
            blocking = self.gate_mode == GateMode.BLOCKING
            self.reporter.gates_reported(report, blocking)
            if blocking and not report.passed:
                failed = ", ".join(r.command for r in report.failures)
                entry.status = PhaseStatus.FAILED
                entry.error_message = f"Quality gates failed: {failed}"
                self.store.save(self.checkpoint)
                return False

        entry.status = PhaseStatus.COMPLETED
        self.store.save(self.checkpoint)
        logger.info("Phase %s completed", phase.name)
        self.reporter.phase_completed(index, self.total, phase)
        return True
