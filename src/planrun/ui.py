"""Console output for plan runs.

The engine reports progress through :class:`Reporter` hooks so it never
prints directly. :class:`ConsoleReporter` renders them with rich.
"""

from __future__ import annotations

from rich.box import ROUNDED
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from planrun.gates import GateReport
from planrun.models import Checkpoint, Plan, PlanPhase, PlanStatus, PhaseStatus


class Theme:
    PRIMARY = "cyan"
    SUCCESS = "green"
    WARNING = "yellow"
    ERROR = "red"
    MUTED = "dim"
    HEADER = "bold cyan"


class Icons:
    DONE = "✓"
    ERROR = "✗"
    WARNING = "⚠"
    SKIP = "⏭"
    RUNNING = "▶"
    PENDING = "○"
    ARROW_RIGHT = "→"


PHASE_ICONS = {
    PhaseStatus.PENDING: (Icons.PENDING, Theme.MUTED),
    PhaseStatus.IN_PROGRESS: (Icons.RUNNING, Theme.PRIMARY),
    PhaseStatus.COMPLETED: (Icons.DONE, Theme.SUCCESS),
    PhaseStatus.FAILED: (Icons.ERROR, Theme.ERROR),
    PhaseStatus.SKIPPED: (Icons.SKIP, Theme.WARNING),
}

PLAN_STATUS_STYLES = {
    PlanStatus.PENDING: Theme.WARNING,
    PlanStatus.EXECUTED: Theme.SUCCESS,
    PlanStatus.ARCHIVED: Theme.MUTED,
}


class Reporter:
    """Progress hooks called by the engine. Every hook is a no-op here."""

    def run_started(self, plan: Plan, checkpoint: Checkpoint) -> None:
        pass

    def resuming(self, plan: Plan, checkpoint: Checkpoint) -> None:
        pass

    def phase_started(self, index: int, total: int, phase: PlanPhase, attempt: int) -> None:
        pass

    def phase_already_completed(self, index: int, total: int, phase: PlanPhase) -> None:
        pass

    def phase_dependency_skipped(
        self, index: int, total: int, phase: PlanPhase, blocked_by: list[str]
    ) -> None:
        pass

    def phase_completed(self, index: int, total: int, phase: PlanPhase) -> None:
        pass

    def phase_attempt_failed(
        self, index: int, total: int, phase: PlanPhase, exit_code: int | None, attempt: int
    ) -> None:
        pass

    def phase_retrying(self, index: int, total: int, phase: PlanPhase, automatic: bool) -> None:
        pass

    def phase_failed(self, index: int, total: int, phase: PlanPhase, exit_code: int | None) -> None:
        pass

    def phase_skipped(self, index: int, total: int, phase: PlanPhase) -> None:
        pass

    def gates_reported(self, report: GateReport, blocking: bool) -> None:
        pass

    def run_finished(self, plan: Plan, checkpoint: Checkpoint, all_completed: bool) -> None:
        pass

    def monolithic_started(self, plan: Plan) -> None:
        pass

    def plan_executed(self, plan: Plan) -> None:
        pass

    def note(self, message: str) -> None:
        pass


class ConsoleReporter(Reporter):
    """Renders engine progress on a rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def _phase_label(self, index: int, total: int, phase: PlanPhase) -> str:
        return f"[{index + 1}/{total}] {phase.name}"

    def run_started(self, plan: Plan, checkpoint: Checkpoint) -> None:
        body = Text()
        body.append(plan.task, style="bold")
        body.append(f"\n{len(plan.phases)} phases", style=Theme.MUTED)
        if plan.stack is not None:
            body.append(f" {Icons.ARROW_RIGHT} {plan.stack.describe()}", style=Theme.MUTED)
        self.console.print(
            Panel(body, title=f"Executing {plan.id}", title_align="left", border_style=Theme.PRIMARY, box=ROUNDED)
        )

    def resuming(self, plan: Plan, checkpoint: Checkpoint) -> None:
        self.console.print(
            f"[{Theme.PRIMARY}]Resuming from checkpoint: "
            f"{checkpoint.completed_count}/{len(checkpoint.phases)} phases completed[/{Theme.PRIMARY}]"
        )

    def phase_started(self, index: int, total: int, phase: PlanPhase, attempt: int) -> None:
        suffix = f" (attempt {attempt})" if attempt > 1 else ""
        self.console.print(
            f"\n[{Theme.HEADER}]{Icons.RUNNING} {self._phase_label(index, total, phase)}[/{Theme.HEADER}]"
            f" [{Theme.MUTED}]{phase.agent_role}{suffix}[/{Theme.MUTED}]"
        )

    def phase_already_completed(self, index: int, total: int, phase: PlanPhase) -> None:
        self.console.print(
            f"[{Theme.MUTED}]{Icons.DONE} {self._phase_label(index, total, phase)} (already completed)[/{Theme.MUTED}]"
        )

    def phase_dependency_skipped(
        self, index: int, total: int, phase: PlanPhase, blocked_by: list[str]
    ) -> None:
        self.console.print(
            f"[{Theme.WARNING}]{Icons.SKIP} {self._phase_label(index, total, phase)} skipped: "
            f"depends on {', '.join(blocked_by)}[/{Theme.WARNING}]"
        )

    def phase_completed(self, index: int, total: int, phase: PlanPhase) -> None:
        self.console.print(
            f"[{Theme.SUCCESS}]{Icons.DONE} {self._phase_label(index, total, phase)} completed[/{Theme.SUCCESS}]"
        )

    def phase_attempt_failed(
        self, index: int, total: int, phase: PlanPhase, exit_code: int | None, attempt: int
    ) -> None:
        code = "?" if exit_code is None else exit_code
        self.console.print(
            f"[{Theme.ERROR}]{Icons.ERROR} {self._phase_label(index, total, phase)} failed "
            f"(exit code {code}, attempt {attempt})[/{Theme.ERROR}]"
        )

    def phase_retrying(self, index: int, total: int, phase: PlanPhase, automatic: bool) -> None:
        how = "Retrying automatically" if automatic else "Retrying"
        self.console.print(f"[{Theme.WARNING}]{Icons.WARNING} {how}: {phase.name}[/{Theme.WARNING}]")

    def phase_failed(self, index: int, total: int, phase: PlanPhase, exit_code: int | None) -> None:
        self.console.print(
            Panel(
                Text(f"{Icons.ERROR} {phase.name} failed (exit code {exit_code})", style=Theme.ERROR),
                border_style=Theme.ERROR,
                title="Phase failed",
                title_align="left",
                box=ROUNDED,
            )
        )

    def phase_skipped(self, index: int, total: int, phase: PlanPhase) -> None:
        self.console.print(
            f"[{Theme.WARNING}]{Icons.SKIP} {self._phase_label(index, total, phase)} skipped[/{Theme.WARNING}]"
        )

    def gates_reported(self, report: GateReport, blocking: bool) -> None:
        if not report.results:
            return
        for result in report.results:
            if not result.available:
                line = f"[{Theme.MUTED}]  - {result.command}: not available[/{Theme.MUTED}]"
            elif result.passed:
                line = f"[{Theme.SUCCESS}]  {Icons.DONE} {result.command}[/{Theme.SUCCESS}]"
            else:
                line = f"[{Theme.ERROR}]  {Icons.ERROR} {result.command} (exit code {result.exit_code})[/{Theme.ERROR}]"
            self.console.print(line)
        style = Theme.SUCCESS if report.passed else (Theme.ERROR if blocking else Theme.WARNING)
        mode = "blocking" if blocking else "advisory"
        self.console.print(f"[{style}]Quality gates ({mode}): {report.summary()}[/{style}]")

    def run_finished(self, plan: Plan, checkpoint: Checkpoint, all_completed: bool) -> None:
        total = len(checkpoint.phases)
        if all_completed:
            self.console.print(
                Panel(
                    f"[{Theme.SUCCESS}]All {total} phases completed[/{Theme.SUCCESS}]",
                    title=f"{Icons.DONE} Plan complete",
                    border_style=Theme.SUCCESS,
                    box=ROUNDED,
                )
            )
            return
        summary = (
            f"{checkpoint.completed_count} completed, "
            f"{checkpoint.count(PhaseStatus.SKIPPED)} skipped, "
            f"{checkpoint.count(PhaseStatus.FAILED)} failed of {total}"
        )
        self.console.print(
            Panel(
                f"[{Theme.WARNING}]{summary}[/{Theme.WARNING}]\n"
                f"[{Theme.MUTED}]Plan stays pending. Resume with: planrun execute {plan.id} --resume[/{Theme.MUTED}]",
                title=f"{Icons.WARNING} Plan incomplete",
                border_style=Theme.WARNING,
                box=ROUNDED,
            )
        )

    def monolithic_started(self, plan: Plan) -> None:
        self.console.print(
            Panel(
                Text(plan.task, style="bold"),
                title=f"Executing {plan.id}",
                subtitle="single invocation",
                title_align="left",
                border_style=Theme.PRIMARY,
                box=ROUNDED,
            )
        )

    def plan_executed(self, plan: Plan) -> None:
        self.console.print(f"[{Theme.SUCCESS}]{Icons.DONE} Plan {plan.id} marked as executed[/{Theme.SUCCESS}]")

    def note(self, message: str) -> None:
        self.console.print(f"[{Theme.MUTED}]{message}[/{Theme.MUTED}]")


def render_checkpoint_table(plan: Plan, checkpoint: Checkpoint | None) -> Table:
    """One row per plan phase with its checkpoint status."""
    table = Table(title=f"Plan {plan.id}", expand=True)
    table.add_column("#", justify="right", style=Theme.MUTED)
    table.add_column("Phase", style="bold")
    table.add_column("Role")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Detail", style=Theme.MUTED)

    for i, phase in enumerate(plan.phases):
        entry = checkpoint.phases[i] if checkpoint is not None and i < len(checkpoint.phases) else None
        status = entry.status if entry is not None else PhaseStatus.PENDING
        icon, style = PHASE_ICONS[status]
        detail = ""
        if entry is not None:
            detail = entry.error_message or entry.completed_at or entry.started_at or ""
        table.add_row(
            str(i + 1),
            phase.name,
            phase.agent_role,
            f"[{style}]{icon} {status.value}[/{style}]",
            str(entry.attempts) if entry is not None and entry.attempts else "",
            detail,
        )
    return table


def render_plan_table(plans: list[Plan]) -> Table:
    table = Table(title="Plans", expand=True)
    table.add_column("ID", style="bold")
    table.add_column("Status")
    table.add_column("Phases", justify="right")
    table.add_column("Task")
    for plan in plans:
        style = PLAN_STATUS_STYLES[plan.status]
        table.add_row(
            plan.id,
            f"[{style}]{plan.status.value}[/{style}]",
            str(len(plan.phases)) if plan.phases else "-",
            plan.task,
        )
    return table
