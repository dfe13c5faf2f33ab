"""CLI interface for planrun."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from planrun import __version__
from planrun.checkpoint import CheckpointStore
from planrun.config import (
    ExecutionOrder,
    FailureMode,
    GateMode,
    PlanrunConfig,
    config_summary,
    configure_logging,
    write_default_config,
)
from planrun.escalation import ConsoleDecider, Decider, NonInteractiveDecider
from planrun.exceptions import ConfigError, NoPlansFoundError, PlanrunError
from planrun.executor import PlanExecutor
from planrun.invoker import ClaudeInvoker
from planrun.models import Plan, PlanStatus
from planrun.paths import PlanrunPaths
from planrun.plan_store import PlanStore
from planrun.preflight import has_teams_env_var
from planrun.ui import ConsoleReporter, Icons, Theme, render_checkpoint_table, render_plan_table

app = typer.Typer(
    name="planrun",
    help="Run multi-phase agent plans with checkpoints, resume and retry.",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"planrun version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Run multi-phase agent plans with checkpoints, resume and retry."""


def _print_error(error: PlanrunError) -> None:
    console.print(f"[{Theme.ERROR}]{Icons.ERROR} Error: {escape(str(error))}[/{Theme.ERROR}]")
    if error.hint:
        console.print(f"[{Theme.MUTED}]{error.hint}[/{Theme.MUTED}]")


def _load_config(path: Path, overrides: dict | None = None) -> PlanrunConfig:
    """Load config.toml and apply command-line overrides, validating both."""
    try:
        config = PlanrunConfig.from_file(path)
        if overrides:
            config = PlanrunConfig(**{**config.model_dump(), **overrides})
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML: {e}", context={"path": str(path)}) from e
    except (ValidationError, ValueError, TypeError) as e:
        raise ConfigError(f"Invalid configuration: {e}", context={"path": str(path)}) from e
    return config


def _select_plan(store: PlanStore, plan_id: str | None) -> Plan:
    if plan_id:
        return store.load(plan_id)
    return store.find_latest_pending()


def _print_plan_header(plan: Plan, paths: PlanrunPaths) -> None:
    console.print(
        Panel(
            f"[bold]Plan:[/bold]  {plan.id}\n"
            f"[bold]Task:[/bold]  {plan.task}\n"
            f"[bold]Team:[/bold]  {plan.team_size or '-'}\n"
            f"[bold]Root:[/bold]  {paths.display_name}",
            title="planrun execute",
            title_align="left",
            border_style=Theme.PRIMARY,
        )
    )


@app.command("execute")
def execute_command(
    plan_id: Annotated[
        str | None, typer.Argument(help="Plan to execute (default: latest pending plan)")
    ] = None,
    spec: Annotated[
        str | None, typer.Option("--spec", help="Execute the plan created from this spec")
    ] = None,
    profile: Annotated[
        str | None, typer.Option("--profile", "-p", help="Override the plan's profile")
    ] = None,
    resume: Annotated[
        bool, typer.Option("--resume", help="Resume from the last checkpoint")
    ] = False,
    non_interactive: Annotated[
        bool,
        typer.Option("--non-interactive", "-s", help="Never prompt; apply non_interactive_action"),
    ] = False,
    fail_fast: Annotated[
        bool, typer.Option("--fail-fast", help="Stop at the first failed attempt, no retries")
    ] = False,
    max_retries: Annotated[
        int | None,
        typer.Option("--max-retries", help="Cap on interactive retries per phase (-1 = unbounded)"),
    ] = None,
    gates: Annotated[
        GateMode | None,
        typer.Option("--gates", case_sensitive=False, help="Quality gate mode"),
    ] = None,
    order: Annotated[
        ExecutionOrder | None,
        typer.Option("--order", case_sensitive=False, help="Phase execution order"),
    ] = None,
    config_path: Annotated[
        Path | None, typer.Option("--config", "-c", help="Config file path")
    ] = None,
) -> None:
    """
    Execute a plan phase by phase.

    Examples:
        planrun execute                          # Latest pending plan
        planrun execute 20260101-120000-api      # A specific plan
        planrun execute 20260101-120000-api --resume
        planrun execute --spec user-auth         # The plan created from a spec
    """
    if plan_id and spec:
        console.print(f"[{Theme.ERROR}]Error: Pass either a plan id or --spec, not both[/{Theme.ERROR}]")
        raise typer.Exit(1)

    overrides: dict = {}
    if fail_fast:
        overrides["failure_mode"] = FailureMode.ABORT
    if max_retries is not None:
        overrides["max_interactive_retries"] = None if max_retries < 0 else max_retries
    if gates is not None:
        overrides["gate_mode"] = gates
    if order is not None:
        overrides["execution_order"] = order

    plan: Plan | None = None
    try:
        paths = PlanrunPaths.ensure_initialized()
        config = _load_config(config_path or paths.config, overrides)
        configure_logging(config)

        store = PlanStore(paths.plans)
        command = "execute"
        if spec:
            plan = store.find_for_spec(spec)
            if plan.status == PlanStatus.EXECUTED:
                console.print(
                    f"[{Theme.WARNING}]Plan {plan.id} for spec '{spec}' was already executed."
                    f"[/{Theme.WARNING}]"
                )
                console.print(f"[{Theme.MUTED}]Run it again with: planrun execute {plan.id}[/{Theme.MUTED}]")
                raise typer.Exit(0)
            command = "spec-execute"
        else:
            plan = _select_plan(store, plan_id)

        _print_plan_header(plan, paths)

        decider: Decider = NonInteractiveDecider() if non_interactive else ConsoleDecider()
        executor = PlanExecutor(
            config,
            paths,
            invoker=ClaudeInvoker(config),
            reporter=ConsoleReporter(console),
            decider=decider,
        )
        result = executor.execute(
            plan,
            resume=resume,
            profile=profile or None,
            command=command,
        )
    except KeyboardInterrupt:
        console.print(f"\n[{Theme.WARNING}]Interrupted[/{Theme.WARNING}]")
        if plan is not None and plan.is_phased:
            console.print(
                f"[{Theme.MUTED}]Checkpoint saved. Resume with: planrun execute {plan.id} --resume[/{Theme.MUTED}]"
            )
        raise typer.Exit(130) from None
    except PlanrunError as e:
        _print_error(e)
        raise typer.Exit(1) from None

    if not result.all_completed:
        raise typer.Exit(1)


@app.command("status")
def status_command(
    plan_id: Annotated[str | None, typer.Argument(help="Plan to show (default: most recent)")] = None,
) -> None:
    """Show per-phase progress of a plan."""
    try:
        paths = PlanrunPaths.ensure_initialized()
        store = PlanStore(paths.plans)
        if plan_id:
            plan = store.load(plan_id)
        else:
            plans = store.list_plans()
            if not plans:
                raise NoPlansFoundError("No plans found", context={"plans_dir": str(paths.plans)})
            plan = plans[-1]
        checkpoint = CheckpointStore(paths.plans).load(plan.id)
    except PlanrunError as e:
        _print_error(e)
        raise typer.Exit(1) from None

    style = Theme.SUCCESS if plan.status == PlanStatus.EXECUTED else Theme.WARNING
    console.print(f"[bold]{plan.id}[/bold]  [{style}]{plan.status.value}[/{style}]  {plan.task}")
    if not plan.is_phased:
        console.print(f"[{Theme.MUTED}]Single-invocation plan; no checkpoint is kept.[/{Theme.MUTED}]")
        return
    if checkpoint is None:
        console.print(f"[{Theme.MUTED}]Not started.[/{Theme.MUTED}]")
    console.print(render_checkpoint_table(plan, checkpoint))
    if checkpoint is not None:
        console.print(
            f"[{Theme.MUTED}]{checkpoint.completed_count}/{len(checkpoint.phases)} completed, "
            f"last updated {checkpoint.last_updated}[/{Theme.MUTED}]"
        )


@app.command("plans")
def plans_command() -> None:
    """List plans."""
    try:
        paths = PlanrunPaths.ensure_initialized()
    except PlanrunError as e:
        _print_error(e)
        raise typer.Exit(1) from None

    plans = PlanStore(paths.plans).list_plans()
    if not plans:
        console.print(f"[{Theme.MUTED}]No plans found in {paths.plans}[/{Theme.MUTED}]")
        return
    console.print(render_plan_table(plans))


@app.command("config")
def config_command(
    config_path: Annotated[
        Path | None, typer.Option("--config", "-c", help="Config file path")
    ] = None,
) -> None:
    """Show the effective configuration."""
    paths = PlanrunPaths.resolve()
    path = config_path or paths.config
    try:
        config = _load_config(path)
    except PlanrunError as e:
        _print_error(e)
        raise typer.Exit(1) from None

    lines = [f"[bold]{key}:[/bold] {value}" for key, value in config_summary(config).items()]
    teams = "enabled" if has_teams_env_var(paths.claude_dir, config.teams_env_key) else "not set"
    lines.append(f"[bold]agent teams:[/bold] {teams} ({paths.claude_dir / 'settings.json'})")
    console.print(Panel("\n".join(lines), title=str(path), title_align="left", border_style="blue"))


@app.command("init")
def init_command(
    project: Annotated[
        bool, typer.Option("--project", help="Initialize ./.planrun for this project")
    ] = False,
) -> None:
    """Create the planrun directory and a default config file."""
    paths = PlanrunPaths.for_project(Path.cwd()) if project else PlanrunPaths.global_()
    try:
        paths.plans.mkdir(parents=True, exist_ok=True)
        created = write_default_config(paths.config)
    except OSError as e:
        console.print(f"[{Theme.ERROR}]Error: Cannot initialize {paths.root}: {e}[/{Theme.ERROR}]")
        raise typer.Exit(1) from None

    if created:
        console.print(f"[{Theme.SUCCESS}]Created config at:[/{Theme.SUCCESS}] {paths.config}")
    else:
        console.print(f"[{Theme.MUTED}]Config already exists:[/{Theme.MUTED}] {paths.config}")
    console.print(f"[{Theme.MUTED}]Plans directory:[/{Theme.MUTED}] {paths.plans}")


if __name__ == "__main__":
    app()
