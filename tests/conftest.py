"""Shared fixtures: a scripted agent, a scripted decider and plan builders."""

from __future__ import annotations

from pathlib import Path

import pytest

from planrun.escalation import Decider, Decision, PhaseFailure
from planrun.exceptions import InvokerUnavailableError
from planrun.invoker import AgentInvoker, InvocationResult
from planrun.models import Plan, PlanAgent, PlanPhase, PlanStack
from planrun.paths import PlanrunPaths

PLAN_ID = "20260101-120000-build-api"


class FakeInvoker(AgentInvoker):
    """Returns scripted exit codes and records every prompt it receives."""

    def __init__(self, exit_codes=(), default=0, available=True, on_invoke=None):
        self.exit_codes = list(exit_codes)
        self.default = default
        self.available = available
        self.on_invoke = on_invoke
        self.prompts: list[str] = []
        self.availability_checks = 0

    def check_available(self) -> None:
        self.availability_checks += 1
        if not self.available:
            raise InvokerUnavailableError("Agent CLI not found")

    def invoke(self, prompt: str, cwd: Path) -> InvocationResult:
        self.prompts.append(prompt)
        if self.on_invoke is not None:
            self.on_invoke(prompt, cwd)
        code = self.exit_codes.pop(0) if self.exit_codes else self.default
        return InvocationResult(exit_code=code)

    @property
    def invoked_phases(self) -> list[str]:
        """Phase names in invocation order, read from each prompt's header."""
        names = []
        for prompt in self.prompts:
            first = prompt.splitlines()[0]
            names.append(first.split(": ", 1)[1] if first.startswith("Execute Phase") else "<plan>")
        return names


class ScriptedDecider(Decider):
    """Answers Retry/Skip/Abort from a list; Abort once the list runs out."""

    def __init__(self, decisions=(), interactive=True):
        self.decisions = list(decisions)
        self.interactive = interactive
        self.asked: list[tuple[PhaseFailure, list[Decision]]] = []

    @property
    def is_interactive(self) -> bool:
        return self.interactive

    def decide(self, failure: PhaseFailure, options: list[Decision]) -> Decision:
        self.asked.append((failure, list(options)))
        return self.decisions.pop(0) if self.decisions else Decision.ABORT


def build_plan(*phases, plan_id: str = PLAN_ID, **kwargs) -> Plan:
    """``build_plan(("schema", []), ("api", ["schema"]))``"""
    return Plan(
        id=plan_id,
        task=kwargs.pop("task", "Build a REST API"),
        team_size=kwargs.pop("team_size", "small"),
        agents=kwargs.pop("agents", [PlanAgent(skill_id="code/python/coder", role="coder")]),
        stack=kwargs.pop("stack", PlanStack(language="python", framework="fastapi")),
        phases=[
            PlanPhase(
                name=name,
                agent_role="coder",
                instructions=f"Do the {name} work",
                depends_on=list(deps),
            )
            for name, deps in phases
        ],
        **kwargs,
    )


@pytest.fixture
def make_invoker():
    return FakeInvoker


@pytest.fixture
def make_decider():
    return ScriptedDecider


@pytest.fixture
def make_plan():
    return build_plan


@pytest.fixture
def paths(tmp_path: Path) -> PlanrunPaths:
    """An initialized project-mode planrun root under ``tmp_path``."""
    project = tmp_path / "project"
    paths = PlanrunPaths.for_project(project)
    paths.plans.mkdir(parents=True)
    return paths
