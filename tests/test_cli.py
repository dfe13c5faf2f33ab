from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from planrun import __version__
from planrun.checkpoint import CheckpointStore
from planrun.cli import app
from planrun.models import PhaseStatus, PlanStatus
from planrun.paths import PlanrunPaths
from planrun.plan_store import PlanStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))
    return home


@pytest.fixture
def project(tmp_path, home, monkeypatch):
    """An initialized project directory used as the working directory."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    result = runner.invoke(app, ["init", "--project"])
    assert result.exit_code == 0, result.output
    return PlanrunPaths.for_project(project)


@pytest.fixture
def agent(monkeypatch, make_invoker):
    """Replace the real agent CLI with a scripted one."""
    invoker = make_invoker()
    monkeypatch.setattr("planrun.cli.ClaudeInvoker", lambda config: invoker)
    return invoker


def _save(paths, plan):
    PlanStore(paths.plans).save(plan)
    return plan


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"planrun version {__version__}" in result.output


def test_no_args_shows_help():
    result = runner.invoke(app, [])
    assert "execute" in result.output


class TestInit:
    def test_init_project(self, project):
        assert project.config.exists()
        assert project.plans.is_dir()

    def test_init_twice_keeps_config(self, project):
        project.config.write_text('profile = "fast"\n')

        result = runner.invoke(app, ["init", "--project"])

        assert result.exit_code == 0
        assert "already exists" in result.output
        assert project.config.read_text() == 'profile = "fast"\n'

    def test_init_global(self, home, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert (home / ".planrun" / "config.toml").exists()


class TestExecute:
    def test_not_initialized(self, home, tmp_path, monkeypatch, agent):
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(app, ["execute"])

        assert result.exit_code == 1
        assert "planrun init" in result.output

    def test_no_pending_plans(self, project, agent):
        result = runner.invoke(app, ["execute"])

        assert result.exit_code == 1
        assert "No pending plans found" in result.output

    def test_executes_latest_pending(self, project, agent, make_plan):
        plan = _save(project, make_plan(("schema", []), ("api", ["schema"])))

        result = runner.invoke(app, ["execute"])

        assert result.exit_code == 0, result.output
        assert agent.invoked_phases == ["schema", "api"]
        assert PlanStore(project.plans).load(plan.id).status == PlanStatus.EXECUTED

    def test_enables_agent_teams_in_global_settings(self, project, home, agent, make_plan):
        _save(project, make_plan(("a", [])))

        runner.invoke(app, ["execute"])

        settings = json.loads((home / ".claude" / "settings.json").read_text())
        assert settings["env"]["CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS"] == "1"
        assert not (project.project_root / ".claude").exists()

    def test_failure_non_interactive(self, project, agent, make_plan):
        plan = _save(project, make_plan(("schema", []), ("api", ["schema"])))
        agent.default = 1

        result = runner.invoke(app, ["execute", plan.id, "--non-interactive"])

        assert result.exit_code == 1
        assert "planrun execute" in result.output
        checkpoint = CheckpointStore(project.plans).load(plan.id)
        assert checkpoint.phases[0].status == PhaseStatus.FAILED
        assert checkpoint.phases[1].status == PhaseStatus.PENDING

    def test_fail_fast(self, project, agent, make_plan):
        plan = _save(project, make_plan(("a", [])))
        agent.exit_codes = [1]

        result = runner.invoke(app, ["execute", plan.id, "--fail-fast"])

        assert result.exit_code == 1
        assert len(agent.prompts) == 1

    def test_resume(self, project, agent, make_plan):
        plan = _save(project, make_plan(("one", []), ("two", ["one"])))
        store = CheckpointStore(project.plans)
        checkpoint = store.initialize(plan)
        checkpoint.phases[0].status = PhaseStatus.COMPLETED
        store.save(checkpoint)

        result = runner.invoke(app, ["execute", plan.id, "--resume"])

        assert result.exit_code == 0, result.output
        assert agent.invoked_phases == ["two"]

    def test_unknown_plan(self, project, agent):
        result = runner.invoke(app, ["execute", "20990101-000000-none"])

        assert result.exit_code == 1
        assert "Plan not found" in result.output

    def test_spec_already_executed(self, project, agent, make_plan):
        plan = make_plan(("a", []), source_spec="user-auth")
        plan.status = PlanStatus.EXECUTED
        _save(project, plan)

        result = runner.invoke(app, ["execute", "--spec", "user-auth"])

        assert result.exit_code == 0
        assert "already executed" in result.output
        assert agent.prompts == []

    def test_spec_execute(self, project, agent, make_plan):
        _save(project, make_plan(("a", []), source_spec="user-auth"))

        result = runner.invoke(app, ["execute", "--spec", "user-auth"])

        assert result.exit_code == 0, result.output
        events = [json.loads(line) for line in project.analytics.read_text().splitlines()]
        assert {e["command"] for e in events} == {"spec-execute"}

    def test_plan_id_and_spec_conflict(self, project, agent):
        result = runner.invoke(app, ["execute", "x", "--spec", "y"])
        assert result.exit_code == 1

    def test_interrupt_exits_130(self, project, agent, make_plan):
        plan = _save(project, make_plan(("a", []), ("b", [])))

        def interrupt(prompt, cwd):
            raise KeyboardInterrupt

        agent.on_invoke = interrupt

        result = runner.invoke(app, ["execute", plan.id])

        assert result.exit_code == 130
        assert f"planrun execute {plan.id} --resume" in " ".join(result.output.split())
        checkpoint = CheckpointStore(project.plans).load(plan.id)
        assert checkpoint.phases[0].status == PhaseStatus.IN_PROGRESS

    def test_invalid_config(self, project, agent, make_plan):
        _save(project, make_plan(("a", [])))
        project.config.write_text('failure_mode = "explode"\n')

        result = runner.invoke(app, ["execute"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        assert agent.prompts == []


class TestStatusAndPlans:
    def test_status_shows_phases(self, project, make_plan):
        plan = _save(project, make_plan(("schema", []), ("api", ["schema"])))
        store = CheckpointStore(project.plans)
        checkpoint = store.initialize(plan)
        checkpoint.phases[0].status = PhaseStatus.COMPLETED
        store.save(checkpoint)

        result = runner.invoke(app, ["status", plan.id])

        assert result.exit_code == 0, result.output
        assert "schema" in result.output
        assert "1/2 completed" in result.output

    def test_status_not_started(self, project, make_plan):
        plan = _save(project, make_plan(("schema", [])))

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Not started" in result.output
        assert plan.id in result.output

    def test_status_monolithic(self, project, make_plan):
        _save(project, make_plan())

        result = runner.invoke(app, ["status"])

        assert "no checkpoint is kept" in result.output

    def test_plans_lists(self, project, make_plan):
        _save(project, make_plan(("a", []), plan_id="20260101-000000-first"))

        result = runner.invoke(app, ["plans"])

        assert result.exit_code == 0
        assert "20260101-000000-first" in result.output

    def test_plans_skips_undecodable_file(self, project, make_plan):
        _save(project, make_plan(("a", []), plan_id="20260101-000000-first"))
        (project.plans / "20260102-000000-broken.json").write_bytes(b'{"id": "\xff\xfe"}')

        result = runner.invoke(app, ["plans"])

        assert result.exit_code == 0, result.output
        assert "20260101-000000-first" in result.output

    def test_plans_empty(self, project):
        result = runner.invoke(app, ["plans"])
        assert "No plans found" in result.output

    def test_config_command(self, project):
        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "failure_mode" in result.output
        assert "retry_then_ask" in result.output
        assert "agent teams: not set" in result.output

    def test_config_command_reports_teams_setting(self, project, home):
        (home / ".claude").mkdir()
        (home / ".claude" / "settings.json").write_text(
            json.dumps({"env": {"CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS": "1"}})
        )

        result = runner.invoke(app, ["config"])

        assert "agent teams: enabled" in result.output
