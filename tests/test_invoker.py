from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from planrun.config import PlanrunConfig
from planrun.exceptions import InvokerUnavailableError
from planrun.invoker import ClaudeInvoker, InvocationResult


def _completed(returncode=0, stdout=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout)


class TestInvocationResult:
    def test_success(self):
        assert InvocationResult(0).success
        assert not InvocationResult(2).success


class TestClaudeInvoker:
    def test_build_command_puts_prompt_last(self):
        invoker = ClaudeInvoker(PlanrunConfig(agent_cli="/bin/claude"))

        cmd = invoker.build_command("do the thing")

        assert cmd == ["/bin/claude", "--dangerously-skip-permissions", "--", "do the thing"]

    def test_custom_agent_args(self):
        config = PlanrunConfig(agent_cli="claude", agent_args=["--model", "opus"])
        assert ClaudeInvoker(config).build_command("p") == ["claude", "--model", "opus", "p"]

    def test_autodetects_cli(self):
        with patch("planrun.invoker.find_agent_cli", return_value="/usr/local/bin/claude"):
            assert ClaudeInvoker().cli_path == "/usr/local/bin/claude"

    def test_missing_cli(self):
        with patch("planrun.invoker.find_agent_cli", return_value=None):
            with pytest.raises(InvokerUnavailableError):
                ClaudeInvoker().check_available()

    def test_check_available_runs_version(self):
        invoker = ClaudeInvoker(PlanrunConfig(agent_cli="claude"))
        with patch("planrun.invoker.subprocess.run", return_value=_completed(0, "1.0.0")) as run:
            invoker.check_available()
        assert run.call_args[0][0] == ["claude", "--version"]

    def test_check_available_nonzero(self):
        invoker = ClaudeInvoker(PlanrunConfig(agent_cli="claude"))
        with patch("planrun.invoker.subprocess.run", return_value=_completed(1)):
            with pytest.raises(InvokerUnavailableError):
                invoker.check_available()

    def test_check_available_cannot_start(self):
        invoker = ClaudeInvoker(PlanrunConfig(agent_cli="/missing/claude"))
        with patch("planrun.invoker.subprocess.run", side_effect=FileNotFoundError("nope")):
            with pytest.raises(InvokerUnavailableError):
                invoker.check_available()

    def test_invoke_reports_exit_code(self, tmp_path):
        invoker = ClaudeInvoker(PlanrunConfig(agent_cli="claude"))
        with patch("planrun.invoker.subprocess.run", return_value=_completed(3)) as run:
            result = invoker.invoke("prompt", tmp_path)

        assert result.exit_code == 3
        assert run.call_args.kwargs["cwd"] == tmp_path
        assert run.call_args.kwargs["check"] is False
        # stdio is inherited, never captured
        assert "capture_output" not in run.call_args.kwargs
        assert "stdout" not in run.call_args.kwargs

    def test_invoke_cannot_start(self):
        invoker = ClaudeInvoker(PlanrunConfig(agent_cli="claude"))
        with patch("planrun.invoker.subprocess.run", side_effect=PermissionError("denied")):
            with pytest.raises(InvokerUnavailableError):
                invoker.invoke("prompt", Path("."))
