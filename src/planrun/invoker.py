"""Agent Invoker - synchronous adapter around the external agent CLI.

Runs ``<cli> <agent_args...> <prompt>`` in the project directory with the
terminal's stdio inherited, blocking until the process exits. Only the exit
code is authoritative; stdout is never parsed.
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from planrun.config import PlanrunConfig, find_agent_cli
from planrun.exceptions import InvokerUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class InvocationResult:
    """Completion signal of one agent invocation."""

    exit_code: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class AgentInvoker(ABC):
    """Anything that can perform a unit of work given a prompt."""

    @abstractmethod
    def check_available(self) -> None:
        """Raise InvokerUnavailableError if invocations cannot possibly start."""

    @abstractmethod
    def invoke(self, prompt: str, cwd: Path) -> InvocationResult:
        """Run the agent to completion and report its exit code."""


class ClaudeInvoker(AgentInvoker):
    """Invokes the Claude CLI as a subprocess.

    Usage:
        invoker = ClaudeInvoker(config)
        invoker.check_available()
        result = invoker.invoke(prompt, Path.cwd())
    """

    def __init__(self, config: PlanrunConfig | None = None) -> None:
        self.config = config or PlanrunConfig()
        self._cli_path: str | None = self.config.agent_cli

    @property
    def cli_path(self) -> str:
        if self._cli_path is None:
            self._cli_path = find_agent_cli()
        if not self._cli_path:
            raise InvokerUnavailableError("Agent CLI not found")
        return self._cli_path

    def build_command(self, prompt: str) -> list[str]:
        return [self.cli_path, *self.config.agent_args, prompt]

    def check_available(self) -> None:
        cli_path = self.cli_path
        try:
            result = subprocess.run(
                [cli_path, "--version"],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise InvokerUnavailableError(
                f"Cannot start agent CLI: {e}", context={"cli_path": cli_path}
            ) from e
        if result.returncode != 0:
            raise InvokerUnavailableError(
                "Agent CLI is not working",
                context={"cli_path": cli_path, "exit_code": result.returncode},
            )
        logger.debug("Agent CLI available: %s (%s)", cli_path, result.stdout.strip())

    def invoke(self, prompt: str, cwd: Path) -> InvocationResult:
        cmd = self.build_command(prompt)
        logger.info("Invoking agent in %s", cwd, extra={"prompt_chars": len(prompt)})
        try:
            # Inherited stdio and no timeout: the agent is interactive and long-running
            completed = subprocess.run(cmd, cwd=cwd, check=False)
        except OSError as e:
            raise InvokerUnavailableError(
                f"Failed to start agent: {e}", context={"cli_path": cmd[0]}
            ) from e
        logger.info("Agent exited with code %d", completed.returncode)
        return InvocationResult(exit_code=completed.returncode)
