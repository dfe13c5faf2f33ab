"""Post-phase quality gates.

Gates are shell commands run in the project directory after a phase succeeds.
Their output is discarded; only exit codes are reported. A command that cannot
be started at all is reported as unavailable rather than failed.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class GateResult:
    command: str
    exit_code: int | None  # None = could not be started

    @property
    def available(self) -> bool:
        return self.exit_code is not None

    @property
    def passed(self) -> bool:
        return self.exit_code == 0

    @property
    def failed(self) -> bool:
        return self.available and not self.passed


@dataclass
class GateReport:
    phase_index: int
    phase_name: str
    results: list[GateResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        """No available gate failed."""
        return not self.failures

    @property
    def failures(self) -> list[GateResult]:
        return [r for r in self.results if r.failed]

    def summary(self) -> str:
        if not self.results:
            return "no quality gates"
        ran = [r for r in self.results if r.available]
        failed = len(self.failures)
        text = f"{len(ran) - failed}/{len(ran)} gates passed"
        unavailable = len(self.results) - len(ran)
        if unavailable:
            text += f", {unavailable} not available"
        return text


class QualityGateRunner:
    """Runs a fixed list of gate commands.

    Usage:
        runner = QualityGateRunner(["pytest -q", "ruff check ."], cwd=project)
        report = runner.run(0, "schema")
    """

    def __init__(self, commands: list[str], cwd: Path) -> None:
        self.commands = [c for c in commands if c.strip()]
        self.cwd = Path(cwd)

    def __bool__(self) -> bool:
        return bool(self.commands)

    def run_command(self, command: str) -> GateResult:
        try:
            completed = subprocess.run(
                command,
                shell=True,
                cwd=self.cwd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError as e:
            logger.warning("Quality gate %r could not be started: %s", command, e)
            return GateResult(command=command, exit_code=None)
        # 127: the shell could not find the command
        if completed.returncode == 127:
            return GateResult(command=command, exit_code=None)
        return GateResult(command=command, exit_code=completed.returncode)

    def run(self, phase_index: int, phase_name: str) -> GateReport:
        report = GateReport(phase_index=phase_index, phase_name=phase_name)
        for command in self.commands:
            result = self.run_command(command)
            logger.info(
                "Quality gate %r after phase %s: %s",
                command,
                phase_name,
                "unavailable" if not result.available else result.exit_code,
            )
            report.results.append(result)
        return report
