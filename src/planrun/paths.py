"""Filesystem layout for planrun.

planrun runs either globally (``~/.planrun``) or per project (``.planrun/``
next to the project sources, detected by its ``config.toml``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from planrun.exceptions import NotInitializedError

ROOT_DIR_NAME = ".planrun"
CONFIG_FILE_NAME = "config.toml"


class Mode(str, Enum):
    GLOBAL = "global"
    PROJECT = "project"


def global_root() -> Path:
    return Path.home() / ROOT_DIR_NAME


def global_claude_dir() -> Path:
    """Always ``~/.claude``; agent settings live there in both modes."""
    return Path.home() / ".claude"


def detect_project_root(start: Path) -> Path | None:
    """Walk up from ``start`` looking for ``.planrun/config.toml``."""
    current = start.resolve()
    for candidate in (current, *current.parents):
        if (candidate / ROOT_DIR_NAME / CONFIG_FILE_NAME).exists():
            return candidate
    return None


@dataclass(frozen=True)
class PlanrunPaths:
    """Canonical paths used by planrun."""

    mode: Mode
    root: Path
    project_root: Path | None = None

    @property
    def plans(self) -> Path:
        return self.root / "plans"

    @property
    def config(self) -> Path:
        return self.root / CONFIG_FILE_NAME

    @property
    def analytics(self) -> Path:
        return self.root / "analytics.jsonl"

    @property
    def claude_dir(self) -> Path:
        """Agent settings directory; global even in project mode."""
        return global_claude_dir()

    @property
    def workdir(self) -> Path:
        """Directory the agent process runs in."""
        return self.project_root or Path.cwd()

    @property
    def display_name(self) -> str:
        if self.project_root is not None:
            return self.project_root.name or "project"
        return "global"

    @classmethod
    def global_(cls) -> PlanrunPaths:
        return cls(mode=Mode.GLOBAL, root=global_root())

    @classmethod
    def for_project(cls, project_root: Path) -> PlanrunPaths:
        return cls(mode=Mode.PROJECT, root=project_root / ROOT_DIR_NAME, project_root=project_root)

    @classmethod
    def resolve(cls, start: Path | None = None) -> PlanrunPaths:
        """Project mode when a project config is found above ``start``, else global."""
        project_root = detect_project_root(start or Path.cwd())
        if project_root is not None:
            return cls.for_project(project_root)
        return cls.global_()

    @classmethod
    def ensure_initialized(cls, start: Path | None = None) -> PlanrunPaths:
        paths = cls.resolve(start)
        if not paths.root.exists():
            raise NotInitializedError(
                "planrun is not initialized", context={"root": str(paths.root)}
            )
        return paths
