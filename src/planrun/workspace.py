"""Per-plan scratch directory used to hand summaries from one phase to the next."""

from __future__ import annotations

from pathlib import Path

from planrun.exceptions import PersistenceError


class Workspace:
    """``<plans>/<id>-workspace/`` holding one ``phase-<i>.md`` per phase.

    The agent writes the summary files; the engine only reads them back and
    embeds them in later prompts as free text.
    """

    def __init__(self, plans_dir: Path, plan_id: str) -> None:
        self.root = Path(plans_dir) / f"{plan_id}-workspace"

    def ensure(self) -> Path:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create workspace: {e}", path=self.root) from e
        return self.root

    def output_path(self, phase_index: int) -> Path:
        return self.root / f"phase-{phase_index}.md"

    def read_summary(self, phase_index: int) -> str | None:
        """The summary written for ``phase_index``, or None if there is none."""
        path = self.output_path(phase_index)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Cannot read phase summary: {e}", path=path) from e
