"""
Plan Store - JSON-file persistence for plan records.

Each plan lives in ``<plans>/<id>.json`` with an optional human-readable plan
document in ``<plans>/<id>.md``. Plan ids start with a ``YYYYMMDD-HHMMSS``
timestamp, so lexical order is chronological order.
"""

from __future__ import annotations

import logging
from pathlib import Path

from planrun.exceptions import NoPlansFoundError, PersistenceError, PlanNotFoundError
from planrun.json_utils import read_json_object, write_json_atomic
from planrun.models import Plan, PlanStatus

logger = logging.getLogger(__name__)


class PlanStore:
    """Loads, saves and searches plan records under one plans directory.

    Usage:
        store = PlanStore(paths.plans)
        plan = store.find_latest_pending()
        plan.status = PlanStatus.EXECUTED
        store.save(plan)
    """

    def __init__(self, plans_dir: Path) -> None:
        self.plans_dir = Path(plans_dir)

    def plan_path(self, plan_id: str) -> Path:
        return self.plans_dir / f"{plan_id}.json"

    def document_path(self, plan_id: str) -> Path:
        return self.plans_dir / f"{plan_id}.md"

    def load(self, plan_id: str) -> Plan:
        """Load a plan by id.

        Raises:
            PlanNotFoundError: If no plan file exists for ``plan_id``
            PersistenceError: If the file cannot be read or decoded
        """
        return self._load_path(self.plan_path(plan_id), plan_id)

    def _load_path(self, path: Path, plan_id: str | None = None) -> Plan:
        try:
            data = read_json_object(path)
        except FileNotFoundError:
            raise PlanNotFoundError(plan_id or path.stem) from None
        try:
            return Plan.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Malformed plan record: {e}", path=path) from e

    def save(self, plan: Plan) -> Path:
        """Rewrite the whole plan record atomically."""
        path = self.plan_path(plan.id)
        write_json_atomic(path, plan.to_dict())
        logger.debug("Saved plan %s (status=%s)", plan.id, plan.status.value)
        return path

    def _plan_files(self) -> list[Path]:
        if not self.plans_dir.exists():
            return []
        # Checkpoints share the directory and the .json suffix
        return sorted(
            p
            for p in self.plans_dir.glob("*.json")
            if not p.name.endswith(".checkpoint.json")
        )

    def list_plans(self) -> list[Plan]:
        """All readable plans, oldest first. Unreadable files are skipped."""
        plans: list[Plan] = []
        for path in self._plan_files():
            try:
                plans.append(self._load_path(path))
            except (PersistenceError, PlanNotFoundError) as e:
                logger.warning("Skipping unreadable plan file %s: %s", path.name, e)
        return plans

    def find_latest_pending(self) -> Plan:
        """Newest plan still in Pending status.

        Raises:
            NoPlansFoundError: If no pending plan exists
        """
        for plan in reversed(self.list_plans()):
            if plan.status == PlanStatus.PENDING:
                return plan
        raise NoPlansFoundError("No pending plans found", context={"plans_dir": str(self.plans_dir)})

    def find_for_spec(self, spec_id: str) -> Plan:
        """Most recent plan whose ``source_spec`` links back to ``spec_id``."""
        for plan in reversed(self.list_plans()):
            if plan.source_spec == spec_id:
                return plan
        raise PlanNotFoundError(f"spec '{spec_id}'", context={"plans_dir": str(self.plans_dir)})

    def read_document(self, plan: Plan) -> str:
        """The plan's markdown document, or a short placeholder when absent."""
        path = self.document_path(plan.id)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return f"# Plan: {plan.task}\n\nNo detailed plan file found."
        except UnicodeDecodeError as e:
            raise PersistenceError(f"Plan document is not valid UTF-8: {e}", path=path) from e
        except OSError as e:
            raise PersistenceError(f"Cannot read plan document: {e}", path=path) from e
