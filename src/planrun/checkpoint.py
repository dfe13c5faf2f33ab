"""
Checkpoint Store - durable per-plan execution progress.

Checkpoints are saved to ``<plans>/<id>.checkpoint.json`` after every phase
state transition, independently of the plan file. A missing checkpoint means
"not started"; an unreadable one is a fatal error, never "not started".
"""

from __future__ import annotations

import logging
from pathlib import Path

from planrun.exceptions import CorruptCheckpointError, PersistenceError
from planrun.json_utils import read_json_object, write_json_atomic
from planrun.models import Checkpoint, Plan, utc_now

logger = logging.getLogger(__name__)


class CheckpointStore:
    """Loads and saves checkpoints keyed by plan id.

    Usage:
        store = CheckpointStore(paths.plans)
        checkpoint = store.load(plan.id) or store.initialize(plan)
        checkpoint.phases[0].status = PhaseStatus.IN_PROGRESS
        store.save(checkpoint)
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    def path(self, plan_id: str) -> Path:
        return self.base_dir / f"{plan_id}.checkpoint.json"

    def initialize(self, plan: Plan) -> Checkpoint:
        """Fresh all-Pending checkpoint whose phases mirror ``plan.phases``.

        Nothing is written until :meth:`save` is called.
        """
        return Checkpoint.for_plan(plan)

    def load(self, plan_id: str) -> Checkpoint | None:
        """Load the checkpoint for ``plan_id``.

        Returns:
            The checkpoint, or None if none was ever saved.

        Raises:
            CorruptCheckpointError: If the file exists but cannot be decoded
            PersistenceError: If the file cannot be read
        """
        path = self.path(plan_id)
        try:
            data = read_json_object(path)
        except FileNotFoundError:
            return None
        except PersistenceError as e:
            if isinstance(e.__cause__, OSError):
                raise
            raise CorruptCheckpointError(f"Corrupt checkpoint: {e.message}", path=path) from e

        try:
            return Checkpoint.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptCheckpointError(f"Corrupt checkpoint: {e!r}", path=path) from e

    def save(self, checkpoint: Checkpoint) -> Path:
        """Persist atomically, stamping ``last_updated``."""
        checkpoint.last_updated = utc_now()
        path = self.path(checkpoint.plan_id)
        write_json_atomic(path, checkpoint.to_dict())
        logger.debug(
            "Saved checkpoint for %s (current_phase=%s)",
            checkpoint.plan_id,
            checkpoint.current_phase,
        )
        return path
