"""
Usage tracking for planrun.

Provides:
- UsageTracker: JSONL log of which agent skills were used by which command
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from planrun.json_utils import write_text_atomic
from planrun.models import utc_now

logger = logging.getLogger(__name__)

MAX_EVENTS = 10_000


@dataclass
class UsageEvent:
    """One use of an agent skill."""

    skill_id: str
    command: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class UsageTracker:
    """Usage log backed by ``<root>/analytics.jsonl``, capped at ``max_events``."""

    def __init__(self, path: Path, max_events: int = MAX_EVENTS) -> None:
        self.path = Path(path)
        self.max_events = max_events

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def track(self, skill_id: str, command: str) -> UsageEvent:
        """Append an event, trimming the oldest beyond the cap."""
        event = UsageEvent(skill_id=skill_id, command=command, timestamp=utc_now())
        if self._count_lines() < self.max_events:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict()) + "\n")
            return event

        events = self.all_events()
        events.append(event.to_dict())
        events = events[-self.max_events :]
        write_text_atomic(self.path, "".join(json.dumps(e) + "\n" for e in events))
        return event

    def track_many(self, skill_ids: list[str], command: str) -> int:
        """Record one event per skill. Failures are logged, never raised.

        Returns:
            Number of events recorded.
        """
        recorded = 0
        for skill_id in skill_ids:
            try:
                self.track(skill_id, command)
                recorded += 1
            except Exception:
                logger.warning("Failed to record usage for %s", skill_id, exc_info=True)
        return recorded

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def all_events(self) -> list[dict[str, Any]]:
        """Every recorded event; malformed lines are ignored."""
        if not self.path.exists():
            return []
        events: list[dict[str, Any]] = []
        with open(self.path, encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if line:
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if isinstance(data, dict):
                        events.append(data)
        return events

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _count_lines(self) -> int:
        if not self.path.exists():
            return 0
        with open(self.path, encoding="utf-8", errors="replace") as f:
            return sum(1 for line in f if line.strip())
