"""
Plan and checkpoint data model.

Plans are written once by an external planning step and only ever have their
``status`` flipped by the executor. Checkpoints hold per-phase progress for one
plan and mirror its phase list position by position.

Both records are stored as JSON. Unknown keys are kept in ``extra`` and written
back untouched so newer files survive a round trip through older code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _split_extra(data: dict[str, Any], known: set[str]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in known}


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"{key} must be a list, got {type(value).__name__}")
    return [str(v) for v in value]


class PlanStatus(str, Enum):
    """Lifecycle of a plan record."""

    PENDING = "pending"
    EXECUTED = "executed"
    ARCHIVED = "archived"


class PhaseStatus(str, Enum):
    """Status of one phase inside a checkpoint."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def _missing_(cls, value: object) -> PhaseStatus | None:
        # Older checkpoints spell it "inprogress"
        if isinstance(value, str) and value.replace("-", "").replace("_", "").lower() == "inprogress":
            return cls.IN_PROGRESS
        return None

    @property
    def is_terminal_failure(self) -> bool:
        """Failed and Skipped propagate to dependent phases."""
        return self in (PhaseStatus.FAILED, PhaseStatus.SKIPPED)


@dataclass
class PlanAgent:
    """An agent skill participating in the plan, with its role name."""

    skill_id: str
    role: str

    def to_dict(self) -> dict[str, Any]:
        return {"skill_id": self.skill_id, "role": self.role}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanAgent:
        return cls(skill_id=data["skill_id"], role=data["role"])


@dataclass
class PlanStack:
    language: str
    framework: str | None = None

    def describe(self) -> str:
        """Render as ``language + framework``."""
        if self.framework:
            return f"{self.language} + {self.framework}"
        return self.language

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"language": self.language}
        if self.framework is not None:
            data["framework"] = self.framework
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanStack:
        return cls(language=data["language"], framework=data.get("framework"))


@dataclass
class PlanPhase:
    """One named unit of work within a plan.

    ``name`` is unique within the plan and is the key used by ``depends_on``.
    The file lists are hints for the agent and are not enforced.
    """

    name: str
    agent_role: str
    instructions: str
    files_to_create: list[str] = field(default_factory=list)
    files_to_modify: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "agent_role": self.agent_role}
        if self.files_to_create:
            data["files_to_create"] = list(self.files_to_create)
        if self.files_to_modify:
            data["files_to_modify"] = list(self.files_to_modify)
        data["instructions"] = self.instructions
        if self.depends_on:
            data["depends_on"] = list(self.depends_on)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanPhase:
        return cls(
            name=data["name"],
            agent_role=data["agent_role"],
            instructions=data.get("instructions", ""),
            files_to_create=_str_list(data, "files_to_create"),
            files_to_modify=_str_list(data, "files_to_modify"),
            depends_on=_str_list(data, "depends_on"),
        )


_PLAN_KEYS = {
    "id",
    "created",
    "status",
    "task",
    "team_size",
    "profile",
    "agents",
    "stack",
    "quality_gates",
    "gate_commands",
    "phases",
    "source_spec",
}


@dataclass
class Plan:
    """A complete work plan."""

    id: str
    task: str
    created: str = field(default_factory=utc_now)
    status: PlanStatus = PlanStatus.PENDING
    team_size: str = ""
    profile: str = "balanced"
    agents: list[PlanAgent] = field(default_factory=list)
    stack: PlanStack | None = None
    quality_gates: list[str] = field(default_factory=list)
    gate_commands: list[str] = field(default_factory=list)
    phases: list[PlanPhase] = field(default_factory=list)
    source_spec: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_phased(self) -> bool:
        """Plans without phases run as a single monolithic invocation."""
        return bool(self.phases)

    @property
    def phase_names(self) -> list[str]:
        return [p.name for p in self.phases]

    def phase_index(self, name: str) -> int | None:
        """Current position of the phase called ``name``, or None."""
        for i, phase in enumerate(self.phases):
            if phase.name == name:
                return i
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert plan to dictionary for serialization."""
        data: dict[str, Any] = {
            "id": self.id,
            "created": self.created,
            "status": self.status.value,
            "task": self.task,
            "team_size": self.team_size,
            "profile": self.profile,
            "agents": [a.to_dict() for a in self.agents],
        }
        if self.stack is not None:
            data["stack"] = self.stack.to_dict()
        if self.quality_gates:
            data["quality_gates"] = list(self.quality_gates)
        if self.gate_commands:
            data["gate_commands"] = list(self.gate_commands)
        if self.phases:
            data["phases"] = [p.to_dict() for p in self.phases]
        if self.source_spec is not None:
            data["source_spec"] = self.source_spec
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plan:
        """Create plan from dictionary."""
        stack = data.get("stack")
        return cls(
            id=data["id"],
            task=data["task"],
            created=data.get("created") or utc_now(),
            status=PlanStatus(data.get("status", "pending")),
            team_size=data.get("team_size", ""),
            profile=data.get("profile", "balanced"),
            agents=[PlanAgent.from_dict(a) for a in data.get("agents") or []],
            stack=PlanStack.from_dict(stack) if stack else None,
            quality_gates=_str_list(data, "quality_gates"),
            gate_commands=_str_list(data, "gate_commands"),
            phases=[PlanPhase.from_dict(p) for p in data.get("phases") or []],
            source_spec=data.get("source_spec"),
            extra=_split_extra(data, _PLAN_KEYS),
        )


_PHASE_CHECKPOINT_KEYS = {
    "phase_index",
    "phase_name",
    "status",
    "started_at",
    "completed_at",
    "exit_code",
    "error_message",
    "attempts",
}


@dataclass
class PhaseCheckpoint:
    """Progress record of one phase. Mutated only by the phase runner."""

    phase_index: int
    phase_name: str
    status: PhaseStatus = PhaseStatus.PENDING
    started_at: str | None = None
    completed_at: str | None = None
    exit_code: int | None = None
    error_message: str | None = None
    attempts: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "phase_index": self.phase_index,
            "phase_name": self.phase_name,
            "status": self.status.value,
        }
        for key in ("started_at", "completed_at", "exit_code", "error_message"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.attempts:
            data["attempts"] = self.attempts
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PhaseCheckpoint:
        return cls(
            phase_index=data["phase_index"],
            phase_name=data["phase_name"],
            status=PhaseStatus(data.get("status", "pending")),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            exit_code=data.get("exit_code"),
            error_message=data.get("error_message"),
            attempts=data.get("attempts", 0),
            extra=_split_extra(data, _PHASE_CHECKPOINT_KEYS),
        )


_CHECKPOINT_KEYS = {"plan_id", "started_at", "last_updated", "current_phase", "phases"}


@dataclass
class Checkpoint:
    """Durable, resumable progress of one plan's phased execution."""

    plan_id: str
    phases: list[PhaseCheckpoint] = field(default_factory=list)
    started_at: str = field(default_factory=utc_now)
    last_updated: str = field(default_factory=utc_now)
    current_phase: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_plan(cls, plan: Plan) -> Checkpoint:
        """A fresh all-Pending checkpoint mirroring ``plan.phases``."""
        now = utc_now()
        return cls(
            plan_id=plan.id,
            phases=[
                PhaseCheckpoint(phase_index=i, phase_name=p.name)
                for i, p in enumerate(plan.phases)
            ],
            started_at=now,
            last_updated=now,
        )

    def mirrors(self, plan: Plan) -> bool:
        """True when phases correspond one-to-one, by position and name."""
        if len(self.phases) != len(plan.phases):
            return False
        return all(
            ckpt.phase_name == phase.name for ckpt, phase in zip(self.phases, plan.phases)
        )

    def count(self, status: PhaseStatus) -> int:
        return sum(1 for p in self.phases if p.status == status)

    @property
    def completed_count(self) -> int:
        return self.count(PhaseStatus.COMPLETED)

    @property
    def all_completed(self) -> bool:
        return all(p.status == PhaseStatus.COMPLETED for p in self.phases)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "plan_id": self.plan_id,
            "started_at": self.started_at,
            "last_updated": self.last_updated,
            "current_phase": self.current_phase,
            "phases": [p.to_dict() for p in self.phases],
        }
        data.update(self.extra)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        return cls(
            plan_id=data["plan_id"],
            phases=[PhaseCheckpoint.from_dict(p) for p in data.get("phases") or []],
            started_at=data.get("started_at") or utc_now(),
            last_updated=data.get("last_updated") or utc_now(),
            current_phase=data.get("current_phase"),
            extra=_split_extra(data, _CHECKPOINT_KEYS),
        )
