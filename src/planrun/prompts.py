"""Prompt assembly for the agent process.

The agent receives one opaque text prompt per invocation. Phased plans get one
prompt per phase carrying a digest of earlier phases; monolithic plans get a
single orchestration prompt for the whole plan.
"""

from __future__ import annotations

from planrun.models import Checkpoint, Plan
from planrun.workspace import Workspace

PHASE_RULES = [
    "Read CLAUDE.md before starting",
    "Focus only on this phase's scope",
    "Write the output summary file when done",
    "Stop and report if blocked",
]


def agent_name(prefix: str, skill_id: str) -> str:
    """Installed agent name for a skill id, e.g. ``planrun--dev--api``."""
    return f"{prefix}--{skill_id.replace('/', '--')}"


def build_phase_prompt(
    plan: Plan,
    phase_index: int,
    plan_md: str,
    workspace: Workspace,
    checkpoint: Checkpoint | None = None,
) -> str:
    """Build the prompt for a single phase.

    Args:
        plan: The plan being executed
        phase_index: Zero-based position of the phase to run
        plan_md: The full plan document, embedded for reference
        workspace: Where earlier phases left their output summaries
        checkpoint: When given, each earlier phase is annotated with its status

    Returns:
        The prompt text.
    """
    phase = plan.phases[phase_index]
    total = len(plan.phases)
    lines: list[str] = [f"Execute Phase {phase_index + 1} of {total}: {phase.name}", ""]

    lines.append("## Task Context")
    lines.append("")
    lines.append(f"Overall task: {plan.task}")
    if plan.stack is not None:
        lines.append(f"Stack: {plan.stack.describe()}")
    lines.append("")

    if phase_index > 0:
        lines.append("## Previous Phases")
        lines.append("")
        for i, prev in enumerate(plan.phases[:phase_index]):
            lines.append(f"### Phase {i + 1}: {prev.name} ({prev.agent_role})")
            if checkpoint is not None and i < len(checkpoint.phases):
                lines.append(f"Status: {checkpoint.phases[i].status.value}")
            lines.append(f"Instructions: {prev.instructions}")
            summary = workspace.read_summary(i)
            if summary is not None:
                lines.append("")
                lines.append("Output summary:")
                lines.append(summary.rstrip("\n"))
            lines.append("")

    lines.append("## Current Phase")
    lines.append("")
    lines.append(f"**Phase {phase_index + 1}: {phase.name}**")
    lines.append("")
    lines.append(f"Agent role: {phase.agent_role}")
    if phase.files_to_create:
        lines.append(f"Files to create: {', '.join(phase.files_to_create)}")
    if phase.files_to_modify:
        lines.append(f"Files to modify: {', '.join(phase.files_to_modify)}")
    if phase.depends_on:
        lines.append(f"Depends on: {', '.join(phase.depends_on)}")
    lines.append("")
    lines.append(f"Instructions: {phase.instructions}")
    lines.append("")

    lines.append("## Output")
    lines.append("")
    lines.append("After completing this phase, write a brief summary of what was done to:")
    lines.append(str(workspace.output_path(phase_index)))
    lines.append("")

    lines.append("## Full Plan Reference")
    lines.append("")
    lines.append(plan_md.rstrip("\n"))
    lines.append("")

    lines.append("## Rules")
    lines.append("")
    lines.extend(f"- {rule}" for rule in PHASE_RULES)
    return "\n".join(lines) + "\n"


def build_execution_prompt(plan: Plan, plan_md: str, agent_prefix: str = "planrun") -> str:
    """Build the single orchestration prompt used for monolithic plans."""
    lines: list[str] = [
        "Execute this implementation plan. You are the team orchestrator.",
        "",
    ]

    if not plan.phases:
        lines.append("## Plan")
        lines.append("")
        lines.append(plan_md.rstrip("\n"))
        lines.append("")
    else:
        lines.append("## Implementation Phases")
        lines.append("")
        for i, phase in enumerate(plan.phases):
            lines.append(f"### Phase {i + 1}: {phase.name}")
            lines.append(f"- **Agent**: {phase.agent_role}")
            if phase.files_to_create:
                lines.append(f"- **Files to create**: {', '.join(phase.files_to_create)}")
            if phase.files_to_modify:
                lines.append(f"- **Files to modify**: {', '.join(phase.files_to_modify)}")
            if phase.depends_on:
                lines.append(f"- **Depends on**: {', '.join(phase.depends_on)}")
            lines.append(f"- **Instructions**: {phase.instructions}")
            lines.append("")
        lines.append("## Full Plan Context")
        lines.append("")
        lines.append(plan_md.rstrip("\n"))
        lines.append("")

    if plan.quality_gates:
        lines.append("## Quality Gates")
        lines.append("")
        lines.append("After all phases complete, verify these conditions:")
        lines.append("")
        lines.extend(f"- [ ] {gate}" for gate in plan.quality_gates)
        lines.append("")

    lines.append("## Team Configuration")
    lines.append("")
    lines.append(f"Team size: {plan.team_size}")
    lines.append(f"Profile: {plan.profile}")
    lines.append("")
    if plan.agents:
        lines.append("Spawn these agents as teammates:")
        lines.append("")
        for agent in plan.agents:
            lines.append(f"- **{agent.role}**: use the `{agent_name(agent_prefix, agent.skill_id)}` agent")
        lines.append("")

    lines.append("## Execution Rules")
    lines.append("")
    lines.append("- Follow the implementation phases in order")
    lines.append("- Pass results between phases as context")
    lines.append("- Stop and report if an agent is blocked or encounters errors")
    lines.append("- Use delegate mode for efficiency")
    lines.append("- Read CLAUDE.md before starting implementation")
    if plan.quality_gates:
        lines.append("- After all phases complete, run quality gate checks")
    return "\n".join(lines) + "\n"
