"""
Failure Escalation Policy - what to do after a phase attempt fails.

Under ``retry_then_ask`` a failure is first retried automatically
``auto_retries`` times. After that a human is asked to Retry, Skip or Abort;
when nobody can be asked the configured non-interactive action is taken.
Under ``abort`` the first failure stops the run.
"""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.styles import Style
from prompt_toolkit.validation import ValidationError, Validator

from planrun.config import FailureMode, FallbackAction, PlanrunConfig

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    RETRY = "retry"
    SKIP = "skip"
    ABORT = "abort"


@dataclass
class PhaseFailure:
    """Everything a decider needs to know about a failed phase."""

    phase_index: int
    phase_name: str
    total_phases: int
    exit_code: int | None
    attempts: int
    error_message: str | None = None
    interactive_retries: int = 0


@dataclass
class EscalationStep:
    decision: Decision
    automatic: bool = False  # taken without asking anyone


class Decider(ABC):
    """Source of Retry/Skip/Abort decisions once automatic retries are spent."""

    @property
    @abstractmethod
    def is_interactive(self) -> bool: ...

    @abstractmethod
    def decide(self, failure: PhaseFailure, options: list[Decision]) -> Decision: ...


class NonInteractiveDecider(Decider):
    """Never asks; the policy applies its non-interactive action."""

    @property
    def is_interactive(self) -> bool:
        return False

    def decide(self, failure: PhaseFailure, options: list[Decision]) -> Decision:
        return Decision.ABORT


_SHORTCUTS = {"r": Decision.RETRY, "s": Decision.SKIP, "a": Decision.ABORT}


def parse_decision(text: str, options: list[Decision]) -> Decision | None:
    """Map ``r``/``retry``/``1``-style input onto one of ``options``."""
    value = text.strip().lower()
    if not value:
        return None
    if value.isdigit():
        pos = int(value) - 1
        return options[pos] if 0 <= pos < len(options) else None
    decision = _SHORTCUTS.get(value[0]) if len(value) == 1 else None
    if decision is None:
        try:
            decision = Decision(value)
        except ValueError:
            return None
    return decision if decision in options else None


class _DecisionCompleter(Completer):
    def __init__(self, options: list[Decision]) -> None:
        self.options = options

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor.strip().lower()
        for option in self.options:
            if option.value.startswith(text):
                yield Completion(option.value, start_position=-len(document.text_before_cursor))


class _DecisionValidator(Validator):
    def __init__(self, options: list[Decision]) -> None:
        self.options = options

    def validate(self, document) -> None:
        if parse_decision(document.text, self.options) is None:
            choices = "/".join(o.value for o in self.options)
            raise ValidationError(message=f"Choose one of: {choices}")


PROMPT_STYLE = Style.from_dict(
    {
        "phase": "#e0af68 bold",
        "option": "#7aa2f7",
        "prompt": "#9ece6a bold",
    }
)


class ConsoleDecider(Decider):
    """Asks on the terminal with prompt_toolkit.

    Ctrl+C or end of input at the prompt counts as Abort.
    """

    def __init__(self, interactive: bool | None = None) -> None:
        self._interactive = interactive

    @property
    def is_interactive(self) -> bool:
        if self._interactive is not None:
            return self._interactive
        return sys.stdin.isatty() and sys.stdout.isatty()

    def _message(self, failure: PhaseFailure, options: list[Decision]) -> FormattedText:
        parts: list[tuple[str, str]] = [
            ("class:phase", f"Phase {failure.phase_index + 1} ({failure.phase_name}) failed. "),
        ]
        for i, option in enumerate(options, 1):
            parts.append(("class:option", f"[{i}] {option.value.capitalize()}  "))
        parts.append(("class:prompt", "> "))
        return FormattedText(parts)

    def decide(self, failure: PhaseFailure, options: list[Decision]) -> Decision:
        session: PromptSession = PromptSession(
            completer=_DecisionCompleter(options),
            validator=_DecisionValidator(options),
            validate_while_typing=False,
            style=PROMPT_STYLE,
        )
        try:
            answer = session.prompt(self._message(failure, options))
        except (KeyboardInterrupt, EOFError):
            logger.info("Prompt interrupted; treating as abort")
            return Decision.ABORT
        return parse_decision(answer, options) or Decision.ABORT


@dataclass
class EscalationPolicy:
    """Bounded retry-then-escalate policy.

    Attributes:
        failure_mode: ``abort`` stops on the first failure
        auto_retries: Automatic retries before anyone is asked
        max_interactive_retries: Cap on user-chosen retries (None = unbounded)
        non_interactive_action: Decision when nobody can be asked
    """

    failure_mode: FailureMode = FailureMode.RETRY_THEN_ASK
    auto_retries: int = 1
    max_interactive_retries: int | None = 5
    non_interactive_action: FallbackAction = FallbackAction.ABORT

    @classmethod
    def from_config(cls, config: PlanrunConfig) -> EscalationPolicy:
        return cls(
            failure_mode=config.failure_mode,
            auto_retries=config.auto_retries,
            max_interactive_retries=config.max_interactive_retries,
            non_interactive_action=config.non_interactive_action,
        )

    @property
    def fail_fast(self) -> bool:
        return self.failure_mode == FailureMode.ABORT

    def options_for(self, failure: PhaseFailure) -> list[Decision]:
        if (
            self.max_interactive_retries is not None
            and failure.interactive_retries >= self.max_interactive_retries
        ):
            return [Decision.SKIP, Decision.ABORT]
        return [Decision.RETRY, Decision.SKIP, Decision.ABORT]

    def next_step(self, failure: PhaseFailure, decider: Decider) -> EscalationStep:
        """Decide what follows the failed attempt described by ``failure``.

        ``failure.attempts`` counts every attempt of this phase in this run,
        including the one that just failed.
        """
        if self.fail_fast:
            step = EscalationStep(Decision.ABORT, automatic=True)
        elif failure.attempts <= self.auto_retries:
            step = EscalationStep(Decision.RETRY, automatic=True)
        elif not decider.is_interactive:
            step = EscalationStep(Decision(self.non_interactive_action.value), automatic=True)
        else:
            options = self.options_for(failure)
            decision = decider.decide(failure, options)
            if decision not in options:
                logger.warning("Decision %s not offered; aborting", decision)
                decision = Decision.ABORT
            step = EscalationStep(decision)

        logger.info(
            "Phase %s failed (attempt %d): %s%s",
            failure.phase_name,
            failure.attempts,
            step.decision.value,
            " (automatic)" if step.automatic else "",
        )
        return step
