from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from planrun.config import FailureMode, FallbackAction, PlanrunConfig
from planrun.escalation import (
    ConsoleDecider,
    Decision,
    EscalationPolicy,
    NonInteractiveDecider,
    PhaseFailure,
    parse_decision,
)

ALL = [Decision.RETRY, Decision.SKIP, Decision.ABORT]


def _failure(attempts=1, interactive_retries=0):
    return PhaseFailure(
        phase_index=0,
        phase_name="schema",
        total_phases=2,
        exit_code=1,
        attempts=attempts,
        interactive_retries=interactive_retries,
    )


class TestParseDecision:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("r", Decision.RETRY),
            ("retry", Decision.RETRY),
            (" Skip ", Decision.SKIP),
            ("A", Decision.ABORT),
            ("1", Decision.RETRY),
            ("3", Decision.ABORT),
        ],
    )
    def test_accepted_inputs(self, text, expected):
        assert parse_decision(text, ALL) == expected

    @pytest.mark.parametrize("text", ["", "x", "4", "0", "retr"])
    def test_rejected_inputs(self, text):
        assert parse_decision(text, ALL) is None

    def test_option_not_offered(self):
        """Numbers index the offered options, and absent options are refused."""
        options = [Decision.SKIP, Decision.ABORT]
        assert parse_decision("retry", options) is None
        assert parse_decision("1", options) == Decision.SKIP


class TestEscalationPolicy:
    def test_from_config(self):
        config = PlanrunConfig(
            failure_mode="abort",
            auto_retries=3,
            max_interactive_retries=None,
            non_interactive_action="skip",
        )

        policy = EscalationPolicy.from_config(config)

        assert policy.fail_fast
        assert policy.auto_retries == 3
        assert policy.max_interactive_retries is None
        assert policy.non_interactive_action == FallbackAction.SKIP

    def test_first_failure_retried_automatically(self, make_decider):
        decider = make_decider()

        step = EscalationPolicy().next_step(_failure(attempts=1), decider)

        assert step.decision == Decision.RETRY
        assert step.automatic
        assert decider.asked == []

    def test_asks_once_automatic_retries_spent(self, make_decider):
        decider = make_decider([Decision.SKIP])

        step = EscalationPolicy().next_step(_failure(attempts=2), decider)

        assert step.decision == Decision.SKIP
        assert not step.automatic
        assert decider.asked[0][1] == ALL

    def test_fail_fast_never_asks(self, make_decider):
        decider = make_decider([Decision.RETRY])
        policy = EscalationPolicy(failure_mode=FailureMode.ABORT, auto_retries=5)

        step = policy.next_step(_failure(), decider)

        assert step.decision == Decision.ABORT
        assert decider.asked == []

    @pytest.mark.parametrize(
        "action,expected",
        [(FallbackAction.ABORT, Decision.ABORT), (FallbackAction.SKIP, Decision.SKIP)],
    )
    def test_non_interactive_fallback(self, action, expected):
        policy = EscalationPolicy(non_interactive_action=action)

        step = policy.next_step(_failure(attempts=2), NonInteractiveDecider())

        assert step.decision == expected
        assert step.automatic

    def test_retry_cap_removes_retry_option(self):
        policy = EscalationPolicy(max_interactive_retries=2)

        assert policy.options_for(_failure(interactive_retries=1)) == ALL
        assert policy.options_for(_failure(interactive_retries=2)) == [
            Decision.SKIP,
            Decision.ABORT,
        ]

    def test_unbounded_retries(self):
        policy = EscalationPolicy(max_interactive_retries=None)
        assert policy.options_for(_failure(interactive_retries=100)) == ALL

    def test_unoffered_answer_becomes_abort(self, make_decider):
        decider = make_decider([Decision.RETRY])
        policy = EscalationPolicy(max_interactive_retries=0)

        step = policy.next_step(_failure(attempts=2), decider)

        assert step.decision == Decision.ABORT


class TestConsoleDecider:
    def test_interactive_override(self):
        assert ConsoleDecider(interactive=True).is_interactive
        assert not ConsoleDecider(interactive=False).is_interactive

    def test_not_interactive_without_tty(self):
        with patch("planrun.escalation.sys") as mock_sys:
            mock_sys.stdin.isatty.return_value = False
            mock_sys.stdout.isatty.return_value = True
            assert not ConsoleDecider().is_interactive

    def test_decide_parses_answer(self):
        session = MagicMock()
        session.prompt.return_value = "s"
        with patch("planrun.escalation.PromptSession", return_value=session):
            decision = ConsoleDecider(interactive=True).decide(_failure(), ALL)

        assert decision == Decision.SKIP

    @pytest.mark.parametrize("exc", [KeyboardInterrupt, EOFError])
    def test_interrupt_is_abort(self, exc):
        session = MagicMock()
        session.prompt.side_effect = exc
        with patch("planrun.escalation.PromptSession", return_value=session):
            decision = ConsoleDecider(interactive=True).decide(_failure(), ALL)

        assert decision == Decision.ABORT
