"""Tests for apiline.workflows.state module."""

from __future__ import annotations

import pytest

from apiline.workflows.errors import IllegalTransition, TransportFailure
from apiline.workflows.models import ResponseSummary, StepState
from apiline.workflows.state import TRANSITIONS, StepStateMachine


def machine_in(state: StepState) -> StepStateMachine:
    machine = StepStateMachine("step")
    if state == StepState.PENDING:
        return machine
    if state == StepState.SKIPPED:
        machine.skip()
        return machine
    machine.begin()
    if state == StepState.COMPLETED:
        machine.complete()
    elif state == StepState.FAILED:
        machine.fail(TransportFailure("boom"))
    return machine


class TestStepStateMachine:
    """Tests for the step lifecycle."""

    def test_starts_pending(self):
        machine = StepStateMachine("Login")
        assert machine.state == StepState.PENDING
        assert machine.attempts == 0
        assert machine.last_response is None

    def test_success_path(self):
        machine = StepStateMachine("Login")
        response = ResponseSummary(status=200, body={"ok": True})
        machine.begin()
        assert machine.is_executing
        machine.complete(response)
        assert machine.state == StepState.COMPLETED
        assert machine.last_response is response
        assert machine.attempts == 1

    def test_failure_keeps_error_and_response(self):
        machine = StepStateMachine("Login")
        error = TransportFailure("timeout", timed_out=True)
        response = ResponseSummary(status=500)
        machine.begin()
        machine.fail(error, response)
        assert machine.state == StepState.FAILED
        assert machine.last_error is error
        assert machine.last_response is response

    def test_retry_after_failure_clears_error(self):
        machine = machine_in(StepState.FAILED)
        machine.begin()
        assert machine.last_error is None
        assert machine.attempts == 2

    @pytest.mark.parametrize("state", [StepState.COMPLETED, StepState.SKIPPED, StepState.FAILED])
    def test_rerun(self, state):
        machine = machine_in(state)
        machine.begin()
        assert machine.state == StepState.EXECUTING

    @pytest.mark.parametrize("state", [StepState.PENDING, StepState.FAILED, StepState.COMPLETED])
    def test_skip(self, state):
        machine = machine_in(state)
        machine.skip()
        assert machine.state == StepState.SKIPPED

    def test_cannot_begin_twice(self):
        machine = machine_in(StepState.EXECUTING)
        with pytest.raises(IllegalTransition, match="Cannot move from 'executing' to 'executing'"):
            machine.begin()

    def test_cannot_skip_while_executing(self):
        machine = machine_in(StepState.EXECUTING)
        with pytest.raises(IllegalTransition):
            machine.skip()
        assert machine.state == StepState.EXECUTING

    @pytest.mark.parametrize("state", [StepState.PENDING, StepState.COMPLETED, StepState.SKIPPED])
    def test_cannot_settle_without_executing(self, state):
        machine = machine_in(state)
        with pytest.raises(IllegalTransition):
            machine.complete()
        with pytest.raises(IllegalTransition):
            machine.fail(TransportFailure("x"))
        assert machine.state == state

    def test_transition_table_matches_can_transition(self):
        for source, targets in TRANSITIONS.items():
            machine = machine_in(source)
            for target in StepState:
                assert machine.can_transition(target) is (target in targets)


class TestStepState:
    """Tests for terminal states."""

    def test_terminal_states(self):
        assert {s for s in StepState if s.is_terminal} == {StepState.COMPLETED, StepState.SKIPPED}
