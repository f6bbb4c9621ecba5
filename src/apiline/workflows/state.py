"""Per-step lifecycle state machine.

Transitions:
- ``begin``: pending, failed, completed or skipped -> executing
- ``complete``: executing -> completed
- ``fail``: executing -> failed
- ``skip``: pending, failed or completed -> skipped

A retry or re-run is just another ``begin``.
"""

from __future__ import annotations

import logging

from apiline.workflows.errors import ApilineError, IllegalTransition
from apiline.workflows.models import ResponseSummary, StepState

logger = logging.getLogger(__name__)

TRANSITIONS: dict[StepState, frozenset[StepState]] = {
    StepState.PENDING: frozenset({StepState.EXECUTING, StepState.SKIPPED}),
    StepState.EXECUTING: frozenset({StepState.COMPLETED, StepState.FAILED}),
    StepState.COMPLETED: frozenset({StepState.EXECUTING, StepState.SKIPPED}),
    StepState.FAILED: frozenset({StepState.EXECUTING, StepState.SKIPPED}),
    StepState.SKIPPED: frozenset({StepState.EXECUTING}),
}


class StepStateMachine:
    """Runtime state of one step: lifecycle state, last response and last error."""

    def __init__(self, step_name: str) -> None:
        self.step_name = step_name
        self.state = StepState.PENDING
        self.last_response: ResponseSummary | None = None
        self.last_error: ApilineError | None = None
        self.attempts = 0

    def can_transition(self, target: StepState) -> bool:
        return target in TRANSITIONS[self.state]

    def _move(self, target: StepState) -> None:
        if not self.can_transition(target):
            raise IllegalTransition(self.state.value, target.value, self.step_name)
        logger.debug("Step '%s': %s -> %s", self.step_name, self.state.value, target.value)
        self.state = target

    def begin(self) -> None:
        """Dispatch the step (pending, failed, completed or skipped -> executing)."""
        self._move(StepState.EXECUTING)
        self.attempts += 1
        self.last_error = None

    def complete(self, response: ResponseSummary | None = None) -> None:
        self._move(StepState.COMPLETED)
        self.last_response = response

    def fail(self, error: ApilineError, response: ResponseSummary | None = None) -> None:
        self._move(StepState.FAILED)
        self.last_error = error
        if response is not None:
            self.last_response = response

    def skip(self) -> None:
        self._move(StepState.SKIPPED)

    @property
    def is_executing(self) -> bool:
        return self.state == StepState.EXECUTING

    def __repr__(self) -> str:
        return f"StepStateMachine({self.step_name!r}, state={self.state.value!r})"
