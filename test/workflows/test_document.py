"""Tests for apiline.workflows.document module."""

from __future__ import annotations

import pytest

from apiline.workflows.document import WorkflowDocument, fingerprint
from apiline.workflows.errors import StepBusyError, TransportFailure, WorkflowParseError
from apiline.workflows.models import StepState


class TestLoad:
    """Tests for loading a document."""

    def test_all_steps_pending(self, document):
        assert len(document) == 3
        assert all(step.state == StepState.PENDING for step in document)
        assert document.cursor == 0
        assert document.variables.get("user_email") == "admin@example.com"

    def test_fingerprint_matches_bytes(self, document, workflow_path):
        assert document.fingerprint == fingerprint(workflow_path.read_bytes())

    def test_start_from(self, workflow_path):
        document = WorkflowDocument.load(workflow_path, start_from=2)
        assert document.cursor == 2
        assert document.next_index() == 2

    def test_start_from_is_clamped(self, workflow_path):
        document = WorkflowDocument.load(workflow_path, start_from=10)
        assert document.cursor == 3
        assert document.finished

    def test_missing_file(self, tmp_path):
        with pytest.raises(WorkflowParseError):
            WorkflowDocument.load(tmp_path / "nope.yaml")

    def test_step_out_of_range(self, document):
        with pytest.raises(IndexError, match="No step #4"):
            document.step(3)
        with pytest.raises(IndexError):
            document.step(-1)


class TestCursor:
    """Tests for next-step selection."""

    def test_next_skips_terminal_steps(self, document):
        document.step(0).runtime.skip()
        document.step(1).runtime.skip()
        assert document.next_index() == 2

    def test_failed_step_is_next_again(self, document):
        document.begin(0)
        document.step(0).runtime.fail(TransportFailure("down"))
        assert document.next_index() == 0

    def test_advance_past_cursor_step(self, document):
        document.begin(0)
        document.step(0).runtime.complete()
        document.advance_past(0)
        assert document.cursor == 1

    def test_advance_past_later_step_keeps_cursor(self, document):
        document.begin(1)
        document.step(1).runtime.complete()
        document.advance_past(1)
        assert document.cursor == 0
        assert document.next_index() == 0

    def test_remaining_indexes(self, document):
        document.step(1).runtime.skip()
        assert document.remaining_indexes() == [0, 2]
        assert document.remaining_indexes(start=1) == [2]


class TestBegin:
    """Tests for the single in-flight step rule."""

    def test_refuses_second_executing_step(self, document):
        document.begin(0)
        with pytest.raises(StepBusyError, match="'Login' is still executing"):
            document.begin(1)
        assert document.step(1).state == StepState.PENDING

    def test_executing_step(self, document):
        assert document.executing_step() is None
        step = document.begin(2)
        assert document.executing_step() is step


class TestProjection:
    """Tests for the persisted projection."""

    def test_to_workflow_file(self, document):
        document.variables.set("jwt", "tok")
        workflow = document.to_workflow_file()
        assert workflow.variables["jwt"] == "tok"
        assert [step.name for step in workflow.requests] == ["Login", "Profile", "Create post"]
