"""In-memory workflow document.

A WorkflowDocument owns everything a session mutates: the variables, the
ordered step definitions with their runtime state, the execution cursor and
the fingerprint of the on-disk bytes it was last synchronized with. All
access goes through a single re-entrant lock so the command loop and the
reload path never interleave.
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from apiline.workflows.errors import StepBusyError, WorkflowParseError
from apiline.workflows.models import StepDefinition, StepState, WorkflowFile
from apiline.workflows.parser import WorkflowParser
from apiline.workflows.state import StepStateMachine
from apiline.workflows.variables import VariableStore


def fingerprint(content: bytes) -> str:
    """Content identity used to tell external edits from our own writes."""
    return hashlib.sha256(content).hexdigest()


@dataclass
class WorkflowStep:
    """A step definition paired with its runtime state."""

    definition: StepDefinition
    runtime: StepStateMachine

    @classmethod
    def fresh(cls, definition: StepDefinition) -> WorkflowStep:
        return cls(definition=definition, runtime=StepStateMachine(definition.name))

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def state(self) -> StepState:
        return self.runtime.state


class WorkflowDocument:
    """Variables plus ordered steps of one session."""

    def __init__(
        self,
        path: str | Path,
        workflow: WorkflowFile,
        content_fingerprint: str | None = None,
        start_from: int = 0,
    ) -> None:
        """Initialize the document.

        Args:
            path: Location of the workflow file.
            workflow: Parsed content.
            content_fingerprint: Fingerprint of the bytes ``workflow`` was parsed from.
            start_from: Initial cursor position (0-based).
        """
        self.path = Path(path)
        self.lock = threading.RLock()
        self.variables = VariableStore(workflow.variables)
        self.steps: list[WorkflowStep] = [WorkflowStep.fresh(d) for d in workflow.requests]
        self.fingerprint = content_fingerprint
        self.cursor = 0
        self.move_cursor(start_from)

    @classmethod
    def load(
        cls,
        path: str | Path,
        parser: WorkflowParser | None = None,
        start_from: int = 0,
    ) -> WorkflowDocument:
        """Read and parse a workflow file.

        Raises:
            WorkflowParseError: If the file cannot be read or parsed.
            WorkflowValidationError: If a step definition is invalid.
        """
        parser = parser or WorkflowParser()
        path = Path(path)
        content = read_document_bytes(path)
        workflow = parser.parse_bytes(content, file_path=str(path))
        return cls(path, workflow, content_fingerprint=fingerprint(content), start_from=start_from)

    def to_workflow_file(self) -> WorkflowFile:
        """Project the persisted part of the session: variables and definitions."""
        with self.lock:
            return WorkflowFile(
                variables=self.variables.as_dict(),
                requests=[step.definition for step in self.steps],
            )

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[WorkflowStep]:
        with self.lock:
            return iter(list(self.steps))

    def step(self, index: int) -> WorkflowStep:
        """Get a step by 0-based position.

        Raises:
            IndexError: If there is no step at ``index``.
        """
        with self.lock:
            if not 0 <= index < len(self.steps):
                raise IndexError(f"No step #{index + 1} (workflow has {len(self.steps)} steps)")
            return self.steps[index]

    def executing_step(self) -> WorkflowStep | None:
        with self.lock:
            for step in self.steps:
                if step.runtime.is_executing:
                    return step
            return None

    def begin(self, index: int) -> WorkflowStep:
        """Move a step to ``executing``, refusing if another step is in flight."""
        with self.lock:
            step = self.step(index)
            busy = self.executing_step()
            if busy is not None:
                raise StepBusyError(busy.name, step.name)
            step.runtime.begin()
            return step

    def next_index(self) -> int | None:
        """First step at or after the cursor that still needs to run."""
        with self.lock:
            for index in range(self.cursor, len(self.steps)):
                if not self.steps[index].state.is_terminal:
                    return index
            return None

    def remaining_indexes(self, start: int | None = None) -> list[int]:
        with self.lock:
            first = self.cursor if start is None else max(start, 0)
            return [i for i in range(first, len(self.steps)) if not self.steps[i].state.is_terminal]

    def move_cursor(self, index: int) -> None:
        with self.lock:
            self.cursor = min(max(index, 0), len(self.steps))

    def advance_past(self, index: int) -> None:
        """Advance the cursor past ``index`` if it was the next step to run.

        Call after the step settled as completed or skipped.
        """
        with self.lock:
            if self.cursor <= index and all(self.steps[i].state.is_terminal for i in range(self.cursor, index)):
                self.move_cursor(index + 1)

    @property
    def finished(self) -> bool:
        return self.next_index() is None


def read_document_bytes(path: Path) -> bytes:
    """Read raw document bytes, mapping OS errors to parse errors."""
    try:
        return path.read_bytes()
    except OSError as e:
        raise WorkflowParseError(f"Cannot read workflow file: {e.strerror or e}", file_path=str(path)) from e
