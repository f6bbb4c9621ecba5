"""Synchronization between a WorkflowDocument and its file on disk.

Two directions:
- Write-back: variables and the current step definitions are written to the
  file right after they change. The stored fingerprint is updated to the
  written bytes so our own write is never mistaken for an external edit.
- Hot reload: when the file's fingerprint differs from the stored one, the
  file is re-parsed and merged into the live session. Runtime variables win
  over file variables, unchanged steps keep their state, changed steps are
  reset, and nothing happens while a step is executing.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path

from apiline.workflows.document import WorkflowDocument, WorkflowStep, fingerprint, read_document_bytes
from apiline.workflows.errors import PersistenceFailure, WorkflowParseError, WorkflowValidationError
from apiline.workflows.models import ReloadReport, WorkflowFile
from apiline.workflows.parser import WorkflowParser

logger = logging.getLogger(__name__)


class PersistenceSync:
    """Keeps a WorkflowDocument and its workflow file in step."""

    def __init__(self, document: WorkflowDocument, parser: WorkflowParser | None = None) -> None:
        self.document = document
        self.parser = parser or WorkflowParser()
        self.dirty = False
        self._reload_requested = threading.Event()
        # Fingerprint of the last external edit that failed to parse, reported once
        self._rejected_fingerprint: str | None = None

    @property
    def path(self) -> Path:
        return self.document.path

    def request_reload(self) -> None:
        """Signal that the file may have changed. Safe to call from any thread."""
        self._reload_requested.set()

    @property
    def reload_requested(self) -> bool:
        return self._reload_requested.is_set()

    def has_external_change(self) -> bool:
        """Whether the file on disk differs from what we last loaded or wrote."""
        try:
            content = read_document_bytes(self.path)
        except WorkflowParseError:
            return False
        return fingerprint(content) != self.document.fingerprint

    def refresh(self, force: bool = False) -> ReloadReport | None:
        """Reconcile external edits, if any. Call between operator commands.

        Variables that could not be written earlier are written once the
        file reconciles again.

        Args:
            force: Re-report an edit that already failed to parse.

        Returns:
            A ReloadReport if an external change was found (applied, deferred
            or rejected), otherwise None.
        """
        with self.document.lock:
            report = self._refresh(force)
            if report is not None and report.applied and self.dirty:
                logger.info("Writing back changes held since the last failed save")
                try:
                    self.write_back()
                except PersistenceFailure as e:
                    report.persistence_error = e
            return report

    def _refresh(self, force: bool) -> ReloadReport | None:
        with self.document.lock:
            busy = self.document.executing_step()
            if busy is not None:
                logger.debug("Reload deferred while '%s' is executing", busy.name)
                self._reload_requested.set()
                return ReloadReport(deferred=True)
            self._reload_requested.clear()

            try:
                content = read_document_bytes(self.path)
            except WorkflowParseError as e:
                if not force and self._rejected_fingerprint == "<unreadable>":
                    return None
                self._rejected_fingerprint = "<unreadable>"
                return ReloadReport(error=PersistenceFailure(e.message, str(self.path)))

            content_fingerprint = fingerprint(content)
            if content_fingerprint == self.document.fingerprint:
                return None
            if content_fingerprint == self._rejected_fingerprint and not force:
                return None

            try:
                workflow = self.parser.parse_bytes(content, file_path=str(self.path))
            except (WorkflowParseError, WorkflowValidationError) as e:
                self._rejected_fingerprint = content_fingerprint
                logger.warning("Reload of %s failed: %s", self.path, e)
                return ReloadReport(
                    error=PersistenceFailure(f"Reload failed, keeping previous state: {e}", str(self.path))
                )
            return self.reconcile(workflow, content_fingerprint)

    def reconcile(self, workflow: WorkflowFile, content_fingerprint: str | None) -> ReloadReport:
        """Merge a freshly parsed file into the live document.

        Args:
            workflow: The parsed file content.
            content_fingerprint: Fingerprint of the bytes ``workflow`` came from.

        Returns:
            ReloadReport describing the merge, or a deferred report if a step
            is executing.
        """
        document = self.document
        with document.lock:
            if document.executing_step() is not None:
                self._reload_requested.set()
                return ReloadReport(deferred=True)

            report = ReloadReport()
            for name, value in workflow.variables.items():
                if document.variables.setdefault(name, value):
                    report.added_variables.append(name)

            previous = document.steps
            steps: list[WorkflowStep] = []
            for index, definition in enumerate(workflow.requests):
                if index >= len(previous):
                    steps.append(WorkflowStep.fresh(definition))
                    report.added_steps.append(definition.name)
                elif previous[index].definition == definition:
                    steps.append(WorkflowStep(definition=definition, runtime=previous[index].runtime))
                    report.kept_steps.append(definition.name)
                else:
                    steps.append(WorkflowStep.fresh(definition))
                    report.reset_steps.append(definition.name)
            report.removed_steps = [step.name for step in previous[len(workflow.requests) :]]

            document.steps = steps
            document.move_cursor(document.cursor)
            document.fingerprint = content_fingerprint
            self._rejected_fingerprint = None
            logger.info(
                "Reloaded %s: %d kept, %d reset, %d added, %d removed steps",
                self.path,
                len(report.kept_steps),
                len(report.reset_steps),
                len(report.added_steps),
                len(report.removed_steps),
            )
            return report

    def write_back(self) -> ReloadReport | None:
        """Write variables and step definitions to the workflow file.

        External edits that have not been reconciled yet are merged first so
        they are not overwritten.

        Returns:
            The ReloadReport of such a merge, or None.

        Raises:
            PersistenceFailure: If the file cannot be written, or holds an
                external edit that does not parse.
        """
        with self.document.lock:
            report = None
            if self.has_external_change():
                report = self._refresh(force=True)
                if report is not None and report.deferred:
                    # Retried by the next write-back once the step settles
                    self.dirty = True
                    return report
                if report is not None and report.error is not None:
                    self.dirty = True
                    raise PersistenceFailure(
                        "Not overwriting the workflow file while it holds an edit that does not parse",
                        str(self.path),
                    )

            content = self.parser.serialize(self.document.to_workflow_file())
            try:
                _atomic_write(self.path, content)
            except OSError as e:
                self.dirty = True
                raise PersistenceFailure(f"Failed to save workflow: {e.strerror or e}", str(self.path)) from e

            self.document.fingerprint = fingerprint(content)
            self.dirty = False
            logger.debug("Wrote %d bytes to %s", len(content), self.path)
            return report


def _atomic_write(path: Path, content: bytes) -> None:
    """Replace ``path`` with ``content`` without exposing a partial file."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        if path.exists():
            shutil.copymode(path, tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
