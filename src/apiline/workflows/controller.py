"""Execution controller for interactive workflow sessions.

Runs steps one at a time on operator request: substitute templates, resolve
auth, dispatch through the transport, check the status, extract variables,
persist them and advance the step state. Every failure of a step is reported
on its StepOutcome; none of them ends the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from apiline.config import SessionConfig, UnresolvedPolicy
from apiline.workflows.auth import AuthResolver
from apiline.workflows.document import WorkflowDocument, WorkflowStep
from apiline.workflows.errors import (
    ApilineError,
    AuthUnavailable,
    IllegalTransition,
    PersistenceFailure,
    StatusMismatch,
    StepBusyError,
    TransportFailure,
    UnresolvedSubstitution,
)
from apiline.workflows.extraction import extract_many
from apiline.workflows.models import (
    PreparedRequest,
    ReloadReport,
    ResponseSummary,
    RunSummary,
    StepDefinition,
    StepOutcome,
    StepState,
)
from apiline.workflows.persistence import PersistenceSync
from apiline.workflows.substitution import SubstitutionEngine
from apiline.workflows.transport import Transport

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[int, StepDefinition, PreparedRequest], bool]


class CommandAction(str, Enum):
    """Operator commands understood by the interactive session."""

    SHOW_VARIABLES = "vars"
    SET_VARIABLE = "set"
    LIST_STEPS = "list"
    NEXT = "next"
    EXECUTE = "execute"
    ALL = "all"
    SKIP = "skip"
    RELOAD = "reload"
    SAVE = "save"
    HELP = "help"
    QUIT = "quit"
    UNKNOWN = "unknown"


ALIASES: dict[str, CommandAction] = {
    "v": CommandAction.SHOW_VARIABLES,
    "vars": CommandAction.SHOW_VARIABLES,
    "s": CommandAction.SET_VARIABLE,
    "set": CommandAction.SET_VARIABLE,
    "l": CommandAction.LIST_STEPS,
    "list": CommandAction.LIST_STEPS,
    "n": CommandAction.NEXT,
    "next": CommandAction.NEXT,
    "a": CommandAction.ALL,
    "all": CommandAction.ALL,
    "k": CommandAction.SKIP,
    "skip": CommandAction.SKIP,
    "r": CommandAction.RELOAD,
    "reload": CommandAction.RELOAD,
    "w": CommandAction.SAVE,
    "save": CommandAction.SAVE,
    "h": CommandAction.HELP,
    "help": CommandAction.HELP,
    "?": CommandAction.HELP,
    "q": CommandAction.QUIT,
    "quit": CommandAction.QUIT,
    "exit": CommandAction.QUIT,
}


@dataclass
class Command:
    """A parsed operator command line."""

    action: CommandAction
    index: int | None = None  # 0-based step position
    args: list[str] = field(default_factory=list)
    raw: str = ""


def parse_command(line: str) -> Command:
    """Parse an operator command line.

    A bare number executes that step (1-based). ``set`` keeps the rest of the
    line after the name as the value, and ``skip`` accepts an optional step
    number.
    """
    raw = line.strip()
    parts = raw.split(maxsplit=2)
    if not parts:
        return Command(CommandAction.UNKNOWN, raw=raw)
    head = parts[0].lower()
    if head.isdecimal():
        return Command(CommandAction.EXECUTE, index=int(head) - 1, raw=raw)
    action = ALIASES.get(head, CommandAction.UNKNOWN)
    args = parts[1:]
    index = None
    if action == CommandAction.SKIP and args:
        if not args[0].isdecimal():
            return Command(CommandAction.UNKNOWN, args=args, raw=raw)
        index = int(args[0]) - 1
    return Command(action, index=index, args=args, raw=raw)


class ExecutionController:
    """Orchestrates one interactive session over a WorkflowDocument."""

    def __init__(
        self,
        document: WorkflowDocument,
        transport: Transport,
        config: SessionConfig | None = None,
        sync: PersistenceSync | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            document: The loaded workflow.
            transport: Performs HTTP calls.
            config: Session options.
            sync: Persistence for the document, created if not given.
        """
        self.document = document
        self.transport = transport
        self.config = config or SessionConfig()
        self.sync = sync or PersistenceSync(document)
        self.substitution = SubstitutionEngine(document.variables)
        self.auth = AuthResolver(
            default_api_key=self.config.default_api_key,
            api_key_header=self.config.api_key_header,
            token_variables=self.config.token_variables,
        )

    # Read-only views

    def show_variables(self) -> list[tuple[str, Any]]:
        return self.document.variables.snapshot()

    def list_steps(self) -> list[tuple[int, WorkflowStep]]:
        return list(enumerate(self.document))

    @property
    def next_index(self) -> int | None:
        return self.document.next_index()

    # Variables and persistence

    def set_variable(self, name: str, value: Any) -> PersistenceFailure | None:
        """Bind a variable and write it to the workflow file immediately.

        Returns:
            The write-back failure, if any. The variable stays set in memory.

        Raises:
            ValueError: If the name is empty.
        """
        name = name.strip()
        if not name:
            raise ValueError("Variable name cannot be empty")
        with self.document.lock:
            self.document.variables.set(name, value)
            logger.info("Variable '%s' set by operator", name)
            return self.save()

    def save(self) -> PersistenceFailure | None:
        try:
            self.sync.write_back()
        except PersistenceFailure as e:
            logger.warning("Write-back failed: %s", e)
            return e
        return None

    def refresh(self, force: bool = False) -> ReloadReport | None:
        """Reconcile external edits of the workflow file. Call between commands."""
        return self.sync.refresh(force=force)

    # Execution

    def prepare(self, index: int) -> PreparedRequest:
        """Build the concrete request for a step.

        Raises:
            IndexError: If there is no such step.
            UnresolvedSubstitution: If placeholders are unbound and the policy is to abort.
            AuthUnavailable: If the auth mode cannot be satisfied.
        """
        definition = self.document.step(index).definition
        unresolved: list[str] = []

        def collect(names: list[str]) -> None:
            unresolved.extend(name for name in names if name not in unresolved)

        endpoint = self.substitution.substitute_text(definition.endpoint)
        collect(endpoint.unresolved)

        body = None
        if definition.payload is not None:
            payload = self.substitution.substitute(definition.payload)
            collect(payload.unresolved)
            body = payload.value

        headers: dict[str, str] = {}
        for header_name, template in definition.headers.items():
            header = self.substitution.substitute_text(template)
            collect(header.unresolved)
            headers[header_name] = header.value

        auth = self.substitution.substitute_text(definition.auth)
        collect(auth.unresolved)

        if unresolved and self.config.unresolved == UnresolvedPolicy.ABORT:
            raise UnresolvedSubstitution(unresolved, definition.name)

        headers.update(self.auth.resolve(auth.value, self.document.variables, definition.name))
        return PreparedRequest(
            method=definition.http_method,
            url=self.config.build_url(endpoint.value),
            headers=headers,
            body=body,
            timeout=definition.timeout or self.config.timeout,
            auth=self.auth.describe(definition.auth),
            unresolved=unresolved,
        )

    def execute_step(self, index: int, confirm: ConfirmCallback | None = None) -> StepOutcome:
        """Execute one step, whatever its current state.

        Args:
            index: 0-based step position.
            confirm: Called with the prepared request before dispatch;
                returning False cancels without changing the step state.

        Returns:
            StepOutcome describing what happened.

        Raises:
            IndexError: If there is no such step.
        """
        with self.document.lock:
            step = self.document.step(index)
            definition = step.definition
            outcome = StepOutcome(index=index, step_name=step.name, state=step.state)

            busy = self.document.executing_step()
            if busy is not None:
                outcome.error = StepBusyError(busy.name, step.name)
                return outcome

            try:
                request = self.prepare(index)
            except (AuthUnavailable, UnresolvedSubstitution) as e:
                # Aborted before any network call
                self.document.begin(index)
                return self._fail(step, outcome, e)
            except Exception as e:
                logger.debug("Could not build request for step '%s'", step.name, exc_info=True)
                self.document.begin(index)
                return self._fail(step, outcome, ApilineError(f"Could not build request: {e}", step.name))

            outcome.request = request
            if request.unresolved:
                names = ", ".join(f"${{{name}}}" for name in request.unresolved)
                outcome.warnings.append(f"Unresolved variables sent literally: {names}")
                logger.warning("Step '%s': unresolved variables %s", step.name, names)

            if confirm is not None and not confirm(index, definition, request):
                outcome.cancelled = True
                return outcome

            self.document.begin(index)
            try:
                response = self.transport.send(
                    request.method, request.url, request.headers, request.body, request.timeout
                )
            except TransportFailure as e:
                return self._fail(step, outcome, TransportFailure(e.message, step.name, timed_out=e.timed_out))
            except Exception as e:
                return self._fail(step, outcome, TransportFailure(f"Request failed: {e}", step.name))

            summary = ResponseSummary(
                status=response.status,
                headers=response.headers,
                body=response.body,
                elapsed_ms=response.elapsed_ms,
            )
            outcome.response = summary

            expected = definition.expected_status
            if expected is not None and response.status != expected:
                return self._fail(step, outcome, StatusMismatch(expected, response.status, step.name), summary)

            if definition.save_multiple and definition.save_as:
                logger.debug("Step '%s': save_multiple takes precedence over save_as", step.name)
            found, missed = extract_many(response.body, definition.extraction_targets())
            self.document.variables.merge(found)
            outcome.extracted = found
            outcome.missed = missed

            step.runtime.complete(summary)
            self.document.advance_past(index)
            outcome.state = StepState.COMPLETED
            logger.info("Step '%s' completed with status %d", step.name, response.status)

            if found:
                try:
                    outcome.reload = self.sync.write_back()
                except PersistenceFailure as e:
                    outcome.persistence_error = e

            self._apply_deferred_reload(outcome)
            return outcome

    def _fail(
        self,
        step: WorkflowStep,
        outcome: StepOutcome,
        error: ApilineError,
        response: ResponseSummary | None = None,
    ) -> StepOutcome:
        step.runtime.fail(error, response)
        outcome.state = StepState.FAILED
        outcome.error = error
        logger.warning("Step '%s' failed: %s", step.name, error.message)
        self._apply_deferred_reload(outcome)
        return outcome

    def _apply_deferred_reload(self, outcome: StepOutcome) -> None:
        if self.sync.reload_requested and outcome.reload is None:
            outcome.reload = self.sync.refresh()

    def execute_next(self, confirm: ConfirmCallback | None = None) -> StepOutcome | None:
        """Execute the next step that still needs to run, or return None if there is none."""
        index = self.document.next_index()
        if index is None:
            return None
        return self.execute_step(index, confirm)

    def execute_all(
        self,
        confirm: ConfirmCallback | None = None,
        continue_on_failure: bool | None = None,
        start: int | None = None,
        on_outcome: Callable[[StepOutcome], None] | None = None,
    ) -> RunSummary:
        """Execute all remaining steps in order.

        Args:
            confirm: Per-step confirmation; a declined step is skipped.
            continue_on_failure: Keep going after a failed step. Defaults to
                the session configuration.
            start: 0-based position to start from instead of the cursor.
            on_outcome: Called with each outcome as soon as the step settles.

        Returns:
            RunSummary with one outcome per attempted step. ``stopped_at`` is
            set when the run stopped on a failure.
        """
        if continue_on_failure is None:
            continue_on_failure = self.config.continue_on_failure
        summary = RunSummary()
        position = self.document.cursor if start is None else start

        while True:
            remaining = self.document.remaining_indexes(position)
            if not remaining:
                break
            index = remaining[0]
            outcome = self.execute_step(index, confirm)
            if outcome.cancelled:
                outcome = self.skip(index)
            summary.outcomes.append(outcome)
            if on_outcome is not None:
                on_outcome(outcome)
            position = index + 1
            if isinstance(outcome.error, StepBusyError):
                summary.stopped_at = index
                break
            if outcome.state == StepState.FAILED and not continue_on_failure:
                summary.stopped_at = index
                break
        return summary

    def skip(self, index: int | None = None) -> StepOutcome:
        """Mark a step as skipped (the next step if no index is given).

        Raises:
            IndexError: If there is no such step or nothing is left to skip.
        """
        with self.document.lock:
            if index is None:
                index = self.document.next_index()
                if index is None:
                    raise IndexError("No remaining step to skip")
            step = self.document.step(index)
            outcome = StepOutcome(index=index, step_name=step.name, state=step.state)
            try:
                step.runtime.skip()
            except IllegalTransition as e:
                outcome.error = e
                return outcome
            self.document.advance_past(index)
            outcome.state = StepState.SKIPPED
            logger.info("Step '%s' skipped", step.name)
            return outcome

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()
