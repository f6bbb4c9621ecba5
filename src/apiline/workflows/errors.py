"""Error classes for the workflow engine."""

from __future__ import annotations

from typing import Iterable


class ApilineError(Exception):
    """Base exception for workflow errors."""

    def __init__(self, message: str, step_name: str | None = None) -> None:
        self.message = message
        self.step_name = step_name
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.step_name:
            return f"step '{self.step_name}': {self.message}"
        return self.message


class WorkflowParseError(ApilineError):
    """Raised when a workflow document cannot be read or parsed."""

    def __init__(self, message: str, file_path: str | None = None, step_name: str | None = None) -> None:
        self.file_path = file_path
        super().__init__(message, step_name)

    def _format_message(self) -> str:
        parts = []
        if self.file_path:
            parts.append(self.file_path)
        if self.step_name:
            parts.append(f"step '{self.step_name}'")
        parts.append(self.message)
        return ": ".join(parts)


class WorkflowValidationError(ApilineError):
    """Raised when a step definition is structurally invalid."""

    def __init__(self, message: str, step_name: str | None = None, field: str | None = None) -> None:
        self.field = field
        super().__init__(message, step_name)

    def _format_message(self) -> str:
        parts = []
        if self.step_name:
            parts.append(f"step '{self.step_name}'")
        if self.field:
            parts.append(f"field '{self.field}'")
        parts.append(self.message)
        return ": ".join(parts)


class UnsupportedPath(ApilineError):
    """Raised when an extraction path uses syntax outside the supported subset."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"Extraction path '{path}': {message}")


class TransportFailure(ApilineError):
    """Raised when the request could not be completed (network error or timeout)."""

    def __init__(self, message: str, step_name: str | None = None, timed_out: bool = False) -> None:
        self.timed_out = timed_out
        super().__init__(message, step_name)


class StatusMismatch(ApilineError):
    """Raised when a response arrives with an unexpected status code."""

    def __init__(self, expected: int, actual: int, step_name: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected {expected}, got {actual}", step_name)


class AuthUnavailable(ApilineError):
    """Raised when the credentials required by a step's auth mode are missing."""

    def __init__(self, auth: str, message: str, step_name: str | None = None) -> None:
        self.auth = auth
        super().__init__(message, step_name)


class UnresolvedSubstitution(ApilineError):
    """Raised when placeholders have no bound variable and the policy is to abort."""

    def __init__(self, names: Iterable[str], step_name: str | None = None) -> None:
        self.names = sorted(set(names))
        joined = ", ".join(f"${{{name}}}" for name in self.names)
        super().__init__(f"Unresolved variables: {joined}", step_name)


class PersistenceFailure(ApilineError):
    """Raised when the workflow document cannot be written or reloaded."""

    def __init__(self, message: str, file_path: str | None = None) -> None:
        self.file_path = file_path
        super().__init__(message)

    def _format_message(self) -> str:
        if self.file_path:
            return f"{self.message} ({self.file_path})"
        return self.message


class IllegalTransition(ApilineError):
    """Raised when a step is moved between states that are not connected."""

    def __init__(self, current: str, target: str, step_name: str | None = None) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from '{current}' to '{target}'", step_name)


class StepBusyError(ApilineError):
    """Raised when a step is dispatched while another one is still executing."""

    def __init__(self, busy_step: str, step_name: str | None = None) -> None:
        self.busy_step = busy_step
        super().__init__(f"Step '{busy_step}' is still executing", step_name)
