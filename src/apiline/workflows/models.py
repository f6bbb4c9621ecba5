"""Data models for workflow documents and execution results.

Step definitions and the document envelope are pydantic models validated on
load. Runtime results are plain dataclasses and are never persisted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from apiline.workflows.auth import is_supported_auth
from apiline.workflows.errors import ApilineError, PersistenceFailure, UnsupportedPath
from apiline.workflows.extraction import validate_path

VALID_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})


class StepState(str, Enum):
    """Lifecycle state of a workflow step."""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        """Whether "execute all" passes over steps in this state."""
        return self in (StepState.COMPLETED, StepState.SKIPPED)


class StepDefinition(BaseModel):
    """A single declared request in a workflow."""

    name: str
    method: str
    endpoint: str
    auth: str = "none"
    payload: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float | None = None
    expected_status: int | None = 200
    save_as: str | None = None
    extract_path: str | None = None
    save_multiple: dict[str, str] | None = None

    model_config = {"extra": "allow", "frozen": True}

    @field_validator("method")
    @classmethod
    def _check_method(cls, value: str) -> str:
        if value.upper() not in VALID_METHODS:
            raise ValueError(f"Unsupported method: {value}")
        return value

    @field_validator("auth")
    @classmethod
    def _check_auth(cls, value: str) -> str:
        if not is_supported_auth(value):
            raise ValueError(f"Unknown auth type: {value}")
        return value

    @field_validator("extract_path")
    @classmethod
    def _check_extract_path(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                validate_path(value)
            except UnsupportedPath as exc:
                raise ValueError(exc.message) from exc
        return value

    @field_validator("save_multiple")
    @classmethod
    def _check_save_multiple(cls, value: dict[str, str] | None) -> dict[str, str] | None:
        for path in (value or {}).values():
            try:
                validate_path(path)
            except UnsupportedPath as exc:
                raise ValueError(exc.message) from exc
        return value

    @property
    def http_method(self) -> str:
        return self.method.upper()

    def extraction_targets(self) -> dict[str, str]:
        """Variables to extract after a successful response.

        ``save_multiple`` takes precedence over ``save_as``. A ``save_as``
        without ``extract_path`` captures the whole body.
        """
        if self.save_multiple:
            return dict(self.save_multiple)
        if self.save_as:
            return {self.save_as: self.extract_path or "$"}
        return {}

    def to_document(self) -> dict[str, Any]:
        """Serialize back to the mapping written in the workflow file.

        Only keys present in the source are written, extra keys included.
        """
        data = self.model_dump(mode="json", exclude_unset=True)
        for key, value in (self.model_extra or {}).items():
            data.setdefault(key, value)
        return data


class WorkflowFile(BaseModel):
    """The persisted projection of a session: variables and request definitions."""

    variables: dict[str, Any] = Field(default_factory=dict)
    requests: list[StepDefinition] = Field(default_factory=list)

    model_config = {"extra": "ignore"}

    @field_validator("variables", "requests", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return {} if info.field_name == "variables" else []
        return value

    def to_document(self) -> dict[str, Any]:
        return {
            "variables": dict(self.variables),
            "requests": [step.to_document() for step in self.requests],
        }


@dataclass
class PreparedRequest:
    """A request with all templates substituted and auth headers resolved."""

    method: str
    url: str
    headers: dict[str, str]
    body: Any
    timeout: float
    auth: str = "none"
    unresolved: list[str] = field(default_factory=list)


@dataclass
class ResponseSummary:
    """Snapshot of the last response received for a step."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    elapsed_ms: float | None = None

    def body_preview(self, limit: int = 100) -> str:
        if isinstance(self.body, str):
            text = self.body
        else:
            text = json.dumps(self.body, ensure_ascii=False, default=str)
        if len(text) > limit:
            return text[: limit - 3] + "..."
        return text


@dataclass
class StepOutcome:
    """Result of one operator-triggered dispatch of a step."""

    index: int
    step_name: str
    state: StepState
    request: PreparedRequest | None = None
    response: ResponseSummary | None = None
    extracted: dict[str, Any] = field(default_factory=dict)
    missed: list[tuple[str, str]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: ApilineError | None = None
    persistence_error: PersistenceFailure | None = None
    reload: ReloadReport | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.state == StepState.COMPLETED and not self.cancelled


@dataclass
class RunSummary:
    """Result of executing all remaining steps."""

    outcomes: list[StepOutcome] = field(default_factory=list)
    stopped_at: int | None = None

    @property
    def failed(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.state == StepState.FAILED]

    @property
    def stopped(self) -> bool:
        return self.stopped_at is not None


@dataclass
class ReloadReport:
    """What a hot-reload reconciliation changed."""

    added_variables: list[str] = field(default_factory=list)
    kept_steps: list[str] = field(default_factory=list)
    reset_steps: list[str] = field(default_factory=list)
    added_steps: list[str] = field(default_factory=list)
    removed_steps: list[str] = field(default_factory=list)
    deferred: bool = False
    error: PersistenceFailure | None = None
    persistence_error: PersistenceFailure | None = None

    @property
    def applied(self) -> bool:
        return not self.deferred and self.error is None
