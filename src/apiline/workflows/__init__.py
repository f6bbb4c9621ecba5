"""Interactive HTTP workflows.

A workflow file declares variables and an ordered list of requests. Steps are
executed on operator request; values extracted from responses are stored as
variables, substituted into later steps and written back to the file.
"""

from __future__ import annotations

from apiline.config import UnresolvedPolicy
from apiline.workflows import errors
from apiline.workflows.auth import AuthResolver
from apiline.workflows.controller import Command, CommandAction, ExecutionController, parse_command
from apiline.workflows.document import WorkflowDocument, WorkflowStep
from apiline.workflows.extraction import NOT_FOUND, extract_many, extract_value
from apiline.workflows.models import (
    PreparedRequest,
    ReloadReport,
    ResponseSummary,
    RunSummary,
    StepDefinition,
    StepOutcome,
    StepState,
    WorkflowFile,
)
from apiline.workflows.parser import WorkflowParser
from apiline.workflows.persistence import PersistenceSync
from apiline.workflows.state import StepStateMachine
from apiline.workflows.substitution import SubstitutionEngine, SubstitutionResult
from apiline.workflows.transport import HttpxTransport, Transport, TransportResponse
from apiline.workflows.variables import VariableStore
from apiline.workflows.watcher import FileWatcher

__all__ = [
    "errors",
    # Definitions
    "StepDefinition",
    "WorkflowFile",
    "WorkflowParser",
    # Session state
    "VariableStore",
    "WorkflowDocument",
    "WorkflowStep",
    "StepState",
    "StepStateMachine",
    # Execution
    "AuthResolver",
    "SubstitutionEngine",
    "SubstitutionResult",
    "UnresolvedPolicy",
    "ExecutionController",
    "Command",
    "CommandAction",
    "parse_command",
    "PreparedRequest",
    "ResponseSummary",
    "StepOutcome",
    "RunSummary",
    "extract_value",
    "extract_many",
    "NOT_FOUND",
    # Transport
    "Transport",
    "TransportResponse",
    "HttpxTransport",
    # Persistence
    "PersistenceSync",
    "ReloadReport",
    "FileWatcher",
]
