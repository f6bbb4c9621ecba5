from __future__ import annotations

from apiline.config import SessionConfig
from apiline.core.version import APILINE_VERSION
from apiline.workflows import (
    ExecutionController,
    PersistenceSync,
    StepState,
    WorkflowDocument,
    WorkflowParser,
    errors,
)

__version__ = APILINE_VERSION

__all__ = [
    "__version__",
    "SessionConfig",
    "ExecutionController",
    "PersistenceSync",
    "StepState",
    "WorkflowDocument",
    "WorkflowParser",
    "errors",
]
