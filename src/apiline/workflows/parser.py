"""Workflow parser for YAML workflow documents.

Parses workflow YAML into models and serializes them back. A document has two
sections::

    variables:
      user_email: admin@example.com
    requests:
      - name: Login
        method: POST
        endpoint: /auth/login
        auth: none
        payload:
          email: ${user_email}
        save_as: jwt
        extract_path: $.access_token
"""

from __future__ import annotations

from typing import Any

import yaml
from pydantic import ValidationError

from apiline.workflows.errors import WorkflowParseError, WorkflowValidationError
from apiline.workflows.models import WorkflowFile


class WorkflowParser:
    """Parses and serializes workflow YAML documents."""

    def parse_bytes(self, content: bytes, file_path: str | None = None) -> WorkflowFile:
        """Parse workflow content from raw bytes."""
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise WorkflowParseError(f"Workflow file is not valid UTF-8: {e}", file_path=file_path)
        return self.parse_string(text, file_path=file_path)

    def parse_string(self, content: str, file_path: str | None = None) -> WorkflowFile:
        """Parse workflow content from a string.

        Args:
            content: YAML content string.
            file_path: Optional file path for error reporting.

        Returns:
            Parsed WorkflowFile object.
        """
        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise WorkflowParseError(f"Invalid YAML: {e}", file_path=file_path)

        return self.parse_dict(data, file_path=file_path)

    def parse_dict(self, data: Any, file_path: str | None = None) -> WorkflowFile:
        """Parse workflow data from a dictionary."""
        if not isinstance(data, dict):
            raise WorkflowParseError("Workflow document must be a mapping", file_path=file_path)
        if not isinstance(data.get("variables") or {}, dict):
            raise WorkflowParseError("'variables' must be a mapping", file_path=file_path)

        requests = data.get("requests") or []
        if not isinstance(requests, list):
            raise WorkflowParseError("'requests' must be a list", file_path=file_path)

        for i, step in enumerate(requests):
            if not isinstance(step, dict):
                raise WorkflowParseError(f"Request #{i + 1} must be a mapping", file_path=file_path)

        try:
            return WorkflowFile.model_validate(data)
        except ValidationError as e:
            raise _validation_error(e, requests) from e

    def serialize(self, workflow: WorkflowFile) -> bytes:
        """Serialize a workflow back to YAML bytes.

        Only ``variables`` and ``requests`` are written. Key order follows
        the models so the output stays readable.
        """
        content = yaml.safe_dump(
            workflow.to_document(),
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )
        return content.encode("utf-8")


def _validation_error(error: ValidationError, requests: list[Any]) -> WorkflowValidationError:
    """Convert the first pydantic error into a WorkflowValidationError."""
    first = error.errors()[0]
    location = first.get("loc", ())
    step_name = None
    field = ".".join(str(part) for part in location)
    if len(location) >= 2 and location[0] == "requests" and isinstance(location[1], int):
        index = location[1]
        step_name = str(requests[index].get("name") or f"#{index + 1}")
        field = ".".join(str(part) for part in location[2:]) or None
    message = first.get("msg", str(error))
    # pydantic prefixes messages raised from validators
    message = message.removeprefix("Value error, ")
    return WorkflowValidationError(message, step_name=step_name, field=field)
