"""Placeholder substitution for step templates.

Handles ``${name}`` references in endpoints, headers, auth strings and
arbitrarily nested payloads:
- A string variable is interpolated as raw text, including partial templates
  like ``/users/${user_id}``.
- When the whole string is one placeholder, the bound value is returned as is,
  so a payload field can become an object, array or number.
- A structured value inside a larger string is rendered as compact JSON.
  Dates and times are rendered in ISO format.
- An unbound name leaves the placeholder untouched and is reported back.
"""

from __future__ import annotations

import datetime
import json
import re
from dataclasses import dataclass, field
from typing import Any

from apiline.workflows.variables import VariableStore


@dataclass
class SubstitutionResult:
    """A substituted value plus the placeholder names that had no binding."""

    value: Any
    unresolved: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unresolved


class SubstitutionEngine:
    """Replaces ``${name}`` placeholders using a VariableStore."""

    # Pattern to match ${...} expressions
    VARIABLE_PATTERN = re.compile(r"\$\{([^}]+)\}")

    def __init__(self, variables: VariableStore) -> None:
        self.variables = variables

    def substitute(self, template: Any) -> SubstitutionResult:
        """Substitute all placeholders in a template.

        Args:
            template: A string, or a dict/list nested to any depth. Other
                values are returned unchanged.

        Returns:
            SubstitutionResult with the new value and the unresolved names in
            order of first appearance.
        """
        unresolved: list[str] = []
        value = self._substitute(template, unresolved)
        return SubstitutionResult(value=value, unresolved=unresolved)

    def _substitute(self, value: Any, unresolved: list[str]) -> Any:
        if isinstance(value, str):
            return self._substitute_string(value, unresolved)
        elif isinstance(value, dict):
            return {k: self._substitute(v, unresolved) for k, v in value.items()}
        elif isinstance(value, list):
            return [self._substitute(item, unresolved) for item in value]
        return value

    def _substitute_string(self, value: str, unresolved: list[str]) -> Any:
        # Check if the entire string is a single expression
        match = self.VARIABLE_PATTERN.fullmatch(value)
        if match:
            name = match.group(1).strip()
            found, bound = self.variables.lookup(name)
            if not found:
                _note(unresolved, name)
                return value
            return bound

        # Otherwise, interpolate all expressions into the string
        def replace_match(m: re.Match[str]) -> str:
            name = m.group(1).strip()
            found, bound = self.variables.lookup(name)
            if not found:
                _note(unresolved, name)
                return m.group(0)
            return render_text(bound)

        return self.VARIABLE_PATTERN.sub(replace_match, value)

    def substitute_text(self, template: str) -> SubstitutionResult:
        """Substitute a template that must stay textual (endpoints, headers)."""
        result = self.substitute(template)
        if not isinstance(result.value, str):
            result.value = render_text(result.value)
        return result


def render_text(value: Any) -> str:
    """Render a variable value for inclusion inside a larger string."""
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def _note(unresolved: list[str], name: str) -> None:
    if name not in unresolved:
        unresolved.append(name)
