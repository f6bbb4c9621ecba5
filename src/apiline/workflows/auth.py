"""Auth header resolution for workflow steps.

Supported auth modes:
- ``none``: no header
- ``admin``: API key header from the ``api_key`` variable or the session default
- ``jwt``: ``Authorization: Bearer`` with a token saved by an earlier step
- ``Bearer <token>``: literal bearer token
- ``<header>:<value>``: explicit header, e.g. ``api-key:secret``
"""

from __future__ import annotations

import re
from typing import Any, Sequence

from apiline.workflows.errors import AuthUnavailable

NONE = "none"
ADMIN = "admin"
JWT = "jwt"
BEARER_PREFIX = "Bearer "

# RFC 7230 token characters
HEADER_NAME_PATTERN = re.compile(r"^[!#$%&'*+.^_`|~0-9A-Za-z-]+$")


def is_supported_auth(auth: str) -> bool:
    """Check whether an auth string has one of the supported forms."""
    if auth in (NONE, ADMIN, JWT) or auth.startswith(BEARER_PREFIX):
        return True
    if "${" in auth:
        # Resolved at dispatch time
        return True
    return _split_header(auth) is not None


def _split_header(auth: str) -> tuple[str, str] | None:
    if ":" not in auth:
        return None
    name, value = auth.split(":", 1)
    name = name.strip()
    if not HEADER_NAME_PATTERN.match(name):
        return None
    return name, value.strip()


class AuthResolver:
    """Turns a step's auth mode into concrete request headers.

    Resolution only reads the variables and session defaults it is given.
    """

    def __init__(
        self,
        default_api_key: str = "",
        api_key_header: str = "api-key",
        api_key_variable: str = "api_key",
        token_variables: Sequence[str] = ("jwt", "jwt_token"),
    ) -> None:
        """Initialize the resolver.

        Args:
            default_api_key: Fallback key for ``admin`` auth.
            api_key_header: Header name that carries the admin key.
            api_key_variable: Variable consulted before the fallback key.
            token_variables: Variables checked in order for ``jwt`` auth.
        """
        self.default_api_key = default_api_key
        self.api_key_header = api_key_header
        self.api_key_variable = api_key_variable
        self.token_variables = tuple(token_variables)

    def resolve(self, auth: str, variables: Any, step_name: str | None = None) -> dict[str, str]:
        """Resolve headers for an auth mode.

        Args:
            auth: The (already substituted) auth string of the step.
            variables: A VariableStore or any mapping with ``get``.
            step_name: Step name for error reporting.

        Returns:
            Headers to add to the request.

        Raises:
            AuthUnavailable: If the credential for the mode is missing or the
                mode is not recognized.
        """
        auth = auth.strip()
        if auth == NONE:
            return {}
        if auth == ADMIN:
            key = variables.get(self.api_key_variable) or self.default_api_key
            if not key:
                raise AuthUnavailable(
                    auth,
                    f"No API key available: set the '{self.api_key_variable}' variable or pass --api-key",
                    step_name,
                )
            return {self.api_key_header: str(key)}
        if auth == JWT:
            for name in self.token_variables:
                token = variables.get(name)
                if token:
                    return {"Authorization": f"{BEARER_PREFIX}{token}"}
            names = ", ".join(f"'{name}'" for name in self.token_variables)
            raise AuthUnavailable(auth, f"No saved token: none of {names} is set", step_name)
        if auth.startswith(BEARER_PREFIX):
            if not auth[len(BEARER_PREFIX) :].strip():
                raise AuthUnavailable(auth, "Bearer auth has an empty token", step_name)
            return {"Authorization": auth}
        header = _split_header(auth)
        if header is not None:
            return {header[0]: header[1]}
        raise AuthUnavailable(auth, f"Unknown auth type: {auth}", step_name)

    def describe(self, auth: str) -> str:
        """Short label for previews, without secrets."""
        auth = auth.strip()
        if auth.startswith(BEARER_PREFIX):
            return "Bearer ***"
        header = _split_header(auth)
        if header is not None and auth not in (NONE, ADMIN, JWT):
            return f"{header[0]}:***"
        return auth
