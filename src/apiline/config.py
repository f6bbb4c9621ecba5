"""Session configuration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

DEFAULT_BASE_URL = "http://localhost:8080"


class UnresolvedPolicy(str, Enum):
    """What to do with ``${name}`` placeholders that have no bound variable."""

    WARN = "warn"
    ABORT = "abort"


@dataclass(repr=False)
class SessionConfig:
    """Options that shape one interactive session."""

    base_url: str
    default_api_key: str
    start_from: int  # 0-based
    timeout: float
    unresolved: UnresolvedPolicy
    continue_on_failure: bool
    confirm_requests: bool
    api_key_header: str
    token_variables: tuple[str, ...]
    watch: bool
    force_polling: bool | None
    verify_ssl: bool

    __slots__ = (
        "base_url",
        "default_api_key",
        "start_from",
        "timeout",
        "unresolved",
        "continue_on_failure",
        "confirm_requests",
        "api_key_header",
        "token_variables",
        "watch",
        "force_polling",
        "verify_ssl",
    )

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        default_api_key: str = "",
        start_from: int = 0,
        timeout: float = 30.0,
        unresolved: UnresolvedPolicy | str = UnresolvedPolicy.WARN,
        continue_on_failure: bool = False,
        confirm_requests: bool = True,
        api_key_header: str = "api-key",
        token_variables: tuple[str, ...] | list[str] = ("jwt", "jwt_token"),
        watch: bool = True,
        force_polling: bool | None = None,
        verify_ssl: bool = True,
    ) -> None:
        self.base_url = base_url
        self.default_api_key = default_api_key
        self.start_from = start_from
        self.timeout = timeout
        self.unresolved = UnresolvedPolicy(unresolved)
        self.continue_on_failure = continue_on_failure
        self.confirm_requests = confirm_requests
        self.api_key_header = api_key_header
        self.token_variables = tuple(token_variables)
        self.watch = watch
        self.force_polling = force_polling
        self.verify_ssl = verify_ssl

    def build_url(self, endpoint: str) -> str:
        """Prefix relative endpoints with the base URL."""
        if endpoint.startswith(("http://", "https://")) or not self.base_url:
            return endpoint
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def __repr__(self) -> str:
        return (
            f"SessionConfig(base_url={self.base_url!r}, start_from={self.start_from}, "
            f"timeout={self.timeout}, unresolved={self.unresolved.value!r})"
        )
