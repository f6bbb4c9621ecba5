"""HTTP transport for dispatching workflow steps."""

from __future__ import annotations

import datetime
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from apiline.workflows.errors import TransportFailure

logger = logging.getLogger(__name__)


@dataclass
class TransportResponse:
    """Status, headers and parsed body of a received response."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    elapsed_ms: float | None = None


class Transport(Protocol):
    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Any,
        timeout: float,
    ) -> TransportResponse:
        """Perform one request or raise TransportFailure."""
        ...


def parse_body(text: str) -> Any:
    """Parse a response body: empty is ``{}``, JSON is decoded, anything else stays text."""
    if not text.strip():
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return text


def _json_default(value: Any) -> str:
    # YAML loads unquoted dates and timestamps as datetime objects
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return str(value)


class HttpxTransport:
    """Transport backed by a shared ``httpx.Client``."""

    def __init__(self, client: httpx.Client | None = None, verify_ssl: bool = True) -> None:
        self._client = client
        self._owns_client = client is None
        self.verify_ssl = verify_ssl

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(verify=self.verify_ssl)
        return self._client

    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Any,
        timeout: float,
    ) -> TransportResponse:
        """Send a request.

        Args:
            method: HTTP method.
            url: Absolute URL.
            headers: Request headers, auth included.
            body: JSON-serializable payload or None.
            timeout: Request timeout in seconds.

        Returns:
            TransportResponse for any received response, whatever its status.

        Raises:
            TransportFailure: On timeout or network error.
        """
        request_headers = {"Content-Type": "application/json", **headers}
        content = json.dumps(body, ensure_ascii=False, default=_json_default).encode("utf-8") if body is not None else None
        logger.debug("%s %s", method, url)
        try:
            start_time = time.time()
            response = self.client.request(
                method=method,
                url=url,
                headers=request_headers,
                content=content,
                timeout=timeout,
            )
            elapsed_ms = (time.time() - start_time) * 1000
        except httpx.TimeoutException:
            raise TransportFailure(f"Request timed out after {timeout}s", timed_out=True)
        except httpx.HTTPError as e:
            raise TransportFailure(f"Request failed: {e}")

        logger.debug("%s %s -> %d in %.0fms", method, url, response.status_code, elapsed_ms)
        return TransportResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=parse_body(response.text),
            elapsed_ms=elapsed_ms,
        )

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None
