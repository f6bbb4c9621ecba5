from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest

from apiline.config import SessionConfig
from apiline.workflows.controller import ExecutionController
from apiline.workflows.document import WorkflowDocument
from apiline.workflows.transport import TransportResponse

WORKFLOW = """\
variables:
  user_email: admin@example.com
  password: secret
requests:
  - name: Login
    method: POST
    endpoint: /auth/login
    auth: none
    payload:
      email: ${user_email}
      password: ${password}
    save_as: jwt
    extract_path: $.access_token
  - name: Profile
    method: GET
    endpoint: /users/me
    auth: jwt
    save_multiple:
      user_id: $.id
      user_name: $.name
  - name: Create post
    method: POST
    endpoint: /users/${user_id}/posts
    auth: jwt
    expected_status: 201
    payload:
      title: Hello
      author: ${user_id}
    save_as: post_id
    extract_path: $.id
"""


@dataclass
class SentRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: Any
    timeout: float


class FakeTransport:
    """Replays queued responses or exceptions in order and records what was sent."""

    def __init__(self) -> None:
        self.queued: list[TransportResponse | Exception] = []
        self.calls: list[SentRequest] = []
        self.closed = False

    def reply(self, status: int = 200, body: Any = None, headers: dict[str, str] | None = None) -> FakeTransport:
        self.queued.append(TransportResponse(status=status, headers=headers or {}, body={} if body is None else body))
        return self

    def raise_error(self, error: Exception) -> FakeTransport:
        self.queued.append(error)
        return self

    def send(self, method: str, url: str, headers: dict[str, str], body: Any, timeout: float) -> TransportResponse:
        self.calls.append(SentRequest(method, url, dict(headers), body, timeout))
        if not self.queued:
            raise AssertionError(f"Unexpected request: {method} {url}")
        item = self.queued.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def workflow_path(tmp_path):
    path = tmp_path / "workflow.yaml"
    path.write_text(WORKFLOW, encoding="utf-8")
    return path


@pytest.fixture
def document(workflow_path):
    return WorkflowDocument.load(workflow_path)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def session_config():
    return SessionConfig(base_url="http://api.test")


@pytest.fixture
def controller(document, transport, session_config):
    return ExecutionController(document, transport, session_config)
