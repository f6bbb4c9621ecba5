"""Tests for apiline.workflows.transport module."""

from __future__ import annotations

import datetime
import json

import httpx
import pytest

from apiline.workflows.errors import TransportFailure
from apiline.workflows.transport import HttpxTransport, parse_body


def make_transport(handler):
    return HttpxTransport(client=httpx.Client(transport=httpx.MockTransport(handler)))


class TestParseBody:
    """Tests for response body parsing."""

    @pytest.mark.parametrize("text", ["", "   ", "\n"])
    def test_empty_is_empty_object(self, text):
        assert parse_body(text) == {}

    def test_json(self):
        assert parse_body('{"a": [1, 2]}') == {"a": [1, 2]}

    def test_json_scalar(self):
        assert parse_body("42") == 42

    def test_text(self):
        assert parse_body("<html>oops</html>") == "<html>oops</html>"


class TestHttpxTransport:
    """Tests for dispatching through httpx."""

    def test_sends_json_body_and_headers(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": 1})

        response = make_transport(handler).send(
            "POST", "http://api.test/items", {"Authorization": "Bearer t"}, {"name": "x"}, 10.0
        )

        assert seen["method"] == "POST"
        assert seen["url"] == "http://api.test/items"
        assert seen["headers"]["content-type"] == "application/json"
        assert seen["headers"]["authorization"] == "Bearer t"
        assert seen["body"] == {"name": "x"}
        assert response.status == 201
        assert response.body == {"id": 1}
        assert response.elapsed_ms is not None

    def test_dates_in_body_sent_as_iso_text(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200)

        body = {"since": datetime.date(2024, 1, 1), "at": datetime.datetime(2024, 1, 1, 9, 30)}
        make_transport(handler).send("POST", "http://api.test/events", {}, body, 5.0)
        assert seen["body"] == {"since": "2024-01-01", "at": "2024-01-01T09:30:00"}

    def test_non_success_status_is_a_response(self):
        transport = make_transport(lambda request: httpx.Response(404, text="not here"))
        response = transport.send("GET", "http://api.test/missing", {}, None, 5.0)
        assert response.status == 404
        assert response.body == "not here"

    def test_empty_body(self):
        transport = make_transport(lambda request: httpx.Response(204))
        assert transport.send("DELETE", "http://api.test/x", {}, None, 5.0).body == {}

    def test_no_body_sent_for_none(self):
        seen = {}

        def handler(request):
            seen["content"] = request.content
            return httpx.Response(200)

        make_transport(handler).send("GET", "http://api.test/", {}, None, 5.0)
        assert seen["content"] == b""

    def test_response_headers(self):
        transport = make_transport(lambda request: httpx.Response(200, headers={"X-Request-Id": "r1"}))
        response = transport.send("GET", "http://api.test/", {}, None, 5.0)
        assert response.headers["x-request-id"] == "r1"

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportFailure) as exc_info:
            make_transport(handler).send("GET", "http://api.test/slow", {}, None, 1.5)
        assert exc_info.value.timed_out
        assert "1.5s" in str(exc_info.value)

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportFailure, match="connection refused") as exc_info:
            make_transport(handler).send("GET", "http://api.test/", {}, None, 1.0)
        assert not exc_info.value.timed_out

    def test_close_owned_client(self):
        transport = HttpxTransport()
        client = transport.client
        transport.close()
        assert client.is_closed

    def test_close_leaves_shared_client_open(self):
        client = httpx.Client()
        transport = HttpxTransport(client=client)
        transport.close()
        assert not client.is_closed
        client.close()
