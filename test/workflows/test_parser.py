"""Tests for apiline.workflows.parser module."""

from __future__ import annotations

import pytest
import yaml

from apiline.workflows.errors import WorkflowParseError, WorkflowValidationError
from apiline.workflows.parser import WorkflowParser


@pytest.fixture
def parser():
    return WorkflowParser()


class TestParseString:
    """Tests for parsing workflow YAML."""

    def test_full_document(self, parser, workflow_path):
        workflow = parser.parse_string(workflow_path.read_text())

        assert workflow.variables == {"user_email": "admin@example.com", "password": "secret"}
        assert [step.name for step in workflow.requests] == ["Login", "Profile", "Create post"]
        login, profile, create = workflow.requests
        assert login.payload == {"email": "${user_email}", "password": "${password}"}
        assert login.extraction_targets() == {"jwt": "$.access_token"}
        assert profile.extraction_targets() == {"user_id": "$.id", "user_name": "$.name"}
        assert create.expected_status == 201

    def test_defaults(self, parser):
        workflow = parser.parse_string("requests:\n  - name: Health\n    method: get\n    endpoint: /health\n")
        step = workflow.requests[0]
        assert step.auth == "none"
        assert step.expected_status == 200
        assert step.payload is None
        assert step.http_method == "GET"

    def test_explicit_null_status_accepts_any(self, parser):
        workflow = parser.parse_string(
            "requests:\n  - name: Any\n    method: GET\n    endpoint: /\n    expected_status: null\n"
        )
        assert workflow.requests[0].expected_status is None

    def test_empty_document(self, parser):
        workflow = parser.parse_string("")
        assert workflow.variables == {}
        assert workflow.requests == []

    def test_null_sections(self, parser):
        workflow = parser.parse_string("variables:\nrequests:\n")
        assert workflow.variables == {}
        assert workflow.requests == []

    def test_save_as_without_path_captures_body(self, parser):
        workflow = parser.parse_string(
            "requests:\n  - name: Get\n    method: GET\n    endpoint: /\n    save_as: whole\n"
        )
        assert workflow.requests[0].extraction_targets() == {"whole": "$"}

    def test_save_multiple_wins_over_save_as(self, parser):
        workflow = parser.parse_string(
            """
requests:
  - name: Both
    method: GET
    endpoint: /
    save_as: single
    extract_path: $.a
    save_multiple:
      multi: $.b
"""
        )
        assert workflow.requests[0].extraction_targets() == {"multi": "$.b"}


class TestParseErrors:
    """Tests for invalid documents."""

    def test_invalid_yaml(self, parser):
        with pytest.raises(WorkflowParseError, match="Invalid YAML"):
            parser.parse_string("requests: [", file_path="broken.yaml")

    def test_not_a_mapping(self, parser):
        with pytest.raises(WorkflowParseError, match="must be a mapping"):
            parser.parse_string("- a\n- b\n")

    def test_requests_not_a_list(self, parser):
        with pytest.raises(WorkflowParseError, match="'requests' must be a list"):
            parser.parse_string("requests: nope\n")

    def test_step_not_a_mapping(self, parser):
        with pytest.raises(WorkflowParseError, match="Request #1 must be a mapping"):
            parser.parse_string("requests:\n  - just a string\n")

    def test_invalid_utf8(self, parser):
        with pytest.raises(WorkflowParseError, match="UTF-8"):
            parser.parse_bytes(b"\xff\xfe\x00")

    def test_unsupported_method(self, parser):
        with pytest.raises(WorkflowValidationError) as exc_info:
            parser.parse_string("requests:\n  - name: Bad\n    method: FETCH\n    endpoint: /\n")
        assert exc_info.value.step_name == "Bad"
        assert exc_info.value.field == "method"
        assert "Unsupported method: FETCH" in str(exc_info.value)

    def test_unknown_auth(self, parser):
        with pytest.raises(WorkflowValidationError, match="Unknown auth type: oauth"):
            parser.parse_string("requests:\n  - name: Bad\n    method: GET\n    endpoint: /\n    auth: oauth\n")

    def test_unsupported_extract_path(self, parser):
        with pytest.raises(WorkflowValidationError) as exc_info:
            parser.parse_string(
                "requests:\n  - name: Bad\n    method: GET\n    endpoint: /\n    save_as: x\n    extract_path: $..id\n"
            )
        assert exc_info.value.field == "extract_path"

    def test_unsupported_save_multiple_path(self, parser):
        with pytest.raises(WorkflowValidationError):
            parser.parse_string(
                "requests:\n  - name: Bad\n    method: GET\n    endpoint: /\n    save_multiple:\n      ids: $.items[*].id\n"
            )

    def test_missing_required_field_names_step_by_position(self, parser):
        with pytest.raises(WorkflowValidationError) as exc_info:
            parser.parse_string("requests:\n  - method: GET\n    endpoint: /\n")
        assert exc_info.value.step_name == "#1"
        assert exc_info.value.field == "name"


class TestSerialize:
    """Tests for writing documents back."""

    def test_keeps_unknown_step_keys(self, parser):
        source = """
variables:
  token: abc
requests:
  - name: Tagged
    method: GET
    endpoint: /things
    description: kept as is
    tags: [smoke]
"""
        written = yaml.safe_load(parser.serialize(parser.parse_string(source)))
        step = written["requests"][0]
        assert step["description"] == "kept as is"
        assert step["tags"] == ["smoke"]

    def test_omits_unset_defaults(self, parser):
        workflow = parser.parse_string("requests:\n  - name: Health\n    method: GET\n    endpoint: /health\n")
        written = yaml.safe_load(parser.serialize(workflow))
        assert written == {
            "variables": {},
            "requests": [{"name": "Health", "method": "GET", "endpoint": "/health"}],
        }

    def test_keeps_explicit_null_status(self, parser):
        workflow = parser.parse_string(
            "requests:\n  - name: Any\n    method: GET\n    endpoint: /\n    expected_status: null\n"
        )
        written = yaml.safe_load(parser.serialize(workflow))
        assert written["requests"][0]["expected_status"] is None

    def test_drops_other_top_level_keys(self, parser):
        workflow = parser.parse_string("version: 2\nvariables:\n  a: 1\nrequests: []\n")
        assert yaml.safe_load(parser.serialize(workflow)) == {"variables": {"a": 1}, "requests": []}

    def test_keeps_key_order_and_unicode(self, parser, workflow_path):
        workflow = parser.parse_string(workflow_path.read_text())
        workflow.variables["greeting"] = "héllo"
        content = parser.serialize(workflow).decode("utf-8")
        assert content.index("variables:") < content.index("requests:")
        assert "héllo" in content
        assert parser.parse_bytes(content.encode("utf-8")) == workflow
