"""Tests for protocol data types and schema validation."""

from __future__ import annotations

import json

import pytest

from peerlink.errors import ValidationError
from peerlink.types import (
    CallToolResult,
    EmbeddedResource,
    ImageContent,
    Resource,
    ServerCapabilities,
    TextContent,
    ToolDefinition,
    matches_type,
    parse_call_result,
    validate_arguments,
)
from tests.fakes import ADD_SCHEMA

# ── Tool definitions ────────────────────────────────────────────────


class TestToolDefinition:
    def test_from_dict_camel_case(self) -> None:
        tool = ToolDefinition.from_dict({"name": "add", "description": "Add", "inputSchema": ADD_SCHEMA})
        assert tool.input_schema == ADD_SCHEMA

    def test_from_dict_snake_case(self) -> None:
        tool = ToolDefinition.from_dict({"name": "add", "input_schema": {"type": "object"}})
        assert tool.input_schema == {"type": "object"}
        assert tool.description == ""

    def test_to_dict_uses_camel_case(self) -> None:
        tool = ToolDefinition(name="add", description="Add", input_schema=ADD_SCHEMA)
        assert tool.to_dict()["inputSchema"] == ADD_SCHEMA

    def test_copy_is_deep(self) -> None:
        schema = {"type": "object", "properties": {"a": {"type": "number"}}}
        tool = ToolDefinition(name="t", description="", input_schema=schema)
        copied = tool.copy()
        schema["properties"]["a"]["type"] = "string"
        assert copied.input_schema["properties"]["a"]["type"] == "number"


class TestResource:
    def test_from_dict(self) -> None:
        res = Resource.from_dict({"name": "units", "uri": "calc://units", "mimeType": "text/plain"})
        assert res.mime_type == "text/plain"
        assert res.to_dict() == {"name": "units", "uri": "calc://units", "mimeType": "text/plain"}


class TestCapabilities:
    def test_sections_present(self) -> None:
        caps = ServerCapabilities.from_dict({
            "tools": {"listChanged": True},
            "resources": {"subscribe": True},
            "logging": {},
        })
        assert caps.tools
        assert caps.tools_list_changed
        assert caps.resources_subscribe
        assert caps.logging
        assert not caps.prompts

    def test_empty(self) -> None:
        caps = ServerCapabilities.from_dict({})
        assert not caps.tools
        assert not caps.resources

    def test_to_dict_skips_disabled(self) -> None:
        out = ServerCapabilities(resources=False).to_dict()
        assert "tools" in out
        assert "resources" not in out


# ── Validation ──────────────────────────────────────────────────────


class TestValidateArguments:
    def test_valid_numbers(self) -> None:
        validate_arguments(ADD_SCHEMA, {"a": 5, "b": 3})

    def test_float_is_number(self) -> None:
        validate_arguments(ADD_SCHEMA, {"a": 5.5, "b": -1})

    def test_wrong_type_names_field(self) -> None:
        with pytest.raises(ValidationError, match="a") as exc_info:
            validate_arguments(ADD_SCHEMA, {"a": "x", "b": 3})
        assert exc_info.value.field == "a"
        assert exc_info.value.expected == "number"
        assert exc_info.value.actual == "string"

    def test_missing_required(self) -> None:
        with pytest.raises(ValidationError, match="missing required field: b") as exc_info:
            validate_arguments(ADD_SCHEMA, {"a": 1})
        assert exc_info.value.field == "b"

    def test_required_checked_before_types(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_arguments(ADD_SCHEMA, {"a": "x"})
        assert exc_info.value.field == "b"

    def test_bool_is_not_a_number(self) -> None:
        with pytest.raises(ValidationError):
            validate_arguments(ADD_SCHEMA, {"a": True, "b": 1})

    def test_property_without_type_accepts_anything(self) -> None:
        schema = {"type": "object", "properties": {"x": {"description": "anything"}}}
        validate_arguments(schema, {"x": [1, "two"]})

    def test_extra_arguments_ignored(self) -> None:
        validate_arguments(ADD_SCHEMA, {"a": 1, "b": 2, "c": "extra"})

    def test_no_properties(self) -> None:
        validate_arguments({"type": "object"}, {"anything": 1})

    def test_unknown_type_rejected(self) -> None:
        schema = {"properties": {"x": {"type": "date"}}}
        with pytest.raises(ValidationError, match="unsupported type"):
            validate_arguments(schema, {"x": "2024-01-01"})


class TestMatchesType:
    @pytest.mark.parametrize(
        ("expected", "value", "ok"),
        [
            ("string", "s", True),
            ("string", 1, False),
            ("number", 1, True),
            ("number", 1.5, True),
            ("number", False, False),
            ("integer", 2, True),
            ("integer", 2.0, True),
            ("integer", 2.5, False),
            ("boolean", True, True),
            ("boolean", 0, False),
            ("array", [1], True),
            ("array", {}, False),
            ("object", {}, True),
            ("object", [], False),
            ("null", None, True),
            ("null", 0, False),
        ],
    )
    def test_types(self, expected: str, value: object, ok: bool) -> None:
        assert matches_type(expected, value) is ok

    def test_unsupported(self) -> None:
        with pytest.raises(ValueError, match="unsupported type"):
            matches_type("date", "x")


# ── Call results ────────────────────────────────────────────────────


class TestParseCallResult:
    def test_plain_dict_becomes_json_text(self) -> None:
        result = parse_call_result({"sum": 8})
        assert len(result.content) == 1
        assert json.loads(result.text) == {"sum": 8}
        assert not result.is_error

    def test_none_falls_back(self) -> None:
        result = parse_call_result(None)
        assert result.text == "Tool execution completed"

    def test_string_kept_verbatim(self) -> None:
        assert parse_call_result("done").text == "done"

    def test_content_items(self) -> None:
        result = parse_call_result({
            "content": [
                {"type": "text", "text": "hello"},
                {"type": "image", "data": "aGk=", "mimeType": "image/png"},
                {"type": "resource", "resource": {"uri": "file:///a", "text": "body"}},
                "not a dict",
            ],
            "isError": True,
        })
        assert result.is_error
        assert result.content == [
            TextContent(text="hello"),
            ImageContent(data="aGk=", mime_type="image/png"),
            EmbeddedResource(uri="file:///a", text="body"),
        ]
        assert result.text == "hello"

    def test_empty_content_falls_back(self) -> None:
        result = parse_call_result({"content": []})
        assert result.text == "Tool execution completed"

    def test_text_joins_items(self) -> None:
        result = CallToolResult(content=[TextContent("a"), TextContent("b")])
        assert result.text == "a\nb"
