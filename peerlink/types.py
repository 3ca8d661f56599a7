"""Protocol data types and schema validation.

Tool definitions, resources, capabilities and the typed content items a
tool call resolves to. ``validate_arguments`` checks call arguments against
a tool's input schema; ``parse_call_result`` turns a peer's raw result
payload into a :class:`CallToolResult`.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Union

from peerlink.errors import ValidationError


@dataclass(frozen=True, slots=True)
class ClientInfo:
    """Identity this client announces during the handshake."""

    name: str
    version: str


@dataclass(frozen=True, slots=True)
class ServerInfo:
    """Identity a peer reports in its handshake reply."""

    name: str = ""
    version: str = ""


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A named, schema-described tool exposed by a peer."""

    name: str
    description: str
    input_schema: dict[str, Any]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolDefinition:
        schema = data.get("inputSchema", data.get("input_schema"))
        return cls(
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            input_schema=schema if isinstance(schema, dict) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    def copy(self) -> ToolDefinition:
        """Deep copy, so the schema is not shared with the caller."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=copy.deepcopy(self.input_schema),
        )


@dataclass(frozen=True, slots=True)
class Resource:
    """A readable resource a peer advertises."""

    name: str
    uri: str = ""
    description: str = ""
    mime_type: str = ""
    type: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Resource:
        metadata = data.get("metadata")
        return cls(
            name=str(data.get("name") or ""),
            uri=str(data.get("uri") or ""),
            description=str(data.get("description") or ""),
            mime_type=str(data.get("mimeType") or ""),
            type=str(data.get("type") or ""),
            metadata=metadata if isinstance(metadata, dict) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.uri:
            out["uri"] = self.uri
        if self.description:
            out["description"] = self.description
        if self.mime_type:
            out["mimeType"] = self.mime_type
        if self.type:
            out["type"] = self.type
        if self.metadata:
            out["metadata"] = self.metadata
        return out


@dataclass(frozen=True, slots=True)
class ServerCapabilities:
    """What a peer supports, as reported in the handshake reply."""

    tools: bool = True
    tools_list_changed: bool = False
    resources: bool = True
    resources_list_changed: bool = False
    resources_subscribe: bool = False
    prompts: bool = False
    prompts_list_changed: bool = False
    logging: bool = False
    experimental: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerCapabilities:
        def section(key: str) -> dict[str, Any] | None:
            value = data.get(key)
            return value if isinstance(value, dict) else None

        tools = section("tools")
        resources = section("resources")
        prompts = section("prompts")
        experimental = section("experimental")
        return cls(
            tools=tools is not None,
            tools_list_changed=bool(tools and tools.get("listChanged")),
            resources=resources is not None,
            resources_list_changed=bool(resources and resources.get("listChanged")),
            resources_subscribe=bool(resources and resources.get("subscribe")),
            prompts=prompts is not None,
            prompts_list_changed=bool(prompts and prompts.get("listChanged")),
            logging=section("logging") is not None,
            experimental=experimental or {},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.tools:
            out["tools"] = {"listChanged": self.tools_list_changed}
        if self.resources:
            out["resources"] = {
                "listChanged": self.resources_list_changed,
                "subscribe": self.resources_subscribe,
            }
        if self.prompts:
            out["prompts"] = {"listChanged": self.prompts_list_changed}
        if self.logging:
            out["logging"] = {}
        if self.experimental:
            out["experimental"] = self.experimental
        return out


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A request to run a named tool with arguments."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


# ─── Content ─────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str
    type: str = "text"


@dataclass(frozen=True, slots=True)
class ImageContent:
    data: str
    mime_type: str
    type: str = "image"


@dataclass(frozen=True, slots=True)
class EmbeddedResource:
    uri: str
    mime_type: str = ""
    text: str | None = None
    blob: str | None = None
    type: str = "resource"


Content = Union[TextContent, ImageContent, EmbeddedResource]


@dataclass(frozen=True, slots=True)
class CallToolResult:
    """Ordered content items produced by a tool call."""

    content: list[Content]
    is_error: bool = False

    @property
    def text(self) -> str:
        """All text items joined by newlines."""
        return "\n".join(c.text for c in self.content if isinstance(c, TextContent))


_FALLBACK_TEXT = "Tool execution completed"


def parse_call_result(raw: Any) -> CallToolResult:
    """Convert a raw ``call_tool`` payload into typed content.

    Payloads shaped like ``{"content": [...], "isError": bool}`` are parsed
    item by item. Strings are kept as text; anything else becomes a single
    text item holding its compact JSON.
    """
    if isinstance(raw, dict) and isinstance(raw.get("content"), list):
        items = [c for c in (_parse_content(i) for i in raw["content"]) if c is not None]
        if not items:
            items = [TextContent(text=_FALLBACK_TEXT)]
        return CallToolResult(content=items, is_error=raw.get("isError") is True)

    if raw is None:
        return CallToolResult(content=[TextContent(text=_FALLBACK_TEXT)])
    if isinstance(raw, str):
        return CallToolResult(content=[TextContent(text=raw)])
    text = json.dumps(raw, separators=(",", ":"), ensure_ascii=False)
    return CallToolResult(content=[TextContent(text=text)])


def _parse_content(item: Any) -> Content | None:
    if not isinstance(item, dict):
        return None
    kind = item.get("type")
    if kind == "image" and isinstance(item.get("data"), str):
        return ImageContent(data=item["data"], mime_type=str(item.get("mimeType") or ""))
    if kind == "resource" and isinstance(item.get("resource"), dict):
        res = item["resource"]
        return EmbeddedResource(
            uri=str(res.get("uri") or ""),
            mime_type=str(res.get("mimeType") or ""),
            text=res.get("text"),
            blob=res.get("blob"),
        )
    # Unknown types degrade to text when they carry any
    if isinstance(kind, str) and isinstance(item.get("text"), str):
        return TextContent(text=item["text"])
    return None


# ─── Schema validation ───────────────────────────────────────────


def json_type_name(value: Any) -> str:
    """Name of a value's JSON type."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def matches_type(expected: str, value: Any) -> bool:
    """Whether ``value`` is an instance of the JSON schema type ``expected``.

    Raises:
        ValueError: If ``expected`` is not a supported type name.
    """
    actual = json_type_name(value)
    if expected == "number":
        return actual in ("number", "integer")
    if expected == "integer":
        return actual == "integer" or (actual == "number" and float(value).is_integer())
    if expected in ("string", "boolean", "array", "object", "null"):
        return actual == expected
    raise ValueError(f"unsupported type: {expected}")


def validate_arguments(schema: dict[str, Any], arguments: dict[str, Any]) -> None:
    """Check ``arguments`` against an input schema.

    Required fields are checked first, then each supplied argument that has
    a property sub-schema is matched against that sub-schema's ``type``.

    Raises:
        ValidationError: Naming the first offending field.
    """
    required = schema.get("required") or []
    for name in required:
        if name not in arguments:
            raise ValidationError(name, f"missing required field: {name}")

    properties = schema.get("properties")
    if not isinstance(properties, dict):
        return

    for name, value in arguments.items():
        prop = properties.get(name)
        if not isinstance(prop, dict) or "type" not in prop:
            continue
        expected = prop["type"]
        try:
            ok = matches_type(expected, value)
        except ValueError:
            raise ValidationError(
                name,
                f"invalid argument {name}: unsupported type: {expected}",
                expected=str(expected),
            ) from None
        if not ok:
            actual = json_type_name(value)
            raise ValidationError(
                name,
                f"invalid argument {name}: expected {expected}, got {actual}",
                expected=expected,
                actual=actual,
            )
