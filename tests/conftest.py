"""Shared test fixtures for peerlink."""

from __future__ import annotations

from typing import Any

import pytest

from peerlink.types import ToolDefinition
from tests.fakes import ADD_SCHEMA, handshake_reply, reply


@pytest.fixture
def connected_replies() -> list[Any]:
    """Replies for a successful connect: handshake, tools, resources."""
    return [
        handshake_reply(),
        reply({"tools": [{"name": "add", "description": "Add", "inputSchema": ADD_SCHEMA}]}),
        reply({"resources": [{"name": "units", "uri": "calc://units"}]}),
    ]


@pytest.fixture
def make_tool() -> Any:
    """Factory fixture for ToolDefinition with sensible defaults."""

    def _make(name: str = "add", **overrides: Any) -> ToolDefinition:
        defaults: dict[str, Any] = {
            "description": f"The {name} tool",
            "input_schema": ADD_SCHEMA,
        }
        defaults.update(overrides)
        return ToolDefinition(name=name, **defaults)

    return _make
