"""
Bridge between peer tools and LangChain.

Converts tools in a ToolHub into LangChain StructuredTools so an agent can
call them. The tool's input schema becomes the LangChain args schema.

Usage:
    from peerlink.bridge import to_langchain_tool, langchain_tools

    # Single tool
    lc_tool = to_langchain_tool(hub, "add")

    # All tools from all peers
    tools = langchain_tools(hub)
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.tools import StructuredTool

from peerlink.errors import PeerlinkError
from peerlink.hub import ToolHub

logger = logging.getLogger(__name__)


def to_langchain_tool(
    hub: ToolHub,
    tool_name: str,
    description_override: str | None = None,
) -> StructuredTool:
    """
    Create a LangChain StructuredTool that proxies to ``hub.call_tool``.

    Failures are returned to the agent as text rather than raised, so the
    model can see what went wrong and react.

    Raises:
        ToolNotFoundError: The hub has no tool by that name.
    """
    definition = hub.get_tool(tool_name)
    description = description_override or definition.description or f"Peer tool: {tool_name}"

    def _call_peer(**kwargs: Any) -> str:
        """Proxy call to the owning peer."""
        try:
            result = hub.call_tool(tool_name, kwargs)
        except PeerlinkError as e:
            logger.warning(f"Tool {tool_name} failed: {e}")
            return f"Error calling {tool_name}: {e}"
        if result.is_error:
            return f"Error calling {tool_name}: {result.text}"
        return result.text

    return StructuredTool.from_function(
        func=_call_peer,
        name=tool_name,
        description=description,
        args_schema=definition.input_schema or {"type": "object", "properties": {}},
    )


def langchain_tools(hub: ToolHub) -> list[StructuredTool]:
    """Wrap every tool in the hub."""
    return [to_langchain_tool(hub, t.name) for t in hub.list_tools()]
