"""
Peer tool server base class.

A peer is a standalone process that:
1. Reads JSON-RPC requests from stdin, one per line
2. Answers the handshake and discovery methods itself
3. Dispatches every other method to the ToolHandler of the same name
4. Writes one JSON-RPC response per line to stdout

To create a peer:

    from peerlink.server import StdioToolServer, ToolHandler

    class MyTool(ToolHandler):
        name = "my_tool"
        description = "Does something useful"
        parameters = {
            "input": {"type": "string", "description": "The input"},
        }
        required = ["input"]

        def handle(self, params: dict) -> dict:
            return {"result": f"processed: {params['input']}"}

    if __name__ == "__main__":
        server = StdioToolServer("my-peer")
        server.register(MyTool())
        server.run()
"""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from typing import IO, Any

from peerlink import __version__
from peerlink.client import (
    METHOD_HANDSHAKE,
    METHOD_LIST_RESOURCES,
    METHOD_LIST_TOOLS,
    METHOD_PING,
    PROTOCOL_VERSION,
)
from peerlink.codec import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    Notification,
    Request,
    Response,
    decode,
    encode,
)
from peerlink.errors import DecodeError, EncodeError, ValidationError
from peerlink.types import Resource, ServerCapabilities, validate_arguments

logger = logging.getLogger(__name__)


class UnknownMethodError(Exception):
    """No built-in method or tool by that name."""


class ToolHandler(ABC):
    """
    Base class for a tool implementation.

    Subclasses define what a tool does. The server handles transport and
    argument validation against ``parameters`` / ``required``.
    """

    # Subclasses must set these
    name: str = ""
    description: str = ""
    parameters: dict[str, dict] = {}
    required: list[str] = []

    @abstractmethod
    def handle(self, params: dict[str, Any]) -> Any:
        """
        Execute the tool with the given parameters.

        Raise ValueError for bad input; it is reported as invalid params.
        """
        ...

    def get_schema(self) -> dict:
        """Return the tool schema for discovery."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": self.parameters,
                "required": list(self.required),
            },
        }


class StdioToolServer:
    """
    Peer that communicates via stdin/stdout.

    Protocol:
    - One JSON-RPC message per line
    - Supports methods:
        - "mcp.handshake"      → version, server identity, capabilities
        - "mcp.list_tools"     → {"tools": [schema, ...]}
        - "mcp.list_resources" → {"resources": [...]}
        - "mcp.ping"           → health check
        - "<tool name>"        → calls that tool with params as arguments
    """

    def __init__(self, name: str = "peerlink-server", version: str = __version__):
        self.name = name
        self.version = version
        self._handlers: dict[str, ToolHandler] = {}
        self._resources: list[Resource] = []

    def register(self, handler: ToolHandler) -> None:
        """Register a tool handler."""
        if not handler.name:
            raise ValueError(f"ToolHandler {handler.__class__.__name__} has no name")
        self._handlers[handler.name] = handler
        logger.info(f"Registered tool: {handler.name}")

    def add_resource(self, resource: Resource) -> None:
        self._resources.append(resource)

    def run(self, stdin: IO[bytes] | None = None, stdout: IO[bytes] | None = None) -> None:
        """
        Main loop: read requests, dispatch, write responses.

        This blocks until stdin is closed (parent closed the pipe).
        """
        stdin = stdin or sys.stdin.buffer
        stdout = stdout or sys.stdout.buffer
        logger.info(f"Peer {self.name} starting with {len(self._handlers)} tools: "
                    f"{list(self._handlers.keys())}")

        for line in stdin:
            if not line.strip():
                continue
            response = self.handle_line(line)
            if response is None:
                continue
            try:
                data = encode(response)
            except EncodeError as e:
                data = encode(Response.failure(response.id, INTERNAL_ERROR, str(e)))
            stdout.write(data + b"\n")
            stdout.flush()

        logger.info(f"Peer {self.name} stdin closed, exiting")

    def handle_line(self, line: bytes) -> Response | None:
        """Turn one request line into its response (None for notifications)."""
        try:
            message = decode(line)
        except DecodeError as e:
            return Response.failure(None, PARSE_ERROR, f"Parse error: {e}")

        if isinstance(message, Notification):
            logger.debug(f"Ignoring notification: {message.method}")
            return None
        if not isinstance(message, Request):
            return Response.failure(None, INVALID_REQUEST, "Expected a request")

        try:
            return Response.success(message.id, self._dispatch(message.method, message.params))
        except UnknownMethodError as e:
            return Response.failure(message.id, METHOD_NOT_FOUND, str(e))
        except (ValueError, ValidationError) as e:
            return Response.failure(message.id, INVALID_PARAMS, str(e))
        except Exception as e:
            logger.exception(f"Handler for {message.method} failed")
            return Response.failure(message.id, INTERNAL_ERROR, str(e))

    def _dispatch(self, method: str, params: dict) -> Any:
        """Route a method call to the appropriate handler."""

        if method == METHOD_HANDSHAKE:
            client = params.get("client") or {}
            logger.info(f"Handshake from {client.get('name', '?')} "
                        f"(protocol {params.get('version')})")
            return {
                "version": PROTOCOL_VERSION,
                "server": {"name": self.name, "version": self.version},
                "capabilities": ServerCapabilities(
                    resources=bool(self._resources)
                ).to_dict(),
            }

        if method == METHOD_PING:
            return {"status": "ok", "tools": list(self._handlers.keys())}

        if method == METHOD_LIST_TOOLS:
            return {"tools": [h.get_schema() for h in self._handlers.values()]}

        if method == METHOD_LIST_RESOURCES:
            return {"resources": [r.to_dict() for r in self._resources]}

        handler = self._handlers.get(method)
        if handler is None:
            raise UnknownMethodError(
                f"Unknown method: '{method}'. Available tools: {list(self._handlers.keys())}"
            )

        validate_arguments(handler.get_schema()["inputSchema"], params)
        return handler.handle(params)
