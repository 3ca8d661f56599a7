"""In-memory :class:`PeerClient` for tests and dry runs.

Nothing is spawned: ``connect`` only records the transport it was given.
Tools, resources, call results and failures are set up front.
"""

from __future__ import annotations

import threading
from typing import Any

from peerlink.errors import AlreadyConnectedError, NotConnectedError, PeerlinkError
from peerlink.transport import Transport
from peerlink.types import Resource, ServerCapabilities, ToolDefinition


class MockPeerClient:
    """Scripted peer client.

    Args:
        tools: Tools returned by ``list_tools``.
        resources: Resources returned by ``list_resources``.
        results: Tool name → raw result returned by ``call_tool``. Unknown
            tools echo their arguments back.
    """

    def __init__(
        self,
        tools: list[ToolDefinition] | None = None,
        resources: list[Resource] | None = None,
        results: dict[str, Any] | None = None,
    ) -> None:
        self.tools = list(tools or [])
        self.resources = list(resources or [])
        self.results = dict(results or {})
        self.connect_error: PeerlinkError | None = None
        self.list_error: PeerlinkError | None = None
        self.call_error: PeerlinkError | None = None
        self.health_error: PeerlinkError | None = None
        self.disconnect_error: PeerlinkError | None = None
        self.transport: Transport | None = None
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.disconnect_count = 0
        self._connected = False
        self._lock = threading.Lock()

    def connect(self, transport: Transport) -> None:
        with self._lock:
            if self._connected:
                raise AlreadyConnectedError("client already connected")
            if self.connect_error is not None:
                raise self.connect_error
            self.transport = transport
            self._connected = True

    def list_tools(self, timeout: float | None = None) -> list[ToolDefinition]:
        self._require_connected()
        if self.list_error is not None:
            raise self.list_error
        return list(self.tools)

    def list_resources(self, timeout: float | None = None) -> list[Resource]:
        self._require_connected()
        return list(self.resources)

    def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        self._require_connected()
        with self._lock:
            self.calls.append((name, dict(arguments)))
        if self.call_error is not None:
            raise self.call_error
        return self.results.get(name, arguments)

    @property
    def capabilities(self) -> ServerCapabilities | None:
        return ServerCapabilities() if self.is_connected() else None

    def health_check(self, timeout: float | None = None) -> None:
        self._require_connected()
        if self.health_error is not None:
            raise self.health_error

    def disconnect(self) -> None:
        with self._lock:
            self.disconnect_count += 1
            self._connected = False
        if self.disconnect_error is not None:
            raise self.disconnect_error

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def _require_connected(self) -> None:
        if not self.is_connected():
            raise NotConnectedError("client not connected")
