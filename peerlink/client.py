"""Protocol client: handshake, discovery and tool invocation for one peer.

``PeerClient`` is the capability interface the manager depends on. Two
implementations exist: :class:`ProtocolClient` (talks to a real transport)
and :class:`peerlink.mock.MockPeerClient` (in-memory). Pick one by passing a
factory to :class:`peerlink.manager.PeerManager`.
"""

from __future__ import annotations

import enum
import itertools
import logging
import threading
from typing import Any, Protocol, runtime_checkable

from peerlink import __version__
from peerlink.codec import Notification, Request, Response
from peerlink.errors import (
    AlreadyConnectedError,
    CallError,
    DecodeError,
    DiscoveryError,
    HandshakeError,
    MalformedResponseError,
    NotConnectedError,
    PeerConnectionError,
    PeerlinkError,
    VersionMismatchError,
)
from peerlink.transport import Transport
from peerlink.types import ClientInfo, Resource, ServerCapabilities, ServerInfo, ToolDefinition

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "1.0"
DEFAULT_TIMEOUT = 10.0

METHOD_HANDSHAKE = "mcp.handshake"
METHOD_LIST_TOOLS = "mcp.list_tools"
METHOD_LIST_RESOURCES = "mcp.list_resources"
METHOD_PING = "mcp.ping"


class ClientState(enum.Enum):
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    READY = "ready"
    CLOSED = "closed"


@runtime_checkable
class PeerClient(Protocol):
    """Operations the manager needs from a connected peer."""

    def connect(self, transport: Transport) -> None: ...

    def list_tools(self, timeout: float | None = None) -> list[ToolDefinition]: ...

    def list_resources(self, timeout: float | None = None) -> list[Resource]: ...

    def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> Any: ...

    @property
    def capabilities(self) -> ServerCapabilities | None: ...

    def health_check(self, timeout: float | None = None) -> None: ...

    def disconnect(self) -> None: ...

    def is_connected(self) -> bool: ...


class ProtocolClient:
    """Client side of the peer protocol over a single :class:`Transport`.

    Thread-safe. Client state sits behind an internal lock; every
    request/reply exchange holds the transport's exclusive lock, so calls
    from several threads run one after another.
    """

    def __init__(
        self,
        client_info: ClientInfo | None = None,
        *,
        protocol_version: str = PROTOCOL_VERSION,
        default_timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        self.client_info = client_info or ClientInfo(name="peerlink", version=__version__)
        self.protocol_version = protocol_version
        self.default_timeout = default_timeout
        self._transport: Transport | None = None
        self._state = ClientState.UNCONNECTED
        self._capabilities: ServerCapabilities | None = None
        self._server_info: ServerInfo | None = None
        self._tools: list[ToolDefinition] = []
        self._resources: list[Resource] = []
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    # ── Lifecycle ────────────────────────────────────────────────

    @property
    def state(self) -> ClientState:
        return self._state

    def connect(self, transport: Transport) -> None:
        """Start ``transport``, handshake, and run initial discovery.

        Raises:
            AlreadyConnectedError: A live transport is already attached.
            PeerConnectionError: The transport could not start.
            HandshakeError: The peer rejected the handshake or its reply was
                malformed (``VersionMismatchError`` for a version conflict).
            DiscoveryError: The mandatory tool listing failed.
        """
        with self._lock:
            if self._transport is not None and self._transport.is_connected():
                raise AlreadyConnectedError("client already connected")
            stale = self._transport
            self._transport = None
            self._state = ClientState.CONNECTING

        if stale is not None:
            stale.close()

        started = False
        try:
            transport.start()
            started = True
        except PeerConnectionError:
            raise
        except OSError as e:
            raise PeerConnectionError(f"failed to start transport: {e}") from e
        finally:
            if not started:
                with self._lock:
                    self._state = ClientState.UNCONNECTED

        with self._lock:
            self._transport = transport
            self._state = ClientState.HANDSHAKING

        try:
            self._handshake(transport)
            self._discover()
        except Exception:
            self._abort(transport)
            raise

        with self._lock:
            self._state = ClientState.READY
        server = self._server_info.name if self._server_info else "?"
        logger.info(
            f"Connected to {server}: tools={[t.name for t in self._tools]}, "
            f"resources={len(self._resources)}"
        )

    def disconnect(self) -> None:
        """Close the transport and drop cached discovery state. Idempotent."""
        with self._lock:
            transport = self._transport
            self._transport = None
            self._capabilities = None
            self._server_info = None
            self._tools = []
            self._resources = []
            if self._state is not ClientState.UNCONNECTED:
                self._state = ClientState.CLOSED

        if transport is not None:
            transport.close()

    def is_connected(self) -> bool:
        with self._lock:
            return self._transport is not None and self._transport.is_connected()

    # ── Cached discovery ─────────────────────────────────────────

    @property
    def capabilities(self) -> ServerCapabilities | None:
        with self._lock:
            return self._capabilities

    @property
    def server_info(self) -> ServerInfo | None:
        with self._lock:
            return self._server_info

    @property
    def tools(self) -> list[ToolDefinition]:
        with self._lock:
            return list(self._tools)

    @property
    def resources(self) -> list[Resource]:
        with self._lock:
            return list(self._resources)

    # ── Requests ─────────────────────────────────────────────────

    def list_tools(self, timeout: float | None = None) -> list[ToolDefinition]:
        """Ask the peer for its tools.

        Raises:
            NotConnectedError: No live transport.
            CallError: The peer replied with an error envelope.
            MalformedResponseError: The reply has no ``tools`` array.
        """
        result = self._request(METHOD_LIST_TOOLS, {}, timeout)
        items = self._result_array(result, "tools")
        tools = [ToolDefinition.from_dict(i) for i in items if isinstance(i, dict)]
        with self._lock:
            self._tools = tools
        return list(tools)

    def list_resources(self, timeout: float | None = None) -> list[Resource]:
        """Ask the peer for its resources. Same failure modes as ``list_tools``."""
        result = self._request(METHOD_LIST_RESOURCES, {}, timeout)
        items = self._result_array(result, "resources")
        resources = [Resource.from_dict(i) for i in items if isinstance(i, dict)]
        with self._lock:
            self._resources = resources
        return list(resources)

    def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        """Invoke tool ``name``; the tool name is the request method.

        Returns:
            The raw result payload.

        Raises:
            CallError: Peer-reported failure, with its code and message.
        """
        return self._request(name, arguments, timeout, tool=name)

    def health_check(self, timeout: float | None = None) -> None:
        """Ping the peer. Returns normally only on a non-error reply."""
        self._request(METHOD_PING, {}, timeout)

    # ── Internals ────────────────────────────────────────────────

    def _handshake(self, transport: Transport) -> None:
        params = {
            "version": self.protocol_version,
            "client": {"name": self.client_info.name, "version": self.client_info.version},
        }
        try:
            response = self._exchange(transport, METHOD_HANDSHAKE, params, self.default_timeout)
        except (DecodeError, MalformedResponseError) as e:
            raise HandshakeError(f"invalid handshake response: {e}") from e

        if response.error is not None:
            raise HandshakeError(
                f"handshake error: {response.error.message} (code: {response.error.code})"
            )

        result = response.result
        if not isinstance(result, dict):
            raise HandshakeError("invalid handshake response format")

        version = result.get("version")
        if not isinstance(version, str):
            raise HandshakeError("missing protocol version in handshake response")
        if version != self.protocol_version:
            raise VersionMismatchError(expected=self.protocol_version, actual=version)

        server = result.get("server")
        caps = result.get("capabilities")
        with self._lock:
            self._server_info = (
                ServerInfo(name=str(server.get("name", "")), version=str(server.get("version", "")))
                if isinstance(server, dict)
                else ServerInfo()
            )
            self._capabilities = (
                ServerCapabilities.from_dict(caps)
                if isinstance(caps, dict)
                else ServerCapabilities()
            )

    def _discover(self) -> None:
        try:
            self.list_tools(self.default_timeout)
        except PeerlinkError as e:
            raise DiscoveryError(f"failed to discover tools: {e}") from e

        try:
            self.list_resources(self.default_timeout)
        except PeerlinkError as e:
            logger.warning(f"Failed to discover resources: {e}")

    def _abort(self, transport: Transport) -> None:
        transport.close()
        with self._lock:
            self._transport = None
            self._capabilities = None
            self._server_info = None
            self._tools = []
            self._resources = []
            self._state = ClientState.UNCONNECTED

    def _request(
        self,
        method: str,
        params: dict[str, Any],
        timeout: float | None,
        tool: str | None = None,
    ) -> Any:
        with self._lock:
            transport = self._transport
        if transport is None or not transport.is_connected():
            raise NotConnectedError("client not connected")

        if timeout is None:
            timeout = self.default_timeout

        response = self._exchange(transport, method, params, timeout)
        if response.error is not None:
            raise CallError(
                code=response.error.code,
                message=response.error.message,
                data=response.error.data,
                tool=tool or method,
            )
        return response.result

    def _exchange(
        self,
        transport: Transport,
        method: str,
        params: dict[str, Any],
        timeout: float | None,
    ) -> Response:
        request = Request(id=next(self._ids), method=method, params=params)
        with transport.lock:
            transport.send_with_deadline(request, timeout)
            reply = transport.receive()
            while isinstance(reply, Notification):
                logger.debug(f"{method}: skipping notification {reply.method}")
                reply = transport.receive()

        if not isinstance(reply, Response):
            raise MalformedResponseError(f"{method}: expected a response, got {type(reply).__name__}")
        if reply.id != request.id:
            logger.debug(f"{method}: reply id {reply.id!r} does not match request id {request.id!r}")
        return reply

    @staticmethod
    def _result_array(result: Any, key: str) -> list[Any]:
        if not isinstance(result, dict):
            raise MalformedResponseError(f"invalid {key} response format")
        items = result.get(key)
        if not isinstance(items, list):
            raise MalformedResponseError(f"invalid or missing {key} array in response")
        return items
