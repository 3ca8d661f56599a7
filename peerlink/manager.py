"""
Peer Manager — launches and supervises peer processes.

Each peer gets its own transport and protocol client. The manager owns
every PeerHandle; nothing else closes a peer's transport.

Usage:
    manager = PeerManager()

    # Launch a peer and discover its tools
    handle = manager.launch(PeerConfig(
        name="calculator",
        command=sys.executable,
        args=["-m", "peerlink.servers.calculator"],
    ))

    # Call a tool on it
    result = manager.call_tool("calculator", "add", {"a": 2, "b": 2})

    # Poll liveness
    manager.monitor_health()   # {"calculator": None}

    # Stop everything
    manager.shutdown_all()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from peerlink.client import PeerClient, ProtocolClient
from peerlink.config import ClientSettings, PeerConfig
from peerlink.errors import (
    LaunchError,
    NoPeersError,
    NotConnectedError,
    PeerExistsError,
    PeerlinkError,
    PeerNotFoundError,
    ShutdownError,
)
from peerlink.rwlock import RWLock
from peerlink.transport import StdioTransport, Transport
from peerlink.types import ClientInfo, ServerCapabilities, ToolDefinition

logger = logging.getLogger(__name__)

TransportFactory = Callable[[PeerConfig], Transport]
ClientFactory = Callable[[], PeerClient]


@dataclass
class PeerHandle:
    """A launched peer: its client, transport and what it advertised."""

    name: str
    client: PeerClient
    transport: Transport
    config: PeerConfig
    capabilities: ServerCapabilities | None = None
    tools: list[ToolDefinition] = field(default_factory=list)

    def is_running(self) -> bool:
        return self.client.is_connected()


class PeerManager:
    """
    Manages the lifecycle of peer processes.

    Responsibilities:
    - Launch peers over a transport and connect a client to each
    - Re-discover tools across all peers
    - Route tool calls to the right peer
    - Health polling and shutdown

    The peer map sits behind a reader/writer lock. No process I/O happens
    while that lock is held.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.settings = settings or ClientSettings()
        self._transport_factory = transport_factory or self._stdio_transport
        self._client_factory = client_factory or self._protocol_client
        self._peers: dict[str, PeerHandle] = {}
        self._launching: set[str] = set()
        self._lock = RWLock()

    # ── Factories ────────────────────────────────────────────────

    def _stdio_transport(self, config: PeerConfig) -> Transport:
        return StdioTransport(
            config.command_line,
            env=config.env,
            cwd=config.cwd,
            shutdown_grace=self.settings.shutdown_grace,
        )

    def _protocol_client(self) -> PeerClient:
        return ProtocolClient(
            ClientInfo(name=self.settings.name, version=self.settings.version),
            protocol_version=self.settings.protocol_version,
            default_timeout=self.settings.request_timeout,
        )

    # ── Lifecycle ────────────────────────────────────────────────

    def launch(self, config: PeerConfig) -> PeerHandle:
        """
        Start a peer and discover its tools.

        Returns:
            The new PeerHandle.

        Raises:
            PeerExistsError: A peer with that name exists or is launching.
            LaunchError: The transport could not start or the client
                could not connect (cause chained).
        """
        with self._lock.write():
            if config.name in self._peers or config.name in self._launching:
                raise PeerExistsError(config.name)
            self._launching.add(config.name)

        try:
            handle = self._connect(config)
            with self._lock.write():
                self._peers[config.name] = handle
        finally:
            with self._lock.write():
                self._launching.discard(config.name)

        logger.info(f"Launched {config.name}: tools={[t.name for t in handle.tools]}")
        return handle

    def _connect(self, config: PeerConfig) -> PeerHandle:
        transport = self._transport_factory(config)
        client = self._client_factory()
        try:
            client.connect(transport)
        except PeerlinkError as e:
            raise LaunchError(config.name, f"failed to connect: {e}") from e

        try:
            tools = client.list_tools(self.settings.request_timeout)
        except PeerlinkError as e:
            logger.warning(f"Tool discovery failed for {config.name}: {e}")
            tools = []

        return PeerHandle(
            name=config.name,
            client=client,
            transport=transport,
            config=config,
            capabilities=client.capabilities,
            tools=tools,
        )

    def shutdown(self, name: str) -> None:
        """
        Disconnect a peer and forget it.

        The handle is removed even when disconnecting fails.

        Raises:
            PeerNotFoundError: No peer by that name.
            ShutdownError: Disconnecting failed (cause chained).
        """
        with self._lock.write():
            handle = self._peers.pop(name, None)
        if handle is None:
            raise PeerNotFoundError(name)

        try:
            handle.client.disconnect()
        except (PeerlinkError, OSError) as e:
            raise ShutdownError(name, f"failed to disconnect: {e}") from e
        logger.info(f"Stopped {name}")

    def shutdown_all(self) -> None:
        """
        Disconnect every peer, continuing past failures.

        The peer set is always emptied.

        Raises:
            ShutdownError: For the last disconnect that failed.
        """
        with self._lock.write():
            handles = list(self._peers.values())
            self._peers = {}

        last_error: tuple[str, Exception] | None = None
        for handle in handles:
            try:
                handle.client.disconnect()
                logger.info(f"Stopped {handle.name}")
            except (PeerlinkError, OSError) as e:
                logger.error(f"Failed to stop {handle.name}: {e}")
                last_error = (handle.name, e)

        if last_error is not None:
            name, cause = last_error
            raise ShutdownError(name, f"failed to disconnect: {cause}") from cause

    # ── Lookup ───────────────────────────────────────────────────

    def get(self, name: str) -> PeerHandle:
        with self._lock.read():
            handle = self._peers.get(name)
        if handle is None:
            raise PeerNotFoundError(name)
        return handle

    def names(self) -> list[str]:
        with self._lock.read():
            return list(self._peers)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._peers)

    def __contains__(self, name: object) -> bool:
        with self._lock.read():
            return name in self._peers

    # ── Discovery & health ───────────────────────────────────────

    def discover_tools(self, timeout: float | None = None) -> dict[str, list[ToolDefinition]]:
        """
        Re-list tools on every running peer.

        Peers that are disconnected or fail to answer are skipped.

        Returns:
            {peer_name: [tools]} for every peer that answered.

        Raises:
            NoPeersError: The manager holds no peers.
        """
        with self._lock.read():
            handles = list(self._peers.values())
        if not handles:
            raise NoPeersError()

        discovered: dict[str, list[ToolDefinition]] = {}
        for handle in handles:
            if not handle.is_running():
                logger.warning(f"Skipping {handle.name}: not running")
                continue
            try:
                tools = handle.client.list_tools(timeout)
            except PeerlinkError as e:
                logger.warning(f"Skipping {handle.name}: {e}")
                continue
            discovered[handle.name] = tools

        with self._lock.write():
            for name, tools in discovered.items():
                if name in self._peers:
                    self._peers[name].tools = tools

        return discovered

    def monitor_health(self, timeout: float | None = None) -> dict[str, Exception | None]:
        """Ping every peer. Returns {peer_name: None | error}."""
        with self._lock.read():
            handles = list(self._peers.values())

        results: dict[str, Exception | None] = {}
        for handle in handles:
            if not handle.is_running():
                results[handle.name] = NotConnectedError("peer not running")
                continue
            try:
                handle.client.health_check(timeout)
                results[handle.name] = None
            except PeerlinkError as e:
                results[handle.name] = e
        return results

    # ── Routing ──────────────────────────────────────────────────

    def call_tool(
        self,
        peer: str,
        tool: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        """
        Call a tool on a specific peer.

        Returns:
            The raw tool result.

        Raises:
            PeerNotFoundError: Unknown peer.
            NotConnectedError: Peer is not running.
            CallError: Peer reported a failure.
        """
        handle = self.get(peer)
        return handle.client.call_tool(tool, arguments, timeout)

    def __enter__(self) -> PeerManager:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown_all()
